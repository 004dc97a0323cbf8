import pytest

from calbot.calendar.google_auth import GoogleAuth, GoogleAuthError
from calbot.users import SettingsUserDirectory, UserDirectoryError


def _auth(refresh_token: str = "refresh") -> GoogleAuth:
    return GoogleAuth(client_id="id", client_secret="secret", refresh_token=refresh_token)


@pytest.mark.asyncio
async def test_allowed_list_is_enforced():
    users = SettingsUserDirectory([1, 2], auth=_auth())

    assert await users.is_authenticated(1)
    assert not await users.is_authenticated(3)


@pytest.mark.asyncio
async def test_not_authenticated_without_refresh_token():
    users = SettingsUserDirectory([], auth=_auth(refresh_token=""))
    assert not await users.is_authenticated(1)


@pytest.mark.asyncio
async def test_token_failure_is_wrapped(mocker):
    auth = _auth()
    mocker.patch.object(auth, "get_access_token", side_effect=GoogleAuthError("revoked"))
    users = SettingsUserDirectory([], auth=auth)

    with pytest.raises(UserDirectoryError):
        await users.get_access_token(1)


@pytest.mark.asyncio
async def test_organizer_from_userinfo(mocker):
    mocker.patch(
        "calbot.users._fetch_google_user_info",
        return_value={"email": "me@example.com", "name": "Me"},
    )
    users = SettingsUserDirectory([], auth=_auth())

    organizer = await users.get_organizer("token")

    assert organizer.email == "me@example.com"
    assert organizer.status == "accepted"


@pytest.mark.asyncio
async def test_organizer_unknown(mocker):
    mocker.patch("calbot.users._fetch_google_user_info", return_value=None)
    users = SettingsUserDirectory([], auth=_auth())

    assert await users.get_organizer("token") is None


def test_access_token_is_used_as_is():
    creds = GoogleAuth(access_token="abc", client_id="", client_secret="", refresh_token="").get_credentials()
    assert creds.token == "abc"


def test_refresh_without_configuration():
    auth = GoogleAuth(client_id="", client_secret="", refresh_token="")
    with pytest.raises(GoogleAuthError):
        auth.get_access_token()
