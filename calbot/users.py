"""
User directory.

Answers "is this chat user connected to a calendar", hands out the access
token for calendar calls and resolves the organizer identity.

Account storage and the OAuth issuance flow live outside this bot; this
implementation serves the single Google account configured in settings.
"""

import asyncio
import json
import logging
import urllib.error
import urllib.request
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional

from calbot.calendar.google_auth import GoogleAuth, GoogleAuthError
from calbot.config import Settings
from calbot.state import ROLE_REQUIRED, STATUS_ACCEPTED, Attendee

logger = logging.getLogger(__name__)

USERINFO_URL = "https://www.googleapis.com/oauth2/v3/userinfo"


class UserDirectoryError(Exception):
    """Raised when no access token can be produced for a user."""


def _fetch_google_user_info(access_token: str) -> Optional[dict]:
    """Fetch user info from Google API."""
    req = urllib.request.Request(
        USERINFO_URL,
        headers={
            "Authorization": f"Bearer {access_token}",
            "User-Agent": "calbot/1.0",
            "Accept": "application/json",
        },
    )
    try:
        with urllib.request.urlopen(req, timeout=10) as response:
            return json.loads(response.read().decode())
    except urllib.error.HTTPError as e:
        logger.error("Google userinfo error %s: %s", e.code, e.reason)
        return None
    except (urllib.error.URLError, OSError, json.JSONDecodeError) as e:
        logger.error("Failed to fetch Google user info: %s", e)
        return None


class SettingsUserDirectory:
    _executor = ThreadPoolExecutor(max_workers=2)

    def __init__(self, allowed_ids: List[int], auth: Optional[GoogleAuth] = None):
        self.allowed_ids = set(allowed_ids)
        self.auth = auth or GoogleAuth()

    @classmethod
    def from_settings(cls, settings: Settings) -> "SettingsUserDirectory":
        return cls(settings.ALLOWED_TELEGRAM_IDS)

    async def is_authenticated(self, user_id: int) -> bool:
        if self.allowed_ids and user_id not in self.allowed_ids:
            logger.info("User %s is not in ALLOWED_TELEGRAM_IDS", user_id)
            return False
        return self.auth.is_configured

    async def get_access_token(self, user_id: int) -> str:
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(self._executor, self.auth.get_access_token)
        except GoogleAuthError as e:
            raise UserDirectoryError(f"No access token for user {user_id}") from e

    async def get_organizer(self, access_token: str) -> Optional[Attendee]:
        loop = asyncio.get_running_loop()
        info = await loop.run_in_executor(self._executor, _fetch_google_user_info, access_token)
        if not info or not info.get("email"):
            return None

        return Attendee(
            email=info["email"],
            name=info.get("name", ""),
            role=ROLE_REQUIRED,
            status=STATUS_ACCEPTED,
        )
