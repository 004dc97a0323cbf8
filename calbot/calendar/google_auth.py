"""
Google OAuth2 credentials for the Calendar API.

The bot does not run the consent flow itself: it is handed either a
ready access token or a long-lived refresh token obtained elsewhere.
"""

import logging
from typing import Optional

from google.auth.exceptions import RefreshError, TransportError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials

from calbot.config import settings

logger = logging.getLogger(__name__)

TOKEN_URI = "https://oauth2.googleapis.com/token"

SCOPES = [
    "https://www.googleapis.com/auth/calendar.events",
    "https://www.googleapis.com/auth/calendar.readonly",
    "https://www.googleapis.com/auth/userinfo.email",
]


class GoogleAuthError(Exception):
    """
    Raised when no usable access token can be produced: missing client
    configuration, a revoked refresh token, or Google being unreachable.
    """


class GoogleAuth:
    """
    Hands out Calendar credentials.

    Usage:
        creds = GoogleAuth(access_token=token).get_credentials()
        token = GoogleAuth().get_access_token()   # refresh-token flow
    """

    def __init__(
        self,
        access_token: Optional[str] = None,
        *,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        refresh_token: Optional[str] = None,
    ) -> None:
        self.access_token = access_token
        self.client_id = settings.GOOGLE_CLIENT_ID if client_id is None else client_id
        self.client_secret = settings.GOOGLE_CLIENT_SECRET if client_secret is None else client_secret
        self.refresh_token = settings.GOOGLE_REFRESH_TOKEN if refresh_token is None else refresh_token

        self._creds: Optional[Credentials] = None

    @property
    def is_configured(self) -> bool:
        return bool(self.client_id and self.client_secret and self.refresh_token)

    def _refresh(self) -> Credentials:
        if not self.is_configured:
            logger.error("Google OAuth client id, secret or refresh token is not configured")
            raise GoogleAuthError(
                "Missing GOOGLE_CLIENT_ID, GOOGLE_CLIENT_SECRET, or GOOGLE_REFRESH_TOKEN"
            )

        creds = Credentials(
            token=None,
            refresh_token=self.refresh_token,
            client_id=self.client_id,
            client_secret=self.client_secret,
            token_uri=TOKEN_URI,
            scopes=SCOPES,
        )

        try:
            creds.refresh(Request())
        except RefreshError as e:
            logger.error("Google rejected the refresh token: %s", e)
            raise GoogleAuthError("Refresh token was rejected, reconnect the calendar") from e
        except TransportError as e:
            logger.error("Google token endpoint unreachable: %s", e)
            raise GoogleAuthError("Google token endpoint unreachable") from e

        if not creds.token:
            raise GoogleAuthError("Google returned no access token")

        logger.info("Google access token refreshed (expires %s)", creds.expiry)
        return creds

    def get_credentials(self) -> Credentials:
        if self.access_token:
            return Credentials(token=self.access_token, scopes=SCOPES)

        # Cached until Google reports it expired
        if self._creds is None or not self._creds.valid:
            self._creds = self._refresh()
        return self._creds

    def get_access_token(self) -> str:
        return self.get_credentials().token
