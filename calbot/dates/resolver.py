"""
Date resolution clients.

Responsibilities:
- Turn raw user text + timezone into an instant
- Keep "could not parse" (a normal answer) apart from service failures

Two backends share one contract:
- RemoteDateResolver: PUT {text, timezone} to an external parsing service
- LocalDateResolver: in-process dateparser
"""

import asyncio
import json
import logging
import urllib.error
import urllib.request
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from typing import Any, Dict, Optional, Protocol
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel

from calbot.config import Settings
from calbot.utils.datetime_parser import parse_datetime

logger = logging.getLogger(__name__)


class ResolutionError(Exception):
    """
    Raised when the date parsing service is unreachable or replies with
    something that is not a valid answer.

    Not raised for text that simply has no date in it.
    """


class ResolvedDate(BaseModel):
    instant: Optional[datetime] = None

    @property
    def is_parsed(self) -> bool:
        return self.instant is not None


class DateResolver(Protocol):
    async def resolve(self, text: str, timezone: str) -> ResolvedDate: ...


def _parse_instant(raw: Any) -> Optional[datetime]:
    """
    Decode the service's `date` field.

    The service answers with the zero instant (year 1) when nothing was parsed.
    """
    if raw in (None, ""):
        return None
    if not isinstance(raw, str):
        raise ResolutionError(f"Unexpected date value in reply: {raw!r}")

    try:
        instant = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError as e:
        raise ResolutionError(f"Malformed date in reply: {raw!r}") from e

    if instant.year <= 1:
        return None
    return instant


class RemoteDateResolver:
    """
    Client for the external date parsing service.

    Usage:
        resolver = RemoteDateResolver("http://parser:8080")
        resolved = await resolver.resolve("завтра в 10:00", "Europe/Moscow")
    """

    _executor = ThreadPoolExecutor(max_workers=4)

    def __init__(self, base_url: str, timeout: float = 5.0):
        self.url = base_url.rstrip("/") + "/parse/date"
        self.timeout = timeout

    async def resolve(self, text: str, timezone: str) -> ResolvedDate:
        loop = asyncio.get_running_loop()
        body = await loop.run_in_executor(
            self._executor,
            self._put_json,
            {"text": text, "timezone": timezone},
        )

        if not isinstance(body, dict):
            raise ResolutionError(f"Unexpected reply from date parser: {body!r}")

        instant = _parse_instant(body.get("date"))
        logger.info("Resolved %r (%s) -> %s", text, timezone, instant)
        return ResolvedDate(instant=instant)

    # Internal blocking implementation ------------------------------------------------------------

    def _put_json(self, payload: Dict[str, Any]) -> Any:
        req = urllib.request.Request(
            self.url,
            data=json.dumps(payload).encode("utf-8"),
            method="PUT",
            headers={
                "Content-Type": "application/json",
                "Accept": "application/json",
            },
        )
        try:
            with urllib.request.urlopen(req, timeout=self.timeout) as response:
                return json.loads(response.read().decode("utf-8"))
        except urllib.error.HTTPError as e:
            logger.error("Date parser HTTP %s: %s", e.code, e.reason)
            raise ResolutionError(f"Date parser returned HTTP {e.code}") from e
        except (urllib.error.URLError, TimeoutError, OSError) as e:
            logger.error("Date parser unreachable: %s", e)
            raise ResolutionError("Date parser unreachable") from e
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.error("Date parser replied with invalid JSON: %s", e)
            raise ResolutionError("Date parser replied with invalid JSON") from e


class LocalDateResolver:
    """In-process resolver on top of dateparser."""

    def __init__(self, now: Optional[datetime] = None):
        self._now = now

    async def resolve(self, text: str, timezone: str) -> ResolvedDate:
        try:
            tz = ZoneInfo(timezone)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ResolutionError(f"Unknown timezone: {timezone}") from e

        now = self._now.astimezone(tz) if self._now else None
        return ResolvedDate(instant=parse_datetime(text, now=now, tz=tz))


def build_date_resolver(settings: Settings) -> DateResolver:
    if settings.DATE_PARSER_URL:
        logger.info("Using remote date parser at %s", settings.DATE_PARSER_URL)
        return RemoteDateResolver(settings.DATE_PARSER_URL, settings.DATE_PARSER_TIMEOUT)

    logger.info("DATE_PARSER_URL not set, using local dateparser")
    return LocalDateResolver()
