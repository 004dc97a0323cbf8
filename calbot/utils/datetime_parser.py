"""
Responsibilities:
- Convert natural language datetime expressions into timezone-aware datetime objects
- Support relative and absolute time expressions (Russian and English)
- Remain deterministic and side-effect free for a fixed `now`
"""

import logging
from datetime import datetime, tzinfo
from typing import Optional
from zoneinfo import ZoneInfo

import dateparser

logger = logging.getLogger(__name__)

DEFAULT_LANGUAGES = ["ru", "en"]


def parse_datetime(
    text: Optional[str],
    *,
    now: Optional[datetime] = None,
    tz: tzinfo = ZoneInfo("UTC"),
) -> Optional[datetime]:
    """
    Parse human readable datetime text into a timezone-aware datetime.

    Examples:
        "завтра в 10:00"
        "через два часа"
        "tomorrow 10:00"
        "2030-01-05 18:30"

    Returns:
        datetime (timezone aware) or None if parsing fails
    """
    if not text or not text.strip():
        logger.debug("parse_datetime called with empty text")
        return None

    if not now:
        now = datetime.now(tz)

    # ZoneInfo carries an IANA key; fixed offsets only have a tzname
    tz_str = tz.key if hasattr(tz, "key") else tz.tzname(None)

    settings = {
        "RELATIVE_BASE": now.replace(tzinfo=None),
        "TIMEZONE": tz_str,
        "RETURN_AS_TIMEZONE_AWARE": True,
        "PREFER_DATES_FROM": "future",
    }

    logger.debug("Parsing datetime: text=%r now=%s tz=%s", text, now.isoformat(), tz_str)

    try:
        dt = dateparser.parse(text, languages=DEFAULT_LANGUAGES, settings=settings)
    except Exception as e:
        logger.error("Date parsing exception for text=%r: %s", text, e)
        return None

    if not dt:
        logger.info("Date parsing returned None for text=%r", text)
        return None

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=tz)

    logger.debug("Parsed %r -> %s", text, dt.isoformat())
    return dt
