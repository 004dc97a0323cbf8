"""
Google Calendar Service

Responsibilities:
- Read today's / closest / per-date events and single events by id
- Create calendar events from a finished draft
- Handle retries and transient failures
- Surface clear, domain-specific errors
"""

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import date, datetime, time, timedelta
from typing import Any, Callable, Dict, List, Optional, TypeVar
from zoneinfo import ZoneInfo

from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from calbot.calendar.google_auth import GoogleAuth, GoogleAuthError
from calbot.calendar.models import Event, EventInput
from calbot.config import settings
from calbot.state import (
    ROLE_OPTIONAL,
    ROLE_REQUIRED,
    STATUS_NEEDS_ACTION,
    Attendee,
    Location,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Google responseStatus -> our attendee status
_STATUS_FROM_GOOGLE = {
    "needsAction": STATUS_NEEDS_ACTION,
    "accepted": "accepted",
    "declined": "declined",
    "tentative": "tentative",
}


class GoogleCalendarError(Exception):
    """
    Raised when a calendar call fails.
    """


class EventNotFound(GoogleCalendarError):
    """
    Raised when an event id does not resolve to an event.
    """


# Mapping helpers ---------------------------------------------------------------------------


def _parse_google_time(value: Dict[str, str], tz: ZoneInfo) -> datetime:
    if "dateTime" in value:
        return datetime.fromisoformat(value["dateTime"].replace("Z", "+00:00"))
    return datetime.combine(date.fromisoformat(value["date"]), time(), tzinfo=tz)


def _attendee_from_google(raw: Dict[str, Any]) -> Attendee:
    return Attendee(
        email=raw.get("email", ""),
        name=raw.get("displayName", ""),
        role=ROLE_OPTIONAL if raw.get("optional") else ROLE_REQUIRED,
        status=_STATUS_FROM_GOOGLE.get(raw.get("responseStatus", ""), STATUS_NEEDS_ACTION),
    )


def event_from_google(item: Dict[str, Any], calendar_id: str, tz: ZoneInfo) -> Event:
    organizer = None
    if item.get("organizer", {}).get("email"):
        organizer = Attendee(
            email=item["organizer"]["email"],
            name=item["organizer"].get("displayName", ""),
            status="accepted",
        )

    return Event(
        uid=item["id"],
        calendar_uid=calendar_id,
        title=item.get("summary", ""),
        description=item.get("description", ""),
        start=_parse_google_time(item["start"], tz),
        end=_parse_google_time(item["end"], tz),
        full_day="date" in item["start"],
        location=Location(description=item.get("location", "")),
        organizer=organizer,
        attendees=[_attendee_from_google(a) for a in item.get("attendees", [])],
        call_link=item.get("hangoutLink", ""),
        html_link=item.get("htmlLink", ""),
    )


def event_input_to_body(event: EventInput, timezone: str) -> Dict[str, Any]:
    if event.full_day:
        start = {"date": datetime.fromisoformat(event.start).date().isoformat()}
        end = {"date": datetime.fromisoformat(event.end).date().isoformat()}
    else:
        start = {"dateTime": event.start, "timeZone": timezone}
        end = {"dateTime": event.end, "timeZone": timezone}

    body: Dict[str, Any] = {
        "id": event.uid,
        "summary": event.title,
        "description": event.description,
        "start": start,
        "end": end,
    }
    if event.location:
        body["location"] = event.location.description
    if event.attendees:
        body["attendees"] = [
            {"email": a.email, "optional": a.role == ROLE_OPTIONAL} for a in event.attendees
        ]
    return body


class GoogleCalendarService:
    """
    Async calendar-service client on top of the blocking Google API client.

    Usage:
        calendar = GoogleCalendarService()
        events = await calendar.get_events_today(token)
    """

    _executor = ThreadPoolExecutor(max_workers=4)

    def __init__(self, calendar_id: Optional[str] = None, timezone: Optional[str] = None):
        self.calendar_id = calendar_id or settings.GOOGLE_CALENDAR_ID
        self.timezone = timezone or settings.DEFAULT_TIMEZONE
        self.tz = ZoneInfo(self.timezone)
        self.retries = max(1, settings.CALENDAR_REQUEST_RETRIES)

    # Public async API -----------------------------------------------------------------

    async def get_events_today(self, access_token: Optional[str]) -> Optional[List[Event]]:
        return await self.get_events_by_date(access_token, datetime.now(self.tz))

    async def get_events_by_date(
        self, access_token: Optional[str], day: datetime
    ) -> Optional[List[Event]]:
        """Events of the calendar day containing `day`; None when there are none."""
        local_day = day.astimezone(self.tz).date()
        time_min = datetime.combine(local_day, time(), tzinfo=self.tz)
        time_max = time_min + timedelta(days=1)

        events = await self._run(self._list_blocking, access_token, time_min, time_max, 50)
        return events or None

    async def get_closest_event(self, access_token: Optional[str]) -> Optional[Event]:
        now = datetime.now(self.tz)
        events = await self._run(self._list_blocking, access_token, now, None, 1)
        return events[0] if events else None

    async def get_event_by_id(
        self, access_token: Optional[str], calendar_id: str, event_id: str
    ) -> Event:
        return await self._run(self._get_blocking, access_token, calendar_id, event_id)

    async def create_event(self, access_token: Optional[str], event: EventInput) -> Event:
        """
        Create a calendar event.

        Retries transient failures; a failure after the last attempt raises
        GoogleCalendarError.
        """
        for attempt in range(1, self.retries + 1):
            try:
                return await self._run(self._create_blocking, access_token, event)
            except HttpError as e:
                # 409: an earlier attempt already created the event under this id
                if e.resp.status == 409:
                    return await self.get_event_by_id(access_token, self.calendar_id, event.uid)
                logger.warning("Calendar event creation failed (attempt %s): %s", attempt, e)
            except GoogleCalendarError:
                raise
            except Exception:
                logger.exception("Calendar event creation failed (attempt %s)", attempt)

        raise GoogleCalendarError("Failed to create calendar event after retries")

    # Internal blocking implementation ------------------------------------------------------------

    async def _run(self, fn: Callable[..., T], *args: Any) -> T:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, fn, *args)

    def _service(self, access_token: Optional[str]):
        try:
            creds = GoogleAuth(access_token=access_token).get_credentials()
        except GoogleAuthError as e:
            logger.error("Google auth failed: %s", e)
            raise GoogleCalendarError("Authentication with Google failed") from e

        return build("calendar", "v3", credentials=creds, cache_discovery=False)

    def _list_blocking(
        self,
        access_token: Optional[str],
        time_min: datetime,
        time_max: Optional[datetime],
        max_results: int,
    ) -> List[Event]:
        params: Dict[str, Any] = {
            "calendarId": self.calendar_id,
            "timeMin": time_min.isoformat(),
            "singleEvents": True,
            "orderBy": "startTime",
            "maxResults": max_results,
        }
        if time_max is not None:
            params["timeMax"] = time_max.isoformat()

        try:
            response = self._service(access_token).events().list(**params).execute()
        except HttpError as e:
            logger.exception("Google Calendar API error while listing events")
            raise GoogleCalendarError(f"Google Calendar API error: {e}") from e

        items = response.get("items", [])
        logger.info("Fetched %s events from %s", len(items), self.calendar_id)
        return [event_from_google(item, self.calendar_id, self.tz) for item in items]

    def _get_blocking(
        self, access_token: Optional[str], calendar_id: str, event_id: str
    ) -> Event:
        try:
            item = (
                self._service(access_token)
                .events()
                .get(calendarId=calendar_id, eventId=event_id)
                .execute()
            )
        except HttpError as e:
            if e.resp.status in (404, 410):
                raise EventNotFound(f"Event {event_id} not found in {calendar_id}") from e
            logger.exception("Google Calendar API error while reading event")
            raise GoogleCalendarError(f"Google Calendar API error: {e}") from e

        return event_from_google(item, calendar_id, self.tz)

    def _create_blocking(self, access_token: Optional[str], event: EventInput) -> Event:
        body = event_input_to_body(event, self.timezone)

        logger.info("Creating calendar event: title=%s start=%s", event.title, event.start)

        item = (
            self._service(access_token)
            .events()
            .insert(calendarId=self.calendar_id, body=body)
            .execute()
        )

        logger.info("Calendar event created successfully (event_id=%s)", item.get("id"))
        return event_from_google(item, self.calendar_id, self.tz)
