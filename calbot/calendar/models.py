import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from calbot.state import ROLE_REQUIRED, Attendee, EventDraft, Location

DEFAULT_TITLE = "Без названия"


class Event(BaseModel):
    """An event as read back from the calendar service."""

    uid: str
    calendar_uid: str
    title: str = ""
    description: str = ""
    start: datetime
    end: datetime
    full_day: bool = False
    location: Location = Field(default_factory=Location)
    organizer: Optional[Attendee] = None
    attendees: List[Attendee] = Field(default_factory=list)
    call_link: str = ""
    html_link: str = ""


class AttendeeInput(BaseModel):
    email: str
    role: str = ROLE_REQUIRED


class EventInput(BaseModel):
    """Payload for creating an event. Times are RFC 3339 strings."""

    uid: str
    start: str
    end: str
    full_day: bool
    title: str
    description: str
    location: Optional[Location] = None
    attendees: Optional[List[AttendeeInput]] = None


def draft_to_event_input(draft: EventDraft) -> EventInput:
    """
    Convert a finished draft into the create payload.

    Title and description always get a value; location and attendees only
    when the draft has them.
    """
    if draft.start is None or draft.end is None:
        raise ValueError("draft has no start/end")

    location = None
    if draft.location.description:
        location = Location(description=draft.location.description)

    attendees = None
    if draft.attendees:
        attendees = [AttendeeInput(email=a.email, role=a.role) for a in draft.attendees]

    return EventInput(
        uid=uuid.uuid4().hex,
        start=draft.start.isoformat(),
        end=draft.end.isoformat(),
        full_day=draft.full_day,
        title=draft.title or DEFAULT_TITLE,
        description=draft.description or "",
        location=location,
        attendees=attendees,
    )

