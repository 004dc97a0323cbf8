from datetime import datetime, timedelta
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator

ROLE_REQUIRED = "required"
ROLE_OPTIONAL = "optional"

STATUS_NEEDS_ACTION = "needs-action"
STATUS_ACCEPTED = "accepted"

FULL_DAY = timedelta(hours=24)


class Step(str, Enum):
    """Position in the event creation wizard. INIT is the idle marker."""

    INIT = "INIT"
    FROM = "FROM"
    TO = "TO"
    TITLE = "TITLE"
    DESC = "DESC"
    LOCATION = "LOCATION"
    USER = "USER"


class Attendee(BaseModel):
    email: str
    name: str = ""
    role: str = ROLE_REQUIRED
    status: str = STATUS_NEEDS_ACTION


class Location(BaseModel):
    description: str = ""


class EventDraft(BaseModel):
    """
    A partially-filled event accumulated across dialog turns.

    None / empty string means "unset".
    """

    start: Optional[datetime] = None
    end: Optional[datetime] = None
    full_day: bool = False

    title: str = ""
    description: str = ""
    location: Location = Field(default_factory=Location)

    organizer: Optional[Attendee] = None
    attendees: List[Attendee] = Field(default_factory=list)

    @model_validator(mode="after")
    def _end_requires_start(self) -> "EventDraft":
        if self.end is not None and self.start is None:
            raise ValueError("draft end cannot be set while start is unset")
        return self

    @property
    def is_complete(self) -> bool:
        return self.start is not None and self.end is not None and bool(self.title)

    def set_start(self, start: datetime) -> None:
        """Move the start; an already chosen end keeps its duration."""
        if self.start is not None and self.end is not None:
            self.end = start + (self.end - self.start)
        self.start = start

    def set_duration(self, duration: timedelta, *, full_day: bool = False) -> None:
        if self.start is None:
            raise ValueError("cannot set a duration before the start")
        self.end = self.start + duration
        self.full_day = full_day


class MessageRef(BaseModel):
    """Chat + message identifier of an editable message."""

    chat_id: int
    message_id: int


class Session(BaseModel):
    """
    Per-user conversational state, persisted in the key-value store.

    At most one dialog is active at a time.
    """

    step: Step = Step.INIT
    is_create_active: bool = False
    is_date_capture_active: bool = False

    draft: EventDraft = Field(default_factory=EventDraft)
    last_prompt: Optional[MessageRef] = None

    @model_validator(mode="after")
    def _single_dialog(self) -> "Session":
        if self.is_create_active and self.is_date_capture_active:
            raise ValueError("create and date-capture dialogs cannot both be active")
        return self

    def start_create(self, organizer: Optional[Attendee] = None) -> None:
        self.is_date_capture_active = False
        self.is_create_active = True
        self.draft = EventDraft(organizer=organizer)
        self.step = Step.FROM

    def start_date_capture(self) -> None:
        self.is_create_active = False
        self.is_date_capture_active = True

    def finish_create(self) -> None:
        """Deactivate the creation dialog and forget the draft and its prompt."""
        self.is_create_active = False
        self.step = Step.INIT
        self.draft = EventDraft()
        self.last_prompt = None
