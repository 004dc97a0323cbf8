from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple
from zoneinfo import ZoneInfo

import pytest

from calbot.calendar.google_calendar import EventNotFound, GoogleCalendarError
from calbot.calendar.models import Event, EventInput
from calbot.dates.resolver import ResolutionError, ResolvedDate
from calbot.handlers.callbacks import CallbackDispatcher
from calbot.handlers.commands import CommandHandlers
from calbot.handlers.types import IncomingCallback, IncomingMessage, MessengerError, OutgoingMessage
from calbot.state import STATUS_ACCEPTED, Attendee, Location, MessageRef
from calbot.storage.correlation import CorrelationStore
from calbot.storage.kv import InMemoryKeyValueStore
from calbot.storage.sessions import SessionStore

TZ = "Europe/Moscow"
NOW = datetime(2024, 5, 20, 9, 0, tzinfo=ZoneInfo(TZ))
USER_ID = 42
CHAT_ID = 42


class FakeMessenger:
    """Records every transport call; message ids are handed out sequentially."""

    def __init__(self):
        self.sent: List[Tuple[int, OutgoingMessage, Optional[int]]] = []
        self.edited: List[Tuple[MessageRef, OutgoingMessage]] = []
        self.deleted: List[MessageRef] = []
        self.answers: List[Tuple[str, str, bool]] = []
        self._next_id = 100

    async def send(self, chat_id, message, reply_to=None):
        self._next_id += 1
        self.sent.append((chat_id, message, reply_to))
        return MessageRef(chat_id=chat_id, message_id=self._next_id)

    async def edit(self, ref, message):
        self.edited.append((ref, message))

    async def delete(self, ref):
        self.deleted.append(ref)

    async def answer(self, callback_id, text="", alert=False):
        self.answers.append((callback_id, text, alert))

    @property
    def texts(self) -> List[str]:
        return [m.text for _, m, _ in self.sent]


class FakeCalendar:
    def __init__(self):
        self.events: Dict[str, Event] = {}
        self.today: List[Event] = []
        self.closest: Optional[Event] = None
        self.created: List[EventInput] = []
        self.calls: List[str] = []
        self.fail_create = False

    async def get_events_today(self, access_token):
        self.calls.append("today")
        return self.today or None

    async def get_closest_event(self, access_token):
        self.calls.append("closest")
        return self.closest

    async def get_events_by_date(self, access_token, day):
        self.calls.append(f"date:{day.date().isoformat()}")
        found = [e for e in self.events.values() if e.start.date() == day.date()]
        return found or None

    async def get_event_by_id(self, access_token, calendar_id, event_id):
        self.calls.append(f"get:{event_id}")
        if event_id not in self.events:
            raise EventNotFound(event_id)
        return self.events[event_id]

    async def create_event(self, access_token, event):
        self.calls.append("create")
        if self.fail_create:
            raise GoogleCalendarError("boom")
        self.created.append(event)
        return Event(
            uid=event.uid,
            calendar_uid="primary",
            title=event.title,
            description=event.description,
            start=datetime.fromisoformat(event.start),
            end=datetime.fromisoformat(event.end),
            full_day=event.full_day,
        )


class FakeUsers:
    def __init__(self, authenticated: bool = True):
        self.authenticated = authenticated

    async def is_authenticated(self, user_id):
        return self.authenticated

    async def get_access_token(self, user_id):
        return "token"

    async def get_organizer(self, access_token):
        return Attendee(email="owner@example.com", status=STATUS_ACCEPTED)


class ScriptedResolver:
    """Answers from a fixed text -> instant table; unknown text is unparsed."""

    def __init__(self, answers: Optional[Dict[str, datetime]] = None):
        self.answers = answers or {}
        self.fail = False
        self.calls: List[Tuple[str, str]] = []

    async def resolve(self, text, timezone):
        self.calls.append((text, timezone))
        if self.fail:
            raise ResolutionError("service down")
        return ResolvedDate(instant=self.answers.get(text))


def make_event(uid: str = "evt1", start: datetime = NOW, **overrides) -> Event:
    data = dict(
        uid=uid,
        calendar_uid="primary",
        title="Standup",
        start=start,
        end=start + timedelta(minutes=30),
        location=Location(description="Room 1"),
    )
    data.update(overrides)
    return Event(**data)


def make_message(text: str = "", **overrides) -> IncomingMessage:
    data = dict(message_id=10, chat_id=CHAT_ID, sender_id=USER_ID, text=text)
    data.update(overrides)
    return IncomingMessage(**data)


def make_callback(data: str, sender_id: int = USER_ID, **message) -> IncomingCallback:
    return IncomingCallback(
        id="cb1",
        sender_id=sender_id,
        data=data,
        message=make_message(message_id=message.pop("message_id", 500), **message),
    )


@pytest.fixture
def kv():
    return InMemoryKeyValueStore()


@pytest.fixture
def sessions(kv):
    return SessionStore(kv)


@pytest.fixture
def correlations(kv):
    return CorrelationStore(kv)


@pytest.fixture
def messenger():
    return FakeMessenger()


@pytest.fixture
def calendar():
    return FakeCalendar()


@pytest.fixture
def users():
    return FakeUsers()


@pytest.fixture
def resolver():
    return ScriptedResolver(
        {
            "завтра в 10:00": datetime(2024, 5, 21, 10, 0, tzinfo=ZoneInfo(TZ)),
            "послезавтра в 12:00": datetime(2024, 5, 22, 12, 0, tzinfo=ZoneInfo(TZ)),
        }
    )


@pytest.fixture
def deps(messenger, sessions, correlations, calendar, users, resolver):
    return dict(
        messenger=messenger,
        sessions=sessions,
        correlations=correlations,
        calendar=calendar,
        users=users,
        resolver=resolver,
        timezone=TZ,
    )


@pytest.fixture
def commands(deps):
    return CommandHandlers(**deps)


@pytest.fixture
def dispatcher(commands, deps):
    return CallbackDispatcher(commands=commands, **deps)


class BrokenMessenger(FakeMessenger):
    """Every send fails the way a blocked or deleted chat does."""

    async def send(self, chat_id, message, reply_to=None):
        raise MessengerError(f"chat {chat_id} is unreachable")
