from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

import pytest

from calbot.calendar.models import DEFAULT_TITLE, draft_to_event_input
from calbot.state import Attendee, EventDraft, Location

START = datetime(2024, 5, 21, 10, 0, tzinfo=ZoneInfo("Europe/Moscow"))


def test_defaults_for_bare_draft():
    draft = EventDraft(start=START, end=START + timedelta(hours=1))

    event = draft_to_event_input(draft)

    assert event.title == DEFAULT_TITLE
    assert event.description == ""
    assert event.location is None
    assert event.attendees is None
    assert event.start == "2024-05-21T10:00:00+03:00"
    assert len(event.uid) == 32


def test_optional_fields_carried_over():
    draft = EventDraft(
        start=START,
        end=START + timedelta(hours=24),
        full_day=True,
        title="Offsite",
        description="Весь отдел",
        location=Location(description="Лес"),
        attendees=[Attendee(email="a@example.com")],
    )

    event = draft_to_event_input(draft)

    assert event.full_day
    assert event.location.description == "Лес"
    assert [a.email for a in event.attendees] == ["a@example.com"]


def test_ids_are_unique():
    draft = EventDraft(start=START, end=START + timedelta(hours=1))
    assert draft_to_event_input(draft).uid != draft_to_event_input(draft).uid


def test_draft_without_times_is_rejected():
    with pytest.raises(ValueError):
        draft_to_event_input(EventDraft(title="x"))
