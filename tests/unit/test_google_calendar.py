from datetime import datetime
from types import SimpleNamespace
from zoneinfo import ZoneInfo

import pytest
from googleapiclient.errors import HttpError

from calbot.calendar.google_calendar import (
    GoogleCalendarError,
    GoogleCalendarService,
    event_from_google,
    event_input_to_body,
)
from calbot.calendar.models import AttendeeInput, EventInput
from calbot.state import ROLE_OPTIONAL, Location

MSK = ZoneInfo("Europe/Moscow")


def _http_error(status: int) -> HttpError:
    return HttpError(SimpleNamespace(status=status, reason="error"), b"{}")


def test_event_from_google_timed():
    item = {
        "id": "abc",
        "summary": "Planning",
        "start": {"dateTime": "2024-05-21T10:00:00+03:00"},
        "end": {"dateTime": "2024-05-21T11:00:00+03:00"},
        "location": "Room 2",
        "organizer": {"email": "boss@example.com"},
        "attendees": [
            {"email": "a@example.com", "responseStatus": "accepted"},
            {"email": "b@example.com", "optional": True},
        ],
        "hangoutLink": "https://meet.google.com/xyz",
    }

    event = event_from_google(item, "primary", MSK)

    assert event.uid == "abc"
    assert event.calendar_uid == "primary"
    assert not event.full_day
    assert event.location.description == "Room 2"
    assert event.organizer.email == "boss@example.com"
    assert [a.status for a in event.attendees] == ["accepted", "needs-action"]
    assert event.attendees[1].role == ROLE_OPTIONAL
    assert event.call_link == "https://meet.google.com/xyz"


def test_event_from_google_all_day():
    item = {"id": "d", "start": {"date": "2024-05-21"}, "end": {"date": "2024-05-22"}}

    event = event_from_google(item, "primary", MSK)

    assert event.full_day
    assert event.start == datetime(2024, 5, 21, tzinfo=MSK)
    assert event.title == ""


def test_body_for_timed_event():
    event = EventInput(
        uid="u1",
        start="2024-05-21T10:00:00+03:00",
        end="2024-05-21T11:00:00+03:00",
        full_day=False,
        title="Planning",
        description="",
        location=Location(description="Room 2"),
        attendees=[AttendeeInput(email="b@example.com", role=ROLE_OPTIONAL)],
    )

    body = event_input_to_body(event, "Europe/Moscow")

    assert body["id"] == "u1"
    assert body["start"] == {"dateTime": "2024-05-21T10:00:00+03:00", "timeZone": "Europe/Moscow"}
    assert body["location"] == "Room 2"
    assert body["attendees"] == [{"email": "b@example.com", "optional": True}]


def test_body_for_full_day_event():
    event = EventInput(
        uid="u2",
        start="2024-05-21T10:00:00+03:00",
        end="2024-05-22T10:00:00+03:00",
        full_day=True,
        title="Offsite",
        description="",
    )

    body = event_input_to_body(event, "Europe/Moscow")

    assert body["start"] == {"date": "2024-05-21"}
    assert body["end"] == {"date": "2024-05-22"}
    assert "attendees" not in body
    assert "location" not in body


@pytest.mark.asyncio
async def test_create_retries_then_fails(mocker):
    service = GoogleCalendarService(calendar_id="primary", timezone="Europe/Moscow")
    service.retries = 2
    create = mocker.patch.object(service, "_create_blocking", side_effect=_http_error(500))
    event = EventInput(
        uid="u3", start="2024-05-21T10:00:00+03:00", end="2024-05-21T11:00:00+03:00",
        full_day=False, title="x", description="",
    )

    with pytest.raises(GoogleCalendarError):
        await service.create_event("token", event)

    assert create.call_count == 2


@pytest.mark.asyncio
async def test_create_conflict_reads_existing_event(mocker):
    service = GoogleCalendarService(calendar_id="primary", timezone="Europe/Moscow")
    mocker.patch.object(service, "_create_blocking", side_effect=_http_error(409))
    existing = event_from_google(
        {"id": "u4", "start": {"date": "2024-05-21"}, "end": {"date": "2024-05-22"}}, "primary", MSK
    )
    get = mocker.patch.object(service, "_get_blocking", return_value=existing)
    event = EventInput(
        uid="u4", start="2024-05-21T00:00:00+03:00", end="2024-05-22T00:00:00+03:00",
        full_day=True, title="x", description="",
    )

    created = await service.create_event("token", event)

    assert created.uid == "u4"
    get.assert_called_once_with("token", "primary", "u4")
