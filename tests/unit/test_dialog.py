from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

import pytest

from calbot.dialog.graph import (
    DialogState,
    DraftIncompleteError,
    apply_duration,
    cancel_session,
    ensure_complete,
    jump_to,
)
from calbot.dialog.prompts import (
    CallbackAction,
    PromptKind,
    build_menu,
    decode_callback,
    encode_callback,
)
from calbot.dialog.workflow import advance, route_start
from calbot.state import FULL_DAY, EventDraft, MessageRef, Session, Step

from conftest import TZ, ScriptedResolver

START = datetime(2024, 5, 21, 10, 0, tzinfo=ZoneInfo(TZ))


def _session(step: Step, **draft) -> Session:
    session = Session()
    session.start_create()
    session.step = step
    session.draft = EventDraft(**draft)
    return session


@pytest.mark.asyncio
async def test_from_sets_start_and_moves_to_end(resolver):
    session = _session(Step.FROM)

    updated, prompt = await advance(session, "завтра в 10:00", resolver=resolver, timezone=TZ)

    assert updated.draft.start == START
    assert updated.step == Step.TO
    assert prompt.kind == PromptKind.DRAFT
    assert prompt.follow_up == PromptKind.ASK_TO
    assert resolver.calls == [("завтра в 10:00", TZ)]
    # input snapshot untouched
    assert session.draft.start is None


@pytest.mark.asyncio
async def test_one_hour_shortcut(resolver):
    session = _session(Step.TO, start=START)

    updated, prompt = await advance(session, "1 час", resolver=resolver, timezone=TZ)

    assert updated.draft.end == START + timedelta(hours=1)
    assert not updated.draft.full_day
    assert updated.step == Step.TITLE
    assert prompt.follow_up == PromptKind.ASK_TITLE
    assert resolver.calls == []


@pytest.mark.asyncio
async def test_full_day_shortcut(resolver):
    session = _session(Step.TO, start=START)

    updated, _ = await advance(session, "Весь день", resolver=resolver, timezone=TZ)

    assert updated.draft.end == START + timedelta(hours=24)
    assert updated.draft.full_day


@pytest.mark.asyncio
async def test_duration_shortcut_without_start_asks_for_start(resolver):
    session = _session(Step.TO)

    updated, prompt = await advance(session, "2 часа", resolver=resolver, timezone=TZ)

    assert updated.step == Step.FROM
    assert updated.draft.end is None
    assert prompt.kind == PromptKind.ASK_FROM


@pytest.mark.asyncio
async def test_free_text_at_end_step_redefines_start(resolver):
    session = _session(Step.TO, start=START)

    updated, prompt = await advance(session, "послезавтра в 12:00", resolver=resolver, timezone=TZ)

    assert updated.draft.start == datetime(2024, 5, 22, 12, 0, tzinfo=ZoneInfo(TZ))
    assert updated.draft.end is None
    assert updated.step == Step.TITLE
    assert prompt.follow_up == PromptKind.ASK_TO


@pytest.mark.asyncio
async def test_unparsed_date_keeps_session(resolver):
    session = _session(Step.FROM)

    updated, prompt = await advance(session, "когда-нибудь", resolver=resolver, timezone=TZ)

    assert prompt.kind == PromptKind.DATE_NOT_PARSED
    assert updated == session


@pytest.mark.asyncio
async def test_resolution_failure_keeps_session():
    resolver = ScriptedResolver()
    resolver.fail = True
    session = _session(Step.FROM)

    updated, prompt = await advance(session, "завтра", resolver=resolver, timezone=TZ)

    assert prompt.kind == PromptKind.RESOLUTION_FAILED
    assert updated is session


@pytest.mark.asyncio
@pytest.mark.parametrize("step", [Step.FROM, Step.TO, Step.TITLE, Step.DESC, Step.LOCATION, Step.USER])
async def test_cancel_at_any_step(step, resolver):
    session = _session(step, start=START, title="Retro")
    session.last_prompt = MessageRef(chat_id=1, message_id=7)

    updated, prompt = await advance(session, "Отмена", resolver=resolver, timezone=TZ)

    assert prompt.kind == PromptKind.CANCELLED
    assert prompt.retire == MessageRef(chat_id=1, message_id=7)
    assert updated.step == Step.INIT
    assert not updated.is_create_active
    assert updated.draft == EventDraft()


@pytest.mark.asyncio
async def test_text_fields_and_attendee(resolver):
    session = _session(Step.TITLE, start=START, end=START + timedelta(hours=1))
    session, _ = await advance(session, "Retro", resolver=resolver, timezone=TZ)
    assert session.draft.title == "Retro"

    session.step = Step.DESC
    session, _ = await advance(session, "Итоги спринта", resolver=resolver, timezone=TZ)
    assert session.draft.description == "Итоги спринта"

    session.step = Step.LOCATION
    session, _ = await advance(session, "Переговорка", resolver=resolver, timezone=TZ)
    assert session.draft.location.description == "Переговорка"

    session.step = Step.USER
    session, prompt = await advance(session, " bob@example.com ", resolver=resolver, timezone=TZ)
    assert [a.email for a in session.draft.attendees] == ["bob@example.com"]
    assert prompt.follow_up is None


@pytest.mark.asyncio
async def test_new_draft_prompt_retires_previous(resolver):
    session = _session(Step.TITLE, start=START, end=START + timedelta(hours=1))
    session.last_prompt = MessageRef(chat_id=1, message_id=7)

    _, prompt = await advance(session, "Retro", resolver=resolver, timezone=TZ)

    assert prompt.retire == MessageRef(chat_id=1, message_id=7)


def test_route_prefers_cancel_keyword():
    state = DialogState(session=_session(Step.TITLE), last_user_message="Отмена")
    assert route_start(state) == "CANCEL"


def test_route_without_step_shows_menu():
    state = DialogState(session=Session(), last_user_message="hi")
    assert route_start(state) == "MENU"


def test_menu_hides_create_until_complete():
    session = _session(Step.TITLE, start=START)
    actions = build_menu(session)

    assert CallbackAction.CREATE not in [a.action for a in actions]
    assert Step.TITLE.value not in [a.data for a in actions]
    assert actions[-1].action == CallbackAction.CANCEL

    session.draft.set_duration(timedelta(hours=1))
    session.draft.title = "Retro"
    assert build_menu(session)[0].action == CallbackAction.CREATE


def test_menu_hides_end_jump_without_start():
    actions = build_menu(_session(Step.FROM))
    jumps = [a.data for a in actions if a.action == CallbackAction.JUMP]
    assert Step.TO.value not in jumps
    assert CallbackAction.FULL_DAY not in [a.action for a in actions]


def test_apply_duration_keeps_title_step():
    session = _session(Step.TO, start=START, title="Retro")
    updated = apply_duration(session, FULL_DAY)
    assert updated.step == Step.TO
    assert updated.draft.full_day
    assert session.draft.end is None


def test_jump_to_changes_only_step():
    session = _session(Step.USER, start=START, title="Retro")
    updated, prompt = jump_to(session, Step.TITLE)

    assert updated.step == Step.TITLE
    assert updated.draft == session.draft
    assert prompt.kind == PromptKind.ASK_TITLE

    with pytest.raises(ValueError):
        jump_to(session, Step.INIT)


def test_cancel_session_is_pure():
    session = _session(Step.DESC, start=START)
    updated, _ = cancel_session(session)
    assert session.is_create_active
    assert not updated.is_create_active


def test_ensure_complete_lists_missing():
    with pytest.raises(DraftIncompleteError, match="end, title"):
        ensure_complete(EventDraft(start=START))


def test_callback_payload_format():
    assert encode_callback(CallbackAction.JUMP, "TITLE") == "jump|TITLE"
    assert decode_callback("more|abc|def") == (CallbackAction.SHOW_FULL, "abc|def")
    with pytest.raises(ValueError):
        decode_callback("unknown|x")
