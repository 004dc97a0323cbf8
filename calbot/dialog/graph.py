import logging
from datetime import timedelta
from typing import Optional, Tuple

from langchain_core.runnables import RunnableConfig
from pydantic import BaseModel

from calbot.dates.resolver import DateResolver, ResolvedDate
from calbot.dialog.prompts import (
    QUESTION_FOR_STEP,
    Prompt,
    PromptKind,
    draft_prompt,
)
from calbot.state import FULL_DAY, Attendee, EventDraft, Session, Step

logger = logging.getLogger(__name__)

FULL_DAY_LABEL = "Весь день"

# Reply-keyboard labels offered while asking for the end
DURATION_SHORTCUTS = {
    "30 минут": timedelta(minutes=30),
    "1 час": timedelta(hours=1),
    "1,5 часа": timedelta(hours=1, minutes=30),
    "2 часа": timedelta(hours=2),
    "4 часа": timedelta(hours=4),
    "6 часов": timedelta(hours=6),
    FULL_DAY_LABEL: FULL_DAY,
}


class DraftIncompleteError(Exception):
    """Raised when finalizing a draft that lacks start, end or title."""


class DialogState(BaseModel):
    """
    Graph state for one dialog turn.

    `session` is the input snapshot (replaced, never mutated in place),
    `prompt` is what the turn wants displayed next.
    """

    session: Session
    last_user_message: str = ""
    prompt: Optional[Prompt] = None


# Pure transitions ---------------------------------------------------------------------------


def cancel_session(session: Session) -> Tuple[Session, Prompt]:
    updated = session.model_copy(deep=True)
    updated.finish_create()
    return updated, Prompt(kind=PromptKind.CANCELLED, retire=session.last_prompt)


def apply_duration(session: Session, duration: timedelta) -> Session:
    """Set the end from a shortcut; advances to the title while it is unset."""
    updated = session.model_copy(deep=True)
    updated.draft.set_duration(duration, full_day=duration == FULL_DAY)
    if not updated.draft.title:
        updated.step = Step.TITLE
    return updated


def jump_to(session: Session, step: Step) -> Tuple[Session, Prompt]:
    """Re-enter a step from the menu without touching any draft field."""
    if step == Step.INIT:
        raise ValueError("cannot jump to INIT")

    updated = session.model_copy(deep=True)
    updated.step = step
    return updated, Prompt(kind=QUESTION_FOR_STEP[step], draft=updated.draft)


def ensure_complete(draft: EventDraft) -> None:
    missing = [
        name
        for name, ok in (
            ("start", draft.start is not None),
            ("end", draft.end is not None),
            ("title", bool(draft.title)),
        )
        if not ok
    ]
    if missing:
        raise DraftIncompleteError(f"Draft is missing: {', '.join(missing)}")


def _updated(session: Session) -> dict:
    return {"session": session, "prompt": draft_prompt(session)}


async def _resolve(state: DialogState, config: RunnableConfig) -> ResolvedDate:
    configurable = config.get("configurable", {})
    resolver: DateResolver = configurable["resolver"]
    timezone: str = configurable["timezone"]
    # ResolutionError propagates: the turn is aborted without a state change
    return await resolver.resolve(state.last_user_message, timezone)


# Nodes --------------------------------


def cancel_node(state: DialogState) -> dict:
    logger.info("[CANCEL_NODE] Cancelling dialog at step %s", state.session.step)
    session, prompt = cancel_session(state.session)
    return {"session": session, "prompt": prompt}


async def from_node(state: DialogState, config: RunnableConfig) -> dict:
    resolved = await _resolve(state, config)
    if not resolved.is_parsed:
        logger.info("[FROM_NODE] Could not parse %r, staying in FROM", state.last_user_message)
        return {"prompt": Prompt(kind=PromptKind.DATE_NOT_PARSED)}

    session = state.session.model_copy(deep=True)
    session.draft.set_start(resolved.instant)
    if session.draft.end is None:
        session.step = Step.TO
    logger.info("[FROM_NODE] Start set to %s, step %s", resolved.instant, session.step)
    return _updated(session)


async def to_node(state: DialogState, config: RunnableConfig) -> dict:
    text = state.last_user_message
    duration = DURATION_SHORTCUTS.get(text)

    if duration is not None:
        if state.session.draft.start is None:
            session = state.session.model_copy(deep=True)
            session.step = Step.FROM
            return {"session": session, "prompt": Prompt(kind=PromptKind.ASK_FROM)}

        session = apply_duration(state.session, duration)
        logger.info("[TO_NODE] Duration %s applied, step %s", duration, session.step)
        return _updated(session)

    # Anything else answering the duration question redefines the start
    resolved = await _resolve(state, config)
    if not resolved.is_parsed:
        logger.info("[TO_NODE] Could not parse %r, staying in TO", text)
        return {"prompt": Prompt(kind=PromptKind.DATE_NOT_PARSED)}

    session = state.session.model_copy(deep=True)
    session.draft.set_start(resolved.instant)
    if not session.draft.title:
        session.step = Step.TITLE
    logger.info("[TO_NODE] Start redefined to %s, step %s", resolved.instant, session.step)
    return _updated(session)


def title_node(state: DialogState) -> dict:
    session = state.session.model_copy(deep=True)
    session.draft.title = state.last_user_message
    return _updated(session)


def desc_node(state: DialogState) -> dict:
    session = state.session.model_copy(deep=True)
    session.draft.description = state.last_user_message
    return _updated(session)


def location_node(state: DialogState) -> dict:
    session = state.session.model_copy(deep=True)
    session.draft.location.description = state.last_user_message
    return _updated(session)


def user_node(state: DialogState) -> dict:
    session = state.session.model_copy(deep=True)
    session.draft.attendees.append(Attendee(email=state.last_user_message.strip()))
    return _updated(session)


def menu_node(state: DialogState) -> dict:
    """No step to answer: show the draft and its menu again."""
    return {"prompt": draft_prompt(state.session)}
