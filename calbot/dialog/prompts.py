"""
What the dialog asks the user next, independent of how it is displayed.

A Prompt names the kind of message, carries the draft snapshot it reflects
and the actions offered with it. Turning it into text and buttons is the
transport's job.
"""

from enum import Enum
from typing import List, Optional, Tuple

from pydantic import BaseModel, Field

from calbot.state import EventDraft, MessageRef, Session, Step

CANCEL_KEYWORD = "Отмена"

CALLBACK_SEPARATOR = "|"


class PromptKind(str, Enum):
    DRAFT = "DRAFT"
    CANCELLED = "CANCELLED"
    DATE_NOT_PARSED = "DATE_NOT_PARSED"
    RESOLUTION_FAILED = "RESOLUTION_FAILED"

    ASK_FROM = "ASK_FROM"
    ASK_TO = "ASK_TO"
    ASK_TITLE = "ASK_TITLE"
    ASK_DESC = "ASK_DESC"
    ASK_LOCATION = "ASK_LOCATION"
    ASK_USER = "ASK_USER"


QUESTION_FOR_STEP = {
    Step.FROM: PromptKind.ASK_FROM,
    Step.TO: PromptKind.ASK_TO,
    Step.TITLE: PromptKind.ASK_TITLE,
    Step.DESC: PromptKind.ASK_DESC,
    Step.LOCATION: PromptKind.ASK_LOCATION,
    Step.USER: PromptKind.ASK_USER,
}


class CallbackAction(str, Enum):
    SHOW_FULL = "more"
    SHOW_SHORT = "less"
    ALERT_YES = "alert_yes"
    ALERT_NO = "alert_no"
    CREATE = "create"
    CANCEL = "cancel"
    JUMP = "jump"
    FULL_DAY = "full_day"


class MenuAction(BaseModel):
    action: CallbackAction
    data: str = ""


class Prompt(BaseModel):
    kind: PromptKind
    draft: Optional[EventDraft] = None
    actions: List[MenuAction] = Field(default_factory=list)
    follow_up: Optional[PromptKind] = None

    # Previously displayed draft prompt that this one replaces
    retire: Optional[MessageRef] = None


def encode_callback(action: CallbackAction, data: str = "") -> str:
    return f"{action.value}{CALLBACK_SEPARATOR}{data}"


def decode_callback(raw: str) -> Tuple[CallbackAction, str]:
    """Raises ValueError for payloads this bot did not produce."""
    action, _, data = (raw or "").partition(CALLBACK_SEPARATOR)
    return CallbackAction(action), data


def build_menu(session: Session) -> List[MenuAction]:
    """
    Actions offered under the draft prompt.

    Create only shows up once the draft can be finalized; the step the
    user is answering right now is not offered as a jump.
    """
    draft = session.draft
    actions: List[MenuAction] = []

    if draft.is_complete:
        actions.append(MenuAction(action=CallbackAction.CREATE))

    jumps = [Step.FROM, Step.TO, Step.TITLE, Step.DESC, Step.LOCATION, Step.USER]
    for step in jumps:
        if step == session.step:
            continue
        if step == Step.TO and draft.start is None:
            continue
        actions.append(MenuAction(action=CallbackAction.JUMP, data=step.value))

    if draft.start is not None and not draft.full_day:
        actions.append(MenuAction(action=CallbackAction.FULL_DAY))

    actions.append(MenuAction(action=CallbackAction.CANCEL))
    return actions


def follow_up_for(draft: EventDraft) -> Optional[PromptKind]:
    if draft.end is None:
        return PromptKind.ASK_TO
    if not draft.title:
        return PromptKind.ASK_TITLE
    return None


def draft_prompt(session: Session) -> Prompt:
    """Full-draft prompt replacing whatever draft prompt is on screen."""
    return Prompt(
        kind=PromptKind.DRAFT,
        draft=session.draft,
        actions=build_menu(session),
        follow_up=follow_up_for(session.draft),
        retire=session.last_prompt,
    )
