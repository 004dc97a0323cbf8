# workflow.py

import logging
from typing import Tuple

from langgraph.graph import END, StateGraph

from calbot.dates.resolver import DateResolver, ResolutionError
from calbot.dialog.graph import (
    DialogState,
    cancel_node,
    desc_node,
    from_node,
    location_node,
    menu_node,
    title_node,
    to_node,
    user_node,
)
from calbot.dialog.prompts import CANCEL_KEYWORD, Prompt, PromptKind
from calbot.state import Session, Step

logger = logging.getLogger(__name__)

STEP_NODES = {
    Step.FROM.value: from_node,
    Step.TO.value: to_node,
    Step.TITLE.value: title_node,
    Step.DESC.value: desc_node,
    Step.LOCATION.value: location_node,
    Step.USER.value: user_node,
}


# Router ---------------------------------------------------------------------------


def route_start(state: DialogState) -> str:
    """
    Picks the node for this turn.

    The cancel keyword wins over whatever step the session is in.
    """
    if state.last_user_message == CANCEL_KEYWORD:
        logger.info("[ROUTE_START] Cancel keyword received")
        return "CANCEL"

    step = state.session.step.value
    if step in STEP_NODES:
        logger.info("[ROUTE_START] Routing to step: %s", step)
        return step

    logger.info("[ROUTE_START] No step to answer (%s). Routing to: MENU", step)
    return "MENU"


# Graph Builder ---------------------------------------------------------------------------


def build_graph():
    graph = StateGraph(DialogState)

    graph.add_node("CANCEL", cancel_node)
    graph.add_node("MENU", menu_node)
    for name, node in STEP_NODES.items():
        graph.add_node(name, node)

    routes = {name: name for name in ["CANCEL", "MENU", *STEP_NODES]}
    graph.set_conditional_entry_point(route_start, routes)

    # One node per inbound message
    for name in routes:
        graph.add_edge(name, END)

    return graph.compile()


# Compiled Graph ---------------------------------------------------------------------------

dialog_graph = build_graph()


# Public Runner ---------------------------------------------------------------------------


async def advance(
    session: Session,
    text: str,
    *,
    resolver: DateResolver,
    timezone: str,
) -> Tuple[Session, Prompt]:
    """
    Apply one free-text answer to the creation dialog.

    Returns the updated session and the prompt to display. The input session
    is never mutated; on a date service failure the original session comes
    back with a RESOLUTION_FAILED prompt.
    """
    logger.info("Advancing dialog at step %s with %r", session.step.value, text)
    state = DialogState(session=session, last_user_message=text)

    try:
        result = await dialog_graph.ainvoke(
            state.model_dump(),
            config={
                "recursion_limit": 3,
                "configurable": {"resolver": resolver, "timezone": timezone},
            },
        )
    except ResolutionError:
        logger.exception("Date resolution failed, step %s left as is", session.step.value)
        return session, Prompt(kind=PromptKind.RESOLUTION_FAILED)

    out = DialogState(**result) if isinstance(result, dict) else result
    logger.info("Dialog advanced to step %s (prompt %s)", out.session.step.value, out.prompt.kind)
    return out.session, out.prompt
