import functools
import logging
from datetime import datetime
from typing import Any, List, Optional, Protocol

from calbot.calendar.models import Event, EventInput
from calbot.dates.resolver import DateResolver
from calbot.dialog.prompts import Prompt, PromptKind
from calbot.handlers.types import Messenger, MessengerError
from calbot.state import Attendee, Session
from calbot.storage.correlation import CorrelationStore
from calbot.storage.sessions import SessionStore
from calbot.telegram import render

logger = logging.getLogger(__name__)

# Prompts that change nothing: shown, session left untouched
_NO_STATE_CHANGE = {PromptKind.DATE_NOT_PARSED, PromptKind.RESOLUTION_FAILED}


def transport_boundary(default: Any = None):
    """
    Stops chat transport failures at the edge of one inbound event.

    The failure is logged and `default` is returned, so the update counts as
    handled and is not redelivered.
    """

    def decorator(fn):
        @functools.wraps(fn)
        async def wrapper(self, *args, **kwargs):
            try:
                return await fn(self, *args, **kwargs)
            except MessengerError:
                logger.exception("Chat transport failed in %s", fn.__name__)
                return default

        return wrapper

    return decorator


class CalendarClient(Protocol):
    async def get_events_today(self, access_token: Optional[str]) -> Optional[List[Event]]: ...

    async def get_closest_event(self, access_token: Optional[str]) -> Optional[Event]: ...

    async def get_events_by_date(
        self, access_token: Optional[str], day: datetime
    ) -> Optional[List[Event]]: ...

    async def get_event_by_id(
        self, access_token: Optional[str], calendar_id: str, event_id: str
    ) -> Event: ...

    async def create_event(self, access_token: Optional[str], event: EventInput) -> Event: ...


class UserDirectory(Protocol):
    async def is_authenticated(self, user_id: int) -> bool: ...

    async def get_access_token(self, user_id: int) -> str: ...

    async def get_organizer(self, access_token: str) -> Optional[Attendee]: ...


class BaseHandlers:
    """Collaborators and display plumbing shared by command and callback handlers."""

    def __init__(
        self,
        *,
        messenger: Messenger,
        sessions: SessionStore,
        correlations: CorrelationStore,
        calendar: CalendarClient,
        users: UserDirectory,
        resolver: DateResolver,
        timezone: str,
    ):
        self.messenger = messenger
        self.sessions = sessions
        self.correlations = correlations
        self.calendar = calendar
        self.users = users
        self.resolver = resolver
        self.timezone = timezone

    async def _send_error(self, chat_id: int) -> None:
        """Best-effort failure notice; a failing transport is only logged."""
        try:
            await self.messenger.send(chat_id, render.notice(render.ERROR))
        except MessengerError:
            logger.exception("Could not deliver error notice to chat %s", chat_id)

    async def _show_prompt(
        self,
        user_id: int,
        chat_id: int,
        session: Session,
        prompt: Prompt,
        reply_to: Optional[int] = None,
    ) -> None:
        """
        Persist `session` and display `prompt`.

        A draft prompt replaces the one on screen: the old message is deleted
        first and the new reference is stored in the session before saving.
        """
        if prompt.kind in _NO_STATE_CHANGE:
            await self.messenger.send(chat_id, render.prompt_message(prompt))
            return

        if prompt.retire is not None:
            await self.messenger.delete(prompt.retire)

        if prompt.kind != PromptKind.DRAFT:
            await self.sessions.save(user_id, session)
            await self.messenger.send(chat_id, render.prompt_message(prompt))
            return

        session.last_prompt = await self.messenger.send(
            chat_id, render.prompt_message(prompt), reply_to=reply_to
        )
        await self.sessions.save(user_id, session)

        if prompt.follow_up is not None:
            await self.messenger.send(chat_id, render.question(prompt.follow_up))
