"""
Inline button dispatcher.

Buttons carry `<action>|<data>` payloads. Expand/collapse are per viewer;
every other action is bound to the user the bot message replied to.
"""

import logging
from enum import Enum
from typing import Optional

from calbot.calendar.google_calendar import EventNotFound, GoogleCalendarError
from calbot.calendar.models import Event, draft_to_event_input
from calbot.dialog.graph import (
    DraftIncompleteError,
    apply_duration,
    cancel_session,
    ensure_complete,
    jump_to,
)
from calbot.dialog.prompts import CallbackAction, decode_callback, draft_prompt
from calbot.handlers.base import BaseHandlers, transport_boundary
from calbot.handlers.commands import CommandHandlers
from calbot.handlers.types import IncomingCallback
from calbot.state import FULL_DAY, Step
from calbot.storage.kv import StoreError
from calbot.telegram import render
from calbot.users import UserDirectoryError

logger = logging.getLogger(__name__)


class DispatchOutcome(str, Enum):
    OK = "ok"
    NOT_FOUND = "not_found"
    NOT_ALLOWED = "not_allowed"
    INVALID = "invalid"
    FAILED = "failed"


class NotAllowedError(Exception):
    """Raised when a button is pressed by someone other than the user it was meant for."""


class CallbackDispatcher(BaseHandlers):
    def __init__(self, *, commands: CommandHandlers, **deps):
        super().__init__(**deps)
        self.commands = commands
        self._routes = {
            CallbackAction.SHOW_FULL: self._show_full,
            CallbackAction.SHOW_SHORT: self._show_short,
            CallbackAction.ALERT_YES: self._alert_yes,
            CallbackAction.ALERT_NO: self._alert_no,
            CallbackAction.CREATE: self._create,
            CallbackAction.CANCEL: self._cancel,
            CallbackAction.JUMP: self._jump,
            CallbackAction.FULL_DAY: self._full_day,
        }

    @transport_boundary(DispatchOutcome.FAILED)
    async def dispatch(self, cb: IncomingCallback) -> DispatchOutcome:
        try:
            action, data = decode_callback(cb.data)
        except ValueError:
            logger.warning("Unknown callback payload %r from user %s", cb.data, cb.sender_id)
            await self.messenger.answer(cb.id)
            return DispatchOutcome.FAILED

        logger.info("Callback %s(%s) from user %s", action.value, data, cb.sender_id)
        try:
            return await self._routes[action](cb, data)
        except NotAllowedError:
            logger.info("User %s pressed a %s button meant for someone else", cb.sender_id, action.value)
            await self.messenger.answer(cb.id, render.NOT_ALLOWED, alert=True)
            return DispatchOutcome.NOT_ALLOWED
        except StoreError:
            logger.exception("Store failure while handling %s", action.value)
            await self.messenger.answer(cb.id, render.ERROR, alert=True)
            return DispatchOutcome.FAILED

    # Guards ---------------------------------------------------------------------------

    @staticmethod
    def _check_owner(cb: IncomingCallback) -> None:
        owner = cb.message.reply_to_sender_id
        if owner is not None and owner != cb.sender_id:
            raise NotAllowedError(f"user {cb.sender_id} is not {owner}")

    # Expand / collapse ---------------------------------------------------------------------------

    async def _fetch_event(self, cb: IncomingCallback, event_uid: str) -> Optional[Event]:
        """Resolve a button's event; answers the callback itself on every miss."""
        if not await self.users.is_authenticated(cb.sender_id):
            await self.messenger.answer(cb.id, render.NOT_AUTH, alert=True)
            return None

        calendar_uid = await self.correlations.lookup(event_uid)
        if calendar_uid is None:
            await self.messenger.answer(cb.id, render.EVENT_NOT_AVAILABLE, alert=True)
            return None

        try:
            token = await self.users.get_access_token(cb.sender_id)
            return await self.calendar.get_event_by_id(token, calendar_uid, event_uid)
        except EventNotFound:
            logger.info("Event %s no longer exists in %s", event_uid, calendar_uid)
            await self.messenger.answer(cb.id, render.EVENT_NOT_AVAILABLE, alert=True)
        except (UserDirectoryError, GoogleCalendarError):
            logger.exception("Cannot fetch event %s", event_uid)
            await self.messenger.answer(cb.id, render.ERROR, alert=True)
        return None

    async def _show_full(self, cb: IncomingCallback, event_uid: str) -> DispatchOutcome:
        event = await self._fetch_event(cb, event_uid)
        if event is None:
            return DispatchOutcome.NOT_FOUND

        await self.messenger.answer(cb.id, render.callback_header(event))
        await self.messenger.edit(cb.message.ref, render.event_full(event))
        return DispatchOutcome.OK

    async def _show_short(self, cb: IncomingCallback, event_uid: str) -> DispatchOutcome:
        event = await self._fetch_event(cb, event_uid)
        if event is None:
            return DispatchOutcome.NOT_FOUND

        await self.correlations.remember(event.uid, event.calendar_uid)
        await self.messenger.answer(cb.id)
        await self.messenger.edit(cb.message.ref, render.event_short(event, expandable=True))
        return DispatchOutcome.OK

    # Group alerts ---------------------------------------------------------------------------

    async def _alert_yes(self, cb: IncomingCallback, command: str) -> DispatchOutcome:
        self._check_owner(cb)
        await self.messenger.answer(cb.id)
        await self.messenger.delete(cb.message.ref)

        asker = cb.message.reply_to_sender_id or cb.sender_id
        msg = cb.message.model_copy(
            update={"sender_id": asker, "reply_to_sender_id": None, "reply_to_message_id": None}
        )
        await self.commands.run_command(command, msg)
        return DispatchOutcome.OK

    async def _alert_no(self, cb: IncomingCallback, _: str) -> DispatchOutcome:
        self._check_owner(cb)
        await self.messenger.answer(cb.id)
        await self.messenger.delete(cb.message.ref)
        return DispatchOutcome.OK

    # Creation dialog ---------------------------------------------------------------------------

    async def _create(self, cb: IncomingCallback, _: str) -> DispatchOutcome:
        self._check_owner(cb)
        session = await self.sessions.load(cb.sender_id)

        try:
            ensure_complete(session.draft)
        except DraftIncompleteError as e:
            logger.warning("User %s tried to finalize an incomplete draft: %s", cb.sender_id, e)
            await self.messenger.answer(cb.id, render.DRAFT_INCOMPLETE, alert=True)
            return DispatchOutcome.INVALID

        chat_id = cb.message.chat_id
        try:
            token = await self.users.get_access_token(cb.sender_id)
            created = await self.calendar.create_event(token, draft_to_event_input(session.draft))
        except (UserDirectoryError, GoogleCalendarError):
            logger.exception("Event creation failed for user %s", cb.sender_id)
            await self.messenger.answer(cb.id)
            await self._send_error(chat_id)
            return DispatchOutcome.FAILED

        logger.info("User %s created event %s", cb.sender_id, created.uid)
        previous = session.last_prompt
        session.finish_create()
        outcome = DispatchOutcome.OK
        try:
            await self.sessions.save(cb.sender_id, session)
        except StoreError:
            # The event exists; a stale draft is left behind
            logger.exception("Cannot close the creation dialog of user %s", cb.sender_id)
            outcome = DispatchOutcome.FAILED

        await self.messenger.answer(cb.id, render.EVENT_CREATED)
        await self.messenger.send(chat_id, render.event_created(created))
        if previous is not None:
            await self.messenger.delete(previous)
        return outcome

    async def _cancel(self, cb: IncomingCallback, _: str) -> DispatchOutcome:
        self._check_owner(cb)
        session = await self.sessions.load(cb.sender_id)

        await self.messenger.answer(cb.id, render.CREATE_CANCELLED)
        updated, prompt = cancel_session(session)
        await self._show_prompt(cb.sender_id, cb.message.chat_id, updated, prompt)
        return DispatchOutcome.OK

    async def _jump(self, cb: IncomingCallback, step_name: str) -> DispatchOutcome:
        self._check_owner(cb)
        session = await self.sessions.load(cb.sender_id)

        try:
            step = Step(step_name)
        except ValueError:
            step = Step.INIT
        if not session.is_create_active or step == Step.INIT:
            await self.messenger.answer(cb.id, render.NO_ACTIVE_DIALOG, alert=True)
            return DispatchOutcome.INVALID

        updated, prompt = jump_to(session, step)
        await self.messenger.answer(cb.id)
        await self._show_prompt(cb.sender_id, cb.message.chat_id, updated, prompt)
        return DispatchOutcome.OK

    async def _full_day(self, cb: IncomingCallback, _: str) -> DispatchOutcome:
        self._check_owner(cb)
        session = await self.sessions.load(cb.sender_id)

        if not session.is_create_active or session.draft.start is None:
            await self.messenger.answer(cb.id, render.NO_ACTIVE_DIALOG, alert=True)
            return DispatchOutcome.INVALID

        updated = apply_duration(session, FULL_DAY)
        await self.messenger.answer(cb.id)
        await self._show_prompt(
            cb.sender_id,
            cb.message.chat_id,
            updated,
            draft_prompt(updated),
            reply_to=cb.message.reply_to_message_id,
        )
        return DispatchOutcome.OK
