"""
Command and free-text handlers.

Each inbound message is handled on its own; a failure is logged, reported
to the chat when possible, and never propagates into the transport loop.
"""

import logging
from datetime import datetime
from typing import Iterable
from zoneinfo import ZoneInfo

from calbot.calendar.google_calendar import GoogleCalendarError
from calbot.calendar.models import Event
from calbot.dates.resolver import ResolutionError
from calbot.dialog.prompts import CANCEL_KEYWORD, Prompt, PromptKind
from calbot.dialog.workflow import advance
from calbot.handlers.base import BaseHandlers, transport_boundary
from calbot.handlers.types import IncomingMessage
from calbot.state import Session
from calbot.storage.kv import StoreError
from calbot.telegram import render
from calbot.users import UserDirectoryError

logger = logging.getLogger(__name__)


class CommandHandlers(BaseHandlers):
    # Public entry points ---------------------------------------------------------------------------

    @transport_boundary()
    async def handle_start(self, msg: IncomingMessage) -> None:
        if not await self.users.is_authenticated(msg.sender_id):
            await self.messenger.send(msg.chat_id, render.notice(render.START_NO_AUTH))
            return

        try:
            token = await self.users.get_access_token(msg.sender_id)
            organizer = await self.users.get_organizer(token)
        except UserDirectoryError:
            logger.exception("Cannot check the calendar connection for user %s", msg.sender_id)
            await self._send_error(msg.chat_id)
            return

        await self.messenger.send(
            msg.chat_id, render.start_greeting(organizer.email if organizer else None)
        )

    @transport_boundary()
    async def handle_help(self, msg: IncomingMessage) -> None:
        await self.messenger.send(msg.chat_id, render.help_message())

    @transport_boundary()
    async def handle_about(self, msg: IncomingMessage) -> None:
        await self.messenger.send(msg.chat_id, render.notice(render.ABOUT_TEXT))

    @transport_boundary()
    async def handle_today(self, msg: IncomingMessage, from_alert: bool = False) -> None:
        if not await self._authorized(msg):
            return
        if not from_alert and await self._group_alert(msg, "today"):
            return

        try:
            token = await self.users.get_access_token(msg.sender_id)
            events = await self.calendar.get_events_today(token)
        except (UserDirectoryError, GoogleCalendarError):
            logger.exception("Cannot list today's events for user %s", msg.sender_id)
            await self._send_error(msg.chat_id)
            return

        if not events:
            await self.messenger.send(msg.chat_id, render.notice(render.TODAY_NOT_FOUND))
            return

        await self.messenger.send(msg.chat_id, render.notice(render.TODAY_TITLE))
        await self._send_short_events(msg, events)

    @transport_boundary()
    async def handle_next(self, msg: IncomingMessage, from_alert: bool = False) -> None:
        if not await self._authorized(msg):
            return
        if not from_alert and await self._group_alert(msg, "next"):
            return

        try:
            token = await self.users.get_access_token(msg.sender_id)
            event = await self.calendar.get_closest_event(token)
        except (UserDirectoryError, GoogleCalendarError):
            logger.exception("Cannot fetch the closest event for user %s", msg.sender_id)
            await self._send_error(msg.chat_id)
            return

        if event is None:
            await self.messenger.send(msg.chat_id, render.notice(render.NO_CLOSEST))
            return

        await self.messenger.send(msg.chat_id, render.notice(render.NEXT_TITLE))
        await self._send_short_events(msg, [event])

    @transport_boundary()
    async def handle_date(self, msg: IncomingMessage, from_alert: bool = False) -> None:
        if not await self._authorized(msg):
            return
        if not from_alert and await self._group_alert(msg, "date"):
            return

        try:
            session = await self.sessions.load(msg.sender_id)
            session.start_date_capture()
            await self.sessions.save(msg.sender_id, session)
        except StoreError:
            logger.exception("Cannot start date capture for user %s", msg.sender_id)
            await self._send_error(msg.chat_id)
            return

        now = datetime.now(ZoneInfo(self.timezone))
        await self.messenger.send(msg.chat_id, render.date_picker(now))

    @transport_boundary()
    async def handle_create(self, msg: IncomingMessage) -> None:
        if not await self._authorized(msg):
            return

        organizer = None
        try:
            token = await self.users.get_access_token(msg.sender_id)
            organizer = await self.users.get_organizer(token)
        except UserDirectoryError:
            logger.exception("Cannot resolve organizer for user %s", msg.sender_id)

        try:
            session = await self.sessions.load(msg.sender_id)
            session.start_create(organizer)
            await self.sessions.save(msg.sender_id, session)
        except StoreError:
            logger.exception("Cannot start event creation for user %s", msg.sender_id)
            await self._send_error(msg.chat_id)
            return

        logger.info("User %s started event creation", msg.sender_id)
        await self.messenger.send(msg.chat_id, render.question(PromptKind.ASK_FROM))

    @transport_boundary()
    async def handle_text(self, msg: IncomingMessage) -> None:
        # Unregistered commands never reach a dialog
        if msg.text.startswith("/"):
            if msg.is_private:
                await self.messenger.send(msg.chat_id, render.notice(render.UNKNOWN_COMMAND))
            return

        try:
            session = await self.sessions.load(msg.sender_id)

            if session.is_date_capture_active:
                await self._handle_date_text(msg, session)
            elif session.is_create_active:
                await self._handle_create_text(msg, session)
            elif msg.is_private:
                await self.messenger.send(msg.chat_id, render.notice(render.NO_ACTIVE_DIALOG))
        except StoreError:
            logger.exception("Session store failed for user %s", msg.sender_id)
            await self._send_error(msg.chat_id)

    async def run_command(self, command: str, msg: IncomingMessage) -> None:
        """Re-run a listing command confirmed from a group alert."""
        handlers = {
            "today": self.handle_today,
            "next": self.handle_next,
            "date": self.handle_date,
        }
        handler = handlers.get(command)
        if handler is None:
            logger.warning("Unknown alert command %r", command)
            return
        await handler(msg, from_alert=True)

    # Dialogs ---------------------------------------------------------------------------

    async def _handle_create_text(self, msg: IncomingMessage, session: Session) -> None:
        updated, prompt = await advance(
            session, msg.text, resolver=self.resolver, timezone=self.timezone
        )
        await self._show_prompt(
            msg.sender_id, msg.chat_id, updated, prompt, reply_to=msg.message_id
        )

    async def _handle_date_text(self, msg: IncomingMessage, session: Session) -> None:
        if msg.text == CANCEL_KEYWORD:
            session.is_date_capture_active = False
            await self.sessions.save(msg.sender_id, session)
            await self.messenger.send(msg.chat_id, render.notice(render.DATE_CANCELLED))
            return

        try:
            resolved = await self.resolver.resolve(msg.text, self.timezone)
        except ResolutionError:
            logger.exception("Date resolution failed for user %s", msg.sender_id)
            await self.messenger.send(
                msg.chat_id, render.prompt_message(Prompt(kind=PromptKind.RESOLUTION_FAILED))
            )
            return

        if not resolved.is_parsed:
            await self.messenger.send(
                msg.chat_id, render.prompt_message(Prompt(kind=PromptKind.DATE_NOT_PARSED))
            )
            return

        session.is_date_capture_active = False
        await self.sessions.save(msg.sender_id, session)

        try:
            token = await self.users.get_access_token(msg.sender_id)
            events = await self.calendar.get_events_by_date(token, resolved.instant)
        except (UserDirectoryError, GoogleCalendarError):
            logger.exception("Cannot list events by date for user %s", msg.sender_id)
            await self._send_error(msg.chat_id)
            return

        if not events:
            await self.messenger.send(msg.chat_id, render.notice(render.DATE_NOT_FOUND))
            return

        await self.messenger.send(msg.chat_id, render.notice(render.date_title(resolved.instant)))
        await self._send_short_events(msg, events)

    # Middlewares ---------------------------------------------------------------------------

    async def _authorized(self, msg: IncomingMessage) -> bool:
        if await self.users.is_authenticated(msg.sender_id):
            return True

        await self.messenger.send(msg.chat_id, render.notice(render.NOT_AUTH))
        return False

    async def _group_alert(self, msg: IncomingMessage, command: str) -> bool:
        """In group chats ask the sender first instead of dumping a calendar."""
        if msg.is_private:
            return False

        await self.messenger.send(msg.chat_id, render.group_alert(command), reply_to=msg.message_id)
        return True

    async def _send_short_events(self, msg: IncomingMessage, events: Iterable[Event]) -> None:
        for event in events:
            expandable = msg.is_private
            if expandable:
                try:
                    await self.correlations.remember(event.uid, event.calendar_uid)
                except StoreError:
                    logger.error(
                        "Can't set calendarId=%s for eventId=%s", event.calendar_uid, event.uid
                    )
                    expandable = False

            await self.messenger.send(msg.chat_id, render.event_short(event, expandable))
