"""
aiogram glue: converts Telegram updates into handler calls and implements
the Messenger contract on top of the Bot API.
"""

import logging
from typing import Optional

from aiogram import Bot, F, Router
from aiogram.client.default import DefaultBotProperties
from aiogram.enums import ParseMode
from aiogram.exceptions import TelegramAPIError, TelegramBadRequest
from aiogram.filters import Command
from aiogram.types import (
    CallbackQuery,
    InlineKeyboardButton,
    InlineKeyboardMarkup,
    KeyboardButton,
    Message,
    ReplyKeyboardMarkup,
    ReplyKeyboardRemove,
    ReplyParameters,
)

from calbot.handlers.callbacks import CallbackDispatcher
from calbot.handlers.commands import CommandHandlers
from calbot.handlers.types import (
    IncomingCallback,
    IncomingMessage,
    Keyboard,
    MessengerError,
    OutgoingMessage,
)
from calbot.state import MessageRef

logger = logging.getLogger(__name__)


def create_bot(token: str) -> Bot:
    return Bot(token=token, default=DefaultBotProperties(parse_mode=ParseMode.HTML))


def to_markup(keyboard: Optional[Keyboard]):
    if keyboard is None:
        return None
    if keyboard.inline:
        return InlineKeyboardMarkup(
            inline_keyboard=[
                [
                    InlineKeyboardButton(text=b.text, url=b.url)
                    if b.url
                    else InlineKeyboardButton(text=b.text, callback_data=b.callback_data or "")
                    for b in row
                ]
                for row in keyboard.inline
            ]
        )
    if keyboard.reply:
        return ReplyKeyboardMarkup(
            keyboard=[[KeyboardButton(text=label) for label in row] for row in keyboard.reply],
            resize_keyboard=True,
        )
    if keyboard.remove:
        return ReplyKeyboardRemove()
    return None


def to_incoming(message: Message) -> IncomingMessage:
    reply = message.reply_to_message
    return IncomingMessage(
        message_id=message.message_id,
        chat_id=message.chat.id,
        chat_type=message.chat.type,
        sender_id=message.from_user.id if message.from_user else 0,
        text=message.text or "",
        reply_to_message_id=reply.message_id if reply else None,
        reply_to_sender_id=reply.from_user.id if reply and reply.from_user else None,
    )


class TelegramMessenger:
    def __init__(self, bot: Bot):
        self.bot = bot

    async def send(
        self,
        chat_id: int,
        message: OutgoingMessage,
        reply_to: Optional[int] = None,
    ) -> MessageRef:
        reply_parameters = None
        if reply_to is not None:
            reply_parameters = ReplyParameters(message_id=reply_to, allow_sending_without_reply=True)

        try:
            sent = await self.bot.send_message(
                chat_id=chat_id,
                text=message.text,
                reply_markup=to_markup(message.keyboard),
                reply_parameters=reply_parameters,
            )
        except TelegramAPIError as e:
            raise MessengerError(f"Cannot send to chat {chat_id}: {e}") from e
        return MessageRef(chat_id=sent.chat.id, message_id=sent.message_id)

    async def edit(self, ref: MessageRef, message: OutgoingMessage) -> None:
        markup = to_markup(message.keyboard)
        try:
            await self.bot.edit_message_text(
                text=message.text,
                chat_id=ref.chat_id,
                message_id=ref.message_id,
                reply_markup=markup if isinstance(markup, InlineKeyboardMarkup) else None,
            )
        except TelegramBadRequest as e:
            logger.warning("Cannot edit message %s/%s: %s", ref.chat_id, ref.message_id, e)
        except TelegramAPIError as e:
            raise MessengerError(f"Cannot edit message {ref.message_id}: {e}") from e

    async def delete(self, ref: MessageRef) -> None:
        try:
            await self.bot.delete_message(chat_id=ref.chat_id, message_id=ref.message_id)
        except TelegramBadRequest as e:
            # Already deleted by the user or too old to delete
            logger.warning("Cannot delete message %s/%s: %s", ref.chat_id, ref.message_id, e)
        except TelegramAPIError as e:
            raise MessengerError(f"Cannot delete message {ref.message_id}: {e}") from e

    async def answer(self, callback_id: str, text: str = "", alert: bool = False) -> None:
        try:
            await self.bot.answer_callback_query(callback_id, text=text or None, show_alert=alert)
        except TelegramBadRequest as e:
            logger.warning("Cannot answer callback %s: %s", callback_id, e)
        except TelegramAPIError as e:
            raise MessengerError(f"Cannot answer callback {callback_id}: {e}") from e


def build_router(commands: CommandHandlers, dispatcher: CallbackDispatcher) -> Router:
    router = Router(name="calbot")

    @router.message(Command("start"))
    async def on_start(message: Message) -> None:
        await commands.handle_start(to_incoming(message))

    @router.message(Command("help"))
    async def on_help(message: Message) -> None:
        await commands.handle_help(to_incoming(message))

    @router.message(Command("about"))
    async def on_about(message: Message) -> None:
        await commands.handle_about(to_incoming(message))

    @router.message(Command("today"))
    async def on_today(message: Message) -> None:
        await commands.handle_today(to_incoming(message))

    @router.message(Command("next"))
    async def on_next(message: Message) -> None:
        await commands.handle_next(to_incoming(message))

    @router.message(Command("date"))
    async def on_date(message: Message) -> None:
        await commands.handle_date(to_incoming(message))

    @router.message(Command("create"))
    async def on_create(message: Message) -> None:
        await commands.handle_create(to_incoming(message))

    @router.message(F.text)
    async def on_text(message: Message) -> None:
        await commands.handle_text(to_incoming(message))

    @router.callback_query()
    async def on_callback(query: CallbackQuery) -> None:
        if query.message is None or not isinstance(query.message, Message):
            await query.answer()
            return

        await dispatcher.dispatch(
            IncomingCallback(
                id=query.id,
                sender_id=query.from_user.id,
                data=query.data or "",
                message=to_incoming(query.message),
            )
        )

    return router
