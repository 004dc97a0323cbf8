"""
Transport-neutral shapes exchanged between the handlers and the chat transport.
"""

from typing import List, Optional, Protocol

from pydantic import BaseModel, Field

from calbot.state import MessageRef

CHAT_PRIVATE = "private"


class IncomingMessage(BaseModel):
    message_id: int
    chat_id: int
    chat_type: str = CHAT_PRIVATE
    sender_id: int
    text: str = ""

    # Set when this message is a reply to another message
    reply_to_message_id: Optional[int] = None
    reply_to_sender_id: Optional[int] = None

    @property
    def is_private(self) -> bool:
        return self.chat_type == CHAT_PRIVATE

    @property
    def ref(self) -> MessageRef:
        return MessageRef(chat_id=self.chat_id, message_id=self.message_id)


class IncomingCallback(BaseModel):
    """A button press; `message` is the bot message that carried the button."""

    id: str
    sender_id: int
    data: str
    message: IncomingMessage


class Button(BaseModel):
    text: str
    callback_data: Optional[str] = None
    url: Optional[str] = None


class Keyboard(BaseModel):
    inline: List[List[Button]] = Field(default_factory=list)
    reply: List[List[str]] = Field(default_factory=list)
    remove: bool = False


class OutgoingMessage(BaseModel):
    text: str
    keyboard: Optional[Keyboard] = None


class MessengerError(Exception):
    """Raised by a Messenger when the chat platform refuses or cannot take a call."""


class Messenger(Protocol):
    async def send(
        self,
        chat_id: int,
        message: OutgoingMessage,
        reply_to: Optional[int] = None,
    ) -> MessageRef: ...

    async def edit(self, ref: MessageRef, message: OutgoingMessage) -> None: ...

    async def delete(self, ref: MessageRef) -> None: ...

    async def answer(self, callback_id: str, text: str = "", alert: bool = False) -> None: ...
