from typing import Awaitable, Callable, Optional, Protocol, Sequence

from pydantic import BaseModel

from inbox.domain.chat import Chat
from inbox.domain.message import (
    ContactContent,
    DeliveryUpdate,
    MediaContent,
    Message,
    StickerContent,
    TextContent,
    UnifiedMessage,
)
from inbox.domain.raw import RawProviderMessage
from inbox.domain.reference import Department

OnMessage = Callable[[UnifiedMessage], Awaitable[None]]
OnStatus = Callable[[DeliveryUpdate], Awaitable[None]]


class DispatchResult(BaseModel):
    """Outcome of one send. Ordinary failures come back as success=False."""

    success: bool
    message_id: Optional[str] = None
    raw: Optional[RawProviderMessage] = None
    error: Optional[str] = None


class DeletionResult(BaseModel):
    success: bool
    error: Optional[str] = None


class Dispatcher(Protocol):
    """Outbound side of the provider. Must not raise for ordinary failures."""

    async def send_text(
        self, recipient_id: str, content: TextContent
    ) -> DispatchResult: ...
    async def send_media(
        self, recipient_id: str, content: MediaContent
    ) -> DispatchResult: ...
    async def send_sticker(
        self, recipient_id: str, content: StickerContent
    ) -> DispatchResult: ...
    async def send_contact(
        self, recipient_id: str, content: ContactContent
    ) -> DispatchResult: ...
    async def send_department_prompt(
        self, recipient_id: str, departments: Sequence[Department]
    ) -> DispatchResult: ...


class MessengerAdapter(Dispatcher, Protocol):
    """Minimal contract each channel adapter must implement."""

    def on_message(self, cb: OnMessage) -> None: ...
    def on_status(self, cb: OnStatus) -> None: ...
    async def start(self) -> None: ...
    async def stop(self) -> None: ...


class ChatSink(Protocol):
    """Persistence. Durable storage and fan-out are the sink's business."""

    async def upsert_chat(self, chat: Chat) -> None: ...
    async def delete_chat(self, chat_id: str) -> DeletionResult: ...


class SuggestionProvider(Protocol):
    async def suggest_reply(
        self, history: Sequence[Message], contact_name: str
    ) -> str: ...
