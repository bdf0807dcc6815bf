from datetime import datetime, timezone
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from inbox.domain.raw import RawProviderMessage
from inbox.domain.types import MessageStatus, MessageType, Sender


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ReplySnapshot(BaseModel):
    """Copy of the quoted message taken when the reply is written."""

    model_config = ConfigDict(frozen=True)

    id: str
    content: str
    sender: Sender
    external_id: Optional[str] = None
    raw: Optional[RawProviderMessage] = None

    @property
    def provider_id(self) -> str:
        # the provider threads replies by its own id, ours is the fallback
        return self.external_id or self.id


class Message(BaseModel):
    """One entry of a chat history. Only `status` changes after creation."""

    model_config = ConfigDict(frozen=True)

    id: str
    content: str = ""
    sender: Sender
    timestamp: datetime = Field(default_factory=utcnow)
    status: MessageStatus = MessageStatus.SENT
    type: MessageType = MessageType.TEXT
    media_url: Optional[str] = None
    mime_type: Optional[str] = None
    file_name: Optional[str] = None
    author: Optional[str] = None  # provider address of whoever wrote it
    external_id: Optional[str] = None
    reply_to: Optional[ReplySnapshot] = None
    raw: Optional[RawProviderMessage] = None

    @property
    def preview(self) -> str:
        """Text shown in the chat list for this message."""
        if self.type == MessageType.TEXT:
            return self.content
        return f"📎 {self.type.value}"

    def resolved_media_url(self) -> Optional[str]:
        if self.media_url:
            return self.media_url
        if self.raw is not None:
            return self.raw.media_url(self.type)
        return None

    def quote(self) -> ReplySnapshot:
        return ReplySnapshot(
            id=self.id,
            content=self.content,
            sender=self.sender,
            external_id=self.external_id,
            raw=self.raw,
        )


# ---------------------------------------------------------------------
# Outbound payloads handed to the messenger adapter
# ---------------------------------------------------------------------
class TextContent(BaseModel):
    type: Literal["text"] = "text"
    text: str
    reply_to_id: Optional[str] = None
    reply_to_raw: Optional[RawProviderMessage] = None


class MediaContent(BaseModel):
    type: Literal["media"] = "media"
    kind: MessageType
    data: Optional[bytes] = None
    url: Optional[str] = None
    caption: str = ""
    file_name: Optional[str] = None
    mime_type: Optional[str] = None


class StickerContent(BaseModel):
    type: Literal["sticker"] = "sticker"
    url: str


class ContactContent(BaseModel):
    type: Literal["contact"] = "contact"
    name: str
    phone: str
    email: Optional[str] = None


# ---------------------------------------------------------------------
# Inbound, normalized by the messenger adapter
# ---------------------------------------------------------------------
class UnifiedMessage(BaseModel):
    channel: str = "whatsapp"
    recipient_id: str  # conversation address (chat id)
    sender_id: Optional[str] = None  # author address
    sender_name: Optional[str] = None
    message_id: Optional[str] = None
    from_me: bool = False
    type: MessageType = MessageType.TEXT
    text: str = ""
    media_url: Optional[str] = None
    mime_type: Optional[str] = None
    file_name: Optional[str] = None
    timestamp: Optional[datetime] = None
    raw: Optional[RawProviderMessage] = None


class DeliveryUpdate(BaseModel):
    """Provider acknowledgment for a message we already know."""

    recipient_id: Optional[str] = None
    message_id: str
    status: MessageStatus
