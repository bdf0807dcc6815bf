from typing import Optional, Union

from pydantic import BaseModel, ValidationError

from inbox.domain.raw import RawKey, RawProviderMessage
from inbox.domain.types import MessageStatus

UPSERT_EVENT = "messages.upsert"
UPDATE_EVENT = "messages.update"

# Evolution sends names ("DELIVERY_ACK"); older builds send Baileys numbers
_ACK_STATUSES = {
    "SERVER_ACK": MessageStatus.SENT,
    "DELIVERY_ACK": MessageStatus.DELIVERED,
    "READ": MessageStatus.READ,
    "PLAYED": MessageStatus.READ,
    2: MessageStatus.SENT,
    3: MessageStatus.DELIVERED,
    4: MessageStatus.READ,
    5: MessageStatus.READ,
}


class EvolutionStatusUpdate(BaseModel):
    keyId: Optional[str] = None
    messageId: Optional[str] = None
    remoteJid: Optional[str] = None
    fromMe: Optional[bool] = None
    status: Optional[Union[str, int]] = None
    key: Optional[RawKey] = None
    update: Optional[dict] = None

    def provider_id(self) -> Optional[str]:
        if self.key and self.key.id:
            return self.key.id
        return self.keyId or self.messageId

    def chat_id(self) -> Optional[str]:
        if self.key and self.key.remoteJid:
            return self.key.remoteJid
        return self.remoteJid

    def ack_status(self) -> Optional[MessageStatus]:
        status = self.status
        if status is None and self.update:
            status = self.update.get("status")
        if isinstance(status, str):
            status = status.upper()
        return _ACK_STATUSES.get(status)


class EvolutionWebhookPayload(BaseModel):
    """Minimal model for Evolution API messages.upsert and messages.update webhooks."""

    event: str
    instance: Optional[str] = None
    data: Union[dict, list]

    def normalized_event(self) -> str:
        # "MESSAGES_UPSERT" and "messages.upsert" are both seen in the wild
        return self.event.strip().lower().replace("_", ".")

    def _first(self) -> Optional[dict]:
        data = self.data
        if isinstance(data, list):
            data = data[0] if data else None
        return data if isinstance(data, dict) else None

    def get_message(self) -> Optional[RawProviderMessage]:
        """Parse the message envelope (if available)."""
        data = self._first()
        if data is None:
            return None
        try:
            return RawProviderMessage.model_validate(data)
        except ValidationError:
            return None

    def get_status(self) -> Optional[EvolutionStatusUpdate]:
        data = self._first()
        if data is None:
            return None
        try:
            return EvolutionStatusUpdate.model_validate(data)
        except ValidationError:
            return None
