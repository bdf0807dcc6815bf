from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict

from inbox.domain.types import MessageType


class RawMedia(BaseModel):
    """Media node of a provider message (imageMessage, audioMessage, ...)."""

    model_config = ConfigDict(extra="allow", frozen=True)

    url: Optional[str] = None
    mediaUrl: Optional[str] = None
    directPath: Optional[str] = None
    mimetype: Optional[str] = None
    fileName: Optional[str] = None
    caption: Optional[str] = None


class RawExtendedText(BaseModel):
    model_config = ConfigDict(extra="allow", frozen=True)

    text: Optional[str] = None


class RawMessageBody(BaseModel):
    model_config = ConfigDict(extra="allow", frozen=True)

    conversation: Optional[str] = None
    extendedTextMessage: Optional[RawExtendedText] = None
    imageMessage: Optional[RawMedia] = None
    videoMessage: Optional[RawMedia] = None
    audioMessage: Optional[RawMedia] = None
    documentMessage: Optional[RawMedia] = None
    stickerMessage: Optional[RawMedia] = None
    url: Optional[str] = None
    mediaUrl: Optional[str] = None


class RawKey(BaseModel):
    model_config = ConfigDict(extra="allow", frozen=True)

    remoteJid: Optional[str] = None
    remoteJidAlt: Optional[str] = None
    fromMe: Optional[bool] = None
    id: Optional[str] = None
    participant: Optional[str] = None
    senderPn: Optional[str] = None


# MessageType -> name of the media node carrying it
_MEDIA_NODES = {
    MessageType.IMAGE: "imageMessage",
    MessageType.VIDEO: "videoMessage",
    MessageType.AUDIO: "audioMessage",
    MessageType.DOCUMENT: "documentMessage",
    MessageType.STICKER: "stickerMessage",
}


def _first_url(*candidates: Optional[str]) -> Optional[str]:
    for value in candidates:
        if isinstance(value, str) and value.strip():
            return value
    return None


class RawProviderMessage(BaseModel):
    """
    Provider message as delivered by the webhook (or returned by a send call).

    Only the fields below are ever read. Unknown fields are kept so the
    payload can be handed back to the provider verbatim (reply threading).
    The raw payload is a fallback source: explicit Message fields always win.
    """

    model_config = ConfigDict(extra="allow", frozen=True)

    key: Optional[RawKey] = None
    pushName: Optional[str] = None
    messageType: Optional[str] = None
    messageTimestamp: Optional[int] = None
    message: Optional[RawMessageBody] = None
    imageMessage: Optional[RawMedia] = None
    videoMessage: Optional[RawMedia] = None
    audioMessage: Optional[RawMedia] = None
    documentMessage: Optional[RawMedia] = None
    stickerMessage: Optional[RawMedia] = None
    url: Optional[str] = None
    mediaUrl: Optional[str] = None
    data: Optional["RawProviderMessage"] = None

    def media_url(self, kind: MessageType) -> Optional[str]:
        """
        Look up a media URL for `kind`, first on this envelope, then on `data`.
        Per envelope the order is:
          1) message.<kind>Message.url / mediaUrl / directPath
          2) <kind>Message.url / mediaUrl / directPath
          3) message.url / message.mediaUrl
          4) url / mediaUrl
        """
        for envelope in (self, self.data):
            if envelope is None:
                continue
            found = envelope._own_media_url(kind)
            if found:
                return found
        return None

    def _own_media_url(self, kind: MessageType) -> Optional[str]:
        node = _MEDIA_NODES.get(kind)
        body = self.message
        if node:
            for media in (getattr(body, node, None), getattr(self, node)):
                if media is None:
                    continue
                found = _first_url(media.url, media.mediaUrl, media.directPath)
                if found:
                    return found
        if body is not None:
            found = _first_url(body.url, body.mediaUrl)
            if found:
                return found
        return _first_url(self.url, self.mediaUrl)

    def media_node(self) -> Optional[RawMedia]:
        body = self.message
        if body is None:
            return None
        for node in _MEDIA_NODES.values():
            media = getattr(body, node)
            if media is not None:
                return media
        return None

    def detect_type(self) -> MessageType:
        body = self.message
        if body is not None:
            for kind, node in _MEDIA_NODES.items():
                if getattr(body, node) is not None:
                    return kind
        if self.messageType == "contactMessage":
            return MessageType.CONTACT
        return MessageType.TEXT

    def text(self) -> str:
        body = self.message
        if body is None:
            return ""
        if body.conversation:
            return body.conversation
        if body.extendedTextMessage and body.extendedTextMessage.text:
            return body.extendedTextMessage.text
        media = self.media_node()
        return (media.caption or "") if media else ""

    def sent_at(self) -> Optional[datetime]:
        if self.messageTimestamp is None:
            return None
        return datetime.fromtimestamp(self.messageTimestamp, tz=timezone.utc)
