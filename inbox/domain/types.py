from enum import Enum


class MessageStatus(str, Enum):
    SENT = "SENT"
    DELIVERED = "DELIVERED"
    READ = "READ"
    ERROR = "ERROR"

    @property
    def rank(self) -> int:
        """Position on the SENT -> DELIVERED -> READ ladder (ERROR is off it)."""
        return _RANKS[self]


_RANKS = {
    MessageStatus.SENT: 0,
    MessageStatus.DELIVERED: 1,
    MessageStatus.READ: 2,
    MessageStatus.ERROR: -1,
}


class MessageType(str, Enum):
    TEXT = "text"
    IMAGE = "image"
    AUDIO = "audio"
    VIDEO = "video"
    DOCUMENT = "document"
    STICKER = "sticker"
    CONTACT = "contact"


MEDIA_TYPES = frozenset(
    {MessageType.IMAGE, MessageType.AUDIO, MessageType.VIDEO, MessageType.DOCUMENT}
)


class Sender(str, Enum):
    USER = "user"
    AGENT = "agent"
    SYSTEM = "system"


class ChatStatus(str, Enum):
    OPEN = "open"
    PENDING = "pending"
    CLOSED = "closed"
