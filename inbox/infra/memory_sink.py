import logging
from typing import Dict

from inbox.domain.chat import Chat
from inbox.domain.ports import ChatSink, DeletionResult

logger = logging.getLogger(__name__)


class InMemoryChatSink(ChatSink):
    """Simple in-memory persistence used for demos and tests."""

    def __init__(self):
        self.chats: Dict[str, Chat] = {}
        self.writes = 0

    async def upsert_chat(self, chat: Chat) -> None:
        self.chats[chat.id] = chat
        self.writes += 1

    async def delete_chat(self, chat_id: str) -> DeletionResult:
        if self.chats.pop(chat_id, None) is None:
            logger.warning("[sink] delete of unknown chat=%s", chat_id)
            return DeletionResult(success=False, error="Chat not found")
        return DeletionResult(success=True)
