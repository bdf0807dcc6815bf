import asyncio
import logging
from collections import OrderedDict
from typing import Callable, Dict, Iterable, List, Optional

from pyee.asyncio import AsyncIOEventEmitter

from inbox.application import classifier
from inbox.application.classifier import Tab
from inbox.application.reducer import reduce
from inbox.domain.chat import Chat
from inbox.domain.errors import InvalidEventError, PersistenceError
from inbox.domain.events import AcknowledgeMessage, ChatEvent, PatchMessage
from inbox.domain.ports import ChatSink
from inbox.domain.reference import Agent, ReferenceData
from inbox.domain.types import MessageStatus

logger = logging.getLogger(__name__)

CHAT_UPDATED = "chat.updated"
CHAT_DELETED = "chat.deleted"

MAX_HELD_ACKS = 500

Planner = Callable[[Chat], Iterable[ChatEvent]]


class ChatStore:
    """
    Owner of the chat collection.

    Every write to one chat runs under that chat's lock: reduce the latest
    snapshot, persist it through the sink, then commit it locally. Readers
    (the classifier) only ever see whole snapshots.
    """

    def __init__(
        self,
        sink: ChatSink,
        refs: ReferenceData | None = None,
        bus: AsyncIOEventEmitter | None = None,
    ):
        self._sink = sink
        self.refs = refs or ReferenceData()
        self.bus = bus or AsyncIOEventEmitter()
        self._chats: Dict[str, Chat] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._held_acks: "OrderedDict[str, MessageStatus]" = OrderedDict()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def get(self, chat_id: str) -> Optional[Chat]:
        return self._chats.get(chat_id)

    def require(self, chat_id: str) -> Chat:
        chat = self._chats.get(chat_id)
        if chat is None:
            raise InvalidEventError(f"Chat {chat_id} not found")
        return chat

    def chats(self) -> List[Chat]:
        return list(self._chats.values())

    def list_tab(
        self, agent_id: Optional[str], tab: Tab, search: str = ""
    ) -> List[Chat]:
        return classifier.list_tab(self._chats.values(), agent_id, tab, search)

    def tab_counts(self, agent_id: Optional[str], search: str = "") -> Dict[Tab, int]:
        return classifier.tab_counts(self._chats.values(), agent_id, search)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------
    def lock(self, chat_id: str) -> asyncio.Lock:
        lock = self._locks.get(chat_id)
        if lock is None:
            lock = self._locks[chat_id] = asyncio.Lock()
        return lock

    async def apply(
        self,
        chat_id: str,
        event: ChatEvent,
        actor: Optional[Agent] = None,
    ) -> Chat:
        async with self.lock(chat_id):
            return await self._apply_locked(chat_id, event, actor)

    async def apply_many(
        self,
        chat_id: str,
        events: Iterable[ChatEvent],
        actor: Optional[Agent] = None,
    ) -> Chat:
        """Apply several events back to back without letting others in between."""
        events = list(events)
        return await self.apply_planned(chat_id, lambda _: events, actor)

    async def apply_planned(
        self,
        chat_id: str,
        planner: Planner,
        actor: Optional[Agent] = None,
    ) -> Chat:
        """
        Decide and apply under one lock hold.

        `planner` sees the latest snapshot, so whatever it returns is based
        on the chat as it is now, not as it was before someone else's write.
        """
        async with self.lock(chat_id):
            chat = self.require(chat_id)
            for event in planner(chat):
                chat = await self._apply_locked(chat_id, event, actor)
            return chat

    def hold_ack(self, external_id: str, status: MessageStatus) -> None:
        """Keep an acknowledgment for a provider id no message carries yet."""
        held = self._held_acks.pop(external_id, None)
        if held is not None and held.rank > status.rank:
            status = held
        self._held_acks[external_id] = status
        while len(self._held_acks) > MAX_HELD_ACKS:
            self._held_acks.popitem(last=False)

    async def _apply_locked(
        self, chat_id: str, event: ChatEvent, actor: Optional[Agent]
    ) -> Chat:
        current = self.require(chat_id)
        updated = reduce(current, event, self.refs, actor=actor)
        if updated is current:
            logger.debug("[store] %s on chat=%s changed nothing", event.kind, chat_id)
            return current
        await self._persist(updated)
        self._commit(updated)
        logger.debug("[store] applied %s to chat=%s", event.kind, chat_id)

        if isinstance(event, PatchMessage) and event.external_id:
            status = self._held_acks.pop(event.external_id, None)
            if status is not None:
                logger.info(
                    "[store] replaying held ack %s for id=%s",
                    status.value,
                    event.external_id,
                )
                ack = AcknowledgeMessage(external_id=event.external_id, status=status)
                updated = await self._apply_locked(chat_id, ack, actor=None)
        return updated

    async def create(self, chat: Chat) -> Chat:
        async with self.lock(chat.id):
            if chat.id in self._chats:
                raise InvalidEventError(f"Chat {chat.id} already exists")
            await self._persist(chat)
            self._commit(chat)
            logger.info("[store] created chat=%s", chat.id)
            return chat

    async def get_or_create(self, chat: Chat) -> Chat:
        """Return the stored chat with this id, creating it from `chat` if missing."""
        async with self.lock(chat.id):
            existing = self._chats.get(chat.id)
            if existing is not None:
                return existing
            await self._persist(chat)
            self._commit(chat)
            logger.info("[store] created chat=%s", chat.id)
            return chat

    async def put(self, chat: Chat) -> Chat:
        """Accept a snapshot written by someone else (e.g. a persistence broadcast)."""
        repaired = enforce_invariants(chat)
        async with self.lock(chat.id):
            self._commit(repaired)
        return repaired

    async def delete(self, chat_id: str) -> None:
        async with self.lock(chat_id):
            self.require(chat_id)
            try:
                result = await self._sink.delete_chat(chat_id)
            except Exception as e:
                logger.exception("[store] delete failed for chat=%s", chat_id)
                raise PersistenceError(f"Could not delete the chat: {e}") from e
            if not result.success:
                logger.error(
                    "[store] sink refused to delete chat=%s: %s", chat_id, result.error
                )
                raise PersistenceError(
                    f"Could not delete the chat: {result.error or 'unknown error'}"
                )
            self._chats.pop(chat_id, None)
        self._locks.pop(chat_id, None)
        logger.info("[store] deleted chat=%s", chat_id)
        self.bus.emit(CHAT_DELETED, chat_id)

    async def _persist(self, chat: Chat) -> None:
        try:
            await self._sink.upsert_chat(chat)
        except Exception as e:
            logger.exception("[store] upsert failed for chat=%s", chat.id)
            raise PersistenceError(f"Could not save the chat: {e}") from e

    def _commit(self, chat: Chat) -> None:
        self._chats[chat.id] = chat
        self.bus.emit(CHAT_UPDATED, chat)


def enforce_invariants(chat: Chat) -> Chat:
    """Repair snapshots that no reducer transition could have produced."""
    if not chat.is_closed:
        return chat
    if chat.assigned_to is None and chat.active_workflow is None:
        return chat
    logger.warning(
        "[store] closed chat=%s still had assignee=%r workflow=%r; clearing",
        chat.id,
        chat.assigned_to,
        chat.active_workflow.workflow_id if chat.active_workflow else None,
    )
    return chat.model_copy(update={"assigned_to": None, "active_workflow": None})
