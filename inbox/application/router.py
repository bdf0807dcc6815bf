import logging
import uuid
from typing import List, Optional

from inbox.application.phone import digits_only, local_part
from inbox.application.store import ChatStore
from inbox.domain.chat import Chat
from inbox.domain.errors import InboxError, InvalidEventError
from inbox.domain.events import (
    AcknowledgeMessage,
    AppendMessage,
    ChatEvent,
    InboundReply,
    PatchMessage,
    RecordRating,
    Reopen,
    SelectDepartment,
    UpdateContactInfo,
)
from inbox.domain.message import DeliveryUpdate, Message, UnifiedMessage, utcnow
from inbox.domain.reference import Department
from inbox.domain.types import MessageStatus, MessageType, Sender

logger = logging.getLogger(__name__)


def _choose_department(
    text: str, departments: tuple[Department, ...]
) -> Optional[Department]:
    """Match a reply to the numbered prompt: option number or department name."""
    answer = text.strip()
    if answer.isdigit():
        index = int(answer) - 1
        if 0 <= index < len(departments):
            return departments[index]
        return None
    lowered = answer.lower()
    return next((d for d in departments if d.name.lower() == lowered), None)


def _rating(text: str) -> Optional[int]:
    answer = text.strip()
    if len(answer) == 1 and answer in "12345":
        return int(answer)
    return None


class MessageRouter:
    """Router: turn normalized provider events into chat events."""

    def __init__(self, store: ChatStore):
        self.store = store

    async def handle_incoming(self, msg: UnifiedMessage) -> None:
        chat_id = msg.recipient_id
        logger.info(
            "[router] INCOMING: chat=%s from_me=%s type=%s id=%s",
            chat_id,
            msg.from_me,
            msg.type.value,
            msg.message_id,
        )
        try:
            if self.store.get(chat_id) is None:
                if msg.from_me:
                    logger.info("[router] echo for unknown chat=%s; skipping", chat_id)
                    return
                await self.store.get_or_create(self._new_chat(msg))
            await self.store.apply_planned(chat_id, lambda chat: self._plan(chat, msg))
        except InboxError as e:
            logger.warning(
                "[router] could not apply message to chat=%s: %s", chat_id, e
            )

    async def handle_status(self, update: DeliveryUpdate) -> None:
        if update.status not in (MessageStatus.DELIVERED, MessageStatus.READ):
            logger.debug(
                "[router] ignoring status %s for id=%s",
                update.status.value,
                update.message_id,
            )
            return

        chat = self._chat_for_external_id(update.recipient_id, update.message_id)
        if chat is None:
            # the send may not have recorded its provider id yet
            logger.info("[router] holding ack for unknown id=%s", update.message_id)
            self.store.hold_ack(update.message_id, update.status)
            return
        try:
            await self.store.apply(
                chat.id,
                AcknowledgeMessage(external_id=update.message_id, status=update.status),
            )
        except InvalidEventError as e:
            logger.warning("[router] ack rejected for chat=%s: %s", chat.id, e)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _new_chat(self, msg: UnifiedMessage) -> Chat:
        number = digits_only(local_part(msg.recipient_id))
        return Chat(
            id=msg.recipient_id,
            contact_name=msg.sender_name or number or msg.recipient_id,
            contact_number=number,
            last_message_time=msg.timestamp or utcnow(),
        )

    def _to_message(self, msg: UnifiedMessage, sender: Sender) -> Message:
        return Message(
            id=f"wa_{msg.message_id}" if msg.message_id else f"wa_{uuid.uuid4().hex}",
            content=msg.text,
            sender=sender,
            timestamp=msg.timestamp or utcnow(),
            status=MessageStatus.READ if sender == Sender.USER else MessageStatus.SENT,
            type=msg.type,
            media_url=msg.media_url,
            mime_type=msg.mime_type,
            file_name=msg.file_name,
            author=msg.sender_id,
            external_id=msg.message_id,
            raw=msg.raw,
        )

    def _plan(self, chat: Chat, msg: UnifiedMessage) -> List[ChatEvent]:
        if msg.message_id and chat.find_by_external_id(msg.message_id):
            logger.info("[router] duplicate provider id=%s", msg.message_id)
            return []
        if msg.from_me:
            return self._plan_echo(chat, msg)

        message = self._to_message(msg, Sender.USER)
        events: List[ChatEvent] = []
        if msg.sender_name and chat.contact_name in ("", chat.contact_number):
            events.append(UpdateContactInfo(contact_name=msg.sender_name))

        if chat.awaiting_rating:
            rating = _rating(msg.text)
            if rating is not None:
                return events + [
                    InboundReply(message=message),
                    RecordRating(rating=rating),
                ]

        if chat.awaiting_department_selection and not chat.is_closed:
            department = _choose_department(msg.text, self.store.refs.departments)
            if department is not None:
                return events + [
                    InboundReply(message=message),
                    SelectDepartment(department_id=department.id),
                ]

        if chat.is_closed:
            events.append(Reopen())
        events.append(InboundReply(message=message))
        return events

    def _plan_echo(self, chat: Chat, msg: UnifiedMessage) -> List[ChatEvent]:
        """Our own message coming back from the provider."""
        pending = self._pending_local(chat, msg)
        if pending is not None:
            return [
                PatchMessage(
                    message_id=pending.id,
                    external_id=msg.message_id,
                    media_url=msg.media_url,
                    raw=msg.raw,
                )
            ]
        if chat.is_closed:
            logger.info("[router] echo on closed chat=%s; skipping", chat.id)
            return []
        # written on the phone or another device
        return [AppendMessage(message=self._to_message(msg, Sender.AGENT))]

    @staticmethod
    def _pending_local(chat: Chat, msg: UnifiedMessage) -> Optional[Message]:
        """Newest agent message still waiting for its provider id that `msg` echoes."""
        for message in reversed(chat.messages):
            if message.sender != Sender.AGENT or message.external_id is not None:
                continue
            if msg.text and message.content and msg.text.endswith(message.content):
                return message
            # uncaptioned media echoes back without text
            if (
                not msg.text
                and message.type == msg.type
                and message.type != MessageType.TEXT
            ):
                return message
        return None

    def _chat_for_external_id(
        self, chat_id: Optional[str], external_id: str
    ) -> Optional[Chat]:
        if chat_id:
            chat = self.store.get(chat_id)
            if chat is not None and chat.find_by_external_id(external_id):
                return chat
        for chat in self.store.chats():
            if chat.find_by_external_id(external_id):
                return chat
        return None
