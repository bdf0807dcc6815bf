"""
Send orchestration: optimistic append, dispatch, then reconcile.

The local message is stored before the provider answers. A failed
dispatch marks it ERROR and raises DispatchError; it never disappears.
A cancelled dispatch leaves it SENT.
"""

import base64
import logging
import mimetypes
import uuid
from typing import Awaitable, Callable, Optional, Set

from inbox.application.phone import resolve_target_number
from inbox.application.store import ChatStore
from inbox.domain.chat import Chat
from inbox.domain.errors import DispatchError, InvalidEventError, TargetingError
from inbox.domain.events import (
    AppendMessage,
    Close,
    MarkMessageFailed,
    PatchMessage,
    RecordDepartmentPrompt,
)
from inbox.domain.message import (
    ContactContent,
    MediaContent,
    Message,
    StickerContent,
    TextContent,
)
from inbox.domain.ports import Dispatcher, DispatchResult
from inbox.domain.reference import Agent, ReferenceData
from inbox.domain.types import MEDIA_TYPES, ChatStatus, MessageType, Sender

logger = logging.getLogger(__name__)

TARGETING_HINT = (
    "No valid phone number for this chat. "
    "Wait for the contact to sync or check the configuration."
)
DISPATCH_HINT = (
    "The message could not be delivered. "
    "Check the connection and send it again."
)
SURVEY_PROMPT = (
    "Thank you for contacting us! How would you rate our service? "
    "Reply with a number from 1 (poor) to 5 (excellent)."
)

_MEDIA_DEFAULTS = {
    MessageType.AUDIO: ("Audio", "audio.ogg", "audio/ogg"),
    MessageType.IMAGE: ("Image", "image.jpg", "image/jpeg"),
    MessageType.VIDEO: ("Video", "video.mp4", "video/mp4"),
    MessageType.DOCUMENT: ("File", "file", "application/octet-stream"),
}


def new_message_id() -> str:
    return f"m_{uuid.uuid4().hex}"


def format_header(agent: Optional[Agent], refs: ReferenceData, chat: Chat) -> str:
    """Attribution line put in front of what the customer sees."""
    if agent is None or not agent.name:
        return ""
    department = refs.department(agent.department_id) or refs.department(
        chat.department_id
    )
    if department:
        return f"{agent.name} - {department.name}:\n"
    return f"{agent.name}:\n"


def needs_department_prompt(before: Chat, current: Chat, refs: ReferenceData) -> bool:
    """
    Whether a send should be followed by the department menu.

    Claim and status are read from `before`, the chat as it was when the
    agent hit send (sending itself reopens a pending chat). Department and
    the sent flag come from `current`.
    """
    return (
        current.department_id is None
        and not current.department_selection_sent
        and bool(refs.departments)
        and (before.status == ChatStatus.PENDING or before.assigned_to is None)
    )


class MessageSender:
    def __init__(
        self,
        store: ChatStore,
        dispatcher: Dispatcher,
        id_factory: Callable[[], str] = new_message_id,
    ):
        self.store = store
        self.dispatcher = dispatcher
        self._new_id = id_factory
        self._prompting: Set[str] = set()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    async def send_text(
        self,
        chat_id: str,
        agent: Agent,
        text: str,
        reply_to_id: Optional[str] = None,
    ) -> Message:
        if not text or not text.strip():
            raise InvalidEventError("Message text cannot be empty")
        chat = self.store.require(chat_id)
        target = self._target(chat)

        quoted = None
        if reply_to_id:
            replied = chat.find_message(reply_to_id)
            if replied is None:
                raise InvalidEventError(f"Message {reply_to_id} not found in chat")
            quoted = replied.quote()

        message = Message(
            id=self._new_id(), content=text, sender=Sender.AGENT, reply_to=quoted
        )
        await self.store.apply(chat_id, AppendMessage(message=message), actor=agent)

        content = TextContent(
            text=format_header(agent, self.store.refs, chat) + text,
            reply_to_id=quoted.provider_id if quoted else None,
            reply_to_raw=quoted.raw if quoted else None,
        )
        await self._dispatch(
            chat_id, message, self.dispatcher.send_text(target, content)
        )
        await self._maybe_prompt_department(chat, target)
        return self._stored(chat_id, message.id)

    async def send_media(
        self,
        chat_id: str,
        agent: Agent,
        data: bytes,
        kind: MessageType,
        caption: str = "",
        file_name: Optional[str] = None,
        mime_type: Optional[str] = None,
    ) -> Message:
        if kind not in MEDIA_TYPES:
            raise InvalidEventError(f"Not a media type: {kind.value}")
        if not data:
            raise InvalidEventError("Media file is empty")
        chat = self.store.require(chat_id)
        target = self._target(chat)

        placeholder, default_name, default_mime = _MEDIA_DEFAULTS[kind]
        file_name = file_name or default_name
        mime_type = mime_type or mimetypes.guess_type(file_name)[0] or default_mime
        preview_url = f"data:{mime_type};base64,{base64.b64encode(data).decode()}"

        message = Message(
            id=self._new_id(),
            content=caption or placeholder,
            sender=Sender.AGENT,
            type=kind,
            media_url=preview_url,
            mime_type=mime_type,
            file_name=file_name,
        )
        await self.store.apply(chat_id, AppendMessage(message=message), actor=agent)

        header = format_header(agent, self.store.refs, chat)
        content = MediaContent(
            kind=kind,
            data=data,
            caption=header + caption if caption else "",
            file_name=file_name,
            mime_type=mime_type,
        )
        await self._dispatch(
            chat_id, message, self.dispatcher.send_media(target, content)
        )
        return self._stored(chat_id, message.id)

    async def send_sticker(self, chat_id: str, agent: Agent, url: str) -> Message:
        if not url:
            raise InvalidEventError("Sticker URL is required")
        chat = self.store.require(chat_id)
        target = self._target(chat)

        message = Message(
            id=self._new_id(),
            content="Sticker",
            sender=Sender.AGENT,
            type=MessageType.STICKER,
            media_url=url,
        )
        await self.store.apply(chat_id, AppendMessage(message=message), actor=agent)
        await self._dispatch(
            chat_id,
            message,
            self.dispatcher.send_sticker(target, StickerContent(url=url)),
        )
        return self._stored(chat_id, message.id)

    async def send_contact(
        self, chat_id: str, agent: Agent, contact_id: str
    ) -> Message:
        contact = self.store.refs.contact(contact_id)
        if contact is None:
            raise InvalidEventError(f"Unknown contact: {contact_id}")
        chat = self.store.require(chat_id)
        target = self._target(chat)

        message = Message(
            id=self._new_id(),
            content=f"Contact sent: {contact.name}",
            sender=Sender.AGENT,
            type=MessageType.CONTACT,
        )
        await self.store.apply(chat_id, AppendMessage(message=message), actor=agent)
        card = ContactContent(
            name=contact.name, phone=contact.phone, email=contact.email
        )
        await self._dispatch(
            chat_id, message, self.dispatcher.send_contact(target, card)
        )
        return self._stored(chat_id, message.id)

    async def close_chat(
        self, chat_id: str, agent: Agent, with_survey: bool = False
    ) -> Chat:
        """Close the chat; with a survey, also ask the customer for a 1-5 rating."""
        target = ""
        if with_survey:
            target = resolve_target_number(self.store.require(chat_id))
        chat = await self.store.apply(
            chat_id, Close(with_survey=with_survey), actor=agent
        )
        if not with_survey:
            return chat
        if not target:
            logger.warning("[sender] survey not sent, no number for chat=%s", chat_id)
            return chat

        result = await _guarded(
            self.dispatcher.send_text(target, TextContent(text=SURVEY_PROMPT))
        )
        if not result.success:
            logger.warning(
                "[sender] survey for chat=%s not delivered: %s", chat_id, result.error
            )
        return chat

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _target(self, chat: Chat) -> str:
        target = resolve_target_number(chat)
        if not target:
            raise TargetingError(TARGETING_HINT)
        return target

    def _stored(self, chat_id: str, message_id: str) -> Message:
        return self.store.require(chat_id).find_message(message_id)

    async def _dispatch(
        self, chat_id: str, message: Message, call: Awaitable[DispatchResult]
    ) -> DispatchResult:
        result = await _guarded(call)
        if not result.success:
            logger.warning(
                "[sender] dispatch failed chat=%s message=%s: %s",
                chat_id,
                message.id,
                result.error,
            )
            await self.store.apply(chat_id, MarkMessageFailed(message_id=message.id))
            raise DispatchError(DISPATCH_HINT)

        logger.info(
            "[sender] SENT chat=%s message=%s provider_id=%s",
            chat_id,
            message.id,
            result.message_id,
        )
        if result.message_id or result.raw is not None:
            media_url = None
            if message.type in MEDIA_TYPES and result.raw is not None:
                media_url = result.raw.media_url(message.type)
            await self.store.apply(
                chat_id,
                PatchMessage(
                    message_id=message.id,
                    external_id=result.message_id,
                    media_url=media_url,
                    raw=result.raw,
                ),
            )
        return result

    async def _maybe_prompt_department(self, before: Chat, target: str) -> None:
        chat_id = before.id
        current = self.store.require(chat_id)
        refs = self.store.refs
        if chat_id in self._prompting:
            return
        if not needs_department_prompt(before, current, refs):
            return

        self._prompting.add(chat_id)
        try:
            result = await _guarded(
                self.dispatcher.send_department_prompt(target, refs.departments)
            )
            if not result.success:
                logger.warning(
                    "[sender] department prompt failed chat=%s: %s",
                    chat_id,
                    result.error,
                )
                return
            await self.store.apply(chat_id, RecordDepartmentPrompt())
            logger.info("[sender] department prompt sent to chat=%s", chat_id)
        finally:
            self._prompting.discard(chat_id)


async def _guarded(call: Awaitable[DispatchResult]) -> DispatchResult:
    """Turn a raising dispatcher into an ordinary failure."""
    try:
        return await call
    except Exception as e:
        logger.exception("[sender] dispatcher raised: %s", e)
        return DispatchResult(success=False, error=str(e))
