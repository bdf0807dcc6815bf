import base64
import logging
from typing import Any, Awaitable, Dict, Optional, Sequence

from pydantic import ValidationError
from pyee.asyncio import AsyncIOEventEmitter

from inbox.config import EvolutionConfig
from inbox.domain.message import (
    ContactContent,
    DeliveryUpdate,
    MediaContent,
    StickerContent,
    TextContent,
    UnifiedMessage,
)
from inbox.domain.ports import DispatchResult, MessengerAdapter, OnMessage, OnStatus
from inbox.domain.raw import RawProviderMessage
from inbox.domain.reference import Department
from inbox.domain.types import MEDIA_TYPES, MessageType
from inbox.domain.webhooks.evolution import (
    UPDATE_EVENT,
    UPSERT_EVENT,
    EvolutionWebhookPayload,
)
from inbox.infra.evolution_client import EvolutionClient

logger = logging.getLogger(__name__)

UPSERT_TOPIC = f"evolution.{UPSERT_EVENT}"
UPDATE_TOPIC = f"evolution.{UPDATE_EVENT}"

STATUS_BROADCAST = "status@broadcast"


def format_department_prompt(departments: Sequence[Department]) -> str:
    lines = [f"{i} - {d.name}" for i, d in enumerate(departments, start=1)]
    return (
        "Hello! Please choose the department you want to talk to:\n\n"
        + "\n".join(lines)
        + "\n\nReply with the option number."
    )


def _quoted(content: TextContent) -> Optional[dict]:
    if not content.reply_to_id:
        return None
    quoted: Dict[str, Any] = {}
    if content.reply_to_raw is not None:
        quoted = content.reply_to_raw.model_dump(exclude_none=True)
    key = dict(quoted.get("key") or {})
    key["id"] = content.reply_to_id
    quoted["key"] = key
    return quoted


def _result(data: Any) -> DispatchResult:
    """Evolution answers a send with the created message envelope."""
    if not isinstance(data, dict):
        return DispatchResult(success=True)
    try:
        raw = RawProviderMessage.model_validate(data)
    except ValidationError:
        return DispatchResult(success=True)
    message_id = raw.key.id if raw.key else None
    return DispatchResult(success=True, message_id=message_id, raw=raw)


class EvolutionAdapter(MessengerAdapter):
    """WhatsApp adapter via the Evolution API."""

    def __init__(
        self,
        bus: AsyncIOEventEmitter,
        config: EvolutionConfig,
        client: Optional[EvolutionClient] = None,
    ):
        self._bus = bus
        self._config = config
        self._on_message: Optional[OnMessage] = None
        self._on_status: Optional[OnStatus] = None
        self._client = client or EvolutionClient(
            base_url=config.base_url,
            api_key=config.api_key,
            instance_name=config.instance_name,
            timeout=config.timeout,
        )

    def on_message(self, cb: OnMessage) -> None:
        self._on_message = cb

    def on_status(self, cb: OnStatus) -> None:
        self._on_status = cb

    async def start(self) -> None:
        self._bus.on(UPSERT_TOPIC, self.handle_upsert)
        self._bus.on(UPDATE_TOPIC, self.handle_update)
        logger.info(
            "[evolution] adapter started (instance=%s)", self._config.instance_name
        )

    async def stop(self) -> None:
        self._bus.remove_listener(UPSERT_TOPIC, self.handle_upsert)
        self._bus.remove_listener(UPDATE_TOPIC, self.handle_update)
        logger.info("[evolution] adapter stopped")

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------
    async def handle_upsert(self, payload: dict) -> None:
        if not self._on_message:
            logger.warning("[evolution] No on_message callback set; dropping event")
            return
        msg = self.parse_upsert(payload)
        if msg is None:
            return
        try:
            await self._on_message(msg)
        except Exception as e:
            logger.exception("[evolution] on_message callback failed: %s", e)

    async def handle_update(self, payload: dict) -> None:
        if not self._on_status:
            logger.debug("[evolution] No on_status callback set; dropping event")
            return
        update = self.parse_update(payload)
        if update is None:
            return
        try:
            await self._on_status(update)
        except Exception as e:
            logger.exception("[evolution] on_status callback failed: %s", e)

    def parse_upsert(self, payload: dict) -> Optional[UnifiedMessage]:
        parsed = self._validate(payload)
        if parsed is None:
            return None
        if parsed.normalized_event() != UPSERT_EVENT:
            logger.info("[evolution] Ignored event: %s", parsed.event)
            return None

        raw = parsed.get_message()
        key = raw.key if raw else None
        if raw is None or key is None or not key.remoteJid:
            logger.warning("[evolution] Missing message key; skipping")
            return None
        if key.remoteJid == STATUS_BROADCAST:
            logger.info("[evolution] Skipping status broadcast id=%s", key.id)
            return None

        kind = raw.detect_type()
        media = raw.media_node()
        from_me = bool(key.fromMe)
        return UnifiedMessage(
            recipient_id=key.remoteJid,
            # own messages carry no author, our number is not the contact's
            sender_id=None
            if from_me
            else key.participant or key.senderPn or key.remoteJidAlt or key.remoteJid,
            sender_name=None if from_me else raw.pushName,
            message_id=key.id,
            from_me=from_me,
            type=kind,
            text=raw.text(),
            media_url=raw.media_url(kind) if media is not None else None,
            mime_type=media.mimetype if media else None,
            file_name=media.fileName if media else None,
            timestamp=raw.sent_at(),
            raw=raw,
        )

    def parse_update(self, payload: dict) -> Optional[DeliveryUpdate]:
        parsed = self._validate(payload)
        if parsed is None:
            return None
        if parsed.normalized_event() != UPDATE_EVENT:
            logger.info("[evolution] Ignored event: %s", parsed.event)
            return None

        status = parsed.get_status()
        if status is None or not status.provider_id():
            logger.warning("[evolution] Status update without message id; skipping")
            return None
        ack = status.ack_status()
        if ack is None:
            logger.debug("[evolution] Unknown ack status: %r", status.status)
            return None
        return DeliveryUpdate(
            recipient_id=status.chat_id(), message_id=status.provider_id(), status=ack
        )

    @staticmethod
    def _validate(payload: dict) -> Optional[EvolutionWebhookPayload]:
        try:
            return EvolutionWebhookPayload.model_validate(payload)
        except ValidationError as e:
            logger.warning("[evolution] Invalid webhook payload: %s", e)
            return None

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------
    async def _call(self, action: str, call: Awaitable[dict]) -> DispatchResult:
        try:
            data = await call
        except Exception as e:
            logger.exception("[evolution] Failed to %s: %s", action, e)
            return DispatchResult(success=False, error=str(e))
        return _result(data)

    async def send_text(
        self, recipient_id: str, content: TextContent
    ) -> DispatchResult:
        """Send text, quoting the replied message when there is one."""
        result = await self._call(
            "send text",
            self._client.send_text(recipient_id, content.text, quoted=_quoted(content)),
        )
        if result.success:
            logger.info("[evolution] SENT text -> %s", recipient_id)
        return result

    async def send_media(
        self, recipient_id: str, content: MediaContent
    ) -> DispatchResult:
        if content.kind not in MEDIA_TYPES:
            return DispatchResult(
                success=False, error=f"Unsupported media type: {content.kind.value}"
            )
        if content.data:
            media = base64.b64encode(content.data).decode()
        elif content.url:
            media = content.url
        else:
            return DispatchResult(success=False, error="Media has no data or URL")

        if content.kind == MessageType.AUDIO:
            call = self._client.send_whatsapp_audio(recipient_id, media)
        else:
            call = self._client.send_media(
                recipient_id,
                mediatype=content.kind.value,
                media=media,
                mimetype=content.mime_type or "application/octet-stream",
                caption=content.caption,
                file_name=content.file_name,
            )
        result = await self._call(f"send {content.kind.value}", call)
        if result.success:
            logger.info("[evolution] SENT %s -> %s", content.kind.value, recipient_id)
        return result

    async def send_sticker(
        self, recipient_id: str, content: StickerContent
    ) -> DispatchResult:
        return await self._call(
            "send sticker", self._client.send_sticker(recipient_id, content.url)
        )

    async def send_contact(
        self, recipient_id: str, content: ContactContent
    ) -> DispatchResult:
        return await self._call(
            "send contact",
            self._client.send_contact(
                recipient_id, content.name, content.phone, email=content.email
            ),
        )

    async def send_department_prompt(
        self, recipient_id: str, departments: Sequence[Department]
    ) -> DispatchResult:
        if not departments:
            return DispatchResult(success=False, error="No departments configured")
        return await self._call(
            "send department prompt",
            self._client.send_text(recipient_id, format_department_prompt(departments)),
        )
