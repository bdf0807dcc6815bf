"""
Dispatcher that never reaches the provider.

Every request is recorded and answered with a synthetic provider id, so the
whole send flow (optimistic append, patch, department prompt) runs offline.
"""

import logging
import uuid
from dataclasses import dataclass
from typing import Any, List, Sequence

from inbox.domain.message import (
    ContactContent,
    MediaContent,
    StickerContent,
    TextContent,
)
from inbox.domain.ports import Dispatcher, DispatchResult
from inbox.domain.reference import Department

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DryRunRecord:
    action: str
    recipient_id: str
    payload: Any


class DryRunDispatcher(Dispatcher):
    def __init__(self):
        self.sent: List[DryRunRecord] = []

    def _record(self, action: str, recipient_id: str, payload: Any) -> DispatchResult:
        self.sent.append(DryRunRecord(action, recipient_id, payload))
        message_id = f"DRYRUN{uuid.uuid4().hex[:16].upper()}"
        logger.info(
            "[dry-run] %s simulated (not sent): to=%s id=%s",
            action,
            recipient_id,
            message_id,
        )
        return DispatchResult(success=True, message_id=message_id)

    async def send_text(
        self, recipient_id: str, content: TextContent
    ) -> DispatchResult:
        return self._record("text", recipient_id, content)

    async def send_media(
        self, recipient_id: str, content: MediaContent
    ) -> DispatchResult:
        return self._record(content.kind.value, recipient_id, content)

    async def send_sticker(
        self, recipient_id: str, content: StickerContent
    ) -> DispatchResult:
        return self._record("sticker", recipient_id, content)

    async def send_contact(
        self, recipient_id: str, content: ContactContent
    ) -> DispatchResult:
        return self._record("contact", recipient_id, content)

    async def send_department_prompt(
        self, recipient_id: str, departments: Sequence[Department]
    ) -> DispatchResult:
        return self._record("department_prompt", recipient_id, tuple(departments))
