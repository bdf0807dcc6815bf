"""Shared fixtures: reference data, agents, chat factories and a fake dispatcher."""

import asyncio
from typing import Any, List, Optional, Sequence, Set, Tuple

import pytest

from inbox.application.sender import MessageSender
from inbox.application.store import ChatStore
from inbox.domain.chat import Chat
from inbox.domain.message import Message
from inbox.domain.ports import DispatchResult
from inbox.domain.reference import (
    Agent,
    AgentRole,
    Contact,
    Department,
    ReferenceData,
    Workflow,
    WorkflowStep,
)
from inbox.domain.types import Sender
from inbox.infra.memory_sink import InMemoryChatSink

CUSTOMER_JID = "5511999998888@s.whatsapp.net"


class FakeDispatcher:
    """Dispatcher double: records every call, fails or raises on demand."""

    def __init__(self):
        self.calls: List[Tuple[str, str, Any]] = []
        self.fail: Set[str] = set()
        self.explode: Set[str] = set()
        self.block: Optional[asyncio.Event] = None
        self._counter = 0

    def sent(self, action: str) -> List[Tuple[str, str, Any]]:
        return [call for call in self.calls if call[0] == action]

    async def _handle(self, action: str, recipient_id: str, payload: Any):
        self.calls.append((action, recipient_id, payload))
        if self.block is not None:
            await self.block.wait()
        if action in self.explode:
            raise RuntimeError("connection reset by peer")
        if action in self.fail:
            return DispatchResult(success=False, error="rejected by provider")
        self._counter += 1
        return DispatchResult(success=True, message_id=f"WA{self._counter:04d}")

    async def send_text(self, recipient_id, content):
        return await self._handle("text", recipient_id, content)

    async def send_media(self, recipient_id, content):
        return await self._handle("media", recipient_id, content)

    async def send_sticker(self, recipient_id, content):
        return await self._handle("sticker", recipient_id, content)

    async def send_contact(self, recipient_id, content):
        return await self._handle("contact", recipient_id, content)

    async def send_department_prompt(self, recipient_id, departments: Sequence):
        return await self._handle("department_prompt", recipient_id, tuple(departments))


class FailingSink(InMemoryChatSink):
    def __init__(self):
        super().__init__()
        self.broken = False

    async def upsert_chat(self, chat: Chat) -> None:
        if self.broken:
            raise ConnectionError("database is down")
        await super().upsert_chat(chat)


@pytest.fixture
def refs():
    return ReferenceData(
        departments=(
            Department(id="sales", name="Sales"),
            Department(id="support", name="Support"),
        ),
        workflows=(
            Workflow(
                id="onboarding",
                title="Onboarding",
                steps=(
                    WorkflowStep(id="collect", title="Collect documents"),
                    WorkflowStep(
                        id="handoff",
                        title="Hand over to support",
                        target_department_id="support",
                    ),
                ),
            ),
        ),
        contacts=(
            Contact(
                id="c1", name="Maria Souza", phone="5511977776666", email="m@x.com"
            ),
        ),
    )


@pytest.fixture
def agent():
    return Agent(id="a1", name="Ana", department_id="support")


@pytest.fixture
def other_agent():
    return Agent(id="a2", name="Bruno")


@pytest.fixture
def admin():
    return Agent(id="root", name="Admin", role=AgentRole.ADMIN)


@pytest.fixture
def make_chat():
    def _make(**overrides) -> Chat:
        fields = {
            "id": CUSTOMER_JID,
            "contact_name": "Joao",
            "contact_number": "5511999998888",
        }
        fields.update(overrides)
        return Chat(**fields)

    return _make


@pytest.fixture
def make_message():
    counter = iter(range(1, 10_000))

    def _make(**overrides) -> Message:
        fields = {
            "id": f"msg{next(counter)}",
            "content": "hi",
            "sender": Sender.USER,
        }
        fields.update(overrides)
        return Message(**fields)

    return _make


@pytest.fixture
def sink():
    return FailingSink()


@pytest.fixture
def store(sink, refs):
    return ChatStore(sink, refs=refs)


@pytest.fixture
def dispatcher():
    return FakeDispatcher()


@pytest.fixture
def sender(store, dispatcher):
    return MessageSender(store, dispatcher)
