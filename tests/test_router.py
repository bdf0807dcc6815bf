import asyncio

import pytest

from inbox.application.classifier import Tab
from inbox.application.router import MessageRouter
from inbox.application.store import ChatStore
from inbox.domain.events import AppendMessage, Close, PatchMessage
from inbox.domain.message import DeliveryUpdate, Message, UnifiedMessage
from inbox.domain.types import ChatStatus, MessageStatus, MessageType, Sender
from inbox.infra.memory_sink import InMemoryChatSink

JID = "5511988887777@s.whatsapp.net"


class GatedSink(InMemoryChatSink):
    """Sink whose writes wait until the gate is open."""

    def __init__(self):
        super().__init__()
        self.gate = asyncio.Event()
        self.gate.set()
        self.entered = asyncio.Event()

    async def upsert_chat(self, chat):
        self.entered.set()
        await self.gate.wait()
        await super().upsert_chat(chat)


@pytest.fixture
def router(store):
    return MessageRouter(store)


def incoming(text="Hi", message_id="3EB0A1", **fields) -> UnifiedMessage:
    values = {
        "recipient_id": JID,
        "sender_id": JID,
        "sender_name": "Carla",
        "message_id": message_id,
        "text": text,
    }
    values.update(fields)
    return UnifiedMessage(**values)


class TestIncoming:
    async def test_unknown_contact_opens_triage_chat(self, router, store):
        await router.handle_incoming(incoming())

        chat = store.get(JID)
        assert chat.contact_name == "Carla"
        assert chat.contact_number == "5511988887777"
        assert chat.unread_count == 1
        assert chat.messages[-1].external_id == "3EB0A1"
        assert chat.messages[-1].author == JID
        assert store.list_tab("a1", Tab.WAITING) == [chat]

    async def test_duplicate_provider_id_is_dropped(self, router, store):
        await router.handle_incoming(incoming())
        await router.handle_incoming(incoming())
        assert len(store.get(JID).messages) == 1

    async def test_media_message(self, router, store):
        await router.handle_incoming(
            incoming(
                text="",
                type=MessageType.IMAGE,
                media_url="https://mmg.whatsapp.net/x.enc",
                mime_type="image/jpeg",
            )
        )
        chat = store.get(JID)
        assert chat.last_message == "📎 image"
        assert chat.messages[-1].media_url == "https://mmg.whatsapp.net/x.enc"

    async def test_closed_chat_reopens(self, router, store, make_chat):
        await store.create(
            make_chat(id=JID, status=ChatStatus.CLOSED, department_id="sales")
        )
        await router.handle_incoming(incoming("Hello again"))

        chat = store.get(JID)
        assert chat.status == ChatStatus.OPEN
        assert chat.department_id is None
        assert chat.messages[-1].content == "Hello again"
        assert store.list_tab("a1", Tab.WAITING) == [chat]

    async def test_rating_reply(self, router, store, make_chat):
        await store.create(
            make_chat(id=JID, status=ChatStatus.CLOSED, awaiting_rating=True)
        )
        await router.handle_incoming(incoming(" 5 "))

        chat = store.get(JID)
        assert chat.rating == 5
        assert chat.status == ChatStatus.CLOSED
        assert not chat.awaiting_rating

    async def test_non_rating_reply_reopens(self, router, store, make_chat):
        await store.create(
            make_chat(id=JID, status=ChatStatus.CLOSED, awaiting_rating=True)
        )
        await router.handle_incoming(incoming("I have another question"))
        chat = store.get(JID)
        assert chat.status == ChatStatus.OPEN
        assert chat.rating is None

    @pytest.mark.parametrize("answer", ["2", "support", "SUPPORT"])
    async def test_department_selection(self, router, store, make_chat, answer):
        await store.create(
            make_chat(
                id=JID,
                department_selection_sent=True,
                awaiting_department_selection=True,
            )
        )
        await router.handle_incoming(incoming(answer))

        chat = store.get(JID)
        assert chat.department_id == "support"
        assert chat.assigned_to is None
        assert not chat.awaiting_department_selection
        assert store.list_tab("a1", Tab.TODO) == [chat]

    async def test_invalid_department_option_is_a_plain_reply(
        self, router, store, make_chat
    ):
        await store.create(make_chat(id=JID, awaiting_department_selection=True))
        await router.handle_incoming(incoming("9"))
        chat = store.get(JID)
        assert chat.department_id is None
        assert chat.awaiting_department_selection
        assert chat.unread_count == 1


class TestEchoes:
    async def test_echo_patches_pending_local_message(self, router, store, make_chat):
        chat = await store.create(make_chat(id=JID))
        local = Message(id="m_local", content="On its way", sender=Sender.AGENT)
        await store.apply(chat.id, AppendMessage(message=local))

        await router.handle_incoming(
            incoming("Ana - Support:\nOn its way", message_id="3EB0FF", from_me=True)
        )

        updated = store.get(JID)
        assert len(updated.messages) == 1
        assert updated.messages[0].external_id == "3EB0FF"
        assert updated.messages[0].content == "On its way"

    async def test_echo_from_another_device_is_appended(
        self, router, store, make_chat
    ):
        await store.create(make_chat(id=JID, unread_count=2))
        await router.handle_incoming(
            incoming("Sent from my phone", from_me=True, sender_id=None)
        )
        chat = store.get(JID)
        assert chat.messages[-1].sender == Sender.AGENT
        assert chat.messages[-1].author is None
        assert chat.unread_count == 0

    async def test_echo_for_unknown_chat_is_ignored(self, router, store):
        await router.handle_incoming(incoming(from_me=True))
        assert store.get(JID) is None


class TestStatus:
    async def _sent_message(self, store, make_chat):
        message = Message(
            id="m1", content="hello", sender=Sender.AGENT, external_id="3EB0AA"
        )
        await store.create(make_chat(id=JID, messages=(message,)))

    async def test_delivery_and_read(self, router, store, make_chat):
        await self._sent_message(store, make_chat)

        await router.handle_status(
            DeliveryUpdate(
                recipient_id=JID, message_id="3EB0AA", status=MessageStatus.DELIVERED
            )
        )
        assert store.get(JID).messages[0].status == MessageStatus.DELIVERED

        await router.handle_status(
            DeliveryUpdate(message_id="3EB0AA", status=MessageStatus.READ)
        )
        assert store.get(JID).messages[0].status == MessageStatus.READ

    async def test_late_delivery_does_not_downgrade(self, router, store, make_chat):
        await self._sent_message(store, make_chat)
        for status in (MessageStatus.READ, MessageStatus.DELIVERED):
            await router.handle_status(
                DeliveryUpdate(recipient_id=JID, message_id="3EB0AA", status=status)
            )
        assert store.get(JID).messages[0].status == MessageStatus.READ

    async def test_unknown_message_is_dropped(self, router, store, make_chat):
        await self._sent_message(store, make_chat)
        before = store.get(JID)
        await router.handle_status(
            DeliveryUpdate(message_id="nope", status=MessageStatus.READ)
        )
        assert store.get(JID) is before

    async def test_ack_before_provider_id_is_recorded(self, router, store, make_chat):
        local = Message(id="m1", content="hello", sender=Sender.AGENT)
        await store.create(make_chat(id=JID, messages=(local,)))

        await router.handle_status(
            DeliveryUpdate(
                recipient_id=JID, message_id="3EB0BB", status=MessageStatus.DELIVERED
            )
        )
        assert store.get(JID).messages[0].status == MessageStatus.SENT

        await store.apply(JID, PatchMessage(message_id="m1", external_id="3EB0BB"))
        message = store.get(JID).messages[0]
        assert message.external_id == "3EB0BB"
        assert message.status == MessageStatus.DELIVERED

    async def test_held_acks_keep_the_furthest_status(self, router, store, make_chat):
        local = Message(id="m1", content="hello", sender=Sender.AGENT)
        await store.create(make_chat(id=JID, messages=(local,)))

        for status in (MessageStatus.READ, MessageStatus.DELIVERED):
            await router.handle_status(
                DeliveryUpdate(message_id="3EB0BB", status=status)
            )
        await store.apply(JID, PatchMessage(message_id="m1", external_id="3EB0BB"))
        assert store.get(JID).messages[0].status == MessageStatus.READ


class TestConcurrentWrites:
    @pytest.fixture
    def gated(self):
        return GatedSink()

    @pytest.fixture
    def gated_store(self, gated, refs):
        return ChatStore(gated, refs=refs)

    async def test_reply_during_close_reopens_the_chat(
        self, gated, gated_store, make_chat, agent
    ):
        router = MessageRouter(gated_store)
        await gated_store.create(
            make_chat(id=JID, assigned_to=agent.id, department_id="support")
        )

        gated.gate.clear()
        gated.entered.clear()
        closing = asyncio.create_task(gated_store.apply(JID, Close(), actor=agent))
        await gated.entered.wait()
        replying = asyncio.create_task(router.handle_incoming(incoming("still there?")))
        await asyncio.sleep(0.01)
        gated.gate.set()
        await asyncio.gather(closing, replying)

        chat = gated_store.get(JID)
        assert chat.status == ChatStatus.OPEN
        assert chat.assigned_to is None
        assert chat.messages[-1].sender == Sender.USER
        assert chat.messages[-1].content == "still there?"
        assert gated_store.list_tab(agent.id, Tab.WAITING) == [chat]

    async def test_same_message_twice_is_stored_once(
        self, gated, gated_store, make_chat
    ):
        router = MessageRouter(gated_store)
        await gated_store.create(make_chat(id=JID))

        gated.gate.clear()
        first = asyncio.create_task(router.handle_incoming(incoming()))
        second = asyncio.create_task(router.handle_incoming(incoming()))
        await asyncio.sleep(0.01)
        gated.gate.set()
        await asyncio.gather(first, second)

        assert len(gated_store.get(JID).messages) == 1
        assert gated.writes == 2
