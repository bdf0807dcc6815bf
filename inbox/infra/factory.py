"""Construction and wiring only; no business logic here."""

import logging
from dataclasses import dataclass
from typing import Optional

from pyee.asyncio import AsyncIOEventEmitter

from inbox.application.router import MessageRouter
from inbox.application.sender import MessageSender
from inbox.application.store import ChatStore
from inbox.config import InboxSettings
from inbox.domain.ports import ChatSink, Dispatcher, SuggestionProvider
from inbox.domain.reference import ReferenceData
from inbox.infra.adapters.dry_run import DryRunDispatcher
from inbox.infra.adapters.whatsapp_evolution import EvolutionAdapter
from inbox.infra.gemini_client import GeminiSuggestionProvider

logger = logging.getLogger(__name__)


def build_dispatcher(settings: InboxSettings, bus: AsyncIOEventEmitter) -> Dispatcher:
    if settings.dry_run:
        logger.info("[factory] INBOX_DRY_RUN set; outbound messages are simulated")
        return DryRunDispatcher()
    return EvolutionAdapter(bus=bus, config=settings.evolution)


def build_suggestion_provider(
    settings: InboxSettings,
) -> Optional[SuggestionProvider]:
    if not settings.gemini.api_key:
        logger.info("[factory] GEMINI_API_KEY not set; smart replies disabled")
        return None
    return GeminiSuggestionProvider(settings.gemini)


@dataclass
class Inbox:
    bus: AsyncIOEventEmitter
    store: ChatStore
    sender: MessageSender
    router: MessageRouter
    dispatcher: Dispatcher
    suggestions: Optional[SuggestionProvider]

    async def start(self) -> None:
        if isinstance(self.dispatcher, EvolutionAdapter):
            await self.dispatcher.start()

    async def stop(self) -> None:
        if isinstance(self.dispatcher, EvolutionAdapter):
            await self.dispatcher.stop()


def build_inbox(
    settings: InboxSettings,
    sink: ChatSink,
    refs: ReferenceData | None = None,
    bus: AsyncIOEventEmitter | None = None,
) -> Inbox:
    """Wire store, sender, router and the provider adapter on one bus."""
    bus = bus or AsyncIOEventEmitter()
    store = ChatStore(sink, refs=refs, bus=bus)
    dispatcher = build_dispatcher(settings, bus)
    router = MessageRouter(store)
    if isinstance(dispatcher, EvolutionAdapter):
        dispatcher.on_message(router.handle_incoming)
        dispatcher.on_status(router.handle_status)
    return Inbox(
        bus=bus,
        store=store,
        sender=MessageSender(store, dispatcher),
        router=router,
        dispatcher=dispatcher,
        suggestions=build_suggestion_provider(settings),
    )
