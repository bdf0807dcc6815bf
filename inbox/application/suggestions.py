import logging
from typing import Optional

from inbox.domain.chat import Chat
from inbox.domain.ports import SuggestionProvider

logger = logging.getLogger(__name__)

NO_PROVIDER = "Smart replies are not configured."
NO_HISTORY = "There are no messages to suggest a reply for yet."
UNAVAILABLE = "Could not generate a suggestion right now. Please try again."

HISTORY_WINDOW = 10


async def suggest_reply(provider: Optional[SuggestionProvider], chat: Chat) -> str:
    """Best effort: any failure becomes a placeholder, never an exception."""
    if provider is None:
        return NO_PROVIDER
    history = [m for m in chat.messages if m.content][-HISTORY_WINDOW:]
    if not history:
        return NO_HISTORY
    try:
        suggestion = await provider.suggest_reply(history, chat.contact_name)
    except Exception as e:
        logger.warning("[suggest] provider failed for chat=%s: %s", chat.id, e)
        return UNAVAILABLE
    return suggestion.strip() or UNAVAILABLE
