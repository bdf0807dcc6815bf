import logging
from typing import Any, Optional, Sequence

import httpx

from inbox.config import GeminiConfig
from inbox.domain.message import Message
from inbox.domain.ports import SuggestionProvider
from inbox.domain.types import Sender

logger = logging.getLogger(__name__)

AI_DISABLED = "AI features are unavailable (API key not configured)."
AI_EMPTY = "Could not generate a suggestion."
AI_ERROR = "Error connecting to the AI service."

PROMPT = (
    "You are a professional and empathetic support assistant on a WhatsApp "
    "platform.\n"
    "Read the conversation below and suggest a short, direct and professional "
    "reply for the agent to send now.\n\n"
    "Conversation:\n{history}\n\n"
    "Answer ONLY with the suggested reply text. Do not use quotes."
)


def _dig(src: Any, *path, default=None):
    """Safe traversal over dicts and lists: _dig(d, 'a', 0, 'b')."""
    cur: Any = src
    for key in path:
        if isinstance(cur, dict) and key in cur:
            cur = cur[key]
        elif (
            isinstance(cur, list)
            and isinstance(key, int)
            and -len(cur) <= key < len(cur)
        ):
            cur = cur[key]
        else:
            return default
    return cur


def build_prompt(history: Sequence[Message], contact_name: str) -> str:
    lines = []
    for msg in history:
        if msg.sender == Sender.SYSTEM:
            continue
        if msg.sender == Sender.USER:
            who = contact_name or "Customer"
        else:
            who = "Agent"
        lines.append(f"{who}: {msg.content}")
    return PROMPT.format(history="\n".join(lines))


class GeminiSuggestionProvider(SuggestionProvider):
    """Smart replies via the Gemini generateContent REST endpoint."""

    def __init__(
        self,
        config: GeminiConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._config = config
        self._transport = transport

    async def suggest_reply(
        self, history: Sequence[Message], contact_name: str
    ) -> str:
        if not self._config.api_key:
            logger.warning("[gemini] API key not found; AI features disabled")
            return AI_DISABLED

        url = (
            f"{self._config.base_url.rstrip('/')}/models/"
            f"{self._config.model}:generateContent"
        )
        payload = {
            "contents": [{"parts": [{"text": build_prompt(history, contact_name)}]}]
        }
        try:
            async with httpx.AsyncClient(
                headers={"x-goog-api-key": self._config.api_key},
                timeout=self._config.timeout,
                transport=self._transport,
            ) as client:
                resp = await client.post(url, json=payload)
                resp.raise_for_status()
                data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error("[gemini] Error generating smart reply: %s", e)
            return AI_ERROR

        text = _dig(data, "candidates", 0, "content", "parts", 0, "text", default="")
        return (text or "").strip() or AI_EMPTY
