import logging
from typing import Any, Dict, Optional

import httpx

logger = logging.getLogger(__name__)


class EvolutionClient:
    """Minimal async client for the Evolution API send endpoints."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        instance_name: str,
        timeout: float = 15,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.instance_name = instance_name
        self.timeout = timeout
        self._transport = transport
        self._headers = {
            "apikey": api_key,
            "Content-Type": "application/json",
        }

    async def _post(self, action: str, payload: Dict[str, Any]) -> dict:
        url = f"{self.base_url}/message/{action}/{self.instance_name}"
        async with httpx.AsyncClient(
            headers=self._headers, timeout=self.timeout, transport=self._transport
        ) as client:
            resp = await client.post(url, json=payload)
            resp.raise_for_status()
            data = resp.json()
            logger.info("[evolution] API %s ok: to=%s", action, payload.get("number"))
            return data

    async def send_text(
        self, number: str, text: str, quoted: Optional[dict] = None
    ) -> dict:
        payload: Dict[str, Any] = {"number": number, "text": text}
        if quoted:
            payload["quoted"] = quoted
        return await self._post("sendText", payload)

    async def send_media(
        self,
        number: str,
        mediatype: str,
        media: str,
        mimetype: str,
        caption: str = "",
        file_name: Optional[str] = None,
    ) -> dict:
        """`media` is a URL or a base64 string."""
        payload: Dict[str, Any] = {
            "number": number,
            "mediatype": mediatype,
            "mimetype": mimetype,
            "media": media,
            "caption": caption,
        }
        if file_name:
            payload["fileName"] = file_name
        return await self._post("sendMedia", payload)

    async def send_whatsapp_audio(self, number: str, audio: str) -> dict:
        """Voice note (push-to-talk) rather than an audio file attachment."""
        return await self._post("sendWhatsAppAudio", {"number": number, "audio": audio})

    async def send_sticker(self, number: str, sticker: str) -> dict:
        return await self._post("sendSticker", {"number": number, "sticker": sticker})

    async def send_contact(
        self, number: str, full_name: str, phone: str, email: Optional[str] = None
    ) -> dict:
        card: Dict[str, Any] = {
            "fullName": full_name,
            "wuid": phone,
            "phoneNumber": phone,
        }
        if email:
            card["email"] = email
        return await self._post("sendContact", {"number": number, "contact": [card]})
