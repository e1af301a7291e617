from __future__ import annotations

import logging

import httpx

from .settings import Settings

logger = logging.getLogger(__name__)


def to_chat_address(phone: str | None, *, country_code: str = "57", suffix: str = "@c.us") -> str:
    """Normalizes a stored phone number to a chat address.

    Non-digits are stripped; a 10 digit local number gets the country code.
    """

    digits = "".join(ch for ch in str(phone or "") if ch.isdigit())
    if len(digits) == 10:
        digits = country_code + digits
    return digits + suffix


class WhatsAppTransport:
    """Sends text messages through the WhatsApp Cloud API.

    `send` never raises: failures are logged and reported as False so that one
    undeliverable message does not hold back the rest of the pipeline.
    """

    def __init__(
        self,
        *,
        token: str | None,
        phone_number_id: str | None,
        graph_version: str = "v19.0",
        test_mode: bool = False,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._token = token
        self._phone_number_id = phone_number_id
        self._graph_version = graph_version
        self.test_mode = test_mode
        self._client = client or httpx.AsyncClient(timeout=20)

    @classmethod
    def from_settings(cls, settings: Settings) -> WhatsAppTransport:
        return cls(
            token=settings.whatsapp_token,
            phone_number_id=settings.whatsapp_phone_number_id,
            graph_version=settings.meta_graph_version,
            test_mode=settings.test_mode or not settings.enable_whatsapp,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    def _messages_url(self) -> str:
        if not self._phone_number_id:
            raise RuntimeError("Missing WHATSAPP_PHONE_NUMBER_ID")
        return f"https://graph.facebook.com/{self._graph_version}/{self._phone_number_id}/messages"

    async def send(self, address: str, text: str) -> bool:
        if self.test_mode:
            logger.info("[MOCK WHATSAPP] Sending to %s: %s", address, text)
            return True

        # The Cloud API wants the bare number.
        to_phone = address.split("@", 1)[0]
        headers = {
            "Authorization": f"Bearer {self._token}",
            "Content-Type": "application/json",
        }
        payload = {
            "messaging_product": "whatsapp",
            "to": to_phone,
            "type": "text",
            "text": {"body": text},
        }

        try:
            resp = await self._client.post(self._messages_url(), headers=headers, json=payload)
        except (httpx.HTTPError, RuntimeError):
            logger.exception("WhatsApp send to %s failed", to_phone)
            return False
        if resp.status_code >= 400:
            logger.error("WhatsApp send failed: %s %s", resp.status_code, resp.text)
            return False
        return True
