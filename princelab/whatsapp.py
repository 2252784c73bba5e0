"""Outbound WhatsApp Cloud API messages.

Sending is fire-and-forget from the core's point of view: failures are
logged here and reported as ``False``, never raised.
"""

from __future__ import annotations

from typing import Any, Dict

import httpx
from loguru import logger

from princelab.settings import settings


class WhatsAppSender:
    def __init__(
        self,
        *,
        access_token: str | None = None,
        phone_number_id: str | None = None,
        api_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.access_token = access_token if access_token is not None else settings.WHATSAPP_ACCESS_TOKEN
        self.phone_number_id = (
            phone_number_id if phone_number_id is not None else settings.WHATSAPP_PHONE_NUMBER_ID
        )
        self.api_url = (api_url or str(settings.WHATSAPP_API_URL)).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.WHATSAPP_TIMEOUT
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.access_token and self.phone_number_id)

    def build_payload(self, to: str, body: str) -> Dict[str, Any]:
        return {
            "messaging_product": "whatsapp",
            "to": to,
            "type": "text",
            "text": {"body": body},
        }

    async def send(self, user_key: str, text: str) -> bool:
        """POST *text* to *user_key*; return whether the Graph API accepted it."""
        if not self.configured:
            logger.warning(f"[WA] send skipped for {user_key}: WhatsApp credentials are not configured")
            return False

        url = f"{self.api_url}/{self.phone_number_id}/messages"
        headers = {
            "Authorization": f"Bearer {self.access_token}",
            "Content-Type": "application/json",
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(url, json=self.build_payload(user_key, text), headers=headers)
                response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            logger.error(f"[WA] send error {exc.response.status_code} for {user_key}: {exc.response.text}")
            return False
        except httpx.HTTPError as exc:
            logger.error(f"[WA] send error for {user_key}: {exc}")
            return False

        logger.debug(f"[WA] sent {len(text)} chars to {user_key}")
        return True
