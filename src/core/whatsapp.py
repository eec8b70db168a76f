"""WhatsApp template messaging through the BSP (business solution provider) API.

Only whitelisted business events can be sent. Callers pass an event name,
never a template name or message body.
"""

import logging
import re
from types import MappingProxyType
from typing import Any

import httpx

from src.core.config import get_settings

logger = logging.getLogger(__name__)

TEMPLATE_MAP = MappingProxyType(
    {
        "PAYMENT_PENDING": "payment_pending",
        "PAYMENT_RECEIVED": "payment_confirm",
        "DELIVERED": "delivery",
    }
)


class WhatsAppError(Exception):
    """Raised when a template message cannot be sent."""


def normalize_phone(phone: str | None) -> str | None:
    """Normalize an Indian mobile number to ``91XXXXXXXXXX``.

    Returns None for anything that is not 10 digits or 12 digits starting
    with 91.
    """
    if not phone:
        return None
    digits = re.sub(r"\D", "", phone)
    if len(digits) == 10:
        return f"91{digits}"
    if len(digits) == 12 and digits.startswith("91"):
        return digits
    return None


class WhatsAppClient:
    """Sends whitelisted template messages."""

    def __init__(
        self,
        base_url: str | None = None,
        sender_id: str | None = None,
        api_key: str | None = None,
        enabled: bool | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        settings = get_settings()
        self.enabled = settings.whatsapp_enabled if enabled is None else enabled
        base_url = (base_url or settings.whatsapp_base_url).rstrip("/")
        sender_id = sender_id or settings.whatsapp_sender_id
        self._client = httpx.AsyncClient(
            base_url=f"{base_url}/{sender_id}",
            headers={
                "apikey": api_key or settings.whatsapp_api_key,
                "Content-Type": "application/json",
            },
            timeout=httpx.Timeout(settings.carrier_timeout_seconds),
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def send_event(self, phone: str | None, event: str) -> dict[str, Any] | None:
        """Send the template bound to a business event.

        Args:
            phone: Recipient phone in any common format.
            event: Business event name, a key of TEMPLATE_MAP.

        Returns:
            dict | None: Provider response, or None when sending is disabled
            or the phone number is unusable.

        Raises:
            ValueError: If the event is not whitelisted.
            WhatsAppError: If the provider call fails.
        """
        template_name = TEMPLATE_MAP.get(event)
        if template_name is None:
            raise ValueError(f"WhatsApp event not allowed: {event}")

        if not self.enabled:
            logger.info("WhatsApp sending disabled, skipping %s", event)
            return None

        recipient = normalize_phone(phone)
        if recipient is None:
            logger.warning("Skipping WhatsApp %s: unusable phone number", event)
            return None

        body = {
            "messaging_product": "whatsapp",
            "recipient_type": "individual",
            "to": recipient,
            "type": "template",
            "template": {
                "name": template_name,
                "language": {"code": "en"},
                "components": [],
            },
        }
        try:
            response = await self._client.post("/messages", json=body)
            response.raise_for_status()
        except httpx.HTTPError as e:
            # Provider errors may echo credentials, keep the message generic
            logger.error("WhatsApp %s send failed: %s", event, e.__class__.__name__)
            raise WhatsAppError("WhatsApp message sending failed") from e

        logger.info("WhatsApp %s sent", event)
        return response.json()


_whatsapp_client: WhatsAppClient | None = None


def get_whatsapp_client() -> WhatsAppClient:
    """Get or create the shared WhatsApp client."""
    global _whatsapp_client
    if _whatsapp_client is None:
        _whatsapp_client = WhatsAppClient()
    return _whatsapp_client


async def shutdown_whatsapp_client() -> None:
    """Close the shared WhatsApp client. Call at app shutdown."""
    global _whatsapp_client
    if _whatsapp_client is not None:
        await _whatsapp_client.aclose()
        _whatsapp_client = None
