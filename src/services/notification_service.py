"""Customer and admin notifications for order events.

Every channel is an independent best-effort operation: one failing send
never stops another, and nothing here raises to the caller.
"""

import asyncio
import logging
from typing import Any, Awaitable, Mapping, Sequence

from src.core.background import BestEffortResult, run_best_effort
from src.core.whatsapp import WhatsAppClient, get_whatsapp_client
from src.models.order import OrderStatus
from src.services.email_service import EmailService

logger = logging.getLogger(__name__)


class NotificationService:
    """Fans order events out to email and WhatsApp."""

    def __init__(
        self,
        email: EmailService | None = None,
        whatsapp: WhatsAppClient | None = None,
    ) -> None:
        self.email = email or EmailService()
        self.whatsapp = whatsapp or get_whatsapp_client()

    async def _dispatch(
        self, order: Mapping[str, Any], sends: dict[str, Awaitable[Any]]
    ) -> dict[str, BestEffortResult]:
        names = list(sends)
        results = await asyncio.gather(
            *(run_best_effort(sends[name], name, order_id=order["order_id"]) for name in names)
        )
        return dict(zip(names, results))

    async def order_placed(
        self, order: Mapping[str, Any], items: Sequence[Mapping[str, Any]]
    ) -> dict[str, BestEffortResult]:
        """Confirmation to the customer, alert to the admin, payment-pending nudge."""
        sends: dict[str, Awaitable[Any]] = {
            "admin_email": self.email.send_admin_new_order(order, items),
            "whatsapp_payment_pending": self.whatsapp.send_event(order.get("customer_phone"), "PAYMENT_PENDING"),
        }
        if order.get("customer_email"):
            sends["customer_email"] = self.email.send_order_confirmation(order, items)
        return await self._dispatch(order, sends)

    async def status_changed(
        self,
        order: Mapping[str, Any],
        status: OrderStatus,
        tracking_url: str | None = None,
    ) -> dict[str, BestEffortResult]:
        """Status-specific email; WhatsApp only for deliveries."""
        sends: dict[str, Awaitable[Any]] = {}
        has_email = bool(order.get("customer_email"))
        if status == OrderStatus.SHIPPED and has_email:
            sends["shipped_email"] = self.email.send_order_shipped(order, tracking_url)
        elif status == OrderStatus.DELIVERED:
            if has_email:
                sends["delivered_email"] = self.email.send_order_delivered(order)
            sends["whatsapp_delivered"] = self.whatsapp.send_event(order.get("customer_phone"), "DELIVERED")
        elif status == OrderStatus.CANCELLED and has_email:
            sends["cancelled_email"] = self.email.send_order_cancelled(order)

        if not sends:
            return {}
        return await self._dispatch(order, sends)

    async def payment_received(self, order: Mapping[str, Any]) -> dict[str, BestEffortResult]:
        return await self._dispatch(
            order,
            {"whatsapp_payment_received": self.whatsapp.send_event(order.get("customer_phone"), "PAYMENT_RECEIVED")},
        )
