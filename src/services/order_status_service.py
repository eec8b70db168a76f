"""Order status state machine and payment status updates."""

import logging
from datetime import datetime, timezone

from src.api.middleware.error_handler import InvalidTransitionError, OrderNotFoundError
from src.core.background import BackgroundTaskRunner, get_background_runner
from src.core.supabase import get_supabase_client
from src.models.order import OrderRow, OrderStatus, PaymentStatus
from src.models.shipment import ShipmentStatus
from src.services.notification_service import NotificationService
from src.services.shipment_service import ShipmentService

logger = logging.getLogger(__name__)

# Delivered and Cancelled are terminal: no outgoing transitions.
ALLOWED_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.SHIPPED, OrderStatus.CANCELLED, OrderStatus.DELIVERED}),
    OrderStatus.SHIPPED: frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED}),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}


def is_allowed(current: OrderStatus, requested: OrderStatus) -> bool:
    return requested in ALLOWED_TRANSITIONS[current]


class OrderStatusService:
    """Applies status and payment-status changes to stored orders."""

    def __init__(
        self,
        shipments: ShipmentService | None = None,
        notifications: NotificationService | None = None,
        runner: BackgroundTaskRunner | None = None,
    ) -> None:
        self.client = get_supabase_client()
        self.shipments = shipments or ShipmentService()
        self.notifications = notifications or NotificationService()
        self.runner = runner or get_background_runner()

    async def _get_order(self, order_id: int, customer_id: str | None = None) -> OrderRow:
        response = (
            self.client.table("orders")
            .select("*")
            .eq("order_id", order_id)
            .maybe_single()
            .execute()
        )
        order = response.data if response else None
        if not order or (customer_id is not None and order["customer_id"] != customer_id):
            raise OrderNotFoundError(order_id)
        return order

    async def update_order_status(
        self,
        order_id: int,
        requested: OrderStatus,
        customer_id: str | None = None,
    ) -> OrderRow:
        """Move an order to a new status if the transition table allows it.

        The status is re-read from storage and the write is conditional on
        it being unchanged, so a concurrent transition makes this one fail
        instead of overwriting it.

        Args:
            order_id: Order to update.
            requested: Target status.
            customer_id: When given, the order must belong to this customer.

        Returns:
            OrderRow: The updated order.

        Raises:
            OrderNotFoundError: If the order does not exist or is not the customer's.
            InvalidTransitionError: If the transition is illegal or the status
                changed concurrently. The stored status is left untouched.
        """
        order = await self._get_order(order_id, customer_id)
        current = OrderStatus(order["status"])
        if not is_allowed(current, requested):
            raise InvalidTransitionError(current.value, requested.value)

        tracking_url = None
        shipment = await self.shipments.get_shipment(order_id)
        if shipment:
            tracking_url = shipment.get("tracking_url")

        shipment_cancelled = False
        if requested == OrderStatus.CANCELLED and shipment and shipment["shipment_status"] != ShipmentStatus.CANCELLED.value:
            latest = (await self._get_order(order_id))["status"]
            if latest != current.value:
                logger.warning(
                    "Order %s status changed concurrently (%s -> %s), not cancelling shipment",
                    order_id,
                    current.value,
                    latest,
                )
                raise InvalidTransitionError(latest, requested.value)
            # Carrier failures are recorded on the shipment and never block the local cancel
            await self.shipments.cancel_shipment_for_order(order_id)
            shipment_cancelled = True

        now = datetime.now(timezone.utc).isoformat()
        fields = {"status": requested.value, "updated_at": now}
        if requested == OrderStatus.DELIVERED and not order.get("delivered_at"):
            fields["delivered_at"] = now

        response = (
            self.client.table("orders")
            .update(fields)
            .eq("order_id", order_id)
            .eq("status", current.value)
            .execute()
        )
        if not response.data:
            fresh = await self._get_order(order_id)
            if shipment_cancelled:
                logger.error(
                    "ALERT shipment for order %s was cancelled but the order moved to %s before the cancel was stored",
                    order_id,
                    fresh["status"],
                )
            logger.warning(
                "Order %s status changed concurrently (%s -> %s), rejecting %s",
                order_id,
                current.value,
                fresh["status"],
                requested.value,
            )
            raise InvalidTransitionError(fresh["status"], requested.value)

        updated = response.data[0]
        logger.info("Order %s status %s -> %s", order_id, current.value, requested.value)
        self.runner.spawn(
            self.notifications.status_changed(updated, requested, tracking_url),
            "status_notifications",
            order_id=order_id,
            status=requested.value,
        )
        return updated

    async def cancel_order(self, order_id: int, customer_id: str) -> OrderRow:
        """Customer-initiated cancellation, scoped to the order's owner."""
        return await self.update_order_status(order_id, OrderStatus.CANCELLED, customer_id=customer_id)

    async def update_payment_status(self, order_id: int, payment_status: PaymentStatus) -> OrderRow:
        """Set payment status; notifies only on a change to paid."""
        order = await self._get_order(order_id)
        if order["payment_status"] == payment_status.value:
            return order

        response = (
            self.client.table("orders")
            .update({"payment_status": payment_status.value, "updated_at": datetime.now(timezone.utc).isoformat()})
            .eq("order_id", order_id)
            .execute()
        )
        updated = response.data[0]
        logger.info("Order %s payment status -> %s", order_id, payment_status.value)

        if payment_status == PaymentStatus.PAID:
            self.runner.spawn(
                self.notifications.payment_received(updated),
                "payment_notifications",
                order_id=order_id,
            )
        return updated
