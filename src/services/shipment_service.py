"""Carrier shipment coordination for orders.

Local shipment bookkeeping is decoupled from carrier success: once a waybill
is allocated the shipment row is persisted, and carrier failures are
recorded on it instead of being raised.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from src.api.middleware.error_handler import (
    CarrierUnavailableError,
    OrderNotFoundError,
    ShipmentAlreadyExistsError,
    ShipmentNotFoundError,
)
from src.core.carrier import CarrierClient, CarrierError, TrackingInfo, get_carrier_client
from src.core.config import get_settings
from src.core.supabase import get_supabase_client, is_unique_violation
from src.models.order import OrderRow, PaymentStatus
from src.models.shipment import ShipmentRow, ShipmentStatus
from src.services.shipping_charge_service import ShippingChargeService

logger = logging.getLogger(__name__)

PACKAGE_WIDTH_CM = 10
PACKAGE_HEIGHT_CM = 10
COUNTRY = "India"


@dataclass
class CarrierOutcome:
    """Result of the carrier leg of an operation."""

    ok: bool
    response: dict[str, Any] | None = None
    error: str | None = None


@dataclass
class ShipmentOutcome:
    """Local shipment state plus what happened at the carrier."""

    shipment: ShipmentRow
    carrier: CarrierOutcome


@dataclass
class ShipmentTracking:
    """Tracking lookup result; tracking is None when the carrier failed."""

    shipment: ShipmentRow
    tracking: TrackingInfo | None
    error: str | None = None


def carrier_error_message(response: dict[str, Any]) -> str | None:
    """Pull a human-readable failure reason out of a carrier response."""
    if response.get("rmk"):
        return str(response["rmk"])
    for package in response.get("packages") or []:
        remarks = package.get("remarks")
        if remarks:
            return "; ".join(remarks) if isinstance(remarks, list) else str(remarks)
    return response.get("error") or None


def build_shipment_payload(
    order: OrderRow,
    waybill: str,
    weight_grams: int,
    products_desc: str,
    warehouse_name: str,
) -> dict[str, Any]:
    """Carrier manifest payload from the order's snapshotted fields."""
    paid = order["payment_status"] == PaymentStatus.PAID.value
    return {
        "shipments": [
            {
                "name": order["customer_name"],
                "add": order["shipping_address"],
                "pin": order["shipping_pincode"],
                "city": order["shipping_city"],
                "state": order["shipping_state"],
                "country": COUNTRY,
                "phone": order["customer_phone"],
                "order": order["order_number"],
                "waybill": waybill,
                "shipment_width": PACKAGE_WIDTH_CM,
                "shipment_height": PACKAGE_HEIGHT_CM,
                "weight": weight_grams,
                "products_desc": products_desc,
                "payment_mode": "Prepaid" if paid else "COD",
                "cod_amount": "0" if paid else str(order["total_amount"]),
                "total_amount": str(order["total_amount"]),
            }
        ],
        "pickup_location": {"name": warehouse_name},
    }


class ShipmentService:
    """Service for creating, cancelling, tracking and labelling shipments."""

    def __init__(self, carrier: CarrierClient | None = None) -> None:
        self.client = get_supabase_client()
        self.carrier = carrier or get_carrier_client()
        self.settings = get_settings()

    async def _get_order(self, order_id: int) -> OrderRow:
        response = (
            self.client.table("orders")
            .select("*")
            .eq("order_id", order_id)
            .maybe_single()
            .execute()
        )
        if not response or not response.data:
            raise OrderNotFoundError(order_id)
        return response.data

    async def get_shipment(self, order_id: int) -> ShipmentRow | None:
        response = (
            self.client.table("shipments")
            .select("*")
            .eq("order_id", order_id)
            .maybe_single()
            .execute()
        )
        return response.data if response else None

    async def _require_shipment(self, order_id: int) -> ShipmentRow:
        await self._get_order(order_id)
        shipment = await self.get_shipment(order_id)
        if not shipment:
            raise ShipmentNotFoundError(order_id)
        return shipment

    async def _update_shipment(self, shipment_id: int, fields: dict[str, Any]) -> ShipmentRow:
        fields = {**fields, "updated_at": datetime.now(timezone.utc).isoformat()}
        response = (
            self.client.table("shipments")
            .update(fields)
            .eq("shipment_id", shipment_id)
            .execute()
        )
        return response.data[0]

    async def create_shipment_for_order(self, order_id: int) -> ShipmentOutcome:
        """Allocate a waybill, record the shipment and manifest it with the carrier.

        Args:
            order_id: Order to ship.

        Returns:
            ShipmentOutcome: The persisted shipment and the carrier result.

        Raises:
            OrderNotFoundError: If the order does not exist.
            ShipmentAlreadyExistsError: If the order already has a shipment,
                including when a concurrent request created it first.
            CarrierUnavailableError: If no waybill could be allocated.
        """
        order = await self._get_order(order_id)
        if await self.get_shipment(order_id):
            raise ShipmentAlreadyExistsError(order_id)

        try:
            waybill = await self.carrier.allocate_waybill()
        except CarrierError as e:
            logger.error("Waybill allocation failed for order %s: %s", order_id, e)
            raise CarrierUnavailableError("Could not allocate a waybill") from e

        try:
            inserted = (
                self.client.table("shipments")
                .insert(
                    {
                        "order_id": order_id,
                        "waybill": waybill,
                        "tracking_url": self.settings.carrier_tracking_url_template.format(waybill=waybill),
                        "shipment_status": ShipmentStatus.CREATED.value,
                        "is_success": False,
                    }
                )
                .execute()
            )
        except Exception as e:
            if is_unique_violation(e):
                logger.warning(
                    "Concurrent shipment creation for order %s, waybill %s unused", order_id, waybill
                )
                raise ShipmentAlreadyExistsError(order_id) from e
            raise
        shipment = inserted.data[0]

        items = (
            self.client.table("order_items")
            .select("product_id, package_id, product_name, quantity, is_free")
            .eq("order_id", order_id)
            .execute()
        ).data or []
        weight = await ShippingChargeService(self.carrier).weight_for_items(items)
        products_desc = ", ".join(
            f"{item['product_name']} x{item['quantity']}" for item in items
        ) or "Order items"
        payload = build_shipment_payload(
            order, waybill, weight, products_desc, self.settings.carrier_warehouse_name
        )

        try:
            response = await self.carrier.create_shipment(payload)
            error = None if response.get("success") is True else carrier_error_message(response) or "Carrier rejected shipment"
            outcome = CarrierOutcome(ok=error is None, response=response, error=error)
        except CarrierError as e:
            outcome = CarrierOutcome(ok=False, error=str(e))

        if not outcome.ok:
            logger.error("Carrier shipment create failed for order %s: %s", order_id, outcome.error)

        shipment = await self._update_shipment(
            shipment["shipment_id"],
            {
                "carrier_request": payload,
                "carrier_response": outcome.response or {"error": True, "details": outcome.error},
                "is_success": outcome.ok,
            },
        )
        logger.info("Shipment %s created for order %s (carrier ok=%s)", waybill, order_id, outcome.ok)
        return ShipmentOutcome(shipment=shipment, carrier=outcome)

    async def cancel_shipment_for_order(self, order_id: int) -> ShipmentOutcome:
        """Cancel the order's shipment at the carrier and locally.

        The local status becomes Cancelled even when the carrier call fails;
        the carrier error is stored on the shipment.

        Raises:
            OrderNotFoundError: If the order does not exist.
            ShipmentNotFoundError: If the order has no shipment.
        """
        shipment = await self._require_shipment(order_id)
        if shipment["shipment_status"] == ShipmentStatus.CANCELLED.value:
            return ShipmentOutcome(shipment=shipment, carrier=CarrierOutcome(ok=True))

        try:
            response = await self.carrier.cancel_shipment(shipment["waybill"])
            outcome = CarrierOutcome(ok=True, response=response)
        except CarrierError as e:
            logger.error(
                "ALERT carrier cancel failed for order %s waybill %s: %s",
                order_id,
                shipment["waybill"],
                e,
            )
            outcome = CarrierOutcome(ok=False, error=str(e))

        shipment = await self._update_shipment(
            shipment["shipment_id"],
            {
                "shipment_status": ShipmentStatus.CANCELLED.value,
                "carrier_response": outcome.response or {"error": True, "details": outcome.error},
            },
        )
        logger.info("Shipment for order %s cancelled (carrier ok=%s)", order_id, outcome.ok)
        return ShipmentOutcome(shipment=shipment, carrier=outcome)

    async def track_shipment_for_order(self, order_id: int) -> ShipmentTracking:
        """Fetch live tracking and refresh the stored shipment status."""
        shipment = await self._require_shipment(order_id)
        order = await self._get_order(order_id)
        try:
            tracking = await self.carrier.track_shipment(shipment["waybill"], order["order_number"])
        except CarrierError as e:
            logger.error("Tracking failed for order %s: %s", order_id, e)
            return ShipmentTracking(shipment=shipment, tracking=None, error=str(e))

        if tracking.status and tracking.status != shipment["shipment_status"]:
            shipment = await self._update_shipment(
                shipment["shipment_id"], {"shipment_status": tracking.status}
            )
        return ShipmentTracking(shipment=shipment, tracking=tracking)

    async def track_for_customer(self, order_id: int, customer_id: str) -> ShipmentTracking:
        """Tracking scoped to the order's owner.

        Raises:
            OrderNotFoundError: If the order does not exist or belongs to someone else.
        """
        order = await self._get_order(order_id)
        if order["customer_id"] != customer_id:
            raise OrderNotFoundError(order_id)
        return await self.track_shipment_for_order(order_id)

    async def generate_label_for_order(self, order_id: int) -> dict[str, Any]:
        """Request a packing slip and upsert it into shipment_labels.

        Carrier failures are stored as a pending label rather than raised.
        """
        shipment = await self._require_shipment(order_id)
        try:
            response = await self.carrier.generate_label(shipment["waybill"])
        except CarrierError as e:
            logger.error("Label generation failed for order %s: %s", order_id, e)
            response = {"packages_found": 0, "error": str(e)}

        packages_found = response.get("packages_found") or 0
        packages = response.get("packages") or []
        pdf_url = response.get("pdf") or next(
            (p.get("pdf_download_link") for p in packages if p.get("pdf_download_link")), None
        )
        label = {
            "shipment_id": shipment["shipment_id"],
            "order_id": order_id,
            "waybill": shipment["waybill"],
            "packages_found": packages_found,
            "pdf_url": pdf_url,
            "status": "generated" if packages_found > 0 and pdf_url else "pending",
            "raw_response": response,
            "updated_at": datetime.now(timezone.utc).isoformat(),
        }
        result = (
            self.client.table("shipment_labels")
            .upsert(label, on_conflict="shipment_id")
            .execute()
        )
        return result.data[0] if result.data else label
