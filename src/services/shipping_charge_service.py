"""Shipping charge and delivery time estimates from the carrier."""

import logging
from dataclasses import dataclass, field
from datetime import datetime, time, timedelta, timezone
from decimal import Decimal
from typing import Any, Iterable, Mapping

from src.api.middleware.error_handler import CarrierUnavailableError
from src.core.carrier import CarrierClient, CarrierError, get_carrier_client
from src.core.config import get_settings
from src.core.supabase import get_supabase_client
from src.models.shipment import ShippingChargeRow
from src.services.catalog_service import CatalogService
from src.services.discount_engine import quantize, to_decimal

logger = logging.getLogger(__name__)

CHARGE_MODE = "E"
PAYMENT_TYPE = "Pre-paid"
TRANSIT_MODE = "S"
PRODUCT_TYPE = "B2C"


@dataclass
class ChargeEstimate:
    """Carrier price for a shipment."""

    total_amount: Decimal
    zone: str | None = None
    charged_weight: int | None = None
    gross_amount: Decimal | None = None
    breakdown: dict[str, Any] = field(default_factory=dict)


def parse_charge(data: dict[str, Any]) -> ChargeEstimate:
    """Map a carrier charge payload onto a ChargeEstimate."""
    charges = {k: v for k, v in data.items() if k.startswith("charge_")}
    return ChargeEstimate(
        total_amount=quantize(to_decimal(data.get("total_amount")) or Decimal("0")),
        zone=str(data["zone"]) if data.get("zone") is not None else None,
        charged_weight=data.get("charged_weight"),
        gross_amount=to_decimal(data.get("gross_amount")),
        breakdown={"charges": charges, "tax_data": data.get("tax_data") or {}},
    )


def compute_weight(
    items: Iterable[Mapping[str, Any]],
    weights: Mapping[tuple[int, int], int | None],
    default_weight_grams: int,
) -> int:
    """Sum of package weight x quantity over paid (non-free) items.

    Packages without a catalog weight count as ``default_weight_grams``.
    """
    total = 0
    for item in items:
        if item.get("is_free"):
            continue
        weight = weights.get((item["product_id"], item["package_id"])) or default_weight_grams
        total += weight * item["quantity"]
    return total


def next_pickup_date(now: datetime | None = None) -> datetime:
    """Expected pickup is tomorrow at 00:00."""
    now = now or datetime.now(timezone.utc)
    return datetime.combine(now.date() + timedelta(days=1), time.min, tzinfo=now.tzinfo)


class ShippingChargeService:
    """Service for carrier price and transit time estimates."""

    def __init__(self, carrier: CarrierClient | None = None) -> None:
        self.client = get_supabase_client()
        self.carrier = carrier or get_carrier_client()
        self.settings = get_settings()

    async def weight_for_items(self, items: list[Mapping[str, Any]]) -> int:
        """Shipment weight for order items, looked up in the catalog."""
        packages = await CatalogService().get_packages(
            (item["product_id"], item["package_id"]) for item in items if not item.get("is_free")
        )
        weights = {key: package.weight_grams for key, package in packages.items()}
        return compute_weight(items, weights, self.settings.default_package_weight_grams)

    async def preview_charge(self, destination_pin: str, weight_grams: int | None = None) -> ChargeEstimate:
        """Price a hypothetical shipment. Nothing is persisted.

        Raises:
            CarrierUnavailableError: If the carrier cannot price the shipment.
        """
        weight = weight_grams or self.settings.preview_weight_grams
        try:
            data = await self.carrier.estimate_charge(
                self.settings.origin_pincode, destination_pin, weight, PAYMENT_TYPE, CHARGE_MODE
            )
        except CarrierError as e:
            logger.warning("Shipping preview failed for %s: %s", destination_pin, e)
            raise CarrierUnavailableError("Could not calculate shipping charge") from e
        return parse_charge(data)

    async def persist_charge_for_order(
        self, order_id: int, destination_pin: str, weight_grams: int
    ) -> dict[str, Any]:
        """Price an order's shipment and store the quote.

        Returns:
            dict: The stored charge row, or ``{"error": True, "total_amount": 0}``
            when the carrier could not price it.
        """
        try:
            data = await self.carrier.estimate_charge(
                self.settings.origin_pincode, destination_pin, weight_grams, PAYMENT_TYPE, CHARGE_MODE
            )
        except CarrierError as e:
            logger.error(
                "Shipping charge estimate failed for order %s: %s", order_id, e
            )
            return {"error": True, "total_amount": 0, "message": e.message}

        estimate = parse_charge(data)
        tax = estimate.breakdown["tax_data"]
        row: ShippingChargeRow = {
            "order_id": order_id,
            "shipment_id": None,
            "zone": estimate.zone,
            "status": data.get("status"),
            "charged_weight": estimate.charged_weight,
            "gross_amount": str(estimate.gross_amount) if estimate.gross_amount is not None else None,
            "total_amount": str(estimate.total_amount),
            "tax_cgst": tax.get("CGST"),
            "tax_sgst": tax.get("SGST"),
            "tax_igst": tax.get("IGST"),
            "charges": estimate.breakdown["charges"],
            "raw_response": data,
        }
        response = self.client.table("shipping_charges").insert(row).execute()
        logger.info("Shipping charge %s saved for order %s", estimate.total_amount, order_id)
        return response.data[0] if response.data else row

    async def estimate_delivery_for_order(
        self, order_id: int, destination_pin: str, now: datetime | None = None
    ) -> dict[str, Any]:
        """Fetch the carrier's transit time and store the expected delivery date.

        Raises:
            CarrierError: If the carrier cannot estimate transit time.
        """
        pickup = next_pickup_date(now)
        origin = self.settings.origin_pincode
        tat_days = await self.carrier.estimate_transit_days(
            origin, destination_pin, TRANSIT_MODE, PRODUCT_TYPE, pickup
        )
        expected_delivery = (pickup + timedelta(days=tat_days)).date()
        row = {
            "order_id": order_id,
            "origin_pin": origin,
            "destination_pin": destination_pin,
            "mode": TRANSIT_MODE,
            "product_type": PRODUCT_TYPE,
            "expected_pickup_date": pickup.isoformat(),
            "tat_days": tat_days,
            "expected_delivery_date": expected_delivery.isoformat(),
        }
        response = self.client.table("delivery_estimates").insert(row).execute()
        logger.info(
            "Order %s expected delivery %s (%d days)", order_id, expected_delivery, tat_days
        )
        return response.data[0] if response.data else row
