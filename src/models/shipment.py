"""Shipment and shipping charge type definitions for database operations."""

from datetime import datetime
from enum import Enum
from typing import Any, TypedDict


class ShipmentStatus(str, Enum):
    """Locally managed shipment states; the carrier may report others."""

    CREATED = "Created"
    CANCELLED = "Cancelled"


class ShipmentRow(TypedDict):
    """shipments table row (unique per order)."""

    shipment_id: int
    order_id: int
    waybill: str
    tracking_url: str
    shipment_status: str
    carrier_request: dict[str, Any] | None
    carrier_response: dict[str, Any] | None
    is_success: bool
    created_at: datetime
    updated_at: datetime


class ShippingChargeRow(TypedDict, total=False):
    """shipping_charges table row (append-only history)."""

    order_id: int
    shipment_id: int | None
    zone: str | None
    status: str | None
    charged_weight: int | None
    gross_amount: str | None
    total_amount: str
    tax_cgst: Any
    tax_sgst: Any
    tax_igst: Any
    charges: dict[str, Any]
    raw_response: dict[str, Any]
