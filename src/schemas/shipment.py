"""Shipment Pydantic schemas for API request/response models."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from src.services.shipment_service import ShipmentOutcome, ShipmentTracking


class ShipmentResponse(BaseModel):
    """Schema for a stored shipment."""

    model_config = ConfigDict(from_attributes=True)

    shipment_id: int = Field(description="Shipment identifier")
    order_id: int = Field(description="Order identifier")
    waybill: str = Field(description="Carrier waybill")
    tracking_url: str | None = Field(default=None, description="Public tracking URL")
    shipment_status: str = Field(description="Shipment status")
    is_success: bool = Field(description="Whether the carrier accepted the shipment")
    created_at: datetime | None = Field(default=None, description="Creation timestamp")
    updated_at: datetime | None = Field(default=None, description="Last update timestamp")


class ShipmentOutcomeResponse(BaseModel):
    """Local shipment state and the carrier result, reported separately."""

    shipment: ShipmentResponse = Field(description="Persisted shipment")
    carrier_ok: bool = Field(description="Whether the carrier call succeeded")
    carrier_error: str | None = Field(default=None, description="Carrier failure reason")
    carrier_response: dict[str, Any] | None = Field(default=None, description="Raw carrier response")

    @classmethod
    def from_outcome(cls, outcome: ShipmentOutcome) -> "ShipmentOutcomeResponse":
        return cls(
            shipment=ShipmentResponse.model_validate(outcome.shipment),
            carrier_ok=outcome.carrier.ok,
            carrier_error=outcome.carrier.error,
            carrier_response=outcome.carrier.response,
        )


class TrackingResponse(BaseModel):
    """Schema for shipment tracking."""

    order_id: int = Field(description="Order identifier")
    waybill: str = Field(description="Carrier waybill")
    tracking_url: str | None = Field(default=None, description="Public tracking URL")
    shipment_status: str = Field(description="Stored shipment status")
    current_status: str | None = Field(default=None, description="Live carrier status, absent if unavailable")
    history: list[dict[str, Any]] = Field(default_factory=list, description="Carrier scan history")
    error: str | None = Field(default=None, description="Carrier failure reason")

    @classmethod
    def from_tracking(cls, result: ShipmentTracking) -> "TrackingResponse":
        return cls(
            order_id=result.shipment["order_id"],
            waybill=result.shipment["waybill"],
            tracking_url=result.shipment.get("tracking_url"),
            shipment_status=result.shipment["shipment_status"],
            current_status=result.tracking.status if result.tracking else None,
            history=result.tracking.history if result.tracking else [],
            error=result.error,
        )


class LabelResponse(BaseModel):
    """Schema for a shipping label request."""

    model_config = ConfigDict(from_attributes=True)

    shipment_id: int = Field(description="Shipment identifier")
    order_id: int = Field(description="Order identifier")
    waybill: str = Field(description="Carrier waybill")
    packages_found: int = Field(description="Packages the carrier found for the waybill")
    pdf_url: str | None = Field(default=None, description="Label PDF link")
    status: str = Field(description="generated or pending")
