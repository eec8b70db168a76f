"""Order Pydantic schemas for API request/response models."""

from datetime import date, datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from src.models.order import OrderStatus, PaymentStatus


class ShippingDetails(BaseModel):
    """Shipping address and contact captured at checkout."""

    model_config = ConfigDict(from_attributes=True)

    shipping_address: str = Field(min_length=1, description="Street address")
    shipping_city: str = Field(min_length=1, description="City")
    shipping_state: str = Field(min_length=1, description="State")
    shipping_pincode: str = Field(min_length=1, description="6 digit postal code")
    customer_name: str = Field(min_length=1, description="Recipient name")
    customer_phone: str = Field(min_length=1, description="Recipient phone")
    customer_email: str | None = Field(default=None, description="Email for order updates")


class PlaceOrderRequest(ShippingDetails):
    """Schema for POST /orders."""

    coupon_code: str | None = Field(default=None, description="Optional coupon code")


class PlaceOrderResponse(BaseModel):
    """Schema for a successfully placed order."""

    model_config = ConfigDict(from_attributes=True)

    order_id: int = Field(description="Order identifier")
    order_number: str = Field(description="Human-facing order number")
    subtotal_amount: Decimal = Field(description="Sum of line subtotals before discount")
    discount_amount: Decimal = Field(description="Discount applied")
    total_amount: Decimal = Field(description="Amount payable")
    shipping_charge: Decimal | None = Field(default=None, description="Carrier quote, absent if unavailable")


class OrderItemResponse(BaseModel):
    """Schema for a single order item."""

    model_config = ConfigDict(from_attributes=True)

    order_item_id: int | None = Field(default=None, description="Order item identifier")
    product_id: int = Field(description="Product id")
    package_id: int = Field(description="Package id")
    product_name: str = Field(description="Product name at order time")
    package_name: str = Field(description="Package name at order time")
    quantity: int = Field(ge=1, description="Quantity")
    price_per_unit: Decimal = Field(description="Unit price at order time")
    subtotal: Decimal = Field(description="price_per_unit x quantity")
    is_free: bool = Field(default=False, description="Promotional free units")


class ShipmentSummary(BaseModel):
    """Shipment fields shown alongside an order."""

    model_config = ConfigDict(from_attributes=True)

    waybill: str = Field(description="Carrier waybill")
    tracking_url: str | None = Field(default=None, description="Public tracking URL")
    shipment_status: str = Field(description="Shipment status")
    is_success: bool | None = Field(default=None, description="Whether the carrier accepted the shipment")


class DeliveryEstimate(BaseModel):
    """Expected delivery from the carrier's transit time."""

    model_config = ConfigDict(from_attributes=True)

    tat_days: int = Field(description="Transit days")
    expected_delivery_date: date = Field(description="Expected delivery date")


class OrderResponse(BaseModel):
    """Schema for order API responses."""

    model_config = ConfigDict(from_attributes=True)

    order_id: int = Field(description="Order identifier")
    order_number: str = Field(description="Human-facing order number")
    customer_id: str = Field(description="Owning customer")
    status: OrderStatus = Field(description="Order status")
    payment_status: PaymentStatus = Field(description="Payment status")
    subtotal_amount: Decimal = Field(description="Subtotal before discount")
    discount_amount: Decimal = Field(description="Discount applied")
    total_amount: Decimal = Field(description="Amount payable")
    discount_id: int | None = Field(default=None, description="Applied discount, historical reference")
    shipping_address: str = Field(description="Street address snapshot")
    shipping_city: str = Field(description="City snapshot")
    shipping_state: str = Field(description="State snapshot")
    shipping_pincode: str = Field(description="Pincode snapshot")
    customer_name: str = Field(description="Recipient name snapshot")
    customer_phone: str = Field(description="Recipient phone snapshot")
    customer_email: str | None = Field(default=None, description="Customer email snapshot")
    order_date: datetime | None = Field(default=None, description="Order date")
    delivered_at: datetime | None = Field(default=None, description="Delivery timestamp")
    created_at: datetime | None = Field(default=None, description="Creation timestamp")
    updated_at: datetime | None = Field(default=None, description="Last update timestamp")
    shipment: ShipmentSummary | None = Field(default=None, description="Shipment, if created")
    delivery_estimate: DeliveryEstimate | None = Field(default=None, description="Latest delivery estimate")


class OrderDetailResponse(OrderResponse):
    """Order with its items."""

    items: list[OrderItemResponse] = Field(default_factory=list, description="Order items")


class OrderListResponse(BaseModel):
    """Schema for order list API responses."""

    model_config = ConfigDict(from_attributes=True)

    items: list[OrderResponse] = Field(description="List of orders")


class OrderStatusUpdate(BaseModel):
    """Schema for PATCH /admin/orders/{id}/status."""

    status: OrderStatus = Field(description="Target status")


class PaymentStatusUpdate(BaseModel):
    """Schema for PATCH /admin/orders/{id}/payment-status."""

    payment_status: PaymentStatus = Field(description="Target payment status")


class ShippingChargeResponse(BaseModel):
    """Schema for a shipping charge preview."""

    model_config = ConfigDict(from_attributes=True)

    pincode: str = Field(description="Destination pincode")
    weight_grams: int = Field(description="Weight used for the quote")
    total_amount: Decimal = Field(description="Quoted charge")
    zone: str | None = Field(default=None, description="Carrier zone")
    breakdown: dict[str, Any] = Field(default_factory=dict, description="Carrier charge components")
