"""Database model type definitions."""

from src.models.cart import CartRow
from src.models.discount import DiscountRow, DiscountStatus, DiscountType
from src.models.order import OrderItemRow, OrderRow, OrderStatus, PaymentStatus
from src.models.shipment import ShipmentRow, ShipmentStatus, ShippingChargeRow

__all__ = [
    "CartRow",
    "DiscountRow",
    "DiscountStatus",
    "DiscountType",
    "OrderRow",
    "OrderItemRow",
    "OrderStatus",
    "PaymentStatus",
    "ShipmentRow",
    "ShipmentStatus",
    "ShippingChargeRow",
]
