"""Order model type definitions for database operations."""

from datetime import datetime
from enum import Enum
from typing import TypedDict


class OrderStatus(str, Enum):
    """Order lifecycle states. Delivered and Cancelled are terminal."""

    PENDING = "Pending"
    SHIPPED = "Shipped"
    DELIVERED = "Delivered"
    CANCELLED = "Cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (OrderStatus.DELIVERED, OrderStatus.CANCELLED)


class PaymentStatus(str, Enum):
    """Payment flag, independent of the order lifecycle."""

    UNPAID = "unpaid"
    PAID = "paid"


class OrderItemRow(TypedDict):
    """order_items table row.

    Names and prices are copies taken at placement time.
    """

    order_item_id: int
    order_id: int
    product_id: int
    package_id: int
    product_name: str
    package_name: str
    quantity: int
    price_per_unit: str
    subtotal: str
    is_free: bool


class OrderRow(TypedDict):
    """orders table row.

    Shipping address and contact fields are snapshots, not references.
    """

    order_id: int
    order_number: str
    customer_id: str
    status: str
    payment_status: str
    subtotal_amount: str
    discount_amount: str
    total_amount: str
    discount_id: int | None
    shipping_address: str
    shipping_city: str
    shipping_state: str
    shipping_pincode: str
    customer_name: str
    customer_phone: str
    customer_email: str | None
    order_date: datetime
    delivered_at: datetime | None
    created_at: datetime
    updated_at: datetime
