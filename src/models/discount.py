"""Discount model type definitions for database operations."""

from datetime import datetime
from enum import Enum
from typing import TypedDict


class DiscountType(str, Enum):
    """Promotion types, stored under their back-office labels."""

    PERCENTAGE_OFF = "Direct Percentage"
    CART_VALUE_OFF = "Cart Value Offer"
    BUY_X_GET_Y = "BOGO / Quantity Offer"
    FREE_PRODUCT = "Free Product"
    COUPON_CODE = "Coupon Code"
    FLAT_PRICE_OFF = "Flat Price Off"

    @property
    def requires_code(self) -> bool:
        """Coupon-gated types are never auto-applied."""
        return self in (DiscountType.COUPON_CODE, DiscountType.FLAT_PRICE_OFF)


class DiscountStatus(str, Enum):
    """Discount availability flag."""

    ACTIVE = "active"
    INACTIVE = "inactive"


class DiscountRow(TypedDict):
    """discounts table row with its linked products.

    linked_product_ids is assembled from discount_products; an empty list
    means the discount applies to every product.
    """

    id: int
    name: str
    type: str
    code: str | None
    discount_percentage: str | None
    flat_discount_amount: str | None
    min_cart_value: str | None
    buy_quantity: int | None
    get_quantity: int | None
    free_product_id: int | None
    free_package_id: int | None
    free_product_quantity: int | None
    start_date: datetime
    end_date: datetime
    status: str
    linked_product_ids: list[int]
