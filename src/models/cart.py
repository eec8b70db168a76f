"""Cart model type definitions for database operations."""

from typing import TypedDict


class CartRow(TypedDict):
    """customer_cart table row.

    Holds only references; prices and names come from the catalog at
    snapshot time.
    """

    cart_id: int
    customer_id: str
    product_id: int
    package_id: int
    quantity: int
