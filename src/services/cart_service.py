"""Cart snapshot reader."""

import logging
from dataclasses import dataclass
from decimal import Decimal

from src.api.middleware.error_handler import EmptyCartError
from src.core.supabase import get_supabase_client
from src.models.cart import CartRow
from src.services.catalog_service import CatalogService
from src.services.discount_engine import CartLine

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CartSnapshot:
    """Immutable priced view of a cart at one instant."""

    customer_id: str
    lines: tuple[CartLine, ...]
    cart_ids: tuple[int, ...] = ()

    @property
    def subtotal(self) -> Decimal:
        """Exact sum of unit_price x quantity. Not rounded."""
        return sum((line.subtotal for line in self.lines), Decimal("0"))

    @property
    def product_ids(self) -> list[int]:
        return list(dict.fromkeys(line.product_id for line in self.lines))


class CartService:
    """Service for reading and clearing customer carts."""

    def __init__(self) -> None:
        self.client = get_supabase_client()
        self.catalog = CatalogService()

    async def snapshot(self, customer_id: str) -> CartSnapshot:
        """Read the live cart and price it against the current catalog.

        Args:
            customer_id: Owner of the cart.

        Returns:
            CartSnapshot: Priced lines in cart order.

        Raises:
            EmptyCartError: If the cart has no lines that can still be priced.
        """
        response = (
            self.client.table("customer_cart")
            .select("cart_id, product_id, package_id, quantity")
            .eq("customer_id", customer_id)
            .order("cart_id")
            .execute()
        )
        rows: list[CartRow] = [row for row in response.data or [] if (row.get("quantity") or 0) >= 1]
        if not rows:
            raise EmptyCartError()

        packages = await self.catalog.get_packages(
            (row["product_id"], row["package_id"]) for row in rows
        )

        lines = []
        cart_ids = []
        for row in rows:
            package = packages.get((row["product_id"], row["package_id"]))
            if package is None:
                logger.warning(
                    "Skipping cart line %s for customer %s: package %s/%s no longer in catalog",
                    row.get("cart_id"),
                    customer_id,
                    row["product_id"],
                    row["package_id"],
                )
                continue
            lines.append(
                CartLine(
                    product_id=package.product_id,
                    package_id=package.package_id,
                    product_name=package.product_name,
                    package_name=package.package_name,
                    unit_price=package.unit_price,
                    quantity=row["quantity"],
                    weight_grams=package.weight_grams,
                )
            )
            cart_ids.append(row["cart_id"])

        if not lines:
            raise EmptyCartError()

        return CartSnapshot(customer_id=customer_id, lines=tuple(lines), cart_ids=tuple(cart_ids))

    async def clear_cart(self, customer_id: str, cart_ids: tuple[int, ...]) -> None:
        """Delete the given cart lines.

        Lines added after the snapshot was taken keep their place in the cart.
        """
        if not cart_ids:
            return
        (
            self.client.table("customer_cart")
            .delete()
            .eq("customer_id", customer_id)
            .in_("cart_id", list(cart_ids))
            .execute()
        )
        logger.info("Cleared %d cart lines for customer %s", len(cart_ids), customer_id)
