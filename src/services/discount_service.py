"""Discount persistence and evaluation service."""

import logging
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Sequence

from src.api.middleware.error_handler import NotFoundError
from src.core.supabase import get_supabase_client
from src.models.discount import DiscountRow, DiscountStatus
from src.services.discount_engine import (
    CartLine,
    CouponValidation,
    DiscountRule,
    EligibleDiscount,
    evaluate_auto_applicable,
    validate_coupon,
)

logger = logging.getLogger(__name__)


def normalize_code(code: str | None) -> str | None:
    """Codes are stored upper-cased so lookups can use exact equality."""
    if code is None:
        return None
    code = code.strip().upper()
    return code or None


def _serialize(data: dict[str, Any]) -> dict[str, Any]:
    """Make pydantic-dumped values JSON-safe for PostgREST."""
    out = {}
    for key, value in data.items():
        if isinstance(value, Decimal):
            out[key] = str(value)
        elif isinstance(value, datetime):
            out[key] = value.isoformat()
        elif isinstance(value, Enum):
            out[key] = value.value
        else:
            out[key] = value
    return out


class DiscountService:
    """Service for loading, evaluating and administering discounts."""

    def __init__(self) -> None:
        self.client = get_supabase_client()

    async def _attach_links(self, rows: list[dict[str, Any]]) -> list[DiscountRow]:
        """Attach linked_product_ids to discount rows in one query."""
        if not rows:
            return []
        ids = [row["id"] for row in rows]
        links = (
            self.client.table("discount_products")
            .select("discount_id, product_id")
            .in_("discount_id", ids)
            .execute()
        )
        by_discount: dict[int, list[int]] = {}
        for link in links.data or []:
            by_discount.setdefault(link["discount_id"], []).append(link["product_id"])
        for row in rows:
            row["linked_product_ids"] = sorted(by_discount.get(row["id"], []))
        return rows

    async def _replace_links(self, discount_id: int, product_ids: Sequence[int]) -> None:
        self.client.table("discount_products").delete().eq("discount_id", discount_id).execute()
        if product_ids:
            self.client.table("discount_products").insert(
                [{"discount_id": discount_id, "product_id": pid} for pid in sorted(set(product_ids))]
            ).execute()

    async def list_active(self, now: datetime | None = None) -> list[DiscountRule]:
        """Discounts flagged active whose window contains now."""
        now = now or datetime.now(timezone.utc)
        response = (
            self.client.table("discounts")
            .select("*")
            .eq("status", DiscountStatus.ACTIVE.value)
            .lte("start_date", now.isoformat())
            .gte("end_date", now.isoformat())
            .order("id")
            .execute()
        )
        rows = await self._attach_links(response.data or [])
        return [DiscountRule.from_row(row) for row in rows]

    async def auto_apply(
        self,
        cart_value: Decimal,
        product_ids: Sequence[int],
        line_items: Sequence[CartLine],
        now: datetime | None = None,
    ) -> list[EligibleDiscount]:
        """Evaluate every live auto-applicable discount against a cart."""
        now = now or datetime.now(timezone.utc)
        rules = await self.list_active(now)
        return evaluate_auto_applicable(rules, cart_value, product_ids, line_items, now)

    async def validate_coupon(
        self,
        code: str,
        cart_value: Decimal,
        product_ids: Sequence[int],
        now: datetime | None = None,
    ) -> CouponValidation:
        """Validate a customer-entered coupon code.

        Never raises for business-rule failures; the result carries the reason.
        """
        normalized = normalize_code(code)
        candidates: list[DiscountRule] = []
        if normalized:
            response = self.client.table("discounts").select("*").eq("code", normalized).execute()
            rows = await self._attach_links(response.data or [])
            candidates = [DiscountRule.from_row(row) for row in rows]

        result = validate_coupon(candidates, code, cart_value, product_ids, now)
        if not result.valid:
            logger.info("Coupon rejected: %s", result.reason)
        return result

    async def get_discount(self, discount_id: int) -> DiscountRow:
        """Get one discount with its linked products.

        Raises:
            NotFoundError: If the discount does not exist.
        """
        response = (
            self.client.table("discounts")
            .select("*")
            .eq("id", discount_id)
            .maybe_single()
            .execute()
        )
        if not response or not response.data:
            raise NotFoundError("Discount not found", error_type="discount_not_found")
        rows = await self._attach_links([response.data])
        return rows[0]

    async def list_discounts(self, status: DiscountStatus | None = None) -> list[DiscountRow]:
        query = self.client.table("discounts").select("*")
        if status is not None:
            query = query.eq("status", status.value)
        response = query.order("id", desc=True).execute()
        return await self._attach_links(response.data or [])

    async def create_discount(self, data: dict[str, Any]) -> DiscountRow:
        """Create a discount and its product links.

        Args:
            data: Validated discount fields, including linked_product_ids.

        Returns:
            DiscountRow: The stored discount.
        """
        data = dict(data)
        linked = data.pop("linked_product_ids", None) or []
        data["code"] = normalize_code(data.get("code"))
        response = self.client.table("discounts").insert(_serialize(data)).execute()
        discount = response.data[0]
        await self._replace_links(discount["id"], linked)
        logger.info("Created discount %s (%s)", discount["id"], discount["type"])
        return await self.get_discount(discount["id"])

    async def update_discount(self, discount_id: int, data: dict[str, Any]) -> DiscountRow:
        """Replace a discount's fields; product links are replaced when given."""
        await self.get_discount(discount_id)
        data = dict(data)
        linked = data.pop("linked_product_ids", None)
        if "code" in data:
            data["code"] = normalize_code(data["code"])
        if data:
            self.client.table("discounts").update(_serialize(data)).eq("id", discount_id).execute()
        if linked is not None:
            await self._replace_links(discount_id, linked)
        logger.info("Updated discount %s", discount_id)
        return await self.get_discount(discount_id)

    async def toggle_status(self, discount_id: int) -> DiscountRow:
        """Flip a discount between active and inactive."""
        discount = await self.get_discount(discount_id)
        new_status = (
            DiscountStatus.INACTIVE
            if discount["status"] == DiscountStatus.ACTIVE.value
            else DiscountStatus.ACTIVE
        )
        self.client.table("discounts").update({"status": new_status.value}).eq("id", discount_id).execute()
        logger.info("Discount %s is now %s", discount_id, new_status.value)
        return await self.get_discount(discount_id)

    async def expire_discounts(self, now: datetime | None = None) -> int:
        """Deactivate active discounts whose end date has passed.

        Idempotent: a second run with the same clock updates nothing.

        Returns:
            int: Number of discounts deactivated.
        """
        now = now or datetime.now(timezone.utc)
        response = (
            self.client.table("discounts")
            .update({"status": DiscountStatus.INACTIVE.value})
            .eq("status", DiscountStatus.ACTIVE.value)
            .lte("end_date", now.isoformat())
            .execute()
        )
        count = len(response.data or [])
        if count:
            logger.info("Expired %d discounts", count)
        return count
