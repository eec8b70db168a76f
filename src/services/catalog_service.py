"""Read-only catalog lookups used when pricing carts."""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable

from src.core.supabase import get_supabase_client
from src.services.discount_engine import to_decimal

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CatalogPackage:
    """Current price, names and weight of one product package."""

    product_id: int
    package_id: int
    product_name: str
    package_name: str
    unit_price: Decimal
    weight_grams: int | None


class CatalogService:
    """Service for catalog price and weight lookups."""

    def __init__(self) -> None:
        self.client = get_supabase_client()

    async def get_packages(
        self, pairs: Iterable[tuple[int, int]]
    ) -> dict[tuple[int, int], CatalogPackage]:
        """Look up packages by (product_id, package_id).

        Pairs whose package is missing or belongs to another product are
        absent from the result.
        """
        wanted = set(pairs)
        if not wanted:
            return {}

        package_ids = sorted({package_id for _, package_id in wanted})
        response = (
            self.client.table("tea_packages")
            .select("id, tea_id, package_name, selling_price, weight_grams, teas(name)")
            .in_("id", package_ids)
            .execute()
        )

        packages: dict[tuple[int, int], CatalogPackage] = {}
        for row in response.data or []:
            key = (row["tea_id"], row["id"])
            if key not in wanted:
                continue
            tea = row.get("teas") or {}
            packages[key] = CatalogPackage(
                product_id=row["tea_id"],
                package_id=row["id"],
                product_name=tea.get("name") or "",
                package_name=row.get("package_name") or "",
                unit_price=to_decimal(row.get("selling_price")) or Decimal("0"),
                weight_grams=row.get("weight_grams"),
            )
        return packages
