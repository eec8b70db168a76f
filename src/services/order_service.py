"""Order placement and order queries."""

import asyncio
import logging
import re
import secrets
import string
import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from src.api.middleware.error_handler import (
    DiscountInvalidError,
    OrderNotFoundError,
    OrderPersistenceError,
    ValidationError,
)
from src.core.background import BackgroundTaskRunner, get_background_runner, run_best_effort
from src.core.config import get_settings
from src.core.supabase import get_supabase_client
from src.models.order import OrderItemRow, OrderRow, OrderStatus, PaymentStatus
from src.schemas.order import ShippingDetails
from src.services.cart_service import CartService, CartSnapshot
from src.services.catalog_service import CatalogService
from src.services.discount_engine import (
    DiscountKind,
    EligibleDiscount,
    FreeItem,
    best_monetary,
    quantize,
)
from src.services.discount_service import DiscountService
from src.services.notification_service import NotificationService
from src.services.shipping_charge_service import ShippingChargeService, compute_weight

logger = logging.getLogger(__name__)

BASE36 = string.digits + string.ascii_uppercase
PINCODE_RE = re.compile(r"^\d{6}$")
REQUIRED_SHIPPING_FIELDS = (
    "shipping_address",
    "shipping_city",
    "shipping_state",
    "shipping_pincode",
    "customer_name",
    "customer_phone",
)


def to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(BASE36[rem])
    return "".join(reversed(digits))


def generate_order_number() -> str:
    """ORD-<base36 epoch millis>-<5 random base36 chars>."""
    millis = int(time.time() * 1000)
    suffix = "".join(secrets.choice(BASE36) for _ in range(5))
    return f"ORD-{to_base36(millis)}-{suffix}"


def validate_shipping(details: ShippingDetails) -> dict[str, str | None]:
    """Strip and check shipping details.

    Raises:
        ValidationError: If a required field is blank or the pincode is malformed.
    """
    data = {key: (value.strip() if isinstance(value, str) else value) for key, value in details.model_dump().items()}
    missing = [name for name in REQUIRED_SHIPPING_FIELDS if not data.get(name)]
    if missing:
        raise ValidationError(
            "Missing shipping details",
            details=[{"loc": [name], "msg": "Field required", "type": "missing"} for name in missing],
        )
    if not PINCODE_RE.match(data["shipping_pincode"]):
        raise ValidationError(
            "Invalid pincode",
            details=[{"loc": ["shipping_pincode"], "msg": "Must be 6 digits", "type": "value_error"}],
        )
    data["customer_email"] = data.get("customer_email") or None
    return data


@dataclass
class PricedOrder:
    """Amounts and items decided before persistence."""

    subtotal: Decimal
    discount: Decimal
    total: Decimal
    discount_id: int | None
    items: list[dict[str, Any]]


@dataclass
class PlacedOrder:
    """Result returned to the customer after placement."""

    order_id: int
    order_number: str
    subtotal_amount: Decimal
    discount_amount: Decimal
    total_amount: Decimal
    shipping_charge: Decimal | None


def _line_item(product_id: int, package_id: int, product_name: str, package_name: str,
               quantity: int, unit_price: Decimal, is_free: bool) -> dict[str, Any]:
    price = Decimal("0") if is_free else unit_price
    return {
        "product_id": product_id,
        "package_id": package_id,
        "product_name": product_name,
        "package_name": package_name,
        "quantity": quantity,
        "price_per_unit": str(quantize(price)),
        "subtotal": str(quantize(price * quantity)),
        "is_free": is_free,
    }


class OrderService:
    """Service for placing and reading orders."""

    def __init__(
        self,
        carts: CartService | None = None,
        discounts: DiscountService | None = None,
        charges: ShippingChargeService | None = None,
        notifications: NotificationService | None = None,
        runner: BackgroundTaskRunner | None = None,
    ) -> None:
        self.client = get_supabase_client()
        self.settings = get_settings()
        self.carts = carts or CartService()
        self.discounts = discounts or DiscountService()
        self.charges = charges or ShippingChargeService()
        self.notifications = notifications or NotificationService()
        self.runner = runner or get_background_runner()

    async def _free_items(self, eligible: list[EligibleDiscount]) -> list[tuple[int, FreeItem]]:
        """Free units from quantity promotions plus resolved free-product add-ons.

        Each item is paired with the id of the discount that granted it.
        """
        free: list[tuple[int, FreeItem]] = []
        markers = []
        for result in eligible:
            if result.kind == DiscountKind.FREE_UNITS:
                free.extend((result.discount.id, item) for item in result.free_items)
            elif result.kind == DiscountKind.FREE_PRODUCT:
                if result.free_product_id is None or result.free_package_id is None:
                    logger.warning("Free product discount %s has no product configured", result.discount.id)
                    continue
                markers.append(result)

        if markers:
            packages = await CatalogService().get_packages(
                (m.free_product_id, m.free_package_id) for m in markers
            )
            for marker in markers:
                package = packages.get((marker.free_product_id, marker.free_package_id))
                if package is None:
                    logger.warning(
                        "Free product %s/%s for discount %s not in catalog",
                        marker.free_product_id,
                        marker.free_package_id,
                        marker.discount.id,
                    )
                    continue
                item = FreeItem(
                    product_id=package.product_id,
                    package_id=package.package_id,
                    product_name=package.product_name,
                    package_name=package.package_name,
                    quantity=marker.free_product_quantity,
                )
                free.append((marker.discount.id, item))
        return free

    async def price_cart(self, snapshot: CartSnapshot, coupon_code: str | None = None) -> PricedOrder:
        """Apply a coupon, or the best auto-applicable discount, to a cart.

        Raises:
            DiscountInvalidError: If a supplied coupon fails validation.
        """
        subtotal = snapshot.subtotal
        discount = Decimal("0")
        discount_id = None
        free: list[tuple[int, FreeItem]] = []

        if coupon_code and coupon_code.strip():
            result = await self.discounts.validate_coupon(coupon_code, subtotal, snapshot.product_ids)
            if not result.valid:
                raise DiscountInvalidError(result.reason)
            discount = result.amount
            discount_id = result.discount.id
        else:
            eligible = await self.discounts.auto_apply(subtotal, snapshot.product_ids, snapshot.lines)
            best = best_monetary(eligible)
            if best is not None:
                discount = best.amount
                discount_id = best.discount.id
            free = await self._free_items(eligible)
            if discount_id is None and free:
                discount_id = free[0][0]

        subtotal_q = quantize(subtotal)
        discount_q = min(quantize(discount), subtotal_q)
        items = [
            _line_item(line.product_id, line.package_id, line.product_name, line.package_name,
                       line.quantity, line.unit_price, False)
            for line in snapshot.lines
        ]
        items.extend(
            _line_item(f.product_id, f.package_id, f.product_name, f.package_name, f.quantity, Decimal("0"), True)
            for _, f in free
        )
        return PricedOrder(
            subtotal=subtotal_q,
            discount=discount_q,
            total=subtotal_q - discount_q,
            discount_id=discount_id,
            items=items,
        )

    async def place_order(
        self,
        customer_id: str,
        shipping: ShippingDetails,
        coupon_code: str | None = None,
    ) -> PlacedOrder:
        """Turn the customer's cart into a persisted order.

        The order and its items are written atomically. Cart clearing, the
        shipping quote, the delivery estimate and notifications are
        best-effort and never fail the placement.

        Args:
            customer_id: Authenticated customer.
            shipping: Shipping address and contact.
            coupon_code: Optional coupon to apply instead of automatic discounts.

        Returns:
            PlacedOrder: Identity and totals; shipping_charge is None when the
            carrier could not quote.

        Raises:
            ValidationError: If shipping details are incomplete.
            EmptyCartError: If the cart is empty.
            DiscountInvalidError: If the coupon is rejected.
            OrderPersistenceError: If the order could not be written.
        """
        details = validate_shipping(shipping)
        snapshot = await self.carts.snapshot(customer_id)
        priced = await self.price_cart(snapshot, coupon_code)

        order_payload = {
            "order_number": generate_order_number(),
            "customer_id": customer_id,
            "status": OrderStatus.PENDING.value,
            "payment_status": PaymentStatus.UNPAID.value,
            "subtotal_amount": str(priced.subtotal),
            "discount_amount": str(priced.discount),
            "total_amount": str(priced.total),
            "discount_id": priced.discount_id,
            **details,
        }
        try:
            response = self.client.rpc(
                "create_order_with_items",
                {"p_order": order_payload, "p_items": priced.items},
            ).execute()
        except Exception as e:
            logger.error("Order persistence failed for customer %s: %s", customer_id, e)
            raise OrderPersistenceError() from e
        order: OrderRow | None = response.data[0] if isinstance(response.data, list) else response.data
        if not order:
            logger.error("Order persistence returned no row for customer %s", customer_id)
            raise OrderPersistenceError()

        order_id = order["order_id"]
        logger.info(
            "Order %s (%s) placed by %s: subtotal=%s discount=%s total=%s",
            order_id,
            order["order_number"],
            customer_id,
            priced.subtotal,
            priced.discount,
            priced.total,
        )

        weights = {(line.product_id, line.package_id): line.weight_grams for line in snapshot.lines}
        weight = compute_weight(priced.items, weights, self.settings.default_package_weight_grams)
        pincode = order["shipping_pincode"]

        _, charge = await asyncio.gather(
            run_best_effort(self.carts.clear_cart(customer_id, snapshot.cart_ids), "clear_cart", order_id=order_id),
            run_best_effort(
                self.charges.persist_charge_for_order(order_id, pincode, weight),
                "shipping_charge",
                order_id=order_id,
            ),
        )
        shipping_charge = None
        if charge.ok and charge.value and not charge.value.get("error"):
            shipping_charge = quantize(Decimal(str(charge.value["total_amount"])))

        self.runner.spawn(
            self.charges.estimate_delivery_for_order(order_id, pincode),
            "delivery_estimate",
            order_id=order_id,
        )
        self.runner.spawn(
            self.notifications.order_placed(order, priced.items),
            "order_notifications",
            order_id=order_id,
        )

        return PlacedOrder(
            order_id=order_id,
            order_number=order["order_number"],
            subtotal_amount=priced.subtotal,
            discount_amount=priced.discount,
            total_amount=priced.total,
            shipping_charge=shipping_charge,
        )

    async def _attach_shipping(self, orders: list[dict[str, Any]]) -> list[dict[str, Any]]:
        """Attach shipment summary and latest delivery estimate to order rows."""
        if not orders:
            return orders
        ids = [o["order_id"] for o in orders]
        shipments = (
            self.client.table("shipments")
            .select("order_id, waybill, tracking_url, shipment_status, is_success")
            .in_("order_id", ids)
            .execute()
        ).data or []
        estimates = (
            self.client.table("delivery_estimates")
            .select("order_id, tat_days, expected_delivery_date, created_at")
            .in_("order_id", ids)
            .order("created_at", desc=True)
            .execute()
        ).data or []

        shipment_by_order = {s["order_id"]: s for s in shipments}
        estimate_by_order: dict[int, dict[str, Any]] = {}
        for estimate in estimates:
            estimate_by_order.setdefault(estimate["order_id"], estimate)

        for order in orders:
            order["shipment"] = shipment_by_order.get(order["order_id"])
            order["delivery_estimate"] = estimate_by_order.get(order["order_id"])
        return orders

    async def _get_items(self, order_id: int) -> list[OrderItemRow]:
        response = (
            self.client.table("order_items")
            .select("*")
            .eq("order_id", order_id)
            .order("order_item_id")
            .execute()
        )
        return response.data or []

    async def _get_detail(self, order_id: int, customer_id: str | None) -> dict[str, Any]:
        query = self.client.table("orders").select("*").eq("order_id", order_id)
        if customer_id is not None:
            query = query.eq("customer_id", customer_id)
        response = query.maybe_single().execute()
        if not response or not response.data:
            raise OrderNotFoundError(order_id)
        order = (await self._attach_shipping([response.data]))[0]
        order["items"] = await self._get_items(order_id)
        return order

    async def get_order(self, order_id: int, customer_id: str) -> dict[str, Any]:
        """Order with items, visible only to its owner.

        Raises:
            OrderNotFoundError: If missing or owned by another customer.
        """
        return await self._get_detail(order_id, customer_id)

    async def get_order_admin(self, order_id: int) -> dict[str, Any]:
        return await self._get_detail(order_id, None)

    async def list_orders_for_customer(self, customer_id: str) -> list[dict[str, Any]]:
        response = (
            self.client.table("orders")
            .select("*")
            .eq("customer_id", customer_id)
            .order("created_at", desc=True)
            .execute()
        )
        return await self._attach_shipping(response.data or [])

    async def list_all_orders(
        self,
        status: OrderStatus | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        """All orders, newest first, optionally filtered by status."""
        query = self.client.table("orders").select("*")
        if status is not None:
            query = query.eq("status", status.value)
        response = query.order("created_at", desc=True).range(offset, offset + limit - 1).execute()
        return await self._attach_shipping(response.data or [])
