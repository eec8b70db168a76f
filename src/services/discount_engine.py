"""Promotion evaluation for carts.

Pure functions over immutable values: no database or network access. The
discount service loads rules and feeds them in; the order service applies
the outcome.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any, Iterable, Sequence

from src.models.discount import DiscountStatus, DiscountType

CENTS = Decimal("0.01")
ZERO = Decimal("0")

INVALID_CODE_REASON = "Invalid or expired promo code"
NOT_APPLICABLE_REASON = "Promo code not applicable to selected items"


def to_decimal(value: Any) -> Decimal | None:
    """Convert a stored numeric (str, int, float, Decimal) to Decimal."""
    if value is None or value == "":
        return None
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def quantize(amount: Decimal) -> Decimal:
    """Round a monetary amount to 2 decimal places for storage or display."""
    return amount.quantize(CENTS, rounding=ROUND_HALF_UP)


def _parse_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True)
class CartLine:
    """A priced cart line captured at snapshot time."""

    product_id: int
    package_id: int
    product_name: str
    package_name: str
    unit_price: Decimal
    quantity: int
    weight_grams: int | None = None

    @property
    def subtotal(self) -> Decimal:
        return self.unit_price * self.quantity


@dataclass(frozen=True)
class DiscountRule:
    """A promotional rule as loaded from the discounts table."""

    id: int
    name: str
    type: DiscountType
    start_date: datetime
    end_date: datetime
    status: DiscountStatus = DiscountStatus.ACTIVE
    code: str | None = None
    percentage: Decimal | None = None
    flat_amount: Decimal | None = None
    min_cart_value: Decimal | None = None
    buy_quantity: int | None = None
    get_quantity: int | None = None
    free_product_id: int | None = None
    free_package_id: int | None = None
    free_product_quantity: int | None = None
    linked_product_ids: frozenset[int] = field(default_factory=frozenset)

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "DiscountRule":
        """Build a rule from a discounts row (with linked_product_ids attached)."""
        return cls(
            id=row["id"],
            name=row["name"],
            type=DiscountType(row["type"]),
            start_date=_parse_datetime(row["start_date"]),
            end_date=_parse_datetime(row["end_date"]),
            status=DiscountStatus(row.get("status") or DiscountStatus.ACTIVE.value),
            code=row.get("code"),
            percentage=to_decimal(row.get("discount_percentage")),
            flat_amount=to_decimal(row.get("flat_discount_amount")),
            min_cart_value=to_decimal(row.get("min_cart_value")),
            buy_quantity=row.get("buy_quantity"),
            get_quantity=row.get("get_quantity"),
            free_product_id=row.get("free_product_id"),
            free_package_id=row.get("free_package_id"),
            free_product_quantity=row.get("free_product_quantity"),
            linked_product_ids=frozenset(row.get("linked_product_ids") or ()),
        )

    def is_live(self, now: datetime) -> bool:
        """Active flag set and now inside [start_date, end_date].

        Checked at evaluation time so correctness never depends on the
        expiry job having run.
        """
        return (
            self.status == DiscountStatus.ACTIVE
            and self.start_date <= now <= self.end_date
        )

    def applies_to(self, product_ids: Iterable[int]) -> bool:
        """All-or-nothing product restriction check for a whole cart."""
        if not self.linked_product_ids:
            return True
        return any(pid in self.linked_product_ids for pid in product_ids)

    def covers(self, product_id: int) -> bool:
        return not self.linked_product_ids or product_id in self.linked_product_ids

    def meets_minimum(self, cart_value: Decimal) -> bool:
        return self.min_cart_value is None or cart_value >= self.min_cart_value


class DiscountKind(str, Enum):
    """What an eligible discount contributes to an order."""

    MONETARY = "monetary"
    FREE_UNITS = "free_units"
    FREE_PRODUCT = "free_product"


@dataclass(frozen=True)
class FreeItem:
    """Synthetic zero-priced line granted by a promotion."""

    product_id: int
    package_id: int
    product_name: str
    package_name: str
    quantity: int


@dataclass(frozen=True)
class EligibleDiscount:
    """One applicable promotion and its effect on the cart."""

    discount: DiscountRule
    kind: DiscountKind
    amount: Decimal
    description: str
    free_items: tuple[FreeItem, ...] = ()
    free_product_id: int | None = None
    free_package_id: int | None = None
    free_product_quantity: int = 0


@dataclass(frozen=True)
class CouponValidation:
    """Outcome of a coupon check. Business-rule failures are values, not errors."""

    valid: bool
    discount: DiscountRule | None = None
    amount: Decimal = ZERO
    reason: str | None = None


def clamp_discount(amount: Decimal, cart_value: Decimal) -> Decimal:
    """Bound a discount to [0, cart_value]."""
    if amount < ZERO:
        return ZERO
    return min(amount, cart_value)


def _percentage_of(cart_value: Decimal, percentage: Decimal | None) -> Decimal:
    if percentage is None:
        return ZERO
    return cart_value * percentage / Decimal(100)


def _money(amount: Decimal) -> str:
    return f"₹{quantize(amount)}"


def describe(rule: DiscountRule, amount: Decimal = ZERO) -> str:
    """Customer-facing one-line description of a rule."""
    if rule.type == DiscountType.PERCENTAGE_OFF:
        return f"{rule.percentage.normalize():f}% off applied" if rule.percentage is not None else rule.name
    if rule.type == DiscountType.CART_VALUE_OFF:
        pct = f"{rule.percentage.normalize():f}" if rule.percentage is not None else "0"
        return f"{pct}% off on orders above {_money(rule.min_cart_value or ZERO)}"
    if rule.type == DiscountType.BUY_X_GET_Y:
        return f"Buy {rule.buy_quantity} Get {rule.get_quantity} Free"
    if rule.type == DiscountType.FREE_PRODUCT:
        return f"Free product on orders above {_money(rule.min_cart_value or ZERO)}"
    return f"Save {_money(amount)}"


def buy_x_get_y_free_items(rule: DiscountRule, line_items: Sequence[CartLine]) -> tuple[FreeItem, ...]:
    """Free units per eligible line: floor(quantity / buy) * get.

    Each covered line is evaluated on its own; lines earning nothing are
    omitted.
    """
    if not rule.buy_quantity or not rule.get_quantity or rule.buy_quantity <= 0:
        return ()

    free_items = []
    for line in line_items:
        if not rule.covers(line.product_id):
            continue
        free_qty = (line.quantity // rule.buy_quantity) * rule.get_quantity
        if free_qty <= 0:
            continue
        free_items.append(
            FreeItem(
                product_id=line.product_id,
                package_id=line.package_id,
                product_name=line.product_name,
                package_name=line.package_name,
                quantity=free_qty,
            )
        )
    return tuple(free_items)


def evaluate_rule(
    rule: DiscountRule,
    cart_value: Decimal,
    product_ids: Iterable[int],
    line_items: Sequence[CartLine],
    now: datetime,
) -> EligibleDiscount | None:
    """Evaluate one auto-applicable rule against a cart.

    Returns None when the rule is coupon-gated, not live, restricted to
    products absent from the cart, or its type-specific condition fails.
    """
    if rule.type.requires_code or not rule.is_live(now):
        return None
    if not rule.applies_to(product_ids):
        return None

    if rule.type == DiscountType.PERCENTAGE_OFF:
        amount = clamp_discount(_percentage_of(cart_value, rule.percentage), cart_value)
        return EligibleDiscount(rule, DiscountKind.MONETARY, amount, describe(rule, amount))

    if rule.type == DiscountType.CART_VALUE_OFF:
        if rule.min_cart_value is None or cart_value < rule.min_cart_value:
            return None
        amount = clamp_discount(_percentage_of(cart_value, rule.percentage), cart_value)
        return EligibleDiscount(rule, DiscountKind.MONETARY, amount, describe(rule, amount))

    if rule.type == DiscountType.BUY_X_GET_Y:
        # Quantity based: never contributes to the monetary discount.
        return EligibleDiscount(
            rule,
            DiscountKind.FREE_UNITS,
            ZERO,
            describe(rule),
            free_items=buy_x_get_y_free_items(rule, line_items),
        )

    if rule.type == DiscountType.FREE_PRODUCT:
        if rule.min_cart_value is None or cart_value < rule.min_cart_value:
            return None
        return EligibleDiscount(
            rule,
            DiscountKind.FREE_PRODUCT,
            ZERO,
            describe(rule),
            free_product_id=rule.free_product_id,
            free_package_id=rule.free_package_id,
            free_product_quantity=rule.free_product_quantity or 1,
        )

    return None


def evaluate_auto_applicable(
    discounts: Iterable[DiscountRule],
    cart_value: Decimal,
    product_ids: Iterable[int],
    line_items: Sequence[CartLine],
    now: datetime | None = None,
) -> list[EligibleDiscount]:
    """Return every auto-applicable discount the cart qualifies for.

    Args:
        discounts: Candidate rules (any status; inactive ones are skipped).
        cart_value: Cart subtotal before discounts.
        product_ids: Product ids present in the cart.
        line_items: Priced cart lines, used for quantity promotions.
        now: Evaluation instant, defaults to the current UTC time.

    Returns:
        list[EligibleDiscount]: Eligible discounts in input order.
    """
    now = now or datetime.now(timezone.utc)
    product_ids = list(product_ids)
    eligible = []
    for rule in discounts:
        result = evaluate_rule(rule, cart_value, product_ids, line_items, now)
        if result is not None:
            eligible.append(result)
    return eligible


def best_monetary(eligible: Iterable[EligibleDiscount]) -> EligibleDiscount | None:
    """Pick the single largest monetary discount (ties keep the first)."""
    best = None
    for candidate in eligible:
        if candidate.kind != DiscountKind.MONETARY or candidate.amount <= ZERO:
            continue
        if best is None or candidate.amount > best.amount:
            best = candidate
    return best


def coupon_amount(rule: DiscountRule, cart_value: Decimal) -> Decimal:
    """Monetary effect of a coupon-gated rule, clamped to the cart value."""
    if rule.type == DiscountType.COUPON_CODE and rule.percentage is not None:
        raw = _percentage_of(cart_value, rule.percentage)
    else:
        raw = rule.flat_amount or ZERO
    return clamp_discount(raw, cart_value)


def validate_coupon(
    candidates: Iterable[DiscountRule],
    code: str,
    cart_value: Decimal,
    product_ids: Iterable[int],
    now: datetime | None = None,
) -> CouponValidation:
    """Check a customer-entered code against candidate rules.

    Unknown, expired, inactive and non-coupon codes share one generic
    reason so the response does not reveal whether a code ever existed.

    Args:
        candidates: Rules whose code may match (matched case-insensitively here).
        code: The code as typed by the customer.
        cart_value: Cart subtotal before discounts.
        product_ids: Product ids present in the cart.
        now: Evaluation instant, defaults to the current UTC time.

    Returns:
        CouponValidation: valid flag with either the rule and amount or a reason.
    """
    now = now or datetime.now(timezone.utc)
    wanted = (code or "").strip().casefold()
    if not wanted:
        return CouponValidation(valid=False, reason=INVALID_CODE_REASON)

    rule = next(
        (
            d for d in candidates
            if d.code
            and d.code.casefold() == wanted
            and d.type.requires_code
            and d.is_live(now)
        ),
        None,
    )
    if rule is None:
        return CouponValidation(valid=False, reason=INVALID_CODE_REASON)

    if not rule.meets_minimum(cart_value):
        return CouponValidation(
            valid=False,
            discount=rule,
            reason=f"Minimum cart value {_money(rule.min_cart_value)} required",
        )

    if not rule.applies_to(product_ids):
        return CouponValidation(valid=False, discount=rule, reason=NOT_APPLICABLE_REASON)

    return CouponValidation(valid=True, discount=rule, amount=coupon_amount(rule, cart_value))
