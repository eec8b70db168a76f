"""Discount Pydantic schemas for API request/response models."""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from src.models.discount import DiscountStatus, DiscountType
from src.services.discount_engine import CouponValidation, DiscountRule, EligibleDiscount, describe, quantize

# Type-specific fields each discount type may (and must, see REQUIRED_FIELDS) carry.
TYPE_FIELDS: dict[DiscountType, set[str]] = {
    DiscountType.PERCENTAGE_OFF: {"discount_percentage"},
    DiscountType.CART_VALUE_OFF: {"discount_percentage", "min_cart_value"},
    DiscountType.BUY_X_GET_Y: {"buy_quantity", "get_quantity"},
    DiscountType.FREE_PRODUCT: {"min_cart_value", "free_product_id", "free_package_id", "free_product_quantity"},
    DiscountType.COUPON_CODE: {"code", "discount_percentage", "flat_discount_amount", "min_cart_value"},
    DiscountType.FLAT_PRICE_OFF: {"code", "flat_discount_amount", "min_cart_value"},
}

REQUIRED_FIELDS: dict[DiscountType, set[str]] = {
    DiscountType.PERCENTAGE_OFF: {"discount_percentage"},
    DiscountType.CART_VALUE_OFF: {"discount_percentage", "min_cart_value"},
    DiscountType.BUY_X_GET_Y: {"buy_quantity", "get_quantity"},
    DiscountType.FREE_PRODUCT: {"min_cart_value", "free_product_id", "free_package_id", "free_product_quantity"},
    DiscountType.COUPON_CODE: {"code"},
    DiscountType.FLAT_PRICE_OFF: {"code", "flat_discount_amount"},
}

ALL_TYPE_FIELDS = set().union(*TYPE_FIELDS.values())


class DiscountCreate(BaseModel):
    """Schema for creating or replacing a discount (admin)."""

    name: str = Field(min_length=1, max_length=200, description="Display name")
    type: DiscountType = Field(description="Discount type")
    code: str | None = Field(default=None, max_length=50, description="Coupon code (coupon types only)")
    discount_percentage: Decimal | None = Field(default=None, gt=0, description="Percentage off")
    flat_discount_amount: Decimal | None = Field(default=None, gt=0, description="Flat amount off")
    min_cart_value: Decimal | None = Field(default=None, ge=0, description="Minimum cart value")
    buy_quantity: int | None = Field(default=None, ge=1, description="Units to buy (BuyXGetY)")
    get_quantity: int | None = Field(default=None, ge=1, description="Free units earned (BuyXGetY)")
    free_product_id: int | None = Field(default=None, description="Free product id")
    free_package_id: int | None = Field(default=None, description="Free product package id")
    free_product_quantity: int | None = Field(default=None, ge=1, description="Free product quantity")
    start_date: datetime = Field(description="Start of validity window")
    end_date: datetime = Field(description="End of validity window")
    status: DiscountStatus = Field(default=DiscountStatus.ACTIVE, description="Availability flag")
    linked_product_ids: list[int] = Field(default_factory=list, description="Restrict to products (empty = all)")

    @model_validator(mode="after")
    def check_type_fields(self) -> "DiscountCreate":
        if self.end_date <= self.start_date:
            raise ValueError("end_date must be after start_date")

        if self.code is not None and not self.code.strip():
            self.code = None

        allowed = TYPE_FIELDS[self.type]
        unexpected = sorted(f for f in ALL_TYPE_FIELDS - allowed if getattr(self, f) is not None)
        if unexpected:
            raise ValueError(f"{self.type.value} discounts cannot set: {', '.join(unexpected)}")

        missing = sorted(f for f in REQUIRED_FIELDS[self.type] if getattr(self, f) is None)
        if missing:
            raise ValueError(f"{self.type.value} discounts require: {', '.join(missing)}")

        if self.type == DiscountType.COUPON_CODE and (self.discount_percentage is None) == (self.flat_discount_amount is None):
            raise ValueError("Coupon Code discounts require exactly one of discount_percentage or flat_discount_amount")
        return self


class DiscountResponse(BaseModel):
    """Schema for admin discount responses."""

    model_config = ConfigDict(from_attributes=True)

    id: int = Field(description="Discount identifier")
    name: str = Field(description="Display name")
    type: DiscountType = Field(description="Discount type")
    code: str | None = Field(default=None, description="Coupon code")
    discount_percentage: Decimal | None = Field(default=None, description="Percentage off")
    flat_discount_amount: Decimal | None = Field(default=None, description="Flat amount off")
    min_cart_value: Decimal | None = Field(default=None, description="Minimum cart value")
    buy_quantity: int | None = Field(default=None, description="Units to buy")
    get_quantity: int | None = Field(default=None, description="Free units earned")
    free_product_id: int | None = Field(default=None, description="Free product id")
    free_package_id: int | None = Field(default=None, description="Free product package id")
    free_product_quantity: int | None = Field(default=None, description="Free product quantity")
    start_date: datetime = Field(description="Start of validity window")
    end_date: datetime = Field(description="End of validity window")
    status: DiscountStatus = Field(description="Availability flag")
    linked_product_ids: list[int] = Field(default_factory=list, description="Restricted products")


class DiscountListResponse(BaseModel):
    """Schema for admin discount lists."""

    items: list[DiscountResponse] = Field(description="Discounts")


class ExpireDiscountsResponse(BaseModel):
    """Schema for the expiry job result."""

    expired: int = Field(description="Number of discounts deactivated")


class ActiveDiscountResponse(BaseModel):
    """Customer-facing view of a live discount. Coupon codes are never exposed."""

    id: int = Field(description="Discount identifier")
    name: str = Field(description="Display name")
    type: DiscountType = Field(description="Discount type")
    description: str = Field(description="Human-readable summary")
    requires_code: bool = Field(description="Whether a coupon code must be entered")
    min_cart_value: Decimal | None = Field(default=None, description="Minimum cart value")
    end_date: datetime = Field(description="Offer end")
    linked_product_ids: list[int] = Field(default_factory=list, description="Restricted products")

    @classmethod
    def from_rule(cls, rule: DiscountRule) -> "ActiveDiscountResponse":
        return cls(
            id=rule.id,
            name=rule.name,
            type=rule.type,
            description=rule.name if rule.type.requires_code else describe(rule),
            requires_code=rule.type.requires_code,
            min_cart_value=rule.min_cart_value,
            end_date=rule.end_date,
            linked_product_ids=sorted(rule.linked_product_ids),
        )


class FreeItemResponse(BaseModel):
    """Free units granted by a promotion."""

    model_config = ConfigDict(from_attributes=True)

    product_id: int
    package_id: int
    product_name: str
    package_name: str
    quantity: int


class EligibleDiscountResponse(BaseModel):
    """One discount the cart qualifies for."""

    discount_id: int = Field(description="Discount identifier")
    name: str = Field(description="Display name")
    type: DiscountType = Field(description="Discount type")
    kind: str = Field(description="monetary, free_units or free_product")
    amount: Decimal = Field(description="Monetary discount (0 for unit-based promotions)")
    description: str = Field(description="Human-readable summary")
    free_items: list[FreeItemResponse] = Field(default_factory=list, description="Free units earned")
    free_product_id: int | None = Field(default=None, description="Free add-on product")
    free_package_id: int | None = Field(default=None, description="Free add-on package")
    free_product_quantity: int = Field(default=0, description="Free add-on quantity")

    @classmethod
    def from_result(cls, result: EligibleDiscount) -> "EligibleDiscountResponse":
        return cls(
            discount_id=result.discount.id,
            name=result.discount.name,
            type=result.discount.type,
            kind=result.kind.value,
            amount=quantize(result.amount),
            description=result.description,
            free_items=[FreeItemResponse.model_validate(item) for item in result.free_items],
            free_product_id=result.free_product_id,
            free_package_id=result.free_package_id,
            free_product_quantity=result.free_product_quantity,
        )


class AutoApplyResponse(BaseModel):
    """Discounts applicable to the customer's current cart."""

    cart_value: Decimal = Field(description="Cart subtotal")
    discounts: list[EligibleDiscountResponse] = Field(description="Eligible discounts")
    best_discount_id: int | None = Field(default=None, description="Monetary discount applied at checkout")


class CouponValidateRequest(BaseModel):
    """Schema for POST /discounts/validate."""

    code: str = Field(min_length=1, max_length=50, description="Coupon code")


class CouponValidationResponse(BaseModel):
    """Coupon check against the customer's current cart."""

    valid: bool = Field(description="Whether the coupon applies")
    discount_id: int | None = Field(default=None, description="Matched discount")
    name: str | None = Field(default=None, description="Discount name")
    amount: Decimal = Field(default=Decimal("0.00"), description="Discount amount")
    reason: str | None = Field(default=None, description="Why the coupon was rejected")

    @classmethod
    def from_result(cls, result: CouponValidation) -> "CouponValidationResponse":
        if not result.valid:
            # Rule details are only revealed for codes that are live
            return cls(valid=False, reason=result.reason)
        return cls(
            valid=True,
            discount_id=result.discount.id,
            name=result.discount.name,
            amount=quantize(result.amount),
        )
