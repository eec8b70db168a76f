"""Customer discount API routes.

Evaluation always runs against the customer's stored cart, never against
client-supplied totals.
"""

from fastapi import APIRouter

from src.api.deps import CouponRateLimit, CurrentUser
from src.schemas.discount import (
    ActiveDiscountResponse,
    AutoApplyResponse,
    CouponValidateRequest,
    CouponValidationResponse,
    EligibleDiscountResponse,
)
from src.services.cart_service import CartService
from src.services.discount_engine import best_monetary, quantize
from src.services.discount_service import DiscountService

router = APIRouter(prefix="/discounts", tags=["discounts"])


@router.get(
    "/active",
    response_model=list[ActiveDiscountResponse],
    summary="List live offers",
)
async def list_active_discounts(user: CurrentUser) -> list[ActiveDiscountResponse]:
    service = DiscountService()
    rules = await service.list_active()
    return [ActiveDiscountResponse.from_rule(rule) for rule in rules]


@router.post(
    "/auto-apply",
    response_model=AutoApplyResponse,
    summary="Evaluate automatic discounts",
    description="Returns every automatic discount the current cart qualifies for and which one checkout would apply.",
)
async def auto_apply_discounts(user: CurrentUser) -> AutoApplyResponse:
    """Evaluate automatic discounts against the customer's cart.

    Raises:
        EmptyCartError: If the cart is empty.
    """
    snapshot = await CartService().snapshot(user.user_id)
    eligible = await DiscountService().auto_apply(snapshot.subtotal, snapshot.product_ids, snapshot.lines)
    best = best_monetary(eligible)
    return AutoApplyResponse(
        cart_value=quantize(snapshot.subtotal),
        discounts=[EligibleDiscountResponse.from_result(result) for result in eligible],
        best_discount_id=best.discount.id if best else None,
    )


@router.post(
    "/validate",
    response_model=CouponValidationResponse,
    summary="Validate a coupon code",
    description="Checks a coupon against the current cart. Rate limited per customer.",
)
async def validate_coupon(
    data: CouponValidateRequest,
    user: CurrentUser,
    _: CouponRateLimit,
) -> CouponValidationResponse:
    snapshot = await CartService().snapshot(user.user_id)
    result = await DiscountService().validate_coupon(data.code, snapshot.subtotal, snapshot.product_ids)
    return CouponValidationResponse.from_result(result)
