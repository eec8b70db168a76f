"""Customer order API routes."""

from fastapi import APIRouter, Path, status

from src.api.deps import CurrentUser, OrderRateLimit
from src.schemas.order import (
    OrderDetailResponse,
    OrderListResponse,
    OrderResponse,
    PlaceOrderRequest,
    PlaceOrderResponse,
    ShippingChargeResponse,
    ShippingDetails,
)
from src.schemas.shipment import TrackingResponse
from src.services.order_service import OrderService
from src.services.order_status_service import OrderStatusService
from src.services.shipment_service import ShipmentService
from src.services.shipping_charge_service import ShippingChargeService

router = APIRouter(prefix="/orders", tags=["orders"])
shipping_router = APIRouter(prefix="/shipping", tags=["shipping"])


@router.post(
    "",
    response_model=PlaceOrderResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Place order",
    description="Turns the customer's cart into an order. Applies the coupon if given, otherwise the best automatic discount.",
)
async def place_order(
    data: PlaceOrderRequest,
    user: CurrentUser,
    _: OrderRateLimit,
) -> PlaceOrderResponse:
    """Place an order from the current cart.

    Args:
        data: Shipping details and optional coupon code.
        user: Authenticated customer.

    Returns:
        PlaceOrderResponse: Order identity and totals.
    """
    shipping = ShippingDetails.model_validate(data.model_dump(exclude={"coupon_code"}))
    if not shipping.customer_email and user.email:
        shipping.customer_email = user.email

    service = OrderService()
    placed = await service.place_order(user.user_id, shipping, data.coupon_code)
    return PlaceOrderResponse.model_validate(placed)


@router.get(
    "",
    response_model=OrderListResponse,
    summary="List my orders",
)
async def list_orders(user: CurrentUser) -> OrderListResponse:
    service = OrderService()
    orders = await service.list_orders_for_customer(user.user_id)
    return OrderListResponse(items=[OrderResponse.model_validate(o) for o in orders])


@router.get(
    "/{order_id}",
    response_model=OrderDetailResponse,
    summary="Get my order",
)
async def get_order(user: CurrentUser, order_id: int = Path(ge=1)) -> OrderDetailResponse:
    service = OrderService()
    order = await service.get_order(order_id, user.user_id)
    return OrderDetailResponse.model_validate(order)


@router.post(
    "/{order_id}/cancel",
    response_model=OrderResponse,
    summary="Cancel my order",
    description="Cancels a Pending or Shipped order. Delivered and cancelled orders cannot be cancelled.",
)
async def cancel_order(user: CurrentUser, order_id: int = Path(ge=1)) -> OrderResponse:
    service = OrderStatusService()
    order = await service.cancel_order(order_id, user.user_id)
    return OrderResponse.model_validate(order)


@router.get(
    "/{order_id}/tracking",
    response_model=TrackingResponse,
    summary="Track my order",
)
async def track_order(user: CurrentUser, order_id: int = Path(ge=1)) -> TrackingResponse:
    service = ShipmentService()
    result = await service.track_for_customer(order_id, user.user_id)
    return TrackingResponse.from_tracking(result)


@shipping_router.get(
    "/charge/{pincode}",
    response_model=ShippingChargeResponse,
    summary="Preview shipping charge",
    description="Quotes shipping to a pincode at the standard preview weight. Nothing is stored.",
)
async def preview_shipping_charge(
    user: CurrentUser,
    pincode: str = Path(pattern=r"^\d{6}$"),
) -> ShippingChargeResponse:
    service = ShippingChargeService()
    estimate = await service.preview_charge(pincode)
    return ShippingChargeResponse(
        pincode=pincode,
        weight_grams=service.settings.preview_weight_grams,
        total_amount=estimate.total_amount,
        zone=estimate.zone,
        breakdown=estimate.breakdown,
    )
