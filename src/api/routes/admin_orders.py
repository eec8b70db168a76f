"""Admin order and shipment API routes."""

from fastapi import APIRouter, Path, Query, status

from src.api.deps import AdminUser
from src.models.order import OrderStatus
from src.schemas.order import (
    OrderDetailResponse,
    OrderListResponse,
    OrderResponse,
    OrderStatusUpdate,
    PaymentStatusUpdate,
)
from src.schemas.shipment import LabelResponse, ShipmentOutcomeResponse, TrackingResponse
from src.services.order_service import OrderService
from src.services.order_status_service import OrderStatusService
from src.services.shipment_service import ShipmentService

router = APIRouter(prefix="/admin/orders", tags=["admin-orders"])


@router.get(
    "",
    response_model=OrderListResponse,
    summary="List all orders",
)
async def list_orders(
    admin: AdminUser,
    status_filter: OrderStatus | None = Query(default=None, alias="status", description="Filter by status"),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
) -> OrderListResponse:
    service = OrderService()
    orders = await service.list_all_orders(status_filter, limit=limit, offset=offset)
    return OrderListResponse(items=[OrderResponse.model_validate(o) for o in orders])


@router.get(
    "/{order_id}",
    response_model=OrderDetailResponse,
    summary="Get order",
)
async def get_order(admin: AdminUser, order_id: int = Path(ge=1)) -> OrderDetailResponse:
    service = OrderService()
    return OrderDetailResponse.model_validate(await service.get_order_admin(order_id))


@router.patch(
    "/{order_id}/status",
    response_model=OrderResponse,
    summary="Change order status",
    description="Applies a legal status transition. Cancelling also cancels the carrier shipment if one exists.",
    responses={409: {"description": "Transition not allowed from the current status"}},
)
async def update_status(
    data: OrderStatusUpdate,
    admin: AdminUser,
    order_id: int = Path(ge=1),
) -> OrderResponse:
    service = OrderStatusService()
    order = await service.update_order_status(order_id, data.status)
    return OrderResponse.model_validate(order)


@router.patch(
    "/{order_id}/payment-status",
    response_model=OrderResponse,
    summary="Change payment status",
)
async def update_payment_status(
    data: PaymentStatusUpdate,
    admin: AdminUser,
    order_id: int = Path(ge=1),
) -> OrderResponse:
    service = OrderStatusService()
    order = await service.update_payment_status(order_id, data.payment_status)
    return OrderResponse.model_validate(order)


@router.post(
    "/{order_id}/shipment",
    response_model=ShipmentOutcomeResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create shipment",
    description=(
        "Allocates a waybill and manifests the order with the carrier. The shipment is stored even "
        "if the carrier rejects it; check carrier_ok."
    ),
    responses={409: {"description": "Order already has a shipment"}, 502: {"description": "No waybill available"}},
)
async def create_shipment(admin: AdminUser, order_id: int = Path(ge=1)) -> ShipmentOutcomeResponse:
    service = ShipmentService()
    outcome = await service.create_shipment_for_order(order_id)
    return ShipmentOutcomeResponse.from_outcome(outcome)


@router.post(
    "/{order_id}/shipment/cancel",
    response_model=ShipmentOutcomeResponse,
    summary="Cancel shipment",
)
async def cancel_shipment(admin: AdminUser, order_id: int = Path(ge=1)) -> ShipmentOutcomeResponse:
    service = ShipmentService()
    outcome = await service.cancel_shipment_for_order(order_id)
    return ShipmentOutcomeResponse.from_outcome(outcome)


@router.get(
    "/{order_id}/shipment/tracking",
    response_model=TrackingResponse,
    summary="Track shipment",
)
async def track_shipment(admin: AdminUser, order_id: int = Path(ge=1)) -> TrackingResponse:
    service = ShipmentService()
    return TrackingResponse.from_tracking(await service.track_shipment_for_order(order_id))


@router.post(
    "/{order_id}/shipment/label",
    response_model=LabelResponse,
    summary="Generate shipping label",
)
async def generate_label(admin: AdminUser, order_id: int = Path(ge=1)) -> LabelResponse:
    service = ShipmentService()
    return LabelResponse.model_validate(await service.generate_label_for_order(order_id))
