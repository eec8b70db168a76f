"""Admin discount API routes."""

from fastapi import APIRouter, Path, Query, status

from src.api.deps import AdminUser
from src.models.discount import DiscountStatus
from src.schemas.discount import (
    DiscountCreate,
    DiscountListResponse,
    DiscountResponse,
    ExpireDiscountsResponse,
)
from src.services.discount_service import DiscountService

router = APIRouter(prefix="/admin/discounts", tags=["admin-discounts"])


@router.get("", response_model=DiscountListResponse, summary="List discounts")
async def list_discounts(
    admin: AdminUser,
    status_filter: DiscountStatus | None = Query(default=None, alias="status"),
) -> DiscountListResponse:
    service = DiscountService()
    rows = await service.list_discounts(status_filter)
    return DiscountListResponse(items=[DiscountResponse.model_validate(row) for row in rows])


@router.post(
    "",
    response_model=DiscountResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create discount",
)
async def create_discount(data: DiscountCreate, admin: AdminUser) -> DiscountResponse:
    service = DiscountService()
    row = await service.create_discount(data.model_dump())
    return DiscountResponse.model_validate(row)


@router.post(
    "/expire",
    response_model=ExpireDiscountsResponse,
    summary="Expire discounts",
    description="Deactivates active discounts whose end date has passed. Safe to run repeatedly.",
)
async def expire_discounts(admin: AdminUser) -> ExpireDiscountsResponse:
    service = DiscountService()
    return ExpireDiscountsResponse(expired=await service.expire_discounts())


@router.get("/{discount_id}", response_model=DiscountResponse, summary="Get discount")
async def get_discount(admin: AdminUser, discount_id: int = Path(ge=1)) -> DiscountResponse:
    service = DiscountService()
    return DiscountResponse.model_validate(await service.get_discount(discount_id))


@router.put("/{discount_id}", response_model=DiscountResponse, summary="Replace discount")
async def update_discount(
    data: DiscountCreate,
    admin: AdminUser,
    discount_id: int = Path(ge=1),
) -> DiscountResponse:
    service = DiscountService()
    row = await service.update_discount(discount_id, data.model_dump())
    return DiscountResponse.model_validate(row)


@router.patch("/{discount_id}/toggle", response_model=DiscountResponse, summary="Toggle discount status")
async def toggle_discount(admin: AdminUser, discount_id: int = Path(ge=1)) -> DiscountResponse:
    service = DiscountService()
    return DiscountResponse.model_validate(await service.toggle_status(discount_id))
