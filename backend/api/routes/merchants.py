"""Merchant CRUD endpoints."""

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from api.schemas.common import PaginationParams
from api.schemas.merchant import (
    MerchantCreate,
    MerchantDetailResponse,
    MerchantListResponse,
    MerchantResponse,
    MerchantUpdate,
)
from app.dependencies import get_db
from core.filters import Like, parse_bool, parse_query_filters
from core.utils import calculate_offset
from services.merchant_service import MerchantService

router = APIRouter(tags=["merchants"])


MERCHANT_FILTERS = {
    "is_active": parse_bool,
    "rating": float,
    "review_count": int,
    "product_count": int,
}


@router.get("/", response_model=MerchantListResponse)
async def list_merchants(
    request: Request,
    search: str = Query(None, description="Substring of the merchant name"),
    pagination: PaginationParams = Depends(),
    db: AsyncSession = Depends(get_db),
) -> MerchantListResponse:
    """
    List merchants.

    Besides ``search``, accepts column filters such as ``is_active=true``,
    ``rating[gte]=4`` or ``product_count[in]=0,1``.
    """
    filters = parse_query_filters(
        request.query_params,
        MERCHANT_FILTERS,
        ignore=("page", "per_page", "sort", "search"),
    )
    if search:
        filters.append(Like("name", search))

    merchants, total = await MerchantService(db).list(
        offset=calculate_offset(pagination.page, pagination.per_page),
        limit=pagination.per_page,
        order_by="name",
        order_desc=False,
        filters=filters,
    )
    return MerchantListResponse(
        merchants=[MerchantResponse.model_validate(m) for m in merchants],
        total=total,
        page=pagination.page,
        per_page=pagination.per_page,
    )


@router.post("/", response_model=MerchantResponse, status_code=status.HTTP_201_CREATED)
async def create_merchant(
    request: MerchantCreate,
    db: AsyncSession = Depends(get_db),
) -> MerchantResponse:
    data = request.model_dump(exclude={"name"}, exclude_none=True)
    merchant = await MerchantService(db).create_merchant(request.name, **data)
    return MerchantResponse.model_validate(merchant)


@router.get("/{merchant_id}", response_model=MerchantDetailResponse)
async def get_merchant(
    merchant_id: int,
    db: AsyncSession = Depends(get_db),
) -> MerchantDetailResponse:
    """
    Get a merchant with its offer statistics and top categories.
    """
    svc = MerchantService(db)
    merchant = await svc.get_or_404(merchant_id)
    return MerchantDetailResponse(
        **MerchantResponse.model_validate(merchant).model_dump(),
        stats=await svc.get_product_stats(merchant_id),
        top_categories=await svc.get_top_categories(merchant_id),
    )


@router.put("/{merchant_id}", response_model=MerchantResponse)
async def update_merchant(
    merchant_id: int,
    request: MerchantUpdate,
    db: AsyncSession = Depends(get_db),
) -> MerchantResponse:
    merchant = await MerchantService(db).update_merchant(
        merchant_id, request.model_dump(exclude_unset=True)
    )
    return MerchantResponse.model_validate(merchant)


@router.delete("/{merchant_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_merchant(
    merchant_id: int,
    force: bool = Query(False, description="Also delete the merchant's offers"),
    db: AsyncSession = Depends(get_db),
) -> None:
    """
    Delete a merchant. Refused while it has offers unless ``force`` is set.
    """
    await MerchantService(db).delete_merchant(merchant_id, force=force)
