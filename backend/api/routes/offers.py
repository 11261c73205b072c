"""Offer endpoints: listing, CRUD and price history."""

from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from api.schemas.common import PaginationParams
from api.schemas.merchant import MerchantSummary
from api.schemas.offer import (
    CompetingOffer,
    OfferCreate,
    OfferDetailResponse,
    OfferHistoryResponse,
    OfferListResponse,
    OfferResponse,
    OfferUpdate,
    PriceHistoryResponse,
    PriceStats,
)
from app.config import get_settings
from app.dependencies import get_db
from core.constants import OfferSort
from core.filters import Equals, Range
from core.utils import calculate_offset, calculate_total_pages
from services.category_service import CategoryService
from services.offer_service import OfferService

router = APIRouter(tags=["offers"])


@router.get("/", response_model=OfferListResponse)
async def list_offers(
    min_price: Optional[Decimal] = Query(None, ge=0),
    max_price: Optional[Decimal] = Query(None, ge=0),
    in_stock: Optional[bool] = None,
    merchant_id: Optional[int] = None,
    product_id: Optional[int] = None,
    category_id: Optional[int] = Query(None, description="Matches the category and its whole subtree"),
    has_discount: Optional[bool] = None,
    search: Optional[str] = Query(None, description="Substring of product name, brand or model"),
    sort: OfferSort = OfferSort.NEWEST,
    pagination: PaginationParams = Depends(),
    db: AsyncSession = Depends(get_db),
) -> OfferListResponse:
    """
    List offers with filtering and sorting.
    """
    filters = []
    if min_price is not None or max_price is not None:
        filters.append(Range("price", gte=min_price, lte=max_price))
    if in_stock is not None:
        filters.append(Equals("in_stock", in_stock))
    if merchant_id is not None:
        filters.append(Equals("merchant_id", merchant_id))
    if product_id is not None:
        filters.append(Equals("product_id", product_id))

    category_ids = None
    if category_id is not None:
        descendants = await CategoryService(db).get_descendant_ids(category_id)
        category_ids = [category_id, *descendants]

    offers, total = await OfferService(db).list_offers(
        filters=filters,
        category_ids=category_ids,
        has_discount=has_discount,
        search=search,
        sort=sort,
        offset=calculate_offset(pagination.page, pagination.per_page),
        limit=pagination.per_page,
    )
    return OfferListResponse(
        offers=[OfferResponse.model_validate(o) for o in offers],
        total=total,
        page=pagination.page,
        per_page=pagination.per_page,
        total_pages=calculate_total_pages(total, pagination.per_page),
    )


@router.post("/", response_model=OfferResponse, status_code=status.HTTP_201_CREATED)
async def create_offer(
    request: OfferCreate,
    db: AsyncSession = Depends(get_db),
) -> OfferResponse:
    """
    Create an offer and its first price-history record.
    """
    data = request.model_dump(exclude={"product_id", "merchant_id", "price", "original_price"})
    offer = await OfferService(db).create_offer(
        product_id=request.product_id,
        merchant_id=request.merchant_id,
        price=request.price,
        original_price=request.original_price,
        **data,
    )
    return OfferResponse.model_validate(offer)


@router.get("/{offer_id}", response_model=OfferDetailResponse)
async def get_offer(
    offer_id: int,
    db: AsyncSession = Depends(get_db),
) -> OfferDetailResponse:
    """
    Get an offer with its 30 most recent history records, price stats over
    the other merchants' offers, the merchant's other offers and the
    cheapest competing offers for the same product.
    """
    svc = OfferService(db)
    offer = await svc.get_or_404(offer_id)
    history = await svc.get_history(offer_id, limit=30)
    price_stats = await svc.get_price_stats(
        offer.product_id, exclude_merchant_id=offer.merchant_id
    )
    merchant_offers = await svc.get_merchant_offers(offer.merchant_id, exclude_offer_id=offer.id)
    competitors = await svc.get_competing_offers(offer.product_id, offer.merchant_id)

    base = OfferResponse.model_validate(offer).model_dump()
    return OfferDetailResponse(
        **base,
        history=[OfferHistoryResponse.model_validate(h) for h in history],
        price_stats=PriceStats(**price_stats),
        merchant_offers=[OfferResponse.model_validate(o) for o in merchant_offers],
        other_merchants=[
            CompetingOffer(
                **OfferResponse.model_validate(o).model_dump(),
                merchant=MerchantSummary.model_validate(m),
            )
            for o, m in competitors
        ],
    )


@router.put("/{offer_id}", response_model=OfferResponse)
async def update_offer(
    offer_id: int,
    request: OfferUpdate,
    db: AsyncSession = Depends(get_db),
) -> OfferResponse:
    """
    Update an offer. A patch matching the current state changes nothing.
    """
    offer = await OfferService(db).update_offer(
        offer_id, request.model_dump(exclude_unset=True)
    )
    return OfferResponse.model_validate(offer)


@router.delete("/{offer_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_offer(
    offer_id: int,
    db: AsyncSession = Depends(get_db),
) -> None:
    await OfferService(db).delete_offer(offer_id)


@router.get("/{offer_id}/price-history", response_model=PriceHistoryResponse)
async def get_price_history(
    offer_id: int,
    days: int = Query(None, ge=1, description="Window size in days"),
    db: AsyncSession = Depends(get_db),
) -> PriceHistoryResponse:
    """
    Price points of the last ``days`` days (oldest first) with summary stats.
    """
    days = days or get_settings().PRICE_HISTORY_DEFAULT_DAYS
    result = await OfferService(db).get_price_history(offer_id, days)
    return PriceHistoryResponse(**result)
