"""Product CRUD endpoints and per-product price comparison."""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from api.schemas.common import PaginationParams
from api.schemas.offer import OfferResponse
from api.schemas.product import (
    PriceStats,
    ProductCreate,
    ProductListResponse,
    ProductOffersResponse,
    ProductResponse,
    ProductStatsResponse,
    ProductUpdate,
    SimilarProduct,
    SimilarProductsResponse,
)
from app.dependencies import get_db
from core.filters import Equals, Like
from core.utils import calculate_offset
from services.offer_service import OfferService
from services.product_service import ProductService

router = APIRouter(tags=["products"])


@router.get("/", response_model=ProductListResponse)
async def list_products(
    search: str = Query(None, description="Substring of the product name"),
    brand: str = Query(None),
    category_id: int = Query(None, description="Direct category only; see /categories/{id}/products for subtrees"),
    pagination: PaginationParams = Depends(),
    db: AsyncSession = Depends(get_db),
) -> ProductListResponse:
    filters = []
    if search:
        filters.append(Like("name", search))
    if brand:
        filters.append(Equals("brand", brand))
    if category_id is not None:
        filters.append(Equals("category_id", category_id))

    products, total = await ProductService(db).list(
        offset=calculate_offset(pagination.page, pagination.per_page),
        limit=pagination.per_page,
        filters=filters,
    )
    return ProductListResponse(
        products=[ProductResponse.model_validate(p) for p in products],
        total=total,
        page=pagination.page,
        per_page=pagination.per_page,
    )


@router.get("/stats", response_model=ProductStatsResponse)
async def get_product_stats(
    db: AsyncSession = Depends(get_db),
) -> ProductStatsResponse:
    """
    Catalog-wide product counts and the five most populated categories.
    """
    stats = await ProductService(db).get_catalog_stats()
    return ProductStatsResponse(**stats)


@router.post("/", response_model=ProductResponse, status_code=status.HTTP_201_CREATED)
async def create_product(
    request: ProductCreate,
    db: AsyncSession = Depends(get_db),
) -> ProductResponse:
    data = request.model_dump(exclude={"name", "category_id"}, exclude_none=True)
    product = await ProductService(db).create_product(
        request.name, category_id=request.category_id, **data
    )
    return ProductResponse.model_validate(product)


@router.get("/{product_id}", response_model=ProductResponse)
async def get_product(
    product_id: int,
    db: AsyncSession = Depends(get_db),
) -> ProductResponse:
    product = await ProductService(db).get_or_404(product_id)
    return ProductResponse.model_validate(product)


@router.put("/{product_id}", response_model=ProductResponse)
async def update_product(
    product_id: int,
    request: ProductUpdate,
    db: AsyncSession = Depends(get_db),
) -> ProductResponse:
    product = await ProductService(db).update_product(
        product_id, request.model_dump(exclude_unset=True)
    )
    return ProductResponse.model_validate(product)


@router.delete("/{product_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_product(
    product_id: int,
    db: AsyncSession = Depends(get_db),
) -> None:
    """
    Delete a product with all of its offers and their price history.
    """
    await ProductService(db).delete_product(product_id)


@router.get("/{product_id}/offers", response_model=ProductOffersResponse)
async def compare_product_offers(
    product_id: int,
    db: AsyncSession = Depends(get_db),
) -> ProductOffersResponse:
    """
    Price comparison: the product's active offers (in stock first, cheapest
    first) and aggregate stats over its in-stock offers.
    """
    product = await ProductService(db).get_or_404(product_id)
    offers_svc = OfferService(db)
    offers = await offers_svc.list_product_offers(product_id)
    stats = await offers_svc.get_price_stats(product_id)
    return ProductOffersResponse(
        product=ProductResponse.model_validate(product),
        offers=[OfferResponse.model_validate(o) for o in offers],
        stats=PriceStats(**stats),
    )


@router.get("/{product_id}/similar", response_model=SimilarProductsResponse)
async def get_similar_products(
    product_id: int,
    limit: int = Query(8, ge=1, le=50),
    db: AsyncSession = Depends(get_db),
) -> SimilarProductsResponse:
    """
    Products in the same category or of the same brand, with their cheapest price.
    """
    similar = await ProductService(db).get_similar_products(product_id, limit=limit)
    products = [
        SimilarProduct(**ProductResponse.model_validate(p).model_dump(), min_price=price)
        for p, price in similar
    ]
    return SimilarProductsResponse(products=products, total=len(products))
