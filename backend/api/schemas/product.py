"""Product schemas."""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from api.schemas.category import CategoryStats
from api.schemas.offer import OfferResponse, PriceStats


class ProductCreate(BaseModel):
    """Request to create a product."""

    name: str = Field(min_length=1, max_length=500)
    category_id: Optional[int] = None
    description: Optional[str] = None
    brand: Optional[str] = None
    model: Optional[str] = None
    image_url: Optional[str] = None
    is_active: bool = True


class ProductUpdate(BaseModel):
    """Partial product update."""

    name: Optional[str] = Field(default=None, min_length=1, max_length=500)
    category_id: Optional[int] = None
    description: Optional[str] = None
    brand: Optional[str] = None
    model: Optional[str] = None
    image_url: Optional[str] = None
    is_active: Optional[bool] = None


class ProductResponse(BaseModel):
    id: int
    name: str
    slug: str
    description: Optional[str]
    brand: Optional[str]
    model: Optional[str]
    image_url: Optional[str]
    category_id: Optional[int]
    is_active: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class ProductListResponse(BaseModel):
    products: List[ProductResponse]
    total: int
    page: int
    per_page: int


class ProductOffersResponse(BaseModel):
    """Price comparison for one product."""

    product: ProductResponse
    offers: List[OfferResponse]
    stats: PriceStats


class SimilarProduct(ProductResponse):
    """Product sharing the category or brand, with its cheapest in-stock price."""

    min_price: Optional[Decimal] = None


class SimilarProductsResponse(BaseModel):
    products: List[SimilarProduct]
    total: int


class ProductStatsResponse(BaseModel):
    """Catalog-wide product figures."""

    total_products: int
    new_products: int = Field(description="Products created in the last 30 days")
    total_brands: int
    in_stock_products: int = Field(description="Products with at least one in-stock offer")
    top_categories: List[CategoryStats]
