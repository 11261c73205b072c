"""Merchant schemas."""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field


class MerchantCreate(BaseModel):
    """Request to create a merchant."""

    name: str = Field(min_length=1, max_length=255)
    website_url: Optional[str] = None
    logo_url: Optional[str] = None
    description: Optional[str] = None
    rating: Optional[float] = Field(default=None, ge=0, le=5)
    is_active: bool = True


class MerchantUpdate(BaseModel):
    """Partial merchant update."""

    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    website_url: Optional[str] = None
    logo_url: Optional[str] = None
    description: Optional[str] = None
    rating: Optional[float] = Field(default=None, ge=0, le=5)
    is_active: Optional[bool] = None


class MerchantResponse(BaseModel):
    id: int
    name: str
    slug: str
    website_url: Optional[str]
    logo_url: Optional[str]
    description: Optional[str]
    rating: float
    review_count: int
    product_count: int = Field(description="Number of offers the merchant lists")
    is_active: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class MerchantListResponse(BaseModel):
    merchants: List[MerchantResponse]
    total: int
    page: int
    per_page: int


class MerchantSummary(BaseModel):
    """Merchant fields shown next to a competing offer."""

    id: int
    name: str
    slug: str
    logo_url: Optional[str]
    rating: float
    review_count: int

    class Config:
        from_attributes = True


class MerchantProductStats(BaseModel):
    total_products: int = Field(description="Offers listed by the merchant")
    in_stock_count: int
    unique_products: int
    category_count: int
    min_price: Decimal
    max_price: Decimal
    avg_price: Decimal


class MerchantTopCategory(BaseModel):
    id: int
    name: str
    slug: str
    product_count: int = Field(description="Products with an in-stock offer from this merchant")


class MerchantDetailResponse(MerchantResponse):
    """Merchant with offer statistics and its strongest categories."""

    stats: MerchantProductStats
    top_categories: List[MerchantTopCategory] = Field(default_factory=list)
