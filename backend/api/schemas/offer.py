"""Offer and price-history schemas."""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from api.schemas.merchant import MerchantSummary
from core.constants import OfferCondition


class OfferCreate(BaseModel):
    """Request to create an offer."""

    product_id: int
    merchant_id: int
    price: Decimal = Field(ge=0, description="Current price")
    original_price: Optional[Decimal] = Field(default=None, ge=0, description="'Was' price for discount display")
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)
    in_stock: bool = True
    stock_quantity: Optional[int] = Field(default=None, ge=0)
    shipping_cost: Decimal = Field(default=Decimal("0"), ge=0)
    free_shipping: bool = False
    delivery_time: Optional[str] = None
    condition: OfferCondition = OfferCondition.NEW
    warranty: Optional[str] = None
    url: Optional[str] = None
    affiliate_url: Optional[str] = None
    is_active: bool = True

    class Config:
        use_enum_values = True


class OfferUpdate(BaseModel):
    """Partial offer update. Unset fields are left alone."""

    price: Optional[Decimal] = Field(default=None, ge=0)
    original_price: Optional[Decimal] = Field(default=None, ge=0)
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)
    in_stock: Optional[bool] = None
    stock_quantity: Optional[int] = Field(default=None, ge=0)
    shipping_cost: Optional[Decimal] = Field(default=None, ge=0)
    free_shipping: Optional[bool] = None
    delivery_time: Optional[str] = None
    condition: Optional[OfferCondition] = None
    warranty: Optional[str] = None
    url: Optional[str] = None
    affiliate_url: Optional[str] = None
    is_active: Optional[bool] = None

    class Config:
        use_enum_values = True


class OfferResponse(BaseModel):
    id: int
    product_id: int
    merchant_id: int
    price: Decimal
    original_price: Optional[Decimal]
    currency: str
    in_stock: bool
    stock_quantity: Optional[int]
    shipping_cost: Decimal
    free_shipping: bool
    delivery_time: Optional[str]
    condition: str
    warranty: Optional[str]
    url: Optional[str]
    affiliate_url: Optional[str]
    is_active: bool
    is_lowest_price: bool
    discount_percentage: int
    discount_amount: Decimal
    total_price: Decimal
    last_updated: datetime
    created_at: datetime

    class Config:
        from_attributes = True


class OfferHistoryResponse(BaseModel):
    id: int
    price: Decimal
    original_price: Optional[Decimal]
    previous_price: Optional[Decimal]
    in_stock: bool
    stock_quantity: Optional[int]
    price_change: Optional[Decimal]
    price_change_percentage: Optional[float]
    is_lowest_price: bool
    created_at: datetime

    class Config:
        from_attributes = True


class PriceRange(BaseModel):
    min: Decimal
    max: Decimal
    range: Decimal
    range_percentage: int


class PriceStats(BaseModel):
    total_offers: int
    merchant_count: int
    min_price: Decimal
    max_price: Decimal
    avg_price: Decimal
    price_range: PriceRange


class CompetingOffer(OfferResponse):
    """In-stock offer of another merchant for the same product."""

    merchant: MerchantSummary


class OfferDetailResponse(OfferResponse):
    """Offer with its recent history and the competing offers around it.

    ``price_stats`` covers the in-stock offers of the other merchants.
    """

    history: List[OfferHistoryResponse] = Field(default_factory=list)
    price_stats: PriceStats
    merchant_offers: List[OfferResponse] = Field(
        default_factory=list, description="Other in-stock offers of the same merchant"
    )
    other_merchants: List[CompetingOffer] = Field(default_factory=list)


class OfferListResponse(BaseModel):
    offers: List[OfferResponse]
    total: int
    page: int
    per_page: int
    total_pages: int


class PricePoint(BaseModel):
    date: datetime
    price: Decimal
    original_price: Optional[Decimal]
    previous_price: Optional[Decimal]
    price_change: Decimal
    in_stock: bool


class PriceHistoryStats(BaseModel):
    days: int
    data_points: int
    current_price: Decimal
    price_change: Decimal
    price_change_percentage: float
    min_price: Decimal
    max_price: Decimal
    average_price: Decimal


class PriceHistoryResponse(BaseModel):
    offer_id: int
    stats: PriceHistoryStats
    points: List[PricePoint]
