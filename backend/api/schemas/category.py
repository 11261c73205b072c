"""Category schemas."""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field


class CategoryCreate(BaseModel):
    """Request to create a category."""

    name: str = Field(min_length=1, max_length=255, description="Category name")
    parent_id: Optional[int] = Field(default=None, description="Parent category ID (root if omitted)")
    description: Optional[str] = None
    image_url: Optional[str] = None
    sort_order: int = Field(default=0, description="Display order among siblings")
    is_active: bool = True
    meta_title: Optional[str] = None
    meta_description: Optional[str] = None


class CategoryUpdate(BaseModel):
    """Partial category update. Send ``parent_id: null`` to move a category to the root."""

    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    parent_id: Optional[int] = None
    description: Optional[str] = None
    image_url: Optional[str] = None
    sort_order: Optional[int] = None
    is_active: Optional[bool] = None
    meta_title: Optional[str] = None
    meta_description: Optional[str] = None


class CategoryResponse(BaseModel):
    """Category information response."""

    id: int
    name: str
    slug: str
    description: Optional[str]
    parent_id: Optional[int]
    level: int = Field(description="Depth in the tree, roots are 1")
    is_active: bool
    image_url: Optional[str]
    sort_order: int
    product_count: int
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class BreadcrumbItem(BaseModel):
    id: int
    name: str
    slug: str


class CategoryDetailResponse(CategoryResponse):
    """Category with its breadcrumb and direct children."""

    breadcrumb: List[BreadcrumbItem] = Field(default_factory=list, description="Root first, ends with this category")
    children: List[CategoryResponse] = Field(default_factory=list)


class CategoryTreeNode(BaseModel):
    id: int
    name: str
    slug: str
    description: Optional[str]
    parent_id: Optional[int]
    level: int
    image_url: Optional[str]
    product_count: int
    is_active: bool
    children: List["CategoryTreeNode"] = Field(default_factory=list)


class CategoryTreeResponse(BaseModel):
    categories: List[CategoryTreeNode]
    total: int = Field(description="Number of categories in the tree")


class DescendantIdsResponse(BaseModel):
    category_id: int
    descendant_ids: List[int]


class CategoryStats(BaseModel):
    """Offer and product figures for one category (direct products only)."""

    id: int
    name: str
    slug: str
    level: int
    product_count: int
    offer_count: int
    brand_count: int
    min_price: Optional[Decimal] = None
    max_price: Optional[Decimal] = None
    avg_price: Optional[Decimal] = None


class CategoryStatsResponse(BaseModel):
    stats: List[CategoryStats]
    total: int
