"""Category endpoints: tree, CRUD, descendants, breadcrumb, subtree products."""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from api.schemas.category import (
    BreadcrumbItem,
    CategoryCreate,
    CategoryDetailResponse,
    CategoryResponse,
    CategoryStatsResponse,
    CategoryTreeResponse,
    CategoryUpdate,
    DescendantIdsResponse,
)
from api.schemas.common import PaginationParams
from api.schemas.product import ProductListResponse, ProductResponse
from app.dependencies import get_db
from core.constants import ProductSort
from core.utils import calculate_offset
from services.category_service import CategoryService

router = APIRouter(tags=["categories"])


def _count_nodes(nodes) -> int:
    return sum(1 + _count_nodes(n["children"]) for n in nodes)


@router.get("/", response_model=CategoryTreeResponse)
async def get_category_tree(
    active_only: bool = Query(False, description="Hide inactive categories"),
    db: AsyncSession = Depends(get_db),
) -> CategoryTreeResponse:
    """
    Return the whole category tree, roots first.
    """
    tree = await CategoryService(db).get_tree(active_only=active_only)
    return CategoryTreeResponse(categories=tree, total=_count_nodes(tree))


@router.post("/", response_model=CategoryResponse, status_code=status.HTTP_201_CREATED)
async def create_category(
    request: CategoryCreate,
    db: AsyncSession = Depends(get_db),
) -> CategoryResponse:
    """
    Create a category. Its level is derived from the parent.
    """
    data = request.model_dump(exclude={"name", "parent_id"})
    category = await CategoryService(db).create_category(
        name=request.name,
        parent_id=request.parent_id,
        **data,
    )
    return CategoryResponse.model_validate(category)


@router.get("/stats", response_model=CategoryStatsResponse)
async def get_category_stats(
    db: AsyncSession = Depends(get_db),
) -> CategoryStatsResponse:
    """
    Product, offer, brand and price figures for every category.
    """
    stats = await CategoryService(db).get_category_stats()
    return CategoryStatsResponse(stats=stats, total=len(stats))


@router.get("/{category_id}", response_model=CategoryDetailResponse)
async def get_category(
    category_id: int,
    db: AsyncSession = Depends(get_db),
) -> CategoryDetailResponse:
    """
    Get a category with its breadcrumb and direct children.
    """
    svc = CategoryService(db)
    category = await svc.get_or_404(category_id)
    breadcrumb = await svc.get_ancestor_chain(category_id)
    children = await svc.get_children(category_id)

    base = CategoryResponse.model_validate(category).model_dump()
    return CategoryDetailResponse(
        **base,
        breadcrumb=[BreadcrumbItem(**item) for item in breadcrumb],
        children=[CategoryResponse.model_validate(c) for c in children],
    )


@router.put("/{category_id}", response_model=CategoryResponse)
async def update_category(
    category_id: int,
    request: CategoryUpdate,
    db: AsyncSession = Depends(get_db),
) -> CategoryResponse:
    """
    Update a category. Changing ``parent_id`` shifts the levels of the whole subtree.
    """
    category = await CategoryService(db).update_category(
        category_id, request.model_dump(exclude_unset=True)
    )
    return CategoryResponse.model_validate(category)


@router.delete("/{category_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_category(
    category_id: int,
    db: AsyncSession = Depends(get_db),
) -> None:
    """
    Delete a category that has no sub-categories and no products.
    """
    await CategoryService(db).delete_category(category_id)


@router.get("/{category_id}/descendants", response_model=DescendantIdsResponse)
async def get_descendants(
    category_id: int,
    db: AsyncSession = Depends(get_db),
) -> DescendantIdsResponse:
    ids = await CategoryService(db).get_descendant_ids(category_id)
    return DescendantIdsResponse(category_id=category_id, descendant_ids=ids)


@router.get("/{category_id}/ancestors", response_model=list[BreadcrumbItem])
async def get_ancestors(
    category_id: int,
    db: AsyncSession = Depends(get_db),
) -> list[BreadcrumbItem]:
    chain = await CategoryService(db).get_ancestor_chain(category_id)
    return [BreadcrumbItem(**item) for item in chain]


@router.get("/{category_id}/products", response_model=ProductListResponse)
async def list_category_products(
    category_id: int,
    sort: ProductSort = ProductSort.NEWEST,
    pagination: PaginationParams = Depends(),
    db: AsyncSession = Depends(get_db),
) -> ProductListResponse:
    """
    List products in the category and all of its sub-categories.
    """
    products, total = await CategoryService(db).list_products(
        category_id,
        offset=calculate_offset(pagination.page, pagination.per_page),
        limit=pagination.per_page,
        sort=sort,
    )
    return ProductListResponse(
        products=[ProductResponse.model_validate(p) for p in products],
        total=total,
        page=pagination.page,
        per_page=pagination.per_page,
    )
