"""Category service: tree maintenance and traversal.

Keeps the materialized ``level`` of every category consistent when
nodes are created or re-parented, and answers descendant / ancestor
queries. All traversals are iterative and track visited ids, so a
corrupted parent chain cannot send them into a loop.
"""

import logging
from typing import Any, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.constants import ProductSort
from core.exceptions import HasChildrenError, HasProductsError, InvalidParentError
from core.utils import to_money
from db.models.category import Category
from db.models.offer import Offer
from db.models.product import Product
from services.base import BaseService

logger = logging.getLogger(__name__)

_UNSET = object()
NULLABLE_FIELDS = (
    "parent_id", "description", "image_url", "meta_title", "meta_description",
)


class CategoryService(BaseService[Category]):
    """Service for the hierarchical category tree."""

    label = "category"

    def __init__(self, db: AsyncSession):
        super().__init__(Category, db)

    # ─── Tree reads ────────────────────────────────────────

    async def _children_map(self) -> dict[Optional[int], list[int]]:
        """parent_id -> ordered child ids, for the whole tree in one query."""
        result = await self.db.execute(
            select(Category.id, Category.parent_id).order_by(
                Category.sort_order, Category.name, Category.id
            )
        )
        children: dict[Optional[int], list[int]] = {}
        for cat_id, parent_id in result.all():
            children.setdefault(parent_id, []).append(cat_id)
        return children

    async def get_descendant_ids(self, category_id: int) -> list[int]:
        """All ids in the subtree under ``category_id`` (excluding itself).

        Ids come out in depth-first pre-order.

        Raises:
            NotFoundError: If the category does not exist
        """
        await self.get_or_404(category_id)
        children = await self._children_map()

        ids: list[int] = []
        visited = {category_id}
        stack = list(reversed(children.get(category_id, [])))
        while stack:
            current = stack.pop()
            if current in visited:
                logger.warning("Cycle detected in category tree at id=%s", current)
                continue
            visited.add(current)
            ids.append(current)
            stack.extend(reversed(children.get(current, [])))
        return ids

    async def get_ancestor_chain(self, category_id: int) -> list[dict[str, Any]]:
        """Breadcrumb from the root down to ``category_id`` (inclusive).

        Returns:
            List of ``{"id", "name", "slug"}`` dicts, root first

        Raises:
            NotFoundError: If the category does not exist
        """
        category = await self.get_or_404(category_id)
        chain = [{"id": category.id, "name": category.name, "slug": category.slug}]
        visited = {category.id}
        parent_id = category.parent_id

        while parent_id is not None:
            if parent_id in visited:
                logger.warning("Cycle detected in category ancestry at id=%s", parent_id)
                break
            visited.add(parent_id)
            result = await self.db.execute(
                select(Category.id, Category.name, Category.slug, Category.parent_id).where(
                    Category.id == parent_id
                )
            )
            row = result.first()
            if row is None:
                break
            chain.append({"id": row.id, "name": row.name, "slug": row.slug})
            parent_id = row.parent_id

        chain.reverse()
        return chain

    async def get_children(self, category_id: int) -> Sequence[Category]:
        """Direct sub-categories, in display order."""
        result = await self.db.execute(
            select(Category)
            .where(Category.parent_id == category_id)
            .order_by(Category.sort_order, Category.name, Category.id)
        )
        return result.scalars().all()

    async def get_tree(self, active_only: bool = False) -> list[dict[str, Any]]:
        """Whole category forest as nested dicts with a ``children`` key."""
        query = select(Category).order_by(
            Category.level, Category.sort_order, Category.name, Category.id
        )
        if active_only:
            query = query.where(Category.is_active == True)  # noqa: E712
        result = await self.db.execute(query)
        categories = result.scalars().all()

        nodes = {
            c.id: {
                "id": c.id,
                "name": c.name,
                "slug": c.slug,
                "description": c.description,
                "parent_id": c.parent_id,
                "level": c.level,
                "image_url": c.image_url,
                "product_count": c.product_count,
                "is_active": c.is_active,
                "children": [],
            }
            for c in categories
        }
        roots = []
        for c in categories:
            node = nodes[c.id]
            parent = nodes.get(c.parent_id) if c.parent_id is not None else None
            if parent is None:
                # Roots, and nodes whose parent was filtered out
                roots.append(node)
            else:
                parent["children"].append(node)
        return roots

    async def list_products(
        self,
        category_id: int,
        offset: int = 0,
        limit: int = 24,
        sort: ProductSort = ProductSort.NEWEST,
    ) -> tuple[Sequence[Product], int]:
        """Products in the category or anywhere in its subtree."""
        ids = [category_id, *await self.get_descendant_ids(category_id)]

        query = select(Product).where(Product.category_id.in_(ids))
        count_query = select(func.count()).select_from(Product).where(Product.category_id.in_(ids))

        if sort == ProductSort.NAME_ASC:
            query = query.order_by(Product.name.asc(), Product.id)
        elif sort == ProductSort.NAME_DESC:
            query = query.order_by(Product.name.desc(), Product.id)
        else:
            query = query.order_by(Product.created_at.desc(), Product.id.desc())

        result = await self.db.execute(query.offset(offset).limit(limit))
        total = (await self.db.execute(count_query)).scalar() or 0
        return result.scalars().all(), total

    async def get_category_stats(self, limit: Optional[int] = None) -> list[dict[str, Any]]:
        """Per-category product, offer, brand and price figures.

        Only products filed directly under a category are counted. Rows
        come out with the most populated categories first.
        """
        product_count = func.count(func.distinct(Product.id)).label("product_count")
        query = (
            select(
                Category.id,
                Category.name,
                Category.slug,
                Category.level,
                product_count,
                func.count(func.distinct(Offer.id)).label("offer_count"),
                func.count(func.distinct(Product.brand)).label("brand_count"),
                func.min(Offer.price).label("min_price"),
                func.max(Offer.price).label("max_price"),
                func.avg(Offer.price).label("avg_price"),
            )
            .select_from(Category)
            .outerjoin(Product, Product.category_id == Category.id)
            .outerjoin(Offer, Offer.product_id == Product.id)
            .group_by(Category.id, Category.name, Category.slug, Category.level)
            .order_by(product_count.desc(), Category.id)
        )
        if limit is not None:
            query = query.limit(limit)
        result = await self.db.execute(query)
        return [
            {
                "id": row.id,
                "name": row.name,
                "slug": row.slug,
                "level": row.level,
                "product_count": row.product_count,
                "offer_count": row.offer_count,
                "brand_count": row.brand_count,
                "min_price": to_money(row.min_price),
                "max_price": to_money(row.max_price),
                "avg_price": to_money(row.avg_price),
            }
            for row in result.all()
        ]

    # ─── Writes ────────────────────────────────────────────

    async def _resolve_parent(self, parent_id: int) -> Category:
        parent = await self.get_by_id(parent_id)
        if parent is None:
            raise InvalidParentError(f"Parent category {parent_id} does not exist")
        return parent

    async def create_category(
        self,
        name: str,
        parent_id: Optional[int] = None,
        **fields: Any,
    ) -> Category:
        """Create a category with its level derived from the parent.

        Raises:
            InvalidParentError: If ``parent_id`` does not resolve
        """
        level = 1
        if parent_id is not None:
            parent = await self._resolve_parent(parent_id)
            level = parent.level + 1

        category = await self.create({
            **fields,
            "name": name,
            "parent_id": parent_id,
            "level": level,
            "slug": await self.unique_slug(name),
        })
        logger.info(
            "Category created",
            extra={"category_id": category.id, "parent_id": parent_id, "level": level},
        )
        return category

    async def update_category(self, category_id: int, data: dict[str, Any]) -> Category:
        """Update a category, re-parenting and cascading levels if needed.

        ``data`` is a partial patch: a ``parent_id`` key set to None moves
        the node to the root; an absent key leaves the parent alone. The
        level cascade and the field update are flushed together, so they
        commit or roll back as one unit.

        Raises:
            NotFoundError: If the category does not exist
            InvalidParentError: Missing parent, or parent inside the subtree
        """
        category = await self.get_or_404(category_id)
        data = {
            k: v for k, v in data.items()
            if k not in ("id", "level", "slug", "product_count")
            and (v is not None or k in NULLABLE_FIELDS)
        }
        new_parent_id = data.pop("parent_id", _UNSET)

        if new_parent_id is not _UNSET and new_parent_id != category.parent_id:
            await self._reparent(category, new_parent_id)

        if "name" in data and data["name"] != category.name:
            data["slug"] = await self.unique_slug(data["name"], exclude_id=category.id)

        for key, value in data.items():
            if hasattr(category, key):
                setattr(category, key, value)

        await self.db.flush()
        await self.db.refresh(category)
        return category

    async def _reparent(self, category: Category, new_parent_id: Optional[int]) -> None:
        """Attach ``category`` under a new parent and shift its subtree's levels."""
        descendant_ids = await self.get_descendant_ids(category.id)

        if new_parent_id is None:
            new_level = 1
        else:
            if new_parent_id == category.id or new_parent_id in descendant_ids:
                raise InvalidParentError(
                    f"Category {category.id} cannot be moved under its own subtree"
                )
            parent = await self._resolve_parent(new_parent_id)
            new_level = parent.level + 1

        level_diff = new_level - category.level
        category.parent_id = new_parent_id

        if level_diff:
            result = await self.db.execute(
                select(Category).where(Category.id.in_([category.id, *descendant_ids]))
            )
            for node in result.scalars().all():
                node.level = node.level + level_diff

        logger.info(
            "Category re-parented",
            extra={
                "category_id": category.id,
                "parent_id": new_parent_id,
                "level_diff": level_diff,
                "subtree_size": len(descendant_ids) + 1,
            },
        )

    async def delete_category(self, category_id: int) -> None:
        """Delete a category that has neither sub-categories nor products.

        Raises:
            NotFoundError: If the category does not exist
            HasChildrenError: If it still has sub-categories
            HasProductsError: If products are still filed under it
        """
        category = await self.get_or_404(category_id)

        children = await self.db.execute(
            select(func.count()).select_from(Category).where(Category.parent_id == category_id)
        )
        if children.scalar():
            raise HasChildrenError("Cannot delete a category that has sub-categories")

        products = await self.db.execute(
            select(func.count()).select_from(Product).where(Product.category_id == category_id)
        )
        if products.scalar():
            raise HasProductsError("Cannot delete a category that contains products")

        await self.db.delete(category)
        await self.db.flush()
        logger.info("Category deleted", extra={"category_id": category_id})
