"""Product service: CRUD keeping category product counts in step."""

import logging
from datetime import timedelta
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import case, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import NotFoundError
from core.utils import to_money, utc_now
from db.models.category import Category
from db.models.offer import Offer
from db.models.product import Product
from services.base import BaseService
from services.category_service import CategoryService
from services.offer_service import OfferService

logger = logging.getLogger(__name__)

_UNSET = object()
NULLABLE_FIELDS = ("category_id", "description", "brand", "model", "image_url")


class ProductService(BaseService[Product]):
    """Service for catalog products."""

    label = "product"

    def __init__(self, db: AsyncSession):
        super().__init__(Product, db)

    async def _check_category(self, category_id: Optional[int]) -> None:
        if category_id is not None and await self.db.get(Category, category_id) is None:
            raise NotFoundError(f"Category {category_id} not found")

    async def _adjust_category_count(self, category_id: Optional[int], delta: int) -> None:
        if category_id is None:
            return
        await self.db.execute(
            update(Category)
            .where(Category.id == category_id)
            .values(
                product_count=case(
                    (Category.product_count + delta < 0, 0),
                    else_=Category.product_count + delta,
                )
            )
            .execution_options(synchronize_session=False)
        )

    async def create_product(
        self,
        name: str,
        category_id: Optional[int] = None,
        **fields: Any,
    ) -> Product:
        """Create a product filed under ``category_id``.

        Raises:
            NotFoundError: If the category does not exist
        """
        await self._check_category(category_id)
        product = await self.create({
            **fields,
            "name": name,
            "category_id": category_id,
            "slug": await self.unique_slug(name),
        })
        await self._adjust_category_count(category_id, 1)
        logger.info(
            "Product created",
            extra={"product_id": product.id, "category_id": category_id},
        )
        return product

    async def update_product(self, product_id: int, data: dict[str, Any]) -> Product:
        """Update product fields, moving category counters if it changes category."""
        product = await self.get_or_404(product_id)
        safe_data = {
            k: v for k, v in data.items()
            if k not in ("id", "slug") and (v is not None or k in NULLABLE_FIELDS)
        }

        new_category = safe_data.get("category_id", _UNSET)
        if new_category is not _UNSET and new_category != product.category_id:
            await self._check_category(new_category)
            await self._adjust_category_count(product.category_id, -1)
            await self._adjust_category_count(new_category, 1)

        if "name" in safe_data and safe_data["name"] != product.name:
            safe_data["slug"] = await self.unique_slug(safe_data["name"], exclude_id=product_id)
        return await self.update(product_id, safe_data)

    async def delete_product(self, product_id: int) -> None:
        """Delete a product together with its offers and their history."""
        product = await self.get_or_404(product_id)
        category_id = product.category_id

        await OfferService(self.db).delete_offers_where(Offer.product_id == product_id)
        await self.db.delete(product)
        await self._adjust_category_count(category_id, -1)
        await self.db.flush()
        logger.info("Product deleted", extra={"product_id": product_id})

    # ─── Discovery ─────────────────────────────────────────

    async def get_similar_products(
        self,
        product_id: int,
        limit: int = 8,
    ) -> list[tuple[Product, Optional[Decimal]]]:
        """Products sharing the category or the brand, newest first.

        Each product comes with its cheapest in-stock active price (None
        when no offer qualifies).

        Raises:
            NotFoundError: If the product does not exist
        """
        product = await self.get_or_404(product_id)
        criteria = []
        if product.category_id is not None:
            criteria.append(Product.category_id == product.category_id)
        if product.brand:
            criteria.append(Product.brand == product.brand)
        if not criteria:
            return []

        cheapest = (
            select(Offer.product_id, func.min(Offer.price).label("min_price"))
            .where(Offer.in_stock == True, Offer.is_active == True)  # noqa: E712
            .group_by(Offer.product_id)
            .subquery()
        )
        result = await self.db.execute(
            select(Product, cheapest.c.min_price)
            .outerjoin(cheapest, cheapest.c.product_id == Product.id)
            .where(Product.id != product_id, or_(*criteria))
            .order_by(Product.created_at.desc(), Product.id.desc())
            .limit(limit)
        )
        return [(p, to_money(price)) for p, price in result.all()]

    async def get_catalog_stats(self, new_within_days: int = 30) -> dict[str, Any]:
        """Catalog-wide product counts plus the five most populated categories."""
        since = utc_now() - timedelta(days=new_within_days)

        total = await self.db.execute(select(func.count()).select_from(Product))
        new = await self.db.execute(
            select(func.count()).select_from(Product).where(Product.created_at >= since)
        )
        brands = await self.db.execute(
            select(func.count(func.distinct(Product.brand))).where(Product.brand.is_not(None))
        )
        in_stock = await self.db.execute(
            select(func.count(func.distinct(Offer.product_id))).where(Offer.in_stock == True)  # noqa: E712
        )

        return {
            "total_products": total.scalar() or 0,
            "new_products": new.scalar() or 0,
            "total_brands": brands.scalar() or 0,
            "in_stock_products": in_stock.scalar() or 0,
            "top_categories": await CategoryService(self.db).get_category_stats(limit=5),
        }
