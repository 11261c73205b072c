"""Merchant service: CRUD with slug allocation and guarded delete."""

import logging
from decimal import Decimal
from typing import Any

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import HasOffersError
from core.utils import to_money
from db.models.category import Category
from db.models.merchant import Merchant
from db.models.offer import Offer
from db.models.product import Product
from services.base import BaseService
from services.offer_service import OfferService

logger = logging.getLogger(__name__)

NULLABLE_FIELDS = ("website_url", "logo_url", "description")


class MerchantService(BaseService[Merchant]):
    """Service for merchants."""

    label = "merchant"

    def __init__(self, db: AsyncSession):
        super().__init__(Merchant, db)

    async def create_merchant(self, name: str, **fields: Any) -> Merchant:
        """Create a merchant with a unique slug derived from its name."""
        fields.pop("product_count", None)
        merchant = await self.create({
            **fields,
            "name": name,
            "slug": await self.unique_slug(name),
        })
        logger.info("Merchant created", extra={"merchant_id": merchant.id})
        return merchant

    async def update_merchant(self, merchant_id: int, data: dict[str, Any]) -> Merchant:
        """Update merchant fields; a new name gets a new slug."""
        merchant = await self.get_or_404(merchant_id)
        safe_data = {
            k: v for k, v in data.items()
            if k not in ("id", "slug", "product_count")
            and (v is not None or k in NULLABLE_FIELDS)
        }
        if "name" in safe_data and safe_data["name"] != merchant.name:
            safe_data["slug"] = await self.unique_slug(safe_data["name"], exclude_id=merchant_id)
        return await self.update(merchant_id, safe_data)

    async def delete_merchant(self, merchant_id: int, force: bool = False) -> None:
        """Delete a merchant.

        Args:
            merchant_id: Merchant to delete
            force: Also delete its offers (and their history)

        Raises:
            NotFoundError: If the merchant does not exist
            HasOffersError: If it still has offers and ``force`` is not set
        """
        merchant = await self.get_or_404(merchant_id)

        count = await self.db.execute(
            select(func.count()).select_from(Offer).where(Offer.merchant_id == merchant_id)
        )
        if count.scalar() and not force:
            raise HasOffersError("Cannot delete a merchant that still has offers")

        offers = OfferService(self.db)
        product_ids = await offers.delete_offers_where(Offer.merchant_id == merchant_id)

        await self.db.delete(merchant)
        await self.db.flush()

        for product_id in sorted(product_ids):
            await offers.refresh_lowest_price(product_id)

        logger.info(
            "Merchant deleted",
            extra={"merchant_id": merchant_id, "affected_products": len(product_ids)},
        )

    # ─── Statistics ────────────────────────────────────────

    async def get_product_stats(self, merchant_id: int) -> dict[str, Any]:
        """Offer counts and price figures over everything a merchant lists."""
        result = await self.db.execute(
            select(
                func.count(Offer.id),
                func.sum(case((Offer.in_stock == True, 1), else_=0)),  # noqa: E712
                func.count(func.distinct(Offer.product_id)),
                func.count(func.distinct(Product.category_id)),
                func.min(Offer.price),
                func.max(Offer.price),
                func.avg(Offer.price),
            )
            .select_from(Offer)
            .join(Product, Product.id == Offer.product_id)
            .where(Offer.merchant_id == merchant_id)
        )
        total, in_stock, products, categories, min_price, max_price, avg_price = result.one()
        zero = Decimal("0.00")
        return {
            "total_products": total or 0,
            "in_stock_count": in_stock or 0,
            "unique_products": products or 0,
            "category_count": categories or 0,
            "min_price": to_money(min_price) or zero,
            "max_price": to_money(max_price) or zero,
            "avg_price": to_money(avg_price) or zero,
        }

    async def get_top_categories(self, merchant_id: int, limit: int = 5) -> list[dict[str, Any]]:
        """Categories with the most products the merchant has in stock."""
        product_count = func.count(func.distinct(Product.id)).label("product_count")
        result = await self.db.execute(
            select(Category.id, Category.name, Category.slug, product_count)
            .select_from(Category)
            .join(Product, Product.category_id == Category.id)
            .join(Offer, Offer.product_id == Product.id)
            .where(Offer.merchant_id == merchant_id, Offer.in_stock == True)  # noqa: E712
            .group_by(Category.id, Category.name, Category.slug)
            .order_by(product_count.desc(), Category.id)
            .limit(limit)
        )
        return [
            {"id": row.id, "name": row.name, "slug": row.slug, "product_count": row.product_count}
            for row in result.all()
        ]
