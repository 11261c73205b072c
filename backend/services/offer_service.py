"""Offer service: offer ledger and lowest-price tracking.

Every material change to an offer (price, original price, stock) is
appended to ``offer_histories``. After each write the product's
lowest-price marker is recomputed inside the same transaction, so
readers never see a product with zero or two markers.
"""

import logging
from datetime import timedelta
from decimal import Decimal
from typing import Any, Iterable, Optional, Sequence

from sqlalchemy import and_, case, delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from core.constants import LEDGER_FIELDS, LOWEST_PRICE_FIELDS, OfferSort
from core.exceptions import ConflictError, NotFoundError, ValidationError
from core.filters import FilterExpr, apply_filters
from core.utils import to_money, utc_now
from db.models.merchant import Merchant
from db.models.offer import Offer
from db.models.offer_history import OfferHistory
from db.models.product import Product
from services.base import BaseService

logger = logging.getLogger(__name__)

MONEY_FIELDS = ("price", "original_price", "shipping_cost")
IMMUTABLE_FIELDS = ("id", "product_id", "merchant_id", "is_lowest_price", "created_at")
NULLABLE_FIELDS = (
    "original_price", "stock_quantity", "delivery_time", "warranty", "url", "affiliate_url",
)


def _differs(old: Any, new: Any, money: bool) -> bool:
    if money:
        return to_money(old) != to_money(new)
    return old != new


class OfferService(BaseService[Offer]):
    """Service for offers and their price history."""

    label = "offer"

    def __init__(self, db: AsyncSession):
        super().__init__(Offer, db)

    # ─── Ledger ────────────────────────────────────────────

    async def _append_history(
        self,
        offer: Offer,
        previous_price: Optional[Decimal] = None,
    ) -> OfferHistory:
        """Append a snapshot of ``offer`` to its history."""
        last_result = await self.db.execute(
            select(OfferHistory.price)
            .where(OfferHistory.offer_id == offer.id)
            .order_by(OfferHistory.created_at.desc(), OfferHistory.id.desc())
            .limit(1)
        )
        last_price = last_result.scalar_one_or_none()

        min_result = await self.db.execute(
            select(func.min(OfferHistory.price)).where(OfferHistory.offer_id == offer.id)
        )
        lowest_so_far = min_result.scalar()

        price = to_money(offer.price)
        if last_price is None:
            price_change = Decimal("0.00")
            change_pct = None
        else:
            last_price = to_money(last_price)
            price_change = price - last_price
            change_pct = (
                round(float(price_change / last_price * 100), 2) if last_price > 0 else None
            )

        history = OfferHistory(
            offer_id=offer.id,
            price=price,
            original_price=to_money(offer.original_price),
            previous_price=to_money(previous_price),
            in_stock=offer.in_stock,
            stock_quantity=offer.stock_quantity,
            shipping_cost=to_money(offer.shipping_cost) or Decimal("0.00"),
            free_shipping=offer.free_shipping,
            price_change=price_change,
            price_change_percentage=change_pct,
            is_lowest_price=lowest_so_far is None or price <= to_money(lowest_so_far),
            created_at=utc_now(),
        )
        self.db.add(history)
        await self.db.flush()
        return history

    async def refresh_lowest_price(self, product_id: int) -> Optional[int]:
        """Mark the cheapest in-stock active offer of a product.

        Ties on price go to the lowest offer id. Rows are locked for the
        rest of the transaction where the database supports it.

        Returns:
            ID of the marked offer, or None if no offer qualifies
        """
        await self.db.flush()
        result = await self.db.execute(
            select(Offer)
            .where(Offer.product_id == product_id)
            .order_by(Offer.id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        offers = result.scalars().all()

        candidates = [o for o in offers if o.in_stock and o.is_active]
        winner = min(candidates, key=lambda o: (to_money(o.price), o.id)) if candidates else None

        for offer in offers:
            flag = winner is not None and offer.id == winner.id
            if offer.is_lowest_price != flag:
                offer.is_lowest_price = flag
        await self.db.flush()

        winner_id = winner.id if winner else None
        logger.debug(
            "Lowest price recomputed",
            extra={"product_id": product_id, "offer_id": winner_id, "candidates": len(candidates)},
        )
        return winner_id

    async def _adjust_merchant_count(self, merchant_id: int, delta: int) -> None:
        stmt = (
            update(Merchant)
            .where(Merchant.id == merchant_id)
            .values(
                product_count=case(
                    (Merchant.product_count + delta < 0, 0),
                    else_=Merchant.product_count + delta,
                )
            )
            .execution_options(synchronize_session=False)
        )
        await self.db.execute(stmt)

    # ─── Create ────────────────────────────────────────────

    async def create_offer(
        self,
        product_id: int,
        merchant_id: int,
        price: Decimal,
        original_price: Optional[Decimal] = None,
        **fields: Any,
    ) -> Offer:
        """Create an offer together with its first history record.

        Raises:
            NotFoundError: If the product or merchant does not exist
            ConflictError: If the merchant already has an offer for the product
            ValidationError: If a price is missing or negative
        """
        if price is None:
            raise ValidationError("price is required")
        if await self.db.get(Product, product_id) is None:
            raise NotFoundError(f"Product {product_id} not found")
        if await self.db.get(Merchant, merchant_id) is None:
            raise NotFoundError(f"Merchant {merchant_id} not found")

        existing = await self.db.execute(
            select(Offer.id).where(
                Offer.product_id == product_id,
                Offer.merchant_id == merchant_id,
            )
        )
        if existing.scalar_one_or_none() is not None:
            raise ConflictError("An offer already exists for this product and merchant")

        data = {
            k: v for k, v in fields.items()
            if k not in IMMUTABLE_FIELDS and hasattr(Offer, k) and v is not None
        }
        data["price"] = price
        data["original_price"] = original_price
        for key in MONEY_FIELDS:
            if key in data:
                data[key] = to_money(data[key])
        self._check_prices(data)
        if not data.get("currency"):
            data["currency"] = get_settings().DEFAULT_CURRENCY
        if data.get("shipping_cost") is None:
            data["shipping_cost"] = Decimal("0.00")

        offer = Offer(
            **data,
            product_id=product_id,
            merchant_id=merchant_id,
            is_lowest_price=False,
            last_updated=utc_now(),
        )
        self.db.add(offer)
        await self.db.flush()

        await self._append_history(offer)
        await self._adjust_merchant_count(merchant_id, 1)
        await self.refresh_lowest_price(product_id)

        await self.db.refresh(offer)
        logger.info(
            "Offer created",
            extra={"offer_id": offer.id, "product_id": product_id, "merchant_id": merchant_id},
        )
        return offer

    @staticmethod
    def _check_prices(data: dict[str, Any]) -> None:
        for key in MONEY_FIELDS:
            value = data.get(key)
            if value is not None and value < 0:
                raise ValidationError(f"{key} must not be negative")

    # ─── Update ────────────────────────────────────────────

    async def update_offer(self, offer_id: int, data: dict[str, Any]) -> Offer:
        """Apply a partial update to an offer.

        A patch that matches the current state is a no-op. Changes to
        ledger fields append one history record; changes to price, stock
        or activity recompute the product's lowest-price marker.

        Raises:
            NotFoundError: If the offer does not exist
            ValidationError: If a price is negative
        """
        offer = await self.get_or_404(offer_id)

        patch = {
            k: v for k, v in data.items()
            if k not in IMMUTABLE_FIELDS and hasattr(offer, k)
            and (v is not None or k in NULLABLE_FIELDS)
        }
        for key in MONEY_FIELDS:
            if key in patch:
                patch[key] = to_money(patch[key])
        self._check_prices(patch)

        changed = {
            k: v for k, v in patch.items()
            if _differs(getattr(offer, k), v, money=k in MONEY_FIELDS)
        }
        if not changed:
            logger.debug("Offer update is a no-op", extra={"offer_id": offer_id})
            return offer

        old_price = to_money(offer.price)
        for key, value in changed.items():
            setattr(offer, key, value)
        offer.last_updated = utc_now()
        await self.db.flush()

        if changed.keys() & set(LEDGER_FIELDS):
            await self._append_history(
                offer,
                previous_price=old_price if "price" in changed else None,
            )
        if changed.keys() & set(LOWEST_PRICE_FIELDS):
            await self.refresh_lowest_price(offer.product_id)

        await self.db.refresh(offer)
        logger.info(
            "Offer updated",
            extra={"offer_id": offer_id, "fields": sorted(changed)},
        )
        return offer

    # ─── Delete ────────────────────────────────────────────

    async def delete_offer(self, offer_id: int) -> None:
        """Delete an offer and its history, then re-mark the lowest price.

        Raises:
            NotFoundError: If the offer does not exist
        """
        offer = await self.get_or_404(offer_id)
        product_id, merchant_id = offer.product_id, offer.merchant_id

        await self.db.execute(
            delete(OfferHistory)
            .where(OfferHistory.offer_id == offer_id)
            .execution_options(synchronize_session=False)
        )
        await self.db.delete(offer)
        await self._adjust_merchant_count(merchant_id, -1)
        await self.db.flush()

        await self.refresh_lowest_price(product_id)
        logger.info(
            "Offer deleted",
            extra={"offer_id": offer_id, "product_id": product_id, "merchant_id": merchant_id},
        )

    async def delete_offers_where(self, *criteria) -> set[int]:
        """Bulk-delete offers (and history) matching ``criteria``.

        Merchant counters are decremented. The lowest-price marker is not
        touched; callers recompute it for the returned products if they
        still exist.

        Returns:
            IDs of the products whose offers were removed
        """
        result = await self.db.execute(
            select(Offer.id, Offer.product_id, Offer.merchant_id).where(*criteria)
        )
        rows = result.all()
        if not rows:
            return set()

        offer_ids = [r.id for r in rows]
        per_merchant: dict[int, int] = {}
        for r in rows:
            per_merchant[r.merchant_id] = per_merchant.get(r.merchant_id, 0) + 1

        await self.db.execute(
            delete(OfferHistory)
            .where(OfferHistory.offer_id.in_(offer_ids))
            .execution_options(synchronize_session=False)
        )
        await self.db.execute(
            delete(Offer)
            .where(Offer.id.in_(offer_ids))
            .execution_options(synchronize_session="fetch")
        )
        for merchant_id, count in per_merchant.items():
            await self._adjust_merchant_count(merchant_id, -count)
        await self.db.flush()
        return {r.product_id for r in rows}

    # ─── Reads ─────────────────────────────────────────────

    async def get_history(self, offer_id: int, limit: int = 30) -> Sequence[OfferHistory]:
        """Latest history records of an offer, newest first."""
        result = await self.db.execute(
            select(OfferHistory)
            .where(OfferHistory.offer_id == offer_id)
            .order_by(OfferHistory.created_at.desc(), OfferHistory.id.desc())
            .limit(limit)
        )
        return result.scalars().all()

    async def get_price_history(self, offer_id: int, days: int = None) -> dict[str, Any]:
        """History points of the last ``days`` days plus summary stats.

        Stats are derived from the returned window only: current price is
        the newest point, change is newest vs. oldest point.

        Raises:
            NotFoundError: If the offer does not exist
            ValidationError: If ``days`` is out of range
        """
        settings = get_settings()
        days = settings.PRICE_HISTORY_DEFAULT_DAYS if days is None else days
        if days < 1 or days > settings.PRICE_HISTORY_MAX_DAYS:
            raise ValidationError(
                f"days must be between 1 and {settings.PRICE_HISTORY_MAX_DAYS}"
            )

        await self.get_or_404(offer_id)
        since = utc_now() - timedelta(days=days)
        result = await self.db.execute(
            select(OfferHistory)
            .where(OfferHistory.offer_id == offer_id, OfferHistory.created_at >= since)
            .order_by(OfferHistory.created_at.asc(), OfferHistory.id.asc())
        )
        records = result.scalars().all()

        points = [
            {
                "date": r.created_at,
                "price": to_money(r.price),
                "original_price": to_money(r.original_price),
                "previous_price": to_money(r.previous_price),
                "price_change": to_money(r.price_change) or Decimal("0.00"),
                "in_stock": r.in_stock,
            }
            for r in records
        ]
        return {"offer_id": offer_id, "stats": price_window_stats(points, days), "points": points}

    async def list_offers(
        self,
        filters: Iterable[FilterExpr] = (),
        category_ids: Optional[Sequence[int]] = None,
        has_discount: Optional[bool] = None,
        search: Optional[str] = None,
        sort: OfferSort = OfferSort.NEWEST,
        offset: int = 0,
        limit: int = 20,
    ) -> tuple[Sequence[Offer], int]:
        """List offers with column filters, product-level filters and sorting.

        Args:
            filters: Typed expressions on Offer columns
            category_ids: Restrict to products filed under these categories
            has_discount: Only offers whose original price beats the price
            search: Case-insensitive substring on product name/brand/model
            sort: Result order

        Returns:
            Tuple of (items, total_count)
        """
        query = apply_filters(select(Offer), Offer, filters)
        needs_product = category_ids is not None or bool(search)
        if needs_product:
            query = query.join(Product, Product.id == Offer.product_id)
        if category_ids is not None:
            query = query.where(Product.category_id.in_(list(category_ids)))
        if search:
            pattern = f"%{search}%"
            query = query.where(
                or_(
                    Product.name.ilike(pattern),
                    Product.brand.ilike(pattern),
                    Product.model.ilike(pattern),
                )
            )
        discounted = and_(
            Offer.original_price.is_not(None),
            Offer.original_price > 0,
            Offer.original_price > Offer.price,
        )
        if has_discount is True:
            query = query.where(discounted)
        elif has_discount is False:
            query = query.where(~discounted)

        count_query = select(func.count()).select_from(query.order_by(None).subquery())

        if sort == OfferSort.PRICE_ASC:
            query = query.order_by(Offer.price.asc(), Offer.id)
        elif sort == OfferSort.PRICE_DESC:
            query = query.order_by(Offer.price.desc(), Offer.id)
        elif sort == OfferSort.DISCOUNT_HIGH:
            ratio = case(
                (discounted, (Offer.original_price - Offer.price) / Offer.original_price),
                else_=0,
            )
            query = query.order_by(ratio.desc(), Offer.id)
        else:
            query = query.order_by(Offer.created_at.desc(), Offer.id.desc())

        result = await self.db.execute(query.offset(offset).limit(limit))
        total = (await self.db.execute(count_query)).scalar() or 0
        return result.scalars().all(), total

    async def list_product_offers(self, product_id: int) -> Sequence[Offer]:
        """Active offers of a product, in-stock first, cheapest first."""
        result = await self.db.execute(
            select(Offer)
            .where(Offer.product_id == product_id, Offer.is_active == True)  # noqa: E712
            .order_by(Offer.in_stock.desc(), Offer.price.asc(), Offer.id)
        )
        return result.scalars().all()

    async def get_price_stats(
        self,
        product_id: int,
        exclude_merchant_id: Optional[int] = None,
    ) -> dict[str, Any]:
        """Aggregate prices of a product's in-stock offers."""
        query = select(
            func.count(Offer.id),
            func.count(func.distinct(Offer.merchant_id)),
            func.min(Offer.price),
            func.max(Offer.price),
            func.avg(Offer.price),
        ).where(Offer.product_id == product_id, Offer.in_stock == True)  # noqa: E712
        if exclude_merchant_id is not None:
            query = query.where(Offer.merchant_id != exclude_merchant_id)

        total, merchants, min_price, max_price, avg_price = (await self.db.execute(query)).one()
        min_price, max_price = to_money(min_price), to_money(max_price)
        avg_price = to_money(avg_price)

        price_range = {"min": Decimal("0.00"), "max": Decimal("0.00"), "range": Decimal("0.00"), "range_percentage": 0}
        if min_price is not None and max_price is not None:
            spread = max_price - min_price
            price_range = {
                "min": min_price,
                "max": max_price,
                "range": spread,
                "range_percentage": round(float(spread / avg_price * 100)) if avg_price else 0,
            }

        return {
            "total_offers": total or 0,
            "merchant_count": merchants or 0,
            "min_price": min_price or Decimal("0.00"),
            "max_price": max_price or Decimal("0.00"),
            "avg_price": avg_price or Decimal("0.00"),
            "price_range": price_range,
        }

    async def get_merchant_offers(
        self,
        merchant_id: int,
        exclude_offer_id: Optional[int] = None,
        limit: int = 5,
    ) -> Sequence[Offer]:
        """Other in-stock active offers of a merchant, cheapest first."""
        query = select(Offer).where(
            Offer.merchant_id == merchant_id,
            Offer.in_stock == True,  # noqa: E712
            Offer.is_active == True,  # noqa: E712
        )
        if exclude_offer_id is not None:
            query = query.where(Offer.id != exclude_offer_id)
        result = await self.db.execute(query.order_by(Offer.price.asc(), Offer.id).limit(limit))
        return result.scalars().all()

    async def get_competing_offers(
        self,
        product_id: int,
        exclude_merchant_id: int,
        limit: int = 5,
    ) -> list[tuple[Offer, Merchant]]:
        """In-stock offers of the other merchants for a product, cheapest first."""
        result = await self.db.execute(
            select(Offer, Merchant)
            .join(Merchant, Merchant.id == Offer.merchant_id)
            .where(
                Offer.product_id == product_id,
                Offer.merchant_id != exclude_merchant_id,
                Offer.in_stock == True,  # noqa: E712
            )
            .order_by(Offer.price.asc(), Offer.id)
            .limit(limit)
        )
        return [(offer, merchant) for offer, merchant in result.all()]


def price_window_stats(points: Sequence[dict[str, Any]], days: int) -> dict[str, Any]:
    """Summary statistics over an ordered (oldest first) price window."""
    zero = Decimal("0.00")
    if not points:
        return {
            "days": days,
            "data_points": 0,
            "current_price": zero,
            "price_change": zero,
            "price_change_percentage": 0.0,
            "min_price": zero,
            "max_price": zero,
            "average_price": zero,
        }

    prices = [p["price"] for p in points]
    first, last = prices[0], prices[-1]
    change = last - first
    change_pct = round(float(change / first * 100), 2) if first > 0 else 0.0
    return {
        "days": days,
        "data_points": len(points),
        "current_price": last,
        "price_change": change,
        "price_change_percentage": change_pct,
        "min_price": min(prices),
        "max_price": max(prices),
        "average_price": to_money(sum(prices, zero) / len(prices)),
    }
