"""Tests for offers: lowest-price marker, history ledger and price windows."""

from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy import select, update
from sqlalchemy.exc import InvalidRequestError

from core.exceptions import ConflictError, HasOffersError, NotFoundError, ValidationError
from core.utils import utc_now
from db.models.offer import Offer
from db.models.offer_history import OfferHistory
from services.merchant_service import MerchantService
from services.offer_service import OfferService, price_window_stats
from services.product_service import ProductService


async def _lowest(db_session, product_id):
    result = await db_session.execute(
        select(Offer.id).where(Offer.product_id == product_id, Offer.is_lowest_price == True)  # noqa: E712
    )
    return result.scalars().all()


async def _history(db_session, offer_id):
    result = await db_session.execute(
        select(OfferHistory)
        .where(OfferHistory.offer_id == offer_id)
        .order_by(OfferHistory.created_at, OfferHistory.id)
    )
    return result.scalars().all()


@pytest.mark.integration
class TestLowestPrice:

    async def test_cheaper_offer_takes_the_marker(self, db_session, product, merchants):
        svc = OfferService(db_session)
        a = await svc.create_offer(product.id, merchants[0].id, Decimal("1000"))
        assert a.is_lowest_price is True

        b = await svc.create_offer(product.id, merchants[1].id, Decimal("800"))
        await db_session.refresh(a)
        assert b.is_lowest_price is True
        assert a.is_lowest_price is False
        assert await _lowest(db_session, product.id) == [b.id]

    async def test_price_increase_moves_marker_back(self, db_session, product, merchants):
        svc = OfferService(db_session)
        a = await svc.create_offer(product.id, merchants[0].id, Decimal("1000"))
        b = await svc.create_offer(product.id, merchants[1].id, Decimal("800"))

        b = await svc.update_offer(b.id, {"price": Decimal("1200")})
        await db_session.refresh(a)
        assert a.is_lowest_price is True
        assert b.is_lowest_price is False

    async def test_out_of_stock_offers_never_win(self, db_session, product, merchants):
        svc = OfferService(db_session)
        a = await svc.create_offer(product.id, merchants[0].id, Decimal("500"), in_stock=False)
        assert a.is_lowest_price is False
        assert await _lowest(db_session, product.id) == []

        b = await svc.create_offer(product.id, merchants[1].id, Decimal("900"))
        assert b.is_lowest_price is True

        await svc.update_offer(b.id, {"in_stock": False})
        assert await _lowest(db_session, product.id) == []

    async def test_inactive_offer_loses_marker(self, db_session, product, merchants):
        svc = OfferService(db_session)
        a = await svc.create_offer(product.id, merchants[0].id, Decimal("100"))
        b = await svc.create_offer(product.id, merchants[1].id, Decimal("200"))

        await svc.update_offer(a.id, {"is_active": False})
        assert await _lowest(db_session, product.id) == [b.id]

    async def test_price_tie_goes_to_lowest_id(self, db_session, product, merchants):
        svc = OfferService(db_session)
        a = await svc.create_offer(product.id, merchants[0].id, Decimal("300"))
        await svc.create_offer(product.id, merchants[1].id, Decimal("300.00"))
        assert await _lowest(db_session, product.id) == [a.id]

    async def test_delete_recomputes_marker(self, db_session, product, merchants):
        svc = OfferService(db_session)
        a = await svc.create_offer(product.id, merchants[0].id, Decimal("1000"))
        b = await svc.create_offer(product.id, merchants[1].id, Decimal("800"))

        await svc.delete_offer(b.id)
        assert await _lowest(db_session, product.id) == [a.id]
        assert await _history(db_session, b.id) == []

    async def test_refresh_repairs_a_corrupted_marker(self, db_session, product, merchants):
        svc = OfferService(db_session)
        a = await svc.create_offer(product.id, merchants[0].id, Decimal("10"))
        b = await svc.create_offer(product.id, merchants[1].id, Decimal("20"))
        await db_session.execute(
            update(Offer)
            .where(Offer.product_id == product.id)
            .values(is_lowest_price=True)
            .execution_options(synchronize_session=False)
        )

        assert await svc.refresh_lowest_price(product.id) == a.id
        assert await _lowest(db_session, product.id) == [a.id]
        assert b.id not in await _lowest(db_session, product.id)


@pytest.mark.integration
class TestOfferWrites:

    async def test_duplicate_pair_conflicts(self, db_session, product, merchants):
        svc = OfferService(db_session)
        await svc.create_offer(product.id, merchants[0].id, Decimal("10"))
        with pytest.raises(ConflictError):
            await svc.create_offer(product.id, merchants[0].id, Decimal("12"))

    async def test_missing_product_or_merchant(self, db_session, product, merchants):
        svc = OfferService(db_session)
        with pytest.raises(NotFoundError):
            await svc.create_offer(9999, merchants[0].id, Decimal("10"))
        with pytest.raises(NotFoundError):
            await svc.create_offer(product.id, 9999, Decimal("10"))

    async def test_negative_price_rejected(self, db_session, product, merchants):
        svc = OfferService(db_session)
        with pytest.raises(ValidationError):
            await svc.create_offer(product.id, merchants[0].id, Decimal("-1"))

    async def test_defaults_applied(self, db_session, product, merchants):
        offer = await OfferService(db_session).create_offer(
            product.id, merchants[0].id, Decimal("19.999"), currency=None
        )
        assert offer.currency == "EUR"
        assert offer.price == Decimal("20.00")
        assert offer.shipping_cost == Decimal("0.00")

    async def test_update_missing_offer(self, db_session):
        with pytest.raises(NotFoundError):
            await OfferService(db_session).update_offer(12345, {"price": Decimal("1")})

    async def test_noop_update_writes_nothing(self, db_session, product, merchants):
        svc = OfferService(db_session)
        offer = await svc.create_offer(product.id, merchants[0].id, Decimal("99.90"), stock_quantity=5)
        stamp = offer.last_updated

        same = await svc.update_offer(
            offer.id, {"price": Decimal("99.9"), "stock_quantity": 5, "in_stock": True}
        )
        assert same.last_updated == stamp
        assert len(await _history(db_session, offer.id)) == 1

    async def test_non_ledger_edit_skips_history(self, db_session, product, merchants):
        svc = OfferService(db_session)
        offer = await svc.create_offer(product.id, merchants[0].id, Decimal("50"))

        offer = await svc.update_offer(offer.id, {"warranty": "24 months"})
        assert offer.warranty == "24 months"
        assert len(await _history(db_session, offer.id)) == 1

    async def test_merchant_product_count(self, db_session, product, merchants):
        svc = OfferService(db_session)
        offer = await svc.create_offer(product.id, merchants[0].id, Decimal("50"))
        await db_session.refresh(merchants[0])
        assert merchants[0].product_count == 1

        await svc.delete_offer(offer.id)
        await db_session.refresh(merchants[0])
        assert merchants[0].product_count == 0


@pytest.mark.integration
class TestHistoryLedger:

    async def test_first_record_mirrors_offer(self, db_session, product, merchants):
        offer = await OfferService(db_session).create_offer(
            product.id, merchants[0].id, Decimal("100"), original_price=Decimal("120")
        )
        (first,) = await _history(db_session, offer.id)
        assert first.price == Decimal("100.00")
        assert first.original_price == Decimal("120.00")
        assert first.price_change == Decimal("0.00")
        assert first.price_change_percentage is None
        assert first.previous_price is None
        assert first.is_lowest_price is True

    async def test_price_changes_are_chained(self, db_session, product, merchants):
        svc = OfferService(db_session)
        offer = await svc.create_offer(product.id, merchants[0].id, Decimal("100"))
        await svc.update_offer(offer.id, {"price": Decimal("80")})
        await svc.update_offer(offer.id, {"price": Decimal("90")})

        records = await _history(db_session, offer.id)
        assert [r.price for r in records] == [Decimal("100.00"), Decimal("80.00"), Decimal("90.00")]
        assert [r.price_change for r in records] == [
            Decimal("0.00"), Decimal("-20.00"), Decimal("10.00")
        ]
        assert records[1].price_change_percentage == -20.0
        assert records[1].previous_price == Decimal("100.00")
        assert records[1].is_lowest_price is True
        assert records[2].is_lowest_price is False

    async def test_latest_record_matches_offer(self, db_session, product, merchants):
        svc = OfferService(db_session)
        offer = await svc.create_offer(product.id, merchants[0].id, Decimal("100"))
        offer = await svc.update_offer(
            offer.id, {"in_stock": False, "stock_quantity": 0, "original_price": Decimal("150")}
        )

        latest = (await svc.get_history(offer.id, limit=1))[0]
        assert latest.price == offer.price
        assert latest.in_stock is False
        assert latest.stock_quantity == 0
        assert latest.original_price == Decimal("150.00")
        assert latest.previous_price is None


@pytest.mark.integration
class TestPriceHistory:

    async def test_window_and_stats(self, db_session, product, merchants):
        svc = OfferService(db_session)
        offer = await svc.create_offer(product.id, merchants[0].id, Decimal("100"))
        await svc.update_offer(offer.id, {"price": Decimal("80")})
        await svc.update_offer(offer.id, {"price": Decimal("120")})

        # Push the first record out of a 7 day window
        first = (await _history(db_session, offer.id))[0]
        first.created_at = utc_now() - timedelta(days=10)
        await db_session.flush()

        result = await svc.get_price_history(offer.id, days=7)
        stats = result["stats"]
        assert [p["price"] for p in result["points"]] == [Decimal("80.00"), Decimal("120.00")]
        assert stats["data_points"] == 2
        assert stats["current_price"] == Decimal("120.00")
        assert stats["price_change"] == Decimal("40.00")
        assert stats["price_change_percentage"] == 50.0
        assert stats["min_price"] == Decimal("80.00")
        assert stats["max_price"] == Decimal("120.00")
        assert stats["average_price"] == Decimal("100.00")

        wide = await svc.get_price_history(offer.id, days=30)
        assert wide["stats"]["data_points"] == 3

    async def test_days_out_of_range(self, db_session, product, merchants):
        svc = OfferService(db_session)
        offer = await svc.create_offer(product.id, merchants[0].id, Decimal("100"))
        with pytest.raises(ValidationError):
            await svc.get_price_history(offer.id, days=0)
        with pytest.raises(ValidationError):
            await svc.get_price_history(offer.id, days=10_000)

    async def test_missing_offer(self, db_session):
        with pytest.raises(NotFoundError):
            await OfferService(db_session).get_price_history(4242, days=30)


@pytest.mark.unit
class TestPriceWindowStats:

    def test_empty_window_is_all_zero(self):
        stats = price_window_stats([], 30)
        assert stats["data_points"] == 0
        assert stats["current_price"] == Decimal("0.00")
        assert stats["price_change_percentage"] == 0.0

    def test_zero_first_price_has_no_percentage(self):
        points = [{"price": Decimal("0.00")}, {"price": Decimal("5.00")}]
        stats = price_window_stats(points, 7)
        assert stats["price_change"] == Decimal("5.00")
        assert stats["price_change_percentage"] == 0.0


@pytest.mark.integration
class TestCascadingDeletes:

    async def test_merchant_with_offers_needs_force(self, db_session, product, merchants):
        offers = OfferService(db_session)
        a = await offers.create_offer(product.id, merchants[0].id, Decimal("10"))
        b = await offers.create_offer(product.id, merchants[1].id, Decimal("20"))

        svc = MerchantService(db_session)
        with pytest.raises(HasOffersError):
            await svc.delete_merchant(merchants[0].id)

        await svc.delete_merchant(merchants[0].id, force=True)
        assert await offers.get_by_id(a.id) is None
        assert await _lowest(db_session, product.id) == [b.id]

    async def test_product_delete_removes_offers(self, db_session, category, product, merchants):
        offers = OfferService(db_session)
        offer = await offers.create_offer(product.id, merchants[0].id, Decimal("10"))

        await ProductService(db_session).delete_product(product.id)
        assert await offers.get_by_id(offer.id) is None
        assert await _history(db_session, offer.id) == []

        await db_session.refresh(category)
        await db_session.refresh(merchants[0])
        assert category.product_count == 0
        assert merchants[0].product_count == 0


@pytest.mark.integration
class TestOfferNeighbours:

    async def test_competing_offers_skip_own_merchant(self, db_session, product, merchants):
        svc = OfferService(db_session)
        own = await svc.create_offer(product.id, merchants[0].id, Decimal("500"))
        cheap = await svc.create_offer(product.id, merchants[1].id, Decimal("450"))
        await svc.create_offer(product.id, merchants[2].id, Decimal("400"), in_stock=False)

        competing = await svc.get_competing_offers(product.id, own.merchant_id)
        assert [(o.id, m.id) for o, m in competing] == [(cheap.id, merchants[1].id)]

        stats = await svc.get_price_stats(product.id, exclude_merchant_id=own.merchant_id)
        assert stats["total_offers"] == 1
        assert stats["min_price"] == Decimal("450.00")

    async def test_merchant_offers_exclude_current(self, db_session, category, product, merchants):
        second = await ProductService(db_session).create_product("Galaxy S23", category_id=category.id)
        svc = OfferService(db_session)
        current = await svc.create_offer(product.id, merchants[0].id, Decimal("900"))
        other = await svc.create_offer(second.id, merchants[0].id, Decimal("700"))

        offers = await svc.get_merchant_offers(merchants[0].id, exclude_offer_id=current.id)
        assert [o.id for o in offers] == [other.id]

    async def test_relationships_are_never_lazy_loaded(self, db_session, product, merchants):
        offer = await OfferService(db_session).create_offer(product.id, merchants[0].id, Decimal("5"))
        with pytest.raises(InvalidRequestError):
            offer.product
