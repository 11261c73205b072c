"""Integration tests for API endpoints.

These tests exercise the full HTTP stack: FastAPI → route → service → DB.
Uses an in-memory SQLite database for speed and isolation.
"""

from decimal import Decimal

import pytest


async def _catalog(client):
    """Create a category, a product and two merchants through the API."""
    cat = (await client.post("/api/v1/categories/", json={"name": "Phones"})).json()
    product = (
        await client.post(
            "/api/v1/products/",
            json={"name": "Pixel 8", "category_id": cat["id"], "brand": "Google"},
        )
    ).json()
    shop_a = (await client.post("/api/v1/merchants/", json={"name": "Shop A", "rating": 4.5})).json()
    shop_b = (await client.post("/api/v1/merchants/", json={"name": "Shop B", "rating": 3.0})).json()
    return cat, product, shop_a, shop_b


# ─── Offers ───

@pytest.mark.integration
class TestOffersAPI:

    async def test_lowest_price_follows_updates(self, client):
        _, product, shop_a, shop_b = await _catalog(client)

        resp = await client.post(
            "/api/v1/offers/",
            json={"product_id": product["id"], "merchant_id": shop_a["id"], "price": "1000"},
        )
        assert resp.status_code == 201
        offer_a = resp.json()
        resp = await client.post(
            "/api/v1/offers/",
            json={
                "product_id": product["id"],
                "merchant_id": shop_b["id"],
                "price": "800",
                "original_price": "1000",
            },
        )
        offer_b = resp.json()
        assert offer_b["is_lowest_price"] is True
        assert offer_b["discount_percentage"] == 20
        assert Decimal(offer_b["discount_amount"]) == Decimal("200")

        resp = await client.get(f"/api/v1/offers/{offer_a['id']}")
        assert resp.json()["is_lowest_price"] is False

        resp = await client.put(f"/api/v1/offers/{offer_b['id']}", json={"price": "1200"})
        assert resp.status_code == 200
        assert resp.json()["is_lowest_price"] is False

        detail = (await client.get(f"/api/v1/offers/{offer_a['id']}")).json()
        assert detail["is_lowest_price"] is True
        assert len(detail["history"]) == 1

    async def test_duplicate_offer_conflicts(self, client):
        _, product, shop_a, _ = await _catalog(client)
        payload = {"product_id": product["id"], "merchant_id": shop_a["id"], "price": "10"}

        assert (await client.post("/api/v1/offers/", json=payload)).status_code == 201
        resp = await client.post("/api/v1/offers/", json=payload)
        assert resp.status_code == 409
        assert resp.json()["error_code"] == "conflict"

    async def test_missing_offer_is_404(self, client):
        resp = await client.put("/api/v1/offers/999", json={"price": "1"})
        assert resp.status_code == 404
        assert resp.json()["error_code"] == "not_found"
        assert (await client.delete("/api/v1/offers/999")).status_code == 404

    async def test_list_filters_and_sort(self, client):
        cat, product, shop_a, shop_b = await _catalog(client)
        for shop, price in ((shop_a, "50"), (shop_b, "30")):
            await client.post(
                "/api/v1/offers/",
                json={"product_id": product["id"], "merchant_id": shop["id"], "price": price},
            )

        resp = await client.get("/api/v1/offers/", params={"sort": "price_asc"})
        prices = [Decimal(o["price"]) for o in resp.json()["offers"]]
        assert prices == [Decimal("30"), Decimal("50")]

        resp = await client.get("/api/v1/offers/", params={"max_price": "40"})
        assert resp.json()["total"] == 1

        resp = await client.get("/api/v1/offers/", params={"category_id": cat["id"], "search": "pixel"})
        assert resp.json()["total"] == 2

    async def test_price_history_endpoint(self, client):
        _, product, shop_a, _ = await _catalog(client)
        offer = (
            await client.post(
                "/api/v1/offers/",
                json={"product_id": product["id"], "merchant_id": shop_a["id"], "price": "100"},
            )
        ).json()
        await client.put(f"/api/v1/offers/{offer['id']}", json={"price": "75"})

        resp = await client.get(f"/api/v1/offers/{offer['id']}/price-history", params={"days": 7})
        assert resp.status_code == 200
        data = resp.json()
        assert data["stats"]["data_points"] == 2
        assert data["stats"]["price_change_percentage"] == -25.0
        assert [Decimal(p["price"]) for p in data["points"]] == [Decimal("100"), Decimal("75")]

        resp = await client.get(f"/api/v1/offers/{offer['id']}/price-history", params={"days": 9999})
        assert resp.status_code == 422

    async def test_detail_compares_other_merchants(self, client):
        _, product, shop_a, shop_b = await _catalog(client)
        shop_c = (await client.post("/api/v1/merchants/", json={"name": "Shop C"})).json()
        other = (await client.post("/api/v1/products/", json={"name": "Pixel 8a"})).json()
        offers = {}
        for shop, price in ((shop_a, "500"), (shop_b, "450"), (shop_c, "400")):
            offers[shop["name"]] = (
                await client.post(
                    "/api/v1/offers/",
                    json={"product_id": product["id"], "merchant_id": shop["id"], "price": price},
                )
            ).json()
        side = (
            await client.post(
                "/api/v1/offers/",
                json={"product_id": other["id"], "merchant_id": shop_a["id"], "price": "300"},
            )
        ).json()

        detail = (await client.get(f"/api/v1/offers/{offers['Shop A']['id']}")).json()

        assert detail["price_stats"]["total_offers"] == 2
        assert Decimal(detail["price_stats"]["max_price"]) == Decimal("450")
        assert [o["merchant"]["name"] for o in detail["other_merchants"]] == ["Shop C", "Shop B"]
        assert detail["other_merchants"][0]["id"] == offers["Shop C"]["id"]
        assert [o["id"] for o in detail["merchant_offers"]] == [side["id"]]


# ─── Categories ───

@pytest.mark.integration
class TestCategoriesAPI:

    async def test_detail_has_breadcrumb(self, client):
        root = (await client.post("/api/v1/categories/", json={"name": "Electronics"})).json()
        child = (
            await client.post("/api/v1/categories/", json={"name": "Phones", "parent_id": root["id"]})
        ).json()
        assert child["level"] == 2

        detail = (await client.get(f"/api/v1/categories/{child['id']}")).json()
        assert [b["slug"] for b in detail["breadcrumb"]] == ["electronics", "phones"]

        tree = (await client.get("/api/v1/categories/")).json()
        assert tree["total"] == 2
        assert tree["categories"][0]["children"][0]["id"] == child["id"]

    async def test_invalid_parent_is_400(self, client):
        resp = await client.post("/api/v1/categories/", json={"name": "Lost", "parent_id": 42})
        assert resp.status_code == 400

        root = (await client.post("/api/v1/categories/", json={"name": "Root"})).json()
        child = (
            await client.post("/api/v1/categories/", json={"name": "Child", "parent_id": root["id"]})
        ).json()
        resp = await client.put(f"/api/v1/categories/{root['id']}", json={"parent_id": child["id"]})
        assert resp.status_code == 400

    async def test_delete_guards(self, client):
        cat, _, _, _ = await _catalog(client)
        resp = await client.delete(f"/api/v1/categories/{cat['id']}")
        assert resp.status_code == 403
        assert resp.json()["error_code"] == "has_products"

    async def test_descendants(self, client):
        root = (await client.post("/api/v1/categories/", json={"name": "Root"})).json()
        child = (
            await client.post("/api/v1/categories/", json={"name": "Child", "parent_id": root["id"]})
        ).json()
        resp = await client.get(f"/api/v1/categories/{root['id']}/descendants")
        assert resp.json() == {"category_id": root["id"], "descendant_ids": [child["id"]]}

    async def test_stats(self, client):
        cat, product, shop_a, shop_b = await _catalog(client)
        await client.post("/api/v1/categories/", json={"name": "Empty"})
        for shop, price in ((shop_a, "90"), (shop_b, "110")):
            await client.post(
                "/api/v1/offers/",
                json={"product_id": product["id"], "merchant_id": shop["id"], "price": price},
            )

        resp = await client.get("/api/v1/categories/stats")
        assert resp.status_code == 200
        data = resp.json()
        assert data["total"] == 2
        first, empty = data["stats"]
        assert first["id"] == cat["id"]
        assert (first["product_count"], first["offer_count"], first["brand_count"]) == (1, 2, 1)
        assert Decimal(first["avg_price"]) == Decimal("100")
        assert empty["product_count"] == 0
        assert empty["min_price"] is None


# ─── Merchants / products ───

@pytest.mark.integration
class TestMerchantsAPI:

    async def test_force_delete(self, client):
        _, product, shop_a, _ = await _catalog(client)
        await client.post(
            "/api/v1/offers/",
            json={"product_id": product["id"], "merchant_id": shop_a["id"], "price": "10"},
        )

        resp = await client.delete(f"/api/v1/merchants/{shop_a['id']}")
        assert resp.status_code == 403
        resp = await client.delete(f"/api/v1/merchants/{shop_a['id']}", params={"force": "true"})
        assert resp.status_code == 204
        assert (await client.get(f"/api/v1/merchants/{shop_a['id']}")).status_code == 404

    async def test_column_filters(self, client):
        await _catalog(client)
        resp = await client.get("/api/v1/merchants/", params={"rating[gte]": "4"})
        assert [m["name"] for m in resp.json()["merchants"]] == ["Shop A"]

        resp = await client.get("/api/v1/merchants/", params={"owner": "me"})
        assert resp.status_code == 422

    async def test_product_comparison(self, client):
        _, product, shop_a, shop_b = await _catalog(client)
        for shop, price in ((shop_a, "120"), (shop_b, "80")):
            await client.post(
                "/api/v1/offers/",
                json={"product_id": product["id"], "merchant_id": shop["id"], "price": price},
            )

        data = (await client.get(f"/api/v1/products/{product['id']}/offers")).json()
        assert [Decimal(o["price"]) for o in data["offers"]] == [Decimal("80"), Decimal("120")]
        assert data["stats"]["total_offers"] == 2
        assert Decimal(data["stats"]["avg_price"]) == Decimal("100")
        assert data["stats"]["price_range"]["range_percentage"] == 40

    async def test_update_clears_nullable_fields(self, client):
        shop = (
            await client.post(
                "/api/v1/merchants/",
                json={"name": "Shop X", "website_url": "http://x", "description": "Gadgets"},
            )
        ).json()

        resp = await client.put(f"/api/v1/merchants/{shop['id']}", json={"website_url": None})
        assert resp.status_code == 200
        assert resp.json()["website_url"] is None
        assert resp.json()["description"] == "Gadgets"

        detail = (await client.get(f"/api/v1/merchants/{shop['id']}")).json()
        assert detail["website_url"] is None

    async def test_detail_has_stats_and_top_categories(self, client):
        cat, product, shop_a, _ = await _catalog(client)
        await client.post(
            "/api/v1/offers/",
            json={"product_id": product["id"], "merchant_id": shop_a["id"], "price": "250"},
        )

        detail = (await client.get(f"/api/v1/merchants/{shop_a['id']}")).json()
        assert detail["stats"]["total_products"] == 1
        assert detail["stats"]["in_stock_count"] == 1
        assert Decimal(detail["stats"]["min_price"]) == Decimal("250")
        assert detail["top_categories"] == [
            {"id": cat["id"], "name": "Phones", "slug": "phones", "product_count": 1}
        ]

    async def test_similar_products(self, client):
        cat, product, shop_a, _ = await _catalog(client)
        sibling = (
            await client.post("/api/v1/products/", json={"name": "Galaxy S24", "category_id": cat["id"]})
        ).json()
        await client.post("/api/v1/products/", json={"name": "Kettle", "brand": "Tefal"})
        await client.post(
            "/api/v1/offers/",
            json={"product_id": sibling["id"], "merchant_id": shop_a["id"], "price": "700"},
        )

        data = (await client.get(f"/api/v1/products/{product['id']}/similar")).json()
        assert data["total"] == 1
        assert data["products"][0]["id"] == sibling["id"]
        assert Decimal(data["products"][0]["min_price"]) == Decimal("700")

        assert (await client.get("/api/v1/products/999/similar")).status_code == 404

    async def test_catalog_stats(self, client):
        cat, product, shop_a, _ = await _catalog(client)
        await client.post("/api/v1/products/", json={"name": "Pixel Buds", "brand": "Google"})
        await client.post(
            "/api/v1/offers/",
            json={"product_id": product["id"], "merchant_id": shop_a["id"], "price": "10"},
        )

        data = (await client.get("/api/v1/products/stats")).json()
        assert data["total_products"] == 2
        assert data["total_brands"] == 1
        assert data["in_stock_products"] == 1
        assert data["top_categories"][0]["id"] == cat["id"]
