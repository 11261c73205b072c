"""API v1 aggregated router.

All v1 endpoints are registered here and mounted under /api/v1 in main.py.
"""

from fastapi import APIRouter

from api.routes import categories, health, merchants, offers, products

api_v1_router = APIRouter()

# Health
api_v1_router.include_router(
    health.router,
    tags=["Health"],
)

# Category tree
api_v1_router.include_router(
    categories.router,
    prefix="/categories",
    tags=["Categories"],
)

# Merchants
api_v1_router.include_router(
    merchants.router,
    prefix="/merchants",
    tags=["Merchants"],
)

# Products
api_v1_router.include_router(
    products.router,
    prefix="/products",
    tags=["Products"],
)

# Offers and price history
api_v1_router.include_router(
    offers.router,
    prefix="/offers",
    tags=["Offers"],
)
