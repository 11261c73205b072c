"""Shared pytest fixtures for the catalog test suite.

Provides:
- In-memory async SQLite database per test (no PostgreSQL needed)
- AsyncSession for service-level tests
- FastAPI test client (httpx.AsyncClient)
- Pre-seeded catalog data (categories, merchants, product)
"""

import os
from typing import AsyncGenerator

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

# Override settings BEFORE any app imports
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("LOG_FORMAT", "colored")

from db.base import Base  # noqa: E402
from db.database import create_db_engine, create_session_factory  # noqa: E402


# ---------------------------------------------------------------------------
# Database fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def db_engine():
    """Create a fresh in-memory database for one test."""
    engine = create_db_engine("sqlite+aiosqlite:///:memory:", echo=False)
    # Import all models so Base.metadata knows about them
    import db.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(db_engine) -> AsyncGenerator[AsyncSession, None]:
    """Provide a DB session; rolled back at the end of the test."""
    async_session_factory = create_session_factory(db_engine)
    async with async_session_factory() as session:
        yield session
        await session.rollback()


# ---------------------------------------------------------------------------
# App / HTTP client fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def app(db_engine):
    """Create a FastAPI app instance wired to the test database."""
    # Patch the database module to use our test engine
    import db.database as db_mod
    original_engine = db_mod.engine
    original_session = db_mod.AsyncSessionLocal

    db_mod.engine = db_engine
    db_mod.AsyncSessionLocal = create_session_factory(db_engine)

    from app.main import create_app
    test_app = create_app()

    yield test_app

    # Restore originals
    db_mod.engine = original_engine
    db_mod.AsyncSessionLocal = original_session


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP test client."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test", follow_redirects=True) as ac:
        yield ac


# ---------------------------------------------------------------------------
# Test data fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def category(db_session):
    """A root category."""
    from services.category_service import CategoryService

    return await CategoryService(db_session).create_category("Electronics")


@pytest_asyncio.fixture
async def product(db_session, category):
    """A product filed under ``category``."""
    from services.product_service import ProductService

    return await ProductService(db_session).create_product(
        "Galaxy S24",
        category_id=category.id,
        brand="Samsung",
        model="SM-S921B",
    )


@pytest_asyncio.fixture
async def merchants(db_session):
    """Three merchants, A, B and C."""
    from services.merchant_service import MerchantService

    svc = MerchantService(db_session)
    return [
        await svc.create_merchant("Shop A", rating=4.5),
        await svc.create_merchant("Shop B", rating=4.0),
        await svc.create_merchant("Shop C", rating=3.5),
    ]
