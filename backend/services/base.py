"""Base CRUD service.

All service classes inherit from this. Provides standard
create/read/update/delete with typed filters, pagination and
slug allocation.
"""

from typing import Any, Generic, Iterable, Optional, Sequence, Type, TypeVar

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import NotFoundError
from core.filters import FilterExpr, apply_filters
from core.utils import generate_slug
from db.base import BaseModel

ModelType = TypeVar("ModelType", bound=BaseModel)


class BaseService(Generic[ModelType]):
    """Generic CRUD service for any SQLAlchemy model.

    Usage:
        class MerchantService(BaseService[Merchant]):
            def __init__(self, db: AsyncSession):
                super().__init__(Merchant, db)
    """

    #: Name used in NotFound messages and as slug fallback
    label = "resource"

    def __init__(self, model: Type[ModelType], db: AsyncSession):
        self.model = model
        self.db = db

    # ─── Read ──────────────────────────────────────────────

    async def get_by_id(self, id: int) -> Optional[ModelType]:
        """Get a single record by ID."""
        result = await self.db.execute(select(self.model).where(self.model.id == id))
        return result.scalar_one_or_none()

    async def get_or_404(self, id: int) -> ModelType:
        """Get a record by ID or raise NotFoundError."""
        instance = await self.get_by_id(id)
        if instance is None:
            raise NotFoundError(f"{self.label.capitalize()} {id} not found")
        return instance

    async def list(
        self,
        offset: int = 0,
        limit: int = 50,
        order_by: str = "created_at",
        order_desc: bool = True,
        filters: Iterable[FilterExpr] = (),
    ) -> tuple[Sequence[ModelType], int]:
        """List records with pagination, filtering, and sorting.

        Returns:
            Tuple of (items, total_count)
        """
        filters = list(filters)
        query = apply_filters(select(self.model), self.model, filters)
        count_query = apply_filters(
            select(func.count()).select_from(self.model), self.model, filters
        )

        if hasattr(self.model, order_by):
            col = getattr(self.model, order_by)
            query = query.order_by(col.desc() if order_desc else col.asc(), self.model.id)

        query = query.offset(offset).limit(limit)

        result = await self.db.execute(query)
        items = result.scalars().all()

        count_result = await self.db.execute(count_query)
        total = count_result.scalar() or 0

        return items, total

    # ─── Create ────────────────────────────────────────────

    async def create(self, data: dict[str, Any]) -> ModelType:
        """Create a new record.

        Args:
            data: Dict of field values

        Returns:
            Created model instance
        """
        instance = self.model(**data)
        self.db.add(instance)
        await self.db.flush()
        await self.db.refresh(instance)
        return instance

    # ─── Update ────────────────────────────────────────────

    async def update(self, id: int, data: dict[str, Any]) -> ModelType:
        """Update a record by ID.

        Args:
            id: Record ID
            data: Dict of fields to set (keys not on the model are ignored)

        Returns:
            Updated model instance

        Raises:
            NotFoundError: If the record does not exist
        """
        instance = await self.get_or_404(id)
        if not data:
            return instance

        for key, value in data.items():
            if hasattr(instance, key):
                setattr(instance, key, value)

        await self.db.flush()
        await self.db.refresh(instance)
        return instance

    # ─── Delete ────────────────────────────────────────────

    async def delete(self, id: int) -> None:
        """Permanently delete a record.

        Raises:
            NotFoundError: If the record does not exist
        """
        instance = await self.get_or_404(id)
        await self.db.delete(instance)
        await self.db.flush()

    # ─── Slugs ─────────────────────────────────────────────

    async def unique_slug(self, name: str, exclude_id: Optional[int] = None) -> str:
        """Derive a slug from ``name`` that no other row uses.

        Collisions get a numeric suffix: ``phones``, ``phones-2``, ``phones-3``.
        """
        base = generate_slug(name) or self.label
        query = select(self.model.slug).where(
            (self.model.slug == base) | self.model.slug.like(f"{base}-%")
        )
        if exclude_id is not None:
            query = query.where(self.model.id != exclude_id)
        result = await self.db.execute(query)
        taken = set(result.scalars().all())

        if base not in taken:
            return base
        suffix = 2
        while f"{base}-{suffix}" in taken:
            suffix += 1
        return f"{base}-{suffix}"
