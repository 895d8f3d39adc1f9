"""
Base repository.

Generic CRUD operations for all repositories.
"""

from typing import Any, Generic, TypeVar

from sqlalchemy import ColumnElement, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from affiliates.models.base import Base
from affiliates.utils.pagination import Page, clamp_limit, decode_cursor, encode_cursor

# Generic type for model
ModelType = TypeVar("ModelType", bound=Base)


class BaseRepository(Generic[ModelType]):
    """
    Base repository with generic CRUD operations.

    Provides async database operations for any SQLAlchemy model.

    Type Parameters:
        ModelType: SQLAlchemy model class

    Example:
        class PayoutRepository(BaseRepository[Payout]):
            def __init__(self, session: AsyncSession):
                super().__init__(Payout, session)
    """

    def __init__(
        self, model: type[ModelType], session: AsyncSession
    ) -> None:
        """
        Initialize repository.

        Args:
            model: SQLAlchemy model class
            session: Async database session
        """
        self.model = model
        self.session = session

    async def get_by_id(self, id: int, fresh: bool = False) -> ModelType | None:
        """
        Get entity by ID.

        Args:
            id: Entity ID
            fresh: Reload attributes even if the entity is already loaded

        Returns:
            Entity or None if not found
        """
        return await self.session.get(self.model, id, populate_existing=fresh)

    async def get_for_update(self, id: int) -> ModelType | None:
        """
        Get entity by ID and lock its row until the transaction ends.

        Args:
            id: Entity ID

        Returns:
            Entity or None if not found
        """
        stmt = (
            select(self.model)
            .where(self.model.id == id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by(self, **filters: Any) -> ModelType | None:
        """
        Get single entity by filters.

        Args:
            **filters: Column filters

        Returns:
            First matching entity or None
        """
        stmt = select(self.model).filter_by(**filters).limit(1)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def find_all(
        self,
        limit: int | None = None,
        offset: int | None = None,
        **filters: Any,
    ) -> list[ModelType]:
        """
        Find all entities matching filters.

        Args:
            limit: Max number of results
            offset: Number of results to skip
            **filters: Column filters

        Returns:
            List of matching entities
        """
        stmt = select(self.model).filter_by(**filters).order_by(self.model.id)

        if offset:
            stmt = stmt.offset(offset)
        if limit:
            stmt = stmt.limit(limit)

        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def find_by(self, **filters: Any) -> list[ModelType]:
        """Find entities by filters."""
        return await self.find_all(**filters)

    async def create(self, **data: Any) -> ModelType:
        """
        Create new entity.

        Args:
            **data: Entity data

        Returns:
            Created entity

        Raises:
            IntegrityError: If a constraint rejects the row
        """
        entity = self.model(**data)
        self.session.add(entity)
        await self.session.flush()
        await self.session.refresh(entity)
        return entity

    async def delete(self, entity: ModelType) -> None:
        """Delete entity."""
        await self.session.delete(entity)
        await self.session.flush()

    async def count(self, **filters: Any) -> int:
        """
        Count entities matching filters.

        Args:
            **filters: Column filters

        Returns:
            Count of matching entities
        """
        stmt = select(func.count()).select_from(self.model)

        if filters:
            stmt = stmt.filter_by(**filters)

        result = await self.session.execute(stmt)
        return result.scalar() or 0

    async def exists(self, **filters: Any) -> bool:
        """Check if entity exists."""
        count = await self.count(**filters)
        return count > 0

    async def find_page(
        self,
        *conditions: ColumnElement[bool],
        limit: int | None = None,
        cursor: str | None = None,
    ) -> Page[ModelType]:
        """
        Find entities newest first with cursor pagination.

        Args:
            *conditions: WHERE clauses
            limit: Page size
            cursor: Cursor returned by the previous page

        Returns:
            Page of entities

        Raises:
            InvalidCursorError: If cursor is malformed
        """
        page_size = clamp_limit(limit)
        last_id = decode_cursor(cursor)

        stmt = select(self.model).where(*conditions)
        if last_id is not None:
            stmt = stmt.where(self.model.id < last_id)
        stmt = stmt.order_by(self.model.id.desc()).limit(page_size + 1)

        result = await self.session.execute(stmt)
        rows = list(result.scalars().all())

        next_cursor = None
        if len(rows) > page_size:
            rows = rows[:page_size]
            next_cursor = encode_cursor(rows[-1].id)
        return Page(items=rows, next_cursor=next_cursor)
