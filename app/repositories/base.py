"""Generic async repository with soft-delete, pagination, and tenant isolation."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Generic, TypeVar

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.base import Base

ModelT = TypeVar("ModelT", bound=Base)


class BaseRepository(Generic[ModelT]):
    """Generic CRUD repository.

    Models carrying ``client_id`` are filtered by tenant on every query;
    global tables (users, products, snapshots) are not. Rows with
    ``deleted_at IS NOT NULL`` are excluded from all standard reads.
    Hard-delete is intentionally never exposed.
    """

    model: type[ModelT]

    def __init__(self, session: AsyncSession, client_id: str | None = None):
        self._session = session
        self._client_id = client_id

    @property
    def _tenant_scoped(self) -> bool:
        return hasattr(self.model, "client_id") and self._client_id is not None

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _base_query(self):
        """Return a SELECT filtered by client_id and excluding soft-deleted rows."""
        q = select(self.model)
        if self._tenant_scoped:
            q = q.where(self.model.client_id == self._client_id)
        if hasattr(self.model, "deleted_at"):
            q = q.where(self.model.deleted_at.is_(None))
        return q

    def _pk(self):
        return self.model.__mapper__.primary_key[0]

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    async def get_by_id(self, entity_id: Any, *, for_update: bool = False) -> ModelT | None:
        q = self._base_query().where(self._pk() == entity_id)
        if for_update:
            q = q.with_for_update()
        result = await self._session.execute(q)
        return result.scalars().first()

    async def list(
        self,
        *,
        offset: int = 0,
        limit: int = 20,
        order_by: str = "created_at",
        order: str = "desc",
        filters: dict[str, Any] | None = None,
    ) -> tuple[list[ModelT], int]:
        """Return (items, total_count) with pagination and optional column filters."""
        q = self._base_query()

        if filters:
            for col_name, value in filters.items():
                if value is not None and hasattr(self.model, col_name):
                    q = q.where(getattr(self.model, col_name) == value)

        count_q = select(func.count()).select_from(q.subquery())
        total = (await self._session.execute(count_q)).scalar_one()

        col = getattr(self.model, order_by, None)
        if col is not None:
            q = q.order_by(col.desc() if order == "desc" else col.asc())
        q = q.offset(offset).limit(limit)

        items = (await self._session.execute(q)).scalars().all()
        return list(items), total

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    async def create(self, **kwargs: Any) -> ModelT:
        if self._tenant_scoped:
            kwargs.setdefault("client_id", self._client_id)
        instance = self.model(**kwargs)
        self._session.add(instance)
        await self._session.flush()  # populate id
        return instance

    async def insert_if_absent(self, instance: ModelT) -> tuple[ModelT, bool]:
        """Insert *instance* unless its primary key exists; return (stored_row, created).

        The insert runs in a savepoint so a unique-key conflict from a
        concurrent writer only discards this attempt, not the caller's
        transaction. The loser reads and returns the winner's row.
        """
        if self._tenant_scoped and getattr(instance, "client_id", None) is None:
            instance.client_id = self._client_id
        entity_id = getattr(instance, self._pk().key)
        existing = await self.get_by_id(entity_id)
        if existing is not None:
            return existing, False
        try:
            async with self._session.begin_nested():
                self._session.add(instance)
                await self._session.flush()
            return instance, True
        except IntegrityError:
            existing = await self.get_by_id(entity_id)
            if existing is None:
                raise
            return existing, False

    async def update(self, entity_id: Any, **kwargs: Any) -> ModelT | None:
        kwargs.pop("client_id", None)
        if "updated_at" not in kwargs and hasattr(self.model, "updated_at"):
            kwargs["updated_at"] = datetime.now(timezone.utc)

        stmt = update(self.model).where(self._pk() == entity_id).values(**kwargs)
        if self._tenant_scoped:
            stmt = stmt.where(self.model.client_id == self._client_id)
        await self._session.execute(stmt.execution_options(synchronize_session="fetch"))
        await self._session.flush()
        return await self.get_by_id(entity_id)
