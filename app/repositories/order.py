"""Order repository — orders, lines, notes and the rolling-window firearm aggregate."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timedelta, timezone

from sqlalchemy import func, select, text

from app.db.base import dialect_name
from app.domain.order import Order, OrderLine, OrderNote
from app.repositories.base import BaseRepository


class OrderRepository(BaseRepository[Order]):
    model = Order

    async def add_with_lines(self, order: Order, lines: list[OrderLine]) -> Order:
        if self._client_id is not None:
            order.client_id = self._client_id
        order.lines = lines
        self._session.add(order)
        await self._session.flush()
        return order

    async def lock_user_checkouts(self, user_id: str) -> None:
        """Serialise checkouts for *user_id* across processes until the transaction ends.

        PostgreSQL only; other backends rely on the in-process lock alone.
        """
        if dialect_name(self._session) == "postgresql":
            await self._session.execute(
                text("SELECT pg_advisory_xact_lock(hashtext(:key))"),
                {"key": f"checkout:{user_id}"},
            )

    async def add_note(self, order_id: str, kind: str, body: str) -> OrderNote:
        note = OrderNote(order_id=order_id, kind=kind, body=body)
        self._session.add(note)
        await self._session.flush()
        return note

    async def list_notes(self, order_id: str) -> list[OrderNote]:
        result = await self._session.execute(
            select(OrderNote)
            .where(OrderNote.order_id == order_id)
            .order_by(OrderNote.created_at.asc())
        )
        return list(result.scalars().all())

    async def past_firearm_quantity(
        self,
        user_id: str,
        window_days: int,
        statuses: Iterable[str],
        *,
        now: datetime | None = None,
    ) -> int:
        """Sum of firearm-line quantities on the user's qualifying orders inside the window.

        The window boundary is inclusive: an order created exactly
        ``window_days`` ago still counts.
        """
        now = now or datetime.now(timezone.utc)
        since = now - timedelta(days=window_days)
        q = (
            select(func.coalesce(func.sum(OrderLine.quantity), 0))
            .select_from(OrderLine)
            .join(Order, Order.id == OrderLine.order_id)
            .where(Order.user_id == user_id)
            .where(OrderLine.is_firearm.is_(True))
            .where(Order.status.in_(list(statuses)))
            .where(Order.created_at >= since)
            .where(Order.deleted_at.is_(None))
        )
        if self._tenant_scoped:
            q = q.where(Order.client_id == self._client_id)
        return int((await self._session.execute(q)).scalar_one())
