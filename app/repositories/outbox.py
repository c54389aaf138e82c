"""Outbox repository — enqueue side tasks and claim due ones."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import select

from app.domain.outbox import OutboxStatus, OutboxTask
from app.repositories.base import BaseRepository


class OutboxRepository(BaseRepository[OutboxTask]):
    model = OutboxTask

    async def enqueue(
        self,
        kind: str,
        order_id: str,
        payload: dict[str, Any],
        *,
        max_attempts: int,
    ) -> OutboxTask:
        return await self.create(
            kind=kind,
            order_id=order_id,
            payload=payload,
            max_attempts=max_attempts,
            status=OutboxStatus.PENDING.value,
        )

    async def due(
        self,
        *,
        limit: int,
        now: datetime | None = None,
        task_ids: list[str] | None = None,
    ) -> list[OutboxTask]:
        now = now or datetime.now(timezone.utc)
        q = (
            select(OutboxTask)
            .where(OutboxTask.status == OutboxStatus.PENDING.value)
            .where(OutboxTask.next_attempt_at <= now)
            .order_by(OutboxTask.created_at.asc())
            .limit(limit)
        )
        if task_ids is not None:
            q = q.where(OutboxTask.id.in_(task_ids))
        return list((await self._session.execute(q)).scalars().all())

    async def for_order(self, order_id: str) -> list[OutboxTask]:
        result = await self._session.execute(
            select(OutboxTask)
            .where(OutboxTask.order_id == order_id)
            .order_by(OutboxTask.created_at.asc())
        )
        return list(result.scalars().all())

    @staticmethod
    def mark_done(task: OutboxTask) -> None:
        task.attempts += 1
        task.status = OutboxStatus.DONE.value
        task.completed_at = datetime.now(timezone.utc)
        task.last_error = None

    @staticmethod
    def mark_failed_attempt(
        task: OutboxTask, error: str, *, backoff_seconds: float, retryable: bool = True
    ) -> bool:
        """Record a failed attempt. Returns True when the task is now permanently failed."""
        task.attempts += 1
        task.last_error = error
        if not retryable or task.attempts >= task.max_attempts:
            task.status = OutboxStatus.FAILED.value
            task.completed_at = datetime.now(timezone.utc)
            return True
        task.next_attempt_at = datetime.now(timezone.utc) + timedelta(
            seconds=backoff_seconds * task.attempts
        )
        return False
