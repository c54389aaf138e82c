"""Snapshot, minted-number and sequence-counter repositories."""

from __future__ import annotations

from sqlalchemy import insert, update
from sqlalchemy.exc import IntegrityError

from app.domain.snapshot import MintedOrderNumber, OrderSnapshot, SequenceCounter
from app.repositories.base import BaseRepository


class SnapshotRepository(BaseRepository[OrderSnapshot]):
    model = OrderSnapshot


class MintedNumberRepository(BaseRepository[MintedOrderNumber]):
    model = MintedOrderNumber


class SequenceRepository:
    """Atomic monotonic counters backed by ``sequence_counters``."""

    def __init__(self, session):
        self._session = session

    async def _increment(self, name: str) -> int | None:
        result = await self._session.execute(
            update(SequenceCounter)
            .where(SequenceCounter.name == name)
            .values(value=SequenceCounter.value + 1)
            .returning(SequenceCounter.value)
            .execution_options(synchronize_session=False)
        )
        return result.scalar_one_or_none()

    async def next_value(self, name: str) -> int:
        value = await self._increment(name)
        if value is not None:
            return value
        try:
            async with self._session.begin_nested():
                await self._session.execute(insert(SequenceCounter).values(name=name, value=1))
            return 1
        except IntegrityError:
            # Another writer created the counter first
            value = await self._increment(name)
            if value is None:
                raise
            return value
