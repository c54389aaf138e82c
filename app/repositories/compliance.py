"""Compliance policy repository — append-only history of ComplianceConfig rows."""

from __future__ import annotations

from sqlalchemy import select, update

from app.domain.compliance import ComplianceConfig
from app.repositories.base import BaseRepository


class ComplianceConfigRepository(BaseRepository[ComplianceConfig]):
    model = ComplianceConfig

    async def get_active(self) -> ComplianceConfig | None:
        result = await self._session.execute(
            select(ComplianceConfig)
            .where(ComplianceConfig.is_active.is_(True))
            .order_by(ComplianceConfig.id.desc())
            .limit(1)
        )
        return result.scalars().first()

    async def history(self, limit: int = 50) -> list[ComplianceConfig]:
        result = await self._session.execute(
            select(ComplianceConfig).order_by(ComplianceConfig.id.desc()).limit(limit)
        )
        return list(result.scalars().all())

    async def replace_active(self, **values) -> ComplianceConfig:
        """Deactivate the current row and insert *values* as the new active policy."""
        await self._session.execute(
            update(ComplianceConfig)
            .where(ComplianceConfig.is_active.is_(True))
            .values(is_active=False)
        )
        row = ComplianceConfig(is_active=True, **values)
        self._session.add(row)
        await self._session.flush()
        return row
