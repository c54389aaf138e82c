from __future__ import annotations

from typing import Any

from app.domain.audit import AuditTrail
from app.repositories.base import BaseRepository


class AuditRepository(BaseRepository[AuditTrail]):
    model = AuditTrail

    async def record(
        self,
        *,
        action: str,
        entity_type: str,
        entity_id: str | None,
        user_id: str | None = None,
        old_value: Any = None,
        new_value: Any = None,
        description: str | None = None,
    ) -> AuditTrail:
        return await self.create(
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            user_id=user_id,
            old_value=old_value,
            new_value=new_value,
            description=description,
        )
