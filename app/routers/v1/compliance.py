"""Compliance policy administration and dry-run checks."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.response import DataResponse
from app.db.base import get_db
from app.schemas.compliance import (
    ComplianceCheckRequest,
    ComplianceCheckResult,
    ComplianceConfigOut,
    ComplianceConfigUpdate,
)
from app.services.compliance import ComplianceService, policy_cache

router = APIRouter(prefix="/compliance", tags=["Compliance"])


def _svc(session: AsyncSession) -> ComplianceService:
    return ComplianceService(session, settings.default_client_id)


@router.get("/config", response_model=DataResponse[ComplianceConfigOut])
async def get_config(session: AsyncSession = Depends(get_db)):
    return {"data": await _svc(session).get_config()}


@router.put("/config", response_model=DataResponse[ComplianceConfigOut])
async def update_config(
    body: ComplianceConfigUpdate,
    session: AsyncSession = Depends(get_db),
):
    """Replace the active policy. Earlier versions are kept as inactive rows."""
    config = await _svc(session).update_config(body)
    await session.commit()
    # Drop anything cached by a request that raced the commit
    policy_cache.invalidate()
    return {"data": config}


@router.get("/config/history", response_model=DataResponse[list[ComplianceConfigOut]])
async def config_history(session: AsyncSession = Depends(get_db)):
    return {"data": await _svc(session).config_history()}


@router.post("/check", response_model=DataResponse[ComplianceCheckResult])
async def check(
    body: ComplianceCheckRequest,
    session: AsyncSession = Depends(get_db),
):
    """Evaluate a cart without placing an order."""
    return {"data": await _svc(session).check(body.user_id, body.cart_items)}
