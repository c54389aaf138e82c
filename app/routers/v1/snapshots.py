"""Order snapshot and summary router."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.base import get_db
from app.schemas.snapshot import SnapshotWriteRequest, SnapshotWriteResult, SummaryView
from app.services.snapshot import OrderSnapshotService

router = APIRouter(prefix="/orders", tags=["Order snapshots"])


@router.post("/{order_id}/snapshot", response_model=SnapshotWriteResult)
async def write_snapshot(
    order_id: str,
    body: SnapshotWriteRequest,
    session: AsyncSession = Depends(get_db),
):
    """Persist the canonical item snapshot and mint the order number(s) once."""
    return await OrderSnapshotService(session).write_snapshot(order_id, body)


@router.get("/{order_id}/summary", response_model=SummaryView)
async def get_summary(
    order_id: str,
    session: AsyncSession = Depends(get_db),
):
    return await OrderSnapshotService(session).read_summary(order_id)
