"""Order router — staff views and hold resolution."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.pagination import PaginationParams
from app.core.response import DataResponse, ListResponse, paginated
from app.db.base import get_db
from app.routers.dependencies import get_outbox_worker
from app.schemas.order import (
    AttachFFLRequest,
    OrderNoteOut,
    OrderOut,
    OverrideHoldRequest,
    StatusUpdateRequest,
)
from app.services.orders import OrderService
from app.services.outbox import OutboxWorker

router = APIRouter(prefix="/orders", tags=["Orders"])


def _svc(session: AsyncSession) -> OrderService:
    return OrderService(session, settings.default_client_id)


async def _commit_and_kick(
    session: AsyncSession, background: BackgroundTasks, worker: OutboxWorker | None
) -> None:
    # The queued stage update must be visible to the worker's own session
    await session.commit()
    if worker is not None:
        background.add_task(worker.run_pending)


@router.get("", response_model=ListResponse[OrderOut])
async def list_orders(
    filter_status: Optional[str] = Query(default=None, alias="status", description="Filter by order status"),
    pagination: PaginationParams = Depends(),
    session: AsyncSession = Depends(get_db),
):
    """List orders (paginated). Filter by ?status=Pending FFL etc."""
    items, total = await _svc(session).list_orders(pagination, status=filter_status)
    return paginated(
        [OrderOut.model_validate(o) for o in items],
        total, pagination,
    )


@router.get("/{order_id}", response_model=DataResponse[OrderOut])
async def get_order(
    order_id: str,
    session: AsyncSession = Depends(get_db),
):
    order = await _svc(session).get_order(order_id)
    return {"data": OrderOut.model_validate(order)}


@router.get("/{order_id}/notes", response_model=DataResponse[list[OrderNoteOut]])
async def list_order_notes(
    order_id: str,
    session: AsyncSession = Depends(get_db),
):
    notes = await _svc(session).list_notes(order_id)
    return {"data": [OrderNoteOut.model_validate(n) for n in notes]}


@router.post("/{order_id}/attach-ffl", response_model=DataResponse[OrderOut])
async def attach_ffl(
    order_id: str,
    body: AttachFFLRequest,
    background: BackgroundTasks,
    session: AsyncSession = Depends(get_db),
    worker: OutboxWorker | None = Depends(get_outbox_worker),
):
    """Attach an FFL dealer to a Pending FFL order; ``verify=true`` releases the hold."""
    order = await _svc(session).attach_and_verify_ffl(order_id, body)
    await _commit_and_kick(session, background, worker)
    return {"data": OrderOut.model_validate(order)}


@router.post("/{order_id}/override-hold", response_model=DataResponse[OrderOut])
async def override_hold(
    order_id: str,
    body: OverrideHoldRequest,
    background: BackgroundTasks,
    session: AsyncSession = Depends(get_db),
    worker: OutboxWorker | None = Depends(get_outbox_worker),
):
    """Admin release of a compliance hold. Audited."""
    order = await _svc(session).override_hold(order_id, body)
    await _commit_and_kick(session, background, worker)
    return {"data": OrderOut.model_validate(order)}


@router.post("/{order_id}/status", response_model=DataResponse[OrderOut])
async def update_status(
    order_id: str,
    body: StatusUpdateRequest,
    background: BackgroundTasks,
    session: AsyncSession = Depends(get_db),
    worker: OutboxWorker | None = Depends(get_outbox_worker),
):
    order = await _svc(session).update_status(order_id, body)
    await _commit_and_kick(session, background, worker)
    return {"data": OrderOut.model_validate(order)}
