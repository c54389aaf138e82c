"""Checkout router."""

from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.db.base import get_db
from app.integrations import Collaborators
from app.routers.dependencies import get_collaborators, get_outbox_worker
from app.schemas.checkout import CheckoutRequest, CheckoutResult
from app.services.checkout import CheckoutService
from app.services.outbox import OutboxWorker

router = APIRouter(prefix="/checkout", tags=["Checkout"])


@router.post("", response_model=CheckoutResult, status_code=status.HTTP_201_CREATED)
async def checkout(
    body: CheckoutRequest,
    background: BackgroundTasks,
    session: AsyncSession = Depends(get_db),
    collaborators: Collaborators = Depends(get_collaborators),
    worker: OutboxWorker | None = Depends(get_outbox_worker),
):
    """Run compliance, capture payment and persist the order.

    A compliance hold is a successful checkout: the response carries
    ``hold`` and the parked status. Distributor and CRM work is queued and
    started after the response is sent.
    """
    svc = CheckoutService(session, collaborators.payments, settings.default_client_id)
    result = await svc.checkout(body)
    if worker is not None:
        background.add_task(worker.run_pending)
    return result
