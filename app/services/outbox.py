"""Outbox worker — executes side tasks written by checkout and hold resolution.

Every task runs in its own session and transaction, so one failing task
never blocks or rolls back another. Failures are recorded on the task row
(``attempts``, ``last_error``) and retried with linear backoff until
``max_attempts``; a task that gives up is marked ``failed`` and, for
distributor submissions, the order is moved to Manual Processing Required
with a note explaining why.

The worker is started and stopped by the application lifespan. Routes may
also kick :meth:`OutboxWorker.run_pending` for freshly written tasks as a
FastAPI background task; the periodic loop picks up whatever is left.
"""


import asyncio
import logging
from collections.abc import Awaitable, Callable

import httpx
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.config import Settings, settings as default_settings
from app.core.exceptions import ExternalSyncError
from app.domain.order import Order, OrderStatus, can_transition
from app.domain.outbox import OutboxKind, OutboxStatus, OutboxTask
from app.integrations import Collaborators
from app.integrations.crm import deal_stage_for
from app.repositories.order import OrderRepository
from app.repositories.outbox import OutboxRepository

logger = logging.getLogger(__name__)

Handler = Callable[[AsyncSession, OutboxTask, Order], Awaitable[None]]

# Expected collaborator failures, logged without a traceback
_RETRYABLE = (httpx.HTTPError, asyncio.TimeoutError, ExternalSyncError)


async def enqueue_stage_update(session: AsyncSession, order: Order, *, max_attempts: int) -> OutboxTask:
    """Queue a CRM deal-stage update reflecting the order's current status."""
    return await OutboxRepository(session).enqueue(
        OutboxKind.CRM_UPDATE_STAGE.value,
        order.id,
        {"status": order.status},
        max_attempts=max_attempts,
    )


class OutboxWorker:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        collaborators: Collaborators,
        settings: Settings | None = None,
    ):
        self._session_factory = session_factory
        self._collaborators = collaborators
        self._settings = settings or default_settings
        self._task: asyncio.Task | None = None
        self._stopping = asyncio.Event()
        self._inflight: set[str] = set()
        self._handlers: dict[str, Handler] = {
            OutboxKind.DISTRIBUTOR_SUBMIT.value: self._submit_to_distributor,
            OutboxKind.CRM_SYNC.value: self._sync_to_crm,
            OutboxKind.CRM_UPDATE_STAGE.value: self._update_crm_stage,
        }

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        if self._task is not None:
            return
        self._stopping.clear()
        self._task = asyncio.create_task(self._loop(), name="outbox-worker")
        logger.info(
            "Outbox worker started (poll=%ss batch=%d)",
            self._settings.outbox_poll_interval, self._settings.outbox_batch_size,
        )

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def stop(self) -> None:
        if self._task is None:
            return
        self._stopping.set()
        await self._task
        self._task = None
        logger.info("Outbox worker stopped")

    async def _loop(self) -> None:
        while not self._stopping.is_set():
            try:
                await self.run_pending()
            except Exception:
                logger.exception("Outbox poll failed")
            try:
                await asyncio.wait_for(
                    self._stopping.wait(), timeout=self._settings.outbox_poll_interval
                )
            except asyncio.TimeoutError:
                pass

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def run_pending(self, task_ids: list[str] | None = None) -> int:
        """Execute due tasks (optionally only *task_ids*); returns how many were attempted."""
        async with self._session_factory() as session:
            due = await OutboxRepository(session).due(
                limit=self._settings.outbox_batch_size, task_ids=task_ids
            )
            ids = [t.id for t in due if t.id not in self._inflight]
        for task_id in ids:
            try:
                await self._run_one(task_id)
            except Exception:
                logger.exception("Outbox task %s could not be processed", task_id)
        return len(ids)

    async def _run_one(self, task_id: str) -> None:
        self._inflight.add(task_id)
        try:
            async with self._session_factory() as session:
                task = await OutboxRepository(session).get_by_id(task_id, for_update=True)
                if task is None or task.status != OutboxStatus.PENDING.value:
                    return
                order = await OrderRepository(session).get_by_id(task.order_id)
                if order is None:
                    OutboxRepository.mark_failed_attempt(
                        task, "order not found", backoff_seconds=0, retryable=False
                    )
                    logger.error("Outbox task %s (%s): order %s not found", task.id, task.kind, task.order_id)
                    await session.commit()
                    return
                await self._execute(session, task, order)
                await session.commit()
        finally:
            self._inflight.discard(task_id)

    async def _execute(self, session: AsyncSession, task: OutboxTask, order: Order) -> None:
        handler = self._handlers.get(task.kind)
        if handler is None:
            OutboxRepository.mark_failed_attempt(
                task, f"unknown task kind {task.kind!r}", backoff_seconds=0, retryable=False
            )
            logger.error("Outbox task %s has unknown kind %s", task.id, task.kind)
            return
        try:
            await handler(session, task, order)
        except _RETRYABLE as exc:
            retryable = not isinstance(exc, ExternalSyncError) or exc.retryable
            error = str(exc) or exc.__class__.__name__
            logger.warning(
                "Outbox task %s (%s) for order %s failed, attempt %d/%d: %s",
                task.id, task.kind, order.id, task.attempts + 1, task.max_attempts, error,
            )
            await self._record_failure(session, task, order, error, retryable=retryable)
            return
        except Exception as exc:
            # Unexpected collaborator replies (bad JSON, missing keys) still count as an attempt
            error = f"{exc.__class__.__name__}: {exc}"
            logger.exception(
                "Outbox task %s (%s) for order %s raised unexpectedly, attempt %d/%d",
                task.id, task.kind, order.id, task.attempts + 1, task.max_attempts,
            )
            await self._record_failure(session, task, order, error, retryable=True)
            return
        OutboxRepository.mark_done(task)
        logger.info("Outbox task %s (%s) for order %s done", task.id, task.kind, order.id)

    async def _record_failure(
        self, session: AsyncSession, task: OutboxTask, order: Order, error: str, *, retryable: bool
    ) -> None:
        gave_up = OutboxRepository.mark_failed_attempt(
            task,
            error,
            backoff_seconds=self._settings.outbox_retry_backoff,
            retryable=retryable,
        )
        if gave_up:
            await self._on_gave_up(session, task, order, error)

    async def _on_gave_up(
        self, session: AsyncSession, task: OutboxTask, order: Order, error: str
    ) -> None:
        logger.error("Outbox task %s (%s) for order %s gave up: %s", task.id, task.kind, order.id, error)
        if task.kind == OutboxKind.DISTRIBUTOR_SUBMIT.value:
            await self._require_manual_processing(
                session, order, f"Distributor submission failed after {task.attempts} attempt(s): {error}"
            )

    async def _require_manual_processing(self, session: AsyncSession, order: Order, reason: str) -> None:
        if not can_transition(order.status, OrderStatus.MANUAL_PROCESSING_REQUIRED.value):
            logger.warning(
                "Order %s left in %s; cannot move to manual processing", order.id, order.status
            )
            return
        order.status = OrderStatus.MANUAL_PROCESSING_REQUIRED.value
        await OrderRepository(session).add_note(order.id, "distributor", reason)
        await enqueue_stage_update(session, order, max_attempts=self._settings.outbox_max_attempts)

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    async def _submit_to_distributor(self, session: AsyncSession, task: OutboxTask, order: Order) -> None:
        if order.status != OrderStatus.PAID.value:
            logger.info("Order %s is %s; distributor submission skipped", order.id, order.status)
            return
        result = await asyncio.wait_for(
            self._collaborators.distributor.submit_order(task.payload),
            timeout=self._settings.distributor_timeout,
        )
        if not result.success:
            # A rejection is final; retrying the same payload would be rejected again
            raise ExternalSyncError(
                f"Distributor rejected order: {result.error or 'no reason given'}",
                retryable=False,
            )
        order.status = OrderStatus.PROCESSING.value
        order.distributor_order_number = result.distributor_order_number
        order.estimated_ship_date = result.estimated_ship_date
        await enqueue_stage_update(session, order, max_attempts=self._settings.outbox_max_attempts)
        logger.info(
            "Order %s submitted to distributor as %s", order.id, result.distributor_order_number
        )

    async def _sync_to_crm(self, session: AsyncSession, task: OutboxTask, order: Order) -> None:
        if order.external_deal_id:
            return
        crm = self._collaborators.crm
        timeout = self._settings.crm_timeout
        payload = task.payload or {}
        contact_id = order.external_contact_id or await asyncio.wait_for(
            crm.find_or_create_contact(payload.get("email", ""), payload.get("name", "")),
            timeout=timeout,
        )
        order.external_contact_id = contact_id
        deal = await asyncio.wait_for(
            crm.create_deal(
                contact_id,
                {
                    "orderId": order.id,
                    "orderNumber": order.order_number,
                    "amount": str(order.total_price),
                    "stage": deal_stage_for(order.status),
                },
            ),
            timeout=timeout,
        )
        if not deal.success or not deal.deal_id:
            raise ExternalSyncError(deal.error or "CRM deal not created")
        order.external_deal_id = deal.deal_id
        logger.info("Order %s synced to CRM deal %s", order.id, deal.deal_id)

    async def _update_crm_stage(self, session: AsyncSession, task: OutboxTask, order: Order) -> None:
        if not order.external_deal_id:
            raise ExternalSyncError("CRM deal does not exist yet")
        stage = deal_stage_for(order.status)
        updated = await asyncio.wait_for(
            self._collaborators.crm.update_deal_stage(order.external_deal_id, stage),
            timeout=self._settings.crm_timeout,
        )
        if not updated:
            raise ExternalSyncError(f"CRM refused stage {stage!r}")
        logger.info("Order %s CRM deal %s moved to %s", order.id, order.external_deal_id, stage)
