"""Order queries, hold resolution and staff status changes.

Two exits from a hold exist:
  * attaching (and optionally verifying) an FFL dealer on a Pending FFL order;
  * an admin override, which is audited with the admin's id and reason.

Both enqueue a CRM stage update instead of calling the CRM inline. Staff
status changes after release go through the same transition table.
"""


import logging

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError
from app.core.pagination import PaginationParams
from app.domain.mixins import utcnow
from app.domain.order import (
    FFLStatus,
    Order,
    OrderStatus,
    can_transition,
    is_hold_status,
)
from app.repositories.audit import AuditRepository
from app.repositories.order import OrderRepository
from app.repositories.user import FFLDealerRepository, UserRepository
from app.schemas.order import AttachFFLRequest, OverrideHoldRequest, StatusUpdateRequest
from app.services.outbox import enqueue_stage_update

logger = logging.getLogger(__name__)


class OrderService:
    def __init__(self, session: AsyncSession, client_id: str | None = None):
        self._session = session
        self._orders = OrderRepository(session, client_id)
        self._dealers = FFLDealerRepository(session)
        self._users = UserRepository(session)
        self._audit = AuditRepository(session, client_id)

    async def list_orders(self, pagination: PaginationParams, status: str | None = None):
        filters = {"status": status} if status else None
        return await self._orders.list(**pagination.query_kwargs(), filters=filters)

    async def get_order(self, order_id: str, *, for_update: bool = False) -> Order:
        order = await self._orders.get_by_id(order_id, for_update=for_update)
        if not order:
            raise NotFoundError("Order", order_id)
        return order

    async def list_notes(self, order_id: str):
        await self.get_order(order_id)
        return await self._orders.list_notes(order_id)

    # ------------------------------------------------------------------
    # Hold resolution
    # ------------------------------------------------------------------

    async def attach_and_verify_ffl(self, order_id: str, data: AttachFFLRequest) -> Order:
        order = await self.get_order(order_id, for_update=True)
        if order.status != OrderStatus.PENDING_FFL.value:
            raise ConflictError(f"Order is '{order.status}', not awaiting an FFL")

        dealer = await self._dealers.get_by_id(data.ffl_dealer_id)
        if not dealer:
            raise NotFoundError("FFL dealer", data.ffl_dealer_id)
        if data.verify and not dealer.is_atf_active:
            raise ValidationError("FFL dealer licence is not active", fields=["fflDealerId"])

        order.ffl_dealer_id = dealer.id
        if not data.verify:
            order.ffl_status = FFLStatus.PENDING_VERIFICATION.value
            await self._session.flush()
            logger.info("Order %s: FFL %s attached, awaiting verification", order.id, dealer.id)
            return order

        order.ffl_status = FFLStatus.VERIFIED.value
        order.ffl_verified_at = utcnow()
        order.status = OrderStatus.READY_TO_FULFILL.value
        order.hold_reason = None
        await enqueue_stage_update(self._session, order, max_attempts=settings.outbox_max_attempts)
        await self._session.flush()
        logger.info("Order %s: FFL %s verified, released from hold", order.id, dealer.id)
        return order

    async def override_hold(self, order_id: str, data: OverrideHoldRequest) -> Order:
        admin = await self._users.get_by_id(data.admin_user_id)
        if not admin or not admin.is_admin:
            raise ForbiddenError("Only administrators can override a compliance hold")

        order = await self.get_order(order_id, for_update=True)
        if not order.is_on_hold:
            raise ConflictError(f"Order is '{order.status}', not on hold")

        old = {"status": order.status, "holdReason": order.hold_reason}
        order.status = OrderStatus.READY_TO_FULFILL.value
        order.hold_reason = None
        await self._audit.record(
            action="order.override_hold",
            entity_type="order",
            entity_id=order.id,
            user_id=admin.id,
            old_value=old,
            new_value={"status": order.status, "holdReason": None},
            description=data.reason,
        )
        await enqueue_stage_update(self._session, order, max_attempts=settings.outbox_max_attempts)
        await self._session.flush()
        logger.warning(
            "Order %s: %s hold overridden by admin %s (%s)",
            order.id, old["holdReason"], admin.id, data.reason,
        )
        return order

    async def update_status(self, order_id: str, data: StatusUpdateRequest) -> Order:
        order = await self.get_order(order_id, for_update=True)
        target = data.status.value
        if is_hold_status(target) or not can_transition(order.status, target):
            raise ConflictError(f"Cannot move order from '{order.status}' to '{target}'")
        if order.is_on_hold and target == OrderStatus.READY_TO_FULFILL.value:
            raise ConflictError("Held orders are released through FFL verification or an override")

        previous = order.status
        order.status = target
        order.hold_reason = None
        if data.note:
            await self._orders.add_note(order.id, "staff", data.note)
        await self._audit.record(
            action="order.status",
            entity_type="order",
            entity_id=order.id,
            user_id=data.actor_user_id,
            old_value={"status": previous},
            new_value={"status": target},
            description=data.note,
        )
        await enqueue_stage_update(self._session, order, max_attempts=settings.outbox_max_attempts)
        await self._session.flush()
        logger.info("Order %s: %s -> %s", order.id, previous, target)
        return order
