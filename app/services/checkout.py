"""Checkout orchestrator.

Sequence for one purchase attempt::

    lock(user) → compliance check → capture payment → persist order, lines,
    minted number and outbox tasks (one transaction) → commit → unlock

Payment is captured regardless of the compliance outcome; a hold is a
successful checkout that parks the order. Distributor submission and CRM
sync never run inside the request: they are written as outbox tasks and
executed by :class:`app.services.outbox.OutboxWorker`, so their failure
cannot unwind a captured payment or a committed order.
"""


import asyncio
import logging
import uuid
import weakref
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import PaymentError
from app.domain.order import FFLStatus, HoldReason, Order, OrderLine, status_for_hold
from app.domain.outbox import OutboxKind, OutboxTask
from app.integrations.payments import PaymentGateway
from app.repositories.order import OrderRepository
from app.repositories.outbox import OutboxRepository
from app.schemas.checkout import CheckoutRequest, CheckoutResult, HoldInfo
from app.schemas.compliance import CartItem, ComplianceCheckResult
from app.services.compliance import ComplianceService
from app.services.minting import OrderNumberMinter, ShippingOutcome

logger = logging.getLogger(__name__)

_CENTS = Decimal("0.01")

# One lock per user id, dropped once no checkout holds a reference to it
_user_locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()


def user_lock(user_id: str) -> asyncio.Lock:
    lock = _user_locks.get(user_id)
    if lock is None:
        lock = asyncio.Lock()
        _user_locks[user_id] = lock
    return lock


def cart_total(cart_items: list[CartItem]) -> Decimal:
    total = sum((item.unit_price * item.quantity for item in cart_items), Decimal("0"))
    return total.quantize(_CENTS, rounding=ROUND_HALF_UP)


def cart_outcomes(cart_items: list[CartItem]) -> list[ShippingOutcome]:
    """Fulfillment buckets for a fresh cart: firearms ship to an FFL, the rest to the customer."""
    outcomes: list[ShippingOutcome] = []
    for item in cart_items:
        outcome = (
            ShippingOutcome.DS_FFL if item.counts_as_firearm else ShippingOutcome.DS_CUSTOMER
        )
        if outcome not in outcomes:
            outcomes.append(outcome)
    return outcomes


def initial_ffl_status(decision: ComplianceCheckResult) -> str | None:
    if not decision.has_firearms:
        return None
    if decision.hold_type is HoldReason.FFL or not decision.ffl_on_file:
        return FFLStatus.MISSING.value
    return FFLStatus.VERIFIED.value


class CheckoutService:
    def __init__(
        self,
        session: AsyncSession,
        payments: PaymentGateway,
        client_id: str | None = None,
    ):
        self._session = session
        self._payments = payments
        self._client_id = client_id
        self._compliance = ComplianceService(session, client_id)
        self._orders = OrderRepository(session, client_id)
        self._outbox = OutboxRepository(session)
        self._minter = OrderNumberMinter(session)

    async def _capture(self, amount: Decimal, body: CheckoutRequest) -> str:
        card = body.payment_details.model_dump(by_alias=True)
        billing = {
            "firstName": body.customer_info.first_name,
            "lastName": body.customer_info.last_name,
            "email": body.customer_info.email,
            **body.shipping_address,
        }
        try:
            result = await asyncio.wait_for(
                self._payments.authorize_and_capture(amount, card, billing),
                timeout=settings.payment_timeout,
            )
        except asyncio.TimeoutError as exc:
            logger.error("Payment capture timed out for user %s", body.user_id)
            raise PaymentError("Payment gateway timed out") from exc
        if not result.success or not result.transaction_id:
            logger.warning(
                "Payment declined for user %s: %s", body.user_id, result.error or "no transaction id"
            )
            raise PaymentError(result.error or "Payment failed", result.transaction_id)
        return result.transaction_id

    def _order_payload(self, order: Order, body: CheckoutRequest) -> dict:
        return {
            "orderId": order.id,
            "orderNumber": order.order_number,
            "fflDealerId": order.ffl_dealer_id,
            "shippingAddress": body.shipping_address,
            "customer": body.customer_info.model_dump(by_alias=True),
            "lines": [
                {
                    "productId": item.id,
                    "sku": item.sku,
                    "quantity": item.quantity,
                    "unitPrice": str(item.unit_price),
                    "isFirearm": item.counts_as_firearm,
                }
                for item in body.cart_items
            ],
        }

    async def _enqueue_side_tasks(self, order: Order, body: CheckoutRequest) -> list[OutboxTask]:
        tasks = []
        payload = self._order_payload(order, body)
        if order.hold_reason is None:
            tasks.append(
                await self._outbox.enqueue(
                    OutboxKind.DISTRIBUTOR_SUBMIT.value,
                    order.id,
                    payload,
                    max_attempts=settings.outbox_max_attempts,
                )
            )
        tasks.append(
            await self._outbox.enqueue(
                OutboxKind.CRM_SYNC.value,
                order.id,
                {
                    **payload,
                    "email": body.customer_info.email,
                    "name": body.customer_info.full_name,
                    "amount": str(order.total_price),
                    "status": order.status,
                },
                max_attempts=settings.outbox_max_attempts,
            )
        )
        return tasks

    async def checkout(self, body: CheckoutRequest) -> CheckoutResult:
        async with user_lock(body.user_id):
            await self._orders.lock_user_checkouts(body.user_id)
            decision = await self._compliance.check(body.user_id, body.cart_items)

            total = cart_total(body.cart_items)
            transaction_id = await self._capture(total, body)

            hold = decision.hold_type if decision.requires_hold else None
            status = status_for_hold(hold)
            order = Order(
                id=str(uuid.uuid4()),
                user_id=body.user_id,
                total_price=total,
                status=status.value,
                hold_reason=hold.value if hold else None,
                ffl_required=decision.has_firearms,
                ffl_status=initial_ffl_status(decision),
                ffl_recipient_id=body.ffl_recipient_id,
                firearms_window_count=decision.past_firearm_count_in_window,
                window_days=decision.window_days,
                limit_qty=decision.limit_quantity,
                payment_transaction_id=transaction_id,
                shipping_address=body.shipping_address,
                customer_info=body.customer_info.model_dump(by_alias=True),
            )
            lines = [
                OrderLine(
                    product_id=item.id,
                    sku=item.sku,
                    quantity=item.quantity,
                    unit_price=item.unit_price,
                    total_price=(item.unit_price * item.quantity).quantize(
                        _CENTS, rounding=ROUND_HALF_UP
                    ),
                    is_firearm=item.counts_as_firearm,
                )
                for item in body.cart_items
            ]
            try:
                minted = await self._minter.mint_once(order.id, cart_outcomes(body.cart_items))
                order.order_number = minted.main
                await self._orders.add_with_lines(order, lines)
                await self._enqueue_side_tasks(order, body)
                await self._session.commit()
            except Exception:
                # Money has moved but nothing was stored; this needs a human
                logger.exception(
                    "Order persistence failed after capture %s for user %s",
                    transaction_id, body.user_id,
                )
                raise

        logger.info(
            "Checkout %s: order %s (%s) status=%s total=%s",
            body.user_id, order.id, order.order_number, order.status, total,
        )
        return CheckoutResult(
            success=True,
            order_id=order.id,
            order_number=order.order_number,
            status=order.status,
            hold=HoldInfo(type=hold, reason=decision.reason or "") if hold else None,
            transaction_id=transaction_id,
        )
