"""Firearms compliance engine — decides whether a purchase must be held.

The decision is recomputed on every call: the rolling-window count depends
on order history that changes between calls. Only the policy row is cached,
and the cache is dropped whenever an admin replaces the policy.

Decision order:
  1. No firearm / FFL-required item in the cart → no hold.
  2. FFL hold enabled and no verified, ATF-active FFL on file → ``FFL`` hold.
     This wins over the quantity rule: a firearm cannot ship without an FFL
     regardless of how many were bought.
  3. Multi-firearm hold enabled and past window quantity + cart quantity
     reaches the limit → ``Multi-Firearm`` hold.
  4. Otherwise no hold. Counts are reported in every firearm branch.
"""


import logging

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import NotFoundError
from app.domain.order import HoldReason, OrderStatus
from app.domain.user import User
from app.repositories.compliance import ComplianceConfigRepository
from app.repositories.order import OrderRepository
from app.repositories.user import UserRepository
from app.schemas.compliance import (
    CartItem,
    ComplianceCheckResult,
    ComplianceConfigOut,
    ComplianceConfigUpdate,
    CompliancePolicy,
)

logger = logging.getLogger(__name__)

# Orders whose firearm lines count toward the rolling window
QUALIFYING_STATUSES: tuple[str, ...] = (
    OrderStatus.PAID.value,
    OrderStatus.PENDING_FFL.value,
    OrderStatus.READY_TO_FULFILL.value,
    OrderStatus.SHIPPED.value,
)


class _PolicyCache:
    """Process-wide cache of the active policy."""

    def __init__(self) -> None:
        self._policy: CompliancePolicy | None = None

    def get(self) -> CompliancePolicy | None:
        return self._policy

    def set(self, policy: CompliancePolicy) -> None:
        self._policy = policy

    def invalidate(self) -> None:
        self._policy = None


policy_cache = _PolicyCache()


def default_policy() -> CompliancePolicy:
    return CompliancePolicy(
        window_days=settings.default_firearm_window_days,
        firearm_limit=settings.default_firearm_limit,
        multi_firearm_hold_enabled=True,
        ffl_hold_enabled=True,
    )


def cart_firearm_quantity(cart_items: list[CartItem]) -> int:
    return sum(item.quantity for item in cart_items if item.counts_as_firearm)


class ComplianceService:
    def __init__(self, session: AsyncSession, client_id: str | None = None):
        self._configs = ComplianceConfigRepository(session)
        self._orders = OrderRepository(session, client_id)
        self._users = UserRepository(session)

    # ------------------------------------------------------------------
    # Policy
    # ------------------------------------------------------------------

    async def get_policy(self) -> CompliancePolicy:
        cached = policy_cache.get()
        if cached is not None:
            return cached
        row = await self._configs.get_active()
        policy = CompliancePolicy.model_validate(row) if row else default_policy()
        policy_cache.set(policy)
        return policy

    async def get_config(self) -> ComplianceConfigOut:
        row = await self._configs.get_active()
        if row is None:
            return ComplianceConfigOut(**default_policy().model_dump(), is_active=True)
        return ComplianceConfigOut.model_validate(row)

    async def update_config(self, changes: ComplianceConfigUpdate) -> ComplianceConfigOut:
        """Replace the active policy with a new row; the old row is kept, inactive."""
        current = await self.get_policy()
        merged = current.model_copy(
            update=changes.model_dump(exclude_none=True, exclude={"modified_by"})
        )
        row = await self._configs.replace_active(
            window_days=merged.window_days,
            firearm_limit=merged.firearm_limit,
            multi_firearm_hold_enabled=merged.multi_firearm_hold_enabled,
            ffl_hold_enabled=merged.ffl_hold_enabled,
            last_modified_by=changes.modified_by,
        )
        policy_cache.invalidate()
        logger.info(
            "Compliance policy replaced by %s: window=%dd limit=%d multi_hold=%s ffl_hold=%s",
            changes.modified_by or "unknown",
            row.window_days,
            row.firearm_limit,
            row.multi_firearm_hold_enabled,
            row.ffl_hold_enabled,
        )
        return ComplianceConfigOut.model_validate(row)

    async def config_history(self) -> list[ComplianceConfigOut]:
        return [ComplianceConfigOut.model_validate(r) for r in await self._configs.history()]

    # ------------------------------------------------------------------
    # Decision inputs
    # ------------------------------------------------------------------

    async def _get_user(self, user_id: str) -> User:
        user = await self._users.get_by_id(user_id)
        if not user:
            raise NotFoundError("User", user_id)
        return user

    @staticmethod
    def user_has_verified_ffl(user: User) -> bool:
        ffl = user.preferred_ffl
        return bool(ffl and ffl.is_verified_on_file)

    async def past_firearm_count(self, user_id: str, window_days: int) -> int:
        return await self._orders.past_firearm_quantity(
            user_id, window_days, QUALIFYING_STATUSES
        )

    # ------------------------------------------------------------------
    # Decision
    # ------------------------------------------------------------------

    async def check(self, user_id: str, cart_items: list[CartItem]) -> ComplianceCheckResult:
        policy = await self.get_policy()
        user = await self._get_user(user_id)

        has_firearms = any(item.counts_as_firearm for item in cart_items)
        if not has_firearms:
            return ComplianceCheckResult(
                has_firearms=False,
                requires_hold=False,
                window_days=policy.window_days,
                limit_quantity=policy.firearm_limit,
                ffl_on_file=self.user_has_verified_ffl(user),
            )

        cart_count = cart_firearm_quantity(cart_items)
        past_count = await self.past_firearm_count(user.id, policy.window_days)
        ffl_on_file = self.user_has_verified_ffl(user)
        common = dict(
            has_firearms=True,
            cart_firearm_count=cart_count,
            past_firearm_count_in_window=past_count,
            window_days=policy.window_days,
            limit_quantity=policy.firearm_limit,
            ffl_on_file=ffl_on_file,
        )

        if policy.ffl_hold_enabled and not ffl_on_file:
            logger.info("Compliance: FFL hold for user %s (cart firearms=%d)", user.id, cart_count)
            return ComplianceCheckResult(
                **common,
                requires_hold=True,
                hold_type=HoldReason.FFL,
                reason="No verified FFL on file",
            )

        if policy.multi_firearm_hold_enabled and past_count + cart_count >= policy.firearm_limit:
            logger.info(
                "Compliance: multi-firearm hold for user %s (past=%d cart=%d limit=%d/%dd)",
                user.id, past_count, cart_count, policy.firearm_limit, policy.window_days,
            )
            return ComplianceCheckResult(
                **common,
                requires_hold=True,
                hold_type=HoldReason.MULTI_FIREARM,
                reason=(
                    f"Would exceed limit of {policy.firearm_limit} firearms "
                    f"in {policy.window_days} days"
                ),
            )

        return ComplianceCheckResult(**common, requires_hold=False)
