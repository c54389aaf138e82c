import pytest

from app.core.exceptions import NotFoundError
from app.domain.order import HoldReason
from app.schemas.compliance import CartItem, ComplianceConfigUpdate
from app.services.compliance import ComplianceService
from tests.conftest import CLIENT_ID, cart_item, firearm_item, make_past_order, make_user


def _cart(*items):
    return [CartItem.model_validate(i) for i in items]


@pytest.fixture
def svc(session):
    return ComplianceService(session, CLIENT_ID)


async def test_cart_without_firearms_never_holds(session, svc):
    user = await make_user(session, verified_ffl=False)
    await make_past_order(session, user, firearm_qty=10)

    result = await svc.check(user.id, _cart(cart_item(quantity=3)))

    assert result.requires_hold is False
    assert result.has_firearms is False
    assert result.hold_type is None
    assert result.cart_firearm_count == 0
    assert result.past_firearm_count_in_window == 0


async def test_firearm_without_verified_ffl_gets_ffl_hold(session, svc):
    user = await make_user(session, verified_ffl=False)

    result = await svc.check(user.id, _cart(firearm_item()))

    assert result.requires_hold is True
    assert result.hold_type == HoldReason.FFL
    assert result.reason == "No verified FFL on file"
    assert result.cart_firearm_count == 1
    assert result.window_days == 30
    assert result.limit_quantity == 5


async def test_requires_ffl_flag_alone_counts_as_firearm(session, svc):
    user = await make_user(session, verified_ffl=False)

    result = await svc.check(user.id, _cart(cart_item(requiresFFL=True)))

    assert result.has_firearms is True
    assert result.hold_type == HoldReason.FFL


@pytest.mark.parametrize(
    "past, cart, expect_hold",
    [(4, 1, True), (3, 1, False), (0, 5, True), (2, 2, False)],
)
async def test_rolling_window_limit_is_inclusive(session, svc, past, cart, expect_hold):
    user = await make_user(session, verified_ffl=True)
    if past:
        await make_past_order(session, user, firearm_qty=past)

    result = await svc.check(user.id, _cart(firearm_item(quantity=cart)))

    assert result.requires_hold is expect_hold
    assert result.past_firearm_count_in_window == past
    assert result.cart_firearm_count == cart
    if expect_hold:
        assert result.hold_type == HoldReason.MULTI_FIREARM
        assert "5 firearms in 30 days" in result.reason


async def test_ffl_hold_wins_over_quantity_limit(session, svc):
    user = await make_user(session, verified_ffl=False)
    await make_past_order(session, user, firearm_qty=4)

    result = await svc.check(user.id, _cart(firearm_item(quantity=2)))

    assert result.hold_type == HoldReason.FFL
    assert result.past_firearm_count_in_window == 4


async def test_window_ignores_old_and_non_qualifying_orders(session, svc):
    user = await make_user(session, verified_ffl=True)
    await make_past_order(session, user, firearm_qty=3, days_ago=31)
    await make_past_order(session, user, firearm_qty=3, status="Cancelled")
    await make_past_order(session, user, firearm_qty=3, status="Manual Processing Required")
    await make_past_order(session, user, firearm_qty=1, status="Shipped", days_ago=10)
    await make_past_order(session, user, firearm_qty=1, status="Pending FFL", days_ago=2)

    assert await svc.past_firearm_count(user.id, 30) == 2


async def test_other_users_history_is_not_counted(session, svc):
    user = await make_user(session, verified_ffl=True)
    other = await make_user(session, email="other@example.com")
    await make_past_order(session, other, firearm_qty=5)

    result = await svc.check(user.id, _cart(firearm_item()))

    assert result.requires_hold is False
    assert result.past_firearm_count_in_window == 0


async def test_inactive_dealer_is_not_a_verified_ffl(session, svc):
    user = await make_user(session, verified_ffl=True)
    user.preferred_ffl.is_atf_active = False
    await session.flush()

    result = await svc.check(user.id, _cart(firearm_item()))

    assert result.ffl_on_file is False
    assert result.hold_type == HoldReason.FFL


async def test_unknown_user_raises_not_found(svc):
    with pytest.raises(NotFoundError):
        await svc.check("missing-user", _cart(firearm_item()))


async def test_policy_update_is_append_only_and_takes_effect(session, svc):
    user = await make_user(session, verified_ffl=True)
    await make_past_order(session, user, firearm_qty=2)

    before = await svc.check(user.id, _cart(firearm_item()))
    assert before.requires_hold is False

    await svc.update_config(ComplianceConfigUpdate(firearm_limit=3, modified_by="admin-1"))
    await svc.update_config(ComplianceConfigUpdate(window_days=60, modified_by="admin-2"))

    after = await svc.check(user.id, _cart(firearm_item()))
    assert after.requires_hold is True
    assert after.limit_quantity == 3
    assert after.window_days == 60

    history = await svc.config_history()
    assert len(history) == 2
    assert [h.is_active for h in history] == [True, False]
    assert history[0].last_modified_by == "admin-2"
    assert history[0].firearm_limit == 3


async def test_policy_toggles_disable_holds(session, svc):
    user = await make_user(session, verified_ffl=False)
    await svc.update_config(
        ComplianceConfigUpdate(ffl_hold_enabled=False, multi_firearm_hold_enabled=False)
    )

    result = await svc.check(user.id, _cart(firearm_item(quantity=9)))

    assert result.requires_hold is False
    assert result.cart_firearm_count == 9
