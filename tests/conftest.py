"""Shared fixtures: in-memory database, fake collaborators, seeded users/products and an API client."""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import app.domain  # noqa: F401  (registers every model on Base.metadata)
from app.core.config import settings
from app.db.base import Base, get_db
from app.domain.order import Order, OrderLine
from app.domain.product import Product
from app.domain.user import FFLDealer, FFLDealerStatus, User
from app.integrations import Collaborators
from app.integrations.crm import DealResult
from app.integrations.distributor import SubmissionResult
from app.integrations.payments import PaymentResult
from app.services.compliance import policy_cache
from app.services.outbox import OutboxWorker

CLIENT_ID = settings.default_client_id


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------

@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
async def file_session_factory(tmp_path):
    """Sessions on separate connections to one SQLite file, for tests with concurrent writers."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'race.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)
    await engine.dispose()


@pytest.fixture(autouse=True)
def _reset_policy_cache():
    policy_cache.invalidate()
    yield
    policy_cache.invalidate()


# ---------------------------------------------------------------------------
# Fake collaborators
# ---------------------------------------------------------------------------

class FakePayments:
    def __init__(self) -> None:
        self.approve = True
        self.captures: list[Decimal] = []

    async def authorize_and_capture(self, amount, card_details, billing_info) -> PaymentResult:
        self.captures.append(amount)
        if not self.approve:
            return PaymentResult(success=False, error="Card declined")
        return PaymentResult(success=True, transaction_id=f"txn-{len(self.captures)}")

    async def capture_prior_auth(self, transaction_id, amount) -> PaymentResult:
        return PaymentResult(success=True, transaction_id=transaction_id)


class FakeDistributor:
    def __init__(self) -> None:
        self.submitted: list[dict[str, Any]] = []
        self.result: SubmissionResult | None = SubmissionResult(
            success=True, distributor_order_number="DIST-1", estimated_ship_date="2026-10-20"
        )
        self.error: Exception | None = None

    async def submit_order(self, order_payload: dict[str, Any]) -> SubmissionResult:
        self.submitted.append(order_payload)
        if self.error is not None:
            raise self.error
        return self.result


class FakeCRM:
    def __init__(self) -> None:
        self.contacts: list[str] = []
        self.deals: list[dict[str, Any]] = []
        self.stages: list[tuple[str, str]] = []

    async def find_or_create_contact(self, email: str, name: str) -> str:
        self.contacts.append(email)
        return f"contact-{len(self.contacts)}"

    async def create_deal(self, contact_id: str, order_data: dict[str, Any]) -> DealResult:
        self.deals.append({"contactId": contact_id, **order_data})
        return DealResult(success=True, deal_id=f"deal-{len(self.deals)}")

    async def update_deal_stage(self, deal_id: str, stage: str) -> bool:
        self.stages.append((deal_id, stage))
        return True


@pytest.fixture
def collaborators() -> Collaborators:
    return Collaborators(payments=FakePayments(), distributor=FakeDistributor(), crm=FakeCRM())


@pytest.fixture
def worker(session_factory, collaborators) -> OutboxWorker:
    return OutboxWorker(
        session_factory,
        collaborators,
        settings.model_copy(update={"outbox_retry_backoff": 0.0}),
    )


# ---------------------------------------------------------------------------
# Seed helpers
# ---------------------------------------------------------------------------

async def make_dealer(session: AsyncSession, *, status=FFLDealerStatus.ON_FILE, active=True) -> FFLDealer:
    dealer = FFLDealer(
        license_number=f"1-23-{uuid.uuid4().hex[:10]}",
        business_name="Range Side Arms",
        zip="75001",
        status=status.value,
        is_atf_active=active,
    )
    session.add(dealer)
    await session.flush()
    return dealer


async def make_user(
    session: AsyncSession,
    *,
    email: str = "buyer@example.com",
    verified_ffl: bool = False,
    is_admin: bool = False,
) -> User:
    user = User(email=email, first_name="Pat", last_name="Buyer", is_admin=is_admin)
    if verified_ffl:
        dealer = await make_dealer(session)
        user.preferred_ffl_id = dealer.id
    session.add(user)
    await session.commit()
    # Reload so the preferred_ffl relationship is populated
    await session.refresh(user, attribute_names=["preferred_ffl"])
    return user


async def make_product(session: AsyncSession, **overrides: Any) -> Product:
    values = dict(
        sku="SKU-1",
        upc="764503022616",
        mpn="PA195S201",
        name="GLOCK 19 Gen5 9mm",
        price=Decimal("549.99"),
        is_firearm=True,
        requires_ffl=True,
    )
    values.update(overrides)
    product = Product(**values)
    session.add(product)
    await session.commit()
    return product


async def make_past_order(
    session: AsyncSession,
    user: User,
    *,
    firearm_qty: int,
    status: str = "Paid",
    days_ago: float = 1,
) -> Order:
    created = datetime.now(timezone.utc) - timedelta(days=days_ago)
    order = Order(
        client_id=CLIENT_ID,
        user_id=user.id,
        total_price=Decimal("100.00") * firearm_qty,
        status=status,
        window_days=30,
        limit_qty=5,
        payment_transaction_id="txn-past",
        created_at=created,
        updated_at=created,
    )
    order.lines = [
        OrderLine(
            product_id="p-firearm",
            sku="FA-1",
            quantity=firearm_qty,
            unit_price=Decimal("100.00"),
            total_price=Decimal("100.00") * firearm_qty,
            is_firearm=True,
        )
    ]
    session.add(order)
    await session.commit()
    return order


def cart_item(**overrides: Any) -> dict[str, Any]:
    item = {
        "id": "p-accessory",
        "name": "Cleaning kit",
        "sku": "ACC-1",
        "quantity": 1,
        "unitPrice": "19.99",
        "isFirearm": False,
        "requiresFFL": False,
    }
    item.update(overrides)
    return item


def firearm_item(**overrides: Any) -> dict[str, Any]:
    return cart_item(
        id="p-firearm", name="GLOCK 19", sku="FA-1", unitPrice="549.99", isFirearm=True,
        requiresFFL=True, **overrides,
    )


# ---------------------------------------------------------------------------
# API client
# ---------------------------------------------------------------------------

@pytest.fixture
async def client(session_factory, collaborators, worker, monkeypatch):
    monkeypatch.setattr(settings, "audit_requests", False)
    from app.main import create_app

    application = create_app()

    async def _get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    application.dependency_overrides[get_db] = _get_db
    application.state.collaborators = collaborators
    application.state.outbox_worker = worker
    application.state.session_factory = session_factory

    transport = httpx.ASGITransport(app=application)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
