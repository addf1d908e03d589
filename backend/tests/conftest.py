"""Shared test configuration and fixtures.

Every test gets a fresh in-memory SQLite database (aiosqlite) with all tables
created, so repository-backed tests need no running PostgreSQL. Provisioning
and notification collaborators are ``AsyncMock`` objects that record calls.
"""

import uuid
from collections.abc import AsyncGenerator, Awaitable, Callable
from datetime import date, datetime
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.pool import StaticPool

import orderops.models  # noqa: F401  (registers every table on Base.metadata)
from orderops.api.deps import get_db, get_run_context
from orderops.billing.context import RunContext
from orderops.database import Base
from orderops.events import EventBus
from orderops.main import app
from orderops.models import (
    Cancellation,
    Invoice,
    InvoiceItem,
    Order,
    OrderProduct,
    Product,
    ProductPrice,
    User,
)
from orderops.services.order_repository import SqlAlchemyOrderRepository

# Fixed clock for every test: 2026-10-19 12:00 (naive UTC).
NOW = datetime(2026, 10, 19, 12, 0, 0)
TODAY = NOW.date()


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def test_engine() -> AsyncGenerator[AsyncEngine, None]:
    """Create an in-memory SQLite engine with all tables."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(test_engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    """Yield an async session bound to the per-test database."""
    session = AsyncSession(bind=test_engine, expire_on_commit=False)
    try:
        yield session
    finally:
        await session.close()


# ---------------------------------------------------------------------------
# Collaborators
# ---------------------------------------------------------------------------


@pytest.fixture
def context() -> RunContext:
    return RunContext(now=NOW)


@pytest.fixture
def event_bus() -> EventBus:
    return EventBus()


@pytest.fixture
def repository(db_session: AsyncSession, event_bus: EventBus) -> SqlAlchemyOrderRepository:
    return SqlAlchemyOrderRepository(db_session, event_bus=event_bus)


@pytest.fixture
def provisioner() -> AsyncMock:
    """Records suspend / terminate / mark_paid calls."""
    return AsyncMock()


@pytest.fixture
def notifier() -> AsyncMock:
    """Records send_*_notification calls."""
    return AsyncMock()


# ---------------------------------------------------------------------------
# Row factories
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def test_user(db_session: AsyncSession) -> User:
    unique = uuid.uuid4().hex[:8]
    user = User(email=f"customer-{unique}@test.com", name="Test Customer", is_active=True)
    db_session.add(user)
    await db_session.flush()
    return user


@pytest_asyncio.fixture
async def test_order(db_session: AsyncSession, test_user: User) -> Order:
    order = Order(user_id=test_user.id)
    db_session.add(order)
    await db_session.flush()
    return order


@pytest_asyncio.fixture
async def make_product(db_session: AsyncSession) -> Callable[..., Awaitable[Product]]:
    """Factory: ``await make_product("Pro VPS", monthly="40.00")``."""

    async def _make(name: str = "Starter VPS", **prices: str) -> Product:
        product = Product(name=name)
        product.prices = [
            ProductPrice(billing_cycle=cycle, amount=Decimal(amount)) for cycle, amount in prices.items()
        ]
        db_session.add(product)
        await db_session.flush()
        return product

    return _make


@pytest_asyncio.fixture
async def make_order_product(
    db_session: AsyncSession,
    test_order: Order,
    make_product: Callable[..., Awaitable[Product]],
) -> Callable[..., Awaitable[OrderProduct]]:
    """Factory for order products attached to ``test_order``."""

    async def _make(
        *,
        price: str = "50.00",
        billing_cycle: str = "monthly",
        status: str = "active",
        expiry_date: date = TODAY,
        cancellation: bool = False,
        product: Product | None = None,
        order: Order | None = test_order,
    ) -> OrderProduct:
        if product is None:
            product = await make_product("Starter VPS", monthly="50.00")
        row = OrderProduct(
            order_id=order.id if order is not None else None,
            product_id=product.id,
            price=Decimal(price),
            billing_cycle=billing_cycle,
            status=status,
            expiry_date=expiry_date,
        )
        if cancellation:
            row.cancellation = Cancellation(reason="Too expensive", cancellation_type="end_of_period")
        db_session.add(row)
        await db_session.commit()
        return row

    return _make


@pytest_asyncio.fixture
async def make_invoice(
    db_session: AsyncSession,
    test_order: Order,
) -> Callable[..., Awaitable[Invoice]]:
    """Factory for an invoice with one line billing ``order_product``."""

    async def _make(
        order_product: OrderProduct,
        *,
        status: str = "pending",
        total: str = "50.00",
        created_at: datetime | None = None,
    ) -> Invoice:
        invoice = Invoice(order_id=test_order.id, user_id=test_order.user_id, status=status)
        if created_at is not None:
            invoice.created_at = created_at
        invoice.items = [InvoiceItem(order_product_id=order_product.id, description="Renewal", total=Decimal(total))]
        db_session.add(invoice)
        await db_session.commit()
        return invoice

    return _make


# ---------------------------------------------------------------------------
# HTTP client
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def client(db_session: AsyncSession, context: RunContext) -> AsyncGenerator[AsyncClient, None]:
    """Provide an httpx AsyncClient wired to the test DB session and clock."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_run_context] = lambda: context

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac

    app.dependency_overrides.clear()
