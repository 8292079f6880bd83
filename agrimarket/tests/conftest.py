"""
Test fixtures for AgriMarket backend tests.

Provides:
- A fresh file-backed SQLite database per test (BEGIN IMMEDIATE locking, so
  sessions running concurrently in one test really contend)
- Async test client with the session and notifier dependencies overridden
- Test data factories for users, products, orders and conversations
"""
# IMPORTANT: Set environment variables BEFORE any other imports
import os

os.environ.setdefault("ADMIN_SECRET", "test_admin_secret")
os.environ.setdefault("JWT_SECRET", "test_jwt_secret")
# DB settings required by Settings validation (tests build their own engines)
os.environ.setdefault("DB_USER", "test")
os.environ.setdefault("DB_PASSWORD", "test")
os.environ.setdefault("DB_NAME", "test")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
# Development mode for tests (disables ALLOWED_ORIGINS requirement)
os.environ.setdefault("ENVIRONMENT", "development")

import pytest
from decimal import Decimal
from typing import AsyncGenerator

from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool

from agrimarket.app.core.base import Base
from agrimarket.app.core.database import build_engine
from agrimarket.app.main import app
from agrimarket.app.api.deps import get_session, get_notifier
from agrimarket.app.models.user import User
from agrimarket.app.models.product import Product
from agrimarket.app.models.order import Order
from agrimarket.app.models.conversation import Conversation
from agrimarket.app.models import notification, feed, farm_service  # noqa: F401 - register tables
from agrimarket.app.services.notifications import RecordingNotificationSink


@pytest.fixture
async def test_engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """Engine on a throwaway SQLite file with all tables created."""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", poolclass=NullPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Session the data factories write through."""
    async with session_factory() as session:
        yield session


@pytest.fixture
async def test_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """
    Session handed to the services under test.

    Kept apart from `db_session`: a failed operation rolls back and expires
    everything in its session, which must not touch the factory objects.

    SQLite takes the database write lock at BEGIN, so tests must not leave
    this session inside a transaction while other sessions write; read
    back through `reload()` instead.
    """
    async with session_factory() as session:
        yield session


@pytest.fixture
def notifier() -> RecordingNotificationSink:
    return RecordingNotificationSink()


@pytest.fixture
async def client(session_factory, notifier: RecordingNotificationSink) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client; every request gets a fresh session from the test engine."""
    async def override_get_session():
        async with session_factory() as session:
            yield session

    async def override_get_notifier():
        return notifier

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_notifier] = override_get_notifier

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test"
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


# --- Test Data Factories ---

@pytest.fixture
def make_user(db_session: AsyncSession):
    counter = {"n": 0}

    async def _make(full_name: str = "Test User", role: str = "citizen", is_active: bool = True) -> User:
        counter["n"] += 1
        user = User(
            full_name=full_name,
            phone=f"+96650000{counter['n']:04d}",
            role=role,
            is_active=is_active,
        )
        db_session.add(user)
        await db_session.commit()
        return user

    return _make


@pytest.fixture
def make_product(db_session: AsyncSession):
    async def _make(
        farmer: User,
        quantity: int = 10,
        price: str = "10.00",
        title: str = "Tomatoes",
        remaining: int = None,
        status: str = None,
        is_active: bool = True,
    ) -> Product:
        remaining_quantity = quantity if remaining is None else remaining
        product = Product(
            farmer_id=farmer.id,
            title=title,
            price=Decimal(price),
            original_quantity=quantity,
            remaining_quantity=remaining_quantity,
            status=status or ("sold_out" if remaining_quantity == 0 else "active"),
            is_active=is_active,
        )
        db_session.add(product)
        await db_session.commit()
        return product

    return _make


@pytest.fixture
def make_order(db_session: AsyncSession):
    """Insert an order row directly (bypasses the service)."""
    async def _make(
        buyer: User,
        product: Product,
        quantity: int = 1,
        status: str = "pending",
        delivery_fee: str = "0",
        total_price: str = None,
        created_at=None,
    ) -> Order:
        fee = Decimal(delivery_fee)
        total = Decimal(total_price) if total_price is not None else quantity * product.price + fee
        order = Order(
            buyer_id=buyer.id,
            farmer_id=product.farmer_id,
            product_id=product.id,
            quantity=quantity,
            unit_price=product.price,
            delivery_method="pickup",
            delivery_fee=fee,
            total_price=total,
            status=status,
        )
        if created_at is not None:
            order.created_at = created_at
        db_session.add(order)
        await db_session.commit()
        return order

    return _make


@pytest.fixture
async def farmer(make_user) -> User:
    return await make_user("Farmer Ali", role="farmer")


@pytest.fixture
async def buyer(make_user) -> User:
    return await make_user("Buyer Sara")


@pytest.fixture
async def other_buyer(make_user) -> User:
    return await make_user("Buyer Omar")


@pytest.fixture
async def product(make_product, farmer: User) -> Product:
    return await make_product(farmer, quantity=5, price="10.00")


@pytest.fixture
async def conversation(db_session: AsyncSession, farmer: User, buyer: User) -> Conversation:
    user1_id, user2_id = sorted((farmer.id, buyer.id))
    conv = Conversation(
        user1_id=user1_id,
        user2_id=user2_id,
        context_key="direct",
        type="direct",
        title="Direct conversation",
    )
    db_session.add(conv)
    await db_session.commit()
    return conv
