"""
Pytest Configuration and Fixtures

Provides fixtures for:
- Database sessions (async, in-memory SQLite)
- A session factory for code that opens its own sessions (release sweep)
- Fake Redis for alert publishing
- Test data factories
"""
import pytest
from datetime import datetime, timedelta
from decimal import Decimal
from typing import AsyncGenerator
from unittest.mock import patch

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from app.db.database import Base, get_db
from app.db.models.booking import Booking
from app.db.models.partner_wallet import PartnerWallet
from app.db.models.inventory_item import InventoryItem
from app.db.models.payment_transaction import PaymentTransaction, PaymentKind, PaymentStatus
from app.db.models.service_otp import ServiceOtp
from app.domain.services.config_service import config_service
from app.main import app
from app.state_machine.booking_states import BookingState
from app.state_machine.state_mapping import to_legacy


# Test database URL (SQLite in memory for fast tests)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# No custom event_loop fixture: pytest-asyncio handles it with
# asyncio_mode=auto and asyncio_default_fixture_loop_scope=function

CUSTOMER_ID = 5001
PARTNER_ID = 7001


@pytest.fixture(scope="function")
async def async_engine():
    """Create async test database engine"""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture(scope="function")
def session_factory(async_engine):
    """Session factory bound to the test engine"""
    return async_sessionmaker(
        async_engine,
        class_=AsyncSession,
        expire_on_commit=False
    )


@pytest.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create async database session for tests"""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture(scope="function")
async def test_client(db_session: AsyncSession):
    """Create test client with database override"""
    from httpx import AsyncClient, ASGITransport

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def reset_config_cache():
    """The config cache is process-wide; every test starts cold"""
    config_service.invalidate()
    yield
    config_service.invalidate()


# ============================================================================
# Fake Redis
# ============================================================================

class FakeRedis:
    """In-memory stand-in for Redis with the subset of commands the app uses."""

    def __init__(self) -> None:
        self._store: dict[str, str] = {}
        self._ttls: dict[str, int] = {}
        self._lists: dict[str, list[str]] = {}
        self.published: list[tuple[str, str]] = []

    async def ping(self) -> bool:
        return True

    async def get(self, key: str) -> str | None:
        return self._store.get(key)

    async def set(self, key: str, value: str, nx: bool = False, ex: int | None = None) -> bool | None:
        """SET with NX (only if absent) and EX (expiry in seconds)"""
        if nx and key in self._store:
            return None
        self._store[key] = value
        if ex is not None:
            self._ttls[key] = ex
        return True

    async def delete(self, *keys: str) -> None:
        for key in keys:
            self._store.pop(key, None)
            self._ttls.pop(key, None)
            self._lists.pop(key, None)

    async def publish(self, channel: str, message: str) -> int:
        self.published.append((channel, message))
        return 1

    async def lpush(self, key: str, *values: str) -> int:
        items = self._lists.setdefault(key, [])
        for value in values:
            items.insert(0, value)
        return len(items)

    async def ltrim(self, key: str, start: int, end: int) -> None:
        items = self._lists.get(key, [])
        self._lists[key] = items[start:end + 1]

    async def lrange(self, key: str, start: int, end: int) -> list[str]:
        items = self._lists.get(key, [])
        return items[start:end + 1] if end >= 0 else items[start:]

    async def aclose(self) -> None:
        self._store.clear()
        self._ttls.clear()
        self._lists.clear()


@pytest.fixture(autouse=True)
def fake_redis():
    """Replace get_redis with a FakeRedis in every test."""
    _fake = FakeRedis()

    async def _get_fake_redis():
        return _fake

    with patch("app.core.redis_client.get_redis", _get_fake_redis), \
         patch("app.domain.services.alert_service.get_redis", _get_fake_redis):
        yield _fake


# ============================================================================
# Test Data Factories
# ============================================================================

@pytest.fixture
def booking_factory(db_session: AsyncSession):
    """Factory for creating test bookings; `state` is canonical and stored in legacy form"""
    async def _create_booking(
        state: BookingState = BookingState.CREATED,
        status: str | None = None,
        customer_id: int = CUSTOMER_ID,
        partner_id: int | None = None,
        total_amount: Decimal = Decimal("400.00"),
    ) -> Booking:
        booking = Booking(
            customer_id=customer_id,
            partner_id=partner_id,
            status=status if status is not None else to_legacy(state),
            total_amount=total_amount,
        )
        db_session.add(booking)
        await db_session.commit()
        await db_session.refresh(booking)
        return booking

    return _create_booking


@pytest.fixture
def wallet_factory(db_session: AsyncSession):
    """Factory for creating partner wallets"""
    async def _create_wallet(
        partner_id: int = PARTNER_ID,
        balance_hold: Decimal = Decimal("0.00"),
        balance_available: Decimal = Decimal("0.00"),
        total_earned: Decimal = Decimal("0.00"),
    ) -> PartnerWallet:
        wallet = PartnerWallet(
            partner_id=partner_id,
            balance_hold=balance_hold,
            balance_available=balance_available,
            total_earned=total_earned,
        )
        db_session.add(wallet)
        await db_session.commit()
        await db_session.refresh(wallet)
        return wallet

    return _create_wallet


@pytest.fixture
def inventory_item_factory(db_session: AsyncSession):
    """Factory for creating stocked inventory items"""
    async def _create_item(
        item_code: str = "SEAL-01",
        item_name: str = "Rubber seal",
        current_stock: int = 50,
        min_stock_level: int = 10,
        unit_cost: Decimal = Decimal("12.50"),
        is_active: bool = True,
    ) -> InventoryItem:
        item = InventoryItem(
            item_code=item_code,
            item_name=item_name,
            unit="piece",
            current_stock=current_stock,
            min_stock_level=min_stock_level,
            unit_cost=unit_cost,
            is_active=is_active,
        )
        db_session.add(item)
        await db_session.commit()
        await db_session.refresh(item)
        return item

    return _create_item


@pytest.fixture
def payment_factory(db_session: AsyncSession):
    """Factory for recording gateway payments against a booking"""
    async def _create_payment(
        booking_id: int,
        kind: PaymentKind = PaymentKind.FINAL,
        status: PaymentStatus = PaymentStatus.CAPTURED,
        amount: Decimal = Decimal("400.00"),
    ) -> PaymentTransaction:
        payment = PaymentTransaction(
            booking_id=booking_id,
            kind=kind,
            status=status,
            amount=amount,
            verified_at=datetime.utcnow() if status == PaymentStatus.CAPTURED else None,
        )
        db_session.add(payment)
        await db_session.commit()
        return payment

    return _create_payment


@pytest.fixture
def otp_factory(db_session: AsyncSession):
    """Factory for handshake codes, verified by default"""
    async def _create_otp(
        booking_id: int,
        otp_code: str = "4321",
        is_verified: bool = True,
        expires_in: timedelta = timedelta(minutes=10),
        generated_by: int = CUSTOMER_ID,
    ) -> ServiceOtp:
        otp = ServiceOtp(
            booking_id=booking_id,
            otp_code=otp_code,
            generated_by=generated_by,
            expires_at=datetime.utcnow() + expires_in,
            is_verified=is_verified,
            verified_by=PARTNER_ID if is_verified else None,
            verified_at=datetime.utcnow() if is_verified else None,
        )
        db_session.add(otp)
        await db_session.commit()
        return otp

    return _create_otp


@pytest.fixture
def completable_booking(booking_factory, payment_factory):
    """A booking in progress with an assigned partner and a captured final payment"""
    async def _create(partner_id: int = PARTNER_ID) -> Booking:
        booking = await booking_factory(state=BookingState.IN_PROGRESS, partner_id=partner_id)
        await payment_factory(booking.id)
        return booking

    return _create
