"""
Pytest Configuration and Fixtures

Provides fixtures for:
- Database sessions (async, SQLite in memory)
- HTTP client bound to the app with the test session
- Test data factories (users, drivers, orders, withdrawals)
- Bearer tokens for authenticated requests
"""
# JWT_SECRET_KEY must be set before importing app, the settings validator requires it when DEBUG=False
import os
os.environ.setdefault("JWT_SECRET_KEY", "test-jwt-secret-key-for-testing-only-do-not-use-in-production")

import itertools
from decimal import Decimal
from typing import AsyncGenerator

import pytest
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.auth import create_access_token
from app.db.database import Base, get_db
from app.db.models.order import Order, OrderStatus, ServiceType
from app.db.models.user import User, UserRole, KycStatus, AvailabilityStatus
from app.db.models.withdrawal import Withdrawal, WithdrawalStatus
from app.domain.services.settlement import SettlementConfig
from app.main import app


# Test database URL (SQLite in memory for fast tests)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# No custom event_loop fixture: pytest-asyncio handles it with
# asyncio_mode=auto and asyncio_default_fixture_loop_scope=function

_counter = itertools.count(1)


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
async def db_session(async_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create async database session for tests"""
    async_session_maker = async_sessionmaker(
        async_engine,
        class_=AsyncSession,
        expire_on_commit=False
    )

    async with async_session_maker() as session:
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


@pytest.fixture
def settlement_config() -> SettlementConfig:
    """Platform fee of 15%"""
    return SettlementConfig(platform_fee_percent=Decimal("15"))


# ============================================================================
# Test Data Factories
# ============================================================================

@pytest.fixture
def user_factory(db_session: AsyncSession):
    """Factory for creating test users"""
    async def _create_user(
        role: UserRole = UserRole.CUSTOMER,
        first_name: str = "Test",
        last_name: str = "User",
        email: str | None = None,
        phone: str | None = None,
        is_active: bool = True,
        kyc_status: KycStatus = KycStatus.NOT_SUBMITTED,
        is_online: bool = False,
        availability_status: AvailabilityStatus = AvailabilityStatus.OFFLINE,
        max_active_orders: int = 1,
        wallet_balance: Decimal = Decimal("0.00"),
    ) -> User:
        user = User(
            role=role,
            first_name=first_name,
            last_name=last_name,
            email=email or f"user{next(_counter)}@example.com",
            phone=phone,
            is_active=is_active,
            kyc_status=kyc_status,
            is_online=is_online,
            availability_status=availability_status,
            max_active_orders=max_active_orders,
            wallet_balance=wallet_balance,
        )
        db_session.add(user)
        await db_session.commit()
        await db_session.refresh(user)
        return user

    return _create_user


@pytest.fixture
def driver_factory(user_factory):
    """Factory for drivers that can claim orders right away (KYC approved, online)"""
    async def _create_driver(
        role: UserRole = UserRole.RIDER,
        kyc_status: KycStatus = KycStatus.APPROVED,
        is_online: bool = True,
        **kwargs,
    ) -> User:
        kwargs.setdefault(
            "availability_status",
            AvailabilityStatus.AVAILABLE if is_online else AvailabilityStatus.OFFLINE,
        )
        kwargs.setdefault("first_name", "Test")
        kwargs.setdefault("last_name", "Driver")
        return await user_factory(
            role=role,
            kyc_status=kyc_status,
            is_online=is_online,
            **kwargs,
        )

    return _create_driver


@pytest.fixture
def order_factory(db_session: AsyncSession):
    """Factory for creating test orders directly, bypassing the service"""
    async def _create_order(
        customer_id: int,
        service_type: ServiceType = ServiceType.DISPATCH,
        amount: Decimal = Decimal("5000.00"),
        tip_amount: Decimal = Decimal("0.00"),
        status: OrderStatus = OrderStatus.PENDING,
        driver_id: int | None = None,
        order_code: str | None = None,
        pickup_address: str = "12 Admiralty Way, Lekki",
        dropoff_address: str | None = "5 Broad Street, Lagos Island",
    ) -> Order:
        order = Order(
            order_code=order_code or f"DP-2025-{next(_counter):04d}",
            service_type=service_type,
            amount=amount,
            tip_amount=tip_amount,
            currency="NGN",
            status=status,
            driver_id=driver_id,
            customer_id=customer_id,
            pickup_address=pickup_address,
            dropoff_address=dropoff_address,
        )
        db_session.add(order)
        await db_session.commit()
        await db_session.refresh(order)
        return order

    return _create_order


@pytest.fixture
def withdrawal_factory(db_session: AsyncSession):
    """Factory for creating withdrawal requests directly"""
    async def _create_withdrawal(
        user_id: int,
        amount: Decimal = Decimal("1000.00"),
        status: WithdrawalStatus = WithdrawalStatus.PENDING,
    ) -> Withdrawal:
        withdrawal = Withdrawal(
            user_id=user_id,
            amount=amount,
            bank_name="Access Bank",
            account_name="Test Driver",
            account_number="0123456789",
            status=status,
        )
        db_session.add(withdrawal)
        await db_session.commit()
        await db_session.refresh(withdrawal)
        return withdrawal

    return _create_withdrawal


# ============================================================================
# Sample Test Data
# ============================================================================

@pytest.fixture
async def sample_customer(user_factory) -> User:
    return await user_factory(first_name="Ada", last_name="Customer")


@pytest.fixture
async def sample_driver(driver_factory) -> User:
    return await driver_factory(first_name="Bola", last_name="Rider")


@pytest.fixture
async def sample_admin(user_factory) -> User:
    return await user_factory(role=UserRole.ADMIN, first_name="Admin", last_name="User")


@pytest.fixture
async def sample_order(order_factory, sample_customer) -> Order:
    """A PENDING dispatch order of 5000.00"""
    return await order_factory(customer_id=sample_customer.id)


# ============================================================================
# Authentication
# ============================================================================

def auth_headers(user: User) -> dict[str, str]:
    """Bearer header for the given user"""
    token = create_access_token(user.id, user.role.value)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def make_auth_headers():
    return auth_headers
