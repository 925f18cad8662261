"""
SifaPass Billing - Test Configuration

Pytest fixtures and configuration.
"""

import os

# Settings are read at import time
os.environ.setdefault("DATABASE_URL_ASYNC", "sqlite+aiosqlite:///./sifapass_test.db")
os.environ.setdefault("JWT_SECRET_KEY", "test-jwt-secret-key-for-sifapass")
os.environ.setdefault("APP_ENV", "testing")

from datetime import timedelta
from typing import AsyncGenerator, Dict

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import NullPool

import sifapass.models  # noqa: F401
from sifapass.database import Base, get_async_session
from sifapass.models.admin import Admin
from sifapass.models.enums import PlanType, SubscriptionStatus
from sifapass.models.organization import Organization
from sifapass.models.plan import Plan
from sifapass.services.plan_catalog import PlanCatalog
from sifapass.utils.security import create_access_token
from sifapass.utils.timeutils import month_start, utcnow
from main import app
from tests.fixtures.paystack_mock import MockPaystackServer


PAYSTACK_TEST_SECRET = "sk_test_4f1c9a0e2b7d46c3a8e5"


@pytest.fixture(autouse=True)
def paystack_secret(monkeypatch) -> str:
    """Paystack key visible to the gateway for the duration of a test."""
    monkeypatch.setenv("PAYSTACK_SECRET_KEY", PAYSTACK_TEST_SECRET)
    return PAYSTACK_TEST_SECRET


@pytest.fixture
def mock_paystack(paystack_secret: str):
    """Mock Paystack API; every httpx call to api.paystack.co is routed here."""
    server = MockPaystackServer(secret_key=paystack_secret)
    with server.activate():
        yield server


# ===========================================
# DATABASE
# ===========================================

@pytest_asyncio.fixture(scope="function")
async def engine(tmp_path):
    """A fresh SQLite database file per test; concurrent sessions wait on locks."""
    test_engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'billing.db'}",
        poolclass=NullPool,
        connect_args={"timeout": 30},
    )
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield test_engine

    await test_engine.dispose()


@pytest.fixture
def session_maker(engine):
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture(scope="function")
async def db_session(session_maker) -> AsyncGenerator[AsyncSession, None]:
    """Create a fresh database session for each test."""
    async with session_maker() as session:
        yield session


@pytest_asyncio.fixture(scope="function")
async def client(session_maker, mock_paystack) -> AsyncGenerator[AsyncClient, None]:
    """Create a test client with database session override."""

    async def override_get_session():
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_async_session] = override_get_session

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


# ===========================================
# DATA FIXTURES
# ===========================================

@pytest_asyncio.fixture
async def plans(db_session: AsyncSession) -> Dict[str, Plan]:
    """The default catalog, keyed by plan name."""
    seeded = await PlanCatalog(db_session).seed_plans()
    return {plan.name: plan for plan in seeded}


@pytest_asyncio.fixture
async def organization(db_session: AsyncSession) -> Organization:
    """A pay-as-you-go organization with an empty credit balance."""
    org = Organization(
        name="Lagos Tech Summit",
        email="billing@lagostech.ng",
        plan_type=PlanType.PAY_AS_YOU_GO,
        credits_available=0,
        credits_used=0,
        credit_rate=5,
        subscription_status=SubscriptionStatus.INACTIVE,
        usage_period_start=month_start(),
    )
    db_session.add(org)
    await db_session.commit()
    return org


@pytest_asyncio.fixture
async def admin(db_session: AsyncSession, organization: Organization) -> Admin:
    user = Admin(
        full_name="Ada Okafor",
        email="ada@lagostech.ng",
        organization_id=organization.id,
    )
    db_session.add(user)
    await db_session.commit()
    return user


@pytest_asyncio.fixture
async def admin_without_organization(db_session: AsyncSession) -> Admin:
    user = Admin(full_name="Tunde Bello", email="tunde@example.ng")
    db_session.add(user)
    await db_session.commit()
    return user


@pytest_asyncio.fixture
async def superuser(db_session: AsyncSession) -> Admin:
    user = Admin(
        full_name="Platform Operator",
        email="ops@sifapass.com",
        is_superuser=True,
    )
    db_session.add(user)
    await db_session.commit()
    return user


def bearer(admin: Admin) -> Dict[str, str]:
    token = create_access_token({"sub": str(admin.id)})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def auth_headers(admin: Admin) -> Dict[str, str]:
    """Create authentication headers for the organization admin."""
    return bearer(admin)


@pytest.fixture
def superuser_headers(superuser: Admin) -> Dict[str, str]:
    return bearer(superuser)


@pytest.fixture
def subscribe(db_session: AsyncSession):
    """
    Put an organization on an active subscription.

    The cycle is ``total_days`` long with ``days_left`` remaining.
    """

    async def _subscribe(
        organization: Organization,
        plan: Plan,
        days_left: int = 20,
        total_days: int = 30,
        status: SubscriptionStatus = SubscriptionStatus.ACTIVE,
    ) -> Organization:
        start = utcnow() - timedelta(days=total_days - days_left)
        organization.plan_type = PlanType.SUBSCRIPTION
        organization.current_plan_id = plan.id
        organization.subscription_status = status
        organization.subscription_start_date = start
        organization.subscription_end_date = start + timedelta(days=total_days)
        organization.last_billing_date = start
        organization.next_billing_date = start + timedelta(days=total_days)
        await db_session.commit()
        return organization

    return _subscribe


@pytest.fixture
def unlinked_auth_headers(admin_without_organization: Admin) -> Dict[str, str]:
    """Headers for an admin that has no billing organization yet."""
    return bearer(admin_without_organization)
