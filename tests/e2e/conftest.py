"""
E2E test fixtures for the WashPro backend.

Provides:
- An in-process FastAPI test app with every /api router registered
- httpx AsyncClient wired via ASGI transport (no network needed)
- An async SQLite database (in-memory) per test for isolation
- Seed data: platform admin, an approved company with its admin, one
  on-duty cleaner parked in Dubai Marina and a phone-login customer
- Bearer header fixtures for each role

Stripe is mocked at the SDK module used by the payment service and the
Socket.IO emitter is replaced so no Redis is needed.  FCM is left
unconfigured, which turns push delivery into a no-op.
"""

from __future__ import annotations

import itertools
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from types import SimpleNamespace
from typing import Any, AsyncGenerator
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.pool import StaticPool

from washpro.models.base import Base


@compiles(JSONB, "sqlite")
def compile_jsonb_sqlite(type_, compiler, **kw):
    return "JSON"


# A bare UUID column gets NUMERIC affinity on SQLite, which mangles
# all-digit ids on read.
@compiles(PG_UUID, "sqlite")
def compile_uuid_sqlite(type_, compiler, **kw):
    return "CHAR(32)"


# ---------------------------------------------------------------------------
# Test IDs (stable across tests so cross-references work)
# ---------------------------------------------------------------------------

ADMIN_USER_ID = uuid.UUID("aaaaaaaa-aaaa-aaaa-aaaa-aaaaaaaaaaaa")
COMPANY_ADMIN_USER_ID = uuid.UUID("bbbbbbbb-bbbb-bbbb-bbbb-bbbbbbbbbbbb")
CLEANER_USER_ID = uuid.UUID("cccccccc-cccc-cccc-cccc-cccccccccccc")
CUSTOMER_ID = uuid.UUID("dddddddd-dddd-dddd-dddd-dddddddddddd")

COMPANY_ID = uuid.UUID("11111111-1111-1111-1111-111111111111")
PENDING_COMPANY_ID = uuid.UUID("22222222-2222-2222-2222-222222222222")
CLEANER_ID = uuid.UUID("33333333-3333-3333-3333-333333333333")

CLEANER_EMAIL = "ali@sparkle.test"
CUSTOMER_PHONE = "+971501234567"

# Dubai Marina; the seeded cleaner stands right here.
MARINA_LAT = 25.0805
MARINA_LNG = 55.1403
# Roughly 1.3 km away: outside the 50 m auto-assign radius.
JLT_LAT = 25.0900
JLT_LNG = 55.1500


# ---------------------------------------------------------------------------
# Async engine + session (in-memory SQLite)
# ---------------------------------------------------------------------------

TEST_DB_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture
async def _test_engine():
    """One throwaway engine per test; StaticPool keeps the in-memory
    database alive across connections."""
    engine = create_async_engine(TEST_DB_URL, echo=False, poolclass=StaticPool)

    # Let SQLAlchemy own BEGIN so savepoints (``begin_nested``) work on aiosqlite
    @event.listens_for(engine.sync_engine, "connect")
    def _no_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(_test_engine) -> AsyncGenerator[AsyncSession, None]:
    session_factory = async_sessionmaker(
        bind=_test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    async with session_factory() as session:
        yield session
        await session.rollback()


# ---------------------------------------------------------------------------
# Seed data
# ---------------------------------------------------------------------------

async def _seed_data(db: AsyncSession) -> None:
    """Insert the minimum marketplace needed by the E2E flows."""
    from washpro.models import (
        Cleaner,
        CleanerStatus,
        Company,
        CompanyPackageType,
        Customer,
        FeePackageType,
        User,
        UserRole,
    )
    from washpro.services.auth_service import hash_password

    now = datetime.now(timezone.utc)
    password_hash = hash_password("password123")

    company = Company(
        id=COMPANY_ID,
        name="Sparkle Wash",
        description="Mobile car wash in Dubai Marina",
        price_per_wash=Decimal("50.00"),
        platform_fee=Decimal("3.00"),
        fee_package_type=FeePackageType.CUSTOM,
        package_type=CompanyPackageType.PAY_PER_WASH,
        is_active=True,
    )
    pending_company = Company(
        id=PENDING_COMPANY_ID,
        name="Foam Brothers",
        price_per_wash=Decimal("40.00"),
        trade_license_number="TL-778899",
        is_active=False,
    )
    db.add_all([company, pending_company])
    await db.flush()

    admin = User(
        id=ADMIN_USER_ID,
        email="admin@washpro.test",
        password_hash=password_hash,
        display_name="Platform Admin",
        role=UserRole.ADMIN,
    )
    company_admin = User(
        id=COMPANY_ADMIN_USER_ID,
        email="owner@sparkle.test",
        password_hash=password_hash,
        display_name="Sara Owner",
        phone="+971509990000",
        role=UserRole.COMPANY_ADMIN,
        company_id=COMPANY_ID,
    )
    cleaner_user = User(
        id=CLEANER_USER_ID,
        email=CLEANER_EMAIL,
        password_hash=password_hash,
        display_name="Ali Cleaner",
        phone="+971505550000",
        role=UserRole.CLEANER,
        company_id=COMPANY_ID,
    )
    customer = Customer(
        id=CUSTOMER_ID,
        phone=CUSTOMER_PHONE,
        email="driver@example.test",
        display_name="Omar",
    )
    db.add_all([admin, company_admin, cleaner_user, customer])
    await db.flush()

    company.admin_id = COMPANY_ADMIN_USER_ID
    cleaner = Cleaner(
        id=CLEANER_ID,
        user_id=CLEANER_USER_ID,
        user=cleaner_user,
        company_id=COMPANY_ID,
        status=CleanerStatus.ON_DUTY,
        current_latitude=Decimal(str(MARINA_LAT)),
        current_longitude=Decimal(str(MARINA_LNG)),
        last_location_update=now,
    )
    db.add(cleaner)
    await db.flush()


@pytest_asyncio.fixture
async def seeded_db(db_session: AsyncSession) -> AsyncSession:
    """A database session with seed data already inserted."""
    await _seed_data(db_session)
    return db_session


# ---------------------------------------------------------------------------
# FastAPI test application
# ---------------------------------------------------------------------------

def _create_test_app(db_session_override: AsyncSession):
    """Build a FastAPI app with all routes registered and the DB dependency
    overridden to use the test session."""
    from fastapi import FastAPI

    from washpro.api.deps import get_db
    from washpro.api.routes import (
        admin,
        auth,
        cleaner,
        companies,
        company,
        complaints,
        customer,
        jobs,
        payments,
        push,
    )

    app = FastAPI(title="WashPro Test")

    async def _override_get_db():
        yield db_session_override

    app.dependency_overrides[get_db] = _override_get_db

    for module in (
        auth,
        companies,
        customer,
        payments,
        jobs,
        complaints,
        cleaner,
        company,
        admin,
        push,
    ):
        app.include_router(module.router, prefix="/api")

    return app


@pytest_asyncio.fixture
async def client(seeded_db: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """httpx AsyncClient connected to the test app via ASGI transport."""
    app = _create_test_app(seeded_db)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


# ---------------------------------------------------------------------------
# Auth headers
# ---------------------------------------------------------------------------

def _bearer(subject_id: uuid.UUID, role: str) -> dict[str, str]:
    from washpro.services.auth_service import create_tokens

    tokens = create_tokens(subject_id, role)
    return {"Authorization": f"Bearer {tokens['access_token']}"}


@pytest.fixture
def admin_headers() -> dict[str, str]:
    return _bearer(ADMIN_USER_ID, "admin")


@pytest.fixture
def company_headers() -> dict[str, str]:
    return _bearer(COMPANY_ADMIN_USER_ID, "company_admin")


@pytest.fixture
def cleaner_headers() -> dict[str, str]:
    return _bearer(CLEANER_USER_ID, "cleaner")


@pytest.fixture
def customer_headers() -> dict[str, str]:
    return _bearer(CUSTOMER_ID, "customer")


# ---------------------------------------------------------------------------
# Stripe mock (used by the payment service)
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def mock_stripe():
    """Mock the Stripe SDK calls made by the payment service.

    Every created intent gets its own id and ``PaymentIntent.retrieve``
    reports success, so confirm-payment marks the job paid; tests set
    ``retrieve_status`` on the mock to exercise the other branch.
    """
    with patch("washpro.integrations.stripe.paymentService.stripe") as mock_stripe_mod:
        counter = itertools.count(1)
        mock_stripe_mod.retrieve_status = "succeeded"

        def _create(**params):
            intent_id = f"pi_test_{next(counter):06d}"
            return SimpleNamespace(
                id=intent_id,
                client_secret=f"{intent_id}_secret_abc",
                status="requires_payment_method",
                amount=params["amount"],
                currency=params["currency"],
            )

        def _retrieve(intent_id, **_):
            return SimpleNamespace(
                id=intent_id,
                status=mock_stripe_mod.retrieve_status,
                amount=5565,
                currency="aed",
                metadata={},
            )

        mock_stripe_mod.PaymentIntent.create.side_effect = _create
        mock_stripe_mod.PaymentIntent.retrieve.side_effect = _retrieve

        refund = MagicMock()
        refund.id = "re_test_789"
        refund.status = "succeeded"
        refund.amount = 5565
        mock_stripe_mod.Refund.create.return_value = refund

        mock_stripe_mod.StripeError = Exception

        yield mock_stripe_mod


# ---------------------------------------------------------------------------
# Socket.IO emitter mock
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def mock_socket_emit():
    """Capture ``job_update`` / ``cleaner_update`` broadcasts."""
    from washpro.realtime import socketServer

    with patch.object(socketServer.sio, "emit", new_callable=AsyncMock) as emit:
        yield emit


# ---------------------------------------------------------------------------
# Seed references and booking helper
# ---------------------------------------------------------------------------

@pytest.fixture
def seed() -> SimpleNamespace:
    """IDs and coordinates of the seeded marketplace."""
    return SimpleNamespace(
        admin_user_id=ADMIN_USER_ID,
        company_admin_user_id=COMPANY_ADMIN_USER_ID,
        cleaner_user_id=CLEANER_USER_ID,
        customer_id=CUSTOMER_ID,
        company_id=COMPANY_ID,
        pending_company_id=PENDING_COMPANY_ID,
        cleaner_id=CLEANER_ID,
        cleaner_email=CLEANER_EMAIL,
        customer_phone=CUSTOMER_PHONE,
        marina=(MARINA_LAT, MARINA_LNG),
        jlt=(JLT_LAT, JLT_LNG),
    )


@pytest.fixture
def book_and_pay(client: AsyncClient):
    """Return a coroutine that books a wash with the seeded company and
    confirms its payment; it resolves to the job JSON after confirmation.

    Bookings at ``seed.marina`` land next to the on-duty cleaner and are
    auto-assigned; bookings at ``seed.jlt`` stay in the pool.
    """

    async def _book(
        *,
        lat: float = MARINA_LAT,
        lng: float = MARINA_LNG,
        headers: dict[str, str] | None = None,
        **extra: Any,
    ) -> dict[str, Any]:
        payload = {
            "companyId": str(COMPANY_ID),
            "carPlateNumber": "a 12345",
            "carPlateEmirate": "Dubai",
            "locationAddress": "Marina Walk, Dubai",
            "locationLatitude": lat,
            "locationLongitude": lng,
            "customerPhone": CUSTOMER_PHONE,
            **extra,
        }
        resp = await client.post(
            "/api/create-payment-intent", json=payload, headers=headers or {}
        )
        assert resp.status_code == 201, resp.text
        intent_id = resp.json()["paymentIntentId"]

        resp = await client.post(f"/api/confirm-payment/{intent_id}")
        assert resp.status_code == 200, resp.text
        return resp.json()

    return _book
