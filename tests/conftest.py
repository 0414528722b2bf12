"""
Shared pytest fixtures for WashPro backend unit tests.

Provides mock database sessions and sample domain objects built from the
real ORM classes (transient, never persisted) so services can be exercised
without a live database connection.
"""

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from washpro.models import (
    AssignmentMode,
    Cleaner,
    CleanerStatus,
    Company,
    CompanyPackageType,
    Customer,
    FeePackageType,
    Job,
    JobStatus,
    PaymentMethod,
    User,
    UserRole,
)


# ---------------------------------------------------------------------------
# Database session mock
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_db() -> AsyncMock:
    """Async mock of ``AsyncSession``.

    Provides a mock that supports ``db.execute()``, ``db.add()``,
    ``db.flush()``, and ``db.commit()`` out of the box.  Individual tests
    can configure ``mock_db.execute.return_value`` to control query results.
    """
    session = AsyncMock()
    session.add = MagicMock()
    session.flush = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    # ``async with db.begin_nested():`` works on a MagicMock
    session.begin_nested = MagicMock()
    return session


# ---------------------------------------------------------------------------
# Account fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def sample_company() -> Company:
    """An approved pay-per-wash company on the custom fee package."""
    return Company(
        id=uuid.uuid4(),
        name="Sparkle Wash",
        description="Mobile car wash in Dubai Marina",
        price_per_wash=Decimal("50.00"),
        platform_fee=Decimal("3.00"),
        fee_package_type=FeePackageType.CUSTOM,
        package_type=CompanyPackageType.PAY_PER_WASH,
        subscription_cleaner_slots=0,
        is_active=True,
        total_jobs_completed=0,
        total_revenue=Decimal("0.00"),
        rating=Decimal("0.00"),
        total_ratings=0,
        geofence_area=None,
    )


@pytest.fixture
def sample_company_admin(sample_company: Company) -> User:
    return User(
        id=uuid.uuid4(),
        email="owner@sparkle.ae",
        password_hash="x",
        display_name="Sparkle Owner",
        phone="+971500000001",
        role=UserRole.COMPANY_ADMIN,
        company_id=sample_company.id,
        is_active=True,
        sound_enabled=True,
    )


@pytest.fixture
def sample_admin() -> User:
    return User(
        id=uuid.uuid4(),
        email="admin@washpro.ae",
        password_hash="x",
        display_name="Platform Admin",
        role=UserRole.ADMIN,
        is_active=True,
        sound_enabled=True,
    )


@pytest.fixture
def sample_cleaner_user(sample_company: Company) -> User:
    return User(
        id=uuid.uuid4(),
        email="cleaner@sparkle.ae",
        password_hash="x",
        display_name="Ali Cleaner",
        phone="+971500000002",
        role=UserRole.CLEANER,
        company_id=sample_company.id,
        is_active=True,
        sound_enabled=True,
    )


@pytest.fixture
def sample_cleaner(sample_company: Company, sample_cleaner_user: User) -> Cleaner:
    """An on-duty cleaner standing in Dubai Marina."""
    cleaner = Cleaner(
        id=uuid.uuid4(),
        user_id=sample_cleaner_user.id,
        company_id=sample_company.id,
        status=CleanerStatus.ON_DUTY,
        is_active=True,
        current_latitude=Decimal("25.0805000"),
        current_longitude=Decimal("55.1403000"),
        last_location_update=datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc),
        total_jobs_completed=0,
        rating=Decimal("0.00"),
        total_ratings=0,
    )
    cleaner.user = sample_cleaner_user
    return cleaner


@pytest.fixture
def sample_customer() -> Customer:
    return Customer(
        id=uuid.uuid4(),
        phone="+971501234567",
        email="customer@example.com",
        display_name="Sara",
    )


# ---------------------------------------------------------------------------
# Job fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def sample_job(sample_company: Company, sample_customer: Customer) -> Job:
    """A paid, unassigned card job for the sample company."""
    job = Job(
        id=uuid.uuid4(),
        customer_id=sample_customer.id,
        company_id=sample_company.id,
        cleaner_id=None,
        car_plate_number="A12345",
        car_plate_emirate="Dubai",
        location_address="Marina Walk, Dubai",
        location_latitude=Decimal("25.0805000"),
        location_longitude=Decimal("55.1403000"),
        customer_phone=sample_customer.phone,
        customer_email=sample_customer.email,
        price=Decimal("50.00"),
        platform_fee=Decimal("3.00"),
        tax_amount=Decimal("2.65"),
        tip_amount=Decimal("0.00"),
        total_amount=Decimal("55.65"),
        payment_method=PaymentMethod.CARD,
        stripe_payment_intent_id="pi_test_sample",
        status=JobStatus.PAID,
        assignment_mode=AssignmentMode.POOL,
        paid_at=datetime(2026, 3, 1, 9, 5, tzinfo=timezone.utc),
        created_at=datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc),
        updated_at=datetime(2026, 3, 1, 9, 5, tzinfo=timezone.utc),
    )
    job.company = sample_company
    job.cleaner = None
    return job
