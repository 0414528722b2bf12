"""
Authentication service for the WashPro platform.

Handles staff registration (admin, company admin, cleaner), login, JWT
token management and the phone-number based customer login.  Uses bcrypt
for password hashing and PyJWT for token generation/verification.

Every token carries ``sub`` (user or customer id), ``role`` and ``type``
(``access`` / ``refresh``).  Customer tokens have ``role == "customer"``
and a ``sub`` that points at the ``customers`` table.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Optional

import bcrypt
import jwt
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from washpro.core.config import settings
from washpro.models import (
    Cleaner,
    CleanerStatus,
    Company,
    Customer,
    User,
    UserRole,
)
from washpro.services.cleanerService import consume_invitation_for_registration

# ---------------------------------------------------------------------------
# Password hashing (bcrypt direct usage)
# ---------------------------------------------------------------------------


def hash_password(password: str) -> str:
    """Hash a plaintext password using bcrypt."""
    # bcrypt requires bytes; truncate to 72 bytes (bcrypt limit)
    pw_bytes = password.encode("utf-8")[:72]
    salt = bcrypt.gensalt(rounds=12)
    return bcrypt.hashpw(pw_bytes, salt).decode("utf-8")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a plaintext password against a bcrypt hash."""
    pw_bytes = plain_password.encode("utf-8")[:72]
    hashed_bytes = hashed_password.encode("utf-8")
    return bcrypt.checkpw(pw_bytes, hashed_bytes)


# ---------------------------------------------------------------------------
# JWT token generation
# ---------------------------------------------------------------------------


def _encode(subject_id: uuid.UUID, role: str, token_type: str, expires_at: datetime) -> str:
    payload = {
        "sub": str(subject_id),
        "role": role,
        "type": token_type,
        "exp": expires_at,
        "iat": datetime.now(timezone.utc),
        "jti": str(uuid.uuid4()),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def create_access_token(subject_id: uuid.UUID, role: str) -> tuple[str, datetime]:
    """Create a short-lived access token.

    Returns:
        Tuple of (token_string, expiration_datetime).
    """
    if role == UserRole.CUSTOMER.value:
        lifetime = timedelta(days=settings.customer_token_expire_days)
    else:
        lifetime = timedelta(minutes=settings.access_token_expire_minutes)
    expires_at = datetime.now(timezone.utc) + lifetime
    return _encode(subject_id, role, "access", expires_at), expires_at


def create_refresh_token(subject_id: uuid.UUID, role: str) -> tuple[str, datetime]:
    """Create a long-lived refresh token.

    Returns:
        Tuple of (token_string, expiration_datetime).
    """
    expires_at = datetime.now(timezone.utc) + timedelta(
        days=settings.refresh_token_expire_days
    )
    return _encode(subject_id, role, "refresh", expires_at), expires_at


def create_tokens(subject_id: uuid.UUID, role: UserRole | str) -> dict:
    """Create both access and refresh tokens.

    Returns:
        Dictionary with access_token, refresh_token, and expires_at.
    """
    role_value = role.value if isinstance(role, UserRole) else str(role)
    access_token, access_expires = create_access_token(subject_id, role_value)
    refresh_token, _ = create_refresh_token(subject_id, role_value)
    return {
        "access_token": access_token,
        "refresh_token": refresh_token,
        "expires_at": access_expires,
    }


def decode_token(token: str) -> dict:
    """Decode and verify a JWT token.

    Raises:
        jwt.ExpiredSignatureError: If the token has expired.
        jwt.InvalidTokenError: If the token is otherwise invalid.
    """
    return jwt.decode(
        token,
        settings.jwt_secret,
        algorithms=[settings.jwt_algorithm],
    )


def _decode_access_payload(token: str) -> tuple[uuid.UUID, str]:
    try:
        payload = decode_token(token)
    except jwt.ExpiredSignatureError:
        raise ValueError("Access token has expired.")
    except jwt.InvalidTokenError:
        raise ValueError("Invalid access token.")

    if payload.get("type") != "access":
        raise ValueError("Invalid token type. Expected an access token.")

    subject = payload.get("sub")
    if subject is None:
        raise ValueError("Invalid token: missing subject.")
    try:
        subject_id = uuid.UUID(subject)
    except (ValueError, AttributeError):
        raise ValueError("Invalid token: malformed subject.")

    return subject_id, str(payload.get("role") or "")


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------

def normalize_phone(phone: str) -> str:
    """Strip spaces and dashes so '+971 50-123 4567' matches '+971501234567'."""
    return "".join(ch for ch in phone.strip() if ch not in " -()")


async def get_user_by_email(db: AsyncSession, email: str) -> Optional[User]:
    """Look up a user by email address."""
    stmt = select(User).where(User.email == email.lower().strip())
    result = await db.execute(stmt)
    return result.scalars().first()


async def get_user_by_id(db: AsyncSession, user_id: uuid.UUID) -> Optional[User]:
    """Look up a user by primary key."""
    stmt = select(User).where(User.id == user_id)
    result = await db.execute(stmt)
    return result.scalars().first()


async def _ensure_email_free(db: AsyncSession, email: str) -> str:
    email = email.lower().strip()
    if await get_user_by_email(db, email) is not None:
        raise ValueError("Email already registered")
    return email


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------

async def register_admin(
    db: AsyncSession,
    email: str,
    password: str,
    display_name: str,
    *,
    requested_by: Optional[User] = None,
) -> tuple[User, dict]:
    """Register a platform admin.

    The first admin can register freely; after that only an existing admin
    may create more.

    Raises:
        ValueError: If the email is taken.
        PermissionError: If admins exist and the caller is not one.
    """
    admin_count = (
        await db.execute(select(func.count(User.id)).where(User.role == UserRole.ADMIN))
    ).scalar_one()
    if admin_count and (requested_by is None or requested_by.role != UserRole.ADMIN):
        raise PermissionError("Only an admin can create another admin.")

    email = await _ensure_email_free(db, email)
    user = User(
        id=uuid.uuid4(),
        email=email,
        password_hash=hash_password(password),
        display_name=display_name,
        role=UserRole.ADMIN,
        is_active=True,
    )
    db.add(user)
    await db.flush()

    return user, create_tokens(user.id, user.role)


async def register_company(
    db: AsyncSession,
    *,
    email: str,
    password: str,
    display_name: str,
    company_name: str,
    price_per_wash: Decimal,
    phone: Optional[str] = None,
    company_description: Optional[str] = None,
    trade_license_number: Optional[str] = None,
    trade_license_document_url: Optional[str] = None,
) -> tuple[User, Company, dict]:
    """Register a company admin together with their (inactive) company.

    The company stays hidden from customers until a platform admin
    approves it.
    """
    email = await _ensure_email_free(db, email)
    if price_per_wash <= 0:
        raise ValueError("Price per wash must be positive")

    user = User(
        id=uuid.uuid4(),
        email=email,
        password_hash=hash_password(password),
        display_name=display_name,
        phone=normalize_phone(phone) if phone else None,
        role=UserRole.COMPANY_ADMIN,
        is_active=True,
    )
    db.add(user)
    await db.flush()

    company = Company(
        id=uuid.uuid4(),
        name=company_name.strip(),
        description=company_description,
        price_per_wash=price_per_wash,
        platform_fee=settings.default_platform_fee,
        admin_id=user.id,
        trade_license_number=trade_license_number,
        trade_license_document_url=trade_license_document_url,
        is_active=False,
    )
    db.add(company)
    await db.flush()

    user.company_id = company.id
    await db.flush()

    return user, company, create_tokens(user.id, user.role)


async def register_cleaner(
    db: AsyncSession,
    *,
    email: str,
    password: str,
    display_name: str,
    phone: str,
    company_id: uuid.UUID,
) -> tuple[User, Cleaner, dict]:
    """Register a cleaner under a company.

    Raises:
        ValueError: Email taken, unknown company, or the phone's invitation
            is revoked / already used / for another company.
    """
    email = await _ensure_email_free(db, email)
    company = await db.get(Company, company_id)
    if company is None:
        raise ValueError("Company not found")

    phone = normalize_phone(phone)
    await consume_invitation_for_registration(db, phone, company_id)

    user = User(
        id=uuid.uuid4(),
        email=email,
        password_hash=hash_password(password),
        display_name=display_name,
        phone=phone,
        role=UserRole.CLEANER,
        company_id=company_id,
        is_active=True,
    )
    db.add(user)
    await db.flush()

    cleaner = Cleaner(
        id=uuid.uuid4(),
        user_id=user.id,
        company_id=company_id,
        status=CleanerStatus.OFF_DUTY,
    )
    db.add(cleaner)
    await db.flush()

    return user, cleaner, create_tokens(user.id, user.role)


# ---------------------------------------------------------------------------
# Login
# ---------------------------------------------------------------------------

async def login(
    db: AsyncSession,
    email: str,
    password: str,
) -> tuple[User, dict]:
    """Authenticate a staff user with email and password.

    Raises:
        ValueError: If credentials are invalid or account is not active.
    """
    user = await get_user_by_email(db, email)
    if user is None or not user.password_hash:
        raise ValueError("Invalid email or password.")

    if not verify_password(password, user.password_hash):
        raise ValueError("Invalid email or password.")

    if not user.is_active:
        raise ValueError("This account has been deactivated.")

    user.last_login_at = datetime.now(timezone.utc)
    await db.flush()

    return user, create_tokens(user.id, user.role)


async def login_customer(
    db: AsyncSession,
    phone: str,
    display_name: Optional[str] = None,
    email: Optional[str] = None,
) -> tuple[Customer, dict]:
    """Get-or-create a customer by phone number and issue a customer token."""
    phone = normalize_phone(phone)
    if not phone:
        raise ValueError("Phone number is required.")

    result = await db.execute(select(Customer).where(Customer.phone == phone))
    customer = result.scalar_one_or_none()
    if customer is None:
        customer = Customer(id=uuid.uuid4(), phone=phone)
        db.add(customer)

    if display_name:
        customer.display_name = display_name.strip()
    if email:
        customer.email = email.lower().strip()
    customer.last_login_at = datetime.now(timezone.utc)
    await db.flush()

    return customer, create_tokens(customer.id, UserRole.CUSTOMER)


async def refresh_token(
    db: AsyncSession,
    refresh_token_str: str,
) -> dict:
    """Validate a refresh token and issue new tokens.

    Raises:
        ValueError: If the refresh token is invalid or expired.
    """
    try:
        payload = decode_token(refresh_token_str)
    except jwt.ExpiredSignatureError:
        raise ValueError("Refresh token has expired. Please log in again.")
    except jwt.InvalidTokenError:
        raise ValueError("Invalid refresh token.")

    if payload.get("type") != "refresh":
        raise ValueError("Invalid token type. Expected a refresh token.")

    subject = payload.get("sub")
    if subject is None:
        raise ValueError("Invalid refresh token: missing subject.")
    try:
        subject_id = uuid.UUID(subject)
    except (ValueError, AttributeError):
        raise ValueError("Invalid refresh token: malformed subject.")

    role = payload.get("role")
    if role == UserRole.CUSTOMER.value:
        customer = await db.get(Customer, subject_id)
        if customer is None:
            raise ValueError("Customer not found.")
        return create_tokens(customer.id, UserRole.CUSTOMER)

    user = await get_user_by_id(db, subject_id)
    if user is None:
        raise ValueError("User not found.")
    if not user.is_active:
        raise ValueError("Account is no longer active.")

    return create_tokens(user.id, user.role)


async def get_current_user(
    db: AsyncSession,
    token: str,
) -> User:
    """Decode a staff access token and return the corresponding user.

    Raises:
        ValueError: If the token is invalid, expired, belongs to a customer,
            or the user is not found.
    """
    user_id, role = _decode_access_payload(token)
    if role == UserRole.CUSTOMER.value:
        raise ValueError("Customer tokens cannot access staff endpoints.")

    user = await get_user_by_id(db, user_id)
    if user is None:
        raise ValueError("User not found.")
    if not user.is_active:
        raise ValueError("Account is no longer active.")

    return user


async def get_current_customer(
    db: AsyncSession,
    token: str,
) -> Customer:
    """Decode a customer access token and return the customer."""
    customer_id, role = _decode_access_payload(token)
    if role != UserRole.CUSTOMER.value:
        raise ValueError("Not a customer token.")

    customer = await db.get(Customer, customer_id)
    if customer is None:
        raise ValueError("Customer not found.")
    return customer
