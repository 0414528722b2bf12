"""
Unit tests for the authentication service.

Covers password hashing, JWT creation and decoding, phone normalisation,
the admin bootstrap rule and staff / customer token separation.
"""

import uuid
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import jwt
import pytest

from washpro.core.config import settings
from washpro.models import User, UserRole
from washpro.services import auth_service
from washpro.services.auth_service import (
    _decode_access_payload,
    create_access_token,
    create_tokens,
    decode_token,
    hash_password,
    normalize_phone,
    verify_password,
)


def _count_result(count: int) -> MagicMock:
    result = MagicMock()
    result.scalar_one.return_value = count
    return result


# ---------------------------------------------------------------------------
# Passwords
# ---------------------------------------------------------------------------


class TestPasswords:
    def test_round_trip(self):
        hashed = hash_password("s3cret-pass")
        assert hashed != "s3cret-pass"
        assert verify_password("s3cret-pass", hashed) is True

    def test_wrong_password(self):
        hashed = hash_password("s3cret-pass")
        assert verify_password("other", hashed) is False


# ---------------------------------------------------------------------------
# Tokens
# ---------------------------------------------------------------------------


class TestTokens:
    def test_access_token_claims(self):
        subject = uuid.uuid4()
        token, expires_at = create_access_token(subject, "cleaner")
        payload = decode_token(token)
        assert payload["sub"] == str(subject)
        assert payload["role"] == "cleaner"
        assert payload["type"] == "access"
        assert expires_at > datetime.now(timezone.utc)

    def test_customer_tokens_live_longer(self):
        _, staff_expiry = create_access_token(uuid.uuid4(), "admin")
        _, customer_expiry = create_access_token(uuid.uuid4(), "customer")
        assert customer_expiry - staff_expiry > timedelta(
            days=settings.customer_token_expire_days - 1
        )

    def test_create_tokens_pair(self):
        tokens = create_tokens(uuid.uuid4(), UserRole.COMPANY_ADMIN)
        assert set(tokens) == {"access_token", "refresh_token", "expires_at"}
        assert decode_token(tokens["refresh_token"])["type"] == "refresh"
        assert decode_token(tokens["access_token"])["role"] == "company_admin"

    def test_expired_token(self):
        expired = jwt.encode(
            {
                "sub": str(uuid.uuid4()),
                "role": "admin",
                "type": "access",
                "exp": datetime.now(timezone.utc) - timedelta(minutes=1),
            },
            settings.jwt_secret,
            algorithm=settings.jwt_algorithm,
        )
        with pytest.raises(ValueError, match="expired"):
            _decode_access_payload(expired)

    def test_garbage_token(self):
        with pytest.raises(ValueError, match="Invalid access token"):
            _decode_access_payload("not-a-jwt")

    def test_refresh_token_is_not_an_access_token(self):
        tokens = create_tokens(uuid.uuid4(), UserRole.ADMIN)
        with pytest.raises(ValueError, match="Expected an access token"):
            _decode_access_payload(tokens["refresh_token"])


# ---------------------------------------------------------------------------
# Phones
# ---------------------------------------------------------------------------


class TestNormalizePhone:
    def test_strips_formatting(self):
        assert normalize_phone(" +971 50-123 4567 ") == "+971501234567"

    def test_parentheses(self):
        assert normalize_phone("(050) 1234567") == "0501234567"


# ---------------------------------------------------------------------------
# Registration and sessions
# ---------------------------------------------------------------------------


class TestRegisterAdmin:
    @pytest.mark.asyncio
    async def test_second_admin_needs_an_admin(self, mock_db):
        mock_db.execute.return_value = _count_result(1)
        with pytest.raises(PermissionError):
            await auth_service.register_admin(
                mock_db, "second@washpro.ae", "password1", "Second"
            )

    @pytest.mark.asyncio
    async def test_company_admin_cannot_create_admin(self, mock_db, sample_company_admin):
        mock_db.execute.return_value = _count_result(1)
        with pytest.raises(PermissionError):
            await auth_service.register_admin(
                mock_db,
                "second@washpro.ae",
                "password1",
                "Second",
                requested_by=sample_company_admin,
            )

    @pytest.mark.asyncio
    async def test_first_admin_registers_openly(self, mock_db):
        mock_db.execute.return_value = _count_result(0)
        with patch.object(
            auth_service,
            "_ensure_email_free",
            new_callable=AsyncMock,
            return_value="first@washpro.ae",
        ):
            user, tokens = await auth_service.register_admin(
                mock_db, "First@WashPro.ae", "password1", "First"
            )
        assert user.role == UserRole.ADMIN
        assert user.email == "first@washpro.ae"
        assert decode_token(tokens["access_token"])["sub"] == str(user.id)
        mock_db.add.assert_called_once_with(user)


class TestCurrentUser:
    @pytest.mark.asyncio
    async def test_customer_token_rejected_for_staff(self, mock_db):
        tokens = create_tokens(uuid.uuid4(), UserRole.CUSTOMER)
        with pytest.raises(ValueError, match="Customer tokens"):
            await auth_service.get_current_user(mock_db, tokens["access_token"])

    @pytest.mark.asyncio
    async def test_staff_token_rejected_for_customer(self, mock_db):
        tokens = create_tokens(uuid.uuid4(), UserRole.CLEANER)
        with pytest.raises(ValueError, match="Not a customer token"):
            await auth_service.get_current_customer(mock_db, tokens["access_token"])

    @pytest.mark.asyncio
    async def test_inactive_user_rejected(self, mock_db, sample_company_admin):
        sample_company_admin.is_active = False
        tokens = create_tokens(sample_company_admin.id, sample_company_admin.role)
        with patch.object(
            auth_service,
            "get_user_by_id",
            new_callable=AsyncMock,
            return_value=sample_company_admin,
        ):
            with pytest.raises(ValueError, match="no longer active"):
                await auth_service.get_current_user(mock_db, tokens["access_token"])

    @pytest.mark.asyncio
    async def test_active_user_returned(self, mock_db, sample_admin):
        tokens = create_tokens(sample_admin.id, sample_admin.role)
        with patch.object(
            auth_service,
            "get_user_by_id",
            new_callable=AsyncMock,
            return_value=sample_admin,
        ):
            user = await auth_service.get_current_user(mock_db, tokens["access_token"])
        assert user is sample_admin


class TestLogin:
    @pytest.mark.asyncio
    async def test_wrong_password(self, mock_db):
        user = User(
            id=uuid.uuid4(),
            email="a@b.c",
            password_hash=hash_password("right-one"),
            display_name="A",
            role=UserRole.ADMIN,
            is_active=True,
        )
        with patch.object(
            auth_service, "get_user_by_email", new_callable=AsyncMock, return_value=user
        ):
            with pytest.raises(ValueError, match="Invalid email or password"):
                await auth_service.login(mock_db, "a@b.c", "wrong-one")

    @pytest.mark.asyncio
    async def test_customer_login_creates_customer(self, mock_db):
        result = MagicMock()
        result.scalar_one_or_none.return_value = None
        mock_db.execute.return_value = result

        customer, tokens = await auth_service.login_customer(
            mock_db, "+971 50 111 2222", display_name=" Omar ", email="Omar@Mail.com"
        )

        assert customer.phone == "+971501112222"
        assert customer.display_name == "Omar"
        assert customer.email == "omar@mail.com"
        assert decode_token(tokens["access_token"])["role"] == "customer"
        mock_db.add.assert_called_once_with(customer)

    @pytest.mark.asyncio
    async def test_customer_login_requires_phone(self, mock_db):
        with pytest.raises(ValueError):
            await auth_service.login_customer(mock_db, "  ")
