"""
Unit tests for cleaners' QR payment tokens: issuing, validity checks and
redemption by a booking.  The session is mocked.
"""

import uuid
from datetime import timedelta
from unittest.mock import MagicMock

import pytest

from washpro.core.config import settings
from washpro.models import CleanerPaymentToken
from washpro.models.base import utcnow
from washpro.services.cleanerService import (
    CleanerStatusError,
    PaymentTokenError,
    create_payment_token,
    get_payment_token,
    redeem_payment_token,
)


pytestmark = pytest.mark.asyncio


@pytest.fixture
def payment_token(sample_cleaner) -> CleanerPaymentToken:
    token = CleanerPaymentToken(
        id=uuid.uuid4(),
        cleaner_id=sample_cleaner.id,
        company_id=sample_cleaner.company_id,
        token="qr-token-1",
        is_used=False,
        expires_at=utcnow() + timedelta(minutes=10),
    )
    token.cleaner = sample_cleaner
    return token


def _returning(mock_db, token) -> None:
    result = MagicMock()
    result.unique.return_value.scalar_one_or_none.return_value = token
    mock_db.execute.return_value = result


class TestCreatePaymentToken:
    async def test_token_expires_after_configured_ttl(self, mock_db, sample_cleaner):
        before = utcnow()
        token = await create_payment_token(mock_db, sample_cleaner)

        assert token.cleaner_id == sample_cleaner.id
        assert token.company_id == sample_cleaner.company_id
        assert len(token.token) >= 32
        assert token.is_used is False
        ttl = timedelta(minutes=settings.payment_token_ttl_minutes)
        assert before + ttl <= token.expires_at <= utcnow() + ttl
        mock_db.add.assert_called_once_with(token)

    async def test_tokens_are_unique(self, mock_db, sample_cleaner):
        first = await create_payment_token(mock_db, sample_cleaner)
        second = await create_payment_token(mock_db, sample_cleaner)
        assert first.token != second.token

    async def test_deactivated_cleaner_cannot_issue(self, mock_db, sample_cleaner):
        sample_cleaner.is_active = False
        with pytest.raises(CleanerStatusError):
            await create_payment_token(mock_db, sample_cleaner)


class TestGetPaymentToken:
    async def test_valid_token(self, mock_db, payment_token, sample_company):
        _returning(mock_db, payment_token)
        mock_db.get.return_value = sample_company

        info = await get_payment_token(mock_db, "qr-token-1")

        assert info.company is sample_company
        assert info.cleaner is payment_token.cleaner

    async def test_unknown_token(self, mock_db):
        _returning(mock_db, None)
        with pytest.raises(PaymentTokenError):
            await get_payment_token(mock_db, "nope")

    async def test_used_token(self, mock_db, payment_token):
        payment_token.is_used = True
        _returning(mock_db, payment_token)
        with pytest.raises(PaymentTokenError):
            await get_payment_token(mock_db, "qr-token-1")

    async def test_expired_token(self, mock_db, payment_token, sample_company):
        _returning(mock_db, payment_token)
        mock_db.get.return_value = sample_company
        with pytest.raises(PaymentTokenError):
            await get_payment_token(
                mock_db, "qr-token-1", now=utcnow() + timedelta(minutes=11)
            )

    async def test_inactive_company(self, mock_db, payment_token, sample_company):
        sample_company.is_active = False
        _returning(mock_db, payment_token)
        mock_db.get.return_value = sample_company
        with pytest.raises(PaymentTokenError):
            await get_payment_token(mock_db, "qr-token-1")


class TestRedeemPaymentToken:
    async def test_marks_token_used(self, mock_db, payment_token, sample_company):
        _returning(mock_db, payment_token)
        mock_db.get.return_value = sample_company

        cleaner = await redeem_payment_token(mock_db, "qr-token-1", sample_company.id)

        assert cleaner is payment_token.cleaner
        assert payment_token.is_used is True
        assert payment_token.used_at is not None

    async def test_other_company_cannot_redeem(
        self, mock_db, payment_token, sample_company
    ):
        _returning(mock_db, payment_token)
        mock_db.get.return_value = sample_company

        with pytest.raises(PaymentTokenError, match="another company"):
            await redeem_payment_token(mock_db, "qr-token-1", uuid.uuid4())
        assert payment_token.is_used is False
