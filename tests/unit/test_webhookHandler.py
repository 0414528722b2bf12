"""
Unit tests for the Stripe webhook handler.

Signature verification is patched at ``stripe.Webhook.construct_event``;
the job service is patched so no database is needed.
"""

import uuid
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest
import stripe

from washpro.integrations.stripe import webhookHandler
from washpro.integrations.stripe.webhookHandler import (
    clear_processed_events,
    handle_webhook,
)


def _event(event_type="payment_intent.succeeded", event_id="evt_1", **intent_fields):
    intent = SimpleNamespace(
        id=intent_fields.get("id", "pi_123"),
        amount=intent_fields.get("amount", 5565),
        currency="aed",
        metadata=intent_fields.get("metadata", {"job_id": "job-1"}),
        last_payment_error=intent_fields.get("last_payment_error"),
    )
    return SimpleNamespace(
        id=event_id,
        type=event_type,
        created=1767225600,
        data=SimpleNamespace(object=intent),
    )


@pytest.fixture(autouse=True)
def _webhook_secret():
    clear_processed_events()
    with patch.object(webhookHandler.settings, "stripe_webhook_secret", "whsec_test"):
        yield
    clear_processed_events()


@pytest.fixture
def construct_event():
    with patch.object(webhookHandler.stripe.Webhook, "construct_event") as mock:
        yield mock


@pytest.fixture
def mark_job_paid():
    with patch(
        "washpro.services.jobService.mark_job_paid", new_callable=AsyncMock
    ) as mock:
        mock.return_value = SimpleNamespace(id=uuid.uuid4())
        yield mock


# ---------------------------------------------------------------------------
# Verification
# ---------------------------------------------------------------------------


class TestVerification:
    @pytest.mark.asyncio
    async def test_missing_secret(self, mock_db):
        with patch.object(webhookHandler.settings, "stripe_webhook_secret", ""):
            with pytest.raises(ValueError, match="not configured"):
                await handle_webhook(mock_db, b"{}", "sig")

    @pytest.mark.asyncio
    async def test_bad_signature(self, mock_db, construct_event):
        construct_event.side_effect = stripe.SignatureVerificationError(
            "bad signature", "sig"
        )
        with pytest.raises(ValueError, match="Invalid webhook signature"):
            await handle_webhook(mock_db, b"{}", "sig")

    @pytest.mark.asyncio
    async def test_bad_payload(self, mock_db, construct_event):
        construct_event.side_effect = ValueError("not json")
        with pytest.raises(ValueError, match="Invalid webhook payload"):
            await handle_webhook(mock_db, b"nope", "sig")


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------


class TestDispatch:
    @pytest.mark.asyncio
    async def test_payment_succeeded_marks_job_paid(
        self, mock_db, construct_event, mark_job_paid
    ):
        construct_event.return_value = _event()
        result = await handle_webhook(mock_db, b"{}", "sig")

        assert result.processed is True
        assert result.failed is False
        mark_job_paid.assert_awaited_once()
        assert mark_job_paid.await_args.args[1] == "pi_123"
        assert mark_job_paid.await_args.kwargs["paid_at"] is not None

    @pytest.mark.asyncio
    async def test_payment_for_unknown_job(
        self, mock_db, construct_event, mark_job_paid
    ):
        mark_job_paid.return_value = None
        construct_event.return_value = _event()
        result = await handle_webhook(mock_db, b"{}", "sig")
        assert result.processed is True
        assert "does not match any job" in result.message

    @pytest.mark.asyncio
    async def test_payment_failed_is_logged(self, mock_db, construct_event):
        construct_event.return_value = _event(
            "payment_intent.payment_failed",
            last_payment_error=SimpleNamespace(message="Your card was declined."),
        )
        result = await handle_webhook(mock_db, b"{}", "sig")
        assert result.processed is True
        assert "card was declined" in result.message

    @pytest.mark.asyncio
    async def test_unhandled_type_is_acknowledged(self, mock_db, construct_event):
        construct_event.return_value = _event("charge.captured")
        result = await handle_webhook(mock_db, b"{}", "sig")
        assert result.processed is False
        assert result.failed is False
        assert "not handled" in result.message


# ---------------------------------------------------------------------------
# Idempotency and failures
# ---------------------------------------------------------------------------


class TestIdempotency:
    @pytest.mark.asyncio
    async def test_duplicate_event_skipped(
        self, mock_db, construct_event, mark_job_paid
    ):
        construct_event.return_value = _event(event_id="evt_dup")
        await handle_webhook(mock_db, b"{}", "sig")
        second = await handle_webhook(mock_db, b"{}", "sig")

        assert second.processed is False
        assert "already processed" in second.message
        assert mark_job_paid.await_count == 1

    @pytest.mark.asyncio
    async def test_handler_error_is_retryable(
        self, mock_db, construct_event, mark_job_paid
    ):
        mark_job_paid.side_effect = RuntimeError("database down")
        construct_event.return_value = _event(event_id="evt_retry")

        first = await handle_webhook(mock_db, b"{}", "sig")
        assert first.failed is True
        assert first.processed is False

        mark_job_paid.side_effect = None
        second = await handle_webhook(mock_db, b"{}", "sig")
        assert second.processed is True
