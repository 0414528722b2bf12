"""
Stripe Payment Service
======================

Customer-facing card payments through Stripe:
- PaymentIntent creation for a booking
- PaymentIntent retrieval (client-side confirmation after redirect)
- PaymentIntent cancellation for bookings cancelled before payment
- Refund processing (manual, complaint and unattended refunds)

All monetary amounts are in the smallest currency unit (fils for AED) to
avoid floating-point issues.  Keys come from ``settings``:
  STRIPE_SECRET_KEY, STRIPE_PUBLISHABLE_KEY, STRIPE_WEBHOOK_SECRET
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any

import stripe

from washpro.core.config import settings

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Stripe SDK configuration
# ---------------------------------------------------------------------------

stripe.api_key = settings.stripe_secret_key
stripe.api_version = "2024-06-20"

REFUND_REASONS = frozenset({"duplicate", "fraudulent", "requested_by_customer"})
CANCELLATION_REASONS = REFUND_REASONS | {"abandoned"}


# ---------------------------------------------------------------------------
# Custom exception
# ---------------------------------------------------------------------------

class PaymentError(Exception):
    """Raised when a Stripe payment operation fails.

    Attributes:
        message: Human-readable error description.
        stripe_error_code: The Stripe error code, if available.
        stripe_error_type: The Stripe error type, if available.
        decline_code: The decline code from the card issuer, if available.
    """

    def __init__(
        self,
        message: str,
        stripe_error_code: str | None = None,
        stripe_error_type: str | None = None,
        decline_code: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.stripe_error_code = stripe_error_code
        self.stripe_error_type = stripe_error_type
        self.decline_code = decline_code

    def __repr__(self) -> str:
        return (
            f"PaymentError(message={self.message!r}, "
            f"code={self.stripe_error_code!r}, "
            f"type={self.stripe_error_type!r})"
        )


# ---------------------------------------------------------------------------
# Response dataclasses
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PaymentIntentResult:
    """Result of creating a Stripe PaymentIntent."""
    id: str
    client_secret: str
    status: str
    amount_cents: int
    currency: str


@dataclass(frozen=True)
class PaymentIntentStatus:
    """Snapshot of an existing PaymentIntent."""
    id: str
    status: str
    amount_cents: int
    currency: str
    metadata: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class RefundResult:
    """Result of a Stripe refund operation."""
    id: str
    status: str
    amount_cents: int


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _handle_stripe_error(exc: Exception) -> PaymentError:
    """Convert a Stripe SDK exception into a PaymentError."""
    error_body = getattr(exc, "error", None)

    code = getattr(error_body, "code", None) if error_body else None
    error_type = getattr(error_body, "type", None) if error_body else None
    decline_code = getattr(error_body, "decline_code", None) if error_body else None

    logger.error(
        "Stripe API error: %s (code=%s, type=%s, decline_code=%s)",
        str(exc),
        code,
        error_type,
        decline_code,
    )

    return PaymentError(
        message=str(exc),
        stripe_error_code=code,
        stripe_error_type=error_type,
        decline_code=decline_code,
    )


# ---------------------------------------------------------------------------
# Payment Intent operations
# ---------------------------------------------------------------------------

async def create_payment_intent(
    job_id: uuid.UUID,
    amount_cents: int,
    currency: str = "aed",
    metadata: dict[str, str] | None = None,
) -> PaymentIntentResult:
    """Create a Stripe PaymentIntent for a job.

    Args:
        job_id: The job UUID. Stored in PaymentIntent metadata.
        amount_cents: Amount to charge in the smallest currency unit.
        currency: Three-letter ISO currency code (default ``aed``).
        metadata: Extra metadata to attach (plate, company, ...).

    Returns:
        PaymentIntentResult with the PaymentIntent details.

    Raises:
        PaymentError: If the Stripe API call fails.
        ValueError: If amount_cents is non-positive.
    """
    if amount_cents <= 0:
        raise ValueError(f"Payment amount must be positive, got {amount_cents}")

    params: dict[str, Any] = {
        "amount": amount_cents,
        "currency": currency.lower(),
        "metadata": {
            **(metadata or {}),
            "job_id": str(job_id),
            "platform": "washpro",
        },
        "automatic_payment_methods": {"enabled": True},
    }

    try:
        intent = stripe.PaymentIntent.create(**params)
    except stripe.StripeError as exc:
        raise _handle_stripe_error(exc) from exc

    logger.info(
        "PaymentIntent created: id=%s, job_id=%s, amount=%d %s",
        intent.id,
        job_id,
        amount_cents,
        currency,
    )

    return PaymentIntentResult(
        id=intent.id,
        client_secret=intent.client_secret,
        status=intent.status,
        amount_cents=intent.amount,
        currency=intent.currency,
    )


async def retrieve_payment_intent(payment_intent_id: str) -> PaymentIntentStatus:
    """Fetch the current state of a PaymentIntent.

    Raises:
        PaymentError: If the retrieval fails.
    """
    try:
        intent = stripe.PaymentIntent.retrieve(payment_intent_id)
    except stripe.StripeError as exc:
        raise _handle_stripe_error(exc) from exc

    return PaymentIntentStatus(
        id=intent.id,
        status=intent.status,
        amount_cents=intent.amount,
        currency=intent.currency,
        metadata=dict(getattr(intent, "metadata", None) or {}),
    )


async def cancel_payment(
    payment_intent_id: str,
    reason: str = "requested_by_customer",
) -> bool:
    """Cancel a PaymentIntent that has not been paid yet.

    Once cancelled the client secret can no longer be used to pay.

    Args:
        payment_intent_id: The Stripe PaymentIntent ID.
        reason: One of ``duplicate``, ``fraudulent``,
            ``requested_by_customer`` or ``abandoned``.

    Returns:
        True if Stripe reports the intent as ``canceled``.

    Raises:
        PaymentError: If the cancellation fails (e.g. already succeeded).
    """
    if reason not in CANCELLATION_REASONS:
        reason = "requested_by_customer"

    try:
        intent = stripe.PaymentIntent.cancel(
            payment_intent_id,
            cancellation_reason=reason,
        )
    except stripe.StripeError as exc:
        raise _handle_stripe_error(exc) from exc

    logger.info("PaymentIntent cancelled: id=%s, reason=%s", intent.id, reason)
    return intent.status == "canceled"


async def refund_payment(
    payment_intent_id: str,
    amount_cents: int | None = None,
    reason: str = "requested_by_customer",
    metadata: dict[str, str] | None = None,
) -> RefundResult:
    """Refund a PaymentIntent (full or partial).

    Args:
        payment_intent_id: The Stripe PaymentIntent ID to refund.
        amount_cents: Amount to refund in the smallest unit. If None, full
            refund.
        reason: Stripe refund reason (``duplicate``, ``fraudulent`` or
            ``requested_by_customer``); anything else is sent as
            ``requested_by_customer``.
        metadata: Free-form notes stored on the refund.

    Returns:
        RefundResult with the refund details.

    Raises:
        PaymentError: If the refund fails.
        ValueError: If amount_cents is negative.
    """
    if amount_cents is not None and amount_cents < 0:
        raise ValueError(f"Refund amount cannot be negative, got {amount_cents}")
    if reason not in REFUND_REASONS:
        reason = "requested_by_customer"

    params: dict[str, Any] = {
        "payment_intent": payment_intent_id,
        "reason": reason,
        "metadata": {
            # Stripe caps metadata values at 500 characters
            **{k: str(v)[:500] for k, v in (metadata or {}).items()},
            "platform": "washpro",
        },
    }

    if amount_cents is not None and amount_cents > 0:
        params["amount"] = amount_cents

    try:
        refund = stripe.Refund.create(**params)
    except stripe.StripeError as exc:
        raise _handle_stripe_error(exc) from exc

    logger.info(
        "Refund created: id=%s, payment_intent=%s, amount=%d, status=%s",
        refund.id,
        payment_intent_id,
        refund.amount,
        refund.status,
    )

    return RefundResult(
        id=refund.id,
        status=refund.status,
        amount_cents=refund.amount,
    )
