"""
Stripe Webhook Handler
======================

Processes inbound Stripe webhook events with:
- Signature verification using STRIPE_WEBHOOK_SECRET
- Idempotent event processing (tracks processed event IDs in-memory)
- Dispatch of payment events into the job flow

Supported event types:
  - payment_intent.succeeded       -> job marked paid, then auto-assigned
  - payment_intent.payment_failed  -> logged; the job stays pending_payment

Events not in the handled set are acknowledged but not processed.
"""

from __future__ import annotations

import logging
import time
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime, timezone
from threading import Lock
from typing import Awaitable, Callable

import stripe
from sqlalchemy.ext.asyncio import AsyncSession

from washpro.core.config import settings

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Idempotency store
# ---------------------------------------------------------------------------
# In-memory LRU set of processed event IDs. mark_job_paid is idempotent on
# its own, so a duplicate slipping past another instance is harmless.

_MAX_PROCESSED_EVENTS = 10_000
_processed_events: OrderedDict[str, float] = OrderedDict()
_processed_lock = Lock()


def _mark_event_processed(event_id: str) -> None:
    """Record that an event has been processed."""
    with _processed_lock:
        _processed_events[event_id] = time.time()
        # Evict oldest entries if over capacity
        while len(_processed_events) > _MAX_PROCESSED_EVENTS:
            _processed_events.popitem(last=False)


def _is_event_processed(event_id: str) -> bool:
    with _processed_lock:
        return event_id in _processed_events


def clear_processed_events() -> None:
    """Clear the processed events store. Useful for testing."""
    with _processed_lock:
        _processed_events.clear()


# ---------------------------------------------------------------------------
# Response dataclass
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class WebhookResult:
    """Result of processing a webhook event.

    ``failed`` is set when a handler raised; the caller should answer with
    an error status so Stripe redelivers the event.
    """
    event_type: str
    processed: bool
    message: str
    failed: bool = False


# ---------------------------------------------------------------------------
# Event handlers
# ---------------------------------------------------------------------------

async def _handle_payment_intent_succeeded(db: AsyncSession, event: stripe.Event) -> str:
    """Mark the job paid; ``mark_job_paid`` also creates the financial
    record, the ledger entry and tries to assign a cleaner."""
    from washpro.services import jobService

    payment_intent = event.data.object
    created = getattr(event, "created", None)
    paid_at = datetime.fromtimestamp(created, tz=timezone.utc) if created else None

    job = await jobService.mark_job_paid(db, payment_intent.id, paid_at=paid_at)
    if job is None:
        return f"Payment intent {payment_intent.id} does not match any job"

    logger.info(
        "Payment succeeded: intent=%s, job_id=%s, amount=%d %s",
        payment_intent.id,
        job.id,
        payment_intent.amount,
        payment_intent.currency,
    )
    return f"Payment intent {payment_intent.id} succeeded for job {job.id}"


async def _handle_payment_intent_failed(db: AsyncSession, event: stripe.Event) -> str:
    """Log the failure; the job stays in pending_payment so the customer
    can retry with another card."""
    payment_intent = event.data.object
    job_id = (payment_intent.metadata or {}).get("job_id", "unknown")

    last_error = payment_intent.last_payment_error
    error_message = "Unknown error"
    if last_error:
        error_message = getattr(last_error, "message", str(last_error))

    logger.warning(
        "Payment failed: intent=%s, job_id=%s, error=%s",
        payment_intent.id,
        job_id,
        error_message,
    )
    return (
        f"Payment intent {payment_intent.id} failed for job {job_id}: "
        f"{error_message}"
    )


# ---------------------------------------------------------------------------
# Handler dispatch table
# ---------------------------------------------------------------------------

_EVENT_HANDLERS: dict[str, Callable[[AsyncSession, stripe.Event], Awaitable[str]]] = {
    "payment_intent.succeeded": _handle_payment_intent_succeeded,
    "payment_intent.payment_failed": _handle_payment_intent_failed,
}


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

async def handle_webhook(
    db: AsyncSession,
    payload: bytes,
    sig_header: str,
) -> WebhookResult:
    """Verify and process an inbound Stripe webhook event.

    Steps:
    1. Verify the webhook signature against STRIPE_WEBHOOK_SECRET
    2. Check idempotency (skip if event already processed)
    3. Dispatch to the appropriate handler based on event type
    4. Mark the event as processed

    Args:
        db: Async database session the handlers write through.
        payload: The raw request body bytes from the webhook POST.
        sig_header: The ``Stripe-Signature`` header value.

    Returns:
        WebhookResult indicating what happened.

    Raises:
        ValueError: If the signature or payload is invalid.
    """
    if not settings.stripe_webhook_secret:
        raise ValueError("Stripe webhook secret is not configured")

    # 1. Verify signature
    try:
        event = stripe.Webhook.construct_event(
            payload=payload,
            sig_header=sig_header,
            secret=settings.stripe_webhook_secret,
        )
    except stripe.SignatureVerificationError as exc:
        logger.warning("Webhook signature verification failed: %s", str(exc))
        raise ValueError(f"Invalid webhook signature: {str(exc)}") from exc
    except ValueError as exc:
        logger.warning("Webhook payload parsing failed: %s", str(exc))
        raise ValueError(f"Invalid webhook payload: {str(exc)}") from exc

    event_id: str = event.id
    event_type: str = event.type

    # 2. Idempotency check
    if _is_event_processed(event_id):
        logger.info(
            "Webhook event already processed, skipping: id=%s, type=%s",
            event_id,
            event_type,
        )
        return WebhookResult(
            event_type=event_type,
            processed=False,
            message=f"Event {event_id} already processed (idempotent skip)",
        )

    # 3. Dispatch to handler
    handler = _EVENT_HANDLERS.get(event_type)
    if handler is None:
        logger.info(
            "Webhook event type not handled: id=%s, type=%s",
            event_id,
            event_type,
        )
        _mark_event_processed(event_id)
        return WebhookResult(
            event_type=event_type,
            processed=False,
            message=f"Event type '{event_type}' acknowledged but not handled",
        )

    try:
        message = await handler(db, event)
    except Exception:
        logger.exception(
            "Error processing webhook event: id=%s, type=%s",
            event_id,
            event_type,
        )
        # Do NOT mark as processed so it can be retried
        return WebhookResult(
            event_type=event_type,
            processed=False,
            message=f"Error processing event {event_id}",
            failed=True,
        )

    # 4. Mark processed
    _mark_event_processed(event_id)

    logger.info(
        "Webhook event processed: id=%s, type=%s",
        event_id,
        event_type,
    )

    return WebhookResult(
        event_type=event_type,
        processed=True,
        message=message,
    )
