"""
Stripe Integration Module
=========================

Central export point for the Stripe integration services.

Usage::

    from washpro.integrations.stripe import (
        PaymentError,
        create_payment_intent,
        retrieve_payment_intent,
        refund_payment,
        cancel_payment,
        handle_webhook,
    )
"""

from .paymentService import (
    PaymentError,
    PaymentIntentResult,
    PaymentIntentStatus,
    RefundResult,
    cancel_payment,
    create_payment_intent,
    refund_payment,
    retrieve_payment_intent,
)
from .webhookHandler import (
    WebhookResult,
    clear_processed_events,
    handle_webhook,
)

__all__ = [
    # Payment Service
    "PaymentError",
    "PaymentIntentResult",
    "PaymentIntentStatus",
    "RefundResult",
    "cancel_payment",
    "create_payment_intent",
    "retrieve_payment_intent",
    "refund_payment",
    # Webhook Handler
    "WebhookResult",
    "clear_processed_events",
    "handle_webhook",
]
