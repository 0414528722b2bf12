"""
Firebase Cloud Messaging integration
====================================

Public re-exports for the FCM push notification service.
"""

from .pushService import (
    BatchSendResult,
    PushPayload,
    SendResult,
    is_configured,
    send_notification,
    send_to_multiple,
)

__all__ = [
    "BatchSendResult",
    "PushPayload",
    "SendResult",
    "is_configured",
    "send_notification",
    "send_to_multiple",
]
