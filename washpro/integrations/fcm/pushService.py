"""
Firebase Cloud Messaging (FCM) Push Service
===========================================

Low-level integration with the Firebase Admin SDK.  Subscriptions are FCM
registration tokens issued to the web app (service worker) or to the
native shells, so every message carries a ``WebpushConfig`` with the
notification tag and click-through link as well as Android / APNS blocks.

Initialization:
  The Firebase Admin SDK is initialised lazily on first use from either
  ``FIREBASE_SERVICE_ACCOUNT_PATH`` (a JSON service account file) or
  ``FIREBASE_CREDENTIALS_JSON`` (the raw JSON).

Retry logic:
  Transient failures (HTTP 500, 503, timeouts) are retried up to
  ``MAX_RETRIES`` times with exponential backoff.  Tokens FCM reports as
  unregistered are returned in ``invalid_tokens`` so the caller can delete
  the subscription.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field

import firebase_admin
from firebase_admin import credentials, messaging
from firebase_admin.exceptions import (
    InvalidArgumentError,
    NotFoundError,
    UnavailableError,
)

from washpro.core.config import settings

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Configuration constants
# ---------------------------------------------------------------------------

MAX_RETRIES: int = 3
RETRY_BASE_DELAY_SECONDS: float = 0.5
FCM_BATCH_LIMIT: int = 500  # Firebase allows max 500 tokens per multicast
NOTIFICATION_ICON: str = "/icon-192.png"


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

@dataclass
class SendResult:
    """Result of sending a single notification."""
    success: bool
    message_id: str | None = None
    error: str | None = None
    invalid_token: bool = False


@dataclass
class BatchSendResult:
    """Aggregate result of sending to multiple devices."""
    success_count: int = 0
    failure_count: int = 0
    results: list[SendResult] = field(default_factory=list)
    invalid_tokens: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class PushPayload:
    """What the user sees, plus the data the client app routes on."""
    title: str
    body: str
    tag: str | None = None
    url: str | None = None
    data: dict[str, str] | None = None
    require_interaction: bool = False


# ---------------------------------------------------------------------------
# Firebase Admin SDK initialisation (lazy singleton)
# ---------------------------------------------------------------------------

_firebase_app: firebase_admin.App | None = None


def is_configured() -> bool:
    return bool(settings.firebase_service_account_path or settings.firebase_credentials_json)


def _ensure_firebase_initialised() -> firebase_admin.App:
    """Initialise the Firebase Admin SDK if it has not been already.

    Raises:
        RuntimeError: If no credentials are configured.
    """
    global _firebase_app

    if _firebase_app is not None:
        return _firebase_app

    try:
        _firebase_app = firebase_admin.get_app()
        logger.info("Using existing Firebase Admin app")
        return _firebase_app
    except ValueError:
        pass  # No default app yet

    if settings.firebase_service_account_path:
        logger.info(
            "Initialising Firebase Admin SDK from service account file: %s",
            settings.firebase_service_account_path,
        )
        cred = credentials.Certificate(settings.firebase_service_account_path)
    elif settings.firebase_credentials_json:
        logger.info("Initialising Firebase Admin SDK from JSON environment variable")
        cred = credentials.Certificate(json.loads(settings.firebase_credentials_json))
    else:
        raise RuntimeError(
            "Firebase credentials not configured. Set either "
            "FIREBASE_SERVICE_ACCOUNT_PATH or FIREBASE_CREDENTIALS_JSON."
        )

    _firebase_app = firebase_admin.initialize_app(cred)
    logger.info("Firebase Admin SDK initialised successfully")
    return _firebase_app


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _is_transient_error(exc: Exception) -> bool:
    """Return True if the exception represents a transient/retryable error."""
    if isinstance(exc, UnavailableError):
        return True
    error_str = str(exc).lower()
    return any(
        indicator in error_str
        for indicator in ["unavailable", "deadline exceeded", "internal", "timeout", "503", "500"]
    )


def _is_invalid_token_error(exc: Exception) -> bool:
    """Return True if the error indicates the registration token is dead."""
    if isinstance(exc, (InvalidArgumentError, NotFoundError)):
        return True
    error_str = str(exc).lower()
    return any(
        indicator in error_str
        for indicator in ["unregistered", "not-registered", "invalid-registration"]
    )


def _string_data(payload: PushPayload) -> dict[str, str]:
    # FCM data values must be strings
    data = {k: str(v) for k, v in (payload.data or {}).items()}
    if payload.url:
        data.setdefault("url", payload.url)
    return data


def _platform_configs(
    payload: PushPayload,
    sound_enabled: bool,
) -> tuple[messaging.WebpushConfig, messaging.AndroidConfig, messaging.APNSConfig]:
    webpush = messaging.WebpushConfig(
        headers={"Urgency": "high"},
        notification=messaging.WebpushNotification(
            title=payload.title,
            body=payload.body,
            icon=NOTIFICATION_ICON,
            tag=payload.tag,
            silent=not sound_enabled,
            require_interaction=payload.require_interaction,
        ),
        fcm_options=messaging.WebpushFCMOptions(link=payload.url) if payload.url else None,
    )
    android = messaging.AndroidConfig(
        priority="high",
        notification=messaging.AndroidNotification(
            tag=payload.tag,
            sound="default" if sound_enabled else None,
            channel_id="washpro_jobs",
        ),
    )
    apns = messaging.APNSConfig(
        headers={"apns-priority": "10"},
        payload=messaging.APNSPayload(
            aps=messaging.Aps(sound="default" if sound_enabled else None)
        ),
    )
    return webpush, android, apns


def _build_message(
    token: str,
    payload: PushPayload,
    sound_enabled: bool = True,
) -> messaging.Message:
    webpush, android, apns = _platform_configs(payload, sound_enabled)
    return messaging.Message(
        token=token,
        notification=messaging.Notification(title=payload.title, body=payload.body),
        data=_string_data(payload),
        webpush=webpush,
        android=android,
        apns=apns,
    )


async def _send_with_retry(msg: messaging.Message) -> SendResult:
    """Send a single message with retry logic for transient errors.

    The blocking Firebase call runs in a worker thread so the event loop
    stays free.
    """
    _ensure_firebase_initialised()

    last_exception: Exception | None = None

    for attempt in range(1, MAX_RETRIES + 1):
        try:
            message_id: str = await asyncio.to_thread(messaging.send, msg)
            return SendResult(success=True, message_id=message_id)
        except Exception as exc:
            last_exception = exc

            if _is_invalid_token_error(exc):
                logger.warning("Invalid FCM token detected: %s", exc)
                return SendResult(
                    success=False,
                    error=f"Invalid token: {exc}",
                    invalid_token=True,
                )

            if _is_transient_error(exc) and attempt < MAX_RETRIES:
                delay = RETRY_BASE_DELAY_SECONDS * (2 ** (attempt - 1))
                logger.warning(
                    "Transient FCM error (attempt %d/%d), retrying in %.1fs: %s",
                    attempt,
                    MAX_RETRIES,
                    delay,
                    exc,
                )
                await asyncio.sleep(delay)
                continue

            logger.error("FCM send failed after %d attempts: %s", attempt, exc)
            return SendResult(success=False, error=str(exc))

    return SendResult(
        success=False,
        error=f"Failed after {MAX_RETRIES} retries: {last_exception}",
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

async def send_notification(
    device_token: str,
    payload: PushPayload,
    sound_enabled: bool = True,
) -> SendResult:
    """Send a push notification to a single registration token."""
    logger.info("Sending push notification: title=%r, tag=%s", payload.title, payload.tag)
    return await _send_with_retry(_build_message(device_token, payload, sound_enabled))


async def send_to_multiple(
    device_tokens: list[str],
    payload: PushPayload,
    sound_enabled: bool = True,
) -> BatchSendResult:
    """Send the same notification to many tokens.

    Firebase multicast is limited to 500 tokens per call, so larger lists
    are batched.  Invalid tokens are collected for the caller to delete.
    """
    if not device_tokens:
        logger.warning("send_to_multiple called with empty token list")
        return BatchSendResult()

    logger.info(
        "Sending push notification to %d devices: title=%r",
        len(device_tokens),
        payload.title,
    )

    _ensure_firebase_initialised()
    webpush, android, apns = _platform_configs(payload, sound_enabled)
    batch_result = BatchSendResult()

    for batch_start in range(0, len(device_tokens), FCM_BATCH_LIMIT):
        batch_tokens = device_tokens[batch_start : batch_start + FCM_BATCH_LIMIT]
        multicast = messaging.MulticastMessage(
            tokens=batch_tokens,
            notification=messaging.Notification(title=payload.title, body=payload.body),
            data=_string_data(payload),
            webpush=webpush,
            android=android,
            apns=apns,
        )

        try:
            response: messaging.BatchResponse = await asyncio.to_thread(
                messaging.send_each_for_multicast, multicast
            )
        except Exception as exc:
            logger.error("Batch send failed for %d tokens: %s", len(batch_tokens), exc)
            batch_result.failure_count += len(batch_tokens)
            batch_result.results.extend(
                SendResult(success=False, error=str(exc)) for _ in batch_tokens
            )
            continue

        for idx, send_response in enumerate(response.responses):
            if send_response.success:
                batch_result.success_count += 1
                batch_result.results.append(
                    SendResult(success=True, message_id=send_response.message_id)
                )
                continue

            batch_result.failure_count += 1
            error = send_response.exception
            is_invalid = _is_invalid_token_error(error) if error else False
            if is_invalid:
                batch_result.invalid_tokens.append(batch_tokens[idx])
            batch_result.results.append(
                SendResult(
                    success=False,
                    error=str(error) if error else "Unknown error",
                    invalid_token=is_invalid,
                )
            )

    if batch_result.invalid_tokens:
        logger.warning("Batch send found %d invalid tokens", len(batch_result.invalid_tokens))

    logger.info(
        "Batch send complete: %d success, %d failures",
        batch_result.success_count,
        batch_result.failure_count,
    )
    return batch_result
