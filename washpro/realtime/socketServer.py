"""
WebSocket Server
================

Socket.IO server pushing live job and cleaner updates to the web app:

  - ``job_update``      whenever a job changes state
  - ``cleaner_update``  whenever a cleaner's status or position changes

Architecture:
  - python-socketio AsyncServer mounted as ASGI middleware on FastAPI
  - Redis adapter so broadcasts reach clients on every app instance
  - Optional JWT authentication on connect: staff and logged-in customers
    send ``auth: { token: "<jwt>" }``; the public tracking page connects
    anonymously and may only follow individual jobs
  - Room-based routing:
      job_{job_id}, customer_{customer_id}, cleaner_{cleaner_id},
      company_{company_id}, plus the personal room {role}_{user_id}

Connection lifecycle:
  1. Client connects (with or without a token)
  2. Authenticated users join their personal room
  3. Client sends ``subscribe`` / ``unsubscribe`` for channels
     (see ``handlers.jobHandler``)
  4. On disconnect the registry entry is dropped
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, Optional

import jwt
import socketio
from redis.asyncio import Redis

from washpro.core.config import settings

logger = logging.getLogger(__name__)

JOB_UPDATE_EVENT = "job_update"
CLEANER_UPDATE_EVENT = "cleaner_update"

CHANNELS = ("job", "customer", "cleaner", "company")


# ---------------------------------------------------------------------------
# Socket.IO server instance
# ---------------------------------------------------------------------------

# Client manager backed by Redis for horizontal scaling
client_manager = socketio.AsyncRedisManager(
    settings.redis_url,
    write_only=False,
)

sio = socketio.AsyncServer(
    async_mode="asgi",
    cors_allowed_origins=settings.ws_cors_allowed_origins,
    client_manager=client_manager,
    logger=False,
    engineio_logger=False,
    ping_timeout=settings.ws_ping_timeout,
    ping_interval=settings.ws_ping_interval,
    max_http_buffer_size=1_000_000,  # 1 MB
)


# ---------------------------------------------------------------------------
# Connection registry: maps user_id -> set of sids (one user, many devices)
# Also maps sid -> user metadata for quick lookup.
# ---------------------------------------------------------------------------

_user_sids: dict[str, set[str]] = {}
_sid_meta: dict[str, dict[str, Any]] = {}


def get_user_sids(user_id: str) -> set[str]:
    """Return all session IDs for a given user (may span multiple devices)."""
    return _user_sids.get(user_id, set())


def get_sid_meta(sid: str) -> dict[str, Any] | None:
    """Return the metadata dict for a given session ID."""
    return _sid_meta.get(sid)


def _register_connection(sid: str, user_id: Optional[str], meta: dict[str, Any]) -> None:
    if user_id:
        _user_sids.setdefault(user_id, set()).add(sid)
    _sid_meta[sid] = {**meta, "user_id": user_id}


def _unregister_connection(sid: str) -> str | None:
    """Remove a connection from the registry. Returns the user_id or None."""
    meta = _sid_meta.pop(sid, None)
    if meta is None:
        return None
    user_id: Optional[str] = meta.get("user_id")
    if not user_id:
        return None
    user_set = _user_sids.get(user_id)
    if user_set:
        user_set.discard(sid)
        if not user_set:
            del _user_sids[user_id]
    return user_id


# ---------------------------------------------------------------------------
# Rooms
# ---------------------------------------------------------------------------

def channel_room(channel: str, entity_id: object) -> str:
    return f"{channel}_{entity_id}"


# ---------------------------------------------------------------------------
# JWT authentication helper
# ---------------------------------------------------------------------------

def _authenticate_token(token: str | None) -> dict[str, Any] | None:
    """Validate an access JWT and return the decoded payload, or None.

    Expected payload fields:
      - sub: str  (user or customer id as UUID string)
      - role: str (customer | cleaner | company_admin | admin)
      - type: "access"
    """
    if not token:
        return None
    try:
        payload: dict[str, Any] = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
        )
    except jwt.ExpiredSignatureError:
        logger.warning("JWT token expired")
        return None
    except jwt.InvalidTokenError as exc:
        logger.warning("Invalid JWT token: %s", exc)
        return None

    if "sub" not in payload or "role" not in payload:
        logger.warning("JWT missing required claims (sub, role)")
        return None
    if payload.get("type") != "access":
        logger.warning("Refresh token used for socket connection")
        return None
    return payload


# ---------------------------------------------------------------------------
# Connect / disconnect
# ---------------------------------------------------------------------------

@sio.event
async def connect(sid: str, environ: dict[str, Any], auth: dict[str, Any] | None = None) -> bool:
    """Register the connection.

    A token is optional; an invalid token is rejected rather than silently
    downgraded to an anonymous connection.
    """
    token = (auth or {}).get("token")
    if not token:
        _register_connection(sid, None, {"role": None})
        logger.info("Connected anonymously: sid=%s", sid)
        return True

    payload = _authenticate_token(token)
    if payload is None:
        logger.info("Connection rejected for sid=%s -- authentication failed", sid)
        return False

    user_id: str = payload["sub"]
    role: str = payload["role"]
    _register_connection(sid, user_id, {"role": role})

    personal_room = f"{role}_{user_id}"
    await sio.enter_room(sid, personal_room)

    logger.info(
        "Connected: sid=%s user_id=%s role=%s room=%s",
        sid, user_id, role, personal_room,
    )
    return True


@sio.event
async def disconnect(sid: str) -> None:
    user_id = _unregister_connection(sid)
    if user_id:
        logger.info("Disconnected: sid=%s user_id=%s", sid, user_id)
    else:
        logger.info("Disconnected: sid=%s (anonymous)", sid)


# ---------------------------------------------------------------------------
# High-level broadcast helpers (used by handlers and events)
# ---------------------------------------------------------------------------

async def broadcast_job_update(
    job: dict[str, Any],
    *,
    job_id: uuid.UUID,
    customer_id: Optional[uuid.UUID] = None,
    cleaner_id: Optional[uuid.UUID] = None,
    company_id: Optional[uuid.UUID] = None,
) -> list[str]:
    """Send ``job_update`` to every room following the job.

    A client subscribed to several of the rooms receives the event once.

    Returns:
        The rooms the event was addressed to.
    """
    rooms = [channel_room("job", job_id)]
    if customer_id is not None:
        rooms.append(channel_room("customer", customer_id))
    if cleaner_id is not None:
        rooms.append(channel_room("cleaner", cleaner_id))
    if company_id is not None:
        rooms.append(channel_room("company", company_id))

    await sio.emit(JOB_UPDATE_EVENT, {"type": JOB_UPDATE_EVENT, "job": job}, room=rooms)
    logger.debug("Broadcast %s for job=%s to %s", JOB_UPDATE_EVENT, job_id, rooms)
    return rooms


async def broadcast_cleaner_update(
    data: dict[str, Any],
    *,
    cleaner_id: uuid.UUID,
    company_id: uuid.UUID,
    skip_sid: str | None = None,
) -> list[str]:
    """Send ``cleaner_update`` to the cleaner's and the company's rooms."""
    rooms = [channel_room("cleaner", cleaner_id), channel_room("company", company_id)]
    await sio.emit(
        CLEANER_UPDATE_EVENT,
        {"type": CLEANER_UPDATE_EVENT, **data},
        room=rooms,
        skip_sid=skip_sid,
    )
    logger.debug("Broadcast %s for cleaner=%s", CLEANER_UPDATE_EVENT, cleaner_id)
    return rooms


async def send_to_user(
    user_id: str,
    event: str,
    data: dict[str, Any],
    *,
    role: str | None = None,
) -> None:
    """Send an event to a specific user across all their connected sessions.

    Uses the personal room (``<role>_<user_id>``) if the role is known,
    otherwise falls back to sending to each known sid.
    """
    if role:
        personal_room = f"{role}_{user_id}"
        await sio.emit(event, data, room=personal_room)
        logger.debug("Sent %s to room=%s", event, personal_room)
        return

    sids = get_user_sids(user_id)
    for sid in sids:
        await sio.emit(event, data, to=sid)
    if sids:
        logger.debug("Sent %s to user=%s via %d sids", event, user_id, len(sids))


# ---------------------------------------------------------------------------
# Redis helper for direct key/value operations (location throttle)
# ---------------------------------------------------------------------------

_redis_client: Redis | None = None


async def get_redis() -> Redis:
    """Return a shared async Redis client, creating it lazily."""
    global _redis_client
    if _redis_client is None:
        _redis_client = Redis.from_url(
            settings.redis_url,
            decode_responses=True,
        )
    return _redis_client


async def close_redis() -> None:
    global _redis_client
    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None


# ---------------------------------------------------------------------------
# ASGI app for mounting onto FastAPI
# ---------------------------------------------------------------------------

socket_app = socketio.ASGIApp(
    socketio_server=sio,
    socketio_path="/ws/socket.io",
)
