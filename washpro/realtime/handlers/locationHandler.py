"""
Location Handler
================

On-duty cleaners stream their GPS position over the socket::

    location_update { "lat": <float>, "lng": <float> }

Each accepted update is stored on the cleaner row (it also keeps the shift
alive, see ``jobs.shiftTimeout``) and relayed to the company dashboard as a
``cleaner_update``.

Updates are throttled to one per ``THROTTLE_INTERVAL_SECONDS`` per cleaner
with a short-lived Redis key, so several app instances share the limit.
The REST endpoint ``POST /api/cleaner/update-location`` is not throttled.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any

from washpro.api.deps import async_session_factory
from washpro.events import jobEvents
from washpro.models import CleanerStatus, UserRole
from washpro.services import cleanerService
from washpro.services.geoService import is_valid_coordinate

from ..socketServer import get_redis, get_sid_meta, sio

logger = logging.getLogger(__name__)

# Minimum interval between location updates per cleaner (seconds)
THROTTLE_INTERVAL_SECONDS: int = 3

_THROTTLE_PREFIX: str = "washpro:loc:throttle:"


# ---------------------------------------------------------------------------
# Throttling
# ---------------------------------------------------------------------------

async def _is_throttled(user_id: str) -> bool:
    redis = await get_redis()
    return bool(await redis.exists(f"{_THROTTLE_PREFIX}{user_id}"))


async def _set_throttle(user_id: str) -> None:
    redis = await get_redis()
    await redis.set(f"{_THROTTLE_PREFIX}{user_id}", "1", ex=THROTTLE_INTERVAL_SECONDS)


# ---------------------------------------------------------------------------
# Inbound event handler
# ---------------------------------------------------------------------------

@sio.on("location_update")
async def handle_location_update(sid: str, data: dict[str, Any]) -> dict[str, Any]:
    """Store a cleaner's position and relay it to their company.

    Validation:
      - caller must be an authenticated cleaner
      - lat/lng must be numbers inside the valid range
      - the cleaner must be on duty or busy
      - at most one update per THROTTLE_INTERVAL_SECONDS
    """
    meta = get_sid_meta(sid)
    if not meta or not meta.get("user_id"):
        return {"ok": False, "error": "Not authenticated"}
    if meta.get("role") != UserRole.CLEANER.value:
        return {"ok": False, "error": "Only cleaners can send location updates"}
    user_id: str = meta["user_id"]

    try:
        lat = float(data.get("lat"))
        lng = float(data.get("lng"))
    except (AttributeError, TypeError, ValueError):
        return {"ok": False, "error": "lat and lng must be valid numbers"}
    if not is_valid_coordinate(lat, lng):
        return {"ok": False, "error": "Invalid coordinates"}

    if await _is_throttled(user_id):
        return {
            "ok": False,
            "error": "Rate limited",
            "retry_after_seconds": THROTTLE_INTERVAL_SECONDS,
        }

    async with async_session_factory() as db:
        try:
            cleaner = await cleanerService.get_cleaner_by_user(db, uuid.UUID(user_id))
        except cleanerService.CleanerNotFoundError:
            return {"ok": False, "error": "Cleaner profile not found"}
        if cleaner.status == CleanerStatus.OFF_DUTY:
            return {"ok": False, "error": "Start a shift before sharing your location"}

        await cleanerService.update_location(db, cleaner, lat, lng)
        await db.commit()

    await _set_throttle(user_id)
    # The sender does not need their own position echoed back
    await jobEvents.publish_cleaner_update(cleaner, skip_sid=sid)
    return {"ok": True}
