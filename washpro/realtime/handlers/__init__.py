"""
WashPro Real-time Handlers
==========================

Socket.IO event handlers on the default namespace:
  - subscribe / unsubscribe -- channel rooms (subscriptionHandler)
  - location_update         -- cleaner GPS stream (locationHandler)

Importing this module registers all event handlers with the shared
Socket.IO server instance.
"""

from __future__ import annotations

from . import locationHandler, subscriptionHandler

__all__ = [
    "locationHandler",
    "subscriptionHandler",
]
