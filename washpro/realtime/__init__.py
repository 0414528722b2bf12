"""
WashPro Real-time Module
========================

WebSocket server and event handlers for live job and cleaner updates.

Usage in FastAPI app startup::

    from washpro.realtime import socket_app
    app.mount("/ws", socket_app)

The ``handlers`` sub-package registers all Socket.IO event handlers
as a side-effect of import, so simply importing it is sufficient to
activate all real-time event processing.
"""

from __future__ import annotations

from .socketServer import (
    broadcast_cleaner_update,
    broadcast_job_update,
    close_redis,
    get_redis,
    send_to_user,
    sio,
    socket_app,
)

# Importing handlers registers the Socket.IO event listeners
from . import handlers  # noqa: F401

__all__ = [
    "sio",
    "socket_app",
    "broadcast_job_update",
    "broadcast_cleaner_update",
    "send_to_user",
    "get_redis",
    "close_redis",
    "handlers",
]
