"""WashPro API -- Main Application Entry Point

Creates the FastAPI application, configures CORS middleware, registers
all API route modules under the /api prefix, mounts the Socket.IO ASGI
application for real-time updates and runs the background jobs.

Run with::

    uvicorn washpro.main:app --host 0.0.0.0 --port 8000 --reload
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from washpro.core.config import settings

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Lifespan: startup / shutdown hooks
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan context manager.

    Startup:
      - Import realtime handlers to register Socket.IO event listeners.
      - Start the background job scheduler when enabled.

    Shutdown:
      - Stop the scheduler and close the shared Redis client.
    """
    # Importing handlers is sufficient to register all Socket.IO events
    from washpro.realtime import handlers  # noqa: F401
    from washpro.jobs.scheduler import start_scheduler, stop_scheduler

    if settings.background_jobs_enabled:
        await start_scheduler()

    yield

    await stop_scheduler()

    from washpro.realtime.socketServer import close_redis

    try:
        await close_redis()
    except Exception:
        logger.warning("Failed to close Redis cleanly", exc_info=True)


# ---------------------------------------------------------------------------
# Application instance
# ---------------------------------------------------------------------------

app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    lifespan=lifespan,
)


# ---------------------------------------------------------------------------
# CORS middleware
# ---------------------------------------------------------------------------

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Health check
# ---------------------------------------------------------------------------

@app.get("/health", tags=["Health"])
async def health():
    """Lightweight health check for load balancers and readiness probes."""
    return {"status": "ok", "version": settings.app_version}


# ---------------------------------------------------------------------------
# Register API route modules
# ---------------------------------------------------------------------------
# Each router defines its own prefix (e.g. /cleaner, /company) and tags.
# The payments router has none: its paths (/create-payment-intent,
# /stripe-webhook) sit directly under /api.
# ---------------------------------------------------------------------------

from washpro.api.routes import (  # noqa: E402
    admin,
    auth,
    cleaner,
    companies,
    company,
    complaints,
    customer,
    jobs,
    payments,
    push,
)

_prefix = settings.api_prefix

app.include_router(auth.router, prefix=_prefix)
app.include_router(companies.router, prefix=_prefix)
app.include_router(customer.router, prefix=_prefix)
app.include_router(payments.router, prefix=_prefix)
app.include_router(jobs.router, prefix=_prefix)
app.include_router(complaints.router, prefix=_prefix)
app.include_router(cleaner.router, prefix=_prefix)
app.include_router(company.router, prefix=_prefix)
app.include_router(admin.router, prefix=_prefix)
app.include_router(push.router, prefix=_prefix)


# ---------------------------------------------------------------------------
# Mount Socket.IO ASGI application
# ---------------------------------------------------------------------------

from washpro.realtime.socketServer import socket_app  # noqa: E402

app.mount("/ws", socket_app)
