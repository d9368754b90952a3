"""FastAPI application entry point — wires everything together.

Usage:
    python -m src.main

Composition root: builds the store adapter, WhatsApp channel, notifier and
registry, and ties the registry's change subscription to the app lifespan.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
import uvicorn
from fastapi import FastAPI

from src.admin.events import emit, start_event_system, stop_event_system, subscribe, unsubscribe
from src.admin.observer import log_on_event
from src.admin.web import router as admin_router
from src.channels.whatsapp import WhatsAppChannel
from src.config import settings
from src.db.engine import async_session_factory, db_lifespan, redis_client
from src.notifications.notifier import StatusNotifier
from src.registry.registry import AppointmentRegistry
from src.schemas.events import EventType, SystemEvent
from src.store.adapter import AppointmentStore
from src.store.changes import ChangeFeed

# ── Logging setup ────────────────────────────────────────────────────

logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
    stream=sys.stdout,
)
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.dev.ConsoleRenderer(),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
)

logger = logging.getLogger(__name__)


def build_registry() -> AppointmentRegistry:
    """Assemble the pipeline: store → registry → notifier → channel."""
    store = AppointmentStore(
        async_session_factory,
        ChangeFeed(redis_client, settings.db.changes_channel),
    )
    channel = WhatsAppChannel()
    if not channel.is_configured:
        logger.warning("WhatsApp credentials not set — patient notifications disabled")
    notifier = StatusNotifier(channel, doctor_name=settings.clinic.doctor_name)
    return AppointmentRegistry(
        store,
        notifier,
        upcoming_window_days=settings.upcoming_window_days,
    )


# ── FastAPI lifespan ─────────────────────────────────────────────────


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application startup and shutdown lifecycle."""
    logger.info("Starting appointment desk (env=%s)", settings.environment)

    # 1. Database + Redis
    async with db_lifespan():
        logger.info("Database initialized")

        # 2. Event system with the log observer
        subscribe(log_on_event)
        await start_event_system()
        try:
            await emit(SystemEvent(event_type=EventType.SYSTEM_STARTUP, source_module="main"))

            # 3. Registry: change subscription + initial snapshot
            registry = build_registry()
            async with registry:
                app.state.registry = registry
                logger.info("Registry loaded %d appointments", len(registry.snapshot))
                try:
                    yield
                finally:
                    logger.info("Shutting down appointment desk...")
                    await emit(SystemEvent(event_type=EventType.SYSTEM_SHUTDOWN, source_module="main"))
            logger.info("Change subscription released")
        finally:
            await stop_event_system()
            unsubscribe(log_on_event)

    logger.info("Shutdown complete")


# ── FastAPI app ──────────────────────────────────────────────────────

app = FastAPI(
    title="Clinic Appointment Desk API",
    description="Appointment dashboard backend with WhatsApp status notifications",
    version="0.1.0",
    lifespan=lifespan,
)
app.include_router(admin_router)


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {
        "status": "ok",
        "environment": settings.environment,
        "clinic": settings.clinic.clinic_name,
    }


# ── Entry point ──────────────────────────────────────────────────────

if __name__ == "__main__":
    uvicorn.run(
        "src.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.environment == "development",
        log_level=settings.log_level.lower(),
    )
