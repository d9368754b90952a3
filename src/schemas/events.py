"""SystemEvent schema — the event type that flows through the observability bus.

The registry, the notifier and the application lifespan emit SystemEvents.
The log observer consumes these events asynchronously. Nothing is persisted.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class EventType(str, Enum):
    """All event types emitted by the system."""

    # Appointments
    APPOINTMENT_STATUS_CHANGED = "appointment.status_changed"
    APPOINTMENT_UPDATE_FAILED = "appointment.update_failed"
    APPOINTMENTS_REFRESH_FAILED = "appointments.refresh_failed"

    # Notifications
    NOTIFICATION_SENT = "notification.sent"
    NOTIFICATION_FAILED = "notification.failed"
    NOTIFICATION_SKIPPED = "notification.skipped"

    # System
    SYSTEM_STARTUP = "system.startup"
    SYSTEM_SHUTDOWN = "system.shutdown"


class SystemEvent(BaseModel):
    """Core event carried by the in-process pub/sub.

    Immutable once created.
    """

    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    event_type: EventType
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    # Context (optional — not every event concerns an appointment)
    appointment_id: uuid.UUID | None = None

    # Flexible payload
    data: dict[str, Any] = Field(default_factory=dict)

    # Metadata
    source_module: str | None = Field(default=None, description="Module that emitted this event")

    model_config = {"frozen": True}
