"""Pydantic schemas for appointment records and pipeline results.

AppointmentRecord is the process-local copy of a row held in the registry
snapshot. It is deliberately mutable: the registry patches ``status`` in place
after a successful store write.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from src.models.enums import AppointmentStatus


class AppointmentRecord(BaseModel):
    """Snapshot entry for a single appointment."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    full_name: str
    phone: str | None = None
    email: str | None = None
    preferred_date: date | None = None
    location: str | None = None
    notes: str | None = None
    status: AppointmentStatus = AppointmentStatus.PENDING
    created_at: datetime


class NotificationResult(BaseModel):
    """Outcome of a single delivery attempt. Never persisted."""

    model_config = ConfigDict(frozen=True)

    delivered: bool
    detail: Any = None  # provider payload on success, error description otherwise


class StatusUpdateResult(BaseModel):
    """Result of Registry.update_status.

    The write already committed when this is returned; ``notification`` is
    informational only and is None when no notification was attempted or
    when it was scheduled in the background.
    """

    appointment_id: uuid.UUID
    status: AppointmentStatus
    notification: NotificationResult | None = None


class AppointmentCounts(BaseModel):
    """Aggregate counts per status over the snapshot."""

    total: int = 0
    pending: int = 0
    confirmed: int = 0
    completed: int = 0
    cancelled: int = 0


class DashboardView(BaseModel):
    """Everything the dashboard reads from the registry in one payload."""

    appointments: list[dict[str, Any]] = Field(default_factory=list)
    counts: AppointmentCounts = Field(default_factory=AppointmentCounts)
    upcoming: list[dict[str, Any]] = Field(default_factory=list)
    loading: bool = False
    refreshing: bool = False
    error: str | None = None
