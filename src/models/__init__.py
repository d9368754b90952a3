"""SQLAlchemy ORM models.

Import all models here so Alembic and Base.metadata.create_all() discover them.
"""

from __future__ import annotations

from src.models.appointment import Appointment
from src.models.base import Base
from src.models.enums import (
    NOTIFIABLE_STATUSES,
    UPCOMING_STATUSES,
    AppointmentStatus,
    ChangeType,
)

__all__ = [
    "NOTIFIABLE_STATUSES",
    "UPCOMING_STATUSES",
    "Appointment",
    "AppointmentStatus",
    "Base",
    "ChangeType",
]
