"""Domain enums used across SQLAlchemy models and Pydantic schemas.

All enums use str mixin for JSON serialization.
"""

from __future__ import annotations

from enum import Enum


class AppointmentStatus(str, Enum):
    """Appointment lifecycle states.

    Any status may move to any other; there is no enforced transition graph.
    """

    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


# Destination states that trigger a patient notification.
NOTIFIABLE_STATUSES: frozenset[AppointmentStatus] = frozenset({
    AppointmentStatus.CONFIRMED,
    AppointmentStatus.COMPLETED,
    AppointmentStatus.CANCELLED,
})

# Statuses shown in the "upcoming" view.
UPCOMING_STATUSES: frozenset[AppointmentStatus] = frozenset({
    AppointmentStatus.PENDING,
    AppointmentStatus.CONFIRMED,
})


class ChangeType(str, Enum):
    """Kinds of row-level change announced on the appointment change feed."""

    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"
