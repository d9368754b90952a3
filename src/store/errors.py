"""Record store error taxonomy.

Store errors are recoverable: callers keep their previous state and surface
a retry-capable message to the operator.
"""

from __future__ import annotations


class StoreError(Exception):
    """A fetch, write or subscription against the record store failed."""


class AppointmentNotFound(StoreError):
    """No appointment exists with the requested identifier."""

    def __init__(self, appointment_id: object) -> None:
        self.appointment_id = appointment_id
        super().__init__(f"Appointment {appointment_id} not found")
