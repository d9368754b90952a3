"""Appointment store adapter — PostgreSQL records plus a Redis change feed."""

from __future__ import annotations

from src.store.adapter import AppointmentStore
from src.store.changes import ChangeFeed, ChangeHandler, Subscription
from src.store.errors import AppointmentNotFound, StoreError

__all__ = [
    "AppointmentNotFound",
    "AppointmentStore",
    "ChangeFeed",
    "ChangeHandler",
    "StoreError",
    "Subscription",
]
