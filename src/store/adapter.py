"""Appointment store adapter — fetch, single-field update, and change subscription.

Thin wrapper over the ``appointments`` table and the Redis change feed.
Holds no business logic: ordering, the status column and change
announcements are all it knows about.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any

from pydantic import ValidationError
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError

from src.models.appointment import Appointment
from src.models.enums import AppointmentStatus, ChangeType
from src.schemas.appointment import AppointmentRecord
from src.store.changes import ChangeFeed, ChangeHandler, Subscription
from src.store.errors import AppointmentNotFound, StoreError

logger = logging.getLogger(__name__)

# asyncpg raises connection refusals and connect timeouts unwrapped.
_STORE_FAILURES = (SQLAlchemyError, OSError, TimeoutError)


class AppointmentStore:
    """Record store capability: query-all-ordered, update-by-id, subscribe-to-changes.

    Args:
        session_factory: ``async_sessionmaker`` producing AsyncSession objects.
        changes: Change feed used to announce writes and to subscribe.
    """

    def __init__(self, session_factory: Any, changes: ChangeFeed) -> None:
        self._session_factory = session_factory
        self._changes = changes

    async def fetch_all(self) -> list[AppointmentRecord]:
        """Return every appointment, newest-created first.

        Raises:
            StoreError: the query failed or returned rows that do not parse.
        """
        try:
            async with self._session_factory() as db:
                result = await db.execute(
                    select(Appointment).order_by(Appointment.created_at.desc())
                )
                rows = list(result.scalars().all())
        except _STORE_FAILURES as exc:
            logger.exception("Failed to fetch appointments")
            raise StoreError("Failed to fetch appointments") from exc

        try:
            return [AppointmentRecord.model_validate(row) for row in rows]
        except ValidationError as exc:
            logger.exception("Appointment rows failed validation")
            raise StoreError("Appointment rows failed validation") from exc

    async def update_status(self, appointment_id: uuid.UUID, new_status: AppointmentStatus) -> None:
        """Persist a new status for exactly one appointment.

        Raises:
            AppointmentNotFound: no row has this identifier.
            StoreError: the write failed.
        """
        try:
            async with self._session_factory() as db:
                result = await db.execute(
                    update(Appointment)
                    .where(Appointment.id == appointment_id)
                    .values(status=new_status.value)
                    .returning(Appointment.id)
                )
                if result.scalar_one_or_none() is None:
                    await db.rollback()
                    raise AppointmentNotFound(appointment_id)
                await db.commit()
        except _STORE_FAILURES as exc:
            logger.exception("Failed to update appointment %s", appointment_id)
            raise StoreError(f"Failed to update appointment {appointment_id}") from exc

        logger.info("Appointment %s status set to %s", appointment_id, new_status.value)
        await self._changes.publish(ChangeType.UPDATE, appointment_id)

    async def subscribe_to_changes(self, on_change: ChangeHandler) -> Subscription:
        """Invoke ``on_change()`` for every insert/update/delete on the table.

        Raises:
            StoreError: the subscription could not be established.
        """
        return await self._changes.subscribe(on_change)
