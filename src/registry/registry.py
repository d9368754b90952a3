"""Appointment registry — the process-local snapshot and its reconciliation.

The registry is the only writer of the snapshot. It is replaced wholesale by
``refresh()`` (initial load, manual refresh, and every external change event)
and patched in place by ``update_status()`` after a successful store write.

Overlapping refreshes and updates are not ordered: whichever fetch completes
last wins. A refetch that started before a write became visible can briefly
revert an optimistic patch; the change event produced by that same write
triggers another refresh that reconverges.

Usage:
    registry = AppointmentRegistry(store, notifier)
    async with registry:          # subscribe + initial refresh
        await registry.update_status(appointment_id, AppointmentStatus.CONFIRMED)
        registry.counts()
    # subscription released here
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import datetime, timedelta
from types import TracebackType
from typing import Protocol

from src.admin.events import emit
from src.models.enums import NOTIFIABLE_STATUSES, UPCOMING_STATUSES, AppointmentStatus
from src.schemas.appointment import (
    AppointmentCounts,
    AppointmentRecord,
    NotificationResult,
    StatusUpdateResult,
)
from src.schemas.events import EventType, SystemEvent
from src.store.changes import ChangeHandler, Subscription
from src.store.errors import StoreError

logger = logging.getLogger(__name__)

FETCH_ERROR_MESSAGE = "Failed to load appointments. Please try again."
UPDATE_ERROR_MESSAGE = "Failed to update status. Please try again."

ALL_STATUSES = "all"


class Store(Protocol):
    async def fetch_all(self) -> list[AppointmentRecord]: ...

    async def update_status(self, appointment_id: uuid.UUID, new_status: AppointmentStatus) -> None: ...

    async def subscribe_to_changes(self, on_change: ChangeHandler) -> Subscription: ...


class Notifier(Protocol):
    async def notify(
        self, appointment: AppointmentRecord, new_status: AppointmentStatus
    ) -> NotificationResult: ...


class AppointmentRegistry:
    """Owned, single-writer container for the appointment snapshot."""

    def __init__(
        self,
        store: Store,
        notifier: Notifier,
        *,
        upcoming_window_days: int = 7,
    ) -> None:
        self._store = store
        self._notifier = notifier
        self._upcoming_window = timedelta(days=upcoming_window_days)

        self._snapshot: list[AppointmentRecord] = []
        self.loading = True
        self.refreshing = False
        self.error: str | None = None

        self._subscription: Subscription | None = None
        self._background: set[asyncio.Task[NotificationResult]] = set()

    # ── Lifecycle ────────────────────────────────────────────────────

    async def open(self) -> None:
        """Subscribe to external changes and load the first snapshot.

        A failed subscription is logged and the registry keeps working
        without live updates; manual refreshes still resync it.
        """
        try:
            self._subscription = await self._store.subscribe_to_changes(self.on_external_change)
        except StoreError:
            logger.warning("Change subscription unavailable, live updates disabled", exc_info=True)
        await self.refresh()

    async def close(self) -> None:
        """Release the change subscription and wait for background notifications."""
        subscription, self._subscription = self._subscription, None
        try:
            if subscription is not None:
                await subscription.unsubscribe()
        finally:
            if self._background:
                await asyncio.gather(*self._background, return_exceptions=True)

    async def __aenter__(self) -> AppointmentRegistry:
        await self.open()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    # ── Reconciliation ───────────────────────────────────────────────

    @property
    def snapshot(self) -> list[AppointmentRecord]:
        """Current records, newest-created first."""
        return list(self._snapshot)

    def get(self, appointment_id: uuid.UUID) -> AppointmentRecord | None:
        for record in self._snapshot:
            if record.id == appointment_id:
                return record
        return None

    async def refresh(self) -> None:
        """Replace the snapshot with a fresh fetch.

        On failure the previous snapshot is kept and ``error`` carries a
        user-facing message. The flags are cleared on every exit path.
        """
        self.refreshing = True
        try:
            records = await self._store.fetch_all()
        except StoreError as exc:
            logger.warning("Appointment refresh failed: %s", exc)
            self.error = FETCH_ERROR_MESSAGE
            await emit(SystemEvent(
                event_type=EventType.APPOINTMENTS_REFRESH_FAILED,
                data={"error": str(exc)},
                source_module="registry",
            ))
        else:
            self._snapshot = list(records)
            self.error = None
            logger.debug("Snapshot replaced with %d appointments", len(records))
        finally:
            self.loading = False
            self.refreshing = False

    async def on_external_change(self) -> None:
        """Change-feed handler: any insert/update/delete triggers a full resync."""
        await self.refresh()

    async def update_status(
        self,
        appointment_id: uuid.UUID,
        new_status: AppointmentStatus | str,
        *,
        await_notification: bool = True,
    ) -> StatusUpdateResult:
        """Commit a status change, patch the snapshot, then notify the patient.

        The notification runs only after the write committed and only for
        records present in the snapshot. Its outcome is reported on the
        result and never affects the write or the patched snapshot. With
        ``await_notification=False`` it runs as a background task instead.

        Raises:
            ValueError: ``new_status`` is not a valid status.
            StoreError: the write failed; the snapshot is unchanged.
        """
        status = AppointmentStatus(new_status)
        current = self.get(appointment_id)
        previous = current.model_copy() if current is not None else None

        try:
            await self._store.update_status(appointment_id, status)
        except StoreError as exc:
            logger.warning("Status update for %s failed: %s", appointment_id, exc)
            await emit(SystemEvent(
                event_type=EventType.APPOINTMENT_UPDATE_FAILED,
                appointment_id=appointment_id,
                data={"status": status.value, "error": str(exc)},
                source_module="registry",
            ))
            raise

        # Re-resolve: a refresh may have swapped the snapshot during the write.
        patched = self.get(appointment_id)
        if patched is not None:
            patched.status = status

        await emit(SystemEvent(
            event_type=EventType.APPOINTMENT_STATUS_CHANGED,
            appointment_id=appointment_id,
            data={
                "from": previous.status.value if previous is not None else None,
                "to": status.value,
            },
            source_module="registry",
        ))

        result = StatusUpdateResult(appointment_id=appointment_id, status=status)
        if status not in NOTIFIABLE_STATUSES:
            return result
        if previous is None:
            logger.info("Appointment %s not in snapshot, notification skipped", appointment_id)
            return result

        if await_notification:
            result.notification = await self._notify(previous, status)
        else:
            task = asyncio.create_task(self._notify(previous, status))
            self._background.add(task)
            task.add_done_callback(self._background.discard)
        return result

    async def _notify(self, appointment: AppointmentRecord, status: AppointmentStatus) -> NotificationResult:
        try:
            return await self._notifier.notify(appointment, status)
        except Exception as exc:
            logger.exception("Notifier raised for appointment %s", appointment.id)
            return NotificationResult(delivered=False, detail=str(exc) or type(exc).__name__)

    # ── Derived views ────────────────────────────────────────────────

    def filter_by_status(self, status: AppointmentStatus | str = ALL_STATUSES) -> list[AppointmentRecord]:
        """Records with ``status``, or all records for ``"all"``."""
        if status == ALL_STATUSES:
            return list(self._snapshot)
        wanted = AppointmentStatus(status)
        return [record for record in self._snapshot if record.status == wanted]

    def counts(self) -> AppointmentCounts:
        """Total plus one count per status."""
        per_status = {s.value: 0 for s in AppointmentStatus}
        for record in self._snapshot:
            per_status[record.status.value] += 1
        return AppointmentCounts(total=len(self._snapshot), **per_status)

    def upcoming(self, now: datetime | None = None) -> list[AppointmentRecord]:
        """Pending/confirmed records dated within [today, today + window], inclusive.

        Kept in snapshot order (newest-created first), not sorted by date.
        """
        now = now or datetime.now().astimezone()
        start = now.date()
        end = (now + self._upcoming_window).date()
        return [
            record
            for record in self._snapshot
            if record.preferred_date is not None
            and start <= record.preferred_date <= end
            and record.status in UPCOMING_STATUSES
        ]
