"""Tests for the observability bus and the log observer."""

from __future__ import annotations

import logging
import uuid

import pytest
from pydantic import ValidationError

from src.admin import events
from src.admin.observer import log_on_event
from src.schemas.events import EventType, SystemEvent


@pytest.fixture(autouse=True)
def _isolated_observers():
    """Isolate the module-level observer list between tests."""
    saved = list(events._observers)
    events._observers.clear()
    yield
    events._observers[:] = saved


class TestEventBus:
    @pytest.mark.asyncio()
    async def test_queued_delivery_in_order(self):
        received: list[EventType] = []

        async def observer(event: SystemEvent) -> None:
            received.append(event.event_type)

        events.subscribe(observer)
        await events.start_event_system()
        assert events.is_running()

        await events.emit(SystemEvent(event_type=EventType.NOTIFICATION_SENT))
        await events.emit(SystemEvent(event_type=EventType.NOTIFICATION_FAILED))
        await events.stop_event_system()

        assert received == [EventType.NOTIFICATION_SENT, EventType.NOTIFICATION_FAILED]
        assert not events.is_running()

    @pytest.mark.asyncio()
    async def test_inline_delivery_when_not_started(self):
        received: list[EventType] = []

        async def observer(event: SystemEvent) -> None:
            received.append(event.event_type)

        events.subscribe(observer)
        await events.emit(SystemEvent(event_type=EventType.APPOINTMENTS_REFRESH_FAILED))

        assert received == [EventType.APPOINTMENTS_REFRESH_FAILED]

    @pytest.mark.asyncio()
    async def test_failing_observer_isolated(self):
        delivered: list[EventType] = []

        async def broken(event: SystemEvent) -> None:
            raise RuntimeError("observer bug")

        async def healthy(event: SystemEvent) -> None:
            delivered.append(event.event_type)

        events.subscribe(broken)
        events.subscribe(healthy)

        await events.start_event_system()
        await events.emit(SystemEvent(event_type=EventType.APPOINTMENT_STATUS_CHANGED))
        await events.emit(SystemEvent(event_type=EventType.APPOINTMENT_STATUS_CHANGED))
        await events.stop_event_system()

        assert delivered == [EventType.APPOINTMENT_STATUS_CHANGED] * 2

    @pytest.mark.asyncio()
    async def test_subscribe_twice_delivers_once(self):
        delivered: list[EventType] = []

        async def handler(event: SystemEvent) -> None:
            delivered.append(event.event_type)

        events.subscribe(handler)
        events.subscribe(handler)
        await events.emit(SystemEvent(event_type=EventType.SYSTEM_STARTUP))

        assert delivered == [EventType.SYSTEM_STARTUP]

    @pytest.mark.asyncio()
    async def test_unsubscribe(self):
        delivered: list[EventType] = []

        async def handler(event: SystemEvent) -> None:
            delivered.append(event.event_type)

        events.subscribe(handler)
        events.unsubscribe(handler)
        events.unsubscribe(handler)

        await events.start_event_system()
        await events.emit(SystemEvent(event_type=EventType.SYSTEM_STARTUP))
        await events.stop_event_system()

        assert delivered == []

    @pytest.mark.asyncio()
    async def test_stop_without_start(self):
        await events.stop_event_system()
        assert not events.is_running()


class TestLogObserver:
    @pytest.mark.asyncio()
    async def test_failure_logged_as_warning(self, caplog):
        appointment_id = uuid.uuid4()
        with caplog.at_level(logging.INFO, logger="src.admin.observer"):
            await log_on_event(SystemEvent(
                event_type=EventType.NOTIFICATION_FAILED,
                appointment_id=appointment_id,
                data={"detail": "invalid token"},
            ))

        record = caplog.records[-1]
        assert record.levelno == logging.WARNING
        assert "notification.failed" in record.getMessage()
        assert str(appointment_id) in record.getMessage()

    @pytest.mark.asyncio()
    async def test_success_logged_as_info(self, caplog):
        with caplog.at_level(logging.INFO, logger="src.admin.observer"):
            await log_on_event(SystemEvent(event_type=EventType.NOTIFICATION_SENT))

        assert caplog.records[-1].levelno == logging.INFO


class TestSystemEvent:
    def test_fields(self):
        assert set(SystemEvent.model_fields) == {
            "id", "event_type", "timestamp", "appointment_id", "data", "source_module",
        }

    def test_frozen(self):
        event = SystemEvent(event_type=EventType.SYSTEM_STARTUP)
        with pytest.raises(ValidationError):
            event.source_module = "main"
