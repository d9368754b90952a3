"""Status transition notifier — turns a status change into a patient message.

Only three destination states produce a message; each has one fixed
template. Rendering and delivery never raise: the notifier is called after
the status write has committed and must not be able to undo it.
"""

from __future__ import annotations

import logging
from typing import Protocol

from src.admin.events import emit
from src.admin.formatters import format_date
from src.channels.whatsapp import CREDENTIALS_MISSING
from src.config import settings
from src.models.enums import NOTIFIABLE_STATUSES, AppointmentStatus
from src.schemas.appointment import AppointmentRecord, NotificationResult
from src.schemas.events import EventType, SystemEvent

logger = logging.getLogger(__name__)

DATE_PLACEHOLDER = "the requested date"
LOCATION_PLACEHOLDER = "main"

MESSAGE_TEMPLATES: dict[AppointmentStatus, str] = {
    AppointmentStatus.CONFIRMED: (
        "Hello {name}, your appointment with {doctor} on {date} at our {location} center "
        "has been CONFIRMED. We look forward to seeing you!"
    ),
    AppointmentStatus.CANCELLED: (
        "Hello {name}, we are sorry to inform you that your appointment with {doctor} "
        "on {date} has been CANCELLED. Please contact us to reschedule."
    ),
    AppointmentStatus.COMPLETED: (
        "Hello {name}, thank you for visiting {doctor} today! We hope you have a great day. "
        "Feel free to contact us for any follow-up concerns."
    ),
}


class MessageChannel(Protocol):
    """Anything that can deliver a text body to a raw destination address."""

    async def send(self, destination_raw: str, body: str) -> NotificationResult: ...


def render_message(
    appointment: AppointmentRecord,
    status: AppointmentStatus,
    doctor_name: str | None = None,
) -> str:
    """Render the fixed message for ``status``.

    Raises:
        ValueError: ``status`` has no message template.
    """
    template = MESSAGE_TEMPLATES.get(status)
    if template is None:
        msg = f"No message template for status {status.value}"
        raise ValueError(msg)
    return template.format(
        name=appointment.full_name,
        doctor=doctor_name or settings.clinic.doctor_name,
        date=format_date(appointment.preferred_date, placeholder=DATE_PLACEHOLDER),
        location=appointment.location or LOCATION_PLACEHOLDER,
    )


class StatusNotifier:
    """Decides, renders and delivers status-change notifications."""

    def __init__(self, channel: MessageChannel, doctor_name: str | None = None) -> None:
        self._channel = channel
        self._doctor_name = doctor_name

    async def notify(
        self,
        appointment: AppointmentRecord,
        new_status: AppointmentStatus,
    ) -> NotificationResult:
        """Notify the patient about ``new_status``. Never raises."""
        if new_status not in NOTIFIABLE_STATUSES:
            return NotificationResult(delivered=False, detail="not notification-worthy")

        if not appointment.phone:
            logger.warning("Appointment %s has no phone number, notification skipped", appointment.id)
            result = NotificationResult(delivered=False, detail="phone missing")
            await self._emit(EventType.NOTIFICATION_SKIPPED, appointment, new_status, result)
            return result

        try:
            body = render_message(appointment, new_status, self._doctor_name)
            result = await self._channel.send(appointment.phone, body)
        except Exception as exc:
            logger.exception("Notification for appointment %s failed", appointment.id)
            result = NotificationResult(delivered=False, detail=str(exc) or type(exc).__name__)

        if result.delivered:
            await self._emit(EventType.NOTIFICATION_SENT, appointment, new_status, result)
        elif result.detail == CREDENTIALS_MISSING:
            await self._emit(EventType.NOTIFICATION_SKIPPED, appointment, new_status, result)
        else:
            await self._emit(EventType.NOTIFICATION_FAILED, appointment, new_status, result)
        return result

    @staticmethod
    async def _emit(
        event_type: EventType,
        appointment: AppointmentRecord,
        status: AppointmentStatus,
        result: NotificationResult,
    ) -> None:
        try:
            await emit(SystemEvent(
                event_type=event_type,
                appointment_id=appointment.id,
                data={
                    "status": status.value,
                    "channel": "whatsapp",
                    "detail": result.detail if not result.delivered else None,
                },
                source_module="notifications.notifier",
            ))
        except Exception:
            logger.exception("Failed to emit %s for appointment %s", event_type.value, appointment.id)
