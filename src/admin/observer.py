"""Log observer — writes every SystemEvent to the application log.

Registered as a global subscriber. Events are observability only: nothing is
persisted and delivery failures end here rather than in the operator's UI.

Never raises — failures are logged but never propagate to the event system.
"""

from __future__ import annotations

import logging

from src.schemas.events import EventType, SystemEvent

logger = logging.getLogger(__name__)

# Events that indicate something the operator may want to look at.
_WARNING_EVENTS = frozenset({
    EventType.APPOINTMENT_UPDATE_FAILED,
    EventType.APPOINTMENTS_REFRESH_FAILED,
    EventType.NOTIFICATION_FAILED,
})


async def log_on_event(event: SystemEvent) -> None:
    """Log a SystemEvent at a level matching its severity."""
    try:
        level = logging.WARNING if event.event_type in _WARNING_EVENTS else logging.INFO
        logger.log(
            level,
            "%s appointment=%s source=%s data=%s",
            event.event_type.value,
            event.appointment_id,
            event.source_module,
            event.data,
        )
    except Exception:
        logger.exception("Failed to log event: %s", event.event_type.value)
