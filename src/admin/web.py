"""Admin dashboard API — FastAPI router over the appointment registry.

JSON endpoints feed the dashboard tables and stat tiles; the status endpoint
returns an HTML badge for HTMX to swap in place. The registry is created in
the application lifespan and reached through ``get_registry``.
"""
# ruff: noqa: B008  — Depends() in function defaults is standard FastAPI

from __future__ import annotations

import logging
import uuid
from typing import Any

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import HTMLResponse

from src.admin.formatters import format_date, format_datetime
from src.models.enums import AppointmentStatus
from src.registry.registry import ALL_STATUSES, UPDATE_ERROR_MESSAGE, AppointmentRegistry
from src.schemas.appointment import AppointmentRecord, DashboardView
from src.store.errors import AppointmentNotFound, StoreError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])

STATUS_COLORS: dict[str, str] = {
    "pending": "bg-yellow-100 text-yellow-800",
    "confirmed": "bg-blue-100 text-blue-800",
    "completed": "bg-green-100 text-green-800",
    "cancelled": "bg-red-100 text-red-800",
}

_VALID_FILTERS = {ALL_STATUSES} | {s.value for s in AppointmentStatus}


def get_registry(request: Request) -> AppointmentRegistry:
    """FastAPI dependency — the registry owned by the application lifespan."""
    return request.app.state.registry


def _serialize(record: AppointmentRecord) -> dict[str, Any]:
    data = record.model_dump(mode="json")
    data["preferred_date_display"] = format_date(record.preferred_date)
    data["created_at_display"] = format_datetime(record.created_at)
    return data


def _build_view(registry: AppointmentRegistry, status: str) -> DashboardView:
    return DashboardView(
        appointments=[_serialize(r) for r in registry.filter_by_status(status)],
        counts=registry.counts(),
        upcoming=[_serialize(r) for r in registry.upcoming()],
        loading=registry.loading,
        refreshing=registry.refreshing,
        error=registry.error,
    )


def _error_badge(message: str) -> str:
    return f'<span class="text-red-600 text-sm">{message}</span>'


def _badge(status: str) -> str:
    color = STATUS_COLORS.get(status, "bg-gray-100 text-gray-800")
    return (
        f'<span class="inline-flex items-center px-2.5 py-0.5 rounded-full '
        f'text-xs font-medium {color}">{status}</span>'
    )


# ── Endpoints ────────────────────────────────────────────────────────


@router.get("/appointments", response_model=DashboardView)
async def list_appointments(
    status: str = Query(ALL_STATUSES),
    registry: AppointmentRegistry = Depends(get_registry),
) -> DashboardView:
    """Filtered appointments, stat counts, upcoming list and load state."""
    if status not in _VALID_FILTERS:
        status = ALL_STATUSES
    return _build_view(registry, status)


@router.post("/appointments/refresh", response_model=DashboardView)
async def refresh_appointments(
    registry: AppointmentRegistry = Depends(get_registry),
) -> DashboardView:
    """Manual resync from the store. Errors surface in ``error``, not as a 5xx."""
    await registry.refresh()
    return _build_view(registry, ALL_STATUSES)


@router.post("/appointments/{appointment_id}/status", response_class=HTMLResponse)
async def update_appointment_status(
    request: Request,
    appointment_id: str,
    registry: AppointmentRegistry = Depends(get_registry),
) -> HTMLResponse:
    """HTMX endpoint — update appointment status, return badge HTML.

    The patient notification is sent in the background and never changes
    the response.
    """
    form = await request.form()
    new_status = str(form.get("status", ""))

    try:
        status = AppointmentStatus(new_status)
    except ValueError:
        return HTMLResponse(_error_badge("Invalid status"), status_code=400)

    try:
        appt_uuid = uuid.UUID(appointment_id)
    except ValueError:
        return HTMLResponse(_error_badge("Invalid ID"), status_code=400)

    try:
        await registry.update_status(appt_uuid, status, await_notification=False)
    except AppointmentNotFound:
        return HTMLResponse(_error_badge("Appointment not found"), status_code=404)
    except StoreError:
        logger.exception("Status update failed for %s", appt_uuid)
        return HTMLResponse(_error_badge(UPDATE_ERROR_MESSAGE), status_code=502)

    return HTMLResponse(_badge(status.value))
