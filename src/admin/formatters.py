"""Display formatting helpers shared by the dashboard payload and patient messages."""

from __future__ import annotations

from datetime import date, datetime


def format_date(value: date | datetime | None, placeholder: str = "Not specified") -> str:
    """Format as DD/MM/YYYY."""
    if value is None:
        return placeholder
    return value.strftime("%d/%m/%Y")


def format_datetime(value: datetime | None, placeholder: str = "N/A") -> str:
    """Format as DD/MM/YYYY HH:MM."""
    if value is None:
        return placeholder
    return value.strftime("%d/%m/%Y %H:%M")
