"""Appointment model — patient consultation requests handled from the dashboard."""

from __future__ import annotations

from datetime import date

from sqlalchemy import Date, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from src.models.base import Base, TimestampMixin
from src.models.enums import AppointmentStatus


class Appointment(TimestampMixin, Base):
    """A patient appointment request. Created by the booking flow as ``pending``."""

    __tablename__ = "appointments"

    # Patient
    full_name: Mapped[str] = mapped_column(String(200), nullable=False)
    phone: Mapped[str | None] = mapped_column(String(30), comment="WhatsApp notification destination")
    email: Mapped[str | None] = mapped_column(String(255))

    # Scheduling
    preferred_date: Mapped[date | None] = mapped_column(Date)
    location: Mapped[str | None] = mapped_column(String(200))
    notes: Mapped[str | None] = mapped_column(Text)
    status: Mapped[str] = mapped_column(
        String(20), default=AppointmentStatus.PENDING.value, nullable=False, index=True
    )

    def __repr__(self) -> str:
        return f"<Appointment id={self.id} status={self.status} date={self.preferred_date}>"
