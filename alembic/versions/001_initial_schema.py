"""Initial schema — appointments table.

Revision ID: 001
Revises: None
Create Date: 2026-10-18
"""
from __future__ import annotations

from typing import Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, tuple[str, ...], None] = None
depends_on: Union[str, tuple[str, ...], None] = None


def upgrade() -> None:
    op.create_table(
        "appointments",
        sa.Column("full_name", sa.String(200), nullable=False),
        sa.Column("phone", sa.String(30), comment="WhatsApp notification destination"),
        sa.Column("email", sa.String(255)),
        sa.Column("preferred_date", sa.Date()),
        sa.Column("location", sa.String(200)),
        sa.Column("notes", sa.Text()),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("id", postgresql.UUID(as_uuid=True), server_default=sa.text("gen_random_uuid()"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint(
            "status IN ('pending', 'confirmed', 'completed', 'cancelled')",
            name="ck_appointments_status",
        ),
    )
    op.create_index("ix_appointments_status", "appointments", ["status"])
    op.create_index("ix_appointments_created_at", "appointments", ["created_at"])


def downgrade() -> None:
    op.drop_index("ix_appointments_created_at", table_name="appointments")
    op.drop_index("ix_appointments_status", table_name="appointments")
    op.drop_table("appointments")
