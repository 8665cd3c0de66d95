"""
Инициальная миграция.

Создаёт таблицы:
- meetings
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "meetings",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("mentor_id", sa.String(length=64), nullable=False),
        sa.Column("mentee_id", sa.String(length=64), nullable=False),
        sa.Column("org_id", sa.String(length=64), nullable=True),
        sa.Column("agenda", sa.String(length=255), nullable=True),
        sa.Column("redirect_link", sa.String(length=512), nullable=True),
        sa.Column("client_additional_info", sa.JSON(), nullable=True),
        sa.Column("start_time", sa.String(length=64), nullable=True),
        sa.Column("end_time", sa.String(length=64), nullable=True),
        sa.Column("meeting_status", sa.String(length=32), nullable=False, server_default="pending"),
        sa.Column("is_completed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_mentor_joined", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_mentee_joined", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("joined_users", sa.Text(), nullable=False, server_default=""),
        sa.Column("max_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("current_participants", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("meeting_start_by", sa.String(length=64), nullable=True),
        sa.Column("room_start_time", sa.DateTime(), nullable=True),
        sa.Column("room_end_time", sa.DateTime(), nullable=True),
        sa.Column("last_activity_time", sa.DateTime(), nullable=True),
        sa.Column("duration", sa.Integer(), nullable=True),
        sa.Column("session_recorded", sa.String(length=32), nullable=True),
        sa.Column("recording_url", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_meetings_mentor_id", "meetings", ["mentor_id"], unique=False)
    op.create_index("ix_meetings_mentee_id", "meetings", ["mentee_id"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_meetings_mentee_id", table_name="meetings")
    op.drop_index("ix_meetings_mentor_id", table_name="meetings")
    op.drop_table("meetings")
