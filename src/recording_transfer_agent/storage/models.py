"""
ORM-модели базы данных.

Назначение:
- Хранение встреч (комнат) ментор/менти
- Состояние участия (кто заходил, когда комната стартовала/закрылась)
- Ссылка на запись встречи в object storage
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from recording_transfer_agent.domain.enums import MeetingStatus


# =============================================================================
# BASE
# =============================================================================
class Base(DeclarativeBase):
    pass


# =============================================================================
# MEETING
# =============================================================================
class Meeting(Base):
    """
    Встреча. id - постоянный идентификатор (в вебхуке приходит как session_name).
    """

    __tablename__ = "meetings"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)

    mentor_id: Mapped[str] = mapped_column(String(64), nullable=False)
    mentee_id: Mapped[str] = mapped_column(String(64), nullable=False)
    org_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    agenda: Mapped[str | None] = mapped_column(String(255), nullable=True)
    redirect_link: Mapped[str | None] = mapped_column(String(512), nullable=True)
    client_additional_info: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    # плановое окно встречи (ISO-строки, как их присылает планировщик)
    start_time: Mapped[str | None] = mapped_column(String(64), nullable=True)
    end_time: Mapped[str | None] = mapped_column(String(64), nullable=True)

    # участие
    meeting_status: Mapped[str] = mapped_column(
        String(32), default=MeetingStatus.pending.value, nullable=False
    )
    is_completed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_mentor_joined: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_mentee_joined: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    joined_users: Mapped[str] = mapped_column(Text, default="", nullable=False)
    max_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    current_participants: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    meeting_start_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    room_start_time: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    room_end_time: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    last_activity_time: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    duration: Mapped[int | None] = mapped_column(Integer, nullable=True)  # минуты

    # запись
    session_recorded: Mapped[str | None] = mapped_column(String(32), nullable=True)
    recording_url: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )
