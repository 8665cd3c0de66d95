"""
Репозитории (DAO слой).

Правила:
- Никакой бизнес-логики
- Только CRUD и запросы
"""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from .models import Meeting


# =============================================================================
# MEETING REPOSITORY
# =============================================================================
class MeetingRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, meeting_id: str) -> Meeting | None:
        return self.session.get(Meeting, meeting_id)

    def get_for_update(self, meeting_id: str) -> Meeting | None:
        """
        Строка встречи под блокировкой (SELECT ... FOR UPDATE) до конца транзакции.
        """
        stmt = select(Meeting).where(Meeting.id == meeting_id).with_for_update()
        return self.session.execute(stmt).scalar_one_or_none()

    def save(self, meeting: Meeting) -> None:
        self.session.add(meeting)

    def update_recording(self, meeting: Meeting, *, recording_url: str, status: str) -> Meeting:
        meeting.session_recorded = status
        meeting.recording_url = recording_url
        self.save(meeting)
        return meeting
