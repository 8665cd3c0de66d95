"""
Сверка результатов переноса с записью встречи.

Правила:
- трогаем только два поля: статус записи и URL записи (URL перезаписывается)
- одна транзакция: SELECT ... FOR UPDATE + UPDATE, чтобы не потерять
  параллельные изменения join/leave по той же встрече
- встреча не найдена - не ошибка, возвращаем False
"""

from __future__ import annotations

from typing import Protocol

from recording_transfer_agent.common.errors import ReconciliationError, error_message
from recording_transfer_agent.common.logging import get_project_logger
from recording_transfer_agent.storage.repositories import MeetingRepository

log = get_project_logger()


class MeetingRecordReconciler(Protocol):
    def update_recording(self, meeting_id: str, *, recording_url: str, status: str) -> bool:
        """
        True - запись обновлена, False - встреча не найдена.
        """
        ...


class SqlMeetingRecordReconciler:
    def __init__(self, session_factory=None) -> None:
        if session_factory is None:
            from recording_transfer_agent.storage.db import db_session

            session_factory = db_session
        self._session_factory = session_factory

    def update_recording(self, meeting_id: str, *, recording_url: str, status: str) -> bool:
        try:
            with self._session_factory() as session:
                repo = MeetingRepository(session)
                meeting = repo.get_for_update(meeting_id)
                if meeting is None:
                    return False
                repo.update_recording(meeting, recording_url=recording_url, status=status)
        except Exception as e:
            raise ReconciliationError(
                f"Не удалось обновить встречу: {error_message(e, 300)}",
                details={"meeting_id": meeting_id},
            ) from e

        log.info(
            "meeting_recording_updated",
            extra={"payload": {"meeting_id": meeting_id, "status": status}},
        )
        return True
