"""
Учёт участия в комнате встречи (join / leave / end).

Правила:
- текущий состав комнаты держим в памяти процесса (ActiveRoster), историю - в БД
- второй участник в комнате → статус started, фиксируем room_start_time и кто открыл комнату
- все вышли: если встреча состоялась (max_count >= 2 или была started) → completed
  с длительностью в минутах, иначе - сброс в pending
- каждое изменение встречи - одна транзакция с блокировкой строки
"""

from __future__ import annotations

import math
import threading
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from recording_transfer_agent.common.errors import (
    ForbiddenError,
    GoneError,
    NotFoundError,
    ValidationError,
)
from recording_transfer_agent.common.logging import get_project_logger
from recording_transfer_agent.common.time import utc_now
from recording_transfer_agent.domain.enums import MeetingStatus
from recording_transfer_agent.storage.models import Meeting
from recording_transfer_agent.storage.repositories import MeetingRepository

log = get_project_logger()


class ActiveRoster:
    """
    Текущие участники комнат: meeting_id -> [user_id] в порядке входа.
    """

    def __init__(self) -> None:
        self._rooms: dict[str, list[str]] = {}
        self._lock = threading.Lock()

    def join(self, meeting_id: str, user_id: str) -> list[str]:
        with self._lock:
            users = self._rooms.setdefault(meeting_id, [])
            if user_id not in users:
                users.append(user_id)
            return list(users)

    def leave(self, meeting_id: str, user_id: str) -> list[str]:
        with self._lock:
            users = [u for u in self._rooms.get(meeting_id, []) if u != user_id]
            if users:
                self._rooms[meeting_id] = users
            else:
                self._rooms.pop(meeting_id, None)
            return list(users)

    def users(self, meeting_id: str) -> list[str]:
        with self._lock:
            return list(self._rooms.get(meeting_id, []))

    def clear(self, meeting_id: str) -> None:
        with self._lock:
            self._rooms.pop(meeting_id, None)


def _norm_id(value: Any) -> str | None:
    if value is None:
        return None
    s = str(value).strip()
    return s or None


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _parse_end_time(raw: str | None) -> datetime | None:
    if not raw:
        return None
    try:
        dt = datetime.fromisoformat(raw.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    return dt if dt.tzinfo else dt.replace(tzinfo=UTC)


def _duration_minutes(start: datetime, end: datetime) -> int:
    return int(math.floor((end - start).total_seconds() / 60 + 0.5))


def _joined_users(meeting: Meeting) -> list[str]:
    return [u for u in (meeting.joined_users or "").split(",") if u]


class ParticipationService:
    def __init__(
        self,
        session_factory=None,
        roster: ActiveRoster | None = None,
        *,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        if session_factory is None:
            from recording_transfer_agent.storage.db import db_session

            session_factory = db_session
        self._session_factory = session_factory
        self.roster = roster or ActiveRoster()
        self._clock = clock

    def _now(self) -> datetime:
        # в БД храним naive UTC
        return self._clock().astimezone(UTC).replace(tzinfo=None)

    @staticmethod
    def _require_ids(meeting_id: Any, user_id: Any, message: str) -> tuple[str, str]:
        mid, uid = _norm_id(meeting_id), _norm_id(user_id)
        if not mid or not uid:
            raise ValidationError(message)
        return mid, uid

    @staticmethod
    def _load(repo: MeetingRepository, meeting_id: str) -> Meeting:
        meeting = repo.get_for_update(meeting_id)
        if meeting is None:
            raise NotFoundError("Meeting not found", details={"meeting_id": meeting_id})
        return meeting

    # -------------------------------------------------------------------------
    # Информация о встрече
    # -------------------------------------------------------------------------
    def get_meeting_info(self, meeting_id: Any, user_id: Any) -> dict[str, Any]:
        mid, uid = self._require_ids(meeting_id, user_id, "Invalid meetingId or userId")

        with self._session_factory() as session:
            meeting = MeetingRepository(session).get(mid)
            if meeting is None:
                raise NotFoundError("Meeting not found", details={"meeting_id": mid})

            end_time = _parse_end_time(meeting.end_time)
            if end_time is not None and self._clock() > end_time:
                raise GoneError("Meeting time has passed", details={"meeting_id": mid})

            if uid not in (_norm_id(meeting.mentor_id), _norm_id(meeting.mentee_id)):
                raise ForbiddenError("User not authorized for this meeting")

            return {
                "meetingId": meeting.id,
                "mentorId": meeting.mentor_id,
                "menteeId": meeting.mentee_id,
                "agenda": meeting.agenda,
                "redirectLink": meeting.redirect_link,
                "meetingStatus": meeting.meeting_status,
                "startTime": meeting.start_time,
                "endTime": meeting.end_time,
                "isCompleted": meeting.is_completed,
                "clientAdditionalInfo": meeting.client_additional_info,
            }

    # -------------------------------------------------------------------------
    # Вход участника
    # -------------------------------------------------------------------------
    def user_joined(self, meeting_id: Any, user_id: Any, user_type: str | None = None) -> dict[str, Any]:
        mid, uid = self._require_ids(meeting_id, user_id, "Missing meetingId or userId")

        with self._session_factory() as session:
            repo = MeetingRepository(session)
            meeting = self._load(repo, mid)
            users = self.roster.join(mid, uid)
            now = self._now()

            if _norm_id(meeting.mentor_id) == uid:
                meeting.is_mentor_joined = True
            if _norm_id(meeting.mentee_id) == uid:
                meeting.is_mentee_joined = True

            joined = _joined_users(meeting)
            if uid not in joined:
                joined.append(uid)
            meeting.joined_users = ",".join(joined)
            meeting.current_participants = len(users)
            meeting.max_count = max(meeting.max_count or 0, len(users))
            meeting.last_activity_time = now

            if len(users) > 1 and meeting.meeting_status != MeetingStatus.started.value:
                meeting.meeting_status = MeetingStatus.started.value
                meeting.room_start_time = now
                meeting.meeting_start_by = users[0]
                log.info(
                    "meeting_started",
                    extra={"payload": {"meeting_id": mid, "started_by": users[0], "users": users}},
                )
            elif len(users) == 1 and meeting.meeting_status in (None, "", MeetingStatus.pending.value):
                meeting.meeting_status = MeetingStatus.waiting.value
                log.info("meeting_waiting", extra={"payload": {"meeting_id": mid, "user_id": uid}})

            repo.save(meeting)
            session.flush()

            return {
                "meetingId": mid,
                "activeUsers": users,
                "userCount": len(users),
                "meetingStarted": len(users) > 1,
                "userType": user_type,
                "persisted": {
                    "id": meeting.id,
                    "meetingStatus": meeting.meeting_status,
                    "roomStartTime": _iso(meeting.room_start_time),
                    "maxCount": meeting.max_count,
                },
            }

    # -------------------------------------------------------------------------
    # Выход участника
    # -------------------------------------------------------------------------
    def user_left(self, meeting_id: Any, user_id: Any) -> dict[str, Any]:
        mid, uid = self._require_ids(meeting_id, user_id, "Missing meetingId or userId")

        with self._session_factory() as session:
            repo = MeetingRepository(session)
            meeting = self._load(repo, mid)
            remaining = self.roster.leave(mid, uid)
            now = self._now()

            if _norm_id(meeting.mentor_id) == uid:
                meeting.is_mentor_joined = True
            if _norm_id(meeting.mentee_id) == uid:
                meeting.is_mentee_joined = True

            took_place = (meeting.max_count or 0) >= 2 or (
                meeting.meeting_status == MeetingStatus.started.value
                and meeting.room_start_time is not None
            )
            meeting.current_participants = len(remaining)
            meeting.last_activity_time = now

            if not remaining:
                if took_place:
                    meeting.meeting_status = MeetingStatus.completed.value
                    meeting.room_end_time = now
                    meeting.is_completed = True
                    if meeting.room_start_time is not None:
                        meeting.duration = _duration_minutes(meeting.room_start_time, now)
                    log.info(
                        "meeting_completed",
                        extra={"payload": {"meeting_id": mid, "duration_min": meeting.duration}},
                    )
                else:
                    # в комнате был один человек - встречи не было
                    meeting.meeting_status = MeetingStatus.pending.value
                    meeting.room_start_time = None
                    meeting.room_end_time = None
                    meeting.is_completed = False
                    meeting.duration = None
                    meeting.meeting_start_by = None
                    meeting.joined_users = ""
                    log.info("meeting_reset_pending", extra={"payload": {"meeting_id": mid}})

            repo.save(meeting)
            session.flush()

            return {
                "meetingId": mid,
                "remainingUsers": remaining,
                "userCount": len(remaining),
                "meetingActuallyTookPlace": took_place,
                "persisted": {
                    "id": meeting.id,
                    "meetingStatus": meeting.meeting_status,
                    "maxCount": meeting.max_count,
                    "isMentorJoined": meeting.is_mentor_joined,
                    "isMenteeJoined": meeting.is_mentee_joined,
                },
            }

    # -------------------------------------------------------------------------
    # Завершение встречи ментором
    # -------------------------------------------------------------------------
    def meeting_end(self, meeting_id: Any, user_id: Any) -> dict[str, Any]:
        mid, uid = self._require_ids(meeting_id, user_id, "Missing meetingId or userId")

        with self._session_factory() as session:
            repo = MeetingRepository(session)
            meeting = self._load(repo, mid)
            if _norm_id(meeting.mentor_id) != uid:
                raise ForbiddenError("Only mentor can end the meeting")

            now = self._now()
            meeting.meeting_status = MeetingStatus.completed.value
            meeting.room_end_time = now
            meeting.is_completed = True
            if meeting.room_start_time is not None:
                meeting.duration = _duration_minutes(meeting.room_start_time, now)
            self.roster.clear(mid)

            repo.save(meeting)
            session.flush()
            log.info(
                "meeting_ended_by_host",
                extra={"payload": {"meeting_id": mid, "duration_min": meeting.duration}},
            )

            return {
                "meetingId": mid,
                "persisted": {
                    "id": meeting.id,
                    "meetingStatus": meeting.meeting_status,
                    "roomEndTime": _iso(meeting.room_end_time),
                    "duration": meeting.duration,
                    "isCompleted": meeting.is_completed,
                },
            }

    # -------------------------------------------------------------------------
    # Отладочное состояние
    # -------------------------------------------------------------------------
    def meeting_state(self, meeting_id: Any) -> dict[str, Any]:
        mid = _norm_id(meeting_id)
        if not mid:
            raise ValidationError("Missing meetingId")

        users = self.roster.users(mid)
        with self._session_factory() as session:
            meeting = MeetingRepository(session).get(mid)
            if meeting is None:
                raise NotFoundError("Meeting not found", details={"meeting_id": mid})

            return {
                "meetingId": mid,
                "activeUsers": users,
                "userCount": len(users),
                "meeting": {
                    "id": meeting.id,
                    "mentorId": meeting.mentor_id,
                    "menteeId": meeting.mentee_id,
                    "isMentorJoined": meeting.is_mentor_joined,
                    "isMenteeJoined": meeting.is_mentee_joined,
                    "meetingStatus": meeting.meeting_status,
                    "roomStartTime": _iso(meeting.room_start_time),
                    "meetingStartBy": meeting.meeting_start_by,
                    "maxCount": meeting.max_count,
                    "currentParticipants": meeting.current_participants,
                    "joinedUsers": meeting.joined_users,
                },
            }
