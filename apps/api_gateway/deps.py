"""
FastAPI Depends.

Сюда выносим:
- сборку сервисов (очередь, журнал вебхуков, участие в комнате)
- перевод AppError в HTTP-статусы

В тестах зависимости подменяются через app.dependency_overrides.
"""

from __future__ import annotations

from fastapi import HTTPException, status

from recording_transfer_agent.common.errors import AppError, ErrCode
from recording_transfer_agent.common.logging import get_project_logger
from recording_transfer_agent.queue.job_queue import JobQueue, get_job_queue
from recording_transfer_agent.services.participation_service import ParticipationService
from recording_transfer_agent.services.recordings_log import RecordingsLog, get_recordings_log
from recording_transfer_agent.services.webhook_service import WebhookService

log = get_project_logger()

_STATUS_BY_CODE = {
    ErrCode.VALIDATION: status.HTTP_400_BAD_REQUEST,
    ErrCode.FORBIDDEN: status.HTTP_403_FORBIDDEN,
    ErrCode.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrCode.GONE: status.HTTP_410_GONE,
    ErrCode.CONFIG: status.HTTP_500_INTERNAL_SERVER_ERROR,
    ErrCode.REDIS_ERROR: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrCode.DB_ERROR: status.HTTP_503_SERVICE_UNAVAILABLE,
}

_participation: ParticipationService | None = None


def http_status_for(err: AppError) -> int:
    return _STATUS_BY_CODE.get(err.code, status.HTTP_500_INTERNAL_SERVER_ERROR)


def http_error(err: AppError) -> HTTPException:
    return HTTPException(
        status_code=http_status_for(err),
        detail={"code": err.code, "message": err.message},
    )


def job_queue_dep() -> JobQueue:
    return get_job_queue()


def recordings_log_dep() -> RecordingsLog:
    return get_recordings_log()


def webhook_service_dep() -> WebhookService:
    return WebhookService(recordings_log=get_recordings_log())


def participation_service_dep() -> ParticipationService:
    # один экземпляр на процесс: состав комнат хранится в памяти
    global _participation
    if _participation is None:
        _participation = ParticipationService()
    return _participation
