"""
Фоновая job ретеншна очереди.

Назначение:
- удалять completed/failed задачи старше окна хранения (по умолчанию 24 часа)
- лимиты по количеству (100 / 50) очередь применяет сама при завершении задач
"""

from __future__ import annotations

from dataclasses import dataclass

from recording_transfer_agent.common.config import get_settings
from recording_transfer_agent.common.logging import get_project_logger
from recording_transfer_agent.domain.enums import JobState
from recording_transfer_agent.queue.job_queue import JobQueue, get_job_queue

log = get_project_logger()


@dataclass
class RetentionResult:
    completed_removed: int
    failed_removed: int
    grace_sec: int


def run(queue: JobQueue | None = None, *, grace_sec: int | None = None) -> RetentionResult:
    q = queue or get_job_queue()
    grace = int(grace_sec if grace_sec is not None else get_settings().queue_retention_sec)

    log.info("retention_job_started", extra={"payload": {"queue": q.name, "grace_sec": grace}})
    result = RetentionResult(
        completed_removed=q.clean(grace * 1000, JobState.completed.value),
        failed_removed=q.clean(grace * 1000, JobState.failed.value),
        grace_sec=grace,
    )
    log.info(
        "retention_job_finished",
        extra={
            "payload": {
                "queue": q.name,
                "completed_removed": result.completed_removed,
                "failed_removed": result.failed_removed,
            }
        },
    )
    return result
