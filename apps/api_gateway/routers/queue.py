"""
Статистика очереди и статус задач.

- GET /queue/stats
- GET /queue/jobs/{job_id}
"""

from __future__ import annotations

import redis
from fastapi import APIRouter, Depends, HTTPException, status

from apps.api_gateway.deps import job_queue_dep
from recording_transfer_agent.common.errors import ErrCode
from recording_transfer_agent.common.logging import get_project_logger
from recording_transfer_agent.common.time import ms_to_iso, utc_now_iso
from recording_transfer_agent.contracts.http_api import (
    JobResponse,
    QueueStatsBody,
    QueueStatsResponse,
)
from recording_transfer_agent.queue.job_queue import JobQueue

log = get_project_logger()

router = APIRouter()


def _queue_unavailable(e: Exception) -> HTTPException:
    log.error("queue_stats_failed", extra={"payload": {"err": str(e)[:200]}})
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail={"code": ErrCode.REDIS_ERROR, "message": "Failed to get queue statistics"},
    )


@router.get("/queue/stats", response_model=QueueStatsResponse)
def queue_stats(q: JobQueue = Depends(job_queue_dep)) -> QueueStatsResponse:
    try:
        stats = q.get_stats()
    except redis.RedisError as e:
        raise _queue_unavailable(e) from e
    return QueueStatsResponse(timestamp=utc_now_iso(), stats=QueueStatsBody(**stats.as_dict()))


@router.get("/queue/jobs/{job_id}", response_model=JobResponse)
def get_job(job_id: str, q: JobQueue = Depends(job_queue_dep)) -> JobResponse:
    try:
        job = q.get_job(job_id)
    except redis.RedisError as e:
        raise _queue_unavailable(e) from e
    if job is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="not_found")

    return JobResponse(
        id=job.id,
        name=job.name,
        state=job.state,
        attempts_made=job.attempts_made,
        max_attempts=job.max_attempts,
        created_at=ms_to_iso(job.created_at),
        processed_at=ms_to_iso(job.processed_at),
        finished_at=ms_to_iso(job.finished_at),
        failed_reason=job.failed_reason,
        return_value=job.return_value,
    )
