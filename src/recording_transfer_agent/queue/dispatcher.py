"""
Диспетчер очереди.

Назначение:
- единое имя задачи переноса записи
- упаковка вебхука в RecordingTransferTask (schema_version, event_id, timestamp)
"""

from __future__ import annotations

from typing import Any

from recording_transfer_agent.common.logging import get_project_logger
from recording_transfer_agent.queue.job_queue import JobHandle, JobQueue, get_job_queue
from recording_transfer_agent.queue.tasks import RecordingTransferTask

log = get_project_logger()

JOB_PROCESS_RECORDING = "process-recording"


def enqueue_recording_transfer(
    webhook: dict[str, Any],
    *,
    queue: JobQueue | None = None,
    priority: int = 1,
    delay_ms: int = 0,
) -> JobHandle:
    """
    Поставить задачу переноса всех файлов записи одной сессии.
    """
    q = queue or get_job_queue()
    task = RecordingTransferTask.create(webhook)
    job = q.enqueue(
        task.to_payload(), name=JOB_PROCESS_RECORDING, priority=priority, delay_ms=delay_ms
    )

    obj = (webhook.get("payload") or {}).get("object") or {}
    log.info(
        "enqueue_recording_transfer",
        extra={
            "payload": {
                "job_id": job.id,
                "event_id": task.event_id,
                "session_id": obj.get("session_id"),
                "files": len(obj.get("recording_files") or []),
            }
        },
    )
    return job
