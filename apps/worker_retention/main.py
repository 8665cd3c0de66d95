"""
Worker Retention.

Назначение:
- раз в RETENTION_INTERVAL_SEC запускать retention_job
- чистить completed/failed задачи очереди старше QUEUE_RETENTION_SEC
"""

from __future__ import annotations

import time

from recording_transfer_agent.common.config import get_settings
from recording_transfer_agent.common.logging import get_project_logger, setup_logging
from recording_transfer_agent.jobs.retention_job import run as run_retention

log = get_project_logger()


def main() -> None:
    setup_logging("worker-retention")
    settings = get_settings()
    interval_sec = max(5, int(settings.retention_interval_sec))

    log.info(
        "worker_retention_started",
        extra={
            "payload": {
                "interval_sec": interval_sec,
                "retention_sec": int(settings.queue_retention_sec),
            }
        },
    )

    while True:
        try:
            run_retention()
        except Exception as e:
            log.error("worker_retention_error", extra={"payload": {"err": str(e)[:300]}})
        time.sleep(interval_sec)


if __name__ == "__main__":
    main()
