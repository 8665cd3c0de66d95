"""
Worker Transfer.

Алгоритм:
- пул из QUEUE_CONCURRENCY потоков забирает задачи из очереди переноса
- каждая задача: валидация вебхука → параллельная загрузка файлов в S3 → сверка со встречей
- SIGTERM/SIGINT: перестаём брать задачи, дожидаемся текущих, выходим
"""

from __future__ import annotations

import signal

from recording_transfer_agent.common.logging import get_project_logger, setup_logging
from recording_transfer_agent.queue.consumer import TransferWorkerPool
from recording_transfer_agent.queue.job_queue import get_job_queue
from recording_transfer_agent.services.transfer_worker import build_transfer_worker

log = get_project_logger()


def install_signal_handlers(pool: TransferWorkerPool) -> None:
    def _handle(signum, _frame) -> None:
        log.info("worker_transfer_shutdown", extra={"payload": {"signal": signum}})
        pool.request_stop()

    signal.signal(signal.SIGTERM, _handle)
    signal.signal(signal.SIGINT, _handle)


def main() -> None:
    setup_logging("worker-transfer")
    pool = TransferWorkerPool(get_job_queue(), build_transfer_worker())
    install_signal_handlers(pool)
    log.info("worker_transfer_started", extra={"payload": {"queue": pool.queue.name}})
    pool.run()
    log.info("worker_transfer_exited")


if __name__ == "__main__":
    main()
