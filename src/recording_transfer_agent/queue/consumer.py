"""
Пул воркеров очереди переноса записей.

Алгоритм:
- poll_once(): если есть свободный слот - reserve() и запуск задачи в пуле потоков
- задача вернула результат → complete; ValidationError → fail без повторов;
  любое другое исключение → fail с повтором по политике очереди
- периодически возвращаем зависшие active-задачи в waiting
- close(): перестаём брать новые задачи, дожидаемся текущих
"""

from __future__ import annotations

import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Protocol

from recording_transfer_agent.common.config import get_settings
from recording_transfer_agent.common.errors import ValidationError, error_message
from recording_transfer_agent.common.logging import get_project_logger
from recording_transfer_agent.common.metrics import record_queue_task
from recording_transfer_agent.queue.job_queue import JobHandle, JobQueue

log = get_project_logger()


class JobProcessor(Protocol):
    def process(self, data: dict[str, Any]) -> Any: ...


class TransferWorkerPool:
    def __init__(
        self,
        queue: JobQueue,
        worker: JobProcessor,
        *,
        concurrency: int | None = None,
        poll_interval_sec: float | None = None,
        stalled_sec: int | None = None,
    ) -> None:
        s = get_settings()
        self.queue = queue
        self.worker = worker
        self.concurrency = int(concurrency or s.queue_concurrency)
        self.poll_interval_sec = float(
            poll_interval_sec if poll_interval_sec is not None else s.queue_poll_interval_sec
        )
        self.stalled_sec = int(stalled_sec if stalled_sec is not None else s.queue_stalled_sec)

        self._executor = ThreadPoolExecutor(max_workers=self.concurrency, thread_name_prefix="job")
        self._slots = threading.BoundedSemaphore(self.concurrency)
        self._stop = threading.Event()
        self._inflight: set[Future] = set()
        self._lock = threading.Lock()
        self._last_recovery = 0.0

    @property
    def stopping(self) -> bool:
        return self._stop.is_set()

    def inflight(self) -> int:
        with self._lock:
            return len(self._inflight)

    # -------------------------------------------------------------------------
    # Выполнение одной задачи
    # -------------------------------------------------------------------------
    def _run_job(self, job: JobHandle) -> None:
        try:
            result = self.worker.process(job.data)
        except ValidationError as e:
            log.warning(
                "job_rejected",
                extra={"payload": {"job_id": job.id, "err": error_message(e, 200)}},
            )
            self.queue.fail(job, e, retryable=False)
            record_queue_task(queue=self.queue.name, result="failed")
            return
        except Exception as e:
            log.error(
                "job_crashed",
                extra={"payload": {"job_id": job.id, "err": error_message(e, 200)}},
            )
            decision = self.queue.fail(job, e)
            record_queue_task(queue=self.queue.name, result="retry" if decision.retry else "failed")
            return

        payload = result.to_dict() if hasattr(result, "to_dict") else result
        self.queue.complete(job, payload)
        record_queue_task(queue=self.queue.name, result="completed")

    def _run_job_guarded(self, job: JobHandle) -> None:
        try:
            self._run_job(job)
        except Exception as e:
            # Redis недоступен при complete/fail: задача останется active
            # и вернётся в waiting через recover_stalled
            log.error(
                "job_bookkeeping_failed",
                extra={"payload": {"job_id": job.id, "err": error_message(e, 200)}},
            )

    def _on_done(self, fut: Future) -> None:
        with self._lock:
            self._inflight.discard(fut)
        self._slots.release()

    # -------------------------------------------------------------------------
    # Цикл
    # -------------------------------------------------------------------------
    def poll_once(self) -> bool:
        """
        Взять и запустить одну задачу. True - задача запущена.
        """
        if self._stop.is_set():
            return False
        if not self._slots.acquire(blocking=False):
            return False

        try:
            job = self.queue.reserve()
        except Exception:
            self._slots.release()
            raise

        if job is None:
            self._slots.release()
            return False

        log.info(
            "job_started",
            extra={"payload": {"job_id": job.id, "name": job.name, "attempt": job.attempts_made + 1}},
        )
        fut = self._executor.submit(self._run_job_guarded, job)
        with self._lock:
            self._inflight.add(fut)
        fut.add_done_callback(self._on_done)
        return True

    def _maybe_recover_stalled(self) -> None:
        now = time.monotonic()
        if now - self._last_recovery < max(self.stalled_sec / 3, 1):
            return
        self._last_recovery = now
        try:
            self.queue.recover_stalled(self.stalled_sec * 1000)
        except Exception as e:
            log.error("stalled_recovery_failed", extra={"payload": {"err": error_message(e, 200)}})

    def run(self) -> None:
        """
        Основной цикл до request_stop()/close(); по выходу дожидается текущих задач.
        """
        log.info(
            "worker_pool_started",
            extra={"payload": {"queue": self.queue.name, "concurrency": self.concurrency}},
        )
        while not self._stop.is_set():
            self._maybe_recover_stalled()
            try:
                dispatched = self.poll_once()
            except Exception as e:
                log.error("worker_pool_poll_error", extra={"payload": {"err": error_message(e, 200)}})
                dispatched = False
            if not dispatched:
                self._stop.wait(self.poll_interval_sec)
        self._drain()

    def request_stop(self) -> None:
        """
        Неблокирующая остановка (безопасно вызывать из обработчика сигнала).
        """
        self._stop.set()

    def close(self, *, wait: bool = True) -> None:
        self._stop.set()
        if wait:
            self._drain()

    def _drain(self) -> None:
        pending = self.inflight()
        if pending:
            log.info("worker_pool_draining", extra={"payload": {"inflight": pending}})
        self._executor.shutdown(wait=True)
        log.info("worker_pool_stopped", extra={"payload": {"queue": self.queue.name}})
