from __future__ import annotations

import threading

from recording_transfer_agent.common.errors import ValidationError
from recording_transfer_agent.queue.consumer import TransferWorkerPool
from recording_transfer_agent.services.transfer_worker import JobResult


class _Worker:
    def __init__(self, behaviour) -> None:
        self.behaviour = behaviour
        self.seen: list[dict] = []
        self.lock = threading.Lock()

    def process(self, data):
        with self.lock:
            self.seen.append(data)
        return self.behaviour(data)


def _pool(queue, worker) -> TransferWorkerPool:
    return TransferWorkerPool(queue, worker, concurrency=2, poll_interval_sec=0.01, stalled_sec=900)


def test_successful_job_is_completed_with_result(job_queue) -> None:
    job = job_queue.enqueue({"webhook": {}}, name="process-recording")
    worker = _Worker(
        lambda data: JobResult(session_id="s", account_id="a", files_processed=1, failed_files=0, total_files=1)
    )
    pool = _pool(job_queue, worker)

    assert pool.poll_once() is True
    pool.close()

    stored = job_queue.get_job(job.id)
    assert stored.state == "completed"
    assert stored.return_value["sessionId"] == "s"
    assert stored.return_value["filesProcessed"] == 1
    assert worker.seen == [{"webhook": {}}]
    assert pool.inflight() == 0


def test_validation_error_fails_without_retry(job_queue) -> None:
    job = job_queue.enqueue({}, name="process-recording")

    def _reject(data):
        raise ValidationError("Нет download_token в вебхуке")

    pool = _pool(job_queue, _Worker(_reject))
    pool.poll_once()
    pool.close()

    stored = job_queue.get_job(job.id)
    assert stored.state == "failed"
    assert stored.attempts_made == 1
    assert job_queue.get_stats().waiting == 0


def test_crash_schedules_delayed_retry(job_queue) -> None:
    job = job_queue.enqueue({}, name="process-recording")

    def _crash(data):
        raise RuntimeError("db connection lost")

    pool = _pool(job_queue, _Worker(_crash))
    pool.poll_once()
    pool.close()

    stored = job_queue.get_job(job.id)
    assert stored.state == "delayed"
    assert stored.delay_ms == 2000
    assert stored.failed_reason == "db connection lost"
    assert job_queue.get_stats().waiting == 1


def test_poll_returns_false_when_idle_or_stopping(job_queue) -> None:
    pool = _pool(job_queue, _Worker(lambda d: {}))
    assert pool.poll_once() is False

    job_queue.enqueue({}, name="process-recording")
    pool.request_stop()
    assert pool.stopping is True
    assert pool.poll_once() is False
    pool.close()
    assert job_queue.get_stats().waiting == 1


def test_run_exits_after_stop_and_drains(job_queue) -> None:
    for _ in range(3):
        job_queue.enqueue({}, name="process-recording")
    done = threading.Event()
    worker = _Worker(lambda data: {"ok": True})

    def _process(data):
        if len(worker.seen) >= 3:
            done.set()
        return {"ok": True}

    worker.behaviour = _process
    pool = _pool(job_queue, worker)
    runner = threading.Thread(target=pool.run)
    runner.start()
    assert done.wait(5)
    pool.request_stop()
    runner.join(5)

    assert not runner.is_alive()
    assert job_queue.get_stats().completed == 3
