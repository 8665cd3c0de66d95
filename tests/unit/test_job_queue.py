from __future__ import annotations

import pytest

from recording_transfer_agent.common.errors import ValidationError
from recording_transfer_agent.queue.tasks import QUEUE_SCHEMA_VERSION
from recording_transfer_agent.queue.dispatcher import (
    JOB_PROCESS_RECORDING,
    enqueue_recording_transfer,
)
from recording_transfer_agent.queue.job_queue import JobQueue


def _run_to_completion(q: JobQueue) -> list[str]:
    order = []
    while True:
        job = q.reserve()
        if job is None:
            return order
        order.append(job.id)
        q.complete(job, {"ok": True})


def test_enqueue_is_visible_in_stats_and_job(job_queue) -> None:
    job = job_queue.enqueue({"x": 1}, name="process-recording")

    stats = job_queue.get_stats()
    assert stats.as_dict() == {"waiting": 1, "active": 0, "completed": 0, "failed": 0, "total": 1}

    stored = job_queue.get_job(job.id)
    assert stored is not None
    assert stored.data == {"x": 1}
    assert stored.state == "waiting"
    assert stored.max_attempts == 3
    assert stored.attempts_made == 0


def test_unknown_job_is_none(job_queue) -> None:
    assert job_queue.get_job("404") is None


def test_lower_priority_value_runs_first_then_fifo(job_queue) -> None:
    a = job_queue.enqueue({}, name="j", priority=5)
    b = job_queue.enqueue({}, name="j", priority=1)
    c = job_queue.enqueue({}, name="j", priority=1)
    assert _run_to_completion(job_queue) == [b.id, c.id, a.id]


def test_concurrency_ceiling_is_global(job_queue, fake_redis, clock) -> None:
    for _ in range(3):
        job_queue.enqueue({}, name="j")

    # второй экземпляр очереди на том же Redis видит тот же потолок
    other = JobQueue(fake_redis, name="test-recordings", concurrency=2, clock=clock)
    first = job_queue.reserve()
    second = other.reserve()
    assert first is not None and second is not None
    assert job_queue.reserve() is None
    assert other.reserve() is None
    assert job_queue.get_stats().active == 2

    job_queue.complete(first, {})
    third = other.reserve()
    assert third is not None
    assert {first.id, second.id, third.id} == {"1", "2", "3"}


def test_complete_stores_result_and_trims_history(fake_redis, clock) -> None:
    q = JobQueue(fake_redis, name="trim", concurrency=1, keep_completed=2, clock=clock)
    ids = [q.enqueue({"n": i}, name="j").id for i in range(3)]
    for _ in ids:
        job = q.reserve()
        clock.advance(10)
        q.complete(job, {"filesProcessed": 1})

    assert q.get_stats().completed == 2
    assert q.get_job(ids[0]) is None
    done = q.get_job(ids[2])
    assert done.state == "completed"
    assert done.return_value == {"filesProcessed": 1}
    assert done.attempts_made == 1
    assert [j.id for j in q.list_jobs("completed")] == [ids[2], ids[1]]


def test_retry_backoff_then_failed_after_three_attempts(job_queue, clock) -> None:
    job = job_queue.enqueue({}, name="j")

    j = job_queue.reserve()
    d1 = job_queue.fail(j, RuntimeError("redis hiccup"))
    assert d1.retry is True and d1.delay_ms == 2000
    assert job_queue.get_job(job.id).state == "delayed"
    # отложенная задача считается ожидающей
    assert job_queue.get_stats().waiting == 1
    assert job_queue.reserve() is None

    clock.advance(2000)
    j = job_queue.reserve()
    assert j is not None and j.attempts_made == 1
    d2 = job_queue.fail(j, RuntimeError("again"))
    assert d2.retry is True and d2.delay_ms == 4000

    clock.advance(3999)
    assert job_queue.reserve() is None
    clock.advance(1)
    j = job_queue.reserve()
    assert j is not None
    d3 = job_queue.fail(j, RuntimeError("last"))
    assert d3.retry is False
    assert d3.reason == "attempts_exhausted"

    stored = job_queue.get_job(job.id)
    assert stored.state == "failed"
    assert stored.attempts_made == 3
    assert stored.failed_reason == "last"
    assert job_queue.get_stats().as_dict()["failed"] == 1


def test_non_retryable_failure_goes_straight_to_failed(job_queue) -> None:
    job_queue.enqueue({}, name="j")
    j = job_queue.reserve()
    decision = job_queue.fail(j, ValidationError("Нет session_id"), retryable=False)
    assert decision.retry is False
    assert decision.reason == "unrecoverable"
    stored = job_queue.get_job(j.id)
    assert stored.state == "failed"
    assert stored.attempts_made == 1
    assert stored.failed_reason == "Нет session_id"


def test_clean_removes_only_old_finished_jobs(job_queue, clock) -> None:
    old = job_queue.enqueue({}, name="j")
    job_queue.complete(job_queue.reserve(), {})
    clock.advance(10_000)
    fresh = job_queue.enqueue({}, name="j")
    job_queue.complete(job_queue.reserve(), {})

    assert job_queue.clean(5_000, "completed") == 1
    assert job_queue.get_job(old.id) is None
    assert job_queue.get_job(fresh.id) is not None
    assert job_queue.clean(5_000, "failed") == 0
    with pytest.raises(ValueError):
        job_queue.clean(5_000, "waiting")


def test_recover_stalled_requeues_and_frees_slots(job_queue, clock) -> None:
    job_queue.enqueue({}, name="j")
    job_queue.enqueue({}, name="j")
    assert job_queue.reserve() is not None
    assert job_queue.reserve() is not None

    clock.advance(1_000)
    assert job_queue.recover_stalled(500) == 2
    stats = job_queue.get_stats()
    assert stats.active == 0 and stats.waiting == 2
    # зависание расходует попытку
    assert job_queue.get_job("1").attempts_made == 1
    assert job_queue.reserve() is not None


def test_dispatcher_wraps_webhook_in_task(job_queue, webhook_factory) -> None:
    webhook = webhook_factory([{"id": "f1"}])
    job = enqueue_recording_transfer(webhook, queue=job_queue)

    stored = job_queue.get_job(job.id)
    assert stored.name == JOB_PROCESS_RECORDING
    assert stored.data["schema_version"] == QUEUE_SCHEMA_VERSION
    assert stored.data["webhook"] == webhook
    assert stored.data["event_id"]


def test_job_that_keeps_stalling_fails_after_max_attempts(job_queue, clock) -> None:
    job = job_queue.enqueue({}, name="j")

    for _ in range(6):
        if job_queue.reserve() is None:
            break
        clock.advance(1_000)
        job_queue.recover_stalled(500)

    stored = job_queue.get_job(job.id)
    assert stored.state == "failed"
    assert stored.attempts_made == 3
    assert stored.failed_reason == "stalled"
    assert job_queue.get_stats().as_dict() == {
        "waiting": 0,
        "active": 0,
        "completed": 0,
        "failed": 1,
        "total": 1,
    }


def test_reserve_retries_when_another_worker_wins_the_race(job_queue, fake_redis, clock) -> None:
    for _ in range(3):
        job_queue.enqueue({}, name="j")
    other = JobQueue(fake_redis, name="test-recordings", concurrency=2, clock=clock)
    assert job_queue.reserve() is not None

    # второй воркер забирает последний слот между WATCH и EXEC первого
    raced = []
    fake_redis.before_exec = lambda: raced.append(other.reserve())

    assert job_queue.reserve() is None
    assert raced and raced[0] is not None
    assert job_queue.get_stats().active == 2
    assert job_queue.get_stats().waiting == 1


def test_recovery_between_watch_and_exec_keeps_ceiling(job_queue, fake_redis, clock) -> None:
    for _ in range(3):
        job_queue.enqueue({}, name="j")
    stalled = job_queue.reserve()
    clock.advance(1_000)

    # возврат зависшей задачи вклинивается в выдачу следующей
    fake_redis.before_exec = lambda: job_queue.recover_stalled(500)
    again = job_queue.reserve()

    assert again is not None and again.id == stalled.id
    assert again.attempts_made == 1
    assert job_queue.reserve() is not None
    assert job_queue.reserve() is None
    assert job_queue.get_stats().active == 2
    assert job_queue.get_stats().waiting == 1
