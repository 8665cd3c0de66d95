from __future__ import annotations

from recording_transfer_agent.common.config import get_settings
from recording_transfer_agent.jobs import retention_job


def test_retention_removes_finished_jobs_older_than_grace(job_queue, clock) -> None:
    job_queue.enqueue({}, name="j")
    job_queue.complete(job_queue.reserve(), {})
    job_queue.enqueue({}, name="j")
    job_queue.fail(job_queue.reserve(), RuntimeError("x"), retryable=False)

    clock.advance(61_000)
    result = retention_job.run(job_queue, grace_sec=60)
    assert result.completed_removed == 1
    assert result.failed_removed == 1
    assert job_queue.get_stats().total == 0


def test_retention_uses_configured_window(job_queue, clock, monkeypatch) -> None:
    monkeypatch.setattr(get_settings(), "queue_retention_sec", 3600)
    job_queue.enqueue({}, name="j")
    job_queue.complete(job_queue.reserve(), {})

    clock.advance(60_000)
    result = retention_job.run(job_queue)
    assert result.grace_sec == 3600
    assert result.completed_removed == 0
    assert job_queue.get_stats().completed == 1
