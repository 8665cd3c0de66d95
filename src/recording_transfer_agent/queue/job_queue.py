"""
Надёжная очередь задач поверх Redis.

Структура ключей (prefix = q:<queue_name>):
- <prefix>:seq            - INCR, монотонный id задачи
- <prefix>:job:<id>       - HASH с полями задачи
- <prefix>:waiting        - ZSET, score = priority * PRIORITY_SHIFT + id
- <prefix>:delayed        - ZSET, score = момент готовности (ms)
- <prefix>:active         - ZSET, score = момент взятия в работу (ms)
- <prefix>:completed      - ZSET, score = finished_at (ms)
- <prefix>:failed         - ZSET, score = finished_at (ms)

Семантика:
- at-least-once: зависшие active-задачи возвращаются в waiting (recover_stalled),
  зависание расходует попытку
- потолок concurrency на всю систему = ZCARD active, выдача под WATCH/MULTI
- переходы состояний выполняет только очередь; воркер лишь сообщает результат
- отложенные повторы считаются в статистике как waiting
"""

from __future__ import annotations

import json
from collections.abc import Callable
from dataclasses import asdict, dataclass, field
from typing import Any

from redis.exceptions import WatchError

from recording_transfer_agent.common.config import get_settings
from recording_transfer_agent.common.errors import error_message
from recording_transfer_agent.common.logging import get_project_logger
from recording_transfer_agent.common.time import utc_ms
from recording_transfer_agent.domain.enums import JobState
from recording_transfer_agent.queue.redis import redis_client
from recording_transfer_agent.queue.retry import RetryDecision, decide_retry

log = get_project_logger()

PRIORITY_SHIFT = 10**12
MAX_PRIORITY = 2_000
STALLED_REASON = "stalled"


@dataclass
class JobHandle:
    id: str
    name: str
    data: dict[str, Any]
    state: str = JobState.waiting.value
    priority: int = 1
    delay_ms: int = 0
    attempts_made: int = 0
    max_attempts: int = 3
    backoff_ms: int = 2000
    created_at: int | None = None
    processed_at: int | None = None
    finished_at: int | None = None
    return_value: dict[str, Any] | None = None
    failed_reason: str | None = None

    def to_hash(self) -> dict[str, str]:
        raw: dict[str, str] = {
            "id": self.id,
            "name": self.name,
            "data": json.dumps(self.data, ensure_ascii=False),
            "state": self.state,
            "priority": str(self.priority),
            "delay_ms": str(self.delay_ms),
            "attempts_made": str(self.attempts_made),
            "max_attempts": str(self.max_attempts),
            "backoff_ms": str(self.backoff_ms),
        }
        if self.created_at is not None:
            raw["created_at"] = str(self.created_at)
        return raw

    @classmethod
    def from_hash(cls, raw: dict[str, str]) -> JobHandle:
        def _int(key: str, default: int | None = None) -> int | None:
            v = raw.get(key)
            return int(v) if v not in (None, "") else default

        return_value = raw.get("return_value")
        return cls(
            id=str(raw["id"]),
            name=raw.get("name") or "",
            data=json.loads(raw.get("data") or "{}"),
            state=raw.get("state") or JobState.waiting.value,
            priority=_int("priority", 1) or 0,
            delay_ms=_int("delay_ms", 0) or 0,
            attempts_made=_int("attempts_made", 0) or 0,
            max_attempts=_int("max_attempts", 3) or 0,
            backoff_ms=_int("backoff_ms", 0) or 0,
            created_at=_int("created_at"),
            processed_at=_int("processed_at"),
            finished_at=_int("finished_at"),
            return_value=json.loads(return_value) if return_value else None,
            failed_reason=raw.get("failed_reason") or None,
        )


@dataclass
class QueueStats:
    waiting: int = 0
    active: int = 0
    completed: int = 0
    failed: int = 0
    total: int = field(default=0)

    def __post_init__(self) -> None:
        self.total = self.waiting + self.active + self.completed + self.failed

    def as_dict(self) -> dict[str, int]:
        return asdict(self)


def _waiting_score(priority: int, seq: int) -> int:
    return priority * PRIORITY_SHIFT + seq


class JobQueue:
    def __init__(
        self,
        client=None,
        *,
        name: str | None = None,
        concurrency: int | None = None,
        max_attempts: int | None = None,
        backoff_ms: int | None = None,
        keep_completed: int | None = None,
        keep_failed: int | None = None,
        clock: Callable[[], int] = utc_ms,
    ) -> None:
        s = get_settings()
        self._client = client
        self.name = name or s.queue_name
        self.concurrency = int(concurrency or s.queue_concurrency)
        self.max_attempts = int(max_attempts or s.queue_max_attempts)
        self.backoff_ms = int(backoff_ms if backoff_ms is not None else s.queue_backoff_ms)
        self.keep_completed = int(
            keep_completed if keep_completed is not None else s.queue_keep_completed
        )
        self.keep_failed = int(keep_failed if keep_failed is not None else s.queue_keep_failed)
        self._clock = clock

    # -------------------------------------------------------------------------
    # Ключи
    # -------------------------------------------------------------------------
    @property
    def r(self):
        if self._client is None:
            self._client = redis_client()
        return self._client

    def _key(self, suffix: str) -> str:
        return f"q:{self.name}:{suffix}"

    def _job_key(self, job_id: str) -> str:
        return self._key(f"job:{job_id}")

    def _state_key(self, state: str) -> str:
        return self._key(state)

    # -------------------------------------------------------------------------
    # Постановка и чтение
    # -------------------------------------------------------------------------
    def enqueue(
        self,
        data: dict[str, Any],
        *,
        name: str,
        priority: int = 1,
        delay_ms: int = 0,
    ) -> JobHandle:
        """
        Поставить задачу. После возврата задача уже записана в Redis (MULTI/EXEC).
        """
        priority = min(max(int(priority), 0), MAX_PRIORITY)
        delay_ms = max(int(delay_ms), 0)
        seq = int(self.r.incr(self._key("seq")))
        now = self._clock()

        job = JobHandle(
            id=str(seq),
            name=name,
            data=data,
            state=(JobState.delayed if delay_ms else JobState.waiting).value,
            priority=priority,
            delay_ms=delay_ms,
            max_attempts=self.max_attempts,
            backoff_ms=self.backoff_ms,
            created_at=now,
        )

        pipe = self.r.pipeline(transaction=True)
        pipe.hset(self._job_key(job.id), mapping=job.to_hash())
        if delay_ms:
            pipe.zadd(self._state_key("delayed"), {job.id: now + delay_ms})
        else:
            pipe.zadd(self._state_key("waiting"), {job.id: _waiting_score(priority, seq)})
        pipe.execute()

        log.info(
            "job_enqueued",
            extra={
                "payload": {
                    "queue": self.name,
                    "job_id": job.id,
                    "name": name,
                    "priority": priority,
                    "delay_ms": delay_ms,
                }
            },
        )
        return job

    def get_job(self, job_id: str) -> JobHandle | None:
        raw = self.r.hgetall(self._job_key(str(job_id)))
        if not raw or "id" not in raw:
            return None
        return JobHandle.from_hash(raw)

    def get_stats(self) -> QueueStats:
        pipe = self.r.pipeline(transaction=False)
        for state in ("waiting", "delayed", "active", "completed", "failed"):
            pipe.zcard(self._state_key(state))
        waiting, delayed, active, completed, failed = (int(x or 0) for x in pipe.execute())
        return QueueStats(
            waiting=waiting + delayed, active=active, completed=completed, failed=failed
        )

    def list_jobs(self, state: str, *, limit: int = 50) -> list[JobHandle]:
        """
        Последние задачи в состоянии state (новые первыми).
        """
        ids = self.r.zrange(self._state_key(state), 0, max(limit, 1) - 1, desc=True)
        jobs = []
        for job_id in ids:
            job = self.get_job(job_id)
            if job is not None:
                jobs.append(job)
        return jobs

    # -------------------------------------------------------------------------
    # Выдача задач воркерам
    # -------------------------------------------------------------------------
    def promote_delayed(self) -> int:
        """
        Перенести созревшие отложенные задачи в waiting.
        """
        now = self._clock()
        due = self.r.zrangebyscore(self._state_key("delayed"), "-inf", now)
        moved = 0
        for job_id in due:
            # ZREM выигрывает только один из конкурирующих воркеров
            if not self.r.zrem(self._state_key("delayed"), job_id):
                continue
            priority = int(self.r.hget(self._job_key(job_id), "priority") or 1)
            pipe = self.r.pipeline(transaction=True)
            pipe.zadd(self._state_key("waiting"), {job_id: _waiting_score(priority, int(job_id))})
            pipe.hset(self._job_key(job_id), mapping={"state": JobState.waiting.value})
            pipe.execute()
            moved += 1
        return moved

    def reserve(self) -> JobHandle | None:
        """
        Взять следующую задачу в работу (или None).

        Порядок: меньший priority раньше, при равном priority - в порядке id.
        """
        self.promote_delayed()

        active_key = self._state_key("active")
        waiting_key = self._state_key("waiting")
        with self.r.pipeline(transaction=True) as pipe:
            while True:
                try:
                    # любая конкурентная выдача/возврат задачи прерывает EXEC
                    pipe.watch(active_key, waiting_key)
                    if int(pipe.zcard(active_key) or 0) >= self.concurrency:
                        pipe.unwatch()
                        return None
                    head = pipe.zrange(waiting_key, 0, 0)
                    if not head:
                        pipe.unwatch()
                        return None

                    job_id = str(head[0])
                    now = self._clock()
                    pipe.multi()
                    pipe.zrem(waiting_key, job_id)
                    pipe.zadd(active_key, {job_id: now})
                    pipe.hset(
                        self._job_key(job_id),
                        mapping={"state": JobState.active.value, "processed_at": str(now)},
                    )
                    pipe.execute()
                    break
                except WatchError:
                    log.debug("job_reserve_conflict", extra={"payload": {"queue": self.name}})
                    continue

        job = self.get_job(job_id)
        if job is None:
            # hash удалён (clean/trim) пока задача ждала
            self._release_active(job_id)
            self.r.delete(self._job_key(job_id))
            return None
        return job

    def _release_active(self, job_id: str) -> None:
        self.r.zrem(self._state_key("active"), job_id)

    # -------------------------------------------------------------------------
    # Завершение
    # -------------------------------------------------------------------------
    def complete(self, job: JobHandle, result: dict[str, Any] | None) -> None:
        now = self._clock()
        self._release_active(job.id)
        attempts = int(self.r.hincrby(self._job_key(job.id), "attempts_made", 1))

        pipe = self.r.pipeline(transaction=True)
        pipe.zrem(self._state_key("waiting"), job.id)
        pipe.hset(
            self._job_key(job.id),
            mapping={
                "state": JobState.completed.value,
                "finished_at": str(now),
                "return_value": json.dumps(result or {}, ensure_ascii=False),
            },
        )
        pipe.zadd(self._state_key("completed"), {job.id: now})
        pipe.execute()

        job.state = JobState.completed.value
        job.attempts_made = attempts
        job.finished_at = now
        job.return_value = result

        log.info(
            "job_completed",
            extra={"payload": {"queue": self.name, "job_id": job.id, "attempts": attempts}},
        )
        self._trim(self._state_key("completed"), self.keep_completed)

    def fail(self, job: JobHandle, error: BaseException, *, retryable: bool = True) -> RetryDecision:
        """
        Зафиксировать неудачную попытку: отложенный повтор или failed.
        """
        now = self._clock()
        self._release_active(job.id)
        attempts = int(self.r.hincrby(self._job_key(job.id), "attempts_made", 1))
        decision = decide_retry(
            attempts_made=attempts,
            max_attempts=job.max_attempts or self.max_attempts,
            base_delay_ms=job.backoff_ms,
            retryable=retryable,
        )
        reason = error_message(error, 300)

        pipe = self.r.pipeline(transaction=True)
        pipe.zrem(self._state_key("waiting"), job.id)
        if decision.retry:
            pipe.hset(
                self._job_key(job.id),
                mapping={
                    "state": JobState.delayed.value,
                    "failed_reason": reason,
                    "delay_ms": str(decision.delay_ms),
                },
            )
            pipe.zadd(self._state_key("delayed"), {job.id: now + decision.delay_ms})
        else:
            pipe.hset(
                self._job_key(job.id),
                mapping={
                    "state": JobState.failed.value,
                    "failed_reason": reason,
                    "finished_at": str(now),
                },
            )
            pipe.zadd(self._state_key("failed"), {job.id: now})
        pipe.execute()

        job.attempts_made = attempts
        job.failed_reason = reason
        if decision.retry:
            job.state = JobState.delayed.value
            job.delay_ms = decision.delay_ms
            log.warning(
                "job_retry_scheduled",
                extra={
                    "payload": {
                        "queue": self.name,
                        "job_id": job.id,
                        "attempts": attempts,
                        "max_attempts": decision.max_attempts,
                        "delay_ms": decision.delay_ms,
                        "err": reason[:200],
                    }
                },
            )
        else:
            job.state = JobState.failed.value
            job.finished_at = now
            log.error(
                "job_failed",
                extra={
                    "payload": {
                        "queue": self.name,
                        "job_id": job.id,
                        "attempts": attempts,
                        "reason": decision.reason,
                        "err": reason[:200],
                    }
                },
            )
            self._trim(self._state_key("failed"), self.keep_failed)
        return decision

    # -------------------------------------------------------------------------
    # Обслуживание
    # -------------------------------------------------------------------------
    def _purge(self, zkey: str, ids: list[str]) -> int:
        if not ids:
            return 0
        pipe = self.r.pipeline(transaction=True)
        pipe.zrem(zkey, *ids)
        pipe.delete(*[self._job_key(i) for i in ids])
        pipe.execute()
        return len(ids)

    def _trim(self, zkey: str, keep: int) -> int:
        """
        Оставить keep самых новых записей.
        """
        if keep < 0:
            return 0
        ids = self.r.zrange(zkey, 0, -(keep + 1))
        return self._purge(zkey, list(ids))

    def clean(self, grace_ms: int, state: str) -> int:
        """
        Удалить завершённые задачи старше grace_ms.
        """
        if state not in (JobState.completed.value, JobState.failed.value):
            raise ValueError(f"clean поддерживает только completed/failed, получено: {state}")
        cutoff = self._clock() - int(grace_ms)
        zkey = self._state_key(state)
        ids = self.r.zrangebyscore(zkey, "-inf", cutoff)
        removed = self._purge(zkey, list(ids))
        if removed:
            log.info(
                "queue_cleaned",
                extra={"payload": {"queue": self.name, "state": state, "removed": removed}},
            )
        return removed

    def recover_stalled(self, stall_ms: int) -> int:
        """
        Обработать активные задачи, взятые в работу раньше stall_ms назад.

        Зависание (например, воркер убит OOM) расходует попытку: пока попытки
        есть, задача возвращается в waiting, иначе уходит в failed с причиной
        "stalled". Возвращает число обработанных задач.
        """
        now = self._clock()
        cutoff = now - int(stall_ms)
        active_key = self._state_key("active")
        ids = self.r.zrangebyscore(active_key, "-inf", cutoff)
        requeued: list[str] = []
        failed: list[str] = []
        for job_id in ids:
            # ZREM выигрывает только один из конкурирующих воркеров
            if not self.r.zrem(active_key, job_id):
                continue
            job_key = self._job_key(job_id)
            if not self.r.hget(job_key, "id"):
                continue

            attempts = int(self.r.hincrby(job_key, "attempts_made", 1))
            decision = decide_retry(
                attempts_made=attempts,
                max_attempts=int(self.r.hget(job_key, "max_attempts") or self.max_attempts),
                base_delay_ms=0,
            )
            pipe = self.r.pipeline(transaction=True)
            if decision.retry:
                priority = int(self.r.hget(job_key, "priority") or 1)
                pipe.zadd(self._state_key("waiting"), {job_id: _waiting_score(priority, int(job_id))})
                pipe.hset(job_key, mapping={"state": JobState.waiting.value})
                requeued.append(job_id)
            else:
                pipe.hset(
                    job_key,
                    mapping={
                        "state": JobState.failed.value,
                        "failed_reason": STALLED_REASON,
                        "finished_at": str(now),
                    },
                )
                pipe.zadd(self._state_key("failed"), {job_id: now})
                failed.append(job_id)
            pipe.execute()

        if requeued:
            log.warning(
                "stalled_jobs_recovered",
                extra={"payload": {"queue": self.name, "recovered": len(requeued), "ids": requeued[:20]}},
            )
        if failed:
            log.error(
                "stalled_jobs_failed",
                extra={"payload": {"queue": self.name, "failed": len(failed), "ids": failed[:20]}},
            )
            self._trim(self._state_key("failed"), self.keep_failed)
        return len(requeued) + len(failed)


_queue: JobQueue | None = None


def get_job_queue() -> JobQueue:
    global _queue
    if _queue is None:
        _queue = JobQueue()
    return _queue
