from __future__ import annotations

import hashlib
import threading
from typing import Any

import pytest
from redis.exceptions import WatchError
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from recording_transfer_agent.queue.job_queue import JobQueue
from recording_transfer_agent.storage.db import session_scope
from recording_transfer_agent.storage.models import Base, Meeting


def _score(value: Any) -> float:
    if isinstance(value, str):
        v = value.strip().lower()
        if v in {"-inf"}:
            return float("-inf")
        if v in {"+inf", "inf"}:
            return float("inf")
    return float(value)


class FakeRedis:
    """
    Минимальный Redis в памяти: строки, hash, sorted set, pipeline с WATCH.
    Значения отдаём строками (как decode_responses=True).

    before_exec - однократный хук, вызывается перед EXEC следующего pipeline
    (так тесты вклиниваются между WATCH и EXEC).
    """

    def __init__(self) -> None:
        self.kv: dict[str, str] = {}
        self.hashes: dict[str, dict[str, str]] = {}
        self.zsets: dict[str, dict[str, float]] = {}
        self.lock = threading.RLock()
        self.versions: dict[str, int] = {}
        self.before_exec = None

    def _touch(self, key: str) -> None:
        self.versions[key] = self.versions.get(key, 0) + 1

    def version(self, key: str) -> int:
        return self.versions.get(key, 0)

    # strings
    def incr(self, key: str, amount: int = 1) -> int:
        with self.lock:
            v = int(self.kv.get(key, 0)) + amount
            self.kv[key] = str(v)
            self._touch(key)
            return v

    def decr(self, key: str, amount: int = 1) -> int:
        return self.incr(key, -amount)

    def set(self, key: str, value: Any) -> bool:
        with self.lock:
            self.kv[key] = str(value)
            self._touch(key)
            return True

    def get(self, key: str) -> str | None:
        return self.kv.get(key)

    # hashes
    def hset(self, name: str, key: str | None = None, value: Any = None, mapping=None) -> int:
        with self.lock:
            h = self.hashes.setdefault(name, {})
            items = dict(mapping or {})
            if key is not None:
                items[key] = value
            added = 0
            for k, v in items.items():
                if k not in h:
                    added += 1
                h[k] = str(v)
            self._touch(name)
            return added

    def hget(self, name: str, key: str) -> str | None:
        return self.hashes.get(name, {}).get(key)

    def hgetall(self, name: str) -> dict[str, str]:
        with self.lock:
            return dict(self.hashes.get(name, {}))

    def hincrby(self, name: str, key: str, amount: int = 1) -> int:
        with self.lock:
            h = self.hashes.setdefault(name, {})
            v = int(h.get(key, 0)) + amount
            h[key] = str(v)
            self._touch(name)
            return v

    def delete(self, *names: str) -> int:
        with self.lock:
            removed = 0
            for n in names:
                for store in (self.kv, self.hashes, self.zsets):
                    if n in store:
                        del store[n]
                        removed += 1
                        self._touch(n)
            return removed

    # sorted sets
    def _sorted(self, name: str) -> list[tuple[str, float]]:
        return sorted(self.zsets.get(name, {}).items(), key=lambda kv: (kv[1], kv[0]))

    def zadd(self, name: str, mapping: dict[str, Any]) -> int:
        with self.lock:
            z = self.zsets.setdefault(name, {})
            added = 0
            for member, score in mapping.items():
                if str(member) not in z:
                    added += 1
                z[str(member)] = float(score)
            if mapping:
                self._touch(name)
            return added

    def zrem(self, name: str, *values: Any) -> int:
        with self.lock:
            z = self.zsets.get(name, {})
            removed = 0
            for v in values:
                if str(v) in z:
                    del z[str(v)]
                    removed += 1
                    self._touch(name)
            return removed

    def zcard(self, name: str) -> int:
        return len(self.zsets.get(name, {}))

    def zscore(self, name: str, member: str) -> float | None:
        return self.zsets.get(name, {}).get(str(member))

    def zpopmin(self, name: str, count: int = 1) -> list[tuple[str, float]]:
        with self.lock:
            items = self._sorted(name)[:count]
            for member, _ in items:
                del self.zsets[name][member]
                self._touch(name)
            return items

    def zrangebyscore(self, name: str, min: Any, max: Any) -> list[str]:
        lo, hi = _score(min), _score(max)
        with self.lock:
            return [m for m, s in self._sorted(name) if lo <= s <= hi]

    def zrange(self, name: str, start: int, end: int, desc: bool = False) -> list[str]:
        with self.lock:
            items = [m for m, _ in self._sorted(name)]
        if desc:
            items.reverse()
        n = len(items)
        s = start if start >= 0 else n + start
        e = end if end >= 0 else n + end
        s = max(s, 0)
        if e < s:
            return []
        return items[s : e + 1]

    def pipeline(self, transaction: bool = True) -> _FakePipeline:
        return _FakePipeline(self)


class _FakePipeline:
    """
    Без WATCH команды копятся до execute(). После watch() команды выполняются
    сразу, пока не вызван multi(); EXEC падает с WatchError, если ключ изменился.
    """

    def __init__(self, r: FakeRedis) -> None:
        self._r = r
        self._ops: list[tuple[str, tuple, dict]] = []
        self._watched: dict[str, int] | None = None
        self._buffering = True

    def __enter__(self) -> _FakePipeline:
        return self

    def __exit__(self, *exc: Any) -> None:
        self.reset()

    def reset(self) -> None:
        self._ops = []
        self._watched = None
        self._buffering = True

    def watch(self, *names: str) -> None:
        with self._r.lock:
            self._watched = {n: self._r.version(n) for n in names}
        self._buffering = False

    def unwatch(self) -> None:
        self._watched = None

    def multi(self) -> None:
        self._buffering = True

    def __getattr__(self, name: str):
        if not self._buffering:
            return getattr(self._r, name)

        def _queue(*args, **kwargs):
            self._ops.append((name, args, kwargs))
            return self

        return _queue

    def execute(self) -> list[Any]:
        hook, self._r.before_exec = self._r.before_exec, None
        if hook is not None:
            hook()
        with self._r.lock:
            watched = self._watched
            if watched is not None and any(self._r.version(n) != v for n, v in watched.items()):
                self.reset()
                raise WatchError("Watched variable changed.")
            out = [getattr(self._r, name)(*args, **kwargs) for name, args, kwargs in self._ops]
        self.reset()
        return out


class FakeS3:
    """
    S3-клиент в памяти: upload_fileobj / head_object / put_object.
    """

    def __init__(self, *, error: BaseException | None = None) -> None:
        self.objects: dict[tuple[str, str], dict[str, Any]] = {}
        self.error = error
        self.calls: list[str] = []
        self.head_error: BaseException | None = None

    def upload_fileobj(self, Fileobj, Bucket, Key, ExtraArgs=None, Config=None) -> None:
        self.calls.append("upload_fileobj")
        if self.error is not None:
            raise self.error
        parts = []
        while True:
            chunk = Fileobj.read(64 * 1024)
            if not chunk:
                break
            parts.append(chunk)
        self.objects[(Bucket, Key)] = {"Body": b"".join(parts), **(ExtraArgs or {})}

    def head_object(self, Bucket, Key) -> dict[str, Any]:
        if self.head_error is not None:
            raise self.head_error
        body = self.objects[(Bucket, Key)]["Body"]
        return {"ContentLength": len(body), "ETag": f'"{hashlib.md5(body).hexdigest()}"'}

    def put_object(self, Bucket, Key, Body, ContentType, ContentLength, Metadata) -> dict[str, Any]:
        self.calls.append("put_object")
        if self.error is not None:
            raise self.error
        self.objects[(Bucket, Key)] = {
            "Body": Body,
            "ContentType": ContentType,
            "ContentLength": ContentLength,
            "Metadata": Metadata,
        }
        return {"ETag": f'"{hashlib.md5(Body).hexdigest()}"'}


class ManualClock:
    def __init__(self, start_ms: int = 1_700_000_000_000) -> None:
        self.now = start_ms

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


@pytest.fixture()
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture()
def fake_s3() -> FakeS3:
    return FakeS3()


@pytest.fixture()
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture()
def job_queue(fake_redis: FakeRedis, clock: ManualClock) -> JobQueue:
    return JobQueue(
        fake_redis,
        name="test-recordings",
        concurrency=2,
        max_attempts=3,
        backoff_ms=2000,
        keep_completed=100,
        keep_failed=50,
        clock=clock,
    )


def make_webhook(files: list[dict[str, Any]], **overrides: Any) -> dict[str, Any]:
    body: dict[str, Any] = {
        "event": "session.recording_completed",
        "event_ts": 1_723_380_000,
        "payload": {
            "account_id": "acc-1",
            "object": {
                "session_id": "sess-1",
                "session_name": "meeting-1",
                "recording_files": files,
            },
        },
        "download_token": "dl-token",
    }
    body.update(overrides)
    return body


@pytest.fixture()
def webhook_factory():
    return make_webhook


@pytest.fixture()
def meeting_db():
    """
    SQLite в памяти с таблицей встреч; возвращает фабрику транзакций как db_session.
    """
    engine = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(engine)
    factory = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    yield session_scope(factory)
    engine.dispose()


@pytest.fixture()
def add_meeting(meeting_db):
    def _add(meeting_id: str = "meeting-1", **fields: Any) -> None:
        values = {"mentor_id": "mentor-1", "mentee_id": "mentee-1", **fields}
        with meeting_db() as s:
            s.add(Meeting(id=meeting_id, **values))

    return _add
