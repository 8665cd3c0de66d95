"""
Журнал принятых вебхуков записи (для инспекции через API).

- ограниченный размер (старые записи вытесняются)
- живёт в памяти процесса API Gateway, сбрасывается при рестарте и через clear()
"""

from __future__ import annotations

import threading
from collections import deque
from typing import Any

from recording_transfer_agent.common.config import get_settings


class RecordingsLog:
    def __init__(self, limit: int | None = None) -> None:
        self.limit = int(limit or get_settings().recordings_log_limit)
        self._items: deque[dict[str, Any]] = deque(maxlen=self.limit)
        self._lock = threading.Lock()

    def append(self, entry: dict[str, Any]) -> None:
        with self._lock:
            self._items.append(dict(entry))

    def list(self) -> list[dict[str, Any]]:
        with self._lock:
            return list(self._items)

    def clear(self) -> int:
        with self._lock:
            n = len(self._items)
            self._items.clear()
            return n

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)


_log: RecordingsLog | None = None


def get_recordings_log() -> RecordingsLog:
    global _log
    if _log is None:
        _log = RecordingsLog()
    return _log
