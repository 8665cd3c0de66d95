"""
Логирование проекта.

- stdout, JSON по умолчанию; LOG_FORMAT=text для локальной отладки
- структурированные данные передаются через extra={"payload": {...}}
- в каждой записи имя сервиса и потока: задачи очереди выполняются в пуле потоков,
  по threadName видно, какие строки относятся к одной задаче
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import UTC, datetime
from typing import Any

from recording_transfer_agent.common.config import get_settings


def _record_payload(record: logging.LogRecord) -> dict[str, Any] | None:
    payload = getattr(record, "payload", None)
    return payload if isinstance(payload, dict) else None


class JsonFormatter(logging.Formatter):
    def __init__(self, service: str) -> None:
        super().__init__()
        self.service = service

    def format(self, record: logging.LogRecord) -> str:
        out: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, UTC).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "service": self.service,
            "logger": record.name,
            "thread": record.threadName,
            "msg": record.getMessage(),
        }
        payload = _record_payload(record)
        if payload is not None:
            out["payload"] = payload
        if record.exc_info:
            out["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(out, ensure_ascii=False, default=str)


class TextFormatter(logging.Formatter):
    def __init__(self) -> None:
        super().__init__(
            fmt="%(asctime)s %(levelname)s %(name)s [%(threadName)s]: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        payload = _record_payload(record)
        if payload:
            line += " " + json.dumps(payload, ensure_ascii=False, default=str)
        return line


def setup_logging(service: str | None = None) -> None:
    s = get_settings()
    root = logging.getLogger()
    level = getattr(logging, (s.log_level or "INFO").upper(), logging.INFO)
    root.setLevel(level)

    # повторный вызов (reload uvicorn, тесты) не добавляет хэндлеры
    if root.handlers:
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    if (s.log_format or "").lower() == "text":
        handler.setFormatter(TextFormatter())
    else:
        handler.setFormatter(JsonFormatter(service or s.service_name))
    root.addHandler(handler)

    logging.getLogger("uvicorn.error").setLevel(level)
    logging.getLogger("uvicorn.access").setLevel(level)
    # boto3/urllib3 на DEBUG пишут каждый HTTP-запрос multipart-загрузки
    for noisy in ("botocore", "boto3", "s3transfer", "urllib3"):
        logging.getLogger(noisy).setLevel(max(level, logging.INFO))


def get_project_logger(name: str = "recording-transfer-agent") -> logging.Logger:
    return logging.getLogger(name)


def get_transfer_logger() -> logging.Logger:
    """
    Отдельный логгер для переноса файлов (удобно фильтровать/маршрутизировать).
    """
    return logging.getLogger("recording-transfer-agent.transfer")
