"""
Контракт задачи переноса записи в очереди.

Правила:
- payload должен быть JSON-совместимым
- schema_version обязателен (эволюция контракта без остановки воркеров)
- event_id сквозной: журнал вебхуков, логи воркера, результат задачи
"""

from __future__ import annotations

import secrets
from dataclasses import asdict, dataclass
from typing import Any, Literal

from recording_transfer_agent.common.errors import ValidationError
from recording_transfer_agent.common.time import utc_now, utc_now_iso

QUEUE_SCHEMA_VERSION = "v1"

SchemaV1 = Literal["v1"]


def new_event_id(prefix: str = "rec") -> str:
    """
    Формат: <prefix>_<UTCYYYYMMDDHHMMSS>_<rand>
    """
    return f"{prefix}_{utc_now().strftime('%Y%m%d%H%M%S')}_{secrets.token_hex(6)}"


@dataclass
class RecordingTransferTask:
    schema_version: SchemaV1
    event_id: str
    webhook: dict[str, Any]
    timestamp: str

    @classmethod
    def create(cls, webhook: dict[str, Any]) -> RecordingTransferTask:
        return cls(
            schema_version=QUEUE_SCHEMA_VERSION,
            event_id=new_event_id(),
            webhook=webhook,
            timestamp=utc_now_iso(),
        )

    def to_payload(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> RecordingTransferTask:
        if not isinstance(data, dict):
            raise ValidationError("Задача должна быть JSON-объектом")
        webhook = data.get("webhook")
        if not isinstance(webhook, dict):
            raise ValidationError("В задаче нет данных вебхука")
        return cls(
            schema_version=str(data.get("schema_version") or QUEUE_SCHEMA_VERSION),  # type: ignore[arg-type]
            event_id=str(data.get("event_id") or ""),
            webhook=webhook,
            timestamp=str(data.get("timestamp") or ""),
        )
