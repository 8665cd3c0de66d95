"""
Контракт входящего вебхука "запись сессии готова".

Пример:
    {
      "event": "session.recording_completed",
      "event_ts": 1723380000,
      "payload": {
        "account_id": "...",
        "object": {
          "session_id": "...",       # временный id сессии
          "session_name": "...",     # постоянный id встречи (ключ в БД)
          "recording_files": [{...}]
        }
      },
      "download_token": "..."
    }

Правила:
- неизвестные поля сохраняем (extra="allow"), платформа добавляет их без предупреждения
- модели неизменяемые: файлы задачи не меняются после постановки в очередь
- recording_files разбираются по одному: битое описание файла не отменяет остальные
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

EVENT_RECORDING_COMPLETED = "session.recording_completed"
EVENT_URL_VALIDATION = "endpoint.url_validation"


class RecordingFile(BaseModel):
    model_config = ConfigDict(frozen=True, extra="allow")

    id: str | None = None
    recording_type: str | None = None
    file_name: str | None = None
    file_size: int | None = None
    download_url: str | None = None
    recording_start: str | None = None
    recording_end: str | None = None
    duration: float | None = None

    @field_validator("id", mode="before")
    @classmethod
    def _id_as_str(cls, v: Any) -> Any:
        return None if v is None else str(v)

    def display_name(self) -> str:
        return self.file_name or f"recording_{self.id}.mp4"


@dataclass(frozen=True)
class RejectedFile:
    file_id: str | None
    reason: str


def parse_recording_files(raw: list[Any]) -> tuple[list[RecordingFile], list[RejectedFile]]:
    files: list[RecordingFile] = []
    rejected: list[RejectedFile] = []
    for entry in raw:
        try:
            files.append(RecordingFile.model_validate(entry))
        except PydanticValidationError as e:
            first = e.errors()[0]
            field = ".".join(str(p) for p in first.get("loc", ())) or "file"
            file_id = entry.get("id") if isinstance(entry, dict) else None
            rejected.append(
                RejectedFile(
                    file_id=None if file_id is None else str(file_id),
                    reason=f"Некорректное описание файла: {field}: {first.get('msg', '')}",
                )
            )
    return files, rejected


class WebhookObject(BaseModel):
    model_config = ConfigDict(frozen=True, extra="allow")

    session_id: str | None = None
    session_name: str | None = None
    # сырые записи, разбираются в parse_recording_files
    recording_files: list[Any] = Field(default_factory=list)


class WebhookPayload(BaseModel):
    model_config = ConfigDict(frozen=True, extra="allow")

    account_id: str | None = None
    object: WebhookObject = Field(default_factory=WebhookObject)


class RecordingWebhook(BaseModel):
    model_config = ConfigDict(frozen=True, extra="allow")

    event: str | None = None
    event_ts: float | None = None
    payload: WebhookPayload = Field(default_factory=WebhookPayload)
    download_token: str | None = None

    @property
    def session_id(self) -> str | None:
        return self.payload.object.session_id

    @property
    def meeting_identifier(self) -> str | None:
        return self.payload.object.session_name

    @property
    def account_id(self) -> str | None:
        return self.payload.account_id

    @property
    def files(self) -> list[RecordingFile]:
        return parse_recording_files(self.payload.object.recording_files)[0]

    @property
    def rejected_files(self) -> list[RejectedFile]:
        return parse_recording_files(self.payload.object.recording_files)[1]
