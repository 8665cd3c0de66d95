"""
Результаты переноса файлов.

- TransferSuccess / TransferFailure - исход одного файла (ошибка как значение)
- BatchTransferResult - агрегат по задаче: successes + failures == total_files
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Union

from recording_transfer_agent.contracts.webhook import RecordingFile


@dataclass
class TransferSuccess:
    destination_key: str
    destination_url: str
    bytes_transferred: int
    etag: str | None = None
    bucket: str | None = None
    content_type: str | None = None
    uploaded_at: str | None = None
    upload_duration_ms: int = 0

    # метаданные исходного файла (нужны для агрегатов задачи)
    original_file_id: str | None = None
    recording_type: str | None = None
    recording_start: str | None = None
    recording_end: str | None = None
    duration: float | None = None
    declared_size: int | None = None

    success: bool = field(default=True, init=False)

    def with_file(self, f: RecordingFile) -> TransferSuccess:
        return replace(
            self,
            original_file_id=f.id,
            recording_type=f.recording_type,
            recording_start=f.recording_start,
            recording_end=f.recording_end,
            duration=f.duration,
            declared_size=f.file_size,
        )

    @property
    def file_size(self) -> int:
        return self.bytes_transferred or int(self.declared_size or 0)

    def to_result_entry(self) -> dict[str, Any]:
        return {
            "s3Url": self.destination_url,
            "s3Key": self.destination_key,
            "originalFileId": self.original_file_id,
            "recordingType": self.recording_type,
            "fileSize": self.file_size,
            "duration": self.duration,
            "etag": self.etag,
        }


@dataclass
class TransferFailure:
    file_id: str | None
    error_kind: str
    message: str

    success: bool = field(default=False, init=False)

    def to_result_entry(self) -> dict[str, Any]:
        return {"fileId": self.file_id, "error": self.message, "errorKind": self.error_kind}


TransferOutcome = Union[TransferSuccess, TransferFailure]


@dataclass
class BatchTransferResult:
    successes: list[TransferSuccess]
    failures: list[TransferFailure]
    total_files: int
    session_id: str | None
    completed_at: str
