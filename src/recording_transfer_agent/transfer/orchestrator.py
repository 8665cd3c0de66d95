"""
Пакетный перенос файлов одной задачи.

Правила:
- по одному вызову аплоадера на файл, все файлы параллельно (fan-out = число файлов)
- settle-all: дожидаемся всех исходов, без fail-fast
- оркестратор не бросает исключений - только агрегат
"""

from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor
from typing import Protocol

from recording_transfer_agent.common.errors import UnexpectedError, error_kind, error_message
from recording_transfer_agent.common.logging import get_transfer_logger
from recording_transfer_agent.common.time import utc_now_iso
from recording_transfer_agent.contracts.webhook import RecordingFile
from recording_transfer_agent.transfer.outcomes import (
    BatchTransferResult,
    TransferFailure,
    TransferOutcome,
    TransferSuccess,
)

log = get_transfer_logger()


class FileUploader(Protocol):
    def transfer(
        self,
        source_url: str,
        session_id: str,
        file_name: str,
        file_type: str,
        auth_token: str | None,
        *,
        file_id: str | None = None,
    ) -> TransferOutcome: ...


class BatchTransferOrchestrator:
    def __init__(self, uploader: FileUploader, *, max_workers: int | None = None) -> None:
        self.uploader = uploader
        self.max_workers = max_workers

    def _transfer_one(self, f: RecordingFile, session_id: str, auth_token: str | None) -> TransferOutcome:
        return self.uploader.transfer(
            f.download_url or "",
            session_id,
            f.display_name(),
            f.recording_type or "unknown",
            auth_token,
            file_id=f.id,
        )

    @staticmethod
    def _settle(f: RecordingFile, fut: Future) -> TransferOutcome:
        try:
            outcome = fut.result()
        except Exception as e:
            err = UnexpectedError(error_message(e))
            return TransferFailure(file_id=f.id, error_kind=error_kind(err), message=err.message)

        if isinstance(outcome, TransferSuccess):
            return outcome.with_file(f)
        if isinstance(outcome, TransferFailure):
            if outcome.file_id is None:
                outcome.file_id = f.id
            return outcome
        return TransferFailure(
            file_id=f.id, error_kind=error_kind(UnexpectedError()), message="Неизвестный исход"
        )

    def transfer_all(
        self, files: list[RecordingFile], session_id: str, auth_token: str | None
    ) -> BatchTransferResult:
        log.info(
            "batch_transfer_started",
            extra={"payload": {"session_id": session_id, "files": len(files)}},
        )

        successes: list[TransferSuccess] = []
        failures: list[TransferFailure] = []

        if files:
            workers = self.max_workers or len(files)
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="transfer") as pool:
                futures = [
                    (f, pool.submit(self._transfer_one, f, session_id, auth_token)) for f in files
                ]
                for f, fut in futures:
                    outcome = self._settle(f, fut)
                    if isinstance(outcome, TransferSuccess):
                        successes.append(outcome)
                    else:
                        failures.append(outcome)

        log.info(
            "batch_transfer_finished",
            extra={
                "payload": {
                    "session_id": session_id,
                    "succeeded": len(successes),
                    "failed": len(failures),
                    "failed_files": [x.file_id for x in failures],
                }
            },
        )
        return BatchTransferResult(
            successes=successes,
            failures=failures,
            total_files=len(files),
            session_id=session_id,
            completed_at=utc_now_iso(),
        )
