"""
Обработчик задачи переноса записи.

Стадии:
    received → validating → uploading → reconciling → done

Правила:
- невалидная задача (не тот event, нет session_id, нет download_token) → ValidationError,
  пул помечает задачу failed без повторов
- пустой список файлов - не ошибка: задача завершается с filesProcessed = 0
- битое описание отдельного файла → этот файл в failedUploads (validation), остальные грузятся
- падение оркестратора целиком → все файлы в failedUploads, задача всё равно завершается
- reconciling только при хотя бы одной успешной загрузке; сбой БД не валит задачу
- во всех остальных случаях возвращается структурированный JobResult
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from recording_transfer_agent.common.config import get_settings
from recording_transfer_agent.common.errors import (
    ErrCode,
    ReconciliationError,
    UnexpectedError,
    ValidationError,
    error_kind,
    error_message,
)
from recording_transfer_agent.common.logging import get_project_logger
from recording_transfer_agent.common.metrics import track_stage_latency
from recording_transfer_agent.common.time import utc_now_iso
from recording_transfer_agent.contracts.webhook import (
    EVENT_RECORDING_COMPLETED,
    RecordingFile,
    RecordingWebhook,
)
from recording_transfer_agent.domain.enums import JobOutcome, JobStage
from recording_transfer_agent.domain.state_machine import outcome_for, transition
from recording_transfer_agent.queue.tasks import RecordingTransferTask
from recording_transfer_agent.services.meeting_records import MeetingRecordReconciler
from recording_transfer_agent.transfer.orchestrator import BatchTransferOrchestrator
from recording_transfer_agent.transfer.outcomes import (
    BatchTransferResult,
    TransferFailure,
    TransferSuccess,
)

log = get_project_logger()


# =============================================================================
# РЕЗУЛЬТАТ ЗАДАЧИ
# =============================================================================
@dataclass
class JobResult:
    session_id: str | None
    account_id: str | None
    files_processed: int
    failed_files: int
    total_files: int
    successful_uploads: list[dict[str, Any]] = field(default_factory=list)
    failed_uploads: list[dict[str, Any]] = field(default_factory=list)
    total_size: int = 0
    total_duration: int = 0
    processing_time: str = ""
    database_updated: bool = False
    status: JobOutcome = JobOutcome.empty

    def to_dict(self) -> dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "accountId": self.account_id,
            "filesProcessed": self.files_processed,
            "failedFiles": self.failed_files,
            "totalFiles": self.total_files,
            "successfulUploads": list(self.successful_uploads),
            "failedUploads": list(self.failed_uploads),
            "totalSize": self.total_size,
            "totalDuration": self.total_duration,
            "processingTime": self.processing_time,
            "databaseUpdated": self.database_updated,
            "status": self.status.value,
        }


def select_primary(
    successes: list[TransferSuccess], preferred_type: str | None = None
) -> TransferSuccess | None:
    """
    Основная запись: предпочитаем заданный тип, иначе первая успешная.
    """
    if not successes:
        return None
    preferred_type = preferred_type or get_settings().primary_recording_type
    for s in successes:
        if s.recording_type == preferred_type:
            return s
    return successes[0]


# =============================================================================
# WORKER
# =============================================================================
class TransferWorker:
    def __init__(
        self,
        orchestrator: BatchTransferOrchestrator,
        reconciler: MeetingRecordReconciler | None = None,
    ) -> None:
        self.orchestrator = orchestrator
        self.reconciler = reconciler

    # -------------------------------------------------------------------------
    # validating
    # -------------------------------------------------------------------------
    @staticmethod
    def _validate(raw: dict[str, Any]) -> RecordingWebhook:
        try:
            webhook = RecordingWebhook.model_validate(raw)
        except PydanticValidationError as e:
            raise ValidationError(
                "Некорректный формат вебхука", details={"errors": e.error_count()}
            ) from e

        if webhook.event != EVENT_RECORDING_COMPLETED:
            raise ValidationError(
                f"Неподдерживаемый тип события: {webhook.event}", details={"event": webhook.event}
            )
        if not webhook.session_id:
            raise ValidationError("Нет session_id в вебхуке")
        if not webhook.download_token:
            raise ValidationError("Нет download_token в вебхуке")
        return webhook

    # -------------------------------------------------------------------------
    # uploading
    # -------------------------------------------------------------------------
    def _upload(self, webhook: RecordingWebhook) -> BatchTransferResult:
        files = webhook.files
        rejected = [
            TransferFailure(file_id=r.file_id, error_kind=ErrCode.VALIDATION, message=r.reason)
            for r in webhook.rejected_files
        ]
        if rejected:
            log.warning(
                "recording_files_rejected",
                extra={
                    "payload": {
                        "session_id": webhook.session_id,
                        "file_ids": [r.file_id for r in rejected],
                    }
                },
            )
        batch = self._transfer_files(webhook, files)
        return replace(
            batch,
            failures=batch.failures + rejected,
            total_files=batch.total_files + len(rejected),
        )

    def _transfer_files(self, webhook: RecordingWebhook, files: list[RecordingFile]) -> BatchTransferResult:
        try:
            return self.orchestrator.transfer_all(
                files, webhook.session_id or "", webhook.download_token
            )
        except Exception as e:
            err = UnexpectedError(f"Сбой пакетного переноса: {error_message(e, 300)}")
            log.error(
                "batch_transfer_crashed",
                extra={"payload": {"session_id": webhook.session_id, "err": err.message}},
            )
            return BatchTransferResult(
                successes=[],
                failures=[
                    TransferFailure(file_id=f.id, error_kind=error_kind(err), message=err.message)
                    for f in files
                ],
                total_files=len(files),
                session_id=webhook.session_id,
                completed_at=utc_now_iso(),
            )

    # -------------------------------------------------------------------------
    # reconciling
    # -------------------------------------------------------------------------
    def _reconcile(self, webhook: RecordingWebhook, successes: list[TransferSuccess]) -> bool:
        meeting_id = webhook.meeting_identifier
        if self.reconciler is None:
            log.info(
                "reconciliation_skipped",
                extra={"payload": {"session_id": webhook.session_id, "reason": "no_reconciler"}},
            )
            return False
        if not meeting_id:
            log.warning(
                "reconciliation_skipped",
                extra={"payload": {"session_id": webhook.session_id, "reason": "no_meeting_id"}},
            )
            return False

        primary = select_primary(successes)
        if primary is None:
            return False

        try:
            updated = self.reconciler.update_recording(
                meeting_id,
                recording_url=primary.destination_url,
                status=get_settings().recording_status_completed,
            )
        except Exception as e:
            err = e if isinstance(e, ReconciliationError) else ReconciliationError(error_message(e))
            log.error(
                "meeting_reconciliation_failed",
                extra={
                    "payload": {
                        "meeting_id": meeting_id,
                        "session_id": webhook.session_id,
                        "err": error_message(err, 300),
                    }
                },
            )
            return False

        if not updated:
            log.warning(
                "meeting_not_found",
                extra={"payload": {"meeting_id": meeting_id, "session_id": webhook.session_id}},
            )
            return False
        return True

    # -------------------------------------------------------------------------
    # done
    # -------------------------------------------------------------------------
    @staticmethod
    def _build_result(
        webhook: RecordingWebhook, batch: BatchTransferResult | None, database_updated: bool
    ) -> JobResult:
        successes = batch.successes if batch else []
        failures = batch.failures if batch else []
        return JobResult(
            session_id=webhook.session_id,
            account_id=webhook.account_id,
            files_processed=len(successes),
            failed_files=len(failures),
            total_files=batch.total_files if batch else 0,
            successful_uploads=[s.to_result_entry() for s in successes],
            failed_uploads=[f.to_result_entry() for f in failures],
            total_size=sum(s.file_size for s in successes),
            total_duration=int(sum(s.duration or 0 for s in successes)),
            processing_time=utc_now_iso(),
            database_updated=database_updated,
            status=outcome_for(succeeded_files=len(successes), failed_files=len(failures)),
        )

    def process(self, data: dict[str, Any]) -> JobResult:
        # received
        task = RecordingTransferTask.from_payload(data)

        stage = JobStage.validating
        with track_stage_latency(stage.value):
            webhook = self._validate(task.webhook)
        files = webhook.files
        total_files = len(files) + len(webhook.rejected_files)
        log.info(
            "transfer_job_received",
            extra={
                "payload": {
                    "event_id": task.event_id,
                    "session_id": webhook.session_id,
                    "meeting_id": webhook.meeting_identifier,
                    "files": total_files,
                }
            },
        )

        step = transition(stage, total_files=total_files)
        if step.next_stage == JobStage.done:
            log.info(
                "transfer_job_empty",
                extra={"payload": {"session_id": webhook.session_id, "reason": step.reason}},
            )
            return self._build_result(webhook, None, database_updated=False)

        stage = JobStage.uploading
        with track_stage_latency(stage.value):
            batch = self._upload(webhook)

        database_updated = False
        step = transition(stage, succeeded_files=len(batch.successes))
        if step.next_stage == JobStage.reconciling:
            stage = JobStage.reconciling
            with track_stage_latency(stage.value):
                database_updated = self._reconcile(webhook, batch.successes)

        result = self._build_result(webhook, batch, database_updated)
        log.info(
            "transfer_job_done",
            extra={
                "payload": {
                    "session_id": result.session_id,
                    "status": result.status.value,
                    "processed": result.files_processed,
                    "failed": result.failed_files,
                    "total_size": result.total_size,
                    "database_updated": result.database_updated,
                }
            },
        )
        return result


def build_transfer_worker(*, with_reconciler: bool = True) -> TransferWorker:
    """
    Сборка воркера с настройками по умолчанию (S3 + БД встреч).
    """
    from recording_transfer_agent.services.meeting_records import SqlMeetingRecordReconciler
    from recording_transfer_agent.transfer.uploader import ObjectStoreUploader

    orchestrator = BatchTransferOrchestrator(ObjectStoreUploader())
    reconciler = SqlMeetingRecordReconciler() if with_reconciler else None
    return TransferWorker(orchestrator, reconciler)
