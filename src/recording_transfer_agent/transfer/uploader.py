"""
Перенос одного файла записи в object storage.

Алгоритм:
- строим детерминированный ключ назначения
- открываем потоковое чтение источника (Bearer-токен платформы)
- пишем в хранилище выбранной стратегией (по умолчанию streaming multipart)
- прикрепляем метаданные объекта

Важно:
- аплоадер ничего не знает про задачи и встречи
- исключения не выходят наружу: любой сбой возвращается как TransferFailure
"""

from __future__ import annotations

import time

from recording_transfer_agent.common.config import get_settings
from recording_transfer_agent.common.errors import (
    AppError,
    UnexpectedError,
    error_kind,
    error_message,
)
from recording_transfer_agent.common.logging import get_transfer_logger
from recording_transfer_agent.common.metrics import record_file_transfer
from recording_transfer_agent.common.time import utc_now_iso
from recording_transfer_agent.transfer.keys import (
    build_destination_key,
    content_type_for,
    destination_url,
)
from recording_transfer_agent.transfer.outcomes import (
    TransferFailure,
    TransferOutcome,
    TransferSuccess,
)
from recording_transfer_agent.transfer.sources import open_source
from recording_transfer_agent.transfer.strategies import UploadStrategy, build_upload_strategy

log = get_transfer_logger()


class ObjectStoreUploader:
    def __init__(
        self,
        strategy: UploadStrategy | None = None,
        *,
        bucket: str | None = None,
        folder_prefix: str | None = None,
        timeout_sec: float | None = None,
        source_opener=open_source,
    ) -> None:
        s = get_settings()
        self.strategy = strategy or build_upload_strategy()
        self.bucket = bucket or s.s3_bucket_name
        self.folder_prefix = folder_prefix if folder_prefix is not None else s.s3_folder_prefix
        self.timeout_sec = float(timeout_sec if timeout_sec is not None else s.upload_timeout_sec)
        self._open_source = source_opener

    def _metadata(
        self, *, session_id: str, file_type: str, file_name: str, size: int | None
    ) -> dict[str, str]:
        # S3 metadata - только ASCII-строки
        return {
            "session-id": str(session_id),
            "file-type": str(file_type),
            "original-name": file_name.encode("ascii", "replace").decode("ascii"),
            "uploaded-at": utc_now_iso(),
            "source": get_settings().upload_source_tag,
            "file-size": str(size) if size else "unknown",
        }

    def transfer(
        self,
        source_url: str,
        session_id: str,
        file_name: str,
        file_type: str,
        auth_token: str | None,
        *,
        file_id: str | None = None,
    ) -> TransferOutcome:
        s = get_settings()
        started = time.perf_counter()
        key = build_destination_key(
            session_id, file_name, file_type, folder_prefix=self.folder_prefix
        )
        log.info(
            "file_transfer_started",
            extra={
                "payload": {
                    "session_id": session_id,
                    "file_id": file_id,
                    "file_type": file_type,
                    "key": key,
                    "strategy": self.strategy.name,
                }
            },
        )

        try:
            with self._open_source(
                source_url,
                auth_token,
                timeout_sec=self.timeout_sec,
                connect_timeout_sec=s.upload_connect_timeout_sec,
                chunk_size=s.upload_chunk_size_bytes,
                user_agent=s.upload_user_agent,
            ) as source:
                upload_started = time.perf_counter()
                receipt = self.strategy.upload(
                    source,
                    bucket=self.bucket,
                    key=key,
                    content_type=content_type_for(file_name),
                    metadata=self._metadata(
                        session_id=session_id,
                        file_type=file_type,
                        file_name=file_name,
                        size=source.content_length,
                    ),
                )
                upload_ms = int((time.perf_counter() - upload_started) * 1000)
        except Exception as e:
            err = e if isinstance(e, AppError) else UnexpectedError(f"Ошибка загрузки: {e}")
            elapsed_ms = (time.perf_counter() - started) * 1000
            record_file_transfer(
                success=False,
                error_kind=error_kind(err),
                strategy=self.strategy.name,
                elapsed_ms=elapsed_ms,
                size=0,
            )
            log.warning(
                "file_transfer_failed",
                extra={
                    "payload": {
                        "session_id": session_id,
                        "file_id": file_id,
                        "key": key,
                        "error_kind": error_kind(err),
                        "err": error_message(err, 300),
                        "elapsed_ms": int(elapsed_ms),
                    }
                },
            )
            return TransferFailure(
                file_id=file_id, error_kind=error_kind(err), message=error_message(err)
            )

        elapsed_ms = (time.perf_counter() - started) * 1000
        record_file_transfer(
            success=True,
            error_kind=None,
            strategy=self.strategy.name,
            elapsed_ms=elapsed_ms,
            size=receipt.bytes_written,
        )
        url = destination_url(key, bucket=self.bucket)
        log.info(
            "file_transfer_done",
            extra={
                "payload": {
                    "session_id": session_id,
                    "file_id": file_id,
                    "key": key,
                    "bytes": receipt.bytes_written,
                    "upload_ms": upload_ms,
                    "elapsed_ms": int(elapsed_ms),
                }
            },
        )
        return TransferSuccess(
            destination_key=key,
            destination_url=url,
            bytes_transferred=receipt.bytes_written,
            etag=receipt.etag,
            bucket=self.bucket,
            content_type=content_type_for(file_name),
            uploaded_at=utc_now_iso(),
            upload_duration_ms=upload_ms,
            original_file_id=file_id,
            recording_type=file_type,
        )
