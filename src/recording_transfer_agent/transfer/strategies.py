"""
Стратегии записи в object storage (S3 / S3-совместимое).

- StreamingUploadStrategy (основная): upload_fileobj + multipart,
  память ограничена part_size * max_concurrency независимо от размера файла
- BufferedUploadStrategy (запасная): читает файл целиком и делает один put_object,
  годится только для маленьких файлов и тестовых фикстур

Выбор стратегии - настройка UPLOAD_STRATEGY, оркестратор про неё не знает.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol

import boto3
from boto3.exceptions import S3UploadFailedError
from boto3.s3.transfer import TransferConfig
from botocore.exceptions import BotoCoreError, ClientError, NoCredentialsError

from recording_transfer_agent.common.config import get_settings
from recording_transfer_agent.common.errors import (
    AppError,
    ConfigError,
    DestinationAccessError,
    DestinationNotFoundError,
    TransferError,
)
from recording_transfer_agent.common.logging import get_transfer_logger
from recording_transfer_agent.transfer.sources import SourceStream

log = get_transfer_logger()

MB = 1024 * 1024

_NOT_FOUND_CODES = {"NoSuchBucket"}
_ACCESS_CODES = {
    "AccessDenied",
    "AllAccessDisabled",
    "AccountProblem",
    "InvalidAccessKeyId",
    "SignatureDoesNotMatch",
    "ExpiredToken",
    "InvalidToken",
}


@dataclass
class UploadReceipt:
    bytes_written: int
    etag: str | None = None


class UploadStrategy(Protocol):
    name: str

    def upload(
        self,
        source: SourceStream,
        *,
        bucket: str,
        key: str,
        content_type: str,
        metadata: dict[str, str],
    ) -> UploadReceipt:
        """Записать поток в bucket/key и вернуть квитанцию."""
        ...


def build_s3_client() -> Any:
    s = get_settings()
    return boto3.client(
        "s3",
        region_name=s.aws_region,
        endpoint_url=s.s3_endpoint_url or None,
        aws_access_key_id=s.aws_access_key_id or None,
        aws_secret_access_key=s.aws_secret_access_key or None,
    )


def _client_error_code(err: BaseException) -> str:
    if isinstance(err, ClientError):
        return str(err.response.get("Error", {}).get("Code", ""))
    return ""


def translate_storage_error(err: BaseException) -> AppError:
    """
    Ошибка boto3/botocore → вид ошибки назначения.
    Наши AppError (например, обрыв источника внутри upload_fileobj) пробрасываются как есть.
    """
    if isinstance(err, AppError):
        return err

    # S3UploadFailedError оборачивает исходный ClientError
    cause: BaseException = err
    if isinstance(err, S3UploadFailedError):
        inner = err.__cause__ or err.__context__
        if inner is not None:
            cause = inner

    if isinstance(cause, AppError):
        return cause

    code = _client_error_code(cause)
    text = str(err)
    bucket_hint = {"code": code} if code else None

    if code in _NOT_FOUND_CODES or "NoSuchBucket" in text:
        return DestinationNotFoundError(
            f"Бакет не найден: {get_settings().s3_bucket_name}", details=bucket_hint
        )
    if code in _ACCESS_CODES or "AccessDenied" in text or isinstance(cause, NoCredentialsError):
        return DestinationAccessError(details=bucket_hint)
    return TransferError(f"Ошибка загрузки: {text[:300]}", details=bucket_hint)


# =============================================================================
# STREAMING
# =============================================================================
class StreamingUploadStrategy:
    name = "streaming"

    def __init__(self, client: Any, *, transfer_config: TransferConfig | None = None) -> None:
        s = get_settings()
        self.client = client
        self.transfer_config = transfer_config or TransferConfig(
            multipart_threshold=max(5, s.upload_multipart_threshold_mb) * MB,
            multipart_chunksize=max(5, s.upload_multipart_chunk_mb) * MB,
            max_concurrency=max(1, s.upload_max_concurrency),
            use_threads=s.upload_max_concurrency > 1,
        )

    def upload(
        self,
        source: SourceStream,
        *,
        bucket: str,
        key: str,
        content_type: str,
        metadata: dict[str, str],
    ) -> UploadReceipt:
        try:
            self.client.upload_fileobj(
                Fileobj=source,
                Bucket=bucket,
                Key=key,
                ExtraArgs={"ContentType": content_type, "Metadata": metadata},
                Config=self.transfer_config,
            )
        except (ClientError, BotoCoreError, S3UploadFailedError) as e:
            raise translate_storage_error(e) from e

        # объект уже записан: без права GetObject размер берём из прочитанного потока
        try:
            head = self.client.head_object(Bucket=bucket, Key=key)
        except (ClientError, BotoCoreError) as e:
            log.warning(
                "upload_head_unavailable",
                extra={
                    "payload": {
                        "bucket": bucket,
                        "key": key,
                        "code": _client_error_code(e) or type(e).__name__,
                        "bytes": source.bytes_read,
                    }
                },
            )
            return UploadReceipt(bytes_written=source.bytes_read, etag=None)

        size = head.get("ContentLength")
        return UploadReceipt(
            bytes_written=int(size) if size is not None else source.bytes_read,
            etag=head.get("ETag"),
        )


# =============================================================================
# BUFFERED
# =============================================================================
class BufferedUploadStrategy:
    name = "buffered"

    def __init__(self, client: Any) -> None:
        self.client = client

    def upload(
        self,
        source: SourceStream,
        *,
        bucket: str,
        key: str,
        content_type: str,
        metadata: dict[str, str],
    ) -> UploadReceipt:
        body = source.read()
        try:
            resp = self.client.put_object(
                Bucket=bucket,
                Key=key,
                Body=body,
                ContentType=content_type,
                ContentLength=len(body),
                Metadata=metadata,
            )
        except (ClientError, BotoCoreError) as e:
            raise translate_storage_error(e) from e
        return UploadReceipt(bytes_written=len(body), etag=(resp or {}).get("ETag"))


def build_upload_strategy(name: str | None = None, *, client: Any | None = None) -> UploadStrategy:
    s = get_settings()
    name = (name or s.upload_strategy or "streaming").strip().lower()
    client = client if client is not None else build_s3_client()
    if name == "streaming":
        return StreamingUploadStrategy(client)
    if name == "buffered":
        return BufferedUploadStrategy(client)
    raise ConfigError(f"Неизвестная стратегия загрузки: {name}")
