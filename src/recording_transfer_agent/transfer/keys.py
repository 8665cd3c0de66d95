"""
Ключи и адреса объектов в хранилище.

Формат ключа:
    {folderPrefix}{YYYY-MM-DD}/{sessionId}/{fileType}/{sanitizedFileName}

- ключ детерминирован: повторный запуск в тот же день перезаписывает тот же объект
- имя файла санитизируется: всё вне [A-Za-z0-9.-] заменяется на "_"
"""

from __future__ import annotations

import re
from datetime import date

from recording_transfer_agent.common.config import get_settings
from recording_transfer_agent.common.time import utc_today

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9.-]")

_CONTENT_TYPES = {
    "mp4": "video/mp4",
    "mov": "video/quicktime",
    "avi": "video/x-msvideo",
    "mkv": "video/x-matroska",
    "wmv": "video/x-ms-wmv",
    "flv": "video/x-flv",
    "webm": "video/webm",
    "m4v": "video/x-m4v",
    "mp3": "audio/mpeg",
    "wav": "audio/wav",
    "aac": "audio/aac",
    "ogg": "audio/ogg",
    "m4a": "audio/mp4",
    "pdf": "application/pdf",
    "txt": "text/plain",
    "vtt": "text/vtt",
    "json": "application/json",
}

DEFAULT_CONTENT_TYPE = "application/octet-stream"


def sanitize_file_name(file_name: str | None) -> str:
    return _UNSAFE_CHARS.sub("_", file_name or "")


def _normalize_prefix(prefix: str | None) -> str:
    prefix = (prefix or "").strip().lstrip("/")
    if prefix and not prefix.endswith("/"):
        prefix += "/"
    return prefix


def build_destination_key(
    session_id: str,
    file_name: str,
    file_type: str,
    *,
    folder_prefix: str | None = None,
    today: date | None = None,
) -> str:
    if folder_prefix is None:
        folder_prefix = get_settings().s3_folder_prefix
    day = (today or utc_today()).isoformat()
    return (
        f"{_normalize_prefix(folder_prefix)}{day}/{session_id}/{file_type}/"
        f"{sanitize_file_name(file_name)}"
    )


def destination_url(
    key: str,
    *,
    bucket: str | None = None,
    region: str | None = None,
    endpoint_url: str | None = None,
) -> str:
    s = get_settings()
    bucket = bucket or s.s3_bucket_name
    region = region or s.aws_region
    endpoint_url = endpoint_url if endpoint_url is not None else s.s3_endpoint_url
    if endpoint_url:
        # S3-совместимые хранилища (MinIO и т.п.) - path-style адрес
        return f"{endpoint_url.rstrip('/')}/{bucket}/{key}"
    return f"https://{bucket}.s3.{region}.amazonaws.com/{key}"


def content_type_for(file_name: str | None) -> str:
    name = (file_name or "").lower()
    if "." not in name:
        return DEFAULT_CONTENT_TYPE
    return _CONTENT_TYPES.get(name.rsplit(".", 1)[-1], DEFAULT_CONTENT_TYPE)
