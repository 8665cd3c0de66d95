"""
Чтение исходного файла записи.

Назначение:
- потоковое чтение с платформы встреч (HTTP + Bearer-токен) без загрузки файла в память
- data: URL для тестовых фикстур (декодируется в память, файлы маленькие)
- единый дедлайн на весь файл: превышение = SourceNetworkError только для этого файла

Объект SourceStream - file-like (read/seekable), его напрямую принимает boto3 upload_fileobj.
"""

from __future__ import annotations

import base64
import io
import time
from collections.abc import Iterator
from urllib.parse import unquote_to_bytes

import requests

from recording_transfer_agent.common.errors import (
    SourceAuthError,
    SourceNetworkError,
    SourceNotFoundError,
    TransferError,
    ValidationError,
)

DEFAULT_CHUNK_SIZE = 1024 * 1024


class SourceStream:
    """
    Файловый интерфейс поверх итератора чанков.

    Память ограничена размером запрошенного read() + один чанк источника.
    """

    def __init__(
        self,
        chunks: Iterator[bytes],
        *,
        content_length: int | None,
        content_type: str | None,
        deadline: float,
        on_close=None,
    ) -> None:
        self._chunks = chunks
        self._buffer = bytearray()
        self._exhausted = False
        self._on_close = on_close
        self._deadline = deadline
        self.content_length = content_length
        self.content_type = content_type
        self.bytes_read = 0
        self.closed = False

    def _check_deadline(self) -> None:
        if time.monotonic() > self._deadline:
            raise SourceNetworkError("Превышено время скачивания файла", details={"reason": "timeout"})

    def _fill(self, size: int) -> None:
        while not self._exhausted and (size < 0 or len(self._buffer) < size):
            self._check_deadline()
            try:
                chunk = next(self._chunks)
            except StopIteration:
                self._exhausted = True
                break
            except requests.RequestException as e:
                raise SourceNetworkError(
                    "Сетевая ошибка при чтении источника", details={"err": str(e)[:300]}
                ) from e
            if chunk:
                self._buffer.extend(chunk)

    def read(self, size: int = -1) -> bytes:
        if self.closed:
            raise ValueError("read from closed source")
        if size is None:
            size = -1
        self._fill(size)
        if size < 0 or size >= len(self._buffer):
            data = bytes(self._buffer)
            self._buffer.clear()
        else:
            data = bytes(self._buffer[:size])
            del self._buffer[:size]
        self.bytes_read += len(data)
        return data

    def readable(self) -> bool:
        return True

    def seekable(self) -> bool:
        return False

    def tell(self) -> int:
        return self.bytes_read

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._buffer.clear()
        if self._on_close is not None:
            self._on_close()

    def __enter__(self) -> SourceStream:
        return self

    def __exit__(self, *exc) -> None:
        self.close()


def _parse_content_length(raw: str | None) -> int | None:
    try:
        value = int(raw) if raw is not None else None
    except (TypeError, ValueError):
        return None
    return value if value is not None and value > 0 else None


def _open_data_url(url: str, *, deadline: float) -> SourceStream:
    header, sep, body = url.partition(",")
    if not sep:
        raise ValidationError("Некорректный data: URL")
    meta = header[len("data:"):]
    try:
        if meta.endswith(";base64"):
            data = base64.b64decode(body)
            meta = meta[: -len(";base64")]
        else:
            data = unquote_to_bytes(body)
    except ValueError as e:
        raise ValidationError("Некорректный data: URL", details={"err": str(e)[:200]}) from e

    buf = io.BytesIO(data)

    def _chunks() -> Iterator[bytes]:
        while True:
            chunk = buf.read(DEFAULT_CHUNK_SIZE)
            if not chunk:
                return
            yield chunk

    return SourceStream(
        _chunks(),
        content_length=len(data),
        content_type=meta or "application/octet-stream",
        deadline=deadline,
        on_close=buf.close,
    )


def _raise_for_status(resp: requests.Response) -> None:
    code = resp.status_code
    if code < 400:
        return
    details = {"status": code}
    if code in (401, 403):
        raise SourceAuthError(details=details)
    if code in (404, 410):
        raise SourceNotFoundError(details=details)
    if code >= 500 or code in (408, 429):
        raise SourceNetworkError(f"Источник ответил HTTP {code}", details=details)
    raise TransferError(f"Источник ответил HTTP {code}", details=details)


def open_source(
    url: str,
    auth_token: str | None,
    *,
    timeout_sec: float,
    connect_timeout_sec: float = 15,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    user_agent: str = "Zoom-Recording-Uploader/1.0",
    session: requests.Session | None = None,
) -> SourceStream:
    """
    Открыть поток чтения источника.

    Ошибки:
    - SourceNetworkError: таймаут/обрыв/5xx
    - SourceAuthError: 401/403 (токен истёк или недействителен)
    - SourceNotFoundError: 404/410
    - ValidationError: неподдерживаемая схема URL
    """
    deadline = time.monotonic() + max(0.0, float(timeout_sec))
    url = (url or "").strip()

    if url.startswith("data:"):
        return _open_data_url(url, deadline=deadline)

    if not url.startswith(("http://", "https://")):
        raise ValidationError("Неподдерживаемый URL источника", details={"url": url[:100]})

    headers = {"User-Agent": user_agent}
    if auth_token:
        headers["Authorization"] = f"Bearer {auth_token}"

    http = session or requests
    try:
        resp = http.get(
            url,
            headers=headers,
            stream=True,
            timeout=(connect_timeout_sec, timeout_sec),
        )
    except requests.RequestException as e:
        raise SourceNetworkError(
            "Сетевая ошибка при обращении к источнику", details={"err": str(e)[:300]}
        ) from e

    try:
        _raise_for_status(resp)
    except TransferError:
        resp.close()
        raise

    return SourceStream(
        resp.iter_content(chunk_size=chunk_size),
        content_length=_parse_content_length(resp.headers.get("Content-Length")),
        content_type=resp.headers.get("Content-Type"),
        deadline=deadline,
        on_close=resp.close,
    )
