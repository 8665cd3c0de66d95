"""
Приём вебхуков платформы встреч.

Алгоритм:
- endpoint.url_validation → {plainToken, encryptedToken = HMAC-SHA256(secret, plainToken)}
- session.recording_completed → постановка задачи переноса + запись в журнал инспекции
- прочие события → только логируем

Важно:
- ошибка постановки в очередь пробрасывается наружу (платформа повторит доставку)
- download_token в журнал не пишем
"""

from __future__ import annotations

import hashlib
import hmac
from collections.abc import Callable
from typing import Any

from recording_transfer_agent.common.config import get_settings
from recording_transfer_agent.common.errors import ConfigError, ValidationError
from recording_transfer_agent.common.logging import get_project_logger
from recording_transfer_agent.common.time import utc_now_iso
from recording_transfer_agent.contracts.http_api import UrlValidationResponse, WebhookAck
from recording_transfer_agent.contracts.webhook import (
    EVENT_RECORDING_COMPLETED,
    EVENT_URL_VALIDATION,
)
from recording_transfer_agent.queue.dispatcher import enqueue_recording_transfer
from recording_transfer_agent.queue.job_queue import JobHandle
from recording_transfer_agent.services.recordings_log import RecordingsLog, get_recordings_log

log = get_project_logger()

_MASK = "***"


def _sign(secret: str, plain_token: str) -> str:
    return hmac.new(secret.encode("utf-8"), plain_token.encode("utf-8"), hashlib.sha256).hexdigest()


def _masked(body: dict[str, Any]) -> dict[str, Any]:
    out = dict(body)
    if out.get("download_token"):
        out["download_token"] = _MASK
    return out


class WebhookService:
    def __init__(
        self,
        *,
        enqueue: Callable[[dict[str, Any]], JobHandle] = enqueue_recording_transfer,
        recordings_log: RecordingsLog | None = None,
        secret_token: str | None = None,
    ) -> None:
        self._enqueue = enqueue
        self.recordings_log = recordings_log or get_recordings_log()
        self._secret_token = secret_token

    def _secret(self) -> str:
        secret = (self._secret_token or get_settings().zoom_webhook_secret_token or "").strip()
        if not secret:
            raise ConfigError("ZOOM_WEBHOOK_SECRET_TOKEN не задан")
        return secret

    def validate_url(self, payload: dict[str, Any] | None) -> UrlValidationResponse:
        plain_token = (payload or {}).get("plainToken")
        if not isinstance(plain_token, str) or not plain_token:
            raise ValidationError("Нет plainToken в запросе валидации")
        log.info("webhook_url_validation", extra={"payload": {"token_len": len(plain_token)}})
        return UrlValidationResponse(
            plain_token=plain_token,
            encrypted_token=_sign(self._secret(), plain_token),
        )

    def _accept_recording(self, body: dict[str, Any]) -> JobHandle:
        payload = body.get("payload") or {}
        obj = payload.get("object") or {}
        files = obj.get("recording_files") or []

        job = self._enqueue(body)
        self.recordings_log.append(
            {
                "timestamp": utc_now_iso(),
                "sessionId": obj.get("session_id"),
                "sessionName": obj.get("session_name"),
                "accountId": payload.get("account_id"),
                "event": body.get("event"),
                "files": files,
                "hasDownloadToken": bool(body.get("download_token")),
                "fullPayload": _masked(body),
                "jobId": job.id,
                "queueStatus": "queued",
            }
        )
        log.info(
            "recording_webhook_accepted",
            extra={
                "payload": {
                    "job_id": job.id,
                    "session_id": obj.get("session_id"),
                    "account_id": payload.get("account_id"),
                    "files": len(files),
                }
            },
        )
        return job

    def handle(self, body: dict[str, Any]) -> UrlValidationResponse | WebhookAck:
        event = body.get("event")
        log.info("webhook_received", extra={"payload": {"event": event}})

        if event == EVENT_URL_VALIDATION:
            return self.validate_url(body.get("payload"))

        job_id = None
        if event == EVENT_RECORDING_COMPLETED:
            job_id = self._accept_recording(body).id
            message = "Recording queued for processing"
        else:
            message = "Event logged"

        return WebhookAck(
            event=None if event is None else str(event),
            timestamp=utc_now_iso(),
            message=message,
            job_id=job_id,
        )
