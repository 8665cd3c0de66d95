"""
Вебхук платформы встреч.

- POST /webhook/zoom
"""

from __future__ import annotations

from typing import Any

import redis
from fastapi import APIRouter, Body, Depends, HTTPException, status

from apps.api_gateway.deps import http_error, webhook_service_dep
from recording_transfer_agent.common.errors import AppError, ErrCode
from recording_transfer_agent.common.logging import get_project_logger
from recording_transfer_agent.services.webhook_service import WebhookService

log = get_project_logger()

router = APIRouter()


@router.post("/webhook/zoom")
def zoom_webhook(
    body: dict[str, Any] = Body(...),
    service: WebhookService = Depends(webhook_service_dep),
) -> dict[str, Any]:
    try:
        result = service.handle(body)
    except AppError as e:
        log.warning(
            "webhook_rejected",
            extra={"payload": {"event": body.get("event"), "code": e.code, "err": e.message}},
        )
        raise http_error(e) from e
    except redis.RedisError as e:
        log.error("webhook_enqueue_failed", extra={"payload": {"err": str(e)[:200]}})
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"code": ErrCode.REDIS_ERROR, "message": "Очередь недоступна"},
        ) from e
    return result.model_dump(by_alias=True, exclude_none=True)
