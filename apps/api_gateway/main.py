"""
API Gateway (FastAPI).

Функции:
- /health, /metrics
- POST /webhook/zoom - приём вебхуков и постановка задач переноса записей
- статистика очереди и статус задач
- журнал принятых вебхуков
- подпись сессий Video SDK
- учёт участия в комнате встречи (/api/...)
"""

from __future__ import annotations

from typing import Any

from fastapi import FastAPI

from apps.api_gateway.routers.participation import router as participation_router
from apps.api_gateway.routers.queue import router as queue_router
from apps.api_gateway.routers.recordings import router as recordings_router
from apps.api_gateway.routers.signature import router as signature_router
from apps.api_gateway.routers.webhook import router as webhook_router
from recording_transfer_agent.common.config import get_settings
from recording_transfer_agent.common.logging import get_project_logger, setup_logging
from recording_transfer_agent.common.metrics import setup_metrics_endpoint
from recording_transfer_agent.queue.redis import redis_available

log = get_project_logger()


def _create_app() -> FastAPI:
    app = FastAPI(title="Recording Transfer Agent", version="0.1.0")

    setup_metrics_endpoint(app)

    @app.get("/health")
    def health() -> dict[str, Any]:
        return {"ok": True, "redis": redis_available()}

    @app.get("/")
    def index() -> dict[str, Any]:
        return {
            "status": "Backend server is running",
            "services": {
                "webhook": "/webhook/zoom",
                "queueStats": "/queue/stats",
                "recordings": "/recordings",
                "metrics": "/metrics",
            },
        }

    app.include_router(webhook_router)
    app.include_router(queue_router)
    app.include_router(recordings_router)
    app.include_router(signature_router)
    app.include_router(participation_router)

    return app


setup_logging("api-gateway")
log.info(
    "api_gateway_configured",
    extra={"payload": {"env": get_settings().app_env, "port": get_settings().api_port}},
)

app = _create_app()
