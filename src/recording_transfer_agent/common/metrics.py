"""
Метрики Prometheus для сервиса.

Назначение:
- Экспорт /metrics
- Счётчики переноса файлов и задач очереди
- Используется API Gateway и воркерами
"""

from __future__ import annotations

import time
from collections.abc import Iterator
from contextlib import contextmanager

from fastapi import FastAPI, Request
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, generate_latest

# =============================================================================
# СЧЁТЧИКИ И МЕТРИКИ
# =============================================================================

# Общее количество HTTP-запросов
REQUESTS_TOTAL = Counter(
    "rta_requests_total",
    "Общее количество HTTP запросов",
    ["service", "route", "method", "status"],
)

HTTP_REQUEST_LATENCY_MS = Histogram(
    "rta_http_request_latency_ms",
    "Задержка HTTP запроса (мс)",
    ["service", "route", "method"],
    buckets=(5, 10, 25, 50, 100, 250, 500, 1000, 2500, 5000, 10000),
)

# Перенос файлов
FILE_TRANSFERS_TOTAL = Counter(
    "rta_file_transfers_total",
    "Количество попыток переноса файлов записи",
    ["result", "error_kind"],  # result=success|failure
)

FILE_TRANSFER_BYTES_TOTAL = Counter(
    "rta_file_transfer_bytes_total",
    "Объём успешно перенесённых данных (байт)",
)

FILE_TRANSFER_LATENCY_MS = Histogram(
    "rta_file_transfer_latency_ms",
    "Длительность переноса одного файла (мс)",
    ["strategy"],
    buckets=(100, 500, 1000, 5000, 15000, 30000, 60000, 120000, 300000),
)

# Стадии обработки задачи воркером
JOB_STAGE_LATENCY_MS = Histogram(
    "rta_job_stage_latency_ms",
    "Задержка выполнения стадий задачи (мс)",
    ["stage"],
    buckets=(5, 10, 25, 50, 100, 250, 500, 1000, 5000, 30000, 120000, 300000),
)

# Обработка задач очередей
QUEUE_TASKS_TOTAL = Counter(
    "rta_queue_tasks_total",
    "Количество обработанных задач очереди",
    ["queue", "result"],  # result=completed|retry|failed
)

QUEUE_DEPTH = Gauge(
    "rta_queue_depth",
    "Текущее количество задач очереди по состояниям",
    ["queue", "state"],
)

METRICS_COLLECTION_ERRORS_TOTAL = Counter(
    "rta_metrics_collection_errors_total",
    "Ошибки сборки служебных метрик",
    ["source"],
)


@contextmanager
def track_stage_latency(stage: str) -> Iterator[None]:
    started = time.perf_counter()
    try:
        yield
    finally:
        elapsed_ms = (time.perf_counter() - started) * 1000
        JOB_STAGE_LATENCY_MS.labels(stage=stage).observe(elapsed_ms)


def record_file_transfer(
    *, success: bool, error_kind: str | None, strategy: str, elapsed_ms: float, size: int
) -> None:
    result = "success" if success else "failure"
    FILE_TRANSFERS_TOTAL.labels(result=result, error_kind=error_kind or "none").inc()
    FILE_TRANSFER_LATENCY_MS.labels(strategy=strategy).observe(elapsed_ms)
    if success and size > 0:
        FILE_TRANSFER_BYTES_TOTAL.inc(size)


def record_queue_task(*, queue: str, result: str) -> None:
    QUEUE_TASKS_TOTAL.labels(queue=queue, result=result).inc()


def refresh_queue_metrics() -> None:
    try:
        from recording_transfer_agent.queue.job_queue import get_job_queue

        q = get_job_queue()
        stats = q.get_stats()
        for state in ("waiting", "active", "completed", "failed"):
            QUEUE_DEPTH.labels(queue=q.name, state=state).set(getattr(stats, state))
    except Exception:
        METRICS_COLLECTION_ERRORS_TOTAL.labels(source="queue_metrics").inc()


# =============================================================================
# ENDPOINT /metrics
# =============================================================================
def setup_metrics_endpoint(app: FastAPI) -> None:
    """
    Регистрирует endpoint /metrics для Prometheus.
    """

    @app.middleware("http")
    async def http_metrics(request: Request, call_next):
        route = request.url.path
        method = request.method
        started = time.perf_counter()

        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000
        status_code = str(response.status_code)

        REQUESTS_TOTAL.labels(
            service="api-gateway",
            route=route,
            method=method,
            status=status_code,
        ).inc()
        HTTP_REQUEST_LATENCY_MS.labels(
            service="api-gateway",
            route=route,
            method=method,
        ).observe(elapsed_ms)
        return response

    @app.get("/metrics")
    def metrics() -> Response:
        refresh_queue_metrics()
        return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
