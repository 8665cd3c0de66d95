"""
Подключение к Redis для очереди задач.

- один клиент на процесс (пул соединений внутри redis-py)
- таймауты сокета ограничены: API не должен висеть на недоступном Redis
- redis_available() для /health
"""

from __future__ import annotations

import redis

from recording_transfer_agent.common.config import get_settings
from recording_transfer_agent.common.logging import get_project_logger

log = get_project_logger()

_client: redis.Redis | None = None


def redis_client() -> redis.Redis:
    global _client
    if _client is None:
        s = get_settings()
        _client = redis.Redis.from_url(
            s.redis_url,
            decode_responses=True,
            socket_timeout=s.redis_socket_timeout_sec,
            socket_connect_timeout=s.redis_socket_timeout_sec,
            health_check_interval=30,
        )
    return _client


def redis_available() -> bool:
    try:
        return bool(redis_client().ping())
    except redis.RedisError as e:
        log.warning("redis_unavailable", extra={"payload": {"err": str(e)[:200]}})
        return False
