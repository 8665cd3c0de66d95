"""
Утилиты времени.

Назначение:
- единый формат времени (ISO UTC)
- миллисекунды для очереди (скоринг, backoff, ретеншн)
"""

from __future__ import annotations

from datetime import UTC, date, datetime


def utc_now() -> datetime:
    """
    Текущее время в UTC (datetime).
    """
    return datetime.now(UTC)


def utc_now_iso() -> str:
    """
    Текущее время в UTC в ISO формате.
    """
    return utc_now().isoformat()


def utc_ms() -> int:
    """
    Текущее время в UTC в миллисекундах (int).
    """
    return int(utc_now().timestamp() * 1000)


def utc_today() -> date:
    return utc_now().date()


def ms_to_iso(value: int | None) -> str | None:
    if value is None:
        return None
    return datetime.fromtimestamp(value / 1000, tz=UTC).isoformat()
