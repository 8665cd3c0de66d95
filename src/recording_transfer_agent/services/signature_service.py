"""
Подпись клиентской сессии Video SDK (JWT HS256).

Payload:
- app_key, tpc (имя сессии), role_type (0 - участник, 1 - хост), version = 1
- iat сдвинут на 30 секунд назад (расхождение часов клиента), exp = iat + TTL
"""

from __future__ import annotations

import time
from typing import Any

import jwt

from recording_transfer_agent.common.config import get_settings
from recording_transfer_agent.common.errors import ConfigError, ValidationError

_PLACEHOLDERS = {"your_zoom_sdk_key_here", "your_zoom_sdk_secret_here"}
_CLOCK_SKEW_SEC = 30


def _credentials() -> tuple[str, str]:
    s = get_settings()
    key = (s.zoom_sdk_key or "").strip()
    secret = (s.zoom_sdk_secret or "").strip()
    if not key or not secret:
        raise ConfigError("Zoom SDK credentials not configured")
    if key in _PLACEHOLDERS or secret in _PLACEHOLDERS:
        raise ConfigError("Zoom SDK credentials are placeholder values")
    return key, secret


def _parse_role(role: Any) -> int:
    if isinstance(role, bool) or role is None:
        raise ValidationError("sessionName and role are required")
    try:
        return int(role)
    except (TypeError, ValueError) as e:
        raise ValidationError("sessionName and role are required") from e


def generate_sdk_signature(session_name: str | None, role: Any, *, now: float | None = None) -> str:
    if not (session_name or "").strip():
        raise ValidationError("sessionName and role are required")
    role_type = _parse_role(role)
    key, secret = _credentials()

    iat = int(now if now is not None else time.time()) - _CLOCK_SKEW_SEC
    payload = {
        "app_key": key,
        "tpc": session_name,
        "role_type": role_type,
        "version": 1,
        "iat": iat,
        "exp": iat + int(get_settings().sdk_signature_ttl_sec),
    }
    return jwt.encode(payload, secret, algorithm="HS256", headers={"typ": "JWT"})
