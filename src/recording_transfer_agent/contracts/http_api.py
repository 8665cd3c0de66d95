"""
HTTP API контракты (Pydantic-модели).

Назначение:
- валидация входа/выхода на уровне FastAPI
- стабильные структуры для клиентов (camelCase на проводе, как у платформы встреч)
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

HTTP_API_VERSION = "v1"


# =============================================================================
# ЗАПРОСЫ
# =============================================================================
class ParticipationRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    meeting_id: str | int | None = Field(default=None, alias="meetingId")
    user_id: str | int | None = Field(default=None, alias="userId")
    user_type: str | None = Field(default=None, alias="userType")


class SignatureRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    session_name: str | None = Field(default=None, alias="sessionName")
    role: int | None = None


# =============================================================================
# ОТВЕТЫ
# =============================================================================
class WebhookAck(BaseModel):
    status: str = "webhook_received"
    event: str | None = None
    timestamp: str
    message: str
    job_id: str | None = Field(default=None, serialization_alias="jobId")


class UrlValidationResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    plain_token: str = Field(serialization_alias="plainToken")
    encrypted_token: str = Field(serialization_alias="encryptedToken")


class QueueStatsBody(BaseModel):
    waiting: int
    active: int
    completed: int
    failed: int
    total: int


class QueueStatsResponse(BaseModel):
    api_version: str = Field(default=HTTP_API_VERSION)
    status: str = "success"
    timestamp: str
    stats: QueueStatsBody


class JobResponse(BaseModel):
    api_version: str = Field(default=HTTP_API_VERSION)
    id: str
    name: str
    state: str
    attempts_made: int
    max_attempts: int
    created_at: str | None = None
    processed_at: str | None = None
    finished_at: str | None = None
    failed_reason: str | None = None
    return_value: dict[str, Any] | None = None


class RecordingsListResponse(BaseModel):
    count: int
    recordings: list[dict[str, Any]]
    timestamp: str


class SignatureResponse(BaseModel):
    signature: str


class ApiEnvelope(BaseModel):
    """
    Конверт ответов участия в комнате: {IsSuccess, Message, Data}.
    """

    IsSuccess: bool = False
    Message: str = "OK.."
    Data: dict[str, Any] | None = None
