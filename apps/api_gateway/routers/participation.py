"""
Участие в комнате встречи.

- GET  /api/getMeetingInfo/{meeting_id}/{user_id}
- POST /api/userJoined
- POST /api/userLeft
- POST /api/meetingEnd
- GET  /api/meetingState/{meeting_id}

Ответы в конверте {IsSuccess, Message, Data}.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from apps.api_gateway.deps import http_status_for, participation_service_dep
from recording_transfer_agent.common.errors import AppError
from recording_transfer_agent.common.logging import get_project_logger
from recording_transfer_agent.contracts.http_api import ApiEnvelope, ParticipationRequest
from recording_transfer_agent.services.participation_service import ParticipationService

log = get_project_logger()

router = APIRouter(prefix="/api")


def _respond(op: str, message: str, fn: Callable[[], dict[str, Any]]) -> JSONResponse:
    try:
        data = fn()
    except AppError as e:
        return JSONResponse(
            status_code=http_status_for(e),
            content=ApiEnvelope(Message=e.message).model_dump(),
        )
    except Exception as e:
        log.error("participation_error", extra={"payload": {"op": op, "err": str(e)[:300]}})
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=ApiEnvelope(Message="Server Error ...").model_dump(),
        )
    return JSONResponse(content=ApiEnvelope(IsSuccess=True, Message=message, Data=data).model_dump())


@router.get("/getMeetingInfo/{meeting_id}/{user_id}")
def get_meeting_info(
    meeting_id: str,
    user_id: str,
    svc: ParticipationService = Depends(participation_service_dep),
) -> JSONResponse:
    return _respond(
        "get_meeting_info",
        "Meeting found and User authorized",
        lambda: svc.get_meeting_info(meeting_id, user_id),
    )


@router.post("/userJoined")
def user_joined(
    req: ParticipationRequest,
    svc: ParticipationService = Depends(participation_service_dep),
) -> JSONResponse:
    return _respond(
        "user_joined",
        "User joined successfully",
        lambda: svc.user_joined(req.meeting_id, req.user_id, req.user_type),
    )


@router.post("/userLeft")
def user_left(
    req: ParticipationRequest,
    svc: ParticipationService = Depends(participation_service_dep),
) -> JSONResponse:
    return _respond(
        "user_left", "User left successfully", lambda: svc.user_left(req.meeting_id, req.user_id)
    )


@router.post("/meetingEnd")
def meeting_end(
    req: ParticipationRequest,
    svc: ParticipationService = Depends(participation_service_dep),
) -> JSONResponse:
    return _respond(
        "meeting_end",
        "Meeting ended successfully",
        lambda: svc.meeting_end(req.meeting_id, req.user_id),
    )


@router.get("/meetingState/{meeting_id}")
def meeting_state(
    meeting_id: str,
    svc: ParticipationService = Depends(participation_service_dep),
) -> JSONResponse:
    return _respond(
        "meeting_state", "Meeting state retrieved", lambda: svc.meeting_state(meeting_id)
    )
