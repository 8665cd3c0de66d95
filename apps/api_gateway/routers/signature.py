"""
Подпись сессии Video SDK.

- POST /generateSignature  {sessionName, role} -> {signature}
"""

from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from apps.api_gateway.deps import http_status_for
from recording_transfer_agent.common.errors import AppError
from recording_transfer_agent.common.logging import get_project_logger
from recording_transfer_agent.contracts.http_api import SignatureRequest, SignatureResponse
from recording_transfer_agent.services.signature_service import generate_sdk_signature

log = get_project_logger()

router = APIRouter()


@router.post("/generateSignature", response_model=SignatureResponse)
def generate_signature(req: SignatureRequest):
    try:
        token = generate_sdk_signature(req.session_name, req.role)
    except AppError as e:
        log.warning("sdk_signature_rejected", extra={"payload": {"code": e.code, "err": e.message}})
        return JSONResponse(status_code=http_status_for(e), content={"error": e.message})
    return SignatureResponse(signature=token)
