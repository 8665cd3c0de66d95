"""
Журнал принятых вебхуков записи.

- GET    /recordings
- DELETE /recordings
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from apps.api_gateway.deps import recordings_log_dep
from recording_transfer_agent.common.time import utc_now_iso
from recording_transfer_agent.contracts.http_api import RecordingsListResponse
from recording_transfer_agent.services.recordings_log import RecordingsLog

router = APIRouter()


@router.get("/recordings", response_model=RecordingsListResponse)
def list_recordings(rec_log: RecordingsLog = Depends(recordings_log_dep)) -> RecordingsListResponse:
    items = rec_log.list()
    return RecordingsListResponse(count=len(items), recordings=items, timestamp=utc_now_iso())


@router.delete("/recordings")
def clear_recordings(rec_log: RecordingsLog = Depends(recordings_log_dep)) -> dict[str, Any]:
    removed = rec_log.clear()
    return {
        "status": "cleared",
        "message": "All captured recordings cleared",
        "removed": removed,
        "timestamp": utc_now_iso(),
    }
