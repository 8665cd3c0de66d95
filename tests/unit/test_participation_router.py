from __future__ import annotations

from datetime import UTC, datetime

from fastapi import FastAPI
from fastapi.testclient import TestClient

from apps.api_gateway.deps import participation_service_dep
from apps.api_gateway.routers.participation import router as participation_router
from recording_transfer_agent.services.participation_service import ParticipationService


def _client(service: ParticipationService) -> TestClient:
    app = FastAPI()
    app.include_router(participation_router)
    app.dependency_overrides[participation_service_dep] = lambda: service
    return TestClient(app)


def test_join_leave_over_http(meeting_db, add_meeting) -> None:
    add_meeting(end_time="2999-01-01T00:00:00Z")
    svc = ParticipationService(meeting_db, clock=lambda: datetime(2024, 8, 11, 10, 0, tzinfo=UTC))
    client = _client(svc)

    info = client.get("/api/getMeetingInfo/meeting-1/mentor-1")
    assert info.status_code == 200
    assert info.json()["IsSuccess"] is True
    assert info.json()["Data"]["mentorId"] == "mentor-1"

    joined = client.post("/api/userJoined", json={"meetingId": "meeting-1", "userId": "mentor-1", "userType": "mentor"})
    assert joined.status_code == 200
    assert joined.json()["Message"] == "User joined successfully"
    assert joined.json()["Data"]["userCount"] == 1

    state = client.get("/api/meetingState/meeting-1").json()
    assert state["Data"]["activeUsers"] == ["mentor-1"]

    left = client.post("/api/userLeft", json={"meetingId": "meeting-1", "userId": "mentor-1"})
    assert left.json()["Data"]["meetingActuallyTookPlace"] is False


def test_error_statuses_use_envelope(meeting_db, add_meeting) -> None:
    add_meeting()
    client = _client(ParticipationService(meeting_db))

    forbidden = client.get("/api/getMeetingInfo/meeting-1/stranger")
    assert forbidden.status_code == 403
    assert forbidden.json() == {"IsSuccess": False, "Message": "User not authorized for this meeting", "Data": None}

    assert client.get("/api/getMeetingInfo/nope/mentor-1").status_code == 404
    assert client.post("/api/userJoined", json={"meetingId": "meeting-1"}).status_code == 400
    assert client.post("/api/meetingEnd", json={"meetingId": "meeting-1", "userId": "mentee-1"}).status_code == 403


def test_unexpected_error_is_500() -> None:
    class _Broken:
        def meeting_state(self, meeting_id):
            raise RuntimeError("db gone")

    resp = _client(_Broken()).get("/api/meetingState/m1")
    assert resp.status_code == 500
    assert resp.json()["IsSuccess"] is False
    assert resp.json()["Message"] == "Server Error ..."
