from __future__ import annotations

import redis
from fastapi import FastAPI
from fastapi.testclient import TestClient

from apps.api_gateway.deps import job_queue_dep, recordings_log_dep, webhook_service_dep
from apps.api_gateway.routers.queue import router as queue_router
from apps.api_gateway.routers.recordings import router as recordings_router
from apps.api_gateway.routers.signature import router as signature_router
from apps.api_gateway.routers.webhook import router as webhook_router
from recording_transfer_agent.common.config import get_settings
from recording_transfer_agent.queue.dispatcher import enqueue_recording_transfer
from recording_transfer_agent.services.recordings_log import RecordingsLog
from recording_transfer_agent.services.webhook_service import WebhookService


def _client(job_queue, rec_log: RecordingsLog, *, enqueue=None) -> TestClient:
    app = FastAPI()
    for r in (webhook_router, queue_router, recordings_router, signature_router):
        app.include_router(r)

    service = WebhookService(
        enqueue=enqueue or (lambda body: enqueue_recording_transfer(body, queue=job_queue)),
        recordings_log=rec_log,
        secret_token="s3cret",
    )
    app.dependency_overrides[webhook_service_dep] = lambda: service
    app.dependency_overrides[job_queue_dep] = lambda: job_queue
    app.dependency_overrides[recordings_log_dep] = lambda: rec_log
    return TestClient(app)


def test_recording_webhook_flows_into_queue_stats_and_log(job_queue, webhook_factory) -> None:
    rec_log = RecordingsLog(limit=10)
    client = _client(job_queue, rec_log)

    resp = client.post("/webhook/zoom", json=webhook_factory([{"id": "f1"}]))
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "webhook_received"
    assert body["event"] == "session.recording_completed"
    job_id = body["jobId"]

    stats = client.get("/queue/stats").json()
    assert stats["status"] == "success"
    assert stats["stats"] == {"waiting": 1, "active": 0, "completed": 0, "failed": 0, "total": 1}

    job = client.get(f"/queue/jobs/{job_id}").json()
    assert job["state"] == "waiting"
    assert job["name"] == "process-recording"
    assert job["max_attempts"] == 3
    assert client.get("/queue/jobs/999").status_code == 404

    recs = client.get("/recordings").json()
    assert recs["count"] == 1
    assert recs["recordings"][0]["jobId"] == job_id
    assert "dl-token" not in str(recs)

    cleared = client.delete("/recordings").json()
    assert cleared["status"] == "cleared"
    assert cleared["removed"] == 1
    assert client.get("/recordings").json()["count"] == 0


def test_url_validation_over_http(job_queue) -> None:
    client = _client(job_queue, RecordingsLog(limit=10))
    resp = client.post(
        "/webhook/zoom", json={"event": "endpoint.url_validation", "payload": {"plainToken": "abc"}}
    )
    assert resp.status_code == 200
    assert set(resp.json()) == {"plainToken", "encryptedToken"}

    bad = client.post("/webhook/zoom", json={"event": "endpoint.url_validation", "payload": {}})
    assert bad.status_code == 400


def test_enqueue_failure_is_503(job_queue, webhook_factory) -> None:
    def _down(body):
        raise redis.ConnectionError("redis down")

    rec_log = RecordingsLog(limit=10)
    client = _client(job_queue, rec_log, enqueue=_down)
    resp = client.post("/webhook/zoom", json=webhook_factory([]))
    assert resp.status_code == 503
    assert len(rec_log) == 0


def test_generate_signature_endpoint(job_queue, monkeypatch) -> None:
    s = get_settings()
    monkeypatch.setattr(s, "zoom_sdk_key", "sdk-key")
    monkeypatch.setattr(s, "zoom_sdk_secret", "sdk-secret")
    client = _client(job_queue, RecordingsLog(limit=10))

    ok = client.post("/generateSignature", json={"sessionName": "meeting-1", "role": 0})
    assert ok.status_code == 200
    assert ok.json()["signature"].count(".") == 2

    missing = client.post("/generateSignature", json={"role": 1})
    assert missing.status_code == 400
    assert missing.json() == {"error": "sessionName and role are required"}

    monkeypatch.setattr(s, "zoom_sdk_secret", None)
    unconfigured = client.post("/generateSignature", json={"sessionName": "m", "role": 1})
    assert unconfigured.status_code == 500
    assert "error" in unconfigured.json()
