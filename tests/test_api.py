from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from sitebot import main
from sitebot.core import config
from sitebot.core.database import get_db
from sitebot.models.build_request import BUILD_PROCESSING, BuildRequest
from sitebot.routers import builds as builds_router
from sitebot.routers import webhook as webhook_router
from sitebot.services import build_requests
from tests.fakes import FakeHosting

INTERNAL = {"X-Internal-Token": "segredo"}


@pytest.fixture()
def scheduled(monkeypatch):
    calls = []

    def _record(build_id, *, retry=False):
        calls.append((build_id, retry))

    monkeypatch.setattr(webhook_router, "run_build_in_background", _record)
    monkeypatch.setattr(builds_router, "run_build_in_background", _record)
    return calls


@pytest.fixture()
def client(monkeypatch, session_factory, scheduled):
    monkeypatch.setattr(main, "_startup_tasks", lambda: None)
    monkeypatch.setattr(config, "INTERNAL_API_TOKEN", "segredo")
    monkeypatch.setattr(config, "META_WA_VERIFY_TOKEN", "verify-me")
    monkeypatch.setattr(config, "BUILD_MAX_RETRIES", 3)

    def _override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    main.app.dependency_overrides[get_db] = _override_get_db
    with TestClient(main.app) as test_client:
        yield test_client
    main.app.dependency_overrides.clear()


def _build(db, key, status=None, attempts=None):
    record, _ = build_requests.create_build_request(db, user_id="5511", prompt="Quero um site", dedupe_key=key)
    if status:
        build_requests.try_transition(db, record.id, BUILD_PROCESSING, increment_attempts=True)
        build_requests.try_transition(db, record.id, status)
    if attempts is not None:
        db.query(BuildRequest).filter(BuildRequest.id == record.id).update(
            {BuildRequest.attempts: attempts}, synchronize_session=False
        )
        db.commit()
    db.refresh(record)
    return record


def test_root_and_health(client):
    assert client.get("/").json() == {"status": "ok"}
    response = client.get("/health")
    assert response.json() == {"status": "healthy"}
    assert response.headers["X-Request-ID"]


def test_webhook_handshake(client):
    response = client.get(
        "/webhook",
        params={"hub.mode": "subscribe", "hub.verify_token": "verify-me", "hub.challenge": "12345"},
    )

    assert response.status_code == 200
    assert response.text == "12345"


def test_webhook_handshake_rejects_wrong_token(client):
    response = client.get(
        "/webhook",
        params={"hub.mode": "subscribe", "hub.verify_token": "outro", "hub.challenge": "12345"},
    )

    assert response.status_code == 403


def test_webhook_message_creates_and_schedules_build(client, scheduled, db_session):
    payload = {"message": {"id": "m-1", "from": "5511977776666", "text": "Quero um site para minha padaria"}}

    response = client.post("/webhook", json=payload)

    body = response.json()
    assert response.status_code == 200
    assert body["flow"] == "build_created"
    assert scheduled == [(body["build_id"], False)]
    assert db_session.get(BuildRequest, body["build_id"]).status == "pending"

    again = client.post("/webhook", json=payload)
    assert again.json()["status"] == "duplicate"
    assert len(scheduled) == 1


def test_webhook_cloud_status_update_is_ignored(client):
    payload = {"object": "whatsapp_business_account", "entry": [{"changes": [{"value": {"statuses": [{}]}}]}]}

    response = client.post("/webhook", json=payload)

    assert response.json() == {"status": "ignored"}


def test_webhook_rejects_invalid_json(client):
    response = client.post("/webhook", content=b"nao-json", headers={"Content-Type": "application/json"})

    assert response.status_code == 400


def test_internal_routes_require_token(client):
    assert client.get("/internal/metrics").status_code == 401
    assert client.get("/internal/metrics", headers={"X-Internal-Token": "errado"}).status_code == 401


def test_get_build(client, db_session):
    record = _build(db_session, "m-1")

    response = client.get(f"/api/builds/{record.id}", headers=INTERNAL)

    assert response.status_code == 200
    assert response.json()["status"] == "pending"
    assert client.get("/api/builds/nao-existe", headers=INTERNAL).status_code == 404


def test_start_build_schedules_only_pending(client, scheduled, db_session):
    pending = _build(db_session, "m-1")
    done = _build(db_session, "m-2", status="completed")

    first = client.post(f"/api/builds/{pending.id}/start", headers=INTERNAL)
    second = client.post(f"/api/builds/{done.id}/start", headers=INTERNAL)

    assert first.status_code == 202
    assert second.json() == {"status": "ignored", "build_status": "completed"}
    assert scheduled == [(pending.id, False)]


def test_retry_build_checks_retry_limit(client, scheduled, db_session):
    retryable = _build(db_session, "m-1", status="failed", attempts=1)
    exhausted = _build(db_session, "m-2", status="failed", attempts=3)
    completed = _build(db_session, "m-3", status="completed")

    assert client.post(f"/api/builds/{retryable.id}/retry", headers=INTERNAL).status_code == 202
    assert client.post(f"/api/builds/{exhausted.id}/retry", headers=INTERNAL).status_code == 409
    assert client.post(f"/api/builds/{completed.id}/retry", headers=INTERNAL).status_code == 409
    assert scheduled == [(retryable.id, True)]


def test_cleanup_requeues_timeouts(client, scheduled, db_session, monkeypatch):
    hosting = FakeHosting()
    monkeypatch.setattr(builds_router, "get_hosting_provider", lambda: hosting)
    timed_out = _build(db_session, "m-1", status="timeout", attempts=1)

    response = client.post("/internal/cleanup", headers=INTERNAL)

    assert response.status_code == 200
    assert response.json()["requeued"] == [timed_out.id]
    assert scheduled == [(timed_out.id, True)]


def test_cleanup_reclaims_stuck_processing_and_requeues_it(client, scheduled, db_session, monkeypatch):
    monkeypatch.setattr(builds_router, "get_hosting_provider", lambda: FakeHosting())
    stuck = _build(db_session, "m-1", status=BUILD_PROCESSING, attempts=1)
    db_session.query(BuildRequest).filter(BuildRequest.id == stuck.id).update(
        {BuildRequest.updated_at: datetime.now(timezone.utc) - timedelta(days=2)}, synchronize_session=False
    )
    db_session.commit()

    body = client.post("/internal/cleanup", headers=INTERNAL).json()

    assert body["reclaimed"] == [stuck.id]
    assert body["requeued"] == [stuck.id]
    assert scheduled == [(stuck.id, True)]


def test_metrics_endpoint(client):
    client.get("/health")

    body = client.get("/internal/metrics", headers=INTERNAL).json()

    assert body["requests"]["GET /health"]["total_requests"] >= 1
    assert body["builds"] == {}
