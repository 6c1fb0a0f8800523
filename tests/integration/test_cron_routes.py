"""
HTTP surface of the scheduler and AI endpoints, with services stubbed out.
"""

import pytest
from fastapi.testclient import TestClient

from app.features.ai_insights.domain.models import ClassifyBatchResult
from app.features.ai_insights.services.classify_batch_service import classify_batch_service
from app.features.ai_insights.services.insight_service import NoEmailsError, insight_service
from app.features.ai_insights.services.llm_client import AiServiceError
from app.features.crm.services.reminder_service import reminder_service
from app.features.mail_sync.domain.models import SyncPhase, SyncRunResult
from app.features.mail_sync.services.backfill_service import backfill_service
from app.features.mail_sync.services.sync_service import mail_sync_service
from app.main import app

AUTH = {"x-cron-secret": "cron-secret"}


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def sync_result(monkeypatch):
    holder = {"result": SyncRunResult(phase=SyncPhase.DONE, processed=2, inserted=2, last_uid=103)}

    async def fake_run():
        return holder["result"]

    monkeypatch.setattr(mail_sync_service, "run", fake_run)
    return holder


@pytest.mark.parametrize("path", ["/gmail/sync", "/ai/classify-all", "/reminders/run"])
def test_scheduler_routes_require_secret(client, path):
    assert client.post(path).status_code == 401
    assert client.post(path, headers={"x-cron-secret": "wrong"}).status_code == 401


def test_sync_success(client, sync_result):
    response = client.post("/gmail/sync", headers=AUTH)

    assert response.status_code == 200
    body = response.json()
    assert body["ok"] is True
    assert body["inserted"] == 2
    assert body["last_uid"] == 103


def test_sync_accepts_get(client, sync_result):
    assert client.get("/gmail/sync", headers=AUTH).status_code == 200


def test_sync_failure_reports_phase(client, sync_result):
    sync_result["result"] = SyncRunResult(
        ok=False,
        phase=SyncPhase.ERROR,
        error="[fetching uid=7] connection reset",
        failed_phase=SyncPhase.FETCHING,
        failed_uid=7,
    )

    response = client.post("/gmail/sync", headers=AUTH)

    assert response.status_code == 500
    assert response.json()["failed_phase"] == "fetching"
    assert response.json()["failed_uid"] == 7


def test_sync_conflict(client, sync_result):
    sync_result["result"] = SyncRunResult(ok=False, phase=SyncPhase.ERROR, error="locked", conflict=True)

    assert client.post("/gmail/sync", headers=AUTH).status_code == 409


def test_backfill_contact_forwards_payload(client, monkeypatch):
    calls = []

    async def fake_backfill(addresses, contact_id=None, limit=None):
        calls.append((addresses, contact_id, limit))
        return SyncRunResult(phase=SyncPhase.DONE, processed=1, inserted=1)

    monkeypatch.setattr(backfill_service, "backfill_contact", fake_backfill)

    response = client.post(
        "/gmail/backfill-contact",
        headers=AUTH,
        json={"emails": ["bob@x.com"], "contactId": "c-1", "limit": 20},
    )

    assert response.status_code == 200
    assert calls == [(["bob@x.com"], "c-1", 20)]


def test_backfill_contact_rejects_empty_list(client):
    response = client.post("/gmail/backfill-contact", headers=AUTH, json={"emails": []})

    assert response.status_code == 422


def test_classify_all(client, monkeypatch):
    async def fake_run():
        return ClassifyBatchResult(offset=0, next_offset=15, batch_size=15, processed=15, updated=3)

    monkeypatch.setattr(classify_batch_service, "run", fake_run)

    response = client.get("/ai/classify-all", headers=AUTH)

    assert response.status_code == 200
    assert response.json()["next_offset"] == 15


def test_reminders(client, monkeypatch):
    async def fake_run():
        return {"ok": True, "date": "2024-02-11", "due": 1, "notified": 1}

    monkeypatch.setattr(reminder_service, "run", fake_run)

    response = client.post("/reminders/run", headers=AUTH)

    assert response.json()["notified"] == 1


def test_summary_without_emails_is_404(client, monkeypatch):
    async def fake_insight(contact_id, kind, force=False):
        raise NoEmailsError("none")

    monkeypatch.setattr(insight_service, "get_insight", fake_insight)

    response = client.post("/summary", json={"contactId": "c-1"})

    assert response.status_code == 404
    assert response.json() == {"ok": False, "error": "No emails for this contact"}


def test_category_rate_limited_is_429(client, monkeypatch):
    async def fake_insight(contact_id, kind, force=False):
        raise AiServiceError("slow down", status_code=429)

    monkeypatch.setattr(insight_service, "get_insight", fake_insight)

    response = client.post("/ai/category", json={"contactId": "c-1", "force": True})

    assert response.status_code == 429
    assert response.json()["error"] == "AI rate limit reached, try again shortly"
