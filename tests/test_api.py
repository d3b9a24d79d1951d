"""Tests for the HTTP surface: source creation, brief execution, reports, inbound email."""

from datetime import timedelta

import httpx
import pytest

from briefdeck.app import app
from briefdeck.db.session import get_db
from briefdeck.dependencies import get_job_queue, get_registry
from briefdeck.models import BriefStatus, ItemStatus, SourceType
from briefdeck.services.fetchers import ValidationResult
from briefdeck.services.report_service import execute_brief

from conftest import NOW


class AcceptingValidator:
    def __init__(self, source_type):
        self.source_type = source_type

    async def fetch(self, source, since):
        raise NotImplementedError

    async def validate(self, identifier):
        return ValidationResult.ok(title="Validated")


@pytest.fixture
async def client(db, queue):
    async def override_db():
        yield db

    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[get_job_queue] = lambda: queue
    app.dependency_overrides[get_registry] = lambda: {t: AcceptingValidator(t) for t in SourceType}
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client
    app.dependency_overrides.clear()


async def test_health(client):
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


async def test_create_email_source(client, make_brief):
    brief = await make_brief()

    resp = await client.post(f"/api/briefs/{brief.id}/sources", json={"type": "EMAIL", "name": "Digest"})

    assert resp.status_code == 201
    body = resp.json()
    assert body["type"] == "EMAIL"
    assert body["inbound_address"] == f"{body['email_address']}@in.briefdeck.test"

    resp = await client.get(f"/api/sources/{body['id']}")
    assert resp.status_code == 200
    assert resp.json()["name"] == "Digest"


async def test_create_source_errors(client, make_brief):
    brief = await make_brief()
    url = f"/api/briefs/{brief.id}/sources"

    assert (await client.post("/api/briefs/999/sources", json={"type": "FEED", "url": "https://e.com/rss"})).status_code == 404
    assert (await client.post(url, json={"type": "FEED", "url": "https://e.com/rss"})).status_code == 201
    assert (await client.post(url, json={"type": "FEED", "url": "https://E.com/rss/"})).status_code == 409
    assert (await client.post(url, json={"type": "WEB", "url": "https://e.com/news"})).status_code == 422
    assert (await client.post(url, json={"type": "FEED", "url": "http://10.0.0.1/rss"})).status_code == 422
    assert (await client.post(url, json={"type": "PIGEON", "url": "https://e.com"})).status_code == 422


async def test_get_missing_source(client):
    assert (await client.get("/api/sources/424242")).status_code == 404


async def test_execute_brief_endpoint(client, queue, make_brief):
    brief = await make_brief()

    resp = await client.post(f"/api/briefs/{brief.id}/execute")
    assert resp.status_code == 202
    assert resp.json() == {"brief_id": brief.id, "status": "QUEUED"}
    assert queue.briefs == [brief.id]

    assert (await client.post(f"/api/briefs/{brief.id}/execute")).status_code == 409
    assert (await client.post("/api/briefs/999/execute")).status_code == 404


async def test_latest_report(client, db, settings, make_brief, make_source, make_item):
    brief = await make_brief(status=BriefStatus.QUEUED)
    source = await make_source(brief)
    item = await make_item(
        source, title="Big news", score=88, status=ItemStatus.DONE, published_at=NOW - timedelta(hours=1)
    )

    assert (await client.get(f"/api/briefs/{brief.id}/reports/latest")).status_code == 404

    await execute_brief(db, brief.id, settings, NOW)
    resp = await client.get(f"/api/briefs/{brief.id}/reports/latest")

    assert resp.status_code == 200
    body = resp.json()
    assert body["brief_id"] == brief.id
    assert body["items"] == [
        {
            "position": 1,
            "score": 88,
            "item_id": item.id,
            "title": "Big news",
            "link": None,
            "summary": None,
            "published_at": body["items"][0]["published_at"],
        }
    ]


async def test_inbound_email_webhook(client, queue):
    payload = {
        "recipient": "token@in.briefdeck.test",
        "from": "news@publisher.example",
        "subject": "Digest",
        "content": "<p>Hello</p>",
        "received_at": "2026-10-17T07:30:00Z",
        "message_id": "<m1@publisher.example>",
    }

    resp = await client.post("/webhooks/inbound-email", json=payload, headers={"X-Inbound-Secret": "wrong"})
    assert resp.status_code == 401
    assert queue.emails == []

    resp = await client.post("/webhooks/inbound-email", json=payload, headers={"X-Inbound-Secret": "test-secret"})
    assert resp.status_code == 202
    assert queue.emails[0]["from"] == "news@publisher.example"
    assert queue.emails[0]["message_id"] == "<m1@publisher.example>"


async def test_inbound_email_webhook_rejects_bad_body(client):
    resp = await client.post(
        "/webhooks/inbound-email",
        json={"recipient": "x@in.briefdeck.test", "received_at": "2026-10-17T07:30:00Z", "message_id": ""},
        headers={"X-Inbound-Secret": "test-secret"},
    )
    assert resp.status_code == 422
