"""
Tests for the admin HTTP API.
"""

import asyncio
import time
from datetime import timedelta

import httpx
import pytest
import pytest_asyncio
from conftest import RecordingNotifier

import config.settings as settings
from admin.app import create_app
from admin.schemas import RuntimeControl
from scheduler.dispatcher import Dispatcher, configure_dispatcher
from scheduler.rebuild import Rebuilder, configure_rebuilder
from sources.memory import InMemoryEventSource
from utils import now_utc

AUTH = {"Authorization": "Bearer secret"}


@pytest.fixture
def control() -> RuntimeControl:
    return RuntimeControl(shutdown_event=asyncio.Event(), restart_event=asyncio.Event(), started_at=time.time())


@pytest_asyncio.fixture
async def client(db, monkeypatch, notifier, control):
    monkeypatch.setattr(settings, "ADMIN_AUTH_TOKEN", "secret")
    source = InMemoryEventSource()
    configure_dispatcher(Dispatcher(source, notifier))
    configure_rebuilder(Rebuilder(source))

    app = create_app(control)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


def _event_body(event_id: str = "surg-1", hours: int = 3) -> dict:
    return {
        "id": event_id,
        "kind": "surgery",
        "title": "Appendectomy",
        "patient_id": "pat-1",
        "patient_name": "Ada Obi",
        "scheduled_at": (now_utc() + timedelta(hours=hours)).isoformat(),
        "priority": "urgent",
        "location": "Theatre 2",
    }


class TestHealthAndAuth:
    """Tests for health checks and token auth."""

    @pytest.mark.asyncio
    async def test_healthz_is_public(self, client):
        response = await client.get("/healthz")

        assert response.status_code == 200
        assert response.text == "ok"

    @pytest.mark.asyncio
    async def test_health_payload(self, client):
        body = (await client.get("/api/v1/health")).json()

        assert body["status"] == "ok"
        assert body["db_connected"] is True
        assert body["bridge_connected"] is False

    @pytest.mark.asyncio
    async def test_metrics_requires_token(self, client):
        assert (await client.get("/api/v1/metrics")).status_code == 401
        assert (await client.get("/api/v1/metrics", headers={"Authorization": "Bearer wrong"})).status_code == 401

    @pytest.mark.asyncio
    async def test_custom_token_header(self, client):
        response = await client.get("/api/v1/metrics", headers={"X-CareBridge-Token": "secret"})

        assert response.status_code == 200
        body = response.json()
        assert body["components"]["dispatcher"]["configured"] is True
        assert body["components"]["rebuilder"]["configured"] is True
        assert body["reminders"] == {"pending": 0, "sent": 0, "failed": 0}

    @pytest.mark.asyncio
    async def test_unconfigured_token(self, client, monkeypatch):
        monkeypatch.setattr(settings, "ADMIN_AUTH_TOKEN", "")

        assert (await client.get("/api/v1/metrics", headers=AUTH)).status_code == 503


class TestEventsAndReminders:
    """Tests for the event push and reminder inspection endpoints."""

    @pytest.mark.asyncio
    async def test_event_lifecycle(self, client):
        response = await client.post("/api/v1/events", json=_event_body(), headers=AUTH)

        assert response.status_code == 200
        body = response.json()
        assert body["written"] == 5
        assert [item["offset_minutes"] for item in body["items"]] == [120, 60, 30, 15, 5]

        listed = (await client.get("/api/v1/reminders/surg-1", headers=AUTH)).json()
        assert len(listed["items"]) == body["written"]

        deleted = (await client.delete("/api/v1/events/surg-1", headers=AUTH)).json()
        assert deleted["deleted"] == body["written"]
        assert (await client.get("/api/v1/reminders/surg-1", headers=AUTH)).json()["items"] == []

    @pytest.mark.asyncio
    async def test_naive_time_rejected(self, client):
        body = _event_body()
        body["scheduled_at"] = "2026-03-02T10:00:00"

        response = await client.post("/api/v1/events", json=body, headers=AUTH)

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_reminder_listing(self, client):
        await client.post("/api/v1/events", json=_event_body(hours=1), headers=AUTH)

        pending = (await client.get("/api/v1/reminders?status=pending", headers=AUTH)).json()
        bad = await client.get("/api/v1/reminders?status=lost", headers=AUTH)

        assert pending["total"] == len(pending["items"]) > 0
        assert bad.status_code == 400

    @pytest.mark.asyncio
    async def test_manual_tick_and_rebuild(self, client):
        tick = (await client.post("/api/v1/dispatch/tick", headers=AUTH)).json()
        rebuild = (await client.post("/api/v1/rebuild", headers=AUTH)).json()

        assert tick["ok"] is True
        assert tick["report"]["due"] == 0
        assert rebuild["ok"] is True
        assert rebuild["report"]["events"] == 0


class TestPreferencesAndNotices:
    """Tests for the voice toggle and immediate notices."""

    @pytest.mark.asyncio
    async def test_voice_toggle(self, client):
        assert (await client.get("/api/v1/preferences/voice", headers=AUTH)).json() == {"enabled": True}

        response = await client.put("/api/v1/preferences/voice", json={"enabled": False}, headers=AUTH)

        assert response.json() == {"enabled": False}
        assert (await client.get("/api/v1/preferences/voice", headers=AUTH)).json() == {"enabled": False}

    @pytest.mark.asyncio
    async def test_immediate_notice(self, client, notifier):
        body = {"kind": "lab_result", "id": "lab-1", "patient_id": "pat-1", "patient_name": "Ada Obi", "items": ["FBC"]}

        response = await client.post("/api/v1/notifications", json=body, headers=AUTH)

        assert response.status_code == 200
        assert response.json() == {"ok": True}
        assert notifier.shown[0].tag == "lab-result-lab-1"

    @pytest.mark.asyncio
    async def test_immediate_notice_failure(self, client):
        configure_dispatcher(Dispatcher(InMemoryEventSource(), RecordingNotifier(visual_ok=False)))
        body = {"kind": "investigation", "id": "inv-1", "patient_id": "pat-1"}

        response = await client.post("/api/v1/notifications", json=body, headers=AUTH)

        assert response.status_code == 502
        assert response.json()["detail"] == "permission denied"

    @pytest.mark.asyncio
    async def test_shutdown_request(self, client, control):
        response = await client.post("/api/v1/admin/shutdown", json={"reason": "maintenance"}, headers=AUTH)

        assert response.json()["action"] == "shutdown"
        assert control.shutdown_event.is_set()
        assert not control.restart_event.is_set()
