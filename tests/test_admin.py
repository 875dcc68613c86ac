"""Tests for the HTTP surface: webhook ingestion, trigger endpoint, admin API."""

import asyncio
import time
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from remindbot.admin.app import create_app
from remindbot.admin.schemas import RuntimeControl
from remindbot.core.lifecycle import SweepSummary
from remindbot.datamodel import ChannelType, Reminder, ReminderStatus
from remindbot.errors import StoreError
from remindbot.events import Bus, E

TOKEN = "s3cret"


@pytest.fixture
def received() -> MagicMock:
    return MagicMock()


@pytest.fixture
def control(received) -> RuntimeControl:
    bus = Bus()
    bus.add_listener(E.IO_MESSAGE_RECEIVED, received)
    return RuntimeControl(shutdown_event=asyncio.Event(), started_at=time.time(), bus=bus)


@pytest.fixture
def engine() -> MagicMock:
    engine = MagicMock()
    engine.run_sweep = AsyncMock(return_value=SweepSummary(total=3, processed=1, errored=1, delivery_errors=1, skipped=1))
    return engine


@pytest.fixture
def store() -> MagicMock:
    store = MagicMock()
    reminder = Reminder(
        reminder_id=7,
        user_id="u1",
        task_description="water plants",
        reminder_time=datetime(2030, 3, 4, 9, 0, tzinfo=timezone.utc),
        status=ReminderStatus.PENDING,
    )
    store.list_reminders = AsyncMock(return_value=([reminder], 1))
    return store


@pytest.fixture
def bot() -> MagicMock:
    bot = MagicMock()
    bot.get_status.return_value = {"in_flight": 0}
    return bot


@pytest.fixture
def client(control, engine, bot, store) -> TestClient:
    return TestClient(create_app(control, engine, bot, store))


class TestWebhook:
    """POST /webhook/whatsapp"""

    def test_acknowledges_and_emits(self, client, received) -> None:
        response = client.post("/webhook/whatsapp", json={"userId": "628123@c.us", "messageText": "remind me"})

        assert response.status_code == 200
        assert response.text == "OK"
        msg = received.call_args.args[0]
        assert msg.user_id == "628123@c.us"
        assert msg.content == "remind me"
        assert msg.channel_type == ChannelType.WHATSAPP_BRIDGE

    @pytest.mark.parametrize(
        "payload",
        [{"userId": "628123@c.us"}, {"messageText": "hi"}, {"userId": "", "messageText": "hi"}],
    )
    def test_missing_fields(self, client, received, payload) -> None:
        response = client.post("/webhook/whatsapp", json=payload)

        assert response.status_code == 400
        assert response.text == "Bad Request: Missing userId or messageText"
        received.assert_not_called()

    def test_invalid_json(self, client, received) -> None:
        response = client.post(
            "/webhook/whatsapp", content=b"{not json", headers={"Content-Type": "application/json"}
        )
        assert response.status_code == 400
        received.assert_not_called()

    def test_owner_filter(self, client, control, received) -> None:
        control.owner_whatsapp_id = "628999@c.us"

        response = client.post("/webhook/whatsapp", json={"userId": "628123@c.us", "messageText": "hi"})

        assert response.status_code == 200
        received.assert_not_called()


class TestTrigger:
    """/trigger/send-reminders"""

    @pytest.mark.parametrize("method", ["GET", "POST"])
    def test_returns_summary(self, client, method) -> None:
        response = client.request(method, "/trigger/send-reminders")

        assert response.status_code == 200
        assert response.json() == {
            "message": "Trigger processed",
            "total": 3,
            "processed": 1,
            "errors": 1,
            "delivery_errors": 1,
            "processing_errors": 0,
            "skipped": 1,
        }

    def test_query_failure_is_500(self, client, engine) -> None:
        engine.run_sweep.return_value = SweepSummary(query_error="database is locked")

        response = client.post("/trigger/send-reminders")

        assert response.status_code == 500
        assert response.json() == {"error": "Internal server error", "message": "database is locked"}

    def test_requires_token_when_configured(self, client, control, engine) -> None:
        control.auth_token = TOKEN

        assert client.post("/trigger/send-reminders").status_code == 401
        assert client.post("/trigger/send-reminders", headers={"Authorization": "Bearer wrong"}).status_code == 401
        engine.run_sweep.assert_not_awaited()

        ok = client.post("/trigger/send-reminders", headers={"Authorization": f"Bearer {TOKEN}"})
        assert ok.status_code == 200

    def test_token_header(self, client, control) -> None:
        control.auth_token = TOKEN
        response = client.get("/trigger/send-reminders", headers={"X-RemindBot-Token": TOKEN})
        assert response.status_code == 200


class TestAdminApi:
    """Read-only admin endpoints."""

    def test_health(self, client) -> None:
        assert client.get("/healthz").text == "ok"
        assert client.get("/").text == "RemindBot backend is running."
        body = client.get("/api/v1/health").json()
        assert body["status"] == "ok"
        assert body["shutdown_requested"] is False

    def test_list_reminders(self, client, store) -> None:
        response = client.get("/api/v1/reminders", params={"user_id": "u1", "status": "pending", "limit": 1000})

        assert response.status_code == 200
        body = response.json()
        assert body["total"] == 1
        assert body["limit"] == 500
        assert body["items"][0]["task_description"] == "water plants"
        assert body["items"][0]["reminder_time_utc"] == "2030-03-04T09:00:00Z"
        assert store.list_reminders.await_args.kwargs["status"] == ReminderStatus.PENDING

    def test_invalid_status(self, client, store) -> None:
        assert client.get("/api/v1/reminders", params={"status": "snoozed"}).status_code == 400
        store.list_reminders.assert_not_awaited()

    def test_list_store_failure_is_500(self, client, store) -> None:
        store.list_reminders.side_effect = StoreError("database is locked")

        response = client.get("/api/v1/reminders")

        assert response.status_code == 500
        assert response.json() == {"error": "Internal server error", "message": "database is locked"}

    def test_metrics(self, client) -> None:
        body = client.get("/api/v1/metrics").json()

        assert "nlu_call_count" in body["runtime"]
        assert body["components"]["bot"] == {"in_flight": 0}
        assert body["components"]["whatsapp_bridge"] == {"enabled": True}

    def test_admin_api_requires_token(self, client, control) -> None:
        control.auth_token = TOKEN
        assert client.get("/api/v1/reminders").status_code == 401
        assert client.get("/api/v1/metrics").status_code == 401
        assert client.get("/healthz").status_code == 200
