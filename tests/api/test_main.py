"""
Tests for application wiring and lifecycle.
"""
import json
import time
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from venuebot.api.main import create_app
from venuebot.config import settings
from venuebot.repositories import db_manager
from venuebot.services.telegram_client import CallSuccess

from tests.message_queue.fakes import FakeApiClient, RecordingRouter


def wait_until(predicate, timeout: float = 5.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.02)
    return False


@pytest.fixture
def patched_database(monkeypatch, mongo_db):
    """Lifespan runs against the in-process database."""
    monkeypatch.setattr(db_manager, "connect", AsyncMock())
    monkeypatch.setattr(db_manager, "disconnect", AsyncMock())
    monkeypatch.setattr(db_manager, "_database", mongo_db)
    monkeypatch.setattr(settings, "telegram_webhook_secret_token", None)
    monkeypatch.setattr(settings, "telegram_mode", "webhook")
    return mongo_db


class TestApplicationLifespan:
    """Startup builds the pipeline; shutdown stops it."""

    def test_webhook_update_reaches_router(self, patched_database):
        router = RecordingRouter()
        app = create_app(router=router, api_client=FakeApiClient(CallSuccess()))
        body = json.dumps({
            "update_id": 8080,
            "message": {"message_id": 1, "chat": {"id": 3, "type": "private"}, "text": "hello"},
        })

        with TestClient(app) as client:
            assert app.state.inbound_worker.running
            assert app.state.outbox_worker.running

            response = client.post(settings.telegram_webhook_path, content=body)
            assert response.status_code == 200

            assert wait_until(lambda: len(router.updates) == 1)
            assert router.updates[0].update_id == 8080

        assert app.state.inbound_worker.running is False
        assert app.state.outbox_worker.running is False
        db_manager.disconnect.assert_awaited()

    def test_enqueued_message_is_sent(self, patched_database):
        api = FakeApiClient(CallSuccess())
        app = create_app(api_client=api)

        with TestClient(app) as client:
            client.portal.call(app.state.enqueuer.enqueue_send_message, 3, "Order accepted")

            assert wait_until(lambda: len(api.calls) == 1)
            assert api.calls[0] == ("sendMessage", {"chat_id": 3, "text": "Order accepted"})

    def test_workers_disabled_without_router_or_client(self, patched_database, monkeypatch):
        monkeypatch.setattr(settings, "telegram_bot_token", None)
        app = create_app()

        with TestClient(app):
            assert app.state.inbound_worker is None
            assert app.state.outbox_worker is None
            assert app.state.ingestor is not None
