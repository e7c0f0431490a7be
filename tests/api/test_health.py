"""
Tests for health and readiness endpoints.
"""
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from venuebot.api.main import create_app
from venuebot.message_queue import InMemoryQueueStore
from venuebot.repositories import db_manager
from venuebot.repositories.idempotency import InMemoryIdempotencyGuard
from venuebot.services.ingestion import UpdateIngestor


@pytest.fixture
def app():
    app = create_app()
    store = InMemoryQueueStore.inbound()
    app.state.ingestor = UpdateIngestor(InMemoryIdempotencyGuard(), store)
    app.state.inbound_worker = None
    app.state.outbox_worker = None
    return app


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def database(monkeypatch):
    database = AsyncMock()
    monkeypatch.setattr(db_manager, "_database", database)
    return database


class TestHealthEndpoints:
    """Tests for /health and /ready."""

    def test_health_check(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["service"] == "venuebot"

    def test_ready_when_mongo_answers(self, client, database):
        response = client.get("/ready")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ready"
        assert data["workers"] == {"inbound": "disabled", "outbox": "disabled"}
        database.command.assert_awaited_with("ping")

    def test_not_ready_when_mongo_down(self, client, database):
        database.command.side_effect = ConnectionError("unreachable")

        response = client.get("/ready")

        assert response.status_code == 503
        assert response.json()["reason"] == "MongoDB unavailable"

    def test_not_ready_before_startup(self, database):
        client = TestClient(create_app())

        response = client.get("/ready")

        assert response.status_code == 503
