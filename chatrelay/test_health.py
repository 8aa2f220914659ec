"""
Tests for the HTTP probes and metrics endpoint.

Tests cover:
- Liveness always ok
- Readiness depends on the database schema
- Metrics exposition includes relay counters
"""

import pytest
from fastapi.testclient import TestClient

from chatrelay.auth import create_access_token
from chatrelay.main import app
from chatrelay.storage import Base, engine


@pytest.fixture(scope="function")
def client():
    """Create test client with fresh database for each test."""
    Base.metadata.create_all(bind=engine)

    with TestClient(app) as test_client:
        yield test_client

    Base.metadata.drop_all(bind=engine)


class TestHealth:

    def test_live(self, client):
        response = client.get("/health/live")

        assert response.status_code == 200
        assert response.json()["status"] == "ok"
        assert "X-Request-ID" in response.headers

    def test_ready(self, client):
        response = client.get("/health/ready")

        assert response.status_code == 200
        assert response.json()["status"] == "ready"

    def test_not_ready_without_schema(self, client):
        Base.metadata.drop_all(bind=engine)

        response = client.get("/health/ready")

        assert response.status_code == 503
        data = response.json()
        assert data["status"] == "not_ready"
        assert "schema" in data["reason"]


class TestMetrics:

    def test_metrics_exposition(self, client):
        client.get("/health/live")
        token = create_access_token("alice")
        with client.websocket_connect(f"/ws?token={token}") as ws:
            ws.receive_json()
            ws.send_json({"event": "message", "data": "hi"})
            ws.receive_json()

        response = client.get("/metrics")

        assert response.status_code == 200
        body = response.text
        assert "http_requests_total" in body
        assert 'ws_handshakes_total{result="accepted"}' in body
        assert 'chat_events_total{event="message",result="broadcast"}' in body
        assert "ws_connections_active" in body
