"""Web API tests for general functionality.

Tests health check, error handling, CORS, users and the echo chat endpoint.
"""

from __future__ import annotations

import json

import pytest
from flask.testing import FlaskClient


@pytest.mark.web
class TestHealthCheck:
    """Test GET /api/health endpoint."""

    def test_health_check(self, client: FlaskClient) -> None:
        """Test health check endpoint."""
        response = client.get("/api/health")

        assert response.status_code == 200
        assert json.loads(response.data) == {"status": "ok"}


@pytest.mark.web
class TestErrorHandling:
    """Test API error handling."""

    def test_unknown_route_returns_json_404(self, client: FlaskClient) -> None:
        response = client.get("/api/nonexistent")

        assert response.status_code == 404
        assert json.loads(response.data) == {"error": "Not found"}

    def test_malformed_id_returns_400(self, client: FlaskClient) -> None:
        response = client.get("/api/habits/not-a-uuid")

        assert response.status_code == 400
        assert "habit_id" in json.loads(response.data)["error"]

    def test_non_object_body_returns_400(self, client: FlaskClient) -> None:
        response = client.post("/api/notes", json=["not", "an", "object"])

        assert response.status_code == 400
        assert json.loads(response.data)["error"].startswith("Invalid body")

    def test_wrong_method_not_allowed(self, client: FlaskClient) -> None:
        response = client.put("/api/health")

        assert response.status_code == 405


@pytest.mark.web
class TestCors:
    """CORS is enabled for all routes."""

    def test_cors_header_present(self, client: FlaskClient) -> None:
        response = client.get("/api/health", headers={"Origin": "http://localhost:3000"})

        # Older flask-cors answers "*", newer releases echo the Origin
        assert response.headers.get("Access-Control-Allow-Origin") in ("*", "http://localhost:3000")


@pytest.mark.web
class TestUsers:
    """Test /api/users endpoints."""

    def test_latest_user_name(self, client: FlaskClient) -> None:
        response = client.get("/api/users/latest")

        assert response.status_code == 200
        assert json.loads(response.data) == {"name": "Ada"}

    def test_create_user_becomes_latest(self, client: FlaskClient) -> None:
        response = client.post("/api/users", json={"name": "Bea", "email": "bea@example.com"})

        assert response.status_code == 201
        user = json.loads(response.data)
        assert len(user["id"]) == 32
        assert user["email"] == "bea@example.com"

        latest = json.loads(client.get("/api/users/latest").data)
        assert latest == {"name": "Bea"}

    def test_create_user_requires_name_or_email(self, client: FlaskClient) -> None:
        response = client.post("/api/users", json={})

        assert response.status_code == 400


@pytest.mark.web
class TestChatEcho:
    """Test POST /api/chat endpoint."""

    def test_echo(self, client: FlaskClient) -> None:
        response = client.post("/api/chat", json={"message": "hello"})

        assert response.status_code == 200
        assert json.loads(response.data) == {"message": "Echo: hello"}
