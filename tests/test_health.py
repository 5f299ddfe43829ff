"""
tests/test_health.py -- Integration tests for GET /api/v1/health.

Covers:
  - 200 response with status, version, and components fields
  - components.database reports 'ok' while the store answers, 'error' when it does not
  - No authentication required
"""

from __future__ import annotations


def test_health_returns_200_with_components(api_client):
    """Health endpoint returns 200 with status, version, and components."""
    client, _, _ = api_client
    resp = client.get("/api/v1/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "healthy"
    assert data["version"] == "0.1.0"
    assert data["components"] == {"app": "ok", "database": "ok"}


def test_health_reports_database_error(api_client, monkeypatch):
    """A store that cannot answer turns the database component to 'error'."""
    client, _, _ = api_client
    monkeypatch.setattr(client.app.state.account_store, "ping", lambda: False)
    data = client.get("/api/v1/health").json()
    assert data["components"]["database"] == "error"
    assert data["components"]["app"] == "ok"


def test_health_no_auth_required(api_client):
    """Health endpoint is accessible without any authentication headers."""
    client, _, _ = api_client
    resp = client.get("/api/v1/health", headers={})
    assert resp.status_code == 200
    assert resp.json()["status"] == "healthy"
