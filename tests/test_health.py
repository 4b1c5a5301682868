"""
tests/test_health.py -- Integration tests for GET /api/v1/health.

Covers:
  - 200 response with status, version, and components fields
  - components.database reports 'ok' against a live engine
  - degraded status when the database is unreachable
  - No authentication required
"""

from __future__ import annotations

from api.main import __version__


def test_health_returns_200_with_components(api_client):
    """Health endpoint returns 200 with status, version, and components."""
    resp = api_client.get("/api/v1/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "healthy"
    assert data["version"] == __version__
    assert data["components"]["app"] == "ok"
    assert data["components"]["database"] == "ok"


def test_health_no_auth_required(api_client):
    resp = api_client.get("/api/v1/health", headers={})
    assert resp.status_code == 200


def test_health_reports_degraded_when_database_fails(api_client):
    class BrokenEngine:
        def connect(self):
            raise RuntimeError("database is gone")

    real_engine = api_client.app.state.engine
    api_client.app.state.engine = BrokenEngine()
    try:
        data = api_client.get("/api/v1/health").json()
    finally:
        api_client.app.state.engine = real_engine
    assert data["status"] == "degraded"
    assert data["components"]["database"] == "error"
