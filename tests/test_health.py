"""Tests for the probes and request-context middleware."""
from unittest.mock import patch

from fastapi.testclient import TestClient

from app.main import app


def test_liveness():
    resp = TestClient(app).get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "healthy"}


def test_request_id_is_echoed():
    resp = TestClient(app).get("/health", headers={"X-Request-ID": "abc123"})
    assert resp.headers["X-Request-ID"] == "abc123"


def test_request_id_generated_when_absent():
    resp = TestClient(app).get("/health")
    assert len(resp.headers["X-Request-ID"]) == 32


def test_deep_probe_without_database():
    with patch("app.main.get_engine", return_value=None):
        resp = TestClient(app).get("/health/deep")
    body = resp.json()
    assert resp.status_code == 200
    assert body["database"] == "not_configured"
    assert body["gemini_api_key"] == "configured"
    assert body["status"] == "healthy"
    assert body["scoring_models"]
