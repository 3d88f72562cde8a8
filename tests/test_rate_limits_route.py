"""Tests for the policy introspection endpoint and OpenAPI additions."""

from __future__ import annotations

from fastapi.testclient import TestClient

from trustelect.core.config import settings
from trustelect.main import app

client = TestClient(app)


def test_lists_configured_policies():
    resp = client.get("/v1/rate-limits")

    assert resp.status_code == 200
    data = resp.json()
    assert data["enabled"] is True
    by_name = {p["name"]: p for p in data["policies"]}
    assert set(by_name) == {"login", "api", "voting", "ballot", "results"}
    assert by_name["voting"]["key_prefix"] == "vote"
    assert by_name["voting"]["window_seconds"] == 300
    assert by_name["results"]["max_requests"] == 60


def test_reflects_setting_overrides(monkeypatch):
    monkeypatch.setattr(settings.rate_limit, "login_window_seconds", 120)

    data = client.get("/v1/rate-limits").json()

    login = next(p for p in data["policies"] if p["name"] == "login")
    assert login["window_seconds"] == 120


def test_endpoint_is_guarded_by_api_policy():
    resp = client.get("/v1/rate-limits")

    assert resp.headers["RateLimit-Limit"] == "200"


def test_health_is_not_rate_limited():
    resp = client.get("/health")

    assert resp.json() == {"status": "ok"}
    assert "RateLimit-Limit" not in resp.headers


def test_openapi_documents_429():
    schema = app.openapi()

    assert "TooManyRequests" in schema["components"]["responses"]
    guarded = schema["paths"]["/v1/rate-limits"]["get"]["responses"]
    assert guarded["429"] == {"$ref": "#/components/responses/TooManyRequests"}
    assert "429" not in schema["paths"]["/health"]["get"]["responses"]
