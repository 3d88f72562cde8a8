"""Tests for global exception handlers.

Validates that domain errors and rate limit rejections are rendered with
the right status codes and body shapes, without leaking internals.
"""

import asyncio
import json
from unittest.mock import AsyncMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from trustelect.core.errors import (
    AppError,
    ConfigurationAppError,
    RateLimitExceededError,
)
from trustelect.core.exception_handlers import general_exception_handler, setup_exception_handlers
from trustelect.services.admission import Decision, RejectionBody


def _rejection(message: str = "Too many requests. Please slow down.") -> Decision:
    return Decision(
        allowed=False,
        policy="api",
        key="api:1.1.1.1:anonymous",
        total_hits=201,
        limit=200,
        reset_time=60_000,
        now_ms=45_000,
        retry_after_seconds=60,
        body=RejectionBody(message=message, retry_after_seconds=60),
    )


@pytest.fixture
def app_with_handlers() -> FastAPI:
    app = FastAPI()
    setup_exception_handlers(app)
    return app


@pytest.fixture
def client(app_with_handlers: FastAPI) -> TestClient:
    return TestClient(app_with_handlers)


class TestRateLimitHandler:
    def test_rejection_renders_body_verbatim(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/limited")
        async def limited():
            raise RateLimitExceededError(_rejection())

        response = client.get("/limited")

        assert response.status_code == 429
        assert response.json() == {"message": "Too many requests. Please slow down.", "retryAfter": 60}
        assert response.headers["Retry-After"] == "60"
        assert response.headers["RateLimit-Limit"] == "200"
        assert response.headers["RateLimit-Remaining"] == "0"
        assert response.headers["RateLimit-Reset"] == "15"

    def test_rate_limit_error_is_an_app_error(self):
        exc = RateLimitExceededError(_rejection("Slow down"))

        assert isinstance(exc, AppError)
        assert exc.code == "rate_limit_exceeded"
        assert str(exc) == "Slow down"
        assert exc.details == {"http_status": 429, "retry_after": 60}


class TestAppErrorHandler:
    def test_configuration_error_returns_500_with_details(
        self, client: TestClient, app_with_handlers: FastAPI
    ):
        @app_with_handlers.get("/test-config")
        async def test_endpoint():
            raise ConfigurationAppError(
                code="invalid_limit",
                message="Policy 'login' max_requests must be > 0",
                details={"policy": "login", "field": "max_requests", "actual_value": 0},
            )

        response = client.get("/test-config")

        assert response.status_code == 500
        data = response.json()
        assert data["error"]["code"] == "invalid_limit"
        assert data["error"]["details"]["policy"] == "login"
        assert "request_id" in data["error"]

    def test_plain_app_error_returns_500(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/test-app-error")
        async def test_endpoint():
            raise AppError(code="registry_unavailable", message="Policy registry is not ready")

        response = client.get("/test-app-error")

        assert response.status_code == 500
        assert response.json()["error"]["code"] == "registry_unavailable"
        assert "details" not in response.json()["error"]


class TestGeneralExceptionHandler:
    def test_general_exception_handler_hides_internals(self):
        request = AsyncMock()
        request.url.path = "/v1/rate-limits"
        request.method = "GET"

        exc = RuntimeError("counter store lock poisoned")
        response = asyncio.run(general_exception_handler(request, exc))

        data = json.loads(bytes(response.body).decode())
        assert response.status_code == 500
        assert data["error"]["code"] == "internal_server_error"
        assert "lock poisoned" not in data["error"]["message"]
        assert "RuntimeError" not in bytes(response.body).decode()

    def test_setup_registers_handlers(self, app_with_handlers: FastAPI):
        assert RateLimitExceededError in app_with_handlers.exception_handlers
        assert AppError in app_with_handlers.exception_handlers
        assert Exception in app_with_handlers.exception_handlers
