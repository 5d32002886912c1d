"""Tests for the rate-limit middleware and the HTTP error boundary."""

from __future__ import annotations

import asyncio
from typing import Any

import pytest
from fastapi.testclient import TestClient

from conftest import auth_header
from voxwatch.api.middleware import tier_for_path
from voxwatch.core.errors import GENERIC_ERROR_MESSAGE, RATE_LIMIT_MESSAGE, NotFoundError


@pytest.fixture
def limited_app(app_factory):
    """App with extra routes in each tier and a hit counter."""
    app = app_factory()
    app.state.hits = 0

    @app.post("/api/auth/login")
    async def login() -> dict[str, Any]:
        app.state.hits += 1
        return {"ok": True}

    @app.get("/api/ping")
    async def ping() -> dict[str, Any]:
        return {"ok": True}

    return app


class TestTierForPath:
    @pytest.mark.parametrize(
        ("path", "tier"),
        [
            ("/api/auth/login", "auth"),
            ("/api/auth", "auth"),
            ("/api/analytics/latency", "heavy"),
            ("/api/usage/me", "api"),
            ("/api", "api"),
            ("/apiary", None),
            ("/health", None),
            ("/metrics", None),
        ],
    )
    def test_prefixes(self, path: str, tier: str | None) -> None:
        assert tier_for_path(path) == tier


class TestRateLimitMiddleware:
    def test_admitted_response_carries_headers(self, limited_app) -> None:
        with TestClient(limited_app) as client:
            response = client.post("/api/auth/login")

        assert response.status_code == 200
        assert response.headers["RateLimit-Limit"] == "20"
        assert response.headers["RateLimit-Remaining"] == "19"
        assert response.headers["RateLimit-Reset"] == "900"
        assert "Retry-After" not in response.headers
        assert not any(name.lower().startswith("x-ratelimit") for name in response.headers)

    def test_auth_tier_rejects_after_limit(self, limited_app) -> None:
        with TestClient(limited_app) as client:
            statuses = [client.post("/api/auth/login").status_code for _ in range(20)]
            rejected = client.post("/api/auth/login")

        assert statuses == [200] * 20
        assert rejected.status_code == 429
        assert rejected.json() == {"error": RATE_LIMIT_MESSAGE}
        assert rejected.headers["RateLimit-Remaining"] == "0"
        assert rejected.headers["Retry-After"] == "900"
        assert limited_app.state.hits == 20

    def test_actors_have_separate_budgets(self, app_factory) -> None:
        app = app_factory(rate_limit_api_max=2)

        @app.get("/api/ping")
        async def ping() -> dict[str, Any]:
            return {"ok": True}

        with TestClient(app) as client:
            for _ in range(2):
                assert client.get("/api/ping", headers=auth_header("a")).status_code == 200
            assert client.get("/api/ping", headers=auth_header("a")).status_code == 429
            assert client.get("/api/ping", headers=auth_header("b")).status_code == 200
            # Anonymous callers share the client-address budget
            assert client.get("/api/ping").status_code == 200

        windows = app.state.telemetry.limiter
        assert windows.window_count() == 3

    def test_tiers_are_independent(self, limited_app) -> None:
        with TestClient(limited_app) as client:
            for _ in range(20):
                client.post("/api/auth/login")
            assert client.post("/api/auth/login").status_code == 429
            assert client.get("/api/ping").status_code == 200

    def test_rejections_are_counted_in_metrics(self, app_factory) -> None:
        app = app_factory(rate_limit_auth_max=1)

        @app.post("/api/auth/login")
        async def login() -> dict[str, Any]:
            return {"ok": True}

        with TestClient(app) as client:
            client.post("/api/auth/login")
            client.post("/api/auth/login")
            content = client.get("/metrics").text

        assert 'voxwatch_rate_limit_rejections_total{tier="auth"} 1.0' in content

    def test_disabled(self, app_factory) -> None:
        app = app_factory(rate_limit_enabled=False, rate_limit_api_max=1)

        @app.get("/api/ping")
        async def ping() -> dict[str, Any]:
            return {"ok": True}

        with TestClient(app) as client:
            statuses = {client.get("/api/ping").status_code for _ in range(3)}
            response = client.get("/api/ping")

        assert statuses == {200}
        assert "RateLimit-Limit" not in response.headers


class TestErrorBoundary:
    @pytest.fixture
    def failing_app(self, app_factory):
        app = app_factory()

        @app.get("/api/boom")
        async def boom() -> None:
            raise RuntimeError("database password is hunter2")

        @app.get("/api/missing")
        async def missing() -> None:
            raise NotFoundError("not found")

        return app

    def test_unexpected_error_is_generic_500(self, failing_app, log_records) -> None:
        with TestClient(failing_app) as client:
            response = client.get("/api/boom")

        assert response.status_code == 500
        assert response.json() == {"error": GENERIC_ERROR_MESSAGE}
        assert "hunter2" not in response.text
        assert failing_app.state.telemetry.usage.get_global_stats()["error_count"] == 1

        captured = [r for r in log_records if r["message"].startswith("Captured exception")]
        assert captured
        assert captured[0]["extra"]["url"] == "/api/boom"
        assert captured[0]["extra"]["method"] == "GET"

    def test_operational_error_keeps_status_and_message(self, failing_app) -> None:
        with TestClient(failing_app) as client:
            response = client.get("/api/missing")

        assert response.status_code == 404
        assert response.json() == {"error": "not found"}
        assert failing_app.state.telemetry.usage.get_global_stats()["error_count"] == 1

    def test_unknown_route_is_not_a_fault(self, failing_app) -> None:
        with TestClient(failing_app) as client:
            response = client.get("/nowhere")

        assert response.status_code == 404
        assert response.json() == {"error": "Not Found"}
        assert failing_app.state.telemetry.usage.get_global_stats()["error_count"] == 0

    def test_validation_error_is_422(self, app_factory) -> None:
        app = app_factory()

        @app.get("/api/items/{item_id}")
        async def item(item_id: int) -> dict[str, int]:
            return {"id": item_id}

        with TestClient(app) as client:
            response = client.get("/api/items/abc")

        assert response.status_code == 422
        body = response.json()
        assert body["error"] == "Invalid request"
        assert body["details"][0]["loc"] == ["path", "item_id"]


class TestCors:
    """CORS headers on responses produced by the outer middleware."""

    ORIGIN = "http://ui.example"

    def test_rate_limited_response_carries_cors_headers(self, app_factory) -> None:
        app = app_factory(debug=True, rate_limit_auth_max=1)

        @app.get("/api/auth/ping")
        async def ping() -> dict[str, Any]:
            return {"ok": True}

        with TestClient(app) as client:
            admitted = client.get("/api/auth/ping", headers={"Origin": self.ORIGIN})
            rejected = client.get("/api/auth/ping", headers={"Origin": self.ORIGIN})

        assert admitted.status_code == 200
        assert rejected.status_code == 429
        assert rejected.json() == {"error": RATE_LIMIT_MESSAGE}
        assert rejected.headers["Access-Control-Allow-Origin"] in {"*", self.ORIGIN}
        assert "Retry-After" in rejected.headers

    def test_boundary_error_carries_cors_headers(self, app_factory) -> None:
        app = app_factory(debug=True)

        @app.get("/api/boom")
        async def boom() -> None:
            raise RuntimeError("boom")

        with TestClient(app) as client:
            response = client.get("/api/boom", headers={"Origin": self.ORIGIN})

        assert response.status_code == 500
        assert response.json() == {"error": GENERIC_ERROR_MESSAGE}
        assert response.headers["Access-Control-Allow-Origin"] in {"*", self.ORIGIN}


class TestLifespan:
    def test_startup_installs_loop_handler(self, app_factory) -> None:
        app = app_factory()

        @app.get("/api/loop-handler")
        async def loop_handler() -> dict[str, bool]:
            handler = asyncio.get_running_loop().get_exception_handler()
            return {"installed": handler == app.state.telemetry.faults._loop_exception_handler}

        with TestClient(app) as client:
            response = client.get("/api/loop-handler")

        assert response.json() == {"installed": True}
