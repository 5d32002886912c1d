"""Tests for usage and latency analytics endpoints."""

from __future__ import annotations

from conftest import auth_header


class TestUsageMe:
    """GET /api/usage/me."""

    def test_requires_token(self, test_client) -> None:
        response = test_client.get("/api/usage/me")

        assert response.status_code == 401
        assert response.json() == {"error": "Authorization header required"}

    def test_rejects_bad_token(self, test_client) -> None:
        response = test_client.get(
            "/api/usage/me", headers={"Authorization": "Bearer not-a-jwt"}
        )

        assert response.status_code == 401
        assert response.json()["error"].startswith("Invalid token")

    def test_unseen_actor_gets_zeros(self, test_client, test_app) -> None:
        response = test_client.get("/api/usage/me", headers=auth_header("trainee-9"))

        assert response.status_code == 200
        assert response.json() == {
            "callsStarted": 0,
            "callsCompleted": 0,
            "resourceMinutesConsumed": 0.0,
            "llmRequests": 0,
            "ttsRequests": 0,
        }
        assert test_app.state.telemetry.usage.get_global_stats()["active_actors"] == 0

    def test_returns_own_counters(self, test_client, test_app) -> None:
        test_app.state.telemetry.usage.track_llm("trainee-1")

        response = test_client.get("/api/usage/me", headers=auth_header("trainee-1"))

        assert response.json()["llmRequests"] == 1


class TestAdminAnalytics:
    """Admin-only analytics under /api/analytics."""

    def test_non_admin_forbidden(self, test_client) -> None:
        response = test_client.get("/api/analytics/latency", headers=auth_header("trainee-1"))

        assert response.status_code == 403
        assert response.json() == {"error": "Admin access required"}

    def test_latency_summary(self, test_client, test_app) -> None:
        for ms in range(1, 101):
            test_app.state.telemetry.tracker.record("llm", ms)

        response = test_client.get("/api/analytics/latency", headers=auth_header("admin-1"))

        assert response.status_code == 200
        assert response.json()["llm"] == {
            "count": 100,
            "avg": 50,
            "min": 1,
            "max": 100,
            "p95": 96,
            "last": 100,
        }

    def test_admin_role_claim(self, test_client) -> None:
        response = test_client.get(
            "/api/analytics/usage", headers=auth_header("someone", role="admin")
        )

        assert response.status_code == 200
        assert "errorCount" in response.json()

    def test_actor_usage(self, test_client, test_app) -> None:
        test_app.state.telemetry.usage.track_resource_usage("trainee-1", 120)

        response = test_client.get(
            "/api/analytics/usage/trainee-1", headers=auth_header("admin-1")
        )

        assert response.json()["resourceMinutesConsumed"] == 2.0

    def test_reset(self, test_client, test_app) -> None:
        telemetry = test_app.state.telemetry
        telemetry.tracker.record("llm", 10)
        telemetry.usage.track_call_start("trainee-1")

        response = test_client.post("/api/analytics/reset", headers=auth_header("admin-1"))

        assert response.status_code == 204
        assert telemetry.tracker.get_summary()["llm"]["count"] == 0
        assert telemetry.usage.get_global_stats()["calls_started"] == 0
