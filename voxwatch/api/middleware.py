"""HTTP middleware: tiered admission control and the error boundary."""

from __future__ import annotations

from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import RequestResponseEndpoint
from starlette.responses import Response

from voxwatch.api.auth import resolve_actor_id
from voxwatch.core.errors import RATE_LIMIT_MESSAGE
from voxwatch.core.rate_limiter import derive_rate_limit_key
from voxwatch.logging_config import get_logger

logger: Any = get_logger(__name__)

# Longest prefix wins; paths outside /api are never limited
TIER_PREFIXES = (
    ("/api/auth", "auth"),
    ("/api/analytics", "heavy"),
    ("/api", "api"),
)


def tier_for_path(path: str) -> str | None:
    """Rate-limit tier for a request path, or None when unlimited."""
    for prefix, tier in TIER_PREFIXES:
        if path == prefix or path.startswith(prefix + "/"):
            return tier
    return None


def install_rate_limit_middleware(app: FastAPI) -> None:
    """Register the admission-control middleware on ``app``."""

    @app.middleware("http")
    async def rate_limit_middleware(request: Request, call_next: RequestResponseEndpoint) -> Response:
        settings = request.app.state.settings
        if not settings.rate_limit_enabled or request.method == "OPTIONS":
            return await call_next(request)

        tier = tier_for_path(request.url.path)
        if tier is None:
            return await call_next(request)

        actor_id = resolve_actor_id(request.headers.get("authorization"), settings)
        request.state.actor_id = actor_id
        client_address = request.client.host if request.client else None
        key = derive_rate_limit_key(actor_id, client_address)

        decision = request.app.state.telemetry.limiter.check(tier, key)
        if not decision.allowed:
            return JSONResponse(
                status_code=decision.status_code,
                content={"error": RATE_LIMIT_MESSAGE},
                headers=decision.headers(),
            )

        response = await call_next(request)
        response.headers.update(decision.headers())
        return response


def install_error_boundary(app: FastAPI) -> None:
    """Route exceptions escaping the handlers through the fault monitor.

    Register after the rate-limit middleware so it wraps it; CORS goes on top.
    """

    @app.middleware("http")
    async def error_boundary_middleware(request: Request, call_next: RequestResponseEndpoint) -> Response:
        try:
            return await call_next(request)
        except Exception as exc:
            return render_fault(request, exc)


def render_fault(request: Request, exc: Exception) -> JSONResponse:
    """Capture ``exc`` and build the client-safe JSON response."""
    monitor = request.app.state.telemetry.faults
    return monitor.http_error_boundary(
        exc,
        request.method,
        str(request.url.path),
        lambda status, body: JSONResponse(status_code=status, content=body),
    )
