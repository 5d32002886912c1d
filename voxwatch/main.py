"""FastAPI application entry point.

voxwatch - telemetry and traffic shaping for the voice-coaching backend.
"""

from __future__ import annotations

import asyncio
import sys
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from voxwatch import __version__
from voxwatch.api.middleware import (
    install_error_boundary,
    install_rate_limit_middleware,
    render_fault,
)
from voxwatch.api.routes import analytics, health, metrics
from voxwatch.config import Settings, get_settings
from voxwatch.core.errors import VoxwatchError
from voxwatch.core.supervisor import run_supervised
from voxwatch.logging_config import get_logger, setup_logging
from voxwatch.telemetry import Telemetry, build_telemetry

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler.

    Startup:
    - Route unobserved asyncio failures to the fault monitor

    Shutdown:
    - Wait (bounded) for pending exception forwards and flush logs
    """
    telemetry: Telemetry = app.state.telemetry
    telemetry.faults.install_loop_handler(asyncio.get_running_loop())
    if app.state.settings.rate_limit_enabled:
        logger.info(f"Rate limit tiers: {', '.join(telemetry.limiter.tier_names)}")

    yield

    await telemetry.faults.drain()


def create_app(
    settings: Settings | None = None,
    telemetry: Telemetry | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or get_settings()
    telemetry = telemetry or build_telemetry(settings)

    app = FastAPI(
        title="voxwatch API",
        description="Latency, usage, rate limiting and fault capture for the voice backend",
        version=__version__,
        docs_url="/docs" if not settings.is_production else None,
        redoc_url="/redoc" if not settings.is_production else None,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.telemetry = telemetry

    # Admission control, then the error boundary around it
    install_rate_limit_middleware(app)
    install_error_boundary(app)

    # CORS outermost so 429s and boundary-rendered errors carry its headers
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.debug else [],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(VoxwatchError)
    async def voxwatch_error_handler(request: Request, exc: VoxwatchError) -> JSONResponse:
        """Operational errors keep their own status and message."""
        return render_fault(request, exc)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        """Framework HTTP errors (404, 405, ...) are not faults."""
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": str(exc.detail)},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Invalid input: 422 with the validation details."""
        return JSONResponse(
            status_code=422,
            content={"error": "Invalid request", "details": jsonable_errors(exc)},
        )

    # Health check routes
    app.include_router(health.router, tags=["Health"])

    # Metrics endpoint for Prometheus scraping
    app.include_router(metrics.router, tags=["Observability"])

    # Usage and latency analytics
    app.include_router(analytics.router, prefix="/api", tags=["Analytics"])

    return app


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    """Validation errors without the raw input values."""
    return [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg", ""), "type": err.get("type", "")}
        for err in exc.errors()
    ]


def serve(settings: Settings | None = None) -> int:
    """Run the API under uvicorn inside the fault supervisor."""
    settings = settings or get_settings()
    setup_logging(level=settings.log_level, enable_file=settings.is_production)

    app = create_app(settings)
    server = uvicorn.Server(
        uvicorn.Config(app, host=settings.host, port=settings.port, log_config=None)
    )
    return run_supervised(server.serve, app.state.telemetry.faults)


def main() -> None:
    """Console entry point."""
    sys.exit(serve())
