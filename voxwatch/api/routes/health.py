"""Health check endpoints.

Provides:
- Basic health check with global usage (GET /health)
- Detailed health check with component status (GET /health/detailed)
"""

from typing import Annotated

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from voxwatch import __version__
from voxwatch.api.deps import get_telemetry
from voxwatch.api.schemas import GlobalStatsResponse, LatencySummaryResponse
from voxwatch.telemetry import Telemetry

router = APIRouter()


class HealthResponse(BaseModel):
    """Basic health check response."""

    status: str
    usage: GlobalStatsResponse


class DetailedHealthResponse(BaseModel):
    """Detailed health check response."""

    status: str
    checks: dict[str, str]
    version: str
    usage: GlobalStatsResponse
    latency: dict[str, LatencySummaryResponse]


@router.get("/health", response_model=HealthResponse)
async def health_check(
    telemetry: Annotated[Telemetry, Depends(get_telemetry)],
) -> HealthResponse:
    """Basic health check endpoint.

    Returns:
        Status plus the global usage counters.
    """
    return HealthResponse(
        status="healthy",
        usage=GlobalStatsResponse.model_validate(telemetry.usage.get_global_stats()),
    )


@router.get("/health/detailed", response_model=DetailedHealthResponse)
async def detailed_health_check(
    telemetry: Annotated[Telemetry, Depends(get_telemetry)],
) -> DetailedHealthResponse:
    """Detailed health check including component status.

    Checks:
    - Exception forwarding configured
    - Rate limiter windows currently tracked
    - Latency buckets known

    Returns:
        Status with individual component checks.
    """
    checks = {
        "error_forwarding": "configured" if telemetry.faults.forwarder else "disabled",
        "rate_limit_windows": str(telemetry.limiter.window_count()),
        "latency_buckets": ",".join(telemetry.tracker.bucket_names()),
    }

    return DetailedHealthResponse(
        status="healthy",
        checks=checks,
        version=__version__,
        usage=GlobalStatsResponse.model_validate(telemetry.usage.get_global_stats()),
        latency={
            bucket: LatencySummaryResponse.model_validate(stats)
            for bucket, stats in telemetry.tracker.get_summary().items()
        },
    )
