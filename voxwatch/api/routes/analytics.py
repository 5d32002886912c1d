"""Telemetry endpoints for trainees and the admin dashboard.

- GET  /api/usage/me                   own usage (any authenticated actor)
- GET  /api/analytics/latency          latency summary per bucket (admin)
- GET  /api/analytics/usage            global usage (admin)
- GET  /api/analytics/usage/{actor_id} usage for one actor (admin)
- POST /api/analytics/reset            clear telemetry (admin)
"""

from typing import Annotated, Any

from fastapi import APIRouter, Depends, status

from voxwatch.api.auth import TokenPayload, get_current_actor, require_admin
from voxwatch.api.deps import get_telemetry
from voxwatch.api.schemas import (
    ErrorResponse,
    GlobalStatsResponse,
    LatencySummaryResponse,
    UserStatsResponse,
)
from voxwatch.logging_config import get_logger
from voxwatch.telemetry import Telemetry

logger: Any = get_logger(__name__)

router = APIRouter(
    responses={
        401: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        429: {"model": ErrorResponse},
    }
)

TelemetryDep = Annotated[Telemetry, Depends(get_telemetry)]
AdminDep = Annotated[TokenPayload, Depends(require_admin)]


@router.get("/usage/me", response_model=UserStatsResponse)
async def my_usage(
    telemetry: TelemetryDep,
    actor: Annotated[TokenPayload, Depends(get_current_actor)],
) -> UserStatsResponse:
    """Usage counters for the calling actor."""
    return UserStatsResponse.model_validate(telemetry.usage.get_user_stats(actor.sub))


@router.get("/analytics/latency", response_model=dict[str, LatencySummaryResponse])
async def latency_summary(
    telemetry: TelemetryDep, _admin: AdminDep
) -> dict[str, LatencySummaryResponse]:
    """Latency statistics per bucket."""
    return {
        bucket: LatencySummaryResponse.model_validate(stats)
        for bucket, stats in telemetry.tracker.get_summary().items()
    }


@router.get("/analytics/usage", response_model=GlobalStatsResponse)
async def global_usage(telemetry: TelemetryDep, _admin: AdminDep) -> GlobalStatsResponse:
    """Global usage counters."""
    return GlobalStatsResponse.model_validate(telemetry.usage.get_global_stats())


@router.get("/analytics/usage/{actor_id}", response_model=UserStatsResponse)
async def actor_usage(
    actor_id: str, telemetry: TelemetryDep, _admin: AdminDep
) -> UserStatsResponse:
    """Usage counters for one actor (zeros if never seen)."""
    return UserStatsResponse.model_validate(telemetry.usage.get_user_stats(actor_id))


@router.post("/analytics/reset", status_code=status.HTTP_204_NO_CONTENT)
async def reset_telemetry(telemetry: TelemetryDep, admin: AdminDep) -> None:
    """Clear latency history, usage counters and rate-limit windows."""
    telemetry.reset()
    logger.bind(actor_id=admin.sub).warning("Telemetry reset")
