"""Prometheus metrics endpoint.

Exposes application metrics for Prometheus scraping.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Response

from voxwatch.api.deps import get_telemetry
from voxwatch.observability.metrics import get_content_type
from voxwatch.telemetry import Telemetry

router = APIRouter()


@router.get("/metrics")
async def metrics(telemetry: Annotated[Telemetry, Depends(get_telemetry)]) -> Response:
    """Prometheus metrics endpoint.

    Exposes metrics in Prometheus text format for scraping.

    Returns:
        Response with metrics in Prometheus exposition format.
    """
    return Response(
        content=telemetry.metrics.get_metrics(),
        media_type=get_content_type(),
    )
