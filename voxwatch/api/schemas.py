"""Response models for telemetry endpoints (camelCase on the wire)."""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Accepts snake_case input, serializes camelCase."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class UserStatsResponse(CamelModel):
    """Usage counters for one actor."""

    calls_started: int
    calls_completed: int
    resource_minutes_consumed: float
    llm_requests: int
    tts_requests: int


class GlobalStatsResponse(UserStatsResponse):
    """Global usage counters plus derived fields."""

    error_count: int
    active_actors: int
    uptime_seconds: int


class LatencySummaryResponse(BaseModel):
    """Latency statistics for one bucket (milliseconds)."""

    count: int
    avg: int
    min: int
    max: int
    p95: int
    last: int


class ErrorResponse(BaseModel):
    """Error body returned by the boundary and the rate limiter."""

    error: str
