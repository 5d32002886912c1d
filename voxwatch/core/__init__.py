"""Traffic shaping and fault handling.

This module provides:
- RateLimiter: Tiered fixed-window admission control
- FaultMonitor: Exception capture, global handlers and the HTTP boundary
- CallInstrumentation: Per-call latency and usage tracking
"""

from voxwatch.core.errors import (
    GENERIC_ERROR_MESSAGE,
    RATE_LIMIT_MESSAGE,
    NotFoundError,
    OperationalError,
    ValidationFailedError,
    VoxwatchError,
)
from voxwatch.core.faults import CallbackForwarder, FaultMonitor, WebhookForwarder
from voxwatch.core.rate_limiter import (
    RateLimitDecision,
    RateLimiter,
    RateLimitTier,
    derive_rate_limit_key,
)

__all__ = [
    # Errors
    "VoxwatchError",
    "OperationalError",
    "ValidationFailedError",
    "NotFoundError",
    "GENERIC_ERROR_MESSAGE",
    "RATE_LIMIT_MESSAGE",
    # Faults
    "FaultMonitor",
    "WebhookForwarder",
    "CallbackForwarder",
    # Rate limiting
    "RateLimiter",
    "RateLimitTier",
    "RateLimitDecision",
    "derive_rate_limit_key",
]
