"""Telemetry container wired once at startup and passed to the app."""

from __future__ import annotations

from dataclasses import dataclass

from voxwatch.config import Settings
from voxwatch.core.faults import FaultMonitor, WebhookForwarder
from voxwatch.core.rate_limiter import RateLimiter
from voxwatch.observability.latency import LatencyTracker
from voxwatch.observability.metrics import MetricsRegistry
from voxwatch.observability.usage import UsageAccountant


@dataclass
class Telemetry:
    """Shared tracker, ledger, limiter and fault monitor for one process."""

    tracker: LatencyTracker
    usage: UsageAccountant
    limiter: RateLimiter
    faults: FaultMonitor
    metrics: MetricsRegistry

    def reset(self) -> None:
        """Clear latency history, usage counters and rate-limit windows."""
        self.tracker.reset()
        self.usage.reset()
        self.limiter.reset()


def build_telemetry(settings: Settings) -> Telemetry:
    """Construct every component from settings."""
    tracker = LatencyTracker(
        settings.latency_buckets,
        history_size=settings.latency_history_size,
    )
    usage = UsageAccountant()
    metrics = MetricsRegistry(tracker, usage)
    limiter = RateLimiter.from_table(
        settings.rate_limit_tiers(),
        max_windows=settings.rate_limit_max_windows,
        on_reject=metrics.record_rejection,
    )

    forwarder = None
    if settings.error_webhook_url:
        token = settings.error_webhook_token
        forwarder = WebhookForwarder(
            webhook_url=settings.error_webhook_url,
            auth_token=token.get_secret_value() if token else None,
            timeout_seconds=settings.error_forward_timeout_seconds,
        )

    faults = FaultMonitor(
        usage=usage,
        forwarder=forwarder,
        forward_timeout_seconds=settings.error_forward_timeout_seconds,
        shutdown_grace_seconds=settings.fatal_shutdown_grace_seconds,
    )

    return Telemetry(
        tracker=tracker,
        usage=usage,
        limiter=limiter,
        faults=faults,
        metrics=metrics,
    )
