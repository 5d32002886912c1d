"""Prometheus exposition of the in-process telemetry.

Latency summaries and usage counters are read at scrape time through a
custom collector; rate-limit rejections are a regular counter. Everything
lives in a registry owned by the app so separate apps (and tests) never
share series.
"""

from __future__ import annotations

from collections.abc import Iterator

from prometheus_client import CollectorRegistry, Counter, generate_latest
from prometheus_client.core import CounterMetricFamily, GaugeMetricFamily, Metric
from prometheus_client.exposition import CONTENT_TYPE_LATEST
from prometheus_client.registry import Collector

from voxwatch.core.rate_limiter import RateLimitDecision
from voxwatch.observability.latency import LatencyTracker
from voxwatch.observability.usage import UsageAccountant

# Usage counters exposed as <prefix>_<name>_total
USAGE_COUNTERS = {
    "calls_started": "Calls started",
    "calls_completed": "Calls completed",
    "llm_requests": "LLM requests made",
    "tts_requests": "TTS requests made",
    "error_count": "Captured exceptions",
}

LATENCY_STATS = ("avg", "min", "max", "p95", "last")


class TelemetryCollector(Collector):
    """Reads tracker and accountant snapshots on every scrape."""

    def __init__(self, tracker: LatencyTracker, usage: UsageAccountant) -> None:
        self._tracker = tracker
        self._usage = usage

    def collect(self) -> Iterator[Metric]:
        summary = self._tracker.get_summary()

        samples = GaugeMetricFamily(
            "voxwatch_latency_samples",
            "Samples currently held per latency bucket",
            labels=["bucket"],
        )
        stats = GaugeMetricFamily(
            "voxwatch_latency_ms",
            "Latency statistics per bucket over the retained history",
            labels=["bucket", "stat"],
        )
        for bucket, values in summary.items():
            samples.add_metric([bucket], values["count"])
            for stat in LATENCY_STATS:
                stats.add_metric([bucket, stat], values[stat])
        yield samples
        yield stats

        usage = self._usage.get_global_stats()
        for name, documentation in USAGE_COUNTERS.items():
            # CounterMetricFamily appends the _total suffix
            yield CounterMetricFamily(f"voxwatch_{name}", documentation, value=usage[name])

        yield GaugeMetricFamily(
            "voxwatch_resource_minutes_consumed",
            "Speech-to-text audio minutes consumed",
            value=usage["resource_minutes_consumed"],
        )
        yield GaugeMetricFamily(
            "voxwatch_active_actors",
            "Distinct actors seen since start or reset",
            value=usage["active_actors"],
        )
        yield GaugeMetricFamily(
            "voxwatch_uptime_seconds",
            "Seconds since the usage ledger started or was reset",
            value=usage["uptime_seconds"],
        )


class MetricsRegistry:
    """App-owned Prometheus registry."""

    def __init__(self, tracker: LatencyTracker, usage: UsageAccountant) -> None:
        self.registry = CollectorRegistry()
        self.registry.register(TelemetryCollector(tracker, usage))
        self.rate_limit_rejections = Counter(
            "voxwatch_rate_limit_rejections",
            "Total rate limit rejections",
            ["tier"],
            registry=self.registry,
        )

    def record_rejection(self, decision: RateLimitDecision) -> None:
        """``RateLimiter.on_reject`` hook."""
        self.rate_limit_rejections.labels(tier=decision.tier).inc()

    def get_metrics(self) -> bytes:
        """Generate Prometheus metrics output.

        Returns:
            Metrics in Prometheus text exposition format.
        """
        return generate_latest(self.registry)


def get_content_type() -> str:
    """Get the content type for Prometheus metrics.

    Returns:
        Content-Type header value for Prometheus metrics.
    """
    return CONTENT_TYPE_LATEST
