"""Observability module for latency, usage and metrics exposition."""

from voxwatch.observability.latency import LatencySummary, LatencyTracker, RingBuffer
from voxwatch.observability.metrics import MetricsRegistry, TelemetryCollector
from voxwatch.observability.usage import ActorUsage, GlobalUsage, UsageAccountant

__all__ = [
    # Latency
    "LatencyTracker",
    "LatencySummary",
    "RingBuffer",
    # Usage
    "UsageAccountant",
    "ActorUsage",
    "GlobalUsage",
    # Prometheus
    "MetricsRegistry",
    "TelemetryCollector",
]
