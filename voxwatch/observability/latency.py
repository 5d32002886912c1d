"""Latency tracking for STT, LLM, TTS and feedback operations.

Durations are kept per bucket in a fixed-capacity ring buffer so memory stays
bounded; summaries (count/avg/min/max/p95/last) are computed on demand from a
snapshot. All timings are in milliseconds.

Usage:
    tracker = LatencyTracker()
    stop = tracker.start("llm", session_id=session_id)
    await call_llm()
    stop()                      # records and returns elapsed ms

    with tracker.measure("tts"):
        await synthesize()

    tracker.get_summary()       # {"llm": {"count": 1, "avg": ..., ...}, ...}
"""

from __future__ import annotations

import math
import threading
import time
from collections.abc import Callable, Iterable, Iterator
from contextlib import contextmanager
from typing import Any, TypedDict

from voxwatch.logging_config import get_logger, sanitize_for_log

logger: Any = get_logger(__name__)

DEFAULT_BUCKETS = ("stt", "llm", "tts", "feedback")
DEFAULT_HISTORY_SIZE = 500
P95 = 0.95


class LatencySummary(TypedDict):
    """Aggregate statistics for one bucket (all values in ms)."""

    count: int
    avg: int
    min: int
    max: int
    p95: int
    last: int


EMPTY_SUMMARY: LatencySummary = {"count": 0, "avg": 0, "min": 0, "max": 0, "p95": 0, "last": 0}


class RingBuffer:
    """Fixed-capacity FIFO of ints with O(1) append and eviction.

    Not thread-safe on its own; callers hold the owning bucket's lock.
    """

    __slots__ = ("_capacity", "_items", "_head", "_size")

    def __init__(self, capacity: int) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self._capacity = capacity
        self._items: list[int] = [0] * capacity
        self._head = 0  # index of the oldest item
        self._size = 0

    @property
    def capacity(self) -> int:
        return self._capacity

    def __len__(self) -> int:
        return self._size

    def append(self, value: int) -> int | None:
        """Append a value, returning the evicted oldest value if full."""
        if self._size < self._capacity:
            self._items[(self._head + self._size) % self._capacity] = value
            self._size += 1
            return None

        evicted = self._items[self._head]
        self._items[self._head] = value
        self._head = (self._head + 1) % self._capacity
        return evicted

    def last(self) -> int | None:
        if self._size == 0:
            return None
        return self._items[(self._head + self._size - 1) % self._capacity]

    def to_list(self) -> list[int]:
        """Copy of the contents, oldest first."""
        end = self._head + self._size
        if end <= self._capacity:
            return self._items[self._head : end]
        return self._items[self._head :] + self._items[: end - self._capacity]

    def clear(self) -> None:
        self._head = 0
        self._size = 0

    def __iter__(self) -> Iterator[int]:
        return iter(self.to_list())


class _Bucket:
    __slots__ = ("lock", "history")

    def __init__(self, capacity: int) -> None:
        self.lock = threading.Lock()
        self.history = RingBuffer(capacity)


def summarize(samples: list[int], last: int) -> LatencySummary:
    """Compute a summary for a non-empty snapshot.

    ``p95`` uses the nearest-rank index ``floor(n * 0.95)`` clamped to the
    last position; ``last`` is the most recent raw sample.
    """
    ordered = sorted(samples)
    count = len(ordered)
    p95_index = min(math.floor(count * P95), count - 1)
    return {
        "count": count,
        "avg": round(sum(ordered) / count),
        "min": ordered[0],
        "max": ordered[-1],
        "p95": ordered[p95_index],
        "last": last,
    }


class LatencyTracker:
    """Per-bucket latency history with bounded memory."""

    def __init__(
        self,
        buckets: Iterable[str] = DEFAULT_BUCKETS,
        *,
        history_size: int = DEFAULT_HISTORY_SIZE,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        if history_size <= 0:
            raise ValueError("history_size must be positive")
        self._history_size = history_size
        self._clock = clock
        self._registry_lock = threading.Lock()
        self._buckets: dict[str, _Bucket] = {}
        for name in buckets:
            self._buckets[name] = _Bucket(history_size)

    @property
    def history_size(self) -> int:
        return self._history_size

    def _bucket(self, name: str) -> _Bucket:
        bucket = self._buckets.get(name)
        if bucket is not None:
            return bucket
        with self._registry_lock:
            bucket = self._buckets.get(name)
            if bucket is None:
                bucket = _Bucket(self._history_size)
                self._buckets[name] = bucket
            return bucket

    def start(self, bucket: str, **meta: Any) -> Callable[[], int]:
        """Start a timer for ``bucket``.

        Returns a stopper that records the elapsed time and returns it.
        Each call of the stopper records a new sample.
        """
        started = self._clock()

        def stop() -> int:
            elapsed = round((self._clock() - started) * 1000)
            self._record(bucket, elapsed, meta)
            return elapsed

        return stop

    @contextmanager
    def measure(self, bucket: str, **meta: Any) -> Iterator[None]:
        """Time the enclosed block, recording even when it raises."""
        stop = self.start(bucket, **meta)
        try:
            yield
        finally:
            stop()

    def record(self, bucket: str, ms: float, **meta: Any) -> None:
        """Record a timing measured elsewhere."""
        if isinstance(ms, bool) or not isinstance(ms, (int, float)) or not math.isfinite(ms):
            raise ValueError(f"latency must be a finite number, got {ms!r}")
        if ms < 0:
            raise ValueError(f"latency must be non-negative, got {ms}")
        self._record(bucket, round(ms), meta)

    def _record(self, bucket: str, ms: int, meta: dict[str, Any]) -> None:
        entry = self._bucket(bucket)
        with entry.lock:
            entry.history.append(ms)
        logger.bind(**{**sanitize_for_log(meta), "bucket": bucket, "ms": ms}).debug(f"perf:{bucket}")

    def snapshot(self, bucket: str) -> list[int]:
        """Recorded samples for ``bucket``, oldest first."""
        entry = self._buckets.get(bucket)
        if entry is None:
            return []
        with entry.lock:
            return entry.history.to_list()

    def bucket_names(self) -> list[str]:
        with self._registry_lock:
            return list(self._buckets)

    def get_summary(self) -> dict[str, LatencySummary]:
        """Aggregate statistics per bucket; empty buckets report zeros."""
        summary: dict[str, LatencySummary] = {}
        for name in self.bucket_names():
            entry = self._buckets[name]
            with entry.lock:
                samples = entry.history.to_list()
                last = entry.history.last()
            if not samples or last is None:
                summary[name] = dict(EMPTY_SUMMARY)  # type: ignore[assignment]
                continue
            summary[name] = summarize(samples, last)
        return summary

    def reset(self) -> None:
        """Clear every bucket's history; bucket names are kept."""
        for name in self.bucket_names():
            entry = self._buckets[name]
            with entry.lock:
                entry.history.clear()
