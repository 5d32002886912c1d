"""In-memory usage accounting per actor and globally.

Tracks per actor:
- Calls started / completed
- Resource (speech-to-text audio) minutes consumed
- LLM requests made
- TTS requests made

Global counters mirror these and add an error count and uptime, for the
health check and the admin dashboard. Nothing is persisted; a restart
starts from zero.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import asdict, dataclass, field
from typing import Any

from voxwatch.logging_config import get_logger

logger: Any = get_logger(__name__)

SECONDS_PER_MINUTE = 60


@dataclass(slots=True)
class ActorUsage:
    """Counters for one actor."""

    calls_started: int = 0
    calls_completed: int = 0
    resource_minutes_consumed: float = 0.0
    llm_requests: int = 0
    tts_requests: int = 0


@dataclass(slots=True)
class GlobalUsage(ActorUsage):
    """Aggregate counters across all actors."""

    error_count: int = 0


@dataclass
class UsageAccountant:
    """Thread-safe usage ledger keyed by actor id.

    One lock guards the actor map and the global record; every update is a
    handful of integer operations, so contention is negligible.
    """

    clock: Callable[[], float] = time.monotonic

    _actors: dict[str, ActorUsage] = field(default_factory=dict, init=False, repr=False)
    _global: GlobalUsage = field(default_factory=GlobalUsage, init=False, repr=False)
    _started_at: float = field(default=0.0, init=False, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def __post_init__(self) -> None:
        self._started_at = self.clock()

    def _ensure(self, actor_id: str) -> ActorUsage:
        # Caller holds self._lock
        usage = self._actors.get(actor_id)
        if usage is None:
            usage = ActorUsage()
            self._actors[actor_id] = usage
        return usage

    def track_call_start(self, actor_id: str) -> None:
        """Call started."""
        with self._lock:
            self._ensure(actor_id).calls_started += 1
            self._global.calls_started += 1

    def track_call_end(self, actor_id: str) -> None:
        """Call completed successfully."""
        with self._lock:
            self._ensure(actor_id).calls_completed += 1
            self._global.calls_completed += 1

    def track_resource_usage(self, actor_id: str, seconds: float) -> None:
        """Track consumed audio, given in seconds, as minutes."""
        if seconds < 0:
            raise ValueError(f"seconds must be non-negative, got {seconds}")
        minutes = seconds / SECONDS_PER_MINUTE
        with self._lock:
            self._ensure(actor_id).resource_minutes_consumed += minutes
            self._global.resource_minutes_consumed += minutes

    def track_llm(self, actor_id: str) -> None:
        """Track an LLM request."""
        with self._lock:
            self._ensure(actor_id).llm_requests += 1
            self._global.llm_requests += 1

    def track_tts(self, actor_id: str) -> None:
        """Track a TTS request."""
        with self._lock:
            self._ensure(actor_id).tts_requests += 1
            self._global.tts_requests += 1

    def track_error(self) -> None:
        """Track a pipeline error (global only; errors may have no actor)."""
        with self._lock:
            self._global.error_count += 1

    @contextmanager
    def call_session(self, actor_id: str) -> Iterator[None]:
        """Count a call as started, and as completed only if the block succeeds."""
        self.track_call_start(actor_id)
        yield
        self.track_call_end(actor_id)

    def get_user_stats(self, actor_id: str) -> dict[str, Any]:
        """Snapshot for one actor; zeros (and no new entry) for unseen actors."""
        with self._lock:
            usage = self._actors.get(actor_id)
            if usage is None:
                return asdict(ActorUsage())
            return asdict(usage)

    def get_global_stats(self) -> dict[str, Any]:
        """Global snapshot for the health check / admin dashboard."""
        with self._lock:
            stats = asdict(self._global)
            active_actors = len(self._actors)
            started_at = self._started_at

        stats["resource_minutes_consumed"] = round(stats["resource_minutes_consumed"], 2)
        stats["active_actors"] = active_actors
        stats["uptime_seconds"] = round(self.clock() - started_at)
        return stats

    def reset(self) -> None:
        """Clear all counters and restart the uptime clock."""
        with self._lock:
            self._actors.clear()
            self._global = GlobalUsage()
            self._started_at = self.clock()
        logger.info("Usage counters reset")
