"""Tiered fixed-window rate limiter.

Tiers:
- api    – General REST endpoints (100 req / 15 min per caller)
- auth   – Login / signup (20 req / 15 min per caller)
- heavy  – LLM / analytics-intensive routes (30 req / 15 min per caller)

A caller is the authenticated actor when there is one, otherwise the client
address. Windows live in memory only and are bounded by a periodic sweep of
expired windows plus an LRU cap on the number of tracked keys.
"""

from __future__ import annotations

import math
import threading
import time
from collections import OrderedDict
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Any

from voxwatch.core.errors import RATE_LIMIT_MESSAGE
from voxwatch.logging_config import get_logger

logger: Any = get_logger(__name__)

TOO_MANY_REQUESTS = 429
FIFTEEN_MINUTES_MS = 15 * 60 * 1000
DEFAULT_MAX_WINDOWS = 10_000
UNKNOWN_CALLER = "unknown"


@dataclass(frozen=True, slots=True)
class RateLimitTier:
    """Admission budget for one class of endpoints."""

    name: str
    window_ms: int
    max_requests: int

    def __post_init__(self) -> None:
        if self.window_ms <= 0:
            raise ValueError(f"window_ms must be positive for tier {self.name!r}")
        if self.max_requests <= 0:
            raise ValueError(f"max_requests must be positive for tier {self.name!r}")


DEFAULT_TIERS = (
    RateLimitTier("api", FIFTEEN_MINUTES_MS, 100),
    RateLimitTier("auth", FIFTEEN_MINUTES_MS, 20),
    RateLimitTier("heavy", FIFTEEN_MINUTES_MS, 30),
)


@dataclass(slots=True)
class _Window:
    count: int
    window_start: float  # seconds, limiter clock


@dataclass(frozen=True, slots=True)
class RateLimitDecision:
    """Outcome of one admission check."""

    allowed: bool
    tier: str
    limit: int
    remaining: int
    reset_after_ms: int

    @property
    def status_code(self) -> int | None:
        return None if self.allowed else TOO_MANY_REQUESTS

    @property
    def message(self) -> str | None:
        return None if self.allowed else RATE_LIMIT_MESSAGE

    def headers(self) -> dict[str, str]:
        """Standard ``RateLimit-*`` response headers (no legacy ``X-`` headers)."""
        reset_seconds = math.ceil(self.reset_after_ms / 1000)
        headers = {
            "RateLimit-Limit": str(self.limit),
            "RateLimit-Remaining": str(self.remaining),
            "RateLimit-Reset": str(reset_seconds),
        }
        if not self.allowed:
            headers["Retry-After"] = str(reset_seconds)
        return headers


def derive_rate_limit_key(actor_id: str | None, client_address: str | None) -> str:
    """Pick the caller identity a window is keyed on.

    The authenticated actor wins; the client address is the fallback. No
    proxy headers are consulted here.
    """
    if actor_id:
        return f"user:{actor_id}"
    if client_address:
        return f"ip:{client_address}"
    return f"ip:{UNKNOWN_CALLER}"


@dataclass
class RateLimiter:
    """In-memory fixed-window limiter keyed by (tier, caller key).

    ``check`` resets an expired window, increments and compares under one
    lock, so concurrent callers on the same key can never both pass on a
    stale count.
    """

    tiers: Iterable[RateLimitTier] = DEFAULT_TIERS
    max_windows: int = DEFAULT_MAX_WINDOWS
    clock: Callable[[], float] = time.monotonic
    on_reject: Callable[[RateLimitDecision], None] | None = None

    _tiers: dict[str, RateLimitTier] = field(default_factory=dict, init=False, repr=False)
    _windows: OrderedDict[tuple[str, str], _Window] = field(
        default_factory=OrderedDict, init=False, repr=False
    )
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)
    _last_sweep: float = field(default=0.0, init=False, repr=False)
    _sweep_interval: float = field(default=0.0, init=False, repr=False)

    def __post_init__(self) -> None:
        if self.max_windows <= 0:
            raise ValueError("max_windows must be positive")
        self._tiers = {tier.name: tier for tier in self.tiers}
        if not self._tiers:
            raise ValueError("at least one tier is required")
        self._sweep_interval = min(t.window_ms for t in self._tiers.values()) / 1000
        self._last_sweep = self.clock()

    @classmethod
    def from_table(
        cls, table: dict[str, tuple[int, int]], **kwargs: Any
    ) -> RateLimiter:
        """Build from ``{tier: (window_ms, max_requests)}``."""
        tiers = [RateLimitTier(name, window, limit) for name, (window, limit) in table.items()]
        return cls(tiers=tiers, **kwargs)

    def tier(self, name: str) -> RateLimitTier:
        try:
            return self._tiers[name]
        except KeyError:
            raise KeyError(f"Unknown rate limit tier: {name}") from None

    @property
    def tier_names(self) -> list[str]:
        return list(self._tiers)

    def check(self, tier_name: str, key: str) -> RateLimitDecision:
        """Count one request for ``key`` in ``tier_name`` and decide admission."""
        tier = self.tier(tier_name)
        window_seconds = tier.window_ms / 1000

        with self._lock:
            now = self.clock()
            if now - self._last_sweep >= self._sweep_interval:
                self._sweep_locked(now)

            window_key = (tier.name, key)
            window = self._windows.get(window_key)
            if window is None:
                window = _Window(count=0, window_start=now)
                self._windows[window_key] = window
                self._evict_overflow_locked()
            else:
                self._windows.move_to_end(window_key)

            if now - window.window_start > window_seconds:
                window.count = 0
                window.window_start = now

            window.count += 1
            count = window.count
            elapsed = now - window.window_start

        allowed = count <= tier.max_requests
        reset_after_ms = max(0, round((window_seconds - elapsed) * 1000))
        decision = RateLimitDecision(
            allowed=allowed,
            tier=tier.name,
            limit=tier.max_requests,
            remaining=max(0, tier.max_requests - count),
            reset_after_ms=reset_after_ms,
        )

        if not allowed:
            logger.bind(limiter=tier.name).warning("Rate limit exceeded")
            if self.on_reject is not None:
                self.on_reject(decision)

        return decision

    def _evict_overflow_locked(self) -> None:
        while len(self._windows) > self.max_windows:
            self._windows.popitem(last=False)

    def _sweep_locked(self, now: float) -> int:
        expired = [
            key
            for key, window in self._windows.items()
            if now - window.window_start > self._tiers[key[0]].window_ms / 1000
        ]
        for key in expired:
            del self._windows[key]
        self._last_sweep = now
        if expired:
            logger.debug(f"Swept {len(expired)} expired rate limit windows")
        return len(expired)

    def sweep(self) -> int:
        """Drop windows whose period has elapsed. Returns how many were removed."""
        with self._lock:
            return self._sweep_locked(self.clock())

    def window_count(self) -> int:
        with self._lock:
            return len(self._windows)

    def reset(self) -> None:
        """Forget every window."""
        with self._lock:
            self._windows.clear()
            self._last_sweep = self.clock()
