"""Summary: Fixed-window rate limiting for entry points and the classifier.

Importance: Protects the AI provider budget and externally triggered routes from floods.
Alternatives: Put a reverse proxy with its own rate limiting in front of the API.
"""

from __future__ import annotations

import logging
import math
import sqlite3
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass

from cachetools import TTLCache

from triageflow.config import AppConfig
from triageflow.storage.sqlite_store import SqliteStore


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitConfig:
    """Summary: Budget for one rate-limited route or component.

    Importance: Keeps limits declarative and shared between the API and the pipeline.
    Alternatives: Hard-code limits inside each route handler.
    """

    identifier: str
    limit: int
    window_seconds: int = 60


@dataclass(frozen=True)
class RateLimitResult:
    """Summary: Outcome of a single rate limit check.

    Importance: Carries everything needed for X-RateLimit headers and 429 bodies.
    Alternatives: Return a bare boolean.
    """

    allowed: bool
    limit: int
    remaining: int
    reset_at: float
    retry_after_seconds: int

    def headers(self) -> dict[str, str]:
        """Summary: Render the standard rate limit response headers.

        Importance: Lets clients pace themselves without trial and error.
        Alternatives: Only report limits on rejected requests.
        """

        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(int(self.reset_at)),
        }
        if not self.allowed:
            headers["Retry-After"] = str(self.retry_after_seconds)
        return headers


RATE_LIMIT_CONFIGS = {
    "auth": RateLimitConfig("auth", 10),
    "feedback": RateLimitConfig("feedback", 30),
    "process": RateLimitConfig("process", 5),
    "sort": RateLimitConfig("sort", 3),
    "api": RateLimitConfig("api", 100),
    "classifier": RateLimitConfig("classifier", 500),
}


class CounterBackend(ABC):
    """Summary: Storage for fixed-window hit counters.

    Importance: Allows swapping durable and in-process counters behind one interface.
    Alternatives: Bind the limiter to a single storage engine.
    """

    @abstractmethod
    def hit(self, key: str, window_seconds: int, now: float) -> tuple[int, float]:
        """Summary: Count one hit and return the window count and reset time.

        Importance: Makes increment and window rollover a single step.
        Alternatives: Separate read and increment calls.
        """


class MemoryCounterBackend(CounterBackend):
    """Summary: In-process counters held in a bounded TTL cache.

    Importance: Works without a database and serves as the fallback backend.
    Alternatives: Use a plain dict and prune it periodically.
    """

    def __init__(self, maxsize: int = 10_000, ttl_seconds: int = 3600) -> None:
        self._counters: TTLCache[str, tuple[int, float]] = TTLCache(maxsize=maxsize, ttl=ttl_seconds)
        self._lock = threading.Lock()

    def hit(self, key: str, window_seconds: int, now: float) -> tuple[int, float]:
        with self._lock:
            entry = self._counters.get(key)
            if entry is None or entry[1] <= now:
                entry = (1, now + window_seconds)
            else:
                entry = (entry[0] + 1, entry[1])
            self._counters[key] = entry
            return entry


@dataclass(frozen=True)
class SqliteCounterBackend(CounterBackend):
    """Summary: Durable counters in the shared SQLite database.

    Importance: Every process pointed at the same database shares one budget.
    Alternatives: Use Redis INCR with EXPIRE.
    """

    store: SqliteStore

    def hit(self, key: str, window_seconds: int, now: float) -> tuple[int, float]:
        return self.store.increment_rate_counter(key, window_seconds, now)


class RateLimiter:
    """Summary: Fixed-window limiter with transparent fallback to in-process counters.

    Importance: A broken durable store degrades limits to per-process instead of failing requests.
    Alternatives: Fail closed and reject traffic when the store is unavailable.
    """

    def __init__(self, backend: CounterBackend, fallback: CounterBackend | None = None) -> None:
        self._backend = backend
        self._fallback = fallback or MemoryCounterBackend()

    def allow(self, client_key: str, config: RateLimitConfig, now: float | None = None) -> RateLimitResult:
        """Summary: Record a hit for a client and decide whether it is within budget.

        Importance: Single entry point used by API routes and the classifier.
        Alternatives: Token bucket or sliding log algorithms.
        """

        current = time.time() if now is None else now
        key = f"rl:{config.identifier}:{client_key}"
        try:
            count, reset_at = self._backend.hit(key, config.window_seconds, current)
        except sqlite3.Error as exc:
            logger.warning("Rate limit store unavailable, using in-process counters: %s", exc)
            count, reset_at = self._fallback.hit(key, config.window_seconds, current)
        if count > config.limit:
            return RateLimitResult(
                allowed=False,
                limit=config.limit,
                remaining=0,
                reset_at=reset_at,
                retry_after_seconds=max(1, math.ceil(reset_at - current)),
            )
        return RateLimitResult(
            allowed=True,
            limit=config.limit,
            remaining=config.limit - count,
            reset_at=reset_at,
            retry_after_seconds=0,
        )


def build_rate_limiter(config: AppConfig, store: SqliteStore) -> RateLimiter:
    """Summary: Build the limiter for the configured backend.

    Importance: Backend choice happens once at startup.
    Alternatives: Choose the backend per request.
    """

    if config.rate_limit_backend == "memory":
        return RateLimiter(MemoryCounterBackend())
    return RateLimiter(SqliteCounterBackend(store))
