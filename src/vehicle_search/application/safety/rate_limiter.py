"""
Per-session request rate limiting.

Two independent counters per session id (per minute and per hour by
default). Each counter window starts on its first request and expires on
its own; the counters live in a ``cachetools.TLRUCache`` so expired
windows disappear without a sweep.

Check-and-increment runs under an asyncio.Lock, so concurrent requests
for the same session cannot both observe the same count.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

from cachetools import TLRUCache

from vehicle_search.domain.entities.safety import RateLimitResult

logger = logging.getLogger(__name__)

ANONYMOUS_SESSION = "anonymous"


@dataclass
class _Window:
    count: int
    expires_at: float


def _window_expiry(_key: str, window: _Window, _now: float) -> float:
    return window.expires_at


@dataclass(frozen=True)
class RateLimitRule:
    name: str
    limit: int
    window_seconds: float


class SessionRateLimiter:
    """
    Fixed-window counters keyed ``ratelimit:{rule}:{session_id}``.

    A rejected request does not consume quota.

    Example:
        limiter = SessionRateLimiter(per_minute=10, per_hour=100)
        result = await limiter.check("session-1")
        if not result.is_allowed:
            wait(result.retry_after)
    """

    def __init__(
        self,
        per_minute: int = 10,
        per_hour: int = 100,
        minute_window: float = 60.0,
        hour_window: float = 3600.0,
        max_entries: int = 100_000,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._rules = (
            RateLimitRule("minute", per_minute, minute_window),
            RateLimitRule("hour", per_hour, hour_window),
        )
        self._clock = clock
        self._windows: TLRUCache[str, _Window] = TLRUCache(
            maxsize=max_entries,
            ttu=_window_expiry,
            timer=clock,
        )
        self._lock = asyncio.Lock()

    @staticmethod
    def key_for(rule: str, session_id: str) -> str:
        return f"ratelimit:{rule}:{session_id or ANONYMOUS_SESSION}"

    async def check(self, session_id: str | None) -> RateLimitResult:
        """Consume one request for ``session_id`` if every rule allows it."""
        sid = (session_id or "").strip() or ANONYMOUS_SESSION
        async with self._lock:
            now = self._clock()
            windows: list[tuple[RateLimitRule, str, _Window | None]] = []
            for rule in self._rules:
                key = self.key_for(rule.name, sid)
                windows.append((rule, key, self._windows.get(key)))

            for rule, _key, window in windows:
                if window is not None and window.count >= rule.limit:
                    retry_after = max(0.0, window.expires_at - now)
                    logger.warning(
                        f"Rate limit exceeded for session {sid}: "
                        f"{window.count} requests per {rule.name}"
                    )
                    return RateLimitResult(is_allowed=False, remaining_requests=0, retry_after=retry_after)

            remaining = []
            for rule, key, window in windows:
                if window is None:
                    window = _Window(count=0, expires_at=now + rule.window_seconds)
                window.count += 1
                self._windows[key] = window
                remaining.append(rule.limit - window.count)

        return RateLimitResult(is_allowed=True, remaining_requests=min(remaining))

    def reset(self, session_id: str) -> None:
        for rule in self._rules:
            self._windows.pop(self.key_for(rule.name, session_id), None)
