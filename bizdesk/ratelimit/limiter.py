"""
Client-side rate limiter for outbound API calls.

Combines a continuously refilled token bucket, a sliding per-minute window
and exponential backoff driven by server 429 responses. One instance is
meant to be shared by every caller in the process: build it once and hand
it to each ApiClient.
"""

import asyncio
import time
from collections import deque
from dataclasses import asdict, dataclass
from typing import TYPE_CHECKING, Awaitable, Callable

from loguru import logger

if TYPE_CHECKING:
    from bizdesk.config.schema import RateLimitConfig

WINDOW_MS = 60_000

RateLimitListener = Callable[[float], None]


def _monotonic_ms() -> float:
    return time.monotonic() * 1000.0


@dataclass(frozen=True)
class RateLimitStatus:
    """Point-in-time snapshot of the limiter, for display."""

    tokens_available: float
    burst_size: float
    requests_per_second: float
    requests_per_minute: int
    recent_request_count: int
    is_blocked: bool
    blocked_until_ms: float  # Remaining block time, 0 when not blocked
    current_backoff_ms: float

    def to_dict(self) -> dict[str, float | int | bool]:
        """camelCase view of the snapshot."""
        from bizdesk.config.loader import convert_to_camel

        return convert_to_camel(asdict(self))


class RateLimiter:
    """
    Token bucket + per-minute window + 429 backoff.

    Checking is non-destructive: can_make_request() and
    check_per_minute_limit() only look, record_request() consumes.
    None of the methods raise; turning a closed gate into a wait, a retry
    or an error is the caller's job.
    """

    def __init__(
        self,
        requests_per_second: float | None = None,
        requests_per_minute: int | None = None,
        burst_size: float | None = None,
        initial_backoff_ms: float | None = None,
        max_backoff_ms: float | None = None,
        backoff_multiplier: float | None = None,
        on_rate_limit_hit: RateLimitListener | None = None,
        clock: Callable[[], float] | None = None,
        sleep: Callable[[float], Awaitable[None]] | None = None,
    ):
        """
        Args:
            requests_per_second: Sustained rate (default 10).
            requests_per_minute: Hard ceiling over a rolling 60s window (default 300).
            burst_size: Bucket capacity (default 2x requests_per_second).
            initial_backoff_ms: First backoff applied after a 429 (default 1000).
            max_backoff_ms: Backoff cap (default 32000).
            backoff_multiplier: Growth factor per consecutive 429 (default 2).
            on_rate_limit_hit: Listener registered before any other.
            clock: Time source in milliseconds (default monotonic).
            sleep: Async sleep taking seconds (default asyncio.sleep).
        """
        # Zero/None fall back to defaults
        self.requests_per_second = requests_per_second or 10
        self.requests_per_minute = requests_per_minute or 300
        self.burst_size = burst_size or self.requests_per_second * 2

        self.initial_backoff_ms = initial_backoff_ms or 1000
        self.max_backoff_ms = max_backoff_ms or 32000
        self.backoff_multiplier = backoff_multiplier or 2
        self.current_backoff_ms = self.initial_backoff_ms

        self._clock = clock or _monotonic_ms
        self._sleep = sleep or asyncio.sleep

        self.tokens = float(self.burst_size)
        self.last_refill_time = self._clock()
        self.request_timestamps: deque[float] = deque()
        self.blocked_until = 0.0

        self._listeners: list[RateLimitListener] = []
        self._admission_lock = asyncio.Lock()
        if on_rate_limit_hit:
            self.subscribe(on_rate_limit_hit)

    @classmethod
    def from_config(cls, config: "RateLimitConfig", **kwargs) -> "RateLimiter":
        """Build a limiter from the rate_limit section of the config."""
        return cls(
            requests_per_second=config.requests_per_second,
            requests_per_minute=config.requests_per_minute,
            burst_size=config.burst_size,
            initial_backoff_ms=config.initial_backoff_ms,
            max_backoff_ms=config.max_backoff_ms,
            backoff_multiplier=config.backoff_multiplier,
            **kwargs,
        )

    # -- listeners ---------------------------------------------------------

    def subscribe(self, callback: RateLimitListener) -> Callable[[], None]:
        """Register a backoff listener. Returns a function that removes it."""
        self._listeners.append(callback)

        def _unsubscribe() -> None:
            self.unsubscribe(callback)

        return _unsubscribe

    def unsubscribe(self, callback: RateLimitListener) -> None:
        """Remove a listener; unknown callbacks are ignored."""
        if callback in self._listeners:
            self._listeners.remove(callback)

    def _notify(self, backoff_ms: float) -> None:
        for callback in list(self._listeners):
            try:
                callback(backoff_ms)
            except Exception as e:
                logger.warning(f"Rate limit listener {callback!r} failed: {e}")

    # -- token bucket ------------------------------------------------------

    def refill_tokens(self) -> None:
        """Top up tokens for the time elapsed since the last refill."""
        now = self._clock()
        elapsed_seconds = max(0.0, now - self.last_refill_time) / 1000
        self.tokens = min(
            self.burst_size,
            self.tokens + elapsed_seconds * self.requests_per_second,
        )
        self.last_refill_time = now

    def can_make_request(self) -> bool:
        """Bucket and backoff gate. Does not consume a token."""
        if self._clock() < self.blocked_until:
            return False

        self.refill_tokens()
        return self.tokens >= 1

    # -- sliding window ----------------------------------------------------

    def _prune(self, now: float) -> None:
        cutoff = now - WINDOW_MS
        while self.request_timestamps and self.request_timestamps[0] <= cutoff:
            self.request_timestamps.popleft()

    def check_per_minute_limit(self) -> bool:
        """True while fewer than requests_per_minute requests fall in the last 60s."""
        self._prune(self._clock())
        return len(self.request_timestamps) < self.requests_per_minute

    def record_request(self) -> None:
        """Consume one token and log the request in the window."""
        self.tokens = max(0.0, self.tokens - 1)
        self.request_timestamps.append(self._clock())

    # -- backoff -----------------------------------------------------------

    def handle_rate_limit_error(self) -> None:
        """
        React to a 429 from the server.

        Blocks for the current backoff, then grows the backoff for the
        next failure and notifies listeners with the grown value.
        """
        now = self._clock()
        self.blocked_until = now + self.current_backoff_ms
        self.current_backoff_ms = min(
            self.max_backoff_ms,
            self.current_backoff_ms * self.backoff_multiplier,
        )
        logger.debug(
            f"Server rate limit hit, blocked for {self.blocked_until - now:.0f}ms "
            f"(next backoff {self.current_backoff_ms:.0f}ms)"
        )
        self._notify(self.current_backoff_ms)

    def reset_backoff(self) -> None:
        """Forget backoff growth after a success. An active block keeps running."""
        if self.current_backoff_ms != self.initial_backoff_ms:
            logger.info(f"Backoff reset to {self.initial_backoff_ms}ms")
        self.current_backoff_ms = self.initial_backoff_ms

    # -- waiting -----------------------------------------------------------

    async def wait_until_ready(self) -> float:
        """
        Sleep until the bucket/backoff gate would open.

        Returns:
            Milliseconds waited (0 if no wait was needed). The per-minute
            window is not considered here.
        """
        now = self._clock()

        if now < self.blocked_until:
            wait_ms = self.blocked_until - now
            await self._sleep(wait_ms / 1000)
            return wait_ms

        self.refill_tokens()

        if self.tokens < 1:
            wait_ms = (1 - self.tokens) / self.requests_per_second * 1000
            await self._sleep(wait_ms / 1000)
            self.refill_tokens()
            return wait_ms

        return 0

    @property
    def admission_lock(self) -> asyncio.Lock:
        """
        Single-slot lock around the check-then-record sequence.

        Concurrent waiters may otherwise wake together and all pass the
        gate before any of them records. Holding this lock from the gate
        check until record_request() gives exact admission counts at the
        cost of running requests one at a time.
        """
        return self._admission_lock

    # -- status ------------------------------------------------------------

    def get_status(self) -> RateLimitStatus:
        now = self._clock()
        self._prune(now)
        return RateLimitStatus(
            tokens_available=self.tokens,
            burst_size=self.burst_size,
            requests_per_second=self.requests_per_second,
            requests_per_minute=self.requests_per_minute,
            recent_request_count=len(self.request_timestamps),
            is_blocked=now < self.blocked_until,
            blocked_until_ms=max(0.0, self.blocked_until - now),
            current_backoff_ms=self.current_backoff_ms,
        )
