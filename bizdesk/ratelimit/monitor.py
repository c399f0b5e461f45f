"""Polling observer that turns limiter status into a user-facing warning."""

import asyncio
import math
from datetime import datetime

from loguru import logger
from rich.panel import Panel
from rich.text import Text

from bizdesk.ratelimit.limiter import RateLimiter, RateLimitStatus


class RateLimitMonitor:
    """
    Watches a shared RateLimiter for the CLI/status banner.

    Subscribes to backoff notifications and polls get_status() on an
    interval. Purely advisory: nothing here feeds back into admission.

    Usage:
        monitor = RateLimitMonitor(limiter)
        monitor.start()
        ...
        panel = monitor.render()
        await monitor.stop()
    """

    def __init__(self, limiter: RateLimiter, interval: float = 0.5):
        self.limiter = limiter
        self.interval = interval
        self.status: RateLimitStatus = limiter.get_status()
        self.is_limited = False
        self.last_limited_time: datetime | None = None
        self.last_backoff_ms: float | None = None
        self._unsubscribe = None
        self._task: asyncio.Task | None = None
        self._running = False

    def _on_rate_limit_hit(self, backoff_ms: float) -> None:
        self.is_limited = True
        self.last_limited_time = datetime.now()
        self.last_backoff_ms = backoff_ms
        self.status = self.limiter.get_status()

    def attach(self) -> None:
        """Listen for backoff events without starting the poll loop."""
        if self._unsubscribe is None:
            self._unsubscribe = self.limiter.subscribe(self._on_rate_limit_hit)

    def detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def poll(self) -> RateLimitStatus:
        """Refresh the cached status; clear the limited flag once the block ends."""
        self.status = self.limiter.get_status()
        if self.is_limited and not self.status.is_blocked:
            self.is_limited = False
        return self.status

    def start(self) -> None:
        """Attach and run poll() every interval seconds in a background task."""
        self.attach()
        if self._task is None or self._task.done():
            self._running = True
            self._task = asyncio.create_task(self._run())

    async def _run(self) -> None:
        while self._running:
            self.poll()
            await asyncio.sleep(self.interval)

    async def stop(self) -> None:
        """Stop polling and unsubscribe from the limiter."""
        self._running = False
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        self.detach()
        logger.debug("Rate limit monitor stopped")

    def remaining_seconds(self) -> int:
        """Whole seconds left in the current block, rounded up."""
        status = self.limiter.get_status()
        if status.is_blocked:
            return math.ceil(status.blocked_until_ms / 1000)
        return 0

    def render(self) -> Panel | None:
        """Warning panel while limited, otherwise None."""
        if not self.is_limited:
            return None

        body = Text()
        body.append(
            f"Too many requests. Please wait {self.remaining_seconds()}s "
            "before trying again.\n"
        )
        body.append("Requests in last minute: ", style="dim")
        body.append(
            f"{self.status.recent_request_count}/{self.status.requests_per_minute}",
            style="bold",
        )
        return Panel(body, title="Rate Limit Active", border_style="yellow")
