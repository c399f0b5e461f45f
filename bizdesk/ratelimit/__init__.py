"""Client-side rate limiting for bizdesk API calls."""

from bizdesk.ratelimit.limiter import RateLimiter, RateLimitStatus
from bizdesk.ratelimit.monitor import RateLimitMonitor

__all__ = ["RateLimiter", "RateLimitStatus", "RateLimitMonitor"]
