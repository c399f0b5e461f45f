"""API error types and status classification."""

from enum import Enum


class ErrorKind(str, Enum):
    AUTH = "auth"              # Missing/expired credentials
    BILLING = "billing"        # Plan or payment required
    RATE_LIMIT = "rate_limit"  # Local or remote rate limiting
    FORMAT = "format"          # Validation / malformed request
    TIMEOUT = "timeout"        # Request timeout
    NOT_FOUND = "not_found"
    SERVER = "server"          # 5xx
    NETWORK = "network"        # No response at all
    UNKNOWN = "unknown"


def classify_status(status_code: int | None, message: str = "") -> ErrorKind:
    """Classify a failed API call into a specific kind."""
    msg_lower = message.lower()

    if status_code is None:
        return ErrorKind.NETWORK

    if status_code in (401, 403) or "unauthorized" in msg_lower:
        return ErrorKind.AUTH

    if status_code == 402 or "subscription" in msg_lower or "billing" in msg_lower:
        return ErrorKind.BILLING

    if status_code == 429 or "rate limit" in msg_lower:
        return ErrorKind.RATE_LIMIT

    if status_code in (400, 422):
        return ErrorKind.FORMAT

    if status_code in (408, 504) or "timeout" in msg_lower:
        return ErrorKind.TIMEOUT

    if status_code == 404:
        return ErrorKind.NOT_FOUND

    if status_code >= 500:
        return ErrorKind.SERVER

    return ErrorKind.UNKNOWN


class ApiError(Exception):
    """Base class for every failure surfaced by ApiClient."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.kind = classify_status(status_code, message)


class LocalRateLimitExceeded(ApiError):
    """Per-minute ceiling reached locally; the request was never sent."""

    def __init__(self, recent_count: int, limit: int):
        super().__init__(
            f"Rate limit exceeded: {recent_count}/{limit} requests in the last minute"
        )
        self.recent_count = recent_count
        self.limit = limit
        self.kind = ErrorKind.RATE_LIMIT


class RemoteRateLimited(ApiError):
    """Server kept answering 429 after all retries."""

    def __init__(self, message: str, retries: int):
        super().__init__(message, status_code=429)
        self.retries = retries


class ApiResponseError(ApiError):
    """Any other non-2xx response."""


class ApiTransportError(ApiError):
    """The request failed before a response arrived."""

    def __init__(self, message: str):
        super().__init__(message, status_code=None)
