"""Async HTTP client that routes every call through the shared rate limiter."""

import asyncio
import json
from typing import Any, Awaitable, Callable

import httpx
from loguru import logger

from bizdesk.api.auth import TokenStore
from bizdesk.api.errors import (
    ApiResponseError,
    ApiTransportError,
    LocalRateLimitExceeded,
    RemoteRateLimited,
)
from bizdesk.ratelimit.limiter import RateLimiter

DEFAULT_RATE_LIMIT_MESSAGE = "Too many requests, please try again later"


def _extract_error_message(response: httpx.Response) -> str | None:
    """Server-provided error text: JSON ``message``, the JSON body, or raw text."""
    content_type = response.headers.get("content-type", "")
    if "application/json" in content_type:
        try:
            body = response.json()
        except ValueError:
            body = None
        if body:
            if isinstance(body, dict) and body.get("message"):
                return str(body["message"])
            return json.dumps(body)
        return None

    text = response.text
    return text or None


class ApiClient:
    """
    Backend API client.

    The limiter is passed in rather than created here: every client in the
    process should share one instance so they draw from the same budget.

    Usage:
        limiter = RateLimiter.from_config(config.rate_limit)
        async with ApiClient(limiter, base_url=config.api.base_url) as api:
            products = await api.get("/api/products")
    """

    def __init__(
        self,
        limiter: RateLimiter,
        *,
        base_url: str = "",
        timeout: float = 15.0,
        max_retries: int = 3,
        token_store: TokenStore | None = None,
        serialize_admission: bool = False,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[None]] | None = None,
    ):
        """
        Args:
            limiter: Process-wide rate limiter shared by all clients.
            base_url: Backend root, e.g. "https://api.example.com".
            timeout: Per-request timeout in seconds.
            max_retries: Retries after a 429 before giving up.
            token_store: Source of the bearer token (none = anonymous).
            serialize_admission: Hold the limiter's admission lock for each
                attempt so concurrent calls never over-admit.
            transport: Custom httpx transport (tests, proxies).
            sleep: Async sleep used between 429 retries.
        """
        self.limiter = limiter
        self.base_url = base_url.rstrip("/")
        self.max_retries = max_retries
        self.token_store = token_store
        self.serialize_admission = serialize_admission
        self._sleep = sleep or asyncio.sleep
        self._http = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            follow_redirects=True,
            transport=transport,
        )

    @classmethod
    def from_config(cls, config, limiter: RateLimiter, **kwargs) -> "ApiClient":
        """Build a client from the api section of the config."""
        return cls(
            limiter,
            base_url=config.api.base_url,
            timeout=config.api.timeout,
            max_retries=config.api.max_retries,
            token_store=TokenStore(config.api.token_path),
            serialize_admission=config.api.serialize_admission,
            **kwargs,
        )

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    def _build_headers(self, extra: dict[str, str] | None) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if extra:
            headers.update(extra)
        token = self.token_store.get() if self.token_store else None
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    async def _admit(self, endpoint: str) -> None:
        """Wait on the bucket/backoff gate, then enforce the per-minute ceiling."""
        if not self.limiter.can_make_request():
            wait_ms = await self.limiter.wait_until_ready()
            logger.debug(f"Rate limiter: waited {wait_ms:.0f}ms before request to {endpoint}")

        if not self.limiter.check_per_minute_limit():
            status = self.limiter.get_status()
            raise LocalRateLimitExceeded(
                status.recent_request_count, status.requests_per_minute
            )

    async def _attempt(
        self,
        method: str,
        endpoint: str,
        json_body: Any,
        params: dict[str, Any] | None,
        headers: dict[str, str] | None,
    ) -> httpx.Response:
        """One pass through the gates and the network."""
        await self._admit(endpoint)
        try:
            response = await self._http.request(
                method,
                endpoint,
                json=json_body,
                params=params,
                headers=self._build_headers(headers),
            )
        except httpx.HTTPError as e:
            raise ApiTransportError(f"{method} {endpoint} failed: {e}") from e

        if response.is_success:
            self.limiter.reset_backoff()
            self.limiter.record_request()
        elif response.status_code == 429:
            self.limiter.handle_rate_limit_error()
        else:
            self.limiter.reset_backoff()
        return response

    async def request(
        self,
        method: str,
        endpoint: str,
        *,
        json: Any = None,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        max_retries: int | None = None,
    ) -> Any:
        """
        Perform a rate-limited API call.

        Returns:
            Parsed JSON body, or {} for empty/non-JSON successful responses.

        Raises:
            LocalRateLimitExceeded: Per-minute ceiling reached; nothing sent.
            RemoteRateLimited: 429 persisted past max_retries.
            ApiResponseError: Any other non-2xx status.
            ApiTransportError: Network failure.
        """
        method = method.upper()
        max_retries = self.max_retries if max_retries is None else max_retries
        retry_count = 0

        while True:
            if self.serialize_admission:
                async with self.limiter.admission_lock:
                    response = await self._attempt(method, endpoint, json, params, headers)
            else:
                response = await self._attempt(method, endpoint, json, params, headers)

            if response.status_code != 429:
                break

            if retry_count >= max_retries:
                message = _extract_error_message(response) or DEFAULT_RATE_LIMIT_MESSAGE
                raise RemoteRateLimited(message, retries=retry_count)

            retry_count += 1
            backoff_ms = self.limiter.current_backoff_ms
            logger.warning(
                f"Rate limited (429) on {endpoint}. Retrying in {backoff_ms:.0f}ms "
                f"(attempt {retry_count}/{max_retries})"
            )
            await self._sleep(backoff_ms / 1000)

        if not response.is_success:
            message = (
                _extract_error_message(response)
                or response.reason_phrase
                or f"API Error: {response.status_code}"
            )
            raise ApiResponseError(message, status_code=response.status_code)

        if "application/json" in response.headers.get("content-type", ""):
            try:
                return response.json()
            except ValueError as e:
                logger.warning(f"Failed to parse JSON response from {endpoint}: {e}")
                return {}
        return {}

    async def get(self, endpoint: str, params: dict[str, Any] | None = None, **kwargs) -> Any:
        return await self.request("GET", endpoint, params=params, **kwargs)

    async def post(self, endpoint: str, body: Any = None, **kwargs) -> Any:
        return await self.request("POST", endpoint, json=body, **kwargs)

    async def put(self, endpoint: str, body: Any = None, **kwargs) -> Any:
        return await self.request("PUT", endpoint, json=body, **kwargs)

    async def patch(self, endpoint: str, body: Any = None, **kwargs) -> Any:
        return await self.request("PATCH", endpoint, json=body, **kwargs)

    async def delete(self, endpoint: str, **kwargs) -> Any:
        return await self.request("DELETE", endpoint, **kwargs)
