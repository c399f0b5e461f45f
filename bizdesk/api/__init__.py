"""Backend API access: client, endpoints, errors and token storage."""

from bizdesk.api.auth import TokenStore
from bizdesk.api.client import ApiClient
from bizdesk.api.endpoints import API_ENDPOINTS, resolve
from bizdesk.api.errors import (
    ApiError,
    ApiResponseError,
    ApiTransportError,
    ErrorKind,
    LocalRateLimitExceeded,
    RemoteRateLimited,
)

__all__ = [
    "API_ENDPOINTS",
    "ApiClient",
    "ApiError",
    "ApiResponseError",
    "ApiTransportError",
    "ErrorKind",
    "LocalRateLimitExceeded",
    "RemoteRateLimited",
    "TokenStore",
    "resolve",
]
