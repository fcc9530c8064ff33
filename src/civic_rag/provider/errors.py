"""Error taxonomy for calls to the inference provider."""

from __future__ import annotations

import asyncio

import httpx

TRANSIENT_STATUS_CODES = frozenset({429, 502, 503})


class ProviderError(RuntimeError):
    """Base class for every failure reaching the inference provider."""


class ProviderNotConfiguredError(ProviderError):
    """Raised before any network call when no credential is configured."""


class ProviderHTTPError(ProviderError):
    def __init__(self, status_code: int, body: str = "") -> None:
        super().__init__(f"provider returned HTTP {status_code}: {body[:200]}")
        self.status_code = status_code
        self.body = body


class MalformedResponseError(ProviderError):
    """Raised when a provider payload is not JSON or lacks required fields."""


class CircuitOpenError(ProviderError):
    def __init__(self, endpoint_key: str) -> None:
        super().__init__(f"circuit open for {endpoint_key}")
        self.endpoint_key = endpoint_key


class InvalidMediaError(ValueError):
    """Raised when uploaded audio or image bytes fail validation."""


def is_transient(exc: BaseException) -> bool:
    if isinstance(exc, ProviderHTTPError):
        return exc.status_code in TRANSIENT_STATUS_CODES
    return isinstance(exc, (asyncio.TimeoutError, TimeoutError, httpx.TimeoutException))


# Everything a caller may catch to degrade gracefully after a provider call.
PROVIDER_FAILURES: tuple[type[BaseException], ...] = (
    ProviderError,
    asyncio.TimeoutError,
    TimeoutError,
    httpx.HTTPError,
)
