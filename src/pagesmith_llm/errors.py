"""Errors raised by the provider gateway.

A provider call ends either in text or in a ``ProviderError``. Each
class declares whether the retry engine may try again; only transient
conditions (rate limits, 5xx, transport failures, timeouts) may.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any


class SDKError(Exception):
    """Root of every gateway error."""

    retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        provider: str | None = None,
        status_code: int | None = None,
        retryable: bool | None = None,
    ) -> None:
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code
        if retryable is not None:
            self.retryable = retryable


class ProviderError(SDKError):
    """A provider call did not produce text."""

    def __init__(
        self,
        message: str,
        *,
        provider: str | None = None,
        status_code: int | None = None,
        retryable: bool | None = None,
        raw_response: Any = None,
    ) -> None:
        super().__init__(message, provider=provider, status_code=status_code, retryable=retryable)
        self.raw_response = raw_response


class InvalidRequestError(ProviderError):
    """400/422: the provider refused the request body."""


class AuthenticationError(ProviderError):
    """401: missing or rejected API key."""


class AccessDeniedError(ProviderError):
    """403"""


class NotFoundError(ProviderError):
    """404: unknown model or endpoint."""


class ContextLengthError(ProviderError):
    """413: the page plus prompt does not fit the model's context."""


class RateLimitError(ProviderError):
    """429. ``retry_after`` is the provider's requested wait in seconds."""

    retryable = True

    def __init__(self, message: str, *, retry_after: float | None = None, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.retry_after = retry_after


class ServerError(ProviderError):
    """5xx, including Anthropic's 529 overloaded."""

    retryable = True


class NetworkError(ProviderError):
    retryable = True


class RequestTimeoutError(ProviderError):
    """No answer within the gateway's per-attempt timeout, or a 408."""

    retryable = True


class MalformedResponseError(ProviderError):
    """A 200 answer whose body does not have the documented shape."""


class RoutingError(ProviderError):
    """No provider owns the model identifier's prefix."""

    def __init__(self, message: str, *, model: str | None = None) -> None:
        super().__init__(message)
        self.model = model


class ConfigurationError(ProviderError):
    """The model routes to a provider that has no adapter registered."""


_BY_STATUS: dict[int, type[ProviderError]] = {
    400: InvalidRequestError,
    401: AuthenticationError,
    403: AccessDeniedError,
    404: NotFoundError,
    408: RequestTimeoutError,
    413: ContextLengthError,
    422: InvalidRequestError,
}


def _retry_after(headers: Mapping[str, str] | None) -> float | None:
    for name, value in (headers or {}).items():
        if name.lower() == "retry-after":
            try:
                return float(value)
            except ValueError:
                return None
    return None


def classify_http_error(
    status_code: int,
    body: str,
    provider: str,
    *,
    headers: Mapping[str, str] | None = None,
    raw_response: Any = None,
) -> ProviderError:
    """Build the error for a non-200 provider answer."""
    common: dict[str, Any] = {
        "provider": provider,
        "status_code": status_code,
        "raw_response": raw_response,
    }
    if status_code == 429:
        return RateLimitError(body, retry_after=_retry_after(headers), **common)
    if status_code >= 500:
        return ServerError(body, **common)
    return _BY_STATUS.get(status_code, ProviderError)(body, **common)
