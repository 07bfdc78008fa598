"""Base adapter protocol and configuration for provider adapters.

Defines the contract that all provider adapters must implement, the
shared configuration type, and the checks adapters run on the JSON
bodies they read.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from pagesmith_llm.errors import MalformedResponseError
from pagesmith_llm.types import CompletionRequest, CompletionResponse, Usage


@dataclass(frozen=True)
class ProviderConfig:
    """Configuration for a provider adapter.

    Each adapter receives this at construction time. API keys,
    base URLs, and timeouts are provider-specific but share this shape.
    """

    api_key: str
    base_url: str | None = None
    timeout: float = 120.0
    default_headers: dict[str, str] = field(default_factory=dict)


@runtime_checkable
class ProviderAdapter(Protocol):
    """Protocol that all provider adapters must implement.

    Each adapter translates CompletionRequest/CompletionResponse to and
    from the provider's native API format and owns its authentication.
    """

    @property
    def provider_name(self) -> str:
        """The provider identifier (e.g., 'anthropic', 'openai', 'fireworks')."""
        ...

    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        """Send a request and return the complete response.

        Raises a ``ProviderError`` subclass on any upstream failure.
        """
        ...

    async def close(self) -> None:
        """Release resources (HTTP connections, etc.)."""
        ...


# ------------------------------------------------------------------ #
# Response shape checks
# ------------------------------------------------------------------ #


def expect_object(value: Any, what: str, provider: str, raw: Any = None) -> dict[str, Any]:
    """Return ``value`` if it is a JSON object, else raise MalformedResponseError."""
    if not isinstance(value, dict):
        raise MalformedResponseError(
            f"{provider} response field {what} is {type(value).__name__}, expected object",
            provider=provider,
            raw_response=raw,
        )
    return value


def expect_list(value: Any, what: str, provider: str, raw: Any = None) -> list[Any]:
    if not isinstance(value, list):
        raise MalformedResponseError(
            f"{provider} response field {what} is {type(value).__name__}, expected array",
            provider=provider,
            raw_response=raw,
        )
    return value


def optional_text(value: Any, what: str, provider: str, raw: Any = None) -> str:
    """A string field that may be absent or null (read as empty)."""
    if value is None:
        return ""
    if not isinstance(value, str):
        raise MalformedResponseError(
            f"{provider} response field {what} is {type(value).__name__}, expected string",
            provider=provider,
            raw_response=raw,
        )
    return value


def read_usage(data: dict[str, Any], provider: str, input_key: str, output_key: str) -> Usage:
    """Token counts from ``data["usage"]``; an absent or null block counts as zero."""
    block = data.get("usage")
    if block is None:
        return Usage()
    block = expect_object(block, "usage", provider, data)
    counts: dict[str, int] = {}
    for field_name, key in (("input_tokens", input_key), ("output_tokens", output_key)):
        count = block.get(key)
        if count is None:
            count = 0
        if not isinstance(count, int) or isinstance(count, bool):
            raise MalformedResponseError(
                f"{provider} usage.{key} is not an integer", provider=provider, raw_response=data
            )
        counts[field_name] = count
    return Usage(**counts)
