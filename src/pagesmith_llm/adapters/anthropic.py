"""Anthropic Messages API adapter.

Translates CompletionRequest/CompletionResponse to and from the Anthropic
Messages API using the native HTTP API directly.

Anthropic-specific behaviors:
- System payload goes in the top-level ``system`` field
- Strict user/assistant message alternation
"""

from __future__ import annotations

from typing import Any

import httpx

from pagesmith_llm.errors import MalformedResponseError, classify_http_error
from pagesmith_llm.types import (
    CompletionRequest,
    CompletionResponse,
    Message,
    Role,
    Usage,
)

from .base import ProviderConfig, expect_list, expect_object, optional_text, read_usage

# Anthropic API constants
DEFAULT_BASE_URL = "https://api.anthropic.com"
API_VERSION = "2023-06-01"
DEFAULT_MAX_TOKENS = 32768


class AnthropicAdapter:
    """Anthropic Messages API adapter."""

    def __init__(self, config: ProviderConfig) -> None:
        self._config = config
        self._base_url = (config.base_url or DEFAULT_BASE_URL).rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=httpx.Timeout(config.timeout, connect=10.0),
            headers={
                "x-api-key": config.api_key,
                "anthropic-version": API_VERSION,
                "content-type": "application/json",
                **config.default_headers,
            },
        )

    @property
    def provider_name(self) -> str:
        return "anthropic"

    # ------------------------------------------------------------------ #
    # Request translation
    # ------------------------------------------------------------------ #

    def _translate_request(self, request: CompletionRequest) -> dict[str, Any]:
        system_parts = [m.content for m in request.messages if m.role == Role.SYSTEM]
        if request.system:
            system_parts.insert(0, request.system)
        conversation = [m for m in request.messages if m.role != Role.SYSTEM]

        body: dict[str, Any] = {
            "model": request.model,
            "messages": self._enforce_alternation(conversation),
            "max_tokens": request.max_tokens or DEFAULT_MAX_TOKENS,
        }
        if system_parts:
            body["system"] = "\n\n".join(system_parts)
        if request.temperature is not None:
            body["temperature"] = request.temperature
        return body

    def _enforce_alternation(self, messages: list[Message]) -> list[dict[str, Any]]:
        """Merge consecutive same-role messages; Anthropic rejects repeats."""
        result: list[dict[str, Any]] = []
        for msg in messages:
            role = "assistant" if msg.role == Role.ASSISTANT else "user"
            if result and result[-1]["role"] == role:
                result[-1]["content"] += "\n\n" + msg.content
            else:
                result.append({"role": role, "content": msg.content})
        return result

    # ------------------------------------------------------------------ #
    # Response translation
    # ------------------------------------------------------------------ #

    def _translate_response(self, data: Any, request: CompletionRequest) -> CompletionResponse:
        data = expect_object(data, "body", "anthropic")
        content = expect_list(data.get("content"), "content", "anthropic", data)
        chunks: list[str] = []
        for index, block in enumerate(content):
            block = expect_object(block, f"content[{index}]", "anthropic", data)
            if block.get("type") == "text":
                chunks.append(optional_text(block.get("text"), "text", "anthropic", data))
        return CompletionResponse(
            id=optional_text(data.get("id"), "id", "anthropic", data),
            model=optional_text(data.get("model"), "model", "anthropic", data) or request.model,
            provider="anthropic",
            text="".join(chunks),
            finish_reason=optional_text(data.get("stop_reason"), "stop_reason", "anthropic", data)
            or "end_turn",
            usage=read_usage(data, "anthropic", "input_tokens", "output_tokens"),
            raw=data,
        )

    # ------------------------------------------------------------------ #
    # complete() -- blocking call
    # ------------------------------------------------------------------ #

    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        """Send a request and return the complete response."""
        body = self._translate_request(request)
        http_response = await self._client.post("/v1/messages", json=body)

        if http_response.status_code != 200:
            raise classify_http_error(
                http_response.status_code,
                http_response.text,
                "anthropic",
                headers=dict(http_response.headers),
            )

        try:
            data = http_response.json()
        except ValueError as exc:
            raise MalformedResponseError(
                f"Anthropic returned non-JSON body: {exc}", provider="anthropic"
            ) from exc
        return self._translate_response(data, request)

    async def close(self) -> None:
        await self._client.aclose()
