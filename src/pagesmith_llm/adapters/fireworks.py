"""Fireworks AI adapter.

Fireworks serves an OpenAI-compatible Chat Completions endpoint
(``/inference/v1/chat/completions``). Short model names such as
``fireworks-glm-5`` are expanded to full Fireworks model paths.

Usage::

    adapter = FireworksAdapter(ProviderConfig(api_key="fw-..."))
    gateway.register_adapter("fireworks", adapter)
"""

from __future__ import annotations

from typing import Any

import httpx

from pagesmith_llm.adapters.base import (
    ProviderConfig,
    expect_list,
    expect_object,
    optional_text,
    read_usage,
)
from pagesmith_llm.errors import MalformedResponseError, classify_http_error
from pagesmith_llm.types import CompletionRequest, CompletionResponse

DEFAULT_BASE_URL = "https://api.fireworks.ai/inference/v1"
DEFAULT_MAX_TOKENS = 32768

# Known short-name -> full Fireworks model path mappings
FIREWORKS_MODEL_MAP: dict[str, str] = {
    "fireworks-glm-5": "accounts/fireworks/models/glm-5",
    "fireworks-minimax-m2p5": "accounts/fireworks/models/minimax-m2p5",
    "fireworks-kimi-k2p5": "accounts/fireworks/models/kimi-k2p5",
}


def resolve_model_path(model: str) -> str:
    """Expand a short Fireworks model name; full paths pass through."""
    return FIREWORKS_MODEL_MAP.get(model, model)


class FireworksAdapter:
    """Adapter for the Fireworks Chat Completions API."""

    def __init__(self, config: ProviderConfig) -> None:
        self._config = config
        base_url = (config.base_url or DEFAULT_BASE_URL).rstrip("/")
        self._endpoint = f"{base_url}/chat/completions"
        headers = {
            "Authorization": f"Bearer {config.api_key}",
            "Content-Type": "application/json",
        }
        if config.default_headers:
            headers.update(config.default_headers)
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(config.timeout, connect=10.0),
            headers=headers,
        )

    @property
    def provider_name(self) -> str:
        return "fireworks"

    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        """Send a chat completion request."""
        body = self._build_request_body(request)
        resp = await self._client.post(self._endpoint, json=body)

        if resp.status_code != 200:
            error_text = resp.text
            try:
                error_text = resp.json().get("error", {}).get("message", resp.text)
            except (ValueError, AttributeError):
                error_text = resp.text
            raise classify_http_error(
                resp.status_code,
                error_text,
                "fireworks",
                headers=dict(resp.headers),
            )

        try:
            data = resp.json()
        except ValueError as exc:
            raise MalformedResponseError(
                f"Fireworks returned non-JSON body: {exc}", provider="fireworks"
            ) from exc
        return self._parse_response(data, request)

    async def close(self) -> None:
        await self._client.aclose()

    # ------------------------------------------------------------------ #
    # Request building
    # ------------------------------------------------------------------ #

    def _build_request_body(self, request: CompletionRequest) -> dict[str, Any]:
        messages: list[dict[str, Any]] = []
        if request.system:
            messages.append({"role": "system", "content": request.system})
        for msg in request.messages:
            messages.append({"role": str(msg.role), "content": msg.content})

        body: dict[str, Any] = {
            "model": resolve_model_path(request.model),
            "messages": messages,
            "max_tokens": request.max_tokens or DEFAULT_MAX_TOKENS,
        }
        if request.temperature is not None:
            body["temperature"] = request.temperature
        return body

    # ------------------------------------------------------------------ #
    # Response parsing
    # ------------------------------------------------------------------ #

    def _parse_response(self, data: Any, request: CompletionRequest) -> CompletionResponse:
        data = expect_object(data, "body", "fireworks")
        choices = expect_list(data.get("choices"), "choices", "fireworks", data)
        if not choices:
            raise MalformedResponseError(
                "No response choice returned", provider="fireworks", raw_response=data
            )
        choice = expect_object(choices[0], "choices[0]", "fireworks", data)
        message = expect_object(choice.get("message"), "choices[0].message", "fireworks", data)
        return CompletionResponse(
            id=optional_text(data.get("id"), "id", "fireworks", data),
            model=optional_text(data.get("model"), "model", "fireworks", data) or request.model,
            provider="fireworks",
            text=optional_text(message.get("content"), "message.content", "fireworks", data),
            finish_reason=optional_text(
                choice.get("finish_reason"), "finish_reason", "fireworks", data
            )
            or "stop",
            usage=read_usage(data, "fireworks", "prompt_tokens", "completion_tokens"),
            raw=data,
        )
