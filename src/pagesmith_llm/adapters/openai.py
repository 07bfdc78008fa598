"""OpenAI Responses API adapter.

Translates CompletionRequest/CompletionResponse to and from the OpenAI
Responses API (/v1/responses). The system payload travels as
``instructions``; prior turns and the prompt become ``input`` items.
"""

from __future__ import annotations

from typing import Any

import httpx

from pagesmith_llm.errors import MalformedResponseError, classify_http_error
from pagesmith_llm.types import CompletionRequest, CompletionResponse, Role

from .base import ProviderConfig, expect_list, expect_object, optional_text, read_usage

DEFAULT_BASE_URL = "https://api.openai.com"
DEFAULT_MAX_OUTPUT_TOKENS = 32000


class OpenAIAdapter:
    """OpenAI Responses API adapter."""

    def __init__(self, config: ProviderConfig) -> None:
        self._config = config
        self._base_url = (config.base_url or DEFAULT_BASE_URL).rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=httpx.Timeout(config.timeout, connect=10.0),
            headers={
                "Authorization": f"Bearer {config.api_key}",
                "Content-Type": "application/json",
                **config.default_headers,
            },
        )

    @property
    def provider_name(self) -> str:
        return "openai"

    def _translate_request(self, request: CompletionRequest) -> dict[str, Any]:
        instructions = [m.content for m in request.messages if m.role == Role.SYSTEM]
        if request.system:
            instructions.insert(0, request.system)

        body: dict[str, Any] = {
            "model": request.model,
            "input": [
                {"role": str(m.role), "content": m.content}
                for m in request.messages
                if m.role != Role.SYSTEM
            ],
            "max_output_tokens": request.max_tokens or DEFAULT_MAX_OUTPUT_TOKENS,
        }
        if instructions:
            body["instructions"] = "\n\n".join(instructions)
        if request.temperature is not None:
            body["temperature"] = request.temperature
        return body

    def _translate_response(self, data: Any, request: CompletionRequest) -> CompletionResponse:
        data = expect_object(data, "body", "openai")

        # Convenience field first, then walk the output items
        text = data.get("output_text")
        if not isinstance(text, str):
            output = expect_list(data.get("output"), "output", "openai", data)
            chunks: list[str] = []
            for index, item in enumerate(output):
                item = expect_object(item, f"output[{index}]", "openai", data)
                if item.get("type") != "message":
                    continue
                parts = item.get("content")
                for part in expect_list([] if parts is None else parts, "content", "openai", data):
                    part = expect_object(part, f"output[{index}].content", "openai", data)
                    if part.get("type") == "output_text":
                        chunks.append(optional_text(part.get("text"), "text", "openai", data))
            text = "".join(chunks)

        status = optional_text(data.get("status"), "status", "openai", data) or "completed"
        return CompletionResponse(
            id=optional_text(data.get("id"), "id", "openai", data),
            model=optional_text(data.get("model"), "model", "openai", data) or request.model,
            provider="openai",
            text=text,
            finish_reason="stop" if status == "completed" else status,
            usage=read_usage(data, "openai", "input_tokens", "output_tokens"),
            raw=data,
        )

    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        """Send a request and return the complete response."""
        body = self._translate_request(request)
        http_response = await self._client.post("/v1/responses", json=body)

        if http_response.status_code != 200:
            raise classify_http_error(
                http_response.status_code,
                http_response.text,
                "openai",
                headers=dict(http_response.headers),
            )

        try:
            data = http_response.json()
        except ValueError as exc:
            raise MalformedResponseError(
                f"OpenAI returned non-JSON body: {exc}", provider="openai"
            ) from exc
        return self._translate_response(data, request)

    async def close(self) -> None:
        await self._client.aclose()
