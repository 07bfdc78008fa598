"""Shared fakes for offline tests: scripted adapters and gateways."""

from __future__ import annotations

import asyncio
import json
from typing import Any

from pagesmith_llm.types import CompletionRequest, CompletionResponse

PAGE = (
    "<html><head><title>Demo</title></head>"
    '<body><div class="chat-panel"><p>hi</p></div>'
    '<div class="viewer-panel"><h1>Title</h1></div></body></html>'
)
# Pre-order ids for PAGE:
# 0 html, 1 head, 2 title, 3 body, 4 .chat-panel, 5 p, 6 .viewer-panel, 7 h1


def ops(*operations: dict[str, Any]) -> str:
    """Serialize operations the way a provider would answer."""
    return json.dumps(list(operations))


class MockAdapter:
    """ProviderAdapter that replays scripted responses or errors."""

    def __init__(self, responses: list[Any] | None = None, provider: str = "anthropic") -> None:
        self._responses = list(responses or [])
        self._provider = provider
        self.requests: list[CompletionRequest] = []
        self.closed = False

    @property
    def provider_name(self) -> str:
        return self._provider

    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        self.requests.append(request)
        item = self._responses.pop(0)
        if isinstance(item, BaseException):
            raise item
        if isinstance(item, CompletionResponse):
            return item
        return CompletionResponse(model=request.model, provider=self._provider, text=str(item))

    async def close(self) -> None:
        self.closed = True


class SlowAdapter(MockAdapter):
    """Adapter that never answers within a short timeout."""

    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        self.requests.append(request)
        await asyncio.sleep(10)
        return CompletionResponse(text="late")


class FakeGateway:
    """Stands in for Gateway: returns scripted text or raises scripted errors.

    When ``gate`` is set, every call waits on it before answering, which
    lets tests hold a transform in flight.
    """

    def __init__(self, *responses: Any, gate: asyncio.Event | None = None) -> None:
        self._responses = list(responses)
        self.requests: list[CompletionRequest] = []
        self.gate = gate
        self.started = asyncio.Event()

    async def complete(self, request: CompletionRequest) -> str:
        self.requests.append(request)
        self.started.set()
        if self.gate is not None:
            await self.gate.wait()
        item = self._responses.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item
