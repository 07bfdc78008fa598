"""Middleware/interceptor chain for the completion gateway.

Middleware intercepts requests and responses for cross-cutting concerns
(logging, completion capture) without modifying the gateway or adapters.
The chain executes in order for requests (outer to inner) and reverse
order for responses (inner to outer).

Usage::

    gateway = Gateway(middleware=[LoggingMiddleware(), CompletionLogMiddleware()])
"""

from __future__ import annotations

import logging
from typing import Protocol

from pagesmith_llm.types import CompletionRequest, CompletionResponse

logger = logging.getLogger(__name__)


class Middleware(Protocol):
    """Protocol for request/response interceptors."""

    async def before_request(self, request: CompletionRequest) -> CompletionRequest:
        """Transform or inspect the request before it's sent.

        Return the (possibly modified) request. Raise to abort the call.
        """
        ...

    async def after_response(
        self, request: CompletionRequest, response: CompletionResponse
    ) -> CompletionResponse:
        """Transform or inspect the response after it's received."""
        ...


class LoggingMiddleware:
    """Logs a one-line summary of every request and response at INFO level."""

    def __init__(self, logger_name: str = "pagesmith_llm") -> None:
        self._logger = logging.getLogger(logger_name)

    async def before_request(self, request: CompletionRequest) -> CompletionRequest:
        self._logger.info(
            "LLM request: model=%s messages=%d system_chars=%d",
            request.model,
            len(request.messages),
            len(request.system or ""),
        )
        return request

    async def after_response(
        self, request: CompletionRequest, response: CompletionResponse
    ) -> CompletionResponse:
        self._logger.info(
            "LLM response: model=%s provider=%s finish=%s tokens=%d duration=%.1fs",
            response.model,
            response.provider,
            response.finish_reason,
            response.usage.total_tokens,
            response.duration,
        )
        return response


class CompletionLogMiddleware:
    """Logs full system payload, prompt and response text at DEBUG level."""

    def __init__(self, logger_name: str = "pagesmith_llm.completions") -> None:
        self._logger = logging.getLogger(logger_name)

    async def before_request(self, request: CompletionRequest) -> CompletionRequest:
        self._logger.debug("===== PAGE UPDATE REQUEST =====")
        self._logger.debug("SYSTEM:\n%s", request.system or "")
        for message in request.messages:
            self._logger.debug("%s:\n%s", message.role.upper(), message.content)
        return request

    async def after_response(
        self, request: CompletionRequest, response: CompletionResponse
    ) -> CompletionResponse:
        self._logger.debug("----- PAGE UPDATE RESPONSE -----\n%s", response.text)
        return response
