"""Provider gateway: one ``complete`` capability over several backends.

The Gateway routes each request to a provider adapter by the prefix of
its model identifier, bounds every attempt with a timeout, retries
transient failures with exponential backoff, and runs the middleware
chain around the call.
"""

from __future__ import annotations

import logging
import time

import anyio
import httpx

from pagesmith_llm.adapters.base import ProviderAdapter
from pagesmith_llm.errors import (
    ConfigurationError,
    NetworkError,
    ProviderError,
    RequestTimeoutError,
    SDKError,
)
from pagesmith_llm.middleware import Middleware
from pagesmith_llm.retry import RetryPolicy, retry_with_policy
from pagesmith_llm.routing import ROUTES, ProviderRoute, resolve_route
from pagesmith_llm.types import CompletionRequest, CompletionResponse

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 120.0


class Gateway:
    """Completion gateway with prefix routing.

    Usage::

        gateway = Gateway(timeout=90.0)
        gateway.register_adapter("anthropic", AnthropicAdapter(config))
        gateway.register_adapter("openai", OpenAIAdapter(config))

        text = await gateway.complete(CompletionRequest.simple("claude-sonnet-4-5", "Hello"))
    """

    def __init__(
        self,
        *,
        retry_policy: RetryPolicy | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        middleware: list[Middleware] | None = None,
        routes: tuple[ProviderRoute, ...] = ROUTES,
    ) -> None:
        if timeout <= 0:
            raise ValueError(f"timeout must be > 0, got {timeout}")
        self._adapters: dict[str, ProviderAdapter] = {}
        self._retry_policy = retry_policy or RetryPolicy()
        self._timeout = timeout
        self._middleware = list(middleware or [])
        self._routes = routes

    @property
    def providers(self) -> list[str]:
        return list(self._adapters)

    def register_adapter(self, provider: str, adapter: ProviderAdapter) -> None:
        """Register a provider adapter.

        Args:
            provider: Provider name from the routing table (e.g., "anthropic").
            adapter: The adapter instance implementing ProviderAdapter.
        """
        if provider not in {r.provider for r in self._routes}:
            raise ConfigurationError(
                f"Provider {provider!r} has no routing entry", provider=provider
            )
        self._adapters[provider] = adapter

    def resolve_adapter(self, model: str) -> ProviderAdapter:
        """Resolve the adapter that owns ``model``.

        Raises:
            RoutingError: If no provider owns the model prefix.
            ConfigurationError: If the owning provider has no adapter registered.
        """
        route = resolve_route(model, self._routes)
        adapter = self._adapters.get(route.provider)
        if adapter is None:
            raise ConfigurationError(
                f"Model {model!r} routes to {route.display_name}, but no adapter is "
                f"registered for it. Available: {self.providers}",
                provider=route.provider,
            )
        return adapter

    async def complete_response(self, request: CompletionRequest) -> CompletionResponse:
        """Send a request and return the full response, applying retry policy."""
        adapter = self.resolve_adapter(request.model)

        req = request
        for mw in self._middleware:
            req = await mw.before_request(req)

        async def _attempt() -> CompletionResponse:
            return await self._call_with_timeout(adapter, req)

        started = time.monotonic()
        try:
            response = await retry_with_policy(_attempt, self._retry_policy)
        except SDKError as exc:
            logger.warning(
                "%s call for %s failed after %.1fs: %s",
                adapter.provider_name,
                req.model,
                time.monotonic() - started,
                type(exc).__name__,
            )
            raise
        response = response.model_copy(update={"duration": time.monotonic() - started})

        for mw in reversed(self._middleware):
            response = await mw.after_response(req, response)
        return response

    async def complete(self, request: CompletionRequest) -> str:
        """Send a request and return the provider-generated text."""
        response = await self.complete_response(request)
        return response.text

    async def _call_with_timeout(
        self, adapter: ProviderAdapter, request: CompletionRequest
    ) -> CompletionResponse:
        provider = adapter.provider_name
        try:
            with anyio.fail_after(self._timeout):
                return await adapter.complete(request)
        except TimeoutError as exc:
            raise RequestTimeoutError(
                f"{provider} did not answer within {self._timeout:.0f}s", provider=provider
            ) from exc
        except httpx.TimeoutException as exc:
            raise RequestTimeoutError(
                f"{provider} request timed out: {exc}", provider=provider
            ) from exc
        except httpx.TransportError as exc:
            raise NetworkError(f"{provider} transport failure: {exc}", provider=provider) from exc
        except SDKError:
            raise
        except Exception as exc:
            # Adapter bugs and unexpected payloads still end as provider failures.
            raise ProviderError(
                f"{provider} adapter failed: {type(exc).__name__}: {exc}", provider=provider
            ) from exc

    async def close(self) -> None:
        """Close all registered adapters and release resources."""
        errors: list[Exception] = []
        for adapter in self._adapters.values():
            try:
                await adapter.close()
            except Exception as exc:  # noqa: BLE001
                errors.append(exc)
        if errors:
            raise SDKError(f"Errors closing adapters: {errors}")

    async def __aenter__(self) -> Gateway:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()
