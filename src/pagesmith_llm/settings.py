"""Environment-driven gateway configuration."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field

from pagesmith_llm.adapters import ADAPTER_TYPES
from pagesmith_llm.adapters.base import ProviderConfig
from pagesmith_llm.gateway import DEFAULT_TIMEOUT, Gateway
from pagesmith_llm.middleware import CompletionLogMiddleware, LoggingMiddleware, Middleware
from pagesmith_llm.retry import RetryPolicy

# Provider -> environment variable holding its API key
KEY_ENV_MAP: dict[str, str] = {
    "anthropic": "ANTHROPIC_API_KEY",
    "openai": "OPENAI_API_KEY",
    "fireworks": "FIREWORKS_API_KEY",
}

_TRUTHY = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class GatewaySettings:
    """Credentials and call limits for the provider gateway."""

    api_keys: dict[str, str] = field(default_factory=dict)
    base_urls: dict[str, str] = field(default_factory=dict)
    timeout: float = DEFAULT_TIMEOUT
    max_retries: int = 2
    log_completions: bool = False

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> GatewaySettings:
        env = os.environ if environ is None else environ
        api_keys = {p: env[var] for p, var in KEY_ENV_MAP.items() if env.get(var)}
        base_urls = {
            p: env[f"{p.upper()}_BASE_URL"] for p in KEY_ENV_MAP if env.get(f"{p.upper()}_BASE_URL")
        }
        return cls(
            api_keys=api_keys,
            base_urls=base_urls,
            timeout=float(env.get("PAGESMITH_TIMEOUT", DEFAULT_TIMEOUT)),
            max_retries=int(env.get("PAGESMITH_MAX_RETRIES", 2)),
            log_completions=env.get("PAGESMITH_LOG_COMPLETIONS", "").lower() in _TRUTHY,
        )


def build_gateway(settings: GatewaySettings) -> Gateway:
    """Create a Gateway with an adapter for every provider that has a key."""
    middleware: list[Middleware] = [LoggingMiddleware()]
    if settings.log_completions:
        middleware.append(CompletionLogMiddleware())

    gateway = Gateway(
        retry_policy=RetryPolicy(max_retries=settings.max_retries),
        timeout=settings.timeout,
        middleware=middleware,
    )
    for provider, api_key in settings.api_keys.items():
        adapter_cls = ADAPTER_TYPES[provider]
        config = ProviderConfig(
            api_key=api_key,
            base_url=settings.base_urls.get(provider),
            timeout=settings.timeout,
        )
        gateway.register_adapter(provider, adapter_cls(config))
    return gateway
