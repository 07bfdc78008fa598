"""PageSmith provider gateway.

Provides a single text-completion interface across Anthropic, OpenAI,
and Fireworks AI, routed by model identifier prefix.
"""

from __future__ import annotations

from pagesmith_llm.adapters.base import ProviderAdapter, ProviderConfig
from pagesmith_llm.errors import (
    AccessDeniedError,
    AuthenticationError,
    ConfigurationError,
    ContextLengthError,
    InvalidRequestError,
    MalformedResponseError,
    NetworkError,
    NotFoundError,
    ProviderError,
    RateLimitError,
    RequestTimeoutError,
    RoutingError,
    SDKError,
    ServerError,
)
from pagesmith_llm.gateway import Gateway
from pagesmith_llm.middleware import CompletionLogMiddleware, LoggingMiddleware
from pagesmith_llm.retry import RetryPolicy, retry_with_policy
from pagesmith_llm.routing import ROUTES, ProviderRoute, resolve_provider, resolve_route
from pagesmith_llm.settings import GatewaySettings, build_gateway
from pagesmith_llm.types import CompletionRequest, CompletionResponse, Message, Role, Usage

__all__ = [
    # Gateway
    "Gateway",
    "GatewaySettings",
    "build_gateway",
    "ProviderAdapter",
    "ProviderConfig",
    # Routing
    "ROUTES",
    "ProviderRoute",
    "resolve_provider",
    "resolve_route",
    # Types
    "Role",
    "Message",
    "Usage",
    "CompletionRequest",
    "CompletionResponse",
    # Errors
    "SDKError",
    "ProviderError",
    "AccessDeniedError",
    "AuthenticationError",
    "ConfigurationError",
    "ContextLengthError",
    "InvalidRequestError",
    "MalformedResponseError",
    "NetworkError",
    "NotFoundError",
    "RateLimitError",
    "RequestTimeoutError",
    "RoutingError",
    "ServerError",
    # Retry
    "RetryPolicy",
    "retry_with_policy",
    # Middleware
    "LoggingMiddleware",
    "CompletionLogMiddleware",
]
