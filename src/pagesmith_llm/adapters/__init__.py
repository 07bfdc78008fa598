"""Provider adapters for the completion gateway."""

from pagesmith_llm.adapters.anthropic import AnthropicAdapter
from pagesmith_llm.adapters.base import ProviderAdapter, ProviderConfig
from pagesmith_llm.adapters.fireworks import FireworksAdapter
from pagesmith_llm.adapters.openai import OpenAIAdapter

ADAPTER_TYPES: dict[str, type] = {
    "anthropic": AnthropicAdapter,
    "openai": OpenAIAdapter,
    "fireworks": FireworksAdapter,
}

__all__ = [
    "ADAPTER_TYPES",
    "AnthropicAdapter",
    "FireworksAdapter",
    "OpenAIAdapter",
    "ProviderAdapter",
    "ProviderConfig",
]
