"""Prefix routing table for provider selection.

Each provider owns a disjoint set of model identifier prefixes. The table
is closed: a model identifier that matches no prefix is a routing failure,
never a silent default.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from pagesmith_llm.errors import RoutingError


@dataclass(frozen=True)
class ProviderRoute:
    """Routing entry for one provider."""

    provider: str
    display_name: str
    prefixes: tuple[str, ...]
    case_insensitive: bool = False

    def owns(self, model_id: str) -> bool:
        candidate = model_id.lower() if self.case_insensitive else model_id
        return candidate.startswith(self.prefixes)


ROUTES: tuple[ProviderRoute, ...] = (
    ProviderRoute(
        provider="anthropic",
        display_name="Anthropic",
        prefixes=("claude-",),
    ),
    ProviderRoute(
        provider="openai",
        display_name="OpenAI",
        prefixes=("gpt-", "o1", "o3", "o4"),
        case_insensitive=True,
    ),
    ProviderRoute(
        provider="fireworks",
        display_name="FireworksAI",
        prefixes=("fireworks-", "accounts/fireworks/"),
    ),
)


def _check_disjoint(routes: tuple[ProviderRoute, ...]) -> None:
    """Fail at import time if two providers claim overlapping prefixes."""
    seen: list[tuple[str, str]] = []
    for route in routes:
        for prefix in route.prefixes:
            key = prefix.lower()
            for other_provider, other in seen:
                if other_provider != route.provider and (
                    key.startswith(other) or other.startswith(key)
                ):
                    raise ValueError(
                        f"Prefix {prefix!r} of {route.provider!r} overlaps "
                        f"{other!r} of {other_provider!r}"
                    )
            seen.append((route.provider, key))


_check_disjoint(ROUTES)


def resolve_route(model_id: str, routes: tuple[ProviderRoute, ...] = ROUTES) -> ProviderRoute:
    """Return the route whose prefix set owns ``model_id``.

    Raises:
        RoutingError: If no provider owns the identifier.
    """
    for route in routes:
        if route.owns(model_id):
            return route
    known = ", ".join(p for r in routes for p in r.prefixes)
    raise RoutingError(
        f"Cannot route model {model_id!r}: no provider owns its prefix (known: {known})",
        model=model_id,
    )


def resolve_provider(model_id: str) -> str:
    """Shorthand returning only the provider name for ``model_id``."""
    return resolve_route(model_id).provider
