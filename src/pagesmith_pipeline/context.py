"""Context Composer: assemble the generation request for one transform.

The composer is pure. It takes an AnnotatedDocument, the user's message,
and a snapshot of the capabilities available at request time, and builds
a frozen ``GenerationContext``. ``render_payload`` turns that context
into the system text, user prompt, and prior history that the gateway
sends to a provider.
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from pagesmith_llm.types import CompletionRequest, Message, Role
from pagesmith_pipeline.annotator import AnnotatedDocument
from pagesmith_pipeline.prompts import EDIT_GOAL, SERVER_APIS, THEME_SHELL_CLASSES


@dataclass(frozen=True)
class ThemeInfo:
    """Opaque theme data: a light/dark mode and CSS color variables."""

    mode: str = "dark"
    colors: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class ConnectorHint:
    """An external API the generated page may call through the server proxy."""

    id: str
    name: str
    category: str = ""
    description: str = ""
    base_url: str = ""
    hints: str = ""


@dataclass(frozen=True)
class AgentSkill:
    id: str
    name: str
    description: str = ""
    tags: tuple[str, ...] = ()


@dataclass(frozen=True)
class AgentCapability:
    """A remote agent the generated page may delegate work to."""

    id: str
    name: str
    description: str = ""
    url: str = ""
    enabled: bool = True
    skills: tuple[AgentSkill, ...] = ()


@dataclass(frozen=True)
class Turn:
    """One prior conversational turn."""

    role: Role
    content: str

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Turn:
        return cls(role=Role(data["role"]), content=str(data["content"]))


@dataclass(frozen=True)
class CapabilitySnapshot:
    """Capabilities visible to the provider, captured once per transform."""

    theme: ThemeInfo | None = None
    connectors: tuple[ConnectorHint, ...] = ()
    agents: tuple[AgentCapability, ...] = ()
    scripts: tuple[str, ...] = ()
    route_hints: str = ""
    instructions: str = ""


@dataclass(frozen=True)
class GenerationContext:
    """Everything one generation request is built from. Never mutated."""

    annotated_markup: str
    message: str
    prior_turns: tuple[Turn, ...] = ()
    theme: ThemeInfo | None = None
    connectors: tuple[ConnectorHint, ...] = ()
    agents: tuple[AgentCapability, ...] = ()
    scripts: tuple[str, ...] = ()
    route_hints: str = ""
    instructions: str = ""
    model_instructions: str = ""


@dataclass(frozen=True)
class PromptPayload:
    """Rendered provider input."""

    system: str
    prompt: str
    history: tuple[Turn, ...] = ()

    def to_request(self, model: str, *, max_tokens: int | None = None) -> CompletionRequest:
        messages = [Message(role=t.role, content=t.content) for t in self.history]
        messages.append(Message.user(self.prompt))
        return CompletionRequest(
            model=model, messages=messages, system=self.system, max_tokens=max_tokens
        )


def compose_context(
    annotated: AnnotatedDocument,
    message: str,
    *,
    prior_turns: Iterable[Turn] = (),
    theme: ThemeInfo | None = None,
    connectors: Iterable[ConnectorHint] = (),
    agents: Iterable[AgentCapability] = (),
    scripts: Iterable[str] = (),
    route_hints: str = "",
    instructions: str = "",
    model_instructions: str = "",
) -> GenerationContext:
    """Bundle an annotated document and its request-time inputs.

    Only enabled agents are kept. Inputs are copied into tuples so the
    context cannot change after construction even if callers mutate the
    iterables they passed in.
    """
    return GenerationContext(
        annotated_markup=annotated.markup(),
        message=message,
        prior_turns=tuple(prior_turns),
        theme=theme,
        connectors=tuple(connectors),
        agents=tuple(a for a in agents if a.enabled),
        scripts=tuple(scripts),
        route_hints=route_hints,
        instructions=instructions,
        model_instructions=model_instructions,
    )


def compose_from_snapshot(
    annotated: AnnotatedDocument,
    message: str,
    snapshot: CapabilitySnapshot,
    *,
    prior_turns: Iterable[Turn] = (),
    model_instructions: str = "",
) -> GenerationContext:
    return compose_context(
        annotated,
        message,
        prior_turns=prior_turns,
        theme=snapshot.theme,
        connectors=snapshot.connectors,
        agents=snapshot.agents,
        scripts=snapshot.scripts,
        route_hints=snapshot.route_hints,
        instructions=snapshot.instructions,
        model_instructions=model_instructions,
    )


# ------------------------------------------------------------------ #
# Rendering
# ------------------------------------------------------------------ #


def _section(tag: str, body: str) -> str:
    return f"<{tag}>\n{body}"


def _render_theme(theme: ThemeInfo) -> str:
    lines = [f"Mode: {theme.mode}", "CSS custom properties (use var(--name) in styles):"]
    lines.extend(f"  --{name}: {value}" for name, value in theme.colors.items())
    lines.append("")
    lines.append(THEME_SHELL_CLASSES)
    return "\n".join(lines)


def _render_connectors(connectors: tuple[ConnectorHint, ...]) -> str:
    blocks = []
    for c in connectors:
        block = [f"{c.name} (id: {c.id}, category: {c.category or 'general'})"]
        if c.description:
            block.append(f"description: {c.description}")
        if c.base_url:
            block.append(f"base url: {c.base_url}")
        block.append(f"call through: POST /api/connectors/{c.id}")
        if c.hints:
            block.append(f"hints: {c.hints}")
        blocks.append("\n".join(block))
    return "\n\n".join(blocks)


def _render_agents(agents: tuple[AgentCapability, ...]) -> str:
    blocks = []
    for a in agents:
        block = [f"{a.name} (id: {a.id})"]
        if a.description:
            block.append(f"description: {a.description}")
        block.append(f"call through: POST /api/agents/{a.id}/send")
        for skill in a.skills:
            tags = f" [{', '.join(skill.tags)}]" if skill.tags else ""
            block.append(f"  skill {skill.name}: {skill.description}{tags}")
        blocks.append("\n".join(block))
    return "\n\n".join(blocks)


def render_system(context: GenerationContext) -> str:
    """System payload in fixed section order; optional sections are omitted when empty."""
    sections = [
        _section("CURRENT_PAGE", context.annotated_markup),
        _section("SERVER_APIS", SERVER_APIS),
    ]
    if context.scripts:
        sections.append(_section("SERVER_SCRIPTS", "\n".join(context.scripts)))
    if context.theme is not None:
        sections.append(_section("THEME", _render_theme(context.theme)))
    if context.connectors:
        sections.append(_section("CONNECTORS", _render_connectors(context.connectors)))
    if context.agents:
        sections.append(_section("AGENTS", _render_agents(context.agents)))
    if context.route_hints:
        sections.append(_section("ROUTE_HINTS", context.route_hints))
    sections.append(_section("USER_MESSAGE", context.message))
    return "\n\n".join(sections)


def render_prompt(context: GenerationContext) -> str:
    parts = [EDIT_GOAL]
    if context.instructions:
        parts.append(_section("INSTRUCTIONS", context.instructions))
    if context.model_instructions:
        parts.append(_section("MODEL_INSTRUCTIONS", context.model_instructions))
    return "\n\n".join(parts)


def render_payload(context: GenerationContext) -> PromptPayload:
    """Render a context into the provider-facing payload."""
    return PromptPayload(
        system=render_system(context),
        prompt=render_prompt(context),
        history=context.prior_turns,
    )


def payload_summary(payload: PromptPayload) -> str:
    """Short JSON description of a payload, for debug logs."""
    return json.dumps(
        {
            "system_chars": len(payload.system),
            "prompt_chars": len(payload.prompt),
            "history_turns": len(payload.history),
        }
    )
