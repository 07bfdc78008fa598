"""Core data model for provider completion calls.

A completion is text in, text out: a system payload, an optional prior
conversation, and the user prompt. All types use Pydantic v2.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field, computed_field


class Role(StrEnum):
    """Conversation roles."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class Message(BaseModel):
    """A single text message in a conversation."""

    model_config = {"frozen": True}

    role: Role
    content: str

    @classmethod
    def user(cls, text: str) -> Message:
        return cls(role=Role.USER, content=text)

    @classmethod
    def assistant(cls, text: str) -> Message:
        return cls(role=Role.ASSISTANT, content=text)

    @classmethod
    def system(cls, text: str) -> Message:
        return cls(role=Role.SYSTEM, content=text)


class Usage(BaseModel):
    """Token usage reported by the provider."""

    input_tokens: int = 0
    output_tokens: int = 0

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


class CompletionRequest(BaseModel):
    """Provider-neutral completion request.

    ``messages`` holds prior turns followed by the current user prompt.
    ``system`` is sent through each provider's native system channel.
    """

    model: str
    messages: list[Message] = Field(default_factory=list)
    system: str | None = None
    max_tokens: int | None = None
    temperature: float | None = None

    @classmethod
    def simple(cls, model: str, prompt: str, **kwargs: Any) -> CompletionRequest:
        """Shorthand for a single-turn text request."""
        return cls(model=model, messages=[Message.user(prompt)], **kwargs)


class CompletionResponse(BaseModel):
    """Provider-neutral completion response."""

    id: str = ""
    model: str = ""
    provider: str = ""
    text: str = ""
    finish_reason: str = "stop"
    usage: Usage = Field(default_factory=Usage)
    raw: dict[str, Any] | None = None
    # Seconds from the first attempt to the answer, retries included.
    duration: float = 0.0
