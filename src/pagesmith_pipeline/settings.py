"""Environment-driven pipeline configuration."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path

DEFAULT_MODEL = "claude-sonnet-4-5"
DEFAULT_MAX_TOKENS = 32000
DEFAULT_PAGES_DIR = ".pagesmith"


class BusyPolicy(StrEnum):
    """What to do when a document already has a transform in flight."""

    QUEUE = "queue"
    REJECT = "reject"


@dataclass(frozen=True)
class PipelineSettings:
    """Model choice, output limit, storage root, and exclusivity policy."""

    model: str = DEFAULT_MODEL
    max_tokens: int = DEFAULT_MAX_TOKENS
    pages_dir: Path = Path(DEFAULT_PAGES_DIR)
    busy_policy: BusyPolicy = BusyPolicy.QUEUE

    def __post_init__(self) -> None:
        if self.max_tokens <= 0:
            raise ValueError(f"max_tokens must be > 0, got {self.max_tokens}")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> PipelineSettings:
        env = os.environ if environ is None else environ
        return cls(
            model=env.get("PAGESMITH_MODEL") or DEFAULT_MODEL,
            max_tokens=int(env.get("PAGESMITH_MAX_TOKENS", DEFAULT_MAX_TOKENS)),
            pages_dir=Path(env.get("PAGESMITH_PAGES_DIR") or DEFAULT_PAGES_DIR),
            busy_policy=BusyPolicy(env.get("PAGESMITH_BUSY_POLICY", BusyPolicy.QUEUE).lower()),
        )
