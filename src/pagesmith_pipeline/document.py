"""Document and metadata model.

A Document is an ordered HTML tree held in a BeautifulSoup object built
with the stdlib ``html.parser`` backend, which keeps the markup's own
structure (no implied ``html``/``head``/``body``). Between transforms a
document lives as serialized markup; ``Document.parse`` and
``Document.markup`` convert between the two.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from bs4 import BeautifulSoup, Tag
from pydantic import BaseModel, ConfigDict, Field, field_serializer

PARSER = "html.parser"


class Document:
    """An HTML document tree."""

    def __init__(self, soup: BeautifulSoup) -> None:
        self._soup = soup

    @classmethod
    def parse(cls, markup: str) -> Document:
        if not isinstance(markup, str):
            raise TypeError(f"Document markup must be str, got {type(markup).__name__}")
        return cls(BeautifulSoup(markup.replace("\ufeff", ""), PARSER))

    @property
    def tree(self) -> BeautifulSoup:
        """The underlying tree. Callers that mutate it must own this Document."""
        return self._soup

    @property
    def markup(self) -> str:
        return str(self._soup)

    def copy(self) -> Document:
        """Independent deep copy with the same structure and element order."""
        return Document.parse(self.markup)

    def elements(self) -> list[Tag]:
        """All elements in pre-order (document order)."""
        return [node for node in self._soup.descendants if isinstance(node, Tag)]

    def select_one(self, selector: str) -> Tag | None:
        return self._soup.select_one(selector)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Document):
            return NotImplemented
        return self.markup == other.markup

    def __hash__(self) -> int:
        return hash(self.markup)

    def __repr__(self) -> str:
        preview = self.markup[:60].replace("\n", " ")
        return f"Document({preview!r}{'...' if len(self.markup) > 60 else ''})"


class PageMode(StrEnum):
    """Whether generated edits are allowed."""

    UNLOCKED = "unlocked"
    LOCKED = "locked"


def utc_now() -> str:
    """Current time as an ISO 8601 string, the format used for timestamps."""
    return datetime.now(UTC).isoformat()


class DocumentMetadata(BaseModel):
    """Descriptive metadata stored alongside a document.

    Field aliases match the keys of the stored ``page.json`` file.
    ``schema_version`` must always describe the stored markup; code that
    changes one changes the other in the same save.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    name: str = ""
    title: str = ""
    categories: frozenset[str] = frozenset()
    pinned: bool = False
    show_in_all: bool = Field(default=True, alias="showInAll")
    created_at: str = Field(default="", alias="createdDate")
    last_modified: str = Field(default="", alias="lastModified")
    schema_version: int = Field(default=0, alias="pageVersion", ge=0)
    mode: PageMode = PageMode.UNLOCKED

    @field_serializer("categories")
    def _serialize_categories(self, categories: frozenset[str]) -> list[str]:
        return sorted(categories)

    @classmethod
    def from_json_dict(cls, parsed: dict[str, Any], *, name: str = "") -> DocumentMetadata:
        """Build metadata from a stored dict, tolerating missing or ill-typed keys.

        Each key falls back to its default unless it has the right JSON type.
        ``uxVersion`` is accepted as a legacy spelling of ``pageVersion``.
        """

        def _typed(key: str, kind: type | tuple[type, ...], default: Any) -> Any:
            value = parsed.get(key)
            if isinstance(value, bool) and kind is not bool:
                return default
            return value if isinstance(value, kind) else default

        version = _typed("pageVersion", int, None)
        if version is None:
            version = _typed("uxVersion", int, 0)
        categories = parsed.get("categories")
        if not isinstance(categories, list):
            categories = []
        return cls(
            name=name,
            title=_typed("title", str, ""),
            categories=frozenset(c for c in categories if isinstance(c, str)),
            pinned=_typed("pinned", bool, False),
            show_in_all=_typed("showInAll", bool, True),
            created_at=_typed("createdDate", str, ""),
            last_modified=_typed("lastModified", str, ""),
            schema_version=max(version, 0),
            mode=PageMode.LOCKED if parsed.get("mode") == "locked" else PageMode.UNLOCKED,
        )

    def to_json_dict(self) -> dict[str, Any]:
        """Dict in stored ``page.json`` layout (the name is the storage key, not a field)."""
        return self.model_dump(mode="json", by_alias=True, exclude={"name"})

    def touched(self, when: str | None = None) -> DocumentMetadata:
        """Copy with ``last_modified`` bumped."""
        return self.model_copy(update={"last_modified": when or utc_now()})
