"""Operation Parser & Validator.

Turns the provider's raw text into an ``OperationBatch`` checked against
the AnnotatedDocument it was generated for. A batch is accepted whole or
rejected whole; nothing here touches the document.

Operations address nodes by their id in the pre-batch snapshot. An
operation may not target a node that an earlier operation of the same
batch removed (``delete``, ``update``, ``replace``) or whose content it
rewrote (descendants of an ``updateContent`` target).
"""

from __future__ import annotations

import json
import re
from collections.abc import Iterator
from dataclasses import dataclass
from enum import StrEnum
from typing import Annotated, Any, Literal

import pydantic
from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, TypeAdapter

from pagesmith_pipeline.annotator import AnnotatedDocument
from pagesmith_pipeline.errors import ValidationError
from pagesmith_pipeline.fragments import (
    RAW_TEXT_ELEMENTS,
    VOID_ELEMENTS,
    FragmentError,
    check_fragment,
)


def _coerce_node_id(value: Any) -> Any:
    # JSON numbers and strings denote the same arena index; booleans do not.
    if isinstance(value, bool):
        raise ValueError("node id must be a string or integer")
    if isinstance(value, int):
        return str(value)
    return value


NodeId = Annotated[str, BeforeValidator(_coerce_node_id)]


class InsertPosition(StrEnum):
    """Where an inserted fragment goes relative to the target element."""

    PREPEND = "prepend"
    APPEND = "append"
    BEFORE = "before"
    AFTER = "after"


class _Operation(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)

    @property
    def target_id(self) -> str:
        raise NotImplementedError


class UpdateOp(_Operation):
    """Replace the target element, tag included, with ``html``."""

    op: Literal["update"]
    node_id: NodeId = Field(alias="nodeId")
    html: str

    @property
    def target_id(self) -> str:
        return self.node_id


class ReplaceOp(_Operation):
    """Older name for ``update``; same effect."""

    op: Literal["replace"]
    node_id: NodeId = Field(alias="nodeId")
    html: str

    @property
    def target_id(self) -> str:
        return self.node_id


class UpdateContentOp(_Operation):
    """Replace the target's children, keeping the element and its attributes."""

    op: Literal["updateContent"]
    node_id: NodeId = Field(alias="nodeId")
    html: str

    @property
    def target_id(self) -> str:
        return self.node_id



class DeleteOp(_Operation):
    """Remove the target element and its subtree."""

    op: Literal["delete"]
    node_id: NodeId = Field(alias="nodeId")

    @property
    def target_id(self) -> str:
        return self.node_id


class InsertOp(_Operation):
    """Insert a fragment relative to the target element."""

    op: Literal["insert"]
    parent_id: NodeId = Field(alias="parentId")
    html: str
    position: InsertPosition = InsertPosition.APPEND

    @property
    def target_id(self) -> str:
        return self.parent_id


ChangeOperation = Annotated[
    UpdateOp | ReplaceOp | UpdateContentOp | DeleteOp | InsertOp, Field(discriminator="op")
]

_operation_adapter: TypeAdapter[ChangeOperation] = TypeAdapter(ChangeOperation)


@dataclass(frozen=True)
class OperationBatch:
    """Validated operations plus the node id set they were checked against."""

    operations: tuple[ChangeOperation, ...]
    node_ids: frozenset[str]

    def __len__(self) -> int:
        return len(self.operations)

    def __iter__(self) -> Iterator[ChangeOperation]:
        return iter(self.operations)


_INSIDE = frozenset({InsertPosition.PREPEND, InsertPosition.APPEND})


def fills_target(op: ChangeOperation) -> bool:
    """True if ``op`` puts content inside its target rather than around it."""
    return isinstance(op, UpdateContentOp) or (isinstance(op, InsertOp) and op.position in _INSIDE)


def writes_text(op: ChangeOperation, tag_name: str) -> bool:
    """True if ``op.html`` is literal text for a target named ``tag_name``.

    Content placed inside script, style, textarea or title is text. An
    ``update`` of such an element whose payload does not open with a tag
    rewrites its text too; a payload that does is markup for the whole
    element.
    """
    if tag_name not in RAW_TEXT_ELEMENTS:
        return False
    if fills_target(op):
        return True
    if isinstance(op, UpdateOp | ReplaceOp):
        return not op.html.lstrip().startswith("<")
    return False


# ------------------------------------------------------------------ #
# Parsing
# ------------------------------------------------------------------ #

_FENCE = re.compile(r"^\s*```[a-zA-Z]*\s*\n?(.*?)\n?```\s*$", re.DOTALL)
_ARRAY_SPAN = re.compile(r"\[[\s\S]*\]")


def parse_operations(raw_text: str) -> list[Any]:
    """Decode the provider's text into a JSON array.

    Tries strict JSON, then the body of a markdown code fence, then the
    outermost ``[...]`` span of the text.

    Raises:
        ValidationError: If no candidate decodes to a JSON array.
    """
    if not isinstance(raw_text, str) or not raw_text.strip():
        raise ValidationError("Provider returned an empty response")

    candidates = [raw_text.strip()]
    fenced = _FENCE.match(raw_text)
    if fenced:
        candidates.append(fenced.group(1).strip())
    span = _ARRAY_SPAN.search(raw_text)
    if span:
        candidates.append(span.group(0))

    decoded_non_array = False
    for candidate in candidates:
        try:
            parsed = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(parsed, list):
            return parsed
        decoded_non_array = True

    if decoded_non_array:
        raise ValidationError("Change list must be a JSON array")
    raise ValidationError(f"Response is not a JSON change list: {raw_text[:120]!r}")


# ------------------------------------------------------------------ #
# Validation
# ------------------------------------------------------------------ #


def _describe(exc: pydantic.ValidationError) -> str:
    first = exc.errors()[0]
    loc = ".".join(str(part) for part in first["loc"])
    return f"{loc}: {first['msg']}" if loc else first["msg"]


def _shape(raw_ops: list[Any]) -> list[ChangeOperation]:
    operations = []
    for index, item in enumerate(raw_ops):
        try:
            operations.append(_operation_adapter.validate_python(item))
        except pydantic.ValidationError as exc:
            raise ValidationError(
                f"Operation {index} is malformed ({_describe(exc)})", op_index=index
            ) from exc
    return operations


def _check_references(operations: list[ChangeOperation], annotated: AnnotatedDocument) -> None:
    invalidated: set[str] = set()
    for index, op in enumerate(operations):
        target = op.target_id
        if target not in annotated:
            raise ValidationError(
                f"Operation {index} references unknown node {target!r}", op_index=index
            )
        if target in invalidated:
            raise ValidationError(
                f"Operation {index} targets node {target!r}, which an earlier "
                "operation in this batch removed or rewrote",
                op_index=index,
            )
        tag_name = annotated.get(target).name
        if fills_target(op) and tag_name in VOID_ELEMENTS:
            raise ValidationError(
                f"Operation {index} puts content inside <{tag_name}>, which has none",
                op_index=index,
            )
        if isinstance(op, DeleteOp | UpdateOp | ReplaceOp):
            invalidated.add(target)
            invalidated |= annotated.descendant_ids(target)
        elif isinstance(op, UpdateContentOp):
            invalidated |= annotated.descendant_ids(target)


def _check_fragments(operations: list[ChangeOperation], annotated: AnnotatedDocument) -> None:
    for index, op in enumerate(operations):
        html = getattr(op, "html", None)
        if html is None or writes_text(op, annotated.get(op.target_id).name):
            continue
        try:
            check_fragment(html)
        except FragmentError as exc:
            raise ValidationError(
                f"Operation {index} has invalid html: {exc}", op_index=index
            ) from exc


def validate_batch(raw_ops: Any, annotated: AnnotatedDocument) -> OperationBatch:
    """Check a decoded change list against ``annotated``.

    Raises:
        ValidationError: On the first violation; ``op_index`` names the
            offending operation.
    """
    if not isinstance(raw_ops, list):
        raise ValidationError("Change list must be a JSON array")
    operations = _shape(raw_ops)
    _check_references(operations, annotated)
    _check_fragments(operations, annotated)
    return OperationBatch(operations=tuple(operations), node_ids=annotated.node_ids)


def parse_and_validate(raw_text: str, annotated: AnnotatedDocument) -> OperationBatch:
    return validate_batch(parse_operations(raw_text), annotated)
