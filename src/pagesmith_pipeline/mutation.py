"""Mutation Engine: apply a validated batch to a working copy.

The input AnnotatedDocument is never touched. ``apply_batch`` re-parses
its document into a fresh tree, indexes that tree in the same pre-order
so node ids line up, applies every operation in order, and returns the
result with all node id attributes removed.
"""

from __future__ import annotations

import logging

from bs4 import BeautifulSoup, NavigableString, PageElement, Tag

from pagesmith_pipeline.annotator import AnnotatedDocument, remove_node_ids
from pagesmith_pipeline.document import PARSER, Document
from pagesmith_pipeline.errors import ApplyError
from pagesmith_pipeline.operations import (
    ChangeOperation,
    DeleteOp,
    InsertOp,
    InsertPosition,
    OperationBatch,
    ReplaceOp,
    UpdateContentOp,
    UpdateOp,
    writes_text,
)

logger = logging.getLogger(__name__)


def _fragment_nodes(html: str) -> list[PageElement]:
    return list(BeautifulSoup(html, PARSER).contents)


def _is_attached(node: Tag, root: BeautifulSoup) -> bool:
    parent = node.parent
    while parent is not None:
        if parent is root:
            return True
        parent = parent.parent
    return False


def _insert(target: Tag, position: InsertPosition, nodes: list[PageElement]) -> None:
    if position is InsertPosition.APPEND:
        for node in nodes:
            target.append(node)
    elif position is InsertPosition.PREPEND:
        for offset, node in enumerate(nodes):
            target.insert(offset, node)
    elif position is InsertPosition.BEFORE:
        for node in nodes:
            target.insert_before(node)
    else:
        anchor: PageElement = target
        for node in nodes:
            anchor.insert_after(node)
            anchor = node


def _own_text(target: Tag) -> str:
    return "".join(str(child) for child in target.contents if isinstance(child, NavigableString))


def _write_text(op: ChangeOperation, target: Tag) -> None:
    if isinstance(op, InsertOp):
        current = _own_text(target)
        text = op.html + current if op.position is InsertPosition.PREPEND else current + op.html
    else:
        text = op.html
    target.string = text


def _apply_one(op: ChangeOperation, target: Tag) -> None:
    if writes_text(op, target.name):
        _write_text(op, target)
    elif isinstance(op, UpdateOp | ReplaceOp):
        _insert(target, InsertPosition.BEFORE, _fragment_nodes(op.html))
        target.extract()
    elif isinstance(op, UpdateContentOp):
        target.clear()
        _insert(target, InsertPosition.APPEND, _fragment_nodes(op.html))
    elif isinstance(op, DeleteOp):
        target.extract()
    elif isinstance(op, InsertOp):
        _insert(target, op.position, _fragment_nodes(op.html))
    else:  # pragma: no cover
        raise ApplyError(f"Unsupported operation {op!r}")


def apply_batch(annotated: AnnotatedDocument, batch: OperationBatch) -> Document:
    """Apply ``batch`` to a copy of ``annotated.document``.

    Raises:
        ApplyError: If the batch was validated against a different id set,
            or an operation's target is no longer part of the working tree.
    """
    if batch.node_ids != annotated.node_ids:
        raise ApplyError("Batch was validated against a different document")

    working = annotated.document.copy()
    nodes = working.elements()
    if len(nodes) != len(annotated):
        raise ApplyError(
            f"Working copy has {len(nodes)} elements, expected {len(annotated)}"
        )

    root = working.tree
    for index, op in enumerate(batch):
        position = AnnotatedDocument.index_of(op.target_id)
        if position is None or position >= len(nodes):
            raise ApplyError(f"Operation {index} has no target {op.target_id!r}", op_index=index)
        target = nodes[position]
        if not _is_attached(target, root):
            raise ApplyError(
                f"Operation {index} targets node {op.target_id!r}, which is no longer "
                "in the document",
                op_index=index,
            )
        _apply_one(op, target)
        logger.debug("Applied %s to node %s", op.op, op.target_id)

    remove_node_ids(root)
    return working
