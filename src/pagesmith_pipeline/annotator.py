"""Request-scoped element addressing.

``annotate`` assigns every element an index into a pre-order arena; the
index rendered as a decimal string is the element's node id. Ids exist
only for one transform: they are written into a rendering copy for the
prompt, never into the Document itself.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass

from bs4 import BeautifulSoup, Tag

from pagesmith_pipeline.document import PARSER, Document

NODE_ID_ATTR = "data-node-id"


@dataclass(frozen=True)
class AnnotatedDocument:
    """A Document plus its pre-order element arena."""

    document: Document
    nodes: tuple[Tag, ...]

    @property
    def node_ids(self) -> frozenset[str]:
        return frozenset(str(i) for i in range(len(self.nodes)))

    def __len__(self) -> int:
        return len(self.nodes)

    def __contains__(self, node_id: object) -> bool:
        index = self.index_of(node_id)
        return index is not None and index < len(self.nodes)

    def __iter__(self) -> Iterator[tuple[str, Tag]]:
        for index, node in enumerate(self.nodes):
            yield str(index), node

    @staticmethod
    def index_of(node_id: object) -> int | None:
        """Arena index for a node id, or None if it is not a well-formed id."""
        if not isinstance(node_id, str) or not node_id.isascii() or not node_id.isdigit():
            return None
        index = int(node_id)
        # "07" is not the id of node 7
        return index if str(index) == node_id else None

    def get(self, node_id: str) -> Tag:
        index = self.index_of(node_id)
        if index is None or index >= len(self.nodes):
            raise KeyError(node_id)
        return self.nodes[index]

    def parent_id(self, node_id: str) -> str | None:
        """Node id of the element's parent element, or None at top level."""
        parent = self.get(node_id).parent
        for index, node in enumerate(self.nodes):
            if node is parent:
                return str(index)
        return None

    def descendant_ids(self, node_id: str) -> set[str]:
        """Node ids of every element below ``node_id`` (excluding itself)."""
        target = self.get(node_id)
        inside = {id(n) for n in target.descendants if isinstance(n, Tag)}
        return {str(i) for i, node in enumerate(self.nodes) if id(node) in inside}

    def markup(self) -> str:
        """Render the document with each element's node id as an attribute."""
        rendered = BeautifulSoup(self.document.markup, PARSER)
        for index, node in enumerate(_elements(rendered)):
            node[NODE_ID_ATTR] = str(index)
        return str(rendered)


def _elements(soup: BeautifulSoup) -> list[Tag]:
    return [node for node in soup.descendants if isinstance(node, Tag)]


def annotate(document: Document) -> AnnotatedDocument:
    """Assign fresh node ids to every element of ``document`` in document order."""
    return AnnotatedDocument(document=document, nodes=tuple(document.elements()))


def remove_node_ids(tree: BeautifulSoup) -> None:
    """Delete every node id attribute in ``tree`` in place."""
    for node in tree.find_all(attrs={NODE_ID_ATTR: True}):
        del node[NODE_ID_ATTR]


def strip_node_ids(markup: str) -> str:
    """Remove every node id attribute from ``markup``."""
    soup = BeautifulSoup(markup, PARSER)
    remove_node_ids(soup)
    return str(soup)
