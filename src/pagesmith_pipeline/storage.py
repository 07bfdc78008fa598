"""Keyed document storage.

The orchestrator only needs ``load`` and ``save``. Two stores ship with
the package: an in-memory store for tests and embedding, and a file store
with one directory per page::

    <root>/pages/<name>/page.html
    <root>/pages/<name>/page.json

Flat ``<root>/<name>.html`` files from before per-page directories are
still readable; they load as schema version 1 and are written back in the
directory layout on the next save.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol, runtime_checkable

from pagesmith_pipeline.document import Document, DocumentMetadata
from pagesmith_pipeline.errors import DocumentNotFoundError

logger = logging.getLogger(__name__)

LEGACY_SCHEMA_VERSION = 1

_VALID_ID = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]*$")


@dataclass(frozen=True)
class StoredDocument:
    """A document and its metadata as read from a store."""

    document: Document
    metadata: DocumentMetadata


@runtime_checkable
class DocumentStore(Protocol):
    """Durable keyed storage of a document plus its metadata."""

    async def load(self, document_id: str) -> StoredDocument:
        """Return the stored pair. Raises DocumentNotFoundError if absent."""
        ...

    async def save(
        self, document_id: str, document: Document, metadata: DocumentMetadata
    ) -> None:
        """Persist markup and metadata together."""
        ...


def is_valid_document_id(document_id: str) -> bool:
    return bool(_VALID_ID.match(document_id)) and ".." not in document_id


class MemoryDocumentStore:
    """Process-local store. Holds serialized markup, never live trees."""

    def __init__(self) -> None:
        self._pages: dict[str, tuple[str, DocumentMetadata]] = {}

    def put(self, document_id: str, markup: str, metadata: DocumentMetadata | None = None) -> None:
        """Seed a document synchronously."""
        self._pages[document_id] = (
            markup,
            metadata or DocumentMetadata(name=document_id, title=document_id),
        )

    def __contains__(self, document_id: object) -> bool:
        return document_id in self._pages

    async def load(self, document_id: str) -> StoredDocument:
        try:
            markup, metadata = self._pages[document_id]
        except KeyError:
            raise DocumentNotFoundError(document_id) from None
        return StoredDocument(Document.parse(markup), metadata)

    async def save(
        self, document_id: str, document: Document, metadata: DocumentMetadata
    ) -> None:
        self._pages[document_id] = (document.markup, metadata)


class FileDocumentStore:
    """Page directories under a root folder."""

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    def page_dir(self, document_id: str) -> Path:
        return self.root / "pages" / document_id

    def _legacy_path(self, document_id: str) -> Path:
        return self.root / f"{document_id}.html"

    def _load_sync(self, document_id: str) -> StoredDocument:
        if not is_valid_document_id(document_id):
            raise DocumentNotFoundError(document_id)

        html_path = self.page_dir(document_id) / "page.html"
        if html_path.is_file():
            markup = html_path.read_text(encoding="utf-8")
            meta_path = html_path.with_name("page.json")
            parsed: object = {}
            if meta_path.is_file():
                try:
                    parsed = json.loads(meta_path.read_text(encoding="utf-8"))
                except json.JSONDecodeError:
                    logger.warning("Ignoring unreadable metadata at %s", meta_path)
            if not isinstance(parsed, dict):
                parsed = {}
            metadata = DocumentMetadata.from_json_dict(parsed, name=document_id)
            return StoredDocument(Document.parse(markup), metadata)

        legacy = self._legacy_path(document_id)
        if legacy.is_file():
            markup = legacy.read_text(encoding="utf-8")
            metadata = DocumentMetadata(
                name=document_id, title=document_id, schema_version=LEGACY_SCHEMA_VERSION
            )
            return StoredDocument(Document.parse(markup), metadata)

        raise DocumentNotFoundError(document_id)

    def _save_sync(self, document_id: str, document: Document, metadata: DocumentMetadata) -> None:
        if not is_valid_document_id(document_id):
            raise ValueError(f"Invalid document id: {document_id!r}")
        page_dir = self.page_dir(document_id)
        page_dir.mkdir(parents=True, exist_ok=True)

        html_path = page_dir / "page.html"
        meta_path = page_dir / "page.json"
        html_tmp = html_path.with_suffix(".html.tmp")
        meta_tmp = meta_path.with_suffix(".json.tmp")
        html_tmp.write_text(document.markup, encoding="utf-8")
        meta_tmp.write_text(json.dumps(metadata.to_json_dict(), indent=2), encoding="utf-8")
        os.replace(html_tmp, html_path)
        os.replace(meta_tmp, meta_path)

    async def load(self, document_id: str) -> StoredDocument:
        return await asyncio.to_thread(self._load_sync, document_id)

    async def save(
        self, document_id: str, document: Document, metadata: DocumentMetadata
    ) -> None:
        await asyncio.to_thread(self._save_sync, document_id, document, metadata)
