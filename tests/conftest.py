"""Shared fixtures for offline tests.

Every test runs without network access: provider calls go through
``tests.helpers`` fakes or respx mocks.
"""

from __future__ import annotations

import pytest

from pagesmith_pipeline import (
    CURRENT_SCHEMA_VERSION,
    Document,
    DocumentMetadata,
    MemoryDocumentStore,
    annotate,
)
from tests.helpers import PAGE

# ------------------------------------------------------------------ #
# Documents
# ------------------------------------------------------------------ #


@pytest.fixture
def page() -> Document:
    return Document.parse(PAGE)


@pytest.fixture
def annotated(page):
    return annotate(page)


@pytest.fixture
def current_metadata() -> DocumentMetadata:
    return DocumentMetadata(name="home", title="Home", schema_version=CURRENT_SCHEMA_VERSION)


# ------------------------------------------------------------------ #
# Storage
# ------------------------------------------------------------------ #


@pytest.fixture
def store(current_metadata) -> MemoryDocumentStore:
    """Memory store seeded with ``home`` at the current schema version."""
    s = MemoryDocumentStore()
    s.put("home", PAGE, current_metadata)
    return s
