"""Error hierarchy for the page transformation pipeline.

Provider failures live in ``pagesmith_llm.errors``. The errors here are
raised by the in-memory stages and by the orchestrator's admission checks.
None of them is retried.
"""

from __future__ import annotations


class PipelineError(Exception):
    """Base error for all pipeline errors."""


class MigrationError(PipelineError):
    """A document could not be brought to the current schema version.

    This is a configuration-level failure: a missing or broken rule, not
    a problem with one user edit.
    """

    def __init__(self, message: str, *, from_version: int | None = None) -> None:
        super().__init__(message)
        self.from_version = from_version


class ValidationError(PipelineError):
    """The provider's operation batch is malformed or references unknown nodes.

    ``op_index`` is the zero-based position of the offending operation,
    or None when the batch as a whole could not be parsed.
    """

    def __init__(self, message: str, *, op_index: int | None = None) -> None:
        super().__init__(message)
        self.op_index = op_index


class ApplyError(PipelineError):
    """An operation could not be applied to the working copy.

    Indicates a batch that slipped past validation; reported to users
    the same way as a ValidationError.
    """

    def __init__(self, message: str, *, op_index: int | None = None) -> None:
        super().__init__(message)
        self.op_index = op_index


class DocumentNotFoundError(PipelineError):
    """No document is stored under the requested id."""

    def __init__(self, document_id: str) -> None:
        super().__init__(f"Document {document_id!r} not found")
        self.document_id = document_id


class DocumentBusyError(PipelineError):
    """Another transform is in flight for the same document."""

    def __init__(self, document_id: str) -> None:
        super().__init__(f"Document {document_id!r} already has a transform in progress")
        self.document_id = document_id


class DocumentLockedError(PipelineError):
    """The document's mode forbids generated edits."""

    def __init__(self, document_id: str) -> None:
        super().__init__(f"Document {document_id!r} is locked")
        self.document_id = document_id
