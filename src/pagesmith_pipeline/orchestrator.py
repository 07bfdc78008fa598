"""Transform Orchestrator: one user edit request, end to end.

For a document id and a message, the orchestrator runs

    load -> migrate -> annotate -> compose -> provider -> parse/validate
         -> apply -> save

while holding that document's lock. Every expected failure becomes a
``Failed`` result carrying a structured ``Diagnostic`` and the document
as it was stored; nothing is persisted unless the whole sequence
succeeds. A migrated document is saved only together with a successful
edit.

Transforms on different documents run concurrently. Transforms on the
same document are serialized (``BusyPolicy.QUEUE``) or refused while one
is in flight (``BusyPolicy.REJECT``).
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from collections.abc import AsyncIterator, Awaitable, Callable, Iterable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Protocol

from pagesmith_llm.errors import SDKError
from pagesmith_llm.routing import resolve_provider
from pagesmith_llm.types import CompletionRequest
from pagesmith_pipeline.annotator import annotate
from pagesmith_pipeline.context import (
    CapabilitySnapshot,
    Turn,
    compose_from_snapshot,
    payload_summary,
    render_payload,
)
from pagesmith_pipeline.document import Document, DocumentMetadata, PageMode
from pagesmith_pipeline.errors import (
    ApplyError,
    DocumentBusyError,
    DocumentLockedError,
    DocumentNotFoundError,
    MigrationError,
    ValidationError,
)
from pagesmith_pipeline.migrations import MigrationRegistry, migrate
from pagesmith_pipeline.mutation import apply_batch
from pagesmith_pipeline.operations import parse_and_validate
from pagesmith_pipeline.prompts import model_instructions_for
from pagesmith_pipeline.settings import (
    DEFAULT_MAX_TOKENS,
    DEFAULT_MODEL,
    BusyPolicy,
    PipelineSettings,
)
from pagesmith_pipeline.storage import DocumentStore, StoredDocument

logger = logging.getLogger(__name__)


class CompletionGateway(Protocol):
    """The one gateway capability the orchestrator depends on."""

    async def complete(self, request: CompletionRequest) -> str: ...


CapabilitySource = Callable[[], CapabilitySnapshot | Awaitable[CapabilitySnapshot]]
EditFn = Callable[
    [Document, DocumentMetadata],
    tuple[Document, DocumentMetadata] | Awaitable[tuple[Document, DocumentMetadata]],
]


# ------------------------------------------------------------------ #
# Results
# ------------------------------------------------------------------ #


class FailureKind(StrEnum):
    """Why a transform produced no new document."""

    PROVIDER = "provider"
    VALIDATION = "validation"
    MIGRATION = "migration"
    BUSY = "busy"
    NOT_FOUND = "not_found"
    LOCKED = "locked"


@dataclass(frozen=True)
class Diagnostic:
    """Structured failure data for the presentation layer."""

    kind: FailureKind
    reason: str
    detail: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"kind": str(self.kind), "reason": self.reason, "detail": dict(self.detail)}


@dataclass(frozen=True)
class Applied:
    """The batch was applied and the new state persisted."""

    document: Document
    metadata: DocumentMetadata
    change_count: int

    ok = True


@dataclass(frozen=True)
class Failed:
    """Nothing was persisted. ``document`` is the stored document, if any."""

    diagnostic: Diagnostic
    document: Document | None = None

    ok = False


TransformResult = Applied | Failed


@dataclass
class _LockEntry:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0


# ------------------------------------------------------------------ #
# Orchestrator
# ------------------------------------------------------------------ #


class TransformOrchestrator:
    """Runs transforms against a store, one at a time per document.

    Usage::

        orchestrator = TransformOrchestrator(gateway, FileDocumentStore("pages"))
        result = await orchestrator.transform("home", "add a todo list")
        if isinstance(result, Failed):
            print(result.diagnostic.reason)
    """

    def __init__(
        self,
        gateway: CompletionGateway,
        store: DocumentStore,
        *,
        model: str = DEFAULT_MODEL,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        capabilities: CapabilitySource | None = None,
        migrations: MigrationRegistry | None = None,
        busy_policy: BusyPolicy = BusyPolicy.QUEUE,
    ) -> None:
        self._gateway = gateway
        self._store = store
        self._model = model
        self._max_tokens = max_tokens
        self._capabilities = capabilities
        self._migrations = migrations
        self._busy_policy = BusyPolicy(busy_policy)
        self._locks: dict[str, _LockEntry] = {}

    @classmethod
    def from_settings(
        cls,
        settings: PipelineSettings,
        gateway: CompletionGateway,
        store: DocumentStore,
        *,
        capabilities: CapabilitySource | None = None,
    ) -> TransformOrchestrator:
        return cls(
            gateway,
            store,
            model=settings.model,
            max_tokens=settings.max_tokens,
            capabilities=capabilities,
            busy_policy=settings.busy_policy,
        )

    @property
    def store(self) -> DocumentStore:
        return self._store

    def is_busy(self, document_id: str) -> bool:
        entry = self._locks.get(document_id)
        return entry is not None and entry.lock.locked()

    @asynccontextmanager
    async def _exclusive(self, document_id: str) -> AsyncIterator[None]:
        entry = self._locks.get(document_id)
        if entry is None:
            entry = self._locks[document_id] = _LockEntry()
        if self._busy_policy is BusyPolicy.REJECT and entry.lock.locked():
            raise DocumentBusyError(document_id)
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0:
                del self._locks[document_id]

    async def _snapshot(self) -> CapabilitySnapshot:
        if self._capabilities is None:
            return CapabilitySnapshot()
        snapshot = self._capabilities()
        if inspect.isawaitable(snapshot):
            snapshot = await snapshot
        return snapshot

    async def transform(
        self,
        document_id: str,
        message: str,
        prior_turns: Iterable[Turn] | None = None,
    ) -> TransformResult:
        """Apply one natural-language edit request to a stored document.

        Returns ``Applied`` with the persisted document, or ``Failed`` with
        a diagnostic and the unchanged stored document. Cancellation
        propagates after the document lock is released; nothing is saved.
        """
        try:
            async with self._exclusive(document_id):
                return await self._transform_exclusive(
                    document_id, message, tuple(prior_turns or ())
                )
        except DocumentBusyError as exc:
            return self._fail(document_id, FailureKind.BUSY, str(exc))

    async def _transform_exclusive(
        self, document_id: str, message: str, prior_turns: tuple[Turn, ...]
    ) -> TransformResult:
        started = time.monotonic()
        try:
            stored = await self._store.load(document_id)
        except DocumentNotFoundError as exc:
            return self._fail(document_id, FailureKind.NOT_FOUND, str(exc))
        original = stored.document

        try:
            document, metadata = migrate(stored.document, stored.metadata, self._migrations)
        except MigrationError as exc:
            return self._fail(
                document_id,
                FailureKind.MIGRATION,
                str(exc),
                original,
                from_version=exc.from_version,
            )

        if metadata.mode is PageMode.LOCKED:
            return self._fail(
                document_id, FailureKind.LOCKED, str(DocumentLockedError(document_id)), original
            )

        annotated = annotate(document)
        try:
            instructions = model_instructions_for(resolve_provider(self._model))
            context = compose_from_snapshot(
                annotated,
                message,
                await self._snapshot(),
                prior_turns=prior_turns,
                model_instructions=instructions,
            )
            payload = render_payload(context)
            logger.debug("Transform payload for %r: %s", document_id, payload_summary(payload))
            raw = await self._gateway.complete(
                payload.to_request(self._model, max_tokens=self._max_tokens)
            )
            batch = parse_and_validate(raw, annotated)
            updated = apply_batch(annotated, batch)
        except SDKError as exc:
            return self._fail(
                document_id,
                FailureKind.PROVIDER,
                str(exc),
                original,
                provider=exc.provider,
                status_code=exc.status_code,
                retryable=exc.retryable,
            )
        except (ValidationError, ApplyError) as exc:
            return self._fail(
                document_id, FailureKind.VALIDATION, str(exc), original, op_index=exc.op_index
            )

        new_metadata = metadata.touched()
        await self._store.save(document_id, updated, new_metadata)
        logger.info(
            "Transformed %r: %d change(s) with %s in %.0fms",
            document_id,
            len(batch),
            self._model,
            (time.monotonic() - started) * 1000,
        )
        return Applied(document=updated, metadata=new_metadata, change_count=len(batch))

    def _fail(
        self,
        document_id: str,
        kind: FailureKind,
        reason: str,
        document: Document | None = None,
        **detail: Any,
    ) -> Failed:
        logger.warning("Transform of %r failed (%s): %s", document_id, kind, reason)
        detail = {k: v for k, v in detail.items() if v is not None}
        return Failed(diagnostic=Diagnostic(kind, reason, detail), document=document)

    async def load(self, document_id: str) -> StoredDocument:
        """Read a document without taking its lock."""
        return await self._store.load(document_id)

    async def edit(self, document_id: str, fn: EditFn) -> StoredDocument:
        """Direct write under the document lock.

        ``fn`` receives the stored document and metadata and returns the
        pair to save. It may be a coroutine function.

        Raises:
            DocumentNotFoundError: If nothing is stored under ``document_id``.
            DocumentBusyError: Under ``BusyPolicy.REJECT`` while a transform
                is in flight.
        """
        async with self._exclusive(document_id):
            stored = await self._store.load(document_id)
            result = fn(stored.document.copy(), stored.metadata)
            if inspect.isawaitable(result):
                result = await result
            document, metadata = result
            await self._store.save(document_id, document, metadata)
            return StoredDocument(document, metadata)
