"""PageSmith page transformation pipeline.

Turns natural-language edit requests into validated, all-or-nothing
edits of stored HTML documents.
"""

from pagesmith_pipeline.annotator import (
    NODE_ID_ATTR,
    AnnotatedDocument,
    annotate,
    strip_node_ids,
)
from pagesmith_pipeline.context import (
    AgentCapability,
    AgentSkill,
    CapabilitySnapshot,
    ConnectorHint,
    GenerationContext,
    PromptPayload,
    ThemeInfo,
    Turn,
    compose_context,
    compose_from_snapshot,
    render_payload,
)
from pagesmith_pipeline.document import Document, DocumentMetadata, PageMode
from pagesmith_pipeline.errors import (
    ApplyError,
    DocumentBusyError,
    DocumentLockedError,
    DocumentNotFoundError,
    MigrationError,
    PipelineError,
    ValidationError,
)
from pagesmith_pipeline.fragments import FragmentError, check_fragment
from pagesmith_pipeline.migrations import (
    CURRENT_SCHEMA_VERSION,
    DEFAULT_REGISTRY,
    MigrationRegistry,
    MigrationRule,
    markup_rule,
    migrate,
)
from pagesmith_pipeline.mutation import apply_batch
from pagesmith_pipeline.operations import (
    ChangeOperation,
    DeleteOp,
    InsertOp,
    InsertPosition,
    OperationBatch,
    ReplaceOp,
    UpdateContentOp,
    UpdateOp,
    parse_and_validate,
    parse_operations,
    validate_batch,
)
from pagesmith_pipeline.orchestrator import (
    Applied,
    Diagnostic,
    Failed,
    FailureKind,
    TransformOrchestrator,
    TransformResult,
)
from pagesmith_pipeline.prompts import model_instructions_for
from pagesmith_pipeline.settings import BusyPolicy, PipelineSettings
from pagesmith_pipeline.storage import (
    DocumentStore,
    FileDocumentStore,
    MemoryDocumentStore,
    StoredDocument,
)

__all__ = [
    # Documents
    "Document",
    "DocumentMetadata",
    "PageMode",
    # Annotation
    "NODE_ID_ATTR",
    "AnnotatedDocument",
    "annotate",
    "strip_node_ids",
    # Context
    "AgentCapability",
    "AgentSkill",
    "CapabilitySnapshot",
    "ConnectorHint",
    "GenerationContext",
    "PromptPayload",
    "ThemeInfo",
    "Turn",
    "compose_context",
    "compose_from_snapshot",
    "render_payload",
    "model_instructions_for",
    # Operations
    "ChangeOperation",
    "UpdateOp",
    "UpdateContentOp",
    "ReplaceOp",
    "DeleteOp",
    "InsertOp",
    "InsertPosition",
    "OperationBatch",
    "parse_operations",
    "validate_batch",
    "parse_and_validate",
    "FragmentError",
    "check_fragment",
    "apply_batch",
    # Migrations
    "CURRENT_SCHEMA_VERSION",
    "DEFAULT_REGISTRY",
    "MigrationRegistry",
    "MigrationRule",
    "markup_rule",
    "migrate",
    # Orchestration
    "TransformOrchestrator",
    "TransformResult",
    "Applied",
    "Failed",
    "Diagnostic",
    "FailureKind",
    "BusyPolicy",
    "PipelineSettings",
    # Storage
    "DocumentStore",
    "StoredDocument",
    "MemoryDocumentStore",
    "FileDocumentStore",
    # Errors
    "PipelineError",
    "ApplyError",
    "DocumentBusyError",
    "DocumentLockedError",
    "DocumentNotFoundError",
    "MigrationError",
    "ValidationError",
]
