"""End-to-end transform tests with a scripted gateway and a memory store."""

from __future__ import annotations

import asyncio
import logging

import httpx
import pytest
import respx

from pagesmith_llm import Gateway, RetryPolicy
from pagesmith_llm.adapters.anthropic import AnthropicAdapter
from pagesmith_llm.adapters.base import ProviderConfig
from pagesmith_llm.errors import AuthenticationError, ServerError
from pagesmith_llm.types import Role
from pagesmith_pipeline import (
    CURRENT_SCHEMA_VERSION,
    Applied,
    BusyPolicy,
    CapabilitySnapshot,
    Diagnostic,
    Document,
    DocumentMetadata,
    DocumentNotFoundError,
    Failed,
    FailureKind,
    MigrationRegistry,
    PageMode,
    PipelineSettings,
    TransformOrchestrator,
    Turn,
    markup_rule,
)
from pagesmith_pipeline.prompts import EDIT_GOAL
from tests.helpers import PAGE, FakeGateway, MockAdapter, ops

RENAME_H1 = ops({"op": "updateContent", "nodeId": "7", "html": "Renamed"})


async def _until(condition, *, steps: int = 200) -> None:
    for _ in range(steps):
        if condition():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition never became true")


async def _markup(store, document_id: str = "home") -> str:
    return (await store.load(document_id)).document.markup


# ================================================================== #
# Success path
# ================================================================== #


class TestTransformApplied:
    @pytest.mark.asyncio
    async def test_applies_and_persists(self, store):
        orchestrator = TransformOrchestrator(FakeGateway(RENAME_H1), store)

        result = await orchestrator.transform("home", "rename the heading")

        assert isinstance(result, Applied)
        assert result.ok is True
        assert result.change_count == 1
        assert "<h1>Renamed</h1>" in result.document.markup
        stored = await store.load("home")
        assert stored.document == result.document
        assert stored.metadata == result.metadata

    @pytest.mark.asyncio
    async def test_last_modified_is_bumped(self, store, current_metadata):
        orchestrator = TransformOrchestrator(FakeGateway(RENAME_H1), store)

        result = await orchestrator.transform("home", "rename")

        assert result.metadata.last_modified != current_metadata.last_modified
        assert result.metadata.schema_version == CURRENT_SCHEMA_VERSION
        assert result.metadata.title == current_metadata.title

    @pytest.mark.asyncio
    async def test_request_carries_annotated_page_and_message(self, store):
        gateway = FakeGateway(RENAME_H1)
        orchestrator = TransformOrchestrator(gateway, store, max_tokens=4096)

        await orchestrator.transform("home", "rename the heading")

        request = gateway.requests[0]
        assert request.model == "claude-sonnet-4-5"
        assert request.max_tokens == 4096
        assert '<h1 data-node-id="7">Title</h1>' in request.system
        assert request.system.rstrip().endswith("rename the heading")
        assert request.messages[-1].content.startswith(EDIT_GOAL)

    @pytest.mark.asyncio
    async def test_prior_turns_precede_prompt(self, store):
        gateway = FakeGateway(RENAME_H1)
        orchestrator = TransformOrchestrator(gateway, store)
        turns = [Turn(Role.USER, "make a page"), Turn(Role.ASSISTANT, "made it")]

        await orchestrator.transform("home", "rename", prior_turns=turns)

        contents = [m.content for m in gateway.requests[0].messages]
        assert contents[:2] == ["make a page", "made it"]
        assert len(contents) == 3

    @pytest.mark.asyncio
    async def test_model_instructions_follow_provider(self, store):
        gateway = FakeGateway(RENAME_H1)
        orchestrator = TransformOrchestrator(gateway, store, model="fireworks-glm-5")

        await orchestrator.transform("home", "rename")

        assert "copy them exactly" in gateway.requests[0].messages[-1].content

    @pytest.mark.asyncio
    async def test_from_settings(self, store):
        gateway = FakeGateway(RENAME_H1)
        settings = PipelineSettings(model="gpt-5.2", max_tokens=100)
        orchestrator = TransformOrchestrator.from_settings(settings, gateway, store)

        await orchestrator.transform("home", "rename")

        assert gateway.requests[0].model == "gpt-5.2"
        assert gateway.requests[0].max_tokens == 100

    @pytest.mark.asyncio
    async def test_sync_capability_source(self, store):
        gateway = FakeGateway(RENAME_H1)
        orchestrator = TransformOrchestrator(
            gateway,
            store,
            capabilities=lambda: CapabilitySnapshot(route_hints="Use /api/data/todos"),
        )

        await orchestrator.transform("home", "rename")

        assert "<ROUTE_HINTS>\nUse /api/data/todos" in gateway.requests[0].system

    @pytest.mark.asyncio
    async def test_async_capability_source_is_read_per_transform(self, store):
        calls = 0

        async def capabilities() -> CapabilitySnapshot:
            nonlocal calls
            calls += 1
            return CapabilitySnapshot(scripts=(f"script-{calls}",))

        gateway = FakeGateway(RENAME_H1, RENAME_H1)
        orchestrator = TransformOrchestrator(gateway, store, capabilities=capabilities)

        await orchestrator.transform("home", "one")
        await orchestrator.transform("home", "two")

        assert "script-1" in gateway.requests[0].system
        assert "script-2" in gateway.requests[1].system

    @pytest.mark.asyncio
    async def test_success_is_logged(self, store, caplog):
        orchestrator = TransformOrchestrator(FakeGateway(RENAME_H1), store)

        with caplog.at_level(logging.INFO, logger="pagesmith_pipeline"):
            await orchestrator.transform("home", "rename")

        assert "Transformed 'home': 1 change(s)" in caplog.text


# ================================================================== #
# Failure paths
# ================================================================== #


class TestTransformFailed:
    @pytest.mark.asyncio
    async def test_unknown_node_leaves_document_unchanged(self, store):
        orchestrator = TransformOrchestrator(
            FakeGateway(ops({"op": "delete", "nodeId": "nonexistent"})), store
        )

        result = await orchestrator.transform("home", "delete it")

        assert isinstance(result, Failed)
        assert result.ok is False
        assert result.diagnostic.kind is FailureKind.VALIDATION
        assert result.diagnostic.detail == {"op_index": 0}
        assert result.document == Document.parse(PAGE)
        assert await _markup(store) == PAGE

    @pytest.mark.asyncio
    async def test_non_json_response_is_validation_failure(self, store):
        orchestrator = TransformOrchestrator(
            FakeGateway("<html>I rewrote the whole page</html>"), store
        )

        result = await orchestrator.transform("home", "hi")

        assert result.diagnostic.kind is FailureKind.VALIDATION
        assert "not a JSON change list" in result.diagnostic.reason
        assert result.diagnostic.detail == {}
        assert await _markup(store) == PAGE

    @pytest.mark.asyncio
    async def test_provider_error_carries_provider_details(self, store):
        error = ServerError("upstream down", provider="anthropic", status_code=503)
        orchestrator = TransformOrchestrator(FakeGateway(error), store)

        result = await orchestrator.transform("home", "hi")

        assert result.diagnostic.kind is FailureKind.PROVIDER
        assert result.diagnostic.reason == "upstream down"
        assert result.diagnostic.detail == {
            "provider": "anthropic",
            "status_code": 503,
            "retryable": True,
        }
        assert result.document == Document.parse(PAGE)
        assert await _markup(store) == PAGE

    @pytest.mark.asyncio
    async def test_non_retryable_provider_error(self, store):
        orchestrator = TransformOrchestrator(FakeGateway(AuthenticationError("bad key")), store)

        result = await orchestrator.transform("home", "hi")

        assert result.diagnostic.kind is FailureKind.PROVIDER
        assert result.diagnostic.detail == {"retryable": False}

    @pytest.mark.asyncio
    async def test_adapter_bug_is_a_provider_failure(self, store):
        gateway = Gateway(retry_policy=RetryPolicy(max_retries=0))
        gateway.register_adapter("anthropic", MockAdapter([AttributeError("'NoneType' .get")]))
        orchestrator = TransformOrchestrator(gateway, store)

        result = await orchestrator.transform("home", "hi")

        assert isinstance(result, Failed)
        assert result.diagnostic.kind is FailureKind.PROVIDER
        assert "AttributeError" in result.diagnostic.reason
        assert result.diagnostic.detail == {"provider": "anthropic", "retryable": False}
        assert await _markup(store) == PAGE

    @pytest.mark.asyncio
    @respx.mock
    async def test_null_usage_from_provider_still_applies(self, store):
        body = {"content": [{"type": "text", "text": RENAME_H1}], "usage": None}
        respx.post("https://api.anthropic.com/v1/messages").mock(
            return_value=httpx.Response(200, json=body)
        )
        gateway = Gateway(retry_policy=RetryPolicy(max_retries=0))
        gateway.register_adapter("anthropic", AnthropicAdapter(ProviderConfig(api_key="k")))
        orchestrator = TransformOrchestrator(gateway, store)

        result = await orchestrator.transform("home", "rename the heading")

        assert isinstance(result, Applied)
        assert result.change_count == 1
        assert "<h1>Renamed</h1>" in await _markup(store)
        await gateway.close()

    @pytest.mark.asyncio
    @respx.mock
    async def test_misshapen_provider_body_is_a_provider_failure(self, store):
        body = {"content": [{"type": "text", "text": RENAME_H1}], "usage": "lots"}
        respx.post("https://api.anthropic.com/v1/messages").mock(
            return_value=httpx.Response(200, json=body)
        )
        gateway = Gateway(retry_policy=RetryPolicy(max_retries=0))
        gateway.register_adapter("anthropic", AnthropicAdapter(ProviderConfig(api_key="k")))
        orchestrator = TransformOrchestrator(gateway, store)

        result = await orchestrator.transform("home", "rename the heading")

        assert result.diagnostic.kind is FailureKind.PROVIDER
        assert result.diagnostic.detail["retryable"] is False
        assert await _markup(store) == PAGE
        await gateway.close()

    @pytest.mark.asyncio
    async def test_unroutable_model_never_calls_gateway(self, store):
        gateway = FakeGateway(RENAME_H1)
        orchestrator = TransformOrchestrator(gateway, store, model="llama-3")

        result = await orchestrator.transform("home", "hi")

        assert result.diagnostic.kind is FailureKind.PROVIDER
        assert gateway.requests == []

    @pytest.mark.asyncio
    async def test_missing_document(self, store):
        gateway = FakeGateway(RENAME_H1)
        orchestrator = TransformOrchestrator(gateway, store)

        result = await orchestrator.transform("ghost", "hi")

        assert result.diagnostic.kind is FailureKind.NOT_FOUND
        assert result.document is None
        assert gateway.requests == []

    @pytest.mark.asyncio
    async def test_locked_document(self, store):
        store.put(
            "frozen",
            PAGE,
            DocumentMetadata(name="frozen", schema_version=2, mode=PageMode.LOCKED),
        )
        gateway = FakeGateway(RENAME_H1)
        orchestrator = TransformOrchestrator(gateway, store)

        result = await orchestrator.transform("frozen", "hi")

        assert result.diagnostic.kind is FailureKind.LOCKED
        assert result.document == Document.parse(PAGE)
        assert gateway.requests == []

    @pytest.mark.asyncio
    async def test_failure_is_logged_as_warning(self, store, caplog):
        orchestrator = TransformOrchestrator(FakeGateway("nope"), store)

        with caplog.at_level(logging.WARNING, logger="pagesmith_pipeline"):
            await orchestrator.transform("home", "hi")

        assert "Transform of 'home' failed (validation)" in caplog.text

    def test_diagnostic_to_dict(self):
        result = Failed(diagnostic=Diagnostic(FailureKind.BUSY, "busy", {"op_index": 1}))
        assert result.diagnostic.to_dict() == {
            "kind": "busy",
            "reason": "busy",
            "detail": {"op_index": 1},
        }


# ================================================================== #
# Migration during transform
# ================================================================== #


class TestTransformMigration:
    @pytest.mark.asyncio
    async def test_migrated_state_is_saved_with_successful_edit(self, store):
        store.put("old", "<p>x</p>", DocumentMetadata(name="old", schema_version=0))
        gateway = FakeGateway(ops({"op": "insert", "parentId": "0", "html": "<footer>f</footer>"}))
        orchestrator = TransformOrchestrator(gateway, store)

        result = await orchestrator.transform("old", "add a footer")

        assert isinstance(result, Applied)
        stored = await store.load("old")
        assert stored.metadata.schema_version == CURRENT_SCHEMA_VERSION
        assert stored.document.select_one("#chatForm") is not None
        assert stored.document.markup.endswith("<footer>f</footer></html>")

    @pytest.mark.asyncio
    async def test_migration_is_not_saved_when_edit_fails(self, store):
        store.put("old", "<p>x</p>", DocumentMetadata(name="old", schema_version=0))
        orchestrator = TransformOrchestrator(FakeGateway("not json"), store)

        result = await orchestrator.transform("old", "hi")

        assert result.diagnostic.kind is FailureKind.VALIDATION
        assert result.document.markup == "<p>x</p>"
        stored = await store.load("old")
        assert stored.document.markup == "<p>x</p>"
        assert stored.metadata.schema_version == 0

    @pytest.mark.asyncio
    async def test_migration_failure(self, store):
        def broken(document: Document) -> Document:
            raise RuntimeError("rule bug")

        registry = MigrationRegistry({0: markup_rule(broken)}, current_version=1)
        store.put("old", "<p>x</p>", DocumentMetadata(name="old", schema_version=0))
        gateway = FakeGateway(RENAME_H1)
        orchestrator = TransformOrchestrator(gateway, store, migrations=registry)

        result = await orchestrator.transform("old", "hi")

        assert result.diagnostic.kind is FailureKind.MIGRATION
        assert result.diagnostic.detail == {"from_version": 0}
        assert "rule bug" in result.diagnostic.reason
        assert gateway.requests == []

    @pytest.mark.asyncio
    async def test_document_from_newer_release(self, store):
        store.put("future", PAGE, DocumentMetadata(name="future", schema_version=99))
        orchestrator = TransformOrchestrator(FakeGateway(RENAME_H1), store)

        result = await orchestrator.transform("future", "hi")

        assert result.diagnostic.kind is FailureKind.MIGRATION
        assert result.diagnostic.detail == {"from_version": 99}


# ================================================================== #
# Per-document exclusivity
# ================================================================== #


class TestConcurrency:
    @pytest.mark.asyncio
    async def test_queue_serializes_same_document(self, store):
        gate = asyncio.Event()
        gateway = FakeGateway(
            ops({"op": "updateContent", "nodeId": "7", "html": "First"}),
            ops({"op": "updateContent", "nodeId": "7", "html": "Second"}),
            gate=gate,
        )
        orchestrator = TransformOrchestrator(gateway, store)

        first = asyncio.create_task(orchestrator.transform("home", "one"))
        await gateway.started.wait()
        second = asyncio.create_task(orchestrator.transform("home", "two"))
        for _ in range(10):
            await asyncio.sleep(0)

        assert len(gateway.requests) == 1
        assert orchestrator.is_busy("home")

        gate.set()
        results = await asyncio.gather(first, second)

        assert all(isinstance(r, Applied) for r in results)
        # The second transform saw the first one's result.
        assert '<h1 data-node-id="7">First</h1>' in gateway.requests[1].system
        assert "<h1>Second</h1>" in await _markup(store)
        assert not orchestrator.is_busy("home")
        assert orchestrator._locks == {}

    @pytest.mark.asyncio
    async def test_reject_policy_reports_busy(self, store):
        gate = asyncio.Event()
        gateway = FakeGateway(RENAME_H1, gate=gate)
        orchestrator = TransformOrchestrator(gateway, store, busy_policy=BusyPolicy.REJECT)

        first = asyncio.create_task(orchestrator.transform("home", "one"))
        await gateway.started.wait()

        busy = await orchestrator.transform("home", "two")

        assert busy.diagnostic.kind is FailureKind.BUSY
        assert len(gateway.requests) == 1

        gate.set()
        assert isinstance(await first, Applied)
        assert orchestrator._locks == {}

    @pytest.mark.asyncio
    async def test_different_documents_run_concurrently(self, store):
        store.put("other", PAGE, DocumentMetadata(name="other", schema_version=2))
        gate = asyncio.Event()
        gateway = FakeGateway(RENAME_H1, RENAME_H1, gate=gate)
        orchestrator = TransformOrchestrator(gateway, store, busy_policy=BusyPolicy.REJECT)

        tasks = [
            asyncio.create_task(orchestrator.transform("home", "one")),
            asyncio.create_task(orchestrator.transform("other", "two")),
        ]
        await _until(lambda: len(gateway.requests) == 2)

        assert orchestrator.is_busy("home") and orchestrator.is_busy("other")
        gate.set()
        results = await asyncio.gather(*tasks)
        assert all(isinstance(r, Applied) for r in results)

    @pytest.mark.asyncio
    async def test_cancellation_releases_lock_and_saves_nothing(self, store):
        gateway = FakeGateway(RENAME_H1, gate=asyncio.Event())
        orchestrator = TransformOrchestrator(gateway, store)

        task = asyncio.create_task(orchestrator.transform("home", "one"))
        await gateway.started.wait()
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert not orchestrator.is_busy("home")
        assert orchestrator._locks == {}
        assert await _markup(store) == PAGE


# ================================================================== #
# Direct edits
# ================================================================== #


class TestEdit:
    @pytest.mark.asyncio
    async def test_edit_saves_returned_pair(self, store):
        orchestrator = TransformOrchestrator(FakeGateway(), store)

        def rename(document: Document, metadata: DocumentMetadata):
            return document, metadata.model_copy(update={"title": "Renamed"})

        stored = await orchestrator.edit("home", rename)

        assert stored.metadata.title == "Renamed"
        assert (await store.load("home")).metadata.title == "Renamed"

    @pytest.mark.asyncio
    async def test_edit_accepts_coroutine_function(self, store):
        orchestrator = TransformOrchestrator(FakeGateway(), store)

        async def reset(document: Document, metadata: DocumentMetadata):
            return Document.parse("<p>reset</p>"), metadata

        await orchestrator.edit("home", reset)

        assert await _markup(store) == "<p>reset</p>"

    @pytest.mark.asyncio
    async def test_edit_missing_document_raises(self, store):
        orchestrator = TransformOrchestrator(FakeGateway(), store)
        with pytest.raises(DocumentNotFoundError):
            await orchestrator.edit("ghost", lambda d, m: (d, m))
        assert orchestrator._locks == {}

    @pytest.mark.asyncio
    async def test_load_reads_without_lock(self, store):
        orchestrator = TransformOrchestrator(FakeGateway(), store)
        stored = await orchestrator.load("home")
        assert stored.document.markup == PAGE
