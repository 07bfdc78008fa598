"""HTTP adapter for the transform pipeline.

A Starlette app exposing two routes:

    GET  /pages/{id}             -> stored markup and metadata
    POST /pages/{id}/transform   -> apply {"message", "history"?} to a page

Failed transforms are reported as ``{"error": {kind, reason, detail},
"html": <unchanged markup>}`` with a status code chosen by failure kind.
Diagnostics never end up inside the page itself.
"""

from __future__ import annotations

from typing import Any

from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

from pagesmith_llm.types import Role
from pagesmith_pipeline.context import Turn
from pagesmith_pipeline.errors import DocumentNotFoundError
from pagesmith_pipeline.orchestrator import Failed, FailureKind, TransformOrchestrator

STATUS_BY_KIND: dict[FailureKind, int] = {
    FailureKind.NOT_FOUND: 404,
    FailureKind.BUSY: 409,
    FailureKind.VALIDATION: 422,
    FailureKind.LOCKED: 423,
    FailureKind.MIGRATION: 500,
    FailureKind.PROVIDER: 502,
}


def _bad_request(reason: str) -> JSONResponse:
    return JSONResponse(
        {"error": {"kind": "bad_request", "reason": reason, "detail": {}}}, status_code=400
    )


def _parse_history(raw: Any) -> tuple[Turn, ...] | None:
    """Prior turns from the request body, or None if they are malformed."""
    if raw is None:
        return ()
    if not isinstance(raw, list):
        return None
    turns = []
    for item in raw:
        if not isinstance(item, dict) or not isinstance(item.get("content"), str):
            return None
        if item.get("role") not in (Role.USER, Role.ASSISTANT):
            return None
        turns.append(Turn(role=Role(item["role"]), content=item["content"]))
    return tuple(turns)


# ------------------------------------------------------------------ #
# Handlers
# ------------------------------------------------------------------ #


async def _handle_get_page(request: Request) -> JSONResponse:
    """Return a page's stored markup and metadata, or 404."""
    orchestrator: TransformOrchestrator = request.app.state.orchestrator
    page_id = request.path_params["id"]
    try:
        stored = await orchestrator.load(page_id)
    except DocumentNotFoundError as exc:
        return JSONResponse(
            {"error": {"kind": str(FailureKind.NOT_FOUND), "reason": str(exc), "detail": {}}},
            status_code=404,
        )
    return JSONResponse(
        {"html": stored.document.markup, "metadata": stored.metadata.to_json_dict()}
    )


async def _handle_transform(request: Request) -> JSONResponse:
    """Run one transform and report the outcome.

    Expects a JSON body with a non-empty ``message`` and an optional
    ``history`` list of ``{"role": "user"|"assistant", "content": str}``.
    """
    orchestrator: TransformOrchestrator = request.app.state.orchestrator
    page_id = request.path_params["id"]

    try:
        body = await request.json()
    except ValueError:
        return _bad_request("Request body must be JSON")
    if not isinstance(body, dict):
        return _bad_request("Request body must be a JSON object")

    message = body.get("message")
    if not isinstance(message, str) or not message.strip():
        return _bad_request("'message' must be a non-empty string")
    history = _parse_history(body.get("history"))
    if history is None:
        return _bad_request("'history' must be a list of {role, content} turns")

    result = await orchestrator.transform(page_id, message, history)
    if isinstance(result, Failed):
        html = result.document.markup if result.document is not None else None
        return JSONResponse(
            {"error": result.diagnostic.to_dict(), "html": html},
            status_code=STATUS_BY_KIND[result.diagnostic.kind],
        )
    return JSONResponse(
        {
            "html": result.document.markup,
            "changeCount": result.change_count,
            "metadata": result.metadata.to_json_dict(),
        }
    )


# ------------------------------------------------------------------ #
# App factory
# ------------------------------------------------------------------ #

routes = [
    Route("/pages/{id}", _handle_get_page, methods=["GET"]),
    Route("/pages/{id}/transform", _handle_transform, methods=["POST"]),
]


def create_app(orchestrator: TransformOrchestrator) -> Starlette:
    """Build the ASGI app around an orchestrator."""
    app = Starlette(routes=routes)
    app.state.orchestrator = orchestrator
    return app
