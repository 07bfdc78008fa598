"""CLI entry point for PageSmith.

Usage:
    pagesmith transform home "add a todo list"            # Edit a stored page
    pagesmith transform home "..." --model gpt-5.2         # Specify model
    pagesmith migrate home                                 # Upgrade a page's schema
    pagesmith show home                                    # Print a page's markup
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
import time
from dataclasses import replace
from pathlib import Path

from pagesmith_pipeline.settings import PipelineSettings


def main() -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="pagesmith",
        description="Evolve HTML pages through natural-language edit requests",
    )
    parser.add_argument(
        "--pages-dir",
        type=str,
        default=None,
        help="Storage root. Default: $PAGESMITH_PAGES_DIR or .pagesmith",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    subparsers = parser.add_subparsers(dest="command")

    # --- transform command ---
    tr_parser = subparsers.add_parser("transform", help="Apply an edit request to a page")
    tr_parser.add_argument("page", type=str, help="Page name")
    tr_parser.add_argument("message", type=str, help="What to change")
    tr_parser.add_argument(
        "--model",
        type=str,
        default=None,
        help="Model ID. Default: $PAGESMITH_MODEL or claude-sonnet-4-5",
    )

    # --- migrate command ---
    mig_parser = subparsers.add_parser("migrate", help="Upgrade a page to the current schema")
    mig_parser.add_argument("page", type=str, help="Page name")

    # --- show command ---
    show_parser = subparsers.add_parser("show", help="Print a page's markup")
    show_parser.add_argument("page", type=str, help="Page name")

    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command == "transform":
        asyncio.run(_cmd_transform(args))
    elif args.command == "migrate":
        asyncio.run(_cmd_migrate(args))
    elif args.command == "show":
        asyncio.run(_cmd_show(args))


def _settings(args: argparse.Namespace) -> PipelineSettings:
    settings = PipelineSettings.from_env()
    if args.pages_dir:
        settings = replace(settings, pages_dir=Path(args.pages_dir))
    if getattr(args, "model", None):
        settings = replace(settings, model=args.model)
    return settings


async def _cmd_transform(args: argparse.Namespace) -> None:
    """Run one transform against the file store."""
    from pagesmith_llm import GatewaySettings, build_gateway
    from pagesmith_pipeline.orchestrator import Failed, TransformOrchestrator
    from pagesmith_pipeline.storage import FileDocumentStore

    settings = _settings(args)
    gateway_settings = GatewaySettings.from_env()
    if not gateway_settings.api_keys:
        print("Error: Set ANTHROPIC_API_KEY, OPENAI_API_KEY, or FIREWORKS_API_KEY")
        sys.exit(1)

    store = FileDocumentStore(settings.pages_dir)
    print(f"Page: {args.page} ({settings.pages_dir})")
    print(f"Model: {settings.model}")
    start_time = time.monotonic()

    async with build_gateway(gateway_settings) as gateway:
        orchestrator = TransformOrchestrator.from_settings(settings, gateway, store)
        result = await orchestrator.transform(args.page, args.message)

    duration = time.monotonic() - start_time
    print(f"Duration: {duration:.1f}s")

    if isinstance(result, Failed):
        print(f"Failed ({result.diagnostic.kind}): {result.diagnostic.reason}")
        sys.exit(1)
    print(f"Applied {result.change_count} change(s).")


async def _cmd_migrate(args: argparse.Namespace) -> None:
    """Bring a stored page to the current schema version and save it."""
    from pagesmith_pipeline.errors import DocumentNotFoundError, MigrationError
    from pagesmith_pipeline.migrations import migrate
    from pagesmith_pipeline.storage import FileDocumentStore

    settings = _settings(args)
    store = FileDocumentStore(settings.pages_dir)

    try:
        stored = await store.load(args.page)
    except DocumentNotFoundError as e:
        print(f"Error: {e}")
        sys.exit(1)

    before = stored.metadata.schema_version
    try:
        document, metadata = migrate(stored.document, stored.metadata)
    except MigrationError as e:
        print(f"Migration error: {e}")
        sys.exit(1)

    if metadata.schema_version == before:
        print(f"{args.page} is already at version {before}.")
        return
    await store.save(args.page, document, metadata.touched())
    print(f"{args.page}: version {before} -> {metadata.schema_version}")


async def _cmd_show(args: argparse.Namespace) -> None:
    from pagesmith_pipeline.errors import DocumentNotFoundError
    from pagesmith_pipeline.storage import FileDocumentStore

    store = FileDocumentStore(_settings(args).pages_dir)
    try:
        stored = await store.load(args.page)
    except DocumentNotFoundError as e:
        print(f"Error: {e}")
        sys.exit(1)
    print(stored.document.markup)


if __name__ == "__main__":
    main()
