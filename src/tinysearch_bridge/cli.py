"""Command line entry point: check a deployment or run queries against it.

Examples:
    tinysearch-bridge --site-root public check
    tinysearch-bridge --site-root https://example.com --deployment published query rust wasm
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import Any

from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape

from tinysearch_bridge.config import DEPLOYMENT_BASE_PATHS, Settings
from tinysearch_bridge.errors import LoadError
from tinysearch_bridge.observability import configure_logging, configure_trace_exporter
from tinysearch_bridge.service_layer.bootstrap import SearchBootstrap


logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tinysearch-bridge",
        description="Load a precompiled search module and query it through its published global.",
    )
    parser.add_argument("--site-root", help="Directory or http(s) origin hosting the artifacts")
    parser.add_argument("--deployment", choices=sorted(DEPLOYMENT_BASE_PATHS), help="Deployment variant")
    parser.add_argument("--base-path", help="Explicit base path, overrides --deployment")
    parser.add_argument("--timeout", type=float, help="Load timeout in seconds")
    parser.add_argument("--log-level", help="Log level (debug, info, warning, error)")
    parser.add_argument("--json-logs", action=argparse.BooleanOptionalAction, default=None, help="Emit JSON logs")

    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("check", help="Load the module and print its status")
    query_parser = subparsers.add_parser("query", help="Run one or more queries")
    query_parser.add_argument("queries", nargs="+", help="Query strings")
    return parser


def settings_from_args(args: argparse.Namespace) -> Settings:
    overrides: dict[str, Any] = {
        "site_root": args.site_root,
        "deployment": args.deployment,
        "base_path": args.base_path,
        "load_timeout_seconds": args.timeout,
        "log_level": args.log_level,
        "log_json": args.json_logs,
    }
    return Settings(**{key: value for key, value in overrides.items() if value is not None})


async def _check(session: SearchBootstrap, console: Console) -> int:
    exit_code = 0
    try:
        await session.run()
    except LoadError:
        exit_code = 1
    console.print_json(data=session.status(), default=repr)
    return exit_code


async def _query(session: SearchBootstrap, queries: list[str], console: Console, namespace: dict[str, Any]) -> int:
    try:
        await session.run()
    except LoadError as error:
        console.print(f"[red]Search unavailable:[/red] {escape(str(error))}")
        return 1

    # Call through the published global, as a page script would
    search = namespace[session.identifier]
    for text in queries:
        results = search(text)
        console.rule(f"[bold]{escape(text)}[/bold]")
        console.print_json(data=list(results), default=repr)
    return 0


async def _run(args: argparse.Namespace, settings: Settings, console: Console) -> int:
    namespace: dict[str, Any] = {}
    logger.debug("Running %s against %s%s", args.command, settings.site_root, settings.get_base_path())
    async with SearchBootstrap(settings, namespace=namespace) as session:
        if args.command == "check":
            return await _check(session, console)
        return await _query(session, args.queries, console, namespace)


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    console = Console()

    try:
        settings = settings_from_args(args)
    except ValidationError as exc:
        console.print(f"[red]Invalid configuration:[/red]\n{escape(str(exc))}")
        return 2

    configure_logging(settings.log_level, json_output=settings.log_json)
    configure_trace_exporter(settings.observability)
    return asyncio.run(_run(args, settings, console))


if __name__ == "__main__":
    sys.exit(main())
