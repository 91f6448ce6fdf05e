"""Command-line interface for the regulatory process engine."""

from __future__ import annotations

import argparse
import asyncio
import logging
from typing import Optional

from .bootstrap import initialise_service, load_workspace_state
from .config import Settings, get_settings
from .main import serve_http, serve_stdio
from .templates import load_templates


def _templates(settings: Settings, *, query: str | None, authority: str | None, limit: int) -> None:
    catalog = load_templates(settings.templates_path)
    if query:
        hits = catalog.search(query, limit=limit)
        print(f"Search '{query}': {len(hits)} result(s)")
        for score, template in hits:
            print(f"   - {template.id} [{score:.0f}]: {template.name} ({template.authority})")
        return

    templates = catalog.by_authority(authority) if authority else catalog.list()
    print(f"Templates: {len(templates)}")
    for template in templates:
        base_cost = template.base_cost if template.base_cost is not None else "-"
        print(
            f"   - {template.id}: {template.name} ({template.authority}), "
            f"{len(template.required_documents)} document(s), "
            f"{template.estimated_days} day(s), base cost {base_cost}"
        )


async def _reconcile_async(settings: Settings) -> None:
    state, store = load_workspace_state(settings)
    service = initialise_service(settings, state)
    gaps = service.reconciler.open_gaps()
    print(f"Procedures without price: {len(gaps)}")
    for notification in gaps:
        print(f"   - {notification.procedure_name} ({notification.authority})")
    unread = service.notifications.feed(unread_only=True, source="pricing")
    print(f"Unread pricing notifications: {len(unread)}")
    await asyncio.to_thread(store.save, service.snapshot())


def _status(settings: Settings) -> None:
    state, store = load_workspace_state(settings)
    if not store.path.exists():
        print(f"No workspace snapshot at {store.path}.")
        return
    print(f"Workspace: {store.path}")
    print(f"   Prices: {len(state.prices)}")
    print(f"   Budgets: {len(state.budgets)}")
    print(f"   Processes: {len(state.processes)}")
    counts: dict[str, int] = {}
    for process in state.processes:
        counts[process.status.value] = counts.get(process.status.value, 0) + 1
    for status, count in sorted(counts.items()):
        print(f"      {status}: {count}")
    unread = sum(1 for notification in state.notifications if not notification.read)
    print(f"   Notifications: {len(state.notifications)} ({unread} unread)")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="CLI helpers for the regulatory process engine",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    serve_parser = subparsers.add_parser("serve", help="Run the MCP server over stdio")
    serve_parser.add_argument(
        "--log-level",
        default="INFO",
        help="Logging level (DEBUG, INFO, WARNING, ERROR)",
    )

    http_parser = subparsers.add_parser(
        "serve-http", help="Run the MCP server over streamable HTTP"
    )
    http_parser.add_argument("--host", default="127.0.0.1", help="Host/IP to bind")
    http_parser.add_argument("--port", type=int, default=8000, help="Port to bind")
    http_parser.add_argument(
        "--log-level",
        default="INFO",
        help="Logging level (DEBUG, INFO, WARNING, ERROR)",
    )
    http_parser.add_argument(
        "--json-response",
        action="store_true",
        help="Return JSON responses instead of streaming",
    )

    templates_parser = subparsers.add_parser("templates", help="List or search procedure templates")
    templates_parser.add_argument("--search", dest="query", help="Fuzzy search query")
    templates_parser.add_argument("--authority", help="Limit to one authority")
    templates_parser.add_argument(
        "--limit",
        type=int,
        default=10,
        help="Maximum number of results for --search (default: 10)",
    )

    subparsers.add_parser(
        "reconcile", help="Reconcile templates against prices and store new notifications"
    )
    subparsers.add_parser("status", help="Display workspace snapshot information")

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    settings = get_settings()

    if args.command == "serve":
        logging.basicConfig(level=getattr(logging, args.log_level.upper(), logging.INFO))
        asyncio.run(serve_stdio(settings))
        return 0

    if args.command == "serve-http":
        logging.basicConfig(level=getattr(logging, args.log_level.upper(), logging.INFO))
        asyncio.run(
            serve_http(
                settings,
                host=args.host,
                port=args.port,
                log_level=args.log_level,
                json_response=args.json_response,
            )
        )
        return 0

    if args.command == "templates":
        _templates(settings, query=args.query, authority=args.authority, limit=args.limit)
        return 0

    if args.command == "reconcile":
        asyncio.run(_reconcile_async(settings))
        return 0

    if args.command == "status":
        _status(settings)
        return 0

    parser.print_help()
    return 1


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
