# src/cli.py
from __future__ import annotations

import argparse
import json
import logging
import sys
from collections.abc import Sequence
from dataclasses import replace
from typing import Any

from src.config import load_settings
from src.exceptions import SearchValidationError
from src.search.engine import SearchEngine, build_engine
from src.search.suggestions import AUTOCOMPLETE_KINDS


def _emit(payload: Any) -> None:
    json.dump(payload, sys.stdout, indent=2, sort_keys=True)
    sys.stdout.write("\n")


def _search_payload(args: argparse.Namespace) -> dict[str, Any]:
    """
    Translate CLI flags into the request shape normalize_query() accepts.
    Only flags the user actually passed are included.
    """
    filters: dict[str, Any] = {}
    if args.department:
        filters["department"] = args.department
    if args.title:
        filters["title"] = args.title
    if args.skill:
        filters["skills"] = list(args.skill)
    if args.active is not None:
        filters["active"] = args.active

    options: dict[str, Any] = {}
    if args.include_inactive:
        options["include_inactive"] = True
    if args.fuzzy_threshold is not None:
        options["fuzzy_threshold"] = args.fuzzy_threshold

    payload: dict[str, Any] = {
        "query": args.query,
        "pagination": {"page": args.page, "page_size": args.page_size},
    }
    if filters:
        payload["filters"] = filters
    if options:
        payload["options"] = options
    return payload


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="directory-search",
        description="Employee directory search (ranked, tenant-scoped).",
    )
    parser.add_argument(
        "--db",
        dest="db_path",
        default=None,
        help="SQLite database path (default: DATABASE_PATH or data/directory.db).",
    )
    parser.add_argument(
        "--no-cache",
        action="store_true",
        help="Bypass the Redis response cache.",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable debug logging on stderr.",
    )

    subparsers = parser.add_subparsers(dest="command")

    search_parser = subparsers.add_parser("search", help="Run a ranked search.")
    search_parser.add_argument("--tenant", required=True, help="Tenant id.")
    search_parser.add_argument("--query", "-q", default="", help="Free-text query.")
    search_parser.add_argument("--page", type=int, default=1)
    search_parser.add_argument("--page-size", type=int, default=20)
    search_parser.add_argument("--department", default=None)
    search_parser.add_argument("--title", default=None)
    search_parser.add_argument(
        "--skill",
        action="append",
        default=None,
        help="Required skill; repeat for several (all must match).",
    )
    active_group = search_parser.add_mutually_exclusive_group()
    active_group.add_argument(
        "--active-only",
        dest="active",
        action="store_const",
        const=True,
        default=None,
        help="Only active employees (the default).",
    )
    active_group.add_argument(
        "--inactive-only",
        dest="active",
        action="store_const",
        const=False,
        help="Only inactive employees.",
    )
    search_parser.add_argument(
        "--include-inactive",
        action="store_true",
        help="Include inactive employees alongside active ones.",
    )
    search_parser.add_argument("--fuzzy-threshold", type=float, default=None)

    suggest_parser = subparsers.add_parser("suggest", help="Did-you-mean suggestions.")
    suggest_parser.add_argument("--tenant", required=True)
    suggest_parser.add_argument("--query", "-q", required=True)
    suggest_parser.add_argument("--limit", type=int, default=5)

    auto_parser = subparsers.add_parser("autocomplete", help="Prefix completions.")
    auto_parser.add_argument("--tenant", required=True)
    auto_parser.add_argument("--prefix", "-p", required=True)
    auto_parser.add_argument(
        "--type",
        dest="kind",
        choices=AUTOCOMPLETE_KINDS,
        default="all",
    )
    auto_parser.add_argument("--limit", type=int, default=5)

    inv_parser = subparsers.add_parser(
        "invalidate",
        help="Drop every cached search for one tenant.",
    )
    inv_parser.add_argument("--tenant", required=True)

    return parser


def _make_engine(args: argparse.Namespace) -> SearchEngine:
    settings = load_settings()
    overrides: dict[str, Any] = {}
    if args.db_path:
        overrides["database_path"] = args.db_path
    if args.no_cache:
        overrides["cache_enabled"] = False
    if overrides:
        settings = replace(settings, **overrides)
    return build_engine(settings)


def main(argv: Sequence[str] | None = None) -> int:
    """
    Entry point for the directory search CLI.

        python -m src.cli search --tenant acme --query "john smith"
        python -m src.cli search --tenant acme -q eng --department Engineering --skill python
        python -m src.cli suggest --tenant acme --query jhon
        python -m src.cli autocomplete --tenant acme --prefix jo --type names
        python -m src.cli invalidate --tenant acme
    """
    parser = _build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    if args.command is None:
        parser.print_help(file=sys.stderr)
        return 1

    if not logging.getLogger().handlers:
        logging.basicConfig(
            level=logging.DEBUG if args.verbose else logging.WARNING,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
            stream=sys.stderr,
        )

    engine = _make_engine(args)

    try:
        if args.command == "search":
            response = engine.search(args.tenant, _search_payload(args))
            _emit(response.to_dict())
        elif args.command == "suggest":
            _emit({"suggestions": engine.suggest(args.tenant, args.query, limit=args.limit)})
        elif args.command == "autocomplete":
            _emit(
                {
                    "suggestions": engine.autocomplete(
                        args.tenant,
                        args.prefix,
                        kind=args.kind,
                        limit=args.limit,
                    )
                }
            )
        elif args.command == "invalidate":
            _emit({"tenant": args.tenant, "invalidated": engine.invalidate_tenant(args.tenant)})
    except SearchValidationError as exc:
        json.dump({"error": exc.to_dict()}, sys.stderr)
        sys.stderr.write("\n")
        return 2

    return 0


__all__ = ["main"]


if __name__ == "__main__":
    raise SystemExit(main())
