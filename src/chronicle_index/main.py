#!/usr/bin/env python
"""Command line entry point for the Chronicle index."""
import argparse
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any, List, Optional

from chronicle_index import __version__
from chronicle_index.config import LOG_LEVELS, config
from chronicle_index.exceptions import ChronicleError
from chronicle_index.observability import configure_logging
from chronicle_index.vault import Vault


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="chronicle-index",
        description="Index and query a vault of Markdown notes",
    )
    parser.add_argument("--version", action="version", version=__version__)
    parser.add_argument(
        "--vault",
        help="Vault root directory",
        type=str,
        default=os.environ.get("CHRONICLE_VAULT_DIR"),
    )
    parser.add_argument(
        "--database-path",
        help="SQLite database file path (default: <vault>/.chronicle/chronicle.db)",
        type=str,
        default=os.environ.get("CHRONICLE_DATABASE_PATH"),
    )
    parser.add_argument(
        "--log-level",
        help="Logging level (default: CHRONICLE_LOG_LEVEL or WARNING)",
        choices=LOG_LEVELS,
        type=str.upper,
        default=None,
    )

    commands = parser.add_subparsers(dest="command", required=True)
    commands.add_parser("index", help="Index every note in the vault")

    search = commands.add_parser("search", help="Full-text search")
    search.add_argument("query")
    search.add_argument("--limit", type=int, default=None)

    backlinks = commands.add_parser("backlinks", help="Notes linking to PATH")
    backlinks.add_argument("path")

    outlinks = commands.add_parser("outlinks", help="Links written in PATH")
    outlinks.add_argument("path")

    commands.add_parser("tags", help="Tags in use, with note counts")
    commands.add_parser("health", help="Check store integrity")

    return parser.parse_args(argv)


def update_config(args: argparse.Namespace) -> None:
    """Update the global config with command line arguments."""
    if args.vault:
        config.vault_dir = Path(args.vault)
    if args.database_path:
        config.database_path = Path(args.database_path)
    if args.log_level:
        config.log_level = args.log_level


def _dump(value: Any) -> str:
    if isinstance(value, list):
        value = [item.model_dump() if hasattr(item, "model_dump") else item for item in value]
    elif hasattr(value, "model_dump"):
        value = value.model_dump()
    return json.dumps(value, indent=2, ensure_ascii=False)


def run_command(vault: Vault, args: argparse.Namespace) -> Any:
    """Execute one subcommand against an open vault and return its result."""
    if args.command == "index":
        return {"indexed": vault.full_index()}
    if args.command == "search":
        return vault.search(args.query, args.limit)
    if args.command == "backlinks":
        return vault.backlinks(args.path, with_context=True)
    if args.command == "outlinks":
        return vault.outlinks(args.path)
    if args.command == "tags":
        return vault.list_tags()
    if args.command == "health":
        return vault.check_health()
    raise ValueError(f"Unknown command: {args.command}")


def main(argv: Optional[List[str]] = None) -> int:
    """Run the Chronicle index CLI."""
    args = parse_args(argv)
    update_config(args)

    # Configure logging (console + persistent file logging with rotation)
    log_level = getattr(logging, config.log_level, logging.WARNING)
    try:
        configure_logging(log_dir=config.log_dir, level=log_level, console=True)
    except OSError as e:
        # Fall back to basic console logging if file logging fails
        logging.basicConfig(level=log_level)
        logging.getLogger(__name__).warning(f"Failed to configure file logging: {e}")

    logger = logging.getLogger(__name__)

    try:
        # An in-memory store starts empty, so it is filled before querying
        with Vault.open(
            config.vault_dir,
            index_on_open=config.in_memory_db and args.command != "index",
        ) as vault:
            result = run_command(vault, args)
    except ChronicleError as e:
        logger.error(f"{args.command} failed: {e}")
        print(json.dumps(e.to_dict(), indent=2), file=sys.stderr)
        return 1

    print(_dump(result))
    return 0


if __name__ == "__main__":
    sys.exit(main())
