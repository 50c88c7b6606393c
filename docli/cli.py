#!/usr/bin/env python3
"""docli - A terminal UI for document databases."""

from __future__ import annotations

import argparse
import logging
import sys

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="docli",
        description="A terminal UI for document databases",
    )
    parser.add_argument(
        "database_uri",
        nargs="?",
        metavar="DATABASE_URI",
        help="Connect on startup. Either a URI or !(<shell command>) that prints one.",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Write a debug log to the config directory",
    )
    parser.add_argument(
        "--disable-command-history",
        action="store_true",
        help="Do not load or save command history",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    """Entry point for the CLI."""
    args = build_parser().parse_args(argv)

    if not (sys.stdin.isatty() and sys.stdout.isatty()):
        print("docli needs an interactive terminal", file=sys.stderr)
        return 1

    # Import lazily to speed up --help
    from .config import RuntimeConfig, load_query_draft
    from .core.session import Session
    from .history import HistoryIndex
    from .logs import configure_logging

    config = RuntimeConfig.resolve(
        debug=args.debug,
        history_enabled=not args.disable_command_history,
    )
    configure_logging(config.debug, config.debug_log_path)

    history = HistoryIndex(config.history_path, enabled=config.history_enabled)
    history.load()
    session = Session(history=history, query_draft=load_query_draft(config.query_path))

    from .app import DocliApp

    app = DocliApp(config, session, initial_uri=args.database_uri)
    try:
        app.run()
    except Exception as e:
        logger.exception("Terminal failure")
        print(f"docli: could not start the terminal UI: {e}", file=sys.stderr)
        return 1
    return app.return_code or 0


if __name__ == "__main__":
    sys.exit(main())
