"""Command-line interface for claudegate.

Provides the main entry point for running the HTTP gateway and for
inspecting the sessions the CLI has stored for the working directory.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="claudegate",
        description="HTTP/SSE gateway for the claude CLI",
    )
    parser.add_argument(
        "-c", "--config",
        type=Path,
        default=None,
        help="Path to YAML configuration file (default: config/claudegate.yaml)",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    serve_parser = subparsers.add_parser("serve", help="Start the HTTP gateway")
    serve_parser.add_argument(
        "--host", type=str, default=None,
        help="Interface to bind (overrides config)",
    )
    serve_parser.add_argument(
        "--port", type=int, default=None,
        help="Port to listen on (overrides config)",
    )

    subparsers.add_parser("sessions", help="List sessions of the working directory")

    return parser.parse_args(argv)


def _serve(settings, args) -> None:
    import uvicorn

    from claudegate.endpoint.server import create_app

    if args.host:
        settings.server.host = args.host
    if args.port:
        settings.server.port = args.port

    app = create_app(settings)
    uvicorn.run(
        app,
        host=settings.server.host,
        port=settings.server.port,
        log_config=None,
    )


def _list_sessions(settings) -> int:
    from claudegate.sessions.store import SessionStore, SessionStoreError

    store = SessionStore(settings.claude.claude_home)
    project = settings.claude.resolve_working_dir()
    try:
        listing = store.list_sessions(project)
    except SessionStoreError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(listing.model_dump_json(by_alias=True, indent=2))
    return 0


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the claudegate CLI."""
    args = parse_args(argv)

    if args.command is None:
        parse_args(["--help"])
        return

    from claudegate.config.settings import load_settings
    from claudegate.utils.logging import setup_logging

    settings = load_settings(args.config)

    if args.verbose:
        settings.logging.level = "DEBUG"

    setup_logging(settings.logging)

    if args.command == "serve":
        logger.info("Starting claudegate on %s:%s", args.host or settings.server.host,
                    args.port or settings.server.port)
        _serve(settings, args)

    elif args.command == "sessions":
        sys.exit(_list_sessions(settings))


if __name__ == "__main__":
    main()
