"""
CLI entry point for Search Gateway MCP.

PURPOSE: Command-line interface for running the gateway and reading analytics.
AI CONTEXT: Main entry points for package execution.

USAGE:
    # Run HTTP gateway (default)
    python -m search_gateway_mcp

    # Or via CLI command (after install)
    search-gateway-mcp

    # Run with subcommands
    search-gateway-mcp serve --port 8080      # Start HTTP gateway
    search-gateway-mcp report                 # Print text report
    search-gateway-mcp report --json          # Print /analytics document
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import TYPE_CHECKING

from .config import Config

if TYPE_CHECKING:
    from .analytics import AnalyticsStore

PROG_NAME = "search-gateway-mcp"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_LEVELS = ("critical", "error", "warning", "info", "debug")

logger = logging.getLogger(__name__)


def configure_logging(level: str = "info") -> None:
    """Configure root logging for CLI runs."""
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)


def run_serve(host: str | None = None, port: int | None = None, log_level: str = "info") -> None:
    """
    Run the HTTP gateway.

    Blocks until the server is stopped. Analytics are flushed on shutdown.

    Args:
        host: Bind address. Default: HOST or 0.0.0.0
        port: TCP port. Default: PORT or 8080
        log_level: Log verbosity for the app and uvicorn.

    Example:
        >>> # From command line:
        >>> # search-gateway-mcp serve --port 3000
        >>> run_serve(port=3000)
    """
    from .web import run_server

    bind_host = host or Config.get_host()
    bind_port = port or Config.get_port()
    logger.info(f"Starting {Config.SERVER_NAME} at http://{bind_host}:{bind_port}")
    logger.info(f"MCP endpoint: http://{bind_host}:{bind_port}{Config.MCP_ENDPOINT}")
    logger.info(f"Analytics directory: {Config.get_analytics_dir()}")
    run_server(host=bind_host, port=bind_port, log_level=log_level)


def run_report(store: AnalyticsStore | None = None, as_json: bool = False) -> None:
    """
    Print the persisted analytics summary to stdout.

    Reads the snapshot file without starting the server, so it can run
    beside a live gateway (the figures are as of the last flush).

    Args:
        store: Optional AnalyticsStore for testability. Defaults to one on
            Config.get_analytics_dir().
        as_json: Print the /analytics JSON document instead of text.
    """
    from .analytics import AnalyticsStore as Store

    store = store or Store()
    store.load()
    summary = store.summarize()

    # Note: Using print() intentionally for stdout piping support
    if as_json:
        print(json.dumps(summary, indent=2))
    else:
        print(store.statistics.generate_summary_report(summary))


def build_parser() -> argparse.ArgumentParser:
    from .__version__ import __version__

    parser = argparse.ArgumentParser(
        prog=PROG_NAME,
        description=f"{Config.SERVER_NAME} - streamable HTTP gateway with usage analytics",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    serve_parser = subparsers.add_parser("serve", help="Run the HTTP gateway (default)")
    serve_parser.add_argument(
        "--host",
        default=None,
        help=f"Bind address (default: $HOST or {Config.DEFAULT_HOST})",
    )
    serve_parser.add_argument(
        "--port",
        type=int,
        default=None,
        help=f"Port number (default: $PORT or {Config.DEFAULT_PORT})",
    )
    serve_parser.add_argument(
        "--log-level",
        choices=LOG_LEVELS,
        default="info",
        help="Log verbosity (default: info)",
    )

    report_parser = subparsers.add_parser("report", help="Print analytics report to stdout")
    report_parser.add_argument(
        "--analytics-dir",
        default=None,
        help="Directory holding analytics.json (default: $ANALYTICS_DIR or /app/data)",
    )
    report_parser.add_argument(
        "--json",
        action="store_true",
        help="Print the /analytics JSON document",
    )

    return parser


def main(argv: list[str] | None = None) -> int:
    """
    Main CLI entry point for Search Gateway MCP.

    Subcommands:
    - serve [--host HOST] [--port PORT] [--log-level LEVEL]: Run gateway (default)
    - report [--analytics-dir DIR] [--json]: Print analytics summary

    Args:
        argv: Argument list. Default: sys.argv[1:]

    Returns:
        Exit code 0 for success.

    Raises:
        SystemExit: On --help or argument parsing errors.
    """
    args = build_parser().parse_args(argv)

    if args.command == "report":
        configure_logging("warning")
        store = None
        if args.analytics_dir:
            from .analytics import AnalyticsStore
            from .storage import AnalyticsStorage

            store = AnalyticsStore(AnalyticsStorage(storage_dir=args.analytics_dir))
        run_report(store=store, as_json=args.json)
    elif args.command == "serve":
        configure_logging(args.log_level)
        run_serve(host=args.host, port=args.port, log_level=args.log_level)
    else:
        # Default: serve with environment settings
        configure_logging()
        run_serve()

    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
