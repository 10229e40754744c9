#!/usr/bin/env python3
"""Command-line interface for gpsd-stream.

This module provides the `gpsd-stream` CLI with subcommands for
streaming reports and issuing one-off requests.

Usage:
    gpsd-stream watch [options]    # Stream reports
    gpsd-stream version [options]  # Print the daemon's VERSION reply
    gpsd-stream poll [options]     # Print the daemon's POLL reply

Examples:
    # Stream position fixes from the local daemon
    gpsd-stream watch

    # Fixes and sky views as JSON lines
    gpsd-stream watch --class TPV --class SKY --format json | jq .

    # Forward fixes to a webhook
    gpsd-stream watch --webhook http://localhost:8080/gps
"""

import argparse
import logging
import signal
import sys
import threading
from typing import List, Optional

from .connection import DEFAULT_ADDRESS, DIAL_TIMEOUT
from .errors import ConnectFailed
from .formatters import get_formatter
from .reports import REPORT_TYPES, Report

logger = logging.getLogger(__name__)


def create_parser() -> argparse.ArgumentParser:
    """Create the main argument parser with subcommands."""
    parser = argparse.ArgumentParser(
        prog="gpsd-stream",
        description="Stream reports from a gpsd daemon",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  gpsd-stream watch                          Stream TPV fixes
  gpsd-stream watch -c TPV -c SKY            Stream fixes and sky views
  gpsd-stream watch --format json            Output as JSON lines
  gpsd-stream version --address gps:2947     Query a remote daemon
        """,
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (-v for info, -vv for debug)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    watch_parser = subparsers.add_parser(
        "watch",
        help="Stream reports until interrupted",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    _add_connection_arguments(watch_parser)
    _add_watch_arguments(watch_parser)

    version_parser = subparsers.add_parser(
        "version",
        help="Send ?VERSION; and print the reply",
    )
    _add_connection_arguments(version_parser)

    poll_parser = subparsers.add_parser(
        "poll",
        help="Send ?POLL; and print the reply",
    )
    _add_connection_arguments(poll_parser)

    return parser


def _add_connection_arguments(parser: argparse.ArgumentParser) -> None:
    """Add the daemon address options shared by all subcommands."""
    group = parser.add_argument_group("connection")
    group.add_argument(
        "--address",
        "-a",
        default=DEFAULT_ADDRESS,
        metavar="HOST:PORT",
        help=f"gpsd address (default: {DEFAULT_ADDRESS})",
    )
    group.add_argument(
        "--dial-timeout",
        type=float,
        default=DIAL_TIMEOUT,
        help=f"Connect timeout in seconds (default: {DIAL_TIMEOUT})",
    )


def _add_watch_arguments(parser: argparse.ArgumentParser) -> None:
    """Add arguments for the watch subcommand."""
    filter_group = parser.add_argument_group("reports")
    filter_group.add_argument(
        "--class",
        "-c",
        dest="classes",
        action="append",
        choices=sorted(REPORT_TYPES),
        metavar="CLASS",
        help="Report class to stream, can be repeated (default: TPV)",
    )

    output_group = parser.add_argument_group("output")
    output_group.add_argument(
        "--format",
        "-f",
        choices=["plain", "json", "compact"],
        default="plain",
        help="Output format (default: plain)",
    )
    output_group.add_argument(
        "--no-color",
        action="store_true",
        help="Disable colored output",
    )
    output_group.add_argument(
        "--quiet",
        "-q",
        action="store_true",
        help="Suppress non-report output (headers, summaries)",
    )
    output_group.add_argument(
        "--show-metrics-summary",
        action="store_true",
        help="Show session counters on exit",
    )

    webhook_group = parser.add_argument_group("webhooks")
    webhook_group.add_argument(
        "--webhook",
        action="append",
        metavar="URL",
        help="Send reports to webhook URL (can specify multiple)",
    )
    webhook_group.add_argument(
        "--webhook-batch-size",
        type=int,
        default=10,
        help="Batch reports before sending (default: 10)",
    )
    webhook_group.add_argument(
        "--webhook-batch-timeout",
        type=float,
        default=5.0,
        help="Max seconds to wait before sending batch (default: 5.0)",
    )
    webhook_group.add_argument(
        "--webhook-header",
        action="append",
        metavar="KEY=VALUE",
        help="Add HTTP header to webhook requests",
    )

    config_group = parser.add_argument_group("configuration")
    config_group.add_argument(
        "--reconnect-delay",
        type=float,
        default=1.0,
        help="Seconds to wait before reconnecting (default: 1.0)",
    )


def parse_webhook_headers(header_args: Optional[List[str]]) -> dict:
    """Parse webhook header arguments into a dictionary.

    Args:
        header_args: List of "KEY=VALUE" strings

    Returns:
        Dictionary of header name to value
    """
    if not header_args:
        return {}

    headers = {}
    for header in header_args:
        if "=" in header:
            key, value = header.split("=", 1)
            headers[key.strip()] = value.strip()
        else:
            logger.warning("Invalid header format (expected KEY=VALUE): %s", header)

    return headers


def cmd_watch(args) -> int:
    """Execute the watch subcommand.

    Args:
        args: Parsed CLI arguments

    Returns:
        Exit code (0 for success)
    """
    from .session import GpsdSession, SessionConfig

    config = SessionConfig(
        dial_timeout=args.dial_timeout,
        reconnect_delay=args.reconnect_delay,
    )
    classes = args.classes or ["TPV"]

    try:
        session = GpsdSession.dial(args.address, config)
    except ConnectFailed as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    formatter = get_formatter(args.format, use_color=not args.no_color)

    def print_report(report: Report) -> None:
        print(formatter.format(report))
        sys.stdout.flush()

    for report_class in classes:
        session.subscribe(report_class, print_report)

    # Set up webhooks if configured
    webhook_dispatcher = None
    if args.webhook:
        from .webhook import WebhookDispatcher, WebhookConfig

        webhook_dispatcher = WebhookDispatcher()
        headers = parse_webhook_headers(args.webhook_header)

        for url in args.webhook:
            webhook_dispatcher.add_webhook(WebhookConfig(
                url=url,
                headers=headers,
                batch_size=args.webhook_batch_size,
                batch_timeout=args.webhook_batch_timeout,
            ))

        session.subscribe_all(webhook_dispatcher.handle_report)
        webhook_dispatcher.start()

        if not args.quiet:
            print(f"Sending reports to {len(args.webhook)} webhook(s)")

    if not args.quiet:
        print("=" * 60)
        print(f"Streaming from gpsd at {args.address}")
        print(f"  Classes: {', '.join(classes)}")
        print("Press Ctrl+C to stop")
        print("=" * 60)

    stop_requested = threading.Event()

    def shutdown(signum, frame):
        if not args.quiet:
            print("\nShutting down...")
        stop_requested.set()

    signal.signal(signal.SIGINT, shutdown)
    signal.signal(signal.SIGTERM, shutdown)

    session.start()
    try:
        while not stop_requested.wait(0.5):
            pass
    except KeyboardInterrupt:
        pass
    finally:
        session.close()
        if webhook_dispatcher:
            webhook_dispatcher.stop()

        if args.show_metrics_summary:
            stats = session.metrics.to_dict()
            print("\n" + "=" * 60)
            print("Session Summary:")
            for report_class, count in sorted(stats["reports_delivered"].items()):
                print(f"  {report_class} reports: {count:.0f}")
            print(f"  Records skipped: {stats['records_skipped']:.0f}")
            print(f"  Decode errors: {stats['decode_errors']:.0f}")
            print(f"  Reconnects: {stats['reconnects']:.0f}")
            print("=" * 60)

    return 0


def cmd_request(args) -> int:
    """Execute the version and poll subcommands.

    Connects, sends one request and prints the next line gpsd sends.

    Returns:
        Exit code (0 for success)
    """
    from .session import GpsdSession, SessionConfig

    try:
        session = GpsdSession.dial(args.address, SessionConfig(dial_timeout=args.dial_timeout))
    except ConnectFailed as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    with session:
        if args.command == "version":
            reply = session.version_sync()
        else:
            reply = session.poll_sync()

    if not reply:
        print("Error: gpsd closed the connection without replying", file=sys.stderr)
        return 1

    print(reply.rstrip("\r\n"))
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for CLI.

    Args:
        argv: Command-line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    # Configure logging based on verbosity
    if args.verbose >= 2:
        log_level = logging.DEBUG
    elif args.verbose >= 1:
        log_level = logging.INFO
    else:
        log_level = logging.WARNING

    logging.basicConfig(
        level=log_level,
        format="%(levelname)s: %(message)s",
    )

    if args.command == "watch":
        return cmd_watch(args)
    elif args.command in ("version", "poll"):
        return cmd_request(args)
    else:
        parser.print_help()
        return 0


if __name__ == "__main__":
    sys.exit(main())
