"""
Command line subscriber.

Prints every decoded event as one JSON document on stdout while lifecycle
notifications are logged to stderr.
"""

import argparse
import asyncio
import signal
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from rich.console import Console

from . import __version__
from .session import EventStream
from .utils.config import EventStreamConfig, load_config
from .utils.errors import ConfigurationError, EventStreamError
from .utils.logging import get_logger, setup_logging

logger = get_logger("eventstream.cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="eventstream",
        description="Subscribe to an event stream and print decoded events"
    )
    parser.add_argument("uri", nargs="?", help="Event stream URL")
    parser.add_argument("--token", help="Access token appended to the request")
    parser.add_argument("--config", type=Path, action="append", default=[],
                        help="Config file path (json, yaml, toml or .env); repeatable")
    parser.add_argument("--reconnect-delay", type=float, help="Seconds to wait before reconnecting")
    parser.add_argument("--idle-timeout", type=float, help="Seconds of silence before the stream is dead")
    parser.add_argument("--max-events", type=int, help="Exit after this many events")
    parser.add_argument("--log-level", help="DEBUG, INFO, WARNING, ERROR or CRITICAL")
    parser.add_argument("--json-logs", action="store_true", help="Render log lines as JSON")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def config_from_args(args: argparse.Namespace) -> EventStreamConfig:
    """Command line values override every other configuration source."""
    stream: Dict[str, Any] = {}
    if args.uri:
        stream["uri"] = args.uri
    if args.token is not None:
        stream["token"] = args.token
    if args.reconnect_delay is not None:
        stream["reconnect_delay"] = args.reconnect_delay
    if args.idle_timeout is not None:
        stream["idle_timeout"] = args.idle_timeout

    logging_overrides: Dict[str, Any] = {}
    if args.log_level:
        logging_overrides["level"] = args.log_level
    if args.json_logs:
        logging_overrides["json_format"] = True

    extra: Dict[str, Any] = {}
    if stream:
        extra["stream"] = stream
    if logging_overrides:
        extra["logging"] = logging_overrides

    return load_config(config_paths=args.config, extra_config=extra)


async def run(config: EventStreamConfig, console: Console,
              max_events: Optional[int] = None) -> int:
    """Stream until interrupted. Returns the process exit code."""
    stream = EventStream.from_config(config)
    stopped = asyncio.Event()
    received = 0

    def on_event(event: Dict[str, Any]) -> None:
        nonlocal received
        console.print_json(data=event)
        received += 1
        if max_events is not None and received >= max_events:
            stopped.set()

    stream.on("event", on_event)
    stream.on("disconnect", lambda: logger.warning("disconnected", uri=stream.uri))
    stream.on("reconnect", lambda: logger.info("reconnecting", uri=stream.uri))
    stream.on("reconnect-error", lambda e: logger.warning(
        "reconnect_error", uri=stream.uri, error_description=e.error_description))
    stream.on("error", lambda e: logger.error("listener_error", error=str(e)))

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stopped.set)
        except NotImplementedError:
            # Signal handlers are unavailable on Windows event loops
            break

    try:
        await stream.connect()
    except EventStreamError as e:
        logger.error("connect_failed", uri=stream.uri, error_description=e.error_description)
        await stream.aclose()
        return 1

    try:
        await stopped.wait()
    finally:
        await stream.aclose()

    logger.info("stopped", uri=stream.uri, **{
        k: v for k, v in stream.get_stats().items()
        if k in ("events_received", "disconnects", "reconnects")
    })
    return 0


def main(argv: Optional[List[str]] = None) -> None:
    """Main entry point for the eventstream command"""
    args = build_parser().parse_args(argv)

    try:
        config = config_from_args(args)
        if not config.stream.uri or config.stream.token is None:
            raise ConfigurationError("A stream uri and --token are required")
    except ConfigurationError as e:
        print(f"eventstream: {e}", file=sys.stderr)
        sys.exit(2)

    setup_logging(
        app_name=config.app_name,
        log_level=config.logging.level,
        log_dir=config.logging.directory,
        enable_json=config.logging.json_format,
        enable_sentry=config.logging.enable_sentry,
        sentry_dsn=config.logging.sentry_dsn,
        max_size=config.logging.max_size,
        backup_count=config.logging.backup_count,
    )

    try:
        code = asyncio.run(run(config, Console(), args.max_events))
    except KeyboardInterrupt:
        code = 0
    sys.exit(code)


if __name__ == "__main__":
    main()
