"""Command-line flags and the immutable configuration built from them."""
from __future__ import annotations

import argparse
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Sequence

DEFAULT_PORT = 8080
DEFAULT_HOST = "0.0.0.0"
DEFAULT_DEBOUNCE_MS = 200

USAGE = "dirwatch -watch <dir> -serve <dir> -run <cmd> [-port <port>]"


@dataclass(frozen=True)
class WatchConfig:
    """Everything the watcher, runner and server need to know."""

    watch_dir: Path
    serve_dir: Path
    command: str
    port: int = DEFAULT_PORT
    host: str = DEFAULT_HOST
    debounce: float = DEFAULT_DEBOUNCE_MS / 1000
    cwd: Path = field(default_factory=Path.cwd)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dirwatch",
        usage=USAGE,
        description="Run a command when a directory changes and live-reload the pages served from another one",
    )
    parser.add_argument("-watch", required=True, metavar="DIR", help="Directory tree to monitor")
    parser.add_argument("-serve", required=True, metavar="DIR", help="Directory tree to serve over HTTP")
    parser.add_argument("-run", required=True, metavar="CMD", help="Shell command executed on every change")
    parser.add_argument(
        "-port",
        type=_port,
        default=DEFAULT_PORT,
        help="HTTP listen port (default: %(default)s)",
    )
    parser.add_argument("-host", default=DEFAULT_HOST, help="HTTP listen address (default: %(default)s)")
    parser.add_argument(
        "-debounce",
        type=_milliseconds,
        default=DEFAULT_DEBOUNCE_MS,
        metavar="MS",
        help="Quiet period before a change triggers the command (default: %(default)s)",
    )
    parser.add_argument(
        "-log-level",
        dest="log_level",
        default="INFO",
        help="Logging level (DEBUG, INFO, WARNING, ERROR)",
    )
    return parser


def parse_args(argv: Optional[Sequence[str]] = None) -> tuple[WatchConfig, str]:
    """Parse ``argv`` into a config and the requested log level.

    Usage errors exit with status 2 through argparse.
    """

    parser = build_parser()
    args = parser.parse_args(argv)
    if not args.run.strip():
        parser.error("argument -run: command must not be empty")

    config = WatchConfig(
        watch_dir=Path(args.watch).expanduser().resolve(),
        serve_dir=Path(args.serve).expanduser().resolve(),
        command=args.run,
        port=args.port,
        host=args.host,
        debounce=args.debounce / 1000,
    )
    return config, args.log_level


def _port(value: str) -> int:
    try:
        port = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid port: {value!r}") from exc
    if not 0 <= port <= 65535:
        raise argparse.ArgumentTypeError(f"port must be between 0 and 65535, got {port}")
    return port


def _milliseconds(value: str) -> int:
    try:
        ms = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid duration: {value!r}") from exc
    if ms < 0:
        raise argparse.ArgumentTypeError("duration must not be negative")
    return ms
