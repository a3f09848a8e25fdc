"""Command-line entry point: option parsing, version output and service lifecycle."""

from __future__ import annotations

import argparse
import logging
import os
import re
import signal
import sys
import threading
from dataclasses import dataclass
from enum import IntEnum
from importlib.metadata import PackageNotFoundError, version

from minkapi.config import (
    DEFAULT_HOST,
    DEFAULT_KUBECONFIG_PATH,
    DEFAULT_PORT,
    DEFAULT_WATCH_QUEUE_SIZE,
    DEFAULT_WATCH_TIMEOUT,
    PROGRAM_NAME,
    MinKAPIConfig,
)
from minkapi.errors import MinKAPIError, MissingOptionError
from minkapi.server import InMemoryKAPI

_log = logging.getLogger(__name__)

KUBECONFIG_ENV_VAR = "KUBECONFIG"
SHUTDOWN_TIMEOUT = 6.0

_UNIT_SECONDS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "μs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}
_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|μs|ms|s|m|h)")


class ExitCode(IntEnum):
    """Process exit statuses."""

    SUCCESS = 0
    PARSE_OPTS = 1
    SHUTDOWN = 254
    GENERAL = 255


@dataclass
class MainOpts(MinKAPIConfig):
    """Parsed command-line options: the service settings plus log verbosity."""

    verbosity: int = 0

    def to_config(self) -> MinKAPIConfig:
        """Return the service settings held by these options."""
        return MinKAPIConfig(
            host=self.host,
            port=self.port,
            kubeconfig_path=self.kubeconfig_path,
            watch_timeout=self.watch_timeout,
            watch_queue_size=self.watch_queue_size,
        )


def parse_duration(value: str) -> float:
    """Parse a duration such as ``30s``, ``1m30s`` or ``250ms`` into seconds."""
    text = value.strip()
    if not text:
        raise ValueError(f"invalid duration {value!r}")
    sign = 1.0
    if text[0] in "+-":
        sign = -1.0 if text[0] == "-" else 1.0
        text = text[1:]
    if text == "0":
        return 0.0
    if not text:
        raise ValueError(f"invalid duration {value!r}")
    total = 0.0
    pos = 0
    while pos < len(text):
        match = _DURATION_PART.match(text, pos)
        if match is None:
            raise ValueError(f"invalid duration {value!r}")
        total += float(match.group(1)) * _UNIT_SECONDS[match.group(2)]
        pos = match.end()
    return sign * total


class _Parser(argparse.ArgumentParser):
    def error(self, message: str) -> None:  # type: ignore[override]
        raise ValueError(message)


def _duration_arg(value: str) -> float:
    try:
        return parse_duration(value)
    except ValueError as err:
        raise argparse.ArgumentTypeError(str(err)) from err


def _build_parser() -> argparse.ArgumentParser:
    kubeconfig_default = os.environ.get(KUBECONFIG_ENV_VAR) or DEFAULT_KUBECONFIG_PATH
    parser = _Parser(prog=PROGRAM_NAME)
    parser.add_argument(
        "-k",
        "--kubeconfig",
        dest="kubeconfig_path",
        default=kubeconfig_default,
        help="path to generate kubeconfig - fallback to KUBECONFIG env-var or "
        + DEFAULT_KUBECONFIG_PATH,
    )
    parser.add_argument(
        "-H",
        "--host",
        default=DEFAULT_HOST,
        help="host name to bind the service. Use 0.0.0.0 for all interfaces",
    )
    parser.add_argument(
        "-P", "--port", type=int, default=DEFAULT_PORT, help="listen port for REST API"
    )
    parser.add_argument(
        "-s",
        "--watch-queue-size",
        dest="watch_queue_size",
        type=int,
        default=DEFAULT_WATCH_QUEUE_SIZE,
        help="max number of events to queue per watcher",
    )
    parser.add_argument(
        "-t",
        "--watch-timeout",
        dest="watch_timeout",
        type=_duration_arg,
        default=DEFAULT_WATCH_TIMEOUT,
        help="watch timeout after which connection is closed and watch removed",
    )
    parser.add_argument(
        "--v", dest="verbosity", type=int, default=0, help="number for the log level verbosity"
    )
    return parser


def validate_main_opts(opts: MainOpts) -> None:
    """Raise MissingOptionError if a required option is empty."""
    if not opts.kubeconfig_path:
        raise MissingOptionError("--kubeconfig/-k flag is required")


def parse_program_flags(args: list[str]) -> MainOpts:
    """Parse and validate command-line arguments.

    Raises ValueError for malformed arguments and SystemExit(0) after printing help.
    """
    namespace = _build_parser().parse_args(args)
    opts = MainOpts(
        host=namespace.host,
        port=namespace.port,
        kubeconfig_path=namespace.kubeconfig_path,
        watch_timeout=namespace.watch_timeout,
        watch_queue_size=namespace.watch_queue_size,
        verbosity=namespace.verbosity,
    )
    validate_main_opts(opts)
    return opts


def print_version() -> None:
    """Print the installed version of the program."""
    try:
        installed = version(PROGRAM_NAME)
    except PackageNotFoundError:
        print(f"{PROGRAM_NAME}: binary build info not embedded")
        return
    if installed:
        print(f"{PROGRAM_NAME} version: {installed}")


def _install_signal_handlers(stop: threading.Event) -> dict[int, object]:
    if threading.current_thread() is not threading.main_thread():
        return {}
    previous: dict[int, object] = {}
    for signum in (signal.SIGINT, signal.SIGTERM):
        previous[signum] = signal.signal(signum, lambda *_: stop.set())
    return previous


def _restore_signal_handlers(previous: dict[int, object]) -> None:
    for signum, handler in previous.items():
        signal.signal(signum, handler)  # type: ignore[arg-type]


def main(argv: list[str] | None = None) -> int:
    """Run the service until SIGINT or SIGTERM; return the exit status."""
    print_version()
    args = sys.argv[1:] if argv is None else list(argv)
    try:
        opts = parse_program_flags(args)
    except SystemExit as exc:
        if exc.code in (0, None):
            return ExitCode.SUCCESS
        raise
    except (ValueError, MinKAPIError) as err:
        print(f"Err: {err}", file=sys.stderr)
        return ExitCode.PARSE_OPTS

    logging.basicConfig(
        level=logging.DEBUG if opts.verbosity >= 4 else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    service = InMemoryKAPI(opts.to_config())
    stop = threading.Event()
    failures: list[BaseException] = []

    def run() -> None:
        try:
            service.start()
        except Exception as err:  # noqa: BLE001 - reported to the waiting main thread
            _log.error("%s start failed: %s", PROGRAM_NAME, err)
            failures.append(err)
            stop.set()

    previous = _install_signal_handlers(stop)
    try:
        threading.Thread(target=run, name=f"{PROGRAM_NAME}-server", daemon=True).start()
        while not stop.wait(0.5):
            pass
    finally:
        _restore_signal_handlers(previous)

    if failures:
        return 1

    _log.info("Received shutdown signal, initiating graceful shutdown")
    try:
        service.shutdown(SHUTDOWN_TIMEOUT)
    except TimeoutError as err:
        _log.error("%s shutdown failed: %s", PROGRAM_NAME, err)
        return ExitCode.SHUTDOWN
    _log.info("%s shutdown gracefully.", PROGRAM_NAME)
    return ExitCode.SUCCESS