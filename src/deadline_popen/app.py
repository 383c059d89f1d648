"""deadline-popen command line entry point.

Runs one command with a deadline and prints its stdout. Failures (timeout,
launch error, anything written to stderr) are printed to stderr with exit
status 1.
"""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import replace

from . import __version__
from .config import Config, LaunchMode, get_config
from .environment import Environment

__all__ = ["build_parser", "configure_logging", "main"]

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def configure_logging(config: Config) -> None:
    """Route deadline_popen logs to stderr, or to a temp file in debug mode."""
    log_handlers: list[logging.Handler] = []

    if config.log_debug and config.log_file:
        file_handler = logging.FileHandler(config.log_file, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        log_handlers.append(file_handler)
        log_level = logging.DEBUG
    else:
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        log_handlers.append(stderr_handler)
        log_level = logging.INFO

    # Third-party loggers stay at WARNING
    logging.basicConfig(
        level=logging.WARNING,
        handlers=log_handlers,
    )
    logging.getLogger("deadline_popen").setLevel(log_level)


def build_parser(config: Config) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="deadline-popen",
        description="Run a command with a deadline and print its output.",
    )
    parser.add_argument("command", nargs="?", default="", help="Command line to run")
    parser.add_argument(
        "--timeout-ms",
        type=int,
        default=config.timeout_ms,
        help=f"Deadline in milliseconds, 0 = do not wait (default: {config.timeout_ms})",
    )
    parser.add_argument(
        "--launch-mode",
        choices=["auto", *(mode.value for mode in LaunchMode)],
        default=None,
        help=f"Run through the shell or exec directly (default: {config.launch_mode.value})",
    )
    parser.add_argument("--info", action="store_true", help="Print version and memory banner")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    config = get_config()
    parser = build_parser(config)
    args = parser.parse_args(argv)

    if args.timeout_ms < 0:
        parser.error("--timeout-ms must be non-negative")

    if args.launch_mode is not None:
        config = replace(config, launch_mode=LaunchMode.from_string(args.launch_mode))

    configure_logging(config)
    logger.debug(f"Starting deadline-popen: {config}")

    environment = Environment.from_config(config)

    if args.info:
        print(environment.get_info())
        return 0

    output, error = environment.popen(args.command, args.timeout_ms)
    if error:
        print(error, file=sys.stderr)
        return 1

    sys.stdout.write(output)
    sys.stdout.flush()
    return 0


if __name__ == "__main__":
    sys.exit(main())
