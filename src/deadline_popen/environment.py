"""Environment helpers used by host applications.

Wraps the ProcessRunner behind the two-string ``popen`` contract and adds
the small file and diagnostics helpers that sit next to it:
- popen: stdout on success, a descriptive error string otherwise
- run_checked: the same outcome as stdout or a CommandError
- load_file / file_exists: whole-file reads and existence checks
- format_memory_usage / get_info: diagnostics banner
"""

from __future__ import annotations

import logging
import os
import platform
from pathlib import Path

from . import __version__
from .config import Config, get_config
from .errors import CommandError, CommandFailedError, CommandTimeoutError, EmptyCommandError
from .process_memory import get_memory_usage
from .runtime import ProcessRunner

__all__ = ["Environment", "format_memory_usage"]

logger = logging.getLogger(__name__)

KILOBYTE = 1024


def format_memory_usage(usage: int) -> str:
    """Format a byte count as whole megabytes ("12M") or kilobytes ("512K")."""
    if usage > KILOBYTE * KILOBYTE:
        return f"{usage // KILOBYTE // KILOBYTE}M"
    return f"{usage // KILOBYTE}K"


class Environment:
    """Command execution and host environment facade.

    Example:
        env = Environment.from_config(get_config())
        stdout, error = env.popen("uname -a", 1000)
        if error:
            logger.warning(error)

    Attributes:
        runner: ProcessRunner used for every command
    """

    def __init__(self, runner: ProcessRunner | None = None) -> None:
        self.runner = runner if runner is not None else ProcessRunner.from_config(get_config())

    @classmethod
    def from_config(cls, config: Config) -> "Environment":
        return cls(ProcessRunner.from_config(config))

    def run_checked(self, command: str, timeout_ms: int) -> str:
        """Run a command and return its stdout.

        Args:
            command: Command line
            timeout_ms: Deadline in milliseconds, 0 = fire-and-forget

        Returns:
            Captured stdout ("" for fire-and-forget)

        Raises:
            EmptyCommandError: command is empty, nothing launched
            CommandTimeoutError: deadline elapsed, process killed
            CommandFailedError: launch failed or stderr is non-empty
        """
        if not command:
            raise EmptyCommandError()

        result = self.runner.run(command, timeout_ms)
        if result.timed_out:
            raise CommandTimeoutError(command, timeout_ms)
        if result.error:
            raise CommandFailedError(command, result.exit_code, result.error)
        return result.output

    def popen(self, command: str, timeout_ms: int) -> tuple[str, str]:
        """Run a command; return (stdout, "") on success or ("", message).

        A successful command without output also yields ("", ""); callers
        must test the error element, not the output.
        """
        try:
            return self.run_checked(command, timeout_ms), ""
        except CommandFailedError as e:
            logger.info(f"popen error: {e}")
            return "", str(e)
        except CommandError as e:
            # Timeouts are already logged by the runner
            logger.debug(f"popen error: {e}")
            return "", str(e)

    @staticmethod
    def load_file(path: str | os.PathLike[str]) -> str:
        """Read a whole file; "" for an empty path or an unreadable file."""
        if not path:
            return ""
        try:
            return Path(path).read_bytes().decode("utf-8", errors="replace")
        except OSError as e:
            logger.debug(f"Failed to load file {path}: {e}")
            return ""

    @staticmethod
    def file_exists(path: str | os.PathLike[str]) -> bool:
        return bool(path) and Path(path).exists()

    @staticmethod
    def format_memory_usage(usage: int) -> str:
        return format_memory_usage(usage)

    @staticmethod
    def get_info() -> str:
        """Version and resident memory banner."""
        _, resident_set = get_memory_usage()
        return (
            f"deadline-popen v{__version__} | "
            f"Python v{platform.python_version()} | "
            f"Process RSS Mem: {format_memory_usage(resident_set)}"
        )
