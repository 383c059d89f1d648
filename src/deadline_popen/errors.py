"""Command execution exceptions.

deadline-popen v0.1.0

The runner itself never raises; these are raised by
Environment.run_checked and carry the context needed to diagnose a failure
without re-running the command.
"""

from __future__ import annotations

__all__ = [
    "CommandError",
    "EmptyCommandError",
    "CommandTimeoutError",
    "CommandFailedError",
]


class CommandError(Exception):
    """Base exception for command execution."""

    def __init__(self, message: str, command: str = "") -> None:
        self.command = command
        self.message = message
        super().__init__(message)


class EmptyCommandError(CommandError):
    """The command line is empty; nothing was launched."""

    def __init__(self) -> None:
        super().__init__("Command is empty")


class CommandTimeoutError(CommandError):
    """The deadline elapsed and the process was killed.

    Attributes:
        command: The command line
        timeout_ms: The deadline that elapsed
    """

    def __init__(self, command: str, timeout_ms: int) -> None:
        self.timeout_ms = timeout_ms
        super().__init__(
            f"popen timed-out with command = [{command}] in {timeout_ms}ms",
            command,
        )


class CommandFailedError(CommandError):
    """The process failed to launch or reported errors.

    Attributes:
        command: The command line
        exit_code: Exit status, -1 when the process never produced one
        stderr: Captured standard error or the launch failure description
    """

    def __init__(self, command: str, exit_code: int, stderr: str) -> None:
        self.exit_code = exit_code
        self.stderr = stderr
        super().__init__(
            f"popen failed with command = [{command}]: "
            f"exitCode = {exit_code}, err = {stderr}",
            command,
        )
