"""Process runner with a wall-clock deadline and reliable termination.

deadline-popen runtime module v0.1.0

This module provides:
- One-shot command execution bounded by a deadline
- Concurrent stdout/stderr draining (a chatty child never blocks on a full pipe)
- Process group kill on timeout, followed by a bounded reap
- Fire-and-forget launches reaped by a daemon thread

Key design points:
- POSIX: start_new_session=True so the whole process group can be killed
- Windows: CREATE_NEW_PROCESS_GROUP for signal isolation
- Every failure is reported through ProcessResult; only cancellation propagates
"""

from __future__ import annotations

import asyncio
import logging
import os
import shlex
import signal
import subprocess
import sys
import threading
from dataclasses import dataclass, field
from typing import Any

import anyio

from ..config import (
    DEFAULT_ENCODING,
    DEFAULT_KILL_TIMEOUT,
    DEFAULT_READ_CHUNK_SIZE,
    Config,
    LaunchMode,
)

__all__ = [
    "NO_EXIT_CODE",
    "ProcessResult",
    "ProcessRunner",
    "split_command",
]

logger = logging.getLogger(__name__)

# Platform detection
IS_WINDOWS = sys.platform == "win32"

# Exit code reported when there is no real one (timeout, launch failure)
NO_EXIT_CODE = -1


@dataclass(frozen=True)
class ProcessResult:
    """Outcome of a single run.

    Exactly one of three outcomes produces a result:
    - normal completion: real exit_code, captured output and error
    - timeout: timed_out=True, exit_code=-1, output is never drained
    - launch/runtime failure: exit_code=-1, error holds the description

    A fire-and-forget run (timeout 0) returns the default-valued result.

    Attributes:
        exit_code: Process exit status, -1 when there is none
        output: Captured stdout
        error: Captured stderr, or the failure description
        timed_out: True iff the deadline elapsed before the process finished
    """

    exit_code: int = 0
    output: str = ""
    error: str = ""
    timed_out: bool = False

    @classmethod
    def failure(cls, message: str) -> "ProcessResult":
        return cls(exit_code=NO_EXIT_CODE, error=message)

    @classmethod
    def timeout(cls) -> "ProcessResult":
        return cls(exit_code=NO_EXIT_CODE, timed_out=True)


def _strip_quotes(token: str) -> str:
    if len(token) >= 2 and token[0] == token[-1] and token[0] in "\"'":
        return token[1:-1]
    return token


def split_command(command: str) -> list[str]:
    """Tokenize a command line for direct execution.

    Raises:
        ValueError: On unbalanced quotes or a blank command
    """
    if IS_WINDOWS:
        argv = [_strip_quotes(token) for token in shlex.split(command, posix=False)]
    else:
        argv = shlex.split(command)
    if not argv:
        raise ValueError("Command is empty")
    return argv


def _describe(exc: BaseException) -> str:
    """Human readable description, unwrapping task group exception groups."""
    while getattr(exc, "exceptions", None):
        exc = exc.exceptions[0]  # type: ignore[attr-defined]
    return str(exc) or type(exc).__name__


def _reap(process: subprocess.Popen) -> None:
    returncode = process.wait()
    logger.debug(f"Detached subprocess exited pid={process.pid} returncode={returncode}")


@dataclass
class ProcessRunner:
    """Runs one command per call, bounded by a deadline.

    The caller blocks for at most ``timeout_ms`` (plus the short reap after a
    kill). Output and exit status come back as a ProcessResult; no exception
    from launch, wait, kill or drain escapes.

    Example:
        runner = ProcessRunner(launch_mode=LaunchMode.DIRECT)
        result = runner.run("git rev-parse HEAD", timeout_ms=2000)
        if result.timed_out:
            ...

        # inside a coroutine
        result = await runner.run_async("git status", timeout_ms=2000)
    """

    launch_mode: LaunchMode = field(default_factory=LaunchMode.default_for_platform)
    read_chunk_size: int = DEFAULT_READ_CHUNK_SIZE
    kill_timeout: float = DEFAULT_KILL_TIMEOUT
    encoding: str = DEFAULT_ENCODING

    @classmethod
    def from_config(cls, config: Config) -> "ProcessRunner":
        return cls(
            launch_mode=config.launch_mode,
            read_chunk_size=config.read_chunk_size,
            kill_timeout=config.kill_timeout,
            encoding=config.encoding,
        )

    def run(self, command: str, timeout_ms: int) -> ProcessResult:
        """Run a command synchronously.

        Must not be called from inside a running event loop; use run_async
        there. Doing so anyway yields a failure result.

        Args:
            command: Command line
            timeout_ms: Deadline in milliseconds, 0 = fire-and-forget

        Returns:
            The ProcessResult of this invocation
        """
        if timeout_ms == 0:
            return self._spawn_detached(command)

        try:
            return anyio.run(self.run_async, command, timeout_ms)
        except Exception as e:
            logger.error(f"Process exception: command = {command}, error = {e}")
            return ProcessResult.failure(_describe(e))

    async def run_async(self, command: str, timeout_ms: int) -> ProcessResult:
        """Run a command, racing its completion against the deadline.

        This method:
        1. Launches the command with stdout/stderr piped
        2. Drains both pipes concurrently while waiting for exit
        3. If the process has not exited by the deadline, kills the process
           group and returns a timeout result
        4. Otherwise returns captured output, error and exit code; pipes still
           held open at the deadline by leftover group members are abandoned
           and those members killed
        5. Kills the child if anything goes wrong after launch

        Args:
            command: Command line
            timeout_ms: Deadline in milliseconds, 0 = fire-and-forget

        Returns:
            The ProcessResult of this invocation
        """
        if timeout_ms < 0:
            return ProcessResult.failure(f"timeout must be non-negative, got {timeout_ms}ms")
        if timeout_ms == 0:
            return self._spawn_detached(command)

        process: asyncio.subprocess.Process | None = None
        try:
            process = await self._launch(command)
            logger.debug(
                f"Started subprocess pid={process.pid} "
                f"mode={self.launch_mode.value} timeout={timeout_ms}ms"
            )

            stdout = bytearray()
            stderr = bytearray()
            drained = False
            with anyio.move_on_after(timeout_ms / 1000):
                async with anyio.create_task_group() as tg:
                    tg.start_soon(self._drain, process.stdout, stdout)
                    tg.start_soon(self._drain, process.stderr, stderr)
                    await process.wait()
                drained = True

            # Exit status decides the outcome, not end-of-stream on the pipes
            if process.returncode is None:
                logger.warning(
                    f"Subprocess timed out after {timeout_ms}ms, killing "
                    f"pid={process.pid} command = {command}"
                )
                await self._kill(process)
                return ProcessResult.timeout()

            if not drained:
                # Exited in time; something it started still holds the pipes
                logger.debug(
                    f"Subprocess exited pid={process.pid} but its pipes stayed "
                    f"open until the deadline, killing process group"
                )
                await self._kill(process)

            logger.debug(
                f"Subprocess completed pid={process.pid} "
                f"returncode={process.returncode} "
                f"stdout={len(stdout)}B stderr={len(stderr)}B"
            )
            return ProcessResult(
                exit_code=process.returncode,
                output=self._decode(stdout),
                error=self._decode(stderr),
            )

        except Exception as e:
            logger.error(f"Process exception: command = {command}, error = {e}")
            return ProcessResult.failure(_describe(e))

        finally:
            if process is not None:
                with anyio.CancelScope(shield=True):
                    if process.returncode is None:
                        await self._kill(process)
                    self._close_transport(process)

    def _build_subprocess_kwargs(self) -> dict[str, Any]:
        """Build platform-specific subprocess kwargs."""
        kwargs: dict[str, Any] = {"stdin": subprocess.DEVNULL}

        if IS_WINDOWS:
            kwargs["creationflags"] = subprocess.CREATE_NEW_PROCESS_GROUP
        else:
            # POSIX: start_new_session (equivalent to setsid)
            kwargs["start_new_session"] = True

        return kwargs

    async def _launch(self, command: str) -> asyncio.subprocess.Process:
        kwargs = self._build_subprocess_kwargs()

        if self.launch_mode is LaunchMode.SHELL:
            return await asyncio.create_subprocess_shell(
                command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                **kwargs,
            )

        argv = split_command(command)
        return await asyncio.create_subprocess_exec(
            *argv,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            **kwargs,
        )

    def _spawn_detached(self, command: str) -> ProcessResult:
        """Launch without waiting; a daemon thread reaps the child.

        Output goes to the null device since nobody will ever read a pipe.
        """
        try:
            if self.launch_mode is LaunchMode.SHELL:
                process = subprocess.Popen(
                    command,
                    shell=True,
                    stdout=subprocess.DEVNULL,
                    stderr=subprocess.DEVNULL,
                    **self._build_subprocess_kwargs(),
                )
            else:
                process = subprocess.Popen(
                    split_command(command),
                    stdout=subprocess.DEVNULL,
                    stderr=subprocess.DEVNULL,
                    **self._build_subprocess_kwargs(),
                )
        except Exception as e:
            logger.error(f"Process exception: command = {command}, error = {e}")
            return ProcessResult.failure(_describe(e))

        logger.debug(f"Started detached subprocess pid={process.pid}")
        threading.Thread(
            target=_reap,
            args=(process,),
            daemon=True,
            name=f"dlp-reaper-{process.pid}",
        ).start()
        return ProcessResult()

    async def _drain(
        self,
        stream: asyncio.StreamReader | None,
        sink: bytearray,
    ) -> None:
        """Read a pipe until end-of-stream.

        read_chunk_size is the size of one read, not a cap on the total.
        """
        if stream is None:
            return
        while True:
            chunk = await stream.read(self.read_chunk_size)
            if not chunk:
                break
            sink.extend(chunk)

    def _decode(self, data: bytearray) -> str:
        return bytes(data).decode(self.encoding, errors="replace")

    async def _kill(self, process: asyncio.subprocess.Process) -> None:
        """Force kill the child (and its process group), then reap it.

        Waits up to kill_timeout for the exit to be observed.
        """
        pid = process.pid
        logger.debug(f"Killing subprocess pid={pid}")

        try:
            if IS_WINDOWS:
                process.kill()
            else:
                self._posix_kill(process)

            with anyio.move_on_after(self.kill_timeout):
                await process.wait()

            if process.returncode is None:
                logger.warning(f"Subprocess did not exit after kill pid={pid}")
            else:
                logger.debug(
                    f"Subprocess killed pid={pid} returncode={process.returncode}"
                )

        except ProcessLookupError:
            logger.debug(f"Subprocess already exited pid={pid}")
        except Exception as e:
            logger.warning(f"Error killing subprocess pid={pid}: {e}")

    def _posix_kill(self, process: asyncio.subprocess.Process) -> None:
        """Send SIGKILL to the process group on POSIX systems."""
        try:
            # pgid == pid due to start_new_session; the leader may already be reaped
            os.killpg(process.pid, signal.SIGKILL)
            logger.debug(f"Sent SIGKILL to process group pgid={process.pid}")
        except ProcessLookupError:
            pass
        except OSError as e:
            logger.debug(f"killpg failed, falling back to kill: {e}")
            if process.returncode is None:
                process.kill()

    @staticmethod
    def _close_transport(process: asyncio.subprocess.Process) -> None:
        """Close the subprocess transport while its event loop is still running.

        asyncio.subprocess.Process has no public close; a transport left open
        is finalized after anyio.run has closed the loop and fails there.
        """
        transport = getattr(process, "_transport", None)
        if transport is not None:
            transport.close()
