"""Pytest configuration and fixtures."""

from __future__ import annotations

import os
import shlex
import subprocess
import sys
import time
from pathlib import Path
from typing import Callable

import pytest

# Project root
PROJECT_ROOT = Path(__file__).parent.parent

# Add src to the Python path
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

FAKE_CLI_PATH = PROJECT_ROOT / "tests" / "fixtures" / "fake_cli.py"

IS_WINDOWS = sys.platform == "win32"


def join_command(argv: list[str]) -> str:
    """Quote argv into a single command line for the current platform."""
    if IS_WINDOWS:
        return subprocess.list2cmdline(argv)
    return shlex.join(argv)


def fake_cli_command(*args: str) -> str:
    """Command line that runs the fake child process with the given arguments."""
    return join_command([sys.executable, str(FAKE_CLI_PATH), *args])


def pid_alive(pid: int) -> bool:
    """True while pid runs; an unreaped zombie counts as dead."""
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    try:
        # Orphaned grandchildren may never be reaped by a container init
        state = Path(f"/proc/{pid}/stat").read_text().rsplit(")", 1)[1].split()[0]
    except (OSError, IndexError):
        return True
    return state != "Z"


def wait_until(predicate: Callable[[], bool], timeout: float = 5.0) -> bool:
    """Poll predicate until it holds or timeout seconds pass."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.02)
    return predicate()


@pytest.fixture
def fake_cli() -> Callable[..., str]:
    """Builder for fake child process command lines."""
    return fake_cli_command


@pytest.fixture
def project_root() -> Path:
    return PROJECT_ROOT
