"""deadline-popen environment variable configuration.

Environment variables:
    DLP_LAUNCH_MODE: how a command line is started
        - auto = platform default (shell on macOS, direct elsewhere) (default)
        - shell = interpreted by the system shell
        - direct = tokenized and executed without a shell

    DLP_TIMEOUT_MS: default deadline used by the command line tool
        - default 30000
        - 0 = fire-and-forget (launch and do not wait)

    DLP_READ_CHUNK_SIZE: bytes read from a pipe per call
        - default 1048576 (1 MiB)
        - clamped to 4 KiB - 64 MiB

    DLP_KILL_TIMEOUT: seconds to wait for a killed child to be reaped
        - default 1.0
        - clamped to 0.1 - 10 seconds

    DLP_ENCODING: codec used to decode captured stdout/stderr
        - default utf-8, unknown codecs fall back to utf-8

    DLP_LOG_DEBUG: debug logging
        - true/1/yes = on (DEBUG logs go to a temp file)
        - false/0/no = off (default, INFO logs go to stderr)
"""

from __future__ import annotations

import codecs
import os
import sys
import tempfile
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path

__all__ = ["Config", "LaunchMode", "load_config", "get_config", "reload_config"]

DEFAULT_TIMEOUT_MS = 30_000
DEFAULT_READ_CHUNK_SIZE = 1024 * 1024
MIN_READ_CHUNK_SIZE = 4 * 1024
MAX_READ_CHUNK_SIZE = 64 * 1024 * 1024
DEFAULT_KILL_TIMEOUT = 1.0
DEFAULT_ENCODING = "utf-8"


class LaunchMode(str, Enum):
    """How a command line is handed to the OS.

    - SHELL: run through the system shell (``/bin/sh -c`` / ``cmd /c``)
    - DIRECT: split into argv and exec the program itself
    """

    SHELL = "shell"
    DIRECT = "direct"

    @classmethod
    def default_for_platform(cls, platform: str | None = None) -> "LaunchMode":
        """Platform default.

        macOS needs the shell: direct exec of commands like ``osascript -e ...``
        hangs the input method. Elsewhere the shell is avoided because it hangs
        output capture on Ubuntu, and Windows has no shell launch support in
        the original runtime.
        """
        platform = platform if platform is not None else sys.platform
        return cls.SHELL if platform == "darwin" else cls.DIRECT

    @classmethod
    def from_string(cls, value: str | None) -> "LaunchMode":
        """Parse a mode string; ``auto``, empty and unknown values give the platform default."""
        if value:
            value = value.lower().strip()
            for mode in cls:
                if mode.value == value:
                    return mode
        return cls.default_for_platform()


def _parse_bool(value: str | None, default: bool = False) -> bool:
    """Parse a boolean environment variable."""
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


def _parse_timeout_ms(value: str | None) -> int:
    if not value:
        return DEFAULT_TIMEOUT_MS
    try:
        return max(0, int(value))
    except ValueError:
        return DEFAULT_TIMEOUT_MS


def _parse_read_chunk_size(value: str | None) -> int:
    if not value:
        return DEFAULT_READ_CHUNK_SIZE
    try:
        size = int(value)
    except ValueError:
        return DEFAULT_READ_CHUNK_SIZE
    return max(MIN_READ_CHUNK_SIZE, min(size, MAX_READ_CHUNK_SIZE))


def _parse_kill_timeout(value: str | None) -> float:
    if not value:
        return DEFAULT_KILL_TIMEOUT
    try:
        timeout = float(value)
        return max(0.1, min(timeout, 10.0))  # 0.1-10 seconds
    except ValueError:
        return DEFAULT_KILL_TIMEOUT


def _parse_encoding(value: str | None) -> str:
    if not value or not value.strip():
        return DEFAULT_ENCODING
    try:
        return codecs.lookup(value.strip()).name
    except LookupError:
        return DEFAULT_ENCODING


def _generate_log_file_path() -> str:
    """Build a timestamped log file path under the system temp directory."""
    log_dir = Path(tempfile.gettempdir()) / "deadline-popen"
    log_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = log_dir / f"dlp_debug_{timestamp}.log"

    return str(log_file.resolve())


@dataclass
class Config:
    """deadline-popen configuration.

    Attributes:
        launch_mode: shell or direct launch
        timeout_ms: default deadline for the command line tool
        read_chunk_size: bytes per pipe read
        kill_timeout: seconds to wait for a killed child to exit
        encoding: codec for captured output
        log_debug: debug logging to a temp file
        log_file: log file path (set when log_debug is on)
    """

    launch_mode: LaunchMode = field(default_factory=LaunchMode.default_for_platform)
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    read_chunk_size: int = DEFAULT_READ_CHUNK_SIZE
    kill_timeout: float = DEFAULT_KILL_TIMEOUT
    encoding: str = DEFAULT_ENCODING
    log_debug: bool = False
    log_file: str | None = None

    def __repr__(self) -> str:
        return (
            f"Config(launch_mode={self.launch_mode.value}, "
            f"timeout_ms={self.timeout_ms}, "
            f"read_chunk_size={self.read_chunk_size}, "
            f"kill_timeout={self.kill_timeout}, "
            f"encoding={self.encoding}, "
            f"log_debug={self.log_debug}, "
            f"log_file={self.log_file})"
        )


def load_config() -> Config:
    """Load configuration from environment variables."""
    log_debug = _parse_bool(os.environ.get("DLP_LOG_DEBUG"), default=False)
    log_file = _generate_log_file_path() if log_debug else None

    return Config(
        launch_mode=LaunchMode.from_string(os.environ.get("DLP_LAUNCH_MODE")),
        timeout_ms=_parse_timeout_ms(os.environ.get("DLP_TIMEOUT_MS")),
        read_chunk_size=_parse_read_chunk_size(os.environ.get("DLP_READ_CHUNK_SIZE")),
        kill_timeout=_parse_kill_timeout(os.environ.get("DLP_KILL_TIMEOUT")),
        encoding=_parse_encoding(os.environ.get("DLP_ENCODING")),
        log_debug=log_debug,
        log_file=log_file,
    )


# Global instance, loaded lazily
_config: Config | None = None


def get_config() -> Config:
    """Return the global configuration instance."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reload_config() -> Config:
    """Reload configuration (used by tests)."""
    global _config
    _config = load_config()
    return _config
