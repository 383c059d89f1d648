"""Memory usage of the current process."""

from __future__ import annotations

import logging
import os
import sys

__all__ = ["get_memory_usage"]

logger = logging.getLogger(__name__)

STATM_PATH = "/proc/self/statm"


def _read_statm() -> tuple[int, int]:
    with open(STATM_PATH, encoding="ascii") as f:
        fields = f.read().split()
    page_size = os.sysconf("SC_PAGE_SIZE")
    return int(fields[0]) * page_size, int(fields[1]) * page_size


def _read_rusage() -> tuple[int, int]:
    import resource

    max_rss = resource.getrusage(resource.RUSAGE_SELF).ru_maxrss
    # ru_maxrss is bytes on macOS, kilobytes elsewhere
    rss = max_rss if sys.platform == "darwin" else max_rss * 1024
    return 0, rss


def get_memory_usage() -> tuple[int, int]:
    """Return (virtual memory size, resident set size) in bytes.

    Linux reads /proc/self/statm; other POSIX systems only know the peak
    resident size. (0, 0) when nothing is available.
    """
    try:
        if os.path.exists(STATM_PATH):
            return _read_statm()
        if sys.platform != "win32":
            return _read_rusage()
    except (OSError, ValueError, IndexError) as e:
        logger.debug(f"Memory usage unavailable: {e}")
    return 0, 0
