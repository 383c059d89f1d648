"""Runtime module for deadline-bounded subprocess execution.

This module provides one-shot process execution with a wall-clock deadline,
output capture and reliable termination of the child on timeout.
"""

from __future__ import annotations

from .process_runner import NO_EXIT_CODE, ProcessResult, ProcessRunner, split_command

__all__ = [
    "NO_EXIT_CODE",
    "ProcessResult",
    "ProcessRunner",
    "split_command",
]
