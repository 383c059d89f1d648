"""deadline-popen - run shell commands with a wall-clock deadline.

Environment variables:
    DLP_LAUNCH_MODE: shell / direct / auto (default auto)
    DLP_TIMEOUT_MS: default deadline of the command line tool (default 30000)
    DLP_LOG_DEBUG: debug logging to a temp file (default false)

Usage:
    deadline-popen --timeout-ms 2000 "git rev-parse HEAD"
"""

__version__ = "0.1.0"

from .runtime import ProcessResult, ProcessRunner

__all__ = ["__version__", "ProcessResult", "ProcessRunner"]
