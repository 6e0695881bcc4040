"""System logger for operational events.

This module provides the process-wide default logger for binary lifecycle
events (release lookups, downloads, update checks, server process output).
Managers accept an injected logger; this one is used only when none is given.

Logging strategy:
- Console (stderr): INFO and above, human-readable
- File (system.jsonl): Only issues (WARNING, ERROR, CRITICAL), JSONL

The file handler is configured separately via configure_system_logger_file()
once the storage root is known.
"""

from __future__ import annotations

__all__ = [
    "ConsoleFormatter",
    "configure_system_logger_file",
    "get_system_logger",
    "is_transport_error",
    "log_operation_failure",
]

import logging
import sys
from pathlib import Path
from typing import Any

from npl_lsm.constants import APP_NAME, TRANSPORT_ERRORS
from npl_lsm.utils.logging.iso_formatter import ISO8601Formatter

# String indicators for error message matching (fallback detection)
TRANSPORT_ERROR_INDICATORS: tuple[str, ...] = (
    "all connection attempts failed",
    "connection refused",
    "connection reset",
    "connection closed",
    "name or service not known",
    "temporary failure in name resolution",
    "network is unreachable",
    "timed out",
)


class ConsoleFormatter(logging.Formatter):
    """Human-readable formatter for console output.

    Extracts 'message' or 'event' field from dict messages for cleaner stderr output.
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format log record for human-readable console output.

        Args:
            record: The log record to format.

        Returns:
            str: Formatted log message with level prefix.
        """
        if isinstance(record.msg, dict):
            msg = record.msg.get("message") or record.msg.get("event", "")
            return f"{record.levelname}: {msg}"
        return f"{record.levelname}: {record.getMessage()}"


# Module-level singleton logger - initialized once on first use
_system_logger: logging.Logger | None = None
_file_handler_configured: bool = False


def get_system_logger() -> logging.Logger:
    """Get the singleton system logger instance.

    Creates the logger on first call with stderr handler only.
    File handler is added later via configure_system_logger_file().

    Returns:
        logging.Logger: Configured system logger instance.

    Example:
        >>> logger = get_system_logger()
        >>> logger.warning({"event": "release_fetch_failed", "message": "..."})
    """
    global _system_logger

    if _system_logger is not None:
        return _system_logger

    _system_logger = logging.getLogger(f"{APP_NAME}.system")
    _system_logger.setLevel(logging.INFO)
    _system_logger.propagate = False

    # Close and remove any existing handlers to avoid duplicates and resource leaks
    for handler in _system_logger.handlers:
        handler.close()
    _system_logger.handlers.clear()

    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setLevel(logging.INFO)
    stderr_handler.setFormatter(ConsoleFormatter())
    _system_logger.addHandler(stderr_handler)

    return _system_logger


def configure_system_logger_file(log_path: Path) -> None:
    """Attach the JSONL file handler to the system logger.

    Only WARNING and above are written to the file. Calling this more than
    once is a no-op.

    Args:
        log_path: Path to the system log file.
    """
    global _file_handler_configured

    if _file_handler_configured:
        return

    logger = get_system_logger()

    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        if sys.platform != "win32":
            try:
                log_path.parent.chmod(0o700)
            except OSError:
                pass  # Permission changes might fail on some systems
    except OSError:
        return  # stderr still works

    file_handler = logging.FileHandler(log_path, mode="a", encoding="utf-8")
    file_handler.setLevel(logging.WARNING)
    file_handler.setFormatter(ISO8601Formatter())
    logger.addHandler(file_handler)

    _file_handler_configured = True


def is_transport_error(exc: BaseException) -> bool:
    """Check if an exception is a network-level failure.

    Args:
        exc: Exception to check.

    Returns:
        True if exception indicates a transport/connection failure.
    """
    if isinstance(exc, TRANSPORT_ERRORS):
        return True

    error_msg = str(exc).lower()
    return any(indicator in error_msg for indicator in TRANSPORT_ERROR_INDICATORS)


def log_operation_failure(
    logger: logging.Logger,
    event: str,
    message: str,
    exc: BaseException,
    level: int = logging.WARNING,
    **details: Any,
) -> None:
    """Log a failed operation with the standard structured fields.

    Args:
        logger: Logger to write to.
        event: Machine-readable event name (e.g., "download_failed").
        message: Human-readable summary; the error text is appended.
        exc: The exception that caused the failure.
        level: Logging level (default: WARNING).
        **details: Extra context stored under "details".
    """
    entry: dict[str, Any] = {
        "event": event,
        "message": f"{message}: {exc}",
        "error_type": type(exc).__name__,
        "error_message": str(exc),
    }
    if is_transport_error(exc):
        entry["transport_error"] = True
    if details:
        entry["details"] = {key: str(value) for key, value in details.items()}
    logger.log(level, entry)
