"""System operational logging.

Provides the system logger for operational events (release lookups,
downloads, server process lifecycle, update checks).
"""

from npl_lsm.telemetry.system.system_logger import (
    ConsoleFormatter,
    configure_system_logger_file,
    get_system_logger,
    is_transport_error,
    log_operation_failure,
)

__all__ = [
    "ConsoleFormatter",
    "configure_system_logger_file",
    "get_system_logger",
    "is_transport_error",
    "log_operation_failure",
]
