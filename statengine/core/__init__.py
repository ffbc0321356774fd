# Statify Engine - Core Package
"""
Core package containing fundamental engine components:
- Configuration management
- Exception hierarchy
- Logging infrastructure
- JSON serialization helpers
"""

from statengine.core.config import settings, get_settings
from statengine.core.exceptions import (
    BaseApplicationException,
    ErrorCode,
    ValidationException,
    ProcedureNotFoundException,
    ComputeException,
    ComputeTimeoutException,
    ComputeCancelledException,
    RequestInFlightException,
)
from statengine.core.logging import (
    get_logger,
    set_request_context,
    clear_request_context,
    log_execution_time,
)
from statengine.core.serialization import to_jsonable

__all__ = [
    # Config
    "settings",
    "get_settings",
    # Exceptions
    "BaseApplicationException",
    "ErrorCode",
    "ValidationException",
    "ProcedureNotFoundException",
    "ComputeException",
    "ComputeTimeoutException",
    "ComputeCancelledException",
    "RequestInFlightException",
    # Logging
    "get_logger",
    "set_request_context",
    "clear_request_context",
    "log_execution_time",
    # Serialization
    "to_jsonable",
]
