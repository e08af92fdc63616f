"""
Core infrastructure layer for Runboard.

Re-exports the infrastructure primitives services import most often:

- Configuration management (Config, ConfigManager)
- Redis subsystem (RedisService)
- Logging (get_logger, LogContext)
- Infrastructure exceptions

This module is intentionally thin: no logic, no configuration, no I/O.
"""

from runboard.core.config import Config, ConfigManager
from runboard.core.exceptions import (
    AmbiguousOutcomeError,
    ConfigurationError,
    ErrorSeverity,
    RunboardInfrastructureException,
    StoreUnavailableError,
    get_error_severity,
    is_transient_error,
    should_alert,
)
from runboard.core.logging import LogContext, get_logger
from runboard.core.redis import RedisService

__all__ = [
    "Config",
    "ConfigManager",
    "RedisService",
    "get_logger",
    "LogContext",
    "ErrorSeverity",
    "RunboardInfrastructureException",
    "ConfigurationError",
    "StoreUnavailableError",
    "AmbiguousOutcomeError",
    "is_transient_error",
    "get_error_severity",
    "should_alert",
]
