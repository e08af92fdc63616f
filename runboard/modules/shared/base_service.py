"""
Base Service Foundation

Purpose
-------
Foundation for the engine's domain services (leaderboard, orders). Services
validate input, delegate atomic work to store components, and shape results.

Design Notes
------------
This base class provides:
- Structured logging with operation context
- Config access with code defaults and a required-key check

What this class does NOT do:
- Talk to Redis directly (store components own their scripts)
- Retry failed store calls

Usage
-----
    class LeaderboardService(BaseService):
        def __init__(self, store, keys, config_manager=ConfigManager, logger=None):
            super().__init__(config_manager, logger or get_logger(__name__))
            self.store = store
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Optional

from runboard.core.exceptions import ConfigurationError

if TYPE_CHECKING:
    from logging import Logger

    from runboard.core.config.manager import ConfigManager


class BaseService:
    """
    Base class for domain services.

    Args:
        config_manager: Tunable configuration source (the ConfigManager class)
        logger: Structured logger instance
    """

    def __init__(
        self,
        config_manager: type[ConfigManager],
        logger: Logger,
    ) -> None:
        self._config = config_manager
        self.log = logger

    def get_config(
        self, key: str, default: Optional[Any] = None, required: bool = False
    ) -> Any:
        """
        Retrieve a configuration value.

        Raises:
            ConfigurationError: If required=True and the key resolves to None
        """
        value = self._config.get(key, default)
        if required and value is None:
            raise ConfigurationError(
                key, f"Required configuration key '{key}' is missing"
            )
        return value

    def get_config_int(self, key: str, default: int, min_value: int = 0) -> int:
        """Integer tunable; out-of-range values are a configuration error."""
        value = self.get_config(key, default)
        if isinstance(value, bool) or not isinstance(value, int) or value < min_value:
            raise ConfigurationError(
                key, f"must be an integer >= {min_value}, got {value!r}"
            )
        return value

    def log_operation(self, operation: str, **context: Any) -> None:
        """Log a service operation with structured context."""
        self.log.info(
            f"Service operation: {operation}",
            extra={"operation": operation, **context},
        )

    def log_error(
        self,
        operation: str,
        error: Exception,
        **context: Any,
    ) -> None:
        """Log a service error with full context."""
        self.log.error(
            f"Service error during {operation}: {error}",
            extra={
                "operation": operation,
                "error_type": type(error).__name__,
                "error_message": str(error),
                **context,
            },
        )
