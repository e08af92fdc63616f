"""
Configuration error hierarchy for Runboard.

Exception Hierarchy
-------------------
ConfigError (base)
├── ConfigValidationError (type / bounds validation failures)
└── ConfigInitializationError (YAML loading failures)
"""


class ConfigError(Exception):
    """
    Base exception for all configuration-related errors.

    Example
    -------
    >>> try:
    ...     ConfigManager.initialize(Path("broken"))
    ... except ConfigError as e:
    ...     logger.error(f"Config operation failed: {e}")
    """
    pass


class ConfigValidationError(ConfigError):
    """
    Raised when a tunable value has the wrong type or is out of bounds.

    Example
    -------
    >>> ConfigManager.set_override("leaderboard.dedup_ttl_seconds", 0)
    >>> ConfigManager.get_int("leaderboard.dedup_ttl_seconds", 604800, min_value=1)
    Traceback (most recent call last):
    ConfigValidationError: ...
    """
    pass


class ConfigInitializationError(ConfigError):
    """Raised when YAML defaults cannot be loaded."""
    pass
