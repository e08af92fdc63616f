"""
Configuration management subsystem for Runboard.

Static vs Tunable Configuration
-------------------------------
**Static (Config):**
- Loaded from environment variables at startup (.env supported)
- Includes: Redis URL and pool settings, environment, log settings
- Changes require a restart

**Tunable (ConfigManager):**
- Loaded from YAML defaults in the config directory
- Includes: key prefixes, TTLs, retention windows, query limits,
  circuit breaker thresholds
- In-process overrides for operators and tests

Usage Examples
--------------
>>> from runboard.core.config import Config, ConfigManager
>>> Config.REDIS_URL
'redis://localhost:6379/0'
>>> ConfigManager.get("leaderboard.max_top_limit", 100)
100
"""

from runboard.core.config.config import Config, Environment
from runboard.core.config.errors import (
    ConfigError,
    ConfigInitializationError,
    ConfigValidationError,
)
from runboard.core.config.manager import ConfigManager

__all__ = [
    "Config",
    "Environment",
    "ConfigManager",
    "ConfigError",
    "ConfigValidationError",
    "ConfigInitializationError",
]
