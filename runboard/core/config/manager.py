"""
ConfigManager: tunable engine configuration access for Runboard.

Purpose
-------
- Provide hierarchical, dot-notation access to tunable engine values
  (key prefixes, TTLs, retention windows, query limits, circuit thresholds).
- Back configuration with YAML defaults loaded from the config directory.
- Allow in-process overrides for operators and tests without touching files.

Responsibilities
----------------
- Load and deep-merge every YAML file under `Config.CONFIG_DIR`.
- Serve reads from an in-memory dictionary with hit / miss counters.
- Layer overrides on top of YAML defaults.

Non-Responsibilities
--------------------
- Static process settings such as Redis URL or log level (handled by Config)
- Persisting overrides (they live for the lifetime of the process)

Key Design Decisions
--------------------
- YAML is the single source for **defaults**; overrides are in-memory only.
- Every call site passes its own code default, so a missing YAML file or key
  never breaks the engine.
- Loading is lazy: the first `get()` loads YAML if `initialize()` was not
  called explicitly.

Dependencies
------------
- PyYAML for parsing the config directory
- `runboard.core.config.config.Config` for the config directory location
"""

from __future__ import annotations

import copy
import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, MutableMapping, Optional

import yaml

from runboard.core.config.config import Config
from runboard.core.config.errors import (
    ConfigInitializationError,
    ConfigValidationError,
)


# Config sits below the logging subsystem in the import graph
logger = logging.getLogger(__name__)


@dataclass
class ConfigReadMetrics:
    """Read counters for ConfigManager."""

    gets: int = 0
    hits: int = 0
    misses: int = 0
    overrides_served: int = 0
    files_loaded: int = 0

    def snapshot(self) -> Dict[str, int]:
        return {
            "gets": self.gets,
            "hits": self.hits,
            "misses": self.misses,
            "overrides_served": self.overrides_served,
            "files_loaded": self.files_loaded,
        }


class ConfigManager:
    """
    Tunable configuration management with YAML defaults and overrides.

    Usage
    -----
    >>> ConfigManager.get("leaderboard.dedup_ttl_seconds", 604800)
    604800
    >>> ConfigManager.set_override("leaderboard.max_top_limit", 50)
    """

    _defaults: Dict[str, Any] = {}
    _overrides: Dict[str, Any] = {}
    _initialized: bool = False
    _lock = threading.Lock()
    _metrics: ConfigReadMetrics = ConfigReadMetrics()

    # =========================================================================
    # YAML LOADING & DEFAULTS
    # =========================================================================

    @staticmethod
    def _deep_merge_dict(
        target: MutableMapping[str, Any],
        source: MutableMapping[str, Any],
    ) -> None:
        """Recursively merge `source` into `target` (in-place)."""
        for key, value in source.items():
            if isinstance(value, dict) and isinstance(target.get(key), dict):
                ConfigManager._deep_merge_dict(target[key], value)
            else:
                target[key] = value

    @classmethod
    def _load_yaml_configs(cls, config_dir: Path) -> Dict[str, Any]:
        """Recursively load and deep-merge all YAML files in `config_dir`."""
        merged: Dict[str, Any] = {}

        if not config_dir.exists():
            logger.warning(
                "Config directory not found; using built-in defaults only",
                extra={"config_dir": str(config_dir)},
            )
            return merged

        yaml_files = sorted(
            list(config_dir.rglob("*.yaml")) + list(config_dir.rglob("*.yml"))
        )
        for yaml_file in yaml_files:
            try:
                with yaml_file.open("r", encoding="utf-8") as handle:
                    data = yaml.safe_load(handle)
            except (OSError, yaml.YAMLError) as exc:
                raise ConfigInitializationError(
                    f"Failed to load YAML config {yaml_file}: {exc}"
                ) from exc

            if data is None:
                continue
            if not isinstance(data, dict):
                raise ConfigInitializationError(
                    f"YAML config {yaml_file} must contain a mapping at the top level"
                )

            cls._deep_merge_dict(merged, data)
            cls._metrics.files_loaded += 1
            logger.debug(
                "Loaded YAML config",
                extra={"file": str(yaml_file.relative_to(config_dir))},
            )

        return merged

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    @classmethod
    def initialize(cls, config_dir: Optional[Path] = None) -> None:
        """
        Load YAML defaults. Idempotent; pass `config_dir` to force a reload
        from a specific directory.

        Raises
        ------
        ConfigInitializationError
            If a YAML file exists but cannot be parsed.
        """
        with cls._lock:
            if cls._initialized and config_dir is None:
                return

            directory = config_dir or Config.CONFIG_DIR
            cls._defaults = cls._load_yaml_configs(directory)
            cls._initialized = True

        logger.info(
            "ConfigManager initialized",
            extra={
                "config_dir": str(directory),
                "top_level_keys": sorted(cls._defaults.keys()),
                "files_loaded": cls._metrics.files_loaded,
            },
        )

    @classmethod
    def reset(cls) -> None:
        """Drop loaded defaults and overrides; the next read reloads YAML."""
        with cls._lock:
            cls._defaults = {}
            cls._overrides = {}
            cls._initialized = False
            cls._metrics = ConfigReadMetrics()

    # =========================================================================
    # READS
    # =========================================================================

    @classmethod
    def _lookup(cls, source: Dict[str, Any], key: str) -> Any:
        value: Any = source
        for part in key.split("."):
            if not isinstance(value, dict) or part not in value:
                return None
            value = value[part]
        return value

    @classmethod
    def get(cls, key: str, default: Any = None) -> Any:
        """
        Retrieve a configuration value by dot-notation path.

        Overrides win over YAML defaults; `default` is returned when neither
        defines the key.

        Examples
        --------
        >>> ConfigManager.get("idempotency.ttl_seconds", 600)
        600
        """
        if not cls._initialized:
            cls.initialize()

        cls._metrics.gets += 1

        if key in cls._overrides:
            cls._metrics.overrides_served += 1
            return cls._overrides[key]

        value = cls._lookup(cls._defaults, key)
        if value is None:
            cls._metrics.misses += 1
            return default

        cls._metrics.hits += 1
        return copy.deepcopy(value) if isinstance(value, (dict, list)) else value

    @classmethod
    def get_int(cls, key: str, default: int, min_value: Optional[int] = None) -> int:
        """
        Retrieve an integer tunable.

        Raises
        ------
        ConfigValidationError
            If the configured value is not an integer or is below `min_value`.
        """
        value = cls.get(key, default)
        if isinstance(value, bool) or not isinstance(value, int):
            raise ConfigValidationError(
                f"{key} must be an integer, got {type(value).__name__}"
            )
        if min_value is not None and value < min_value:
            raise ConfigValidationError(f"{key} must be >= {min_value}, got {value}")
        return value

    @classmethod
    def get_float(cls, key: str, default: float) -> float:
        """Retrieve a numeric tunable as float."""
        value = cls.get(key, default)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ConfigValidationError(
                f"{key} must be a number, got {type(value).__name__}"
            )
        return float(value)

    @classmethod
    def get_str(cls, key: str, default: str) -> str:
        """Retrieve a string tunable."""
        value = cls.get(key, default)
        if not isinstance(value, str):
            raise ConfigValidationError(
                f"{key} must be a string, got {type(value).__name__}"
            )
        return value

    @classmethod
    def get_all_keys(cls) -> List[str]:
        """Return the top-level keys of the loaded defaults."""
        if not cls._initialized:
            cls.initialize()
        return sorted(cls._defaults.keys())

    # =========================================================================
    # OVERRIDES
    # =========================================================================

    @classmethod
    def set_override(cls, key: str, value: Any) -> None:
        """Override a dot-notation key for the lifetime of the process."""
        with cls._lock:
            cls._overrides[key] = value
        logger.info(
            "Configuration override applied",
            extra={"config_key": key, "value": value},
        )

    @classmethod
    def clear_overrides(cls) -> None:
        """Remove every override, restoring YAML defaults."""
        with cls._lock:
            cls._overrides = {}

    # =========================================================================
    # OBSERVABILITY
    # =========================================================================

    @classmethod
    def get_metrics(cls) -> Dict[str, int]:
        """Return read counters."""
        return cls._metrics.snapshot()
