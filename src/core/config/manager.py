"""
ConfigManager: dynamic, YAML-backed configuration access for the reference server.

Purpose
-------
- Provide hierarchical, dot-notation access to tunable configuration values.
- Back configuration with YAML defaults from the `config/` directory.
- Allow in-memory overrides at runtime (tests, operator tooling).

Responsibilities
----------------
- Load and deep-merge all YAML files under `config/` into defaults.
- Serve configuration reads from an in-memory cache with hit/miss counters.
- Apply overrides via `set()` without touching the YAML defaults.
- Validate overrides with optional per-key validators.

Key Design Decisions
--------------------
- YAML is the single source for **defaults**; `set()` stores **overrides**.
- Reads fall back to defaults, then to the caller-supplied default.
- `reset()` restores YAML defaults and clears overrides (test isolation).

Dependencies
------------
- `yaml` (PyYAML) for YAML parsing.
- `src.core.config.config.Config` for the config directory location.
- Standard `logging` (records flow through the structured handlers once
  `src.core.logging` is initialized).
"""

from __future__ import annotations

import copy
import logging
import time
from pathlib import Path
from typing import Any, Callable, Dict, List, MutableMapping, Optional

import yaml

from src.core.config.config import Config
from src.core.exceptions import ConfigurationError


# Imported by the logging bootstrap; use stdlib getLogger to avoid a cycle
logger = logging.getLogger(__name__)

__all__ = ["ConfigManager"]


class ConfigManager:
    """
    Dynamic configuration management with YAML defaults and in-memory overrides.

    Features
    --------
    - Hierarchical config access with dot notation (e.g. `"reference.page_size"`).
    - Deep-merged modular YAML composition.
    - Optional validators applied on write.
    - Lightweight counters for hits, misses and fallbacks.
    """

    _cache: Dict[str, Any] = {}
    _defaults: Dict[str, Any] = {}
    _initialized: bool = False
    _config_dir: Optional[Path] = None

    _validators: Dict[str, Callable[[Any], Any]] = {}

    _metrics: Dict[str, int] = {
        "gets": 0,
        "sets": 0,
        "cache_hits": 0,
        "cache_misses": 0,
        "fallback_to_defaults": 0,
    }

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
                ConfigManager._deep_merge_dict(target[key], value)  # type: ignore[index]
            else:
                target[key] = copy.deepcopy(value)

    @classmethod
    def _load_yaml_configs(cls, config_dir: Path) -> None:
        """
        Recursively load all YAML config files from `config_dir` into `_defaults`.

        Missing directories and unreadable files are logged and skipped.
        """
        if not config_dir.exists():
            logger.warning(
                "Config directory not found; using built-in defaults only",
                extra={"config_dir": str(config_dir)},
            )
            return

        yaml_files = sorted(config_dir.rglob("*.yaml")) + sorted(config_dir.rglob("*.yml"))
        if not yaml_files:
            logger.info(
                "No YAML config files discovered; using built-in defaults only",
                extra={"config_dir": str(config_dir)},
            )
            return

        loaded_count = 0

        for yaml_file in yaml_files:
            try:
                with yaml_file.open("r", encoding="utf-8") as handle:
                    data = yaml.safe_load(handle)
            except (OSError, yaml.YAMLError) as exc:
                logger.warning(
                    "Failed to load YAML config",
                    extra={
                        "file": str(yaml_file.relative_to(config_dir)),
                        "error": str(exc),
                        "error_type": type(exc).__name__,
                    },
                    exc_info=True,
                )
                continue

            if isinstance(data, dict):
                cls._deep_merge_dict(cls._defaults, data)
                loaded_count += 1
                logger.debug(
                    "Loaded YAML config",
                    extra={"file": str(yaml_file.relative_to(config_dir))},
                )
            elif data is not None:
                logger.warning(
                    "Ignoring non-dict YAML root object",
                    extra={
                        "file": str(yaml_file.relative_to(config_dir)),
                        "root_type": type(data).__name__,
                    },
                )

        logger.info(
            "YAML configs loaded",
            extra={
                "yaml_file_count": loaded_count,
                "total_default_keys": len(cls._defaults),
            },
        )

    # =========================================================================
    # INITIALIZATION
    # =========================================================================

    @classmethod
    def initialize(cls, config_dir: Optional[Path] = None) -> None:
        """
        Load YAML defaults into the cache (idempotent).

        Parameters
        ----------
        config_dir:
            Directory to scan for YAML files. Defaults to `Config.CONFIG_DIR`.
        """
        if cls._initialized:
            return

        start = time.perf_counter()
        cls._config_dir = Path(config_dir) if config_dir else Config.CONFIG_DIR
        cls._defaults = {}
        cls._load_yaml_configs(cls._config_dir)
        cls._cache = copy.deepcopy(cls._defaults)
        cls._initialized = True

        logger.info(
            "ConfigManager initialized",
            extra={
                "config_dir": str(cls._config_dir),
                "config_count": len(cls._cache),
                "latency_ms": round((time.perf_counter() - start) * 1000, 2),
            },
        )

    # =========================================================================
    # VALIDATION HOOKS
    # =========================================================================

    @classmethod
    def register_validator(cls, key: str, validator: Callable[[Any], Any]) -> None:
        """
        Register a validator for an exact dot-notation key.

        Validators receive the proposed value and return the value to store,
        or raise to block the write.
        """
        cls._validators[key] = validator
        logger.debug(
            "ConfigManager validator registered",
            extra={
                "config_key": key,
                "validator": getattr(validator, "__name__", "anonymous"),
            },
        )

    # =========================================================================
    # READ API
    # =========================================================================

    @staticmethod
    def _traverse(source: Dict[str, Any], key: str) -> Any:
        value: Any = source
        for part in key.split("."):
            if not isinstance(value, dict):
                return None
            value = value.get(part)
            if value is None:
                return None
        return value

    @classmethod
    def get(cls, key: str, default: Any = None) -> Any:
        """
        Retrieve a configuration value by dot-notation path.

        Examples
        --------
        >>> ConfigManager.get("reference.page_size", 100)
        100
        """
        if not cls._initialized:
            logger.warning(
                "ConfigManager accessed before explicit initialization; "
                "loading defaults now"
            )
            cls.initialize()

        cls._metrics["gets"] += 1

        value = cls._traverse(cls._cache, key)
        if value is not None:
            cls._metrics["cache_hits"] += 1
            return value

        cls._metrics["cache_misses"] += 1
        fallback = cls._traverse(cls._defaults, key)
        if fallback is not None:
            cls._metrics["fallback_to_defaults"] += 1
            return fallback
        return default

    @classmethod
    def get_all_keys(cls) -> List[str]:
        """Return a list of all top-level configuration keys currently in cache."""
        return list(cls._cache.keys())

    # =========================================================================
    # WRITE API
    # =========================================================================

    @classmethod
    def set(cls, key: str, value: Any) -> None:
        """
        Override a configuration value in memory.

        Raises
        ------
        ConfigurationError
            If a registered validator rejects the value or an intermediate
            path segment is not a mapping.
        """
        if not cls._initialized:
            cls.initialize()

        validator = cls._validators.get(key)
        if validator is not None:
            try:
                value = validator(value)
            except Exception as exc:
                logger.error(
                    "Config validation failed",
                    extra={
                        "config_key": key,
                        "error": str(exc),
                        "error_type": type(exc).__name__,
                    },
                )
                raise ConfigurationError(key, f"validation failed: {exc}") from exc

        parts = key.split(".")
        node: Any = cls._cache
        for part in parts[:-1]:
            child = node.get(part)
            if child is None:
                child = {}
                node[part] = child
            elif not isinstance(child, dict):
                raise ConfigurationError(key, f"'{part}' is not a mapping")
            node = child

        old_value = node.get(parts[-1])
        node[parts[-1]] = value
        cls._metrics["sets"] += 1

        logger.info(
            "Config value overridden",
            extra={"config_key": key, "old_value": old_value, "new_value": value},
        )

    # =========================================================================
    # CACHE CONTROL & METRICS
    # =========================================================================

    @classmethod
    def reset(cls) -> None:
        """Drop overrides and restore the YAML defaults."""
        cls._cache = copy.deepcopy(cls._defaults)
        logger.debug("ConfigManager overrides reset")

    @classmethod
    def clear_cache(cls) -> None:
        """
        Clear cache, defaults and validators and reset initialization status.

        Intended for testing.
        """
        cls._cache = {}
        cls._defaults = {}
        cls._validators = {}
        cls._initialized = False
        for name in cls._metrics:
            cls._metrics[name] = 0

    @classmethod
    def get_metrics(cls) -> Dict[str, Any]:
        """Return a snapshot of read/write counters."""
        gets = cls._metrics["gets"]
        hit_rate = (cls._metrics["cache_hits"] / gets * 100) if gets else 0.0
        return {
            **cls._metrics,
            "cache_hit_rate": round(hit_rate, 2),
            "initialized": cls._initialized,
            "cached_configs": len(cls._cache),
        }
