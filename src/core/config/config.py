"""
Static configuration management for the Roleplay reference server.

Purpose
-------
Provides centralized static configuration loaded from environment variables
with sensible defaults, type validation, and bounds checking. This module
handles non-dynamic configuration that is set at process startup.

Responsibilities
----------------
- Load configuration from environment variables with .env support
- Provide type-safe access to all static configuration values
- Validate critical settings on startup
- Create required directories (logs)
- Track configuration loading metrics

Non-Responsibilities
--------------------
- Dynamic configuration (handled by ConfigManager)
- Runtime configuration changes
- Secrets management (use environment variables)

Architecture Notes
------------------
- Singleton pattern via class methods (no instantiation)
- Auto-loads on module import via Config.validate()
- Metrics track which values came from environment vs defaults

Configuration Categories
------------------------
1. Engine API: base URL, credentials, server id, HTTP timeout
2. Engine Socket: push-channel URL
3. Environment: environment type, debug mode, logging

Environment Variables
---------------------
Required (production):
- ENGINE_API_URL: Base URL of the upstream Engine API
- ENGINE_API_KEY_ID / ENGINE_API_KEY_SECRET: API credentials

Optional (with defaults):
- ENGINE_SOCKET_URL: Push-channel websocket URL
- ENGINE_SERVER_ID: Identifier of this game server
- ENGINE_HTTP_TIMEOUT_SECONDS: HTTP timeout (default: 10)
- ENVIRONMENT: Environment type (default: development)
- DEBUG: Debug mode flag (default: False)
- LOG_LEVEL: Logging level (default: INFO)
- LOG_JSON: Force JSON console logs
"""

import os
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv

load_dotenv()


class Environment(Enum):
    """Deployment environment types."""

    DEVELOPMENT = "development"
    TESTING = "testing"
    STAGING = "staging"
    PRODUCTION = "production"

    @classmethod
    def from_string(cls, value: str) -> "Environment":
        """
        Parse environment string safely with fallback.

        Example
        -------
        >>> Environment.from_string("production") == Environment.PRODUCTION
        True
        >>> Environment.from_string("invalid") == Environment.DEVELOPMENT
        True
        """
        try:
            return cls(value.lower())
        except ValueError:
            # Structured logger is not initialized yet during bootstrap
            import logging
            logging.warning(
                f"Unknown environment '{value}', defaulting to development"
            )
            return cls.DEVELOPMENT


class _ConfigLoadMetrics:
    """
    Internal metrics tracker for configuration loading.

    Tracks which configuration values came from environment variables
    versus defaults, and any validation errors encountered.
    """

    def __init__(self):
        self.env_vars_loaded: Dict[str, bool] = {}
        self.validation_errors: Dict[str, str] = {}
        self.defaults_used: Dict[str, Any] = {}
        self.last_reload: Optional[str] = None

    def record_env_load(self, key: str, from_env: bool, value: Any, default: Any):
        """Record whether a config value came from environment."""
        self.env_vars_loaded[key] = from_env
        if not from_env:
            self.defaults_used[key] = default

    def record_validation_error(self, key: str, error: str):
        """Record a validation error."""
        self.validation_errors[key] = error

    def get_summary(self) -> Dict[str, Any]:
        """Get configuration loading summary."""
        return {
            "total_configs": len(self.env_vars_loaded),
            "from_environment": sum(1 for v in self.env_vars_loaded.values() if v),
            "from_defaults": sum(1 for v in self.env_vars_loaded.values() if not v),
            "validation_errors": len(self.validation_errors),
            "defaults_used": list(self.defaults_used.keys()),
            "last_reload": self.last_reload,
        }


class Config:
    """
    Centralized static configuration for the reference server.

    All configuration values loaded from environment variables with sensible
    defaults. Validates critical settings on startup to prevent runtime failures.

    Usage
    -----
    >>> api_url = Config.ENGINE_API_URL
    >>> if Config.is_production():
    ...     logger.info("Running in production mode")
    >>> summary = Config.get_config_summary()
    """

    _metrics: Optional[_ConfigLoadMetrics] = None
    _enable_metrics: bool = True
    _validated: bool = False

    # =========================================================================
    # Engine API Configuration
    # =========================================================================

    ENGINE_API_URL: str = "http://localhost:8080/api"
    ENGINE_API_KEY_ID: str = ""
    ENGINE_API_KEY_SECRET: str = ""
    ENGINE_SERVER_ID: str = "local"
    ENGINE_HTTP_TIMEOUT_SECONDS: int = 10

    # =========================================================================
    # Engine Socket Configuration
    # =========================================================================

    ENGINE_SOCKET_URL: str = "ws://localhost:8080/ws"

    # =========================================================================
    # Environment Configuration
    # =========================================================================

    ENVIRONMENT: str = "development"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    LOG_JSON: Optional[bool] = None
    LOG_COLORS: bool = True

    # =========================================================================
    # Directory Configuration
    # =========================================================================

    PROJECT_ROOT = Path(__file__).resolve().parents[3]
    LOGS_DIR = PROJECT_ROOT / "logs"
    CONFIG_DIR = PROJECT_ROOT / "config"

    # =========================================================================
    # Server Metadata
    # =========================================================================

    SERVER_NAME: str = "Roleplay Reference Server"
    SERVER_VERSION: str = "1.0.0"

    # =========================================================================
    # Helper Methods
    # =========================================================================

    @classmethod
    def _init_metrics(cls):
        """Initialize metrics tracking if enabled."""
        if cls._enable_metrics and cls._metrics is None:
            cls._metrics = _ConfigLoadMetrics()

    @classmethod
    def _safe_int(
        cls,
        key: str,
        default: int,
        min_val: Optional[int] = None,
        max_val: Optional[int] = None,
    ) -> int:
        """
        Safely parse integer from environment with validation.

        Parameters
        ----------
        key:
            Environment variable name.
        default:
            Default value if not set or invalid.
        min_val:
            Minimum allowed value (inclusive).
        max_val:
            Maximum allowed value (inclusive).

        Example
        -------
        >>> Config._safe_int("ENGINE_HTTP_TIMEOUT_SECONDS", 10, min_val=1, max_val=300)
        10
        """
        cls._init_metrics()

        raw_value = os.getenv(key)

        if raw_value is None:
            if cls._metrics:
                cls._metrics.record_env_load(key, False, default, default)
            return default

        try:
            value = int(raw_value)

            if min_val is not None and value < min_val:
                error = f"{key}={value} is below minimum {min_val}, using default {default}"
                import logging
                logging.warning(error)
                if cls._metrics:
                    cls._metrics.record_validation_error(key, error)
                return default

            if max_val is not None and value > max_val:
                error = f"{key}={value} exceeds maximum {max_val}, using default {default}"
                import logging
                logging.warning(error)
                if cls._metrics:
                    cls._metrics.record_validation_error(key, error)
                return default

            if cls._metrics:
                cls._metrics.record_env_load(key, True, value, default)

            return value

        except ValueError:
            error = f"{key}='{raw_value}' is not a valid integer, using default {default}"
            import logging
            logging.warning(error)
            if cls._metrics:
                cls._metrics.record_validation_error(key, error)
            return default

    @classmethod
    def _safe_bool(cls, key: str, default: Optional[bool]) -> Optional[bool]:
        """
        Safely parse boolean from environment.

        Recognizes: true/false, yes/no, 1/0, on/off (case-insensitive).

        Example
        -------
        >>> Config._safe_bool("DEBUG", False)
        False
        """
        cls._init_metrics()

        raw_value = os.getenv(key)

        if raw_value is None:
            if cls._metrics:
                cls._metrics.record_env_load(key, False, default, default)
            return default

        normalized = raw_value.lower().strip()
        true_values = {"true", "yes", "1", "on"}
        false_values = {"false", "no", "0", "off"}

        if normalized in true_values:
            value = True
        elif normalized in false_values:
            value = False
        else:
            error = f"{key}='{raw_value}' is not a valid boolean, using default {default}"
            import logging
            logging.warning(error)
            if cls._metrics:
                cls._metrics.record_validation_error(key, error)
            return default

        if cls._metrics:
            cls._metrics.record_env_load(key, True, value, default)

        return value

    @classmethod
    def _safe_str(
        cls,
        key: str,
        default: str,
        required: bool = False,
    ) -> str:
        """
        Safely get string from environment.

        Parameters
        ----------
        key:
            Environment variable name.
        default:
            Default value if not set.
        required:
            Whether this config is required (logged as an error if missing).
        """
        cls._init_metrics()

        value = os.getenv(key, default)
        from_env = key in os.environ

        if cls._metrics:
            cls._metrics.record_env_load(key, from_env, value, default)

        if required and not value:
            error = f"Required environment variable {key} is not set"
            import logging
            logging.error(error)
            if cls._metrics:
                cls._metrics.record_validation_error(key, error)

        return value

    # =========================================================================
    # Configuration Loading
    # =========================================================================

    @classmethod
    def load(cls) -> None:
        """
        Load all configuration from environment variables with validation.

        Called automatically on module import; can be called again to reload.
        """
        cls._init_metrics()

        # Engine API
        cls.ENGINE_API_URL = cls._safe_str(
            "ENGINE_API_URL", "http://localhost:8080/api", required=True
        )
        cls.ENGINE_API_KEY_ID = cls._safe_str("ENGINE_API_KEY_ID", "")
        cls.ENGINE_API_KEY_SECRET = cls._safe_str("ENGINE_API_KEY_SECRET", "")
        cls.ENGINE_SERVER_ID = cls._safe_str("ENGINE_SERVER_ID", "local")
        cls.ENGINE_HTTP_TIMEOUT_SECONDS = cls._safe_int(
            "ENGINE_HTTP_TIMEOUT_SECONDS", 10, min_val=1, max_val=300
        )

        # Engine Socket
        cls.ENGINE_SOCKET_URL = cls._safe_str(
            "ENGINE_SOCKET_URL", "ws://localhost:8080/ws"
        )

        # Environment
        cls.ENVIRONMENT = Environment.from_string(
            cls._safe_str("ENVIRONMENT", "development")
        ).value
        cls.DEBUG = bool(cls._safe_bool("DEBUG", False))
        cls.LOG_LEVEL = cls._safe_str("LOG_LEVEL", "INFO")
        cls.LOG_JSON = cls._safe_bool("LOG_JSON", None)
        cls.LOG_COLORS = bool(cls._safe_bool("LOG_COLORS", True))

        if cls._metrics:
            from datetime import datetime, timezone
            cls._metrics.last_reload = datetime.now(timezone.utc).isoformat()

    @classmethod
    def validate(cls) -> None:
        """
        Validate critical configuration values on startup.

        Raises
        ------
        ValueError:
            If required config values are missing or invalid in production.
        """
        if cls._validated:
            return

        import logging
        logger = logging.getLogger(__name__)
        cls._init_metrics()

        try:
            cls.load()

            if not cls.ENGINE_API_URL:
                raise ValueError("ENGINE_API_URL environment variable is required")

            if cls.is_production():
                if "localhost" in cls.ENGINE_API_URL:
                    logger.warning(
                        "Production environment using localhost Engine API - "
                        "this may be incorrect"
                    )
                if not cls.ENGINE_API_KEY_ID or not cls.ENGINE_API_KEY_SECRET:
                    raise ValueError(
                        "ENGINE_API_KEY_ID and ENGINE_API_KEY_SECRET are required "
                        "in production"
                    )
                if cls.DEBUG:
                    logger.warning("DEBUG mode enabled in production!")

            valid_log_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
            if cls.LOG_LEVEL.upper() not in valid_log_levels:
                logger.warning(f"Invalid LOG_LEVEL '{cls.LOG_LEVEL}', using INFO")
                cls.LOG_LEVEL = "INFO"

            cls.LOGS_DIR.mkdir(exist_ok=True)

            cls._validated = True

            if cls._metrics:
                summary = cls._metrics.get_summary()
                logger.info(f"Configuration loaded: {summary}")

                if cls._metrics.validation_errors:
                    logger.warning(
                        f"Configuration warnings: {cls._metrics.validation_errors}"
                    )

        except Exception as e:
            logger.warning(f"Config validation warning (safe for tests): {e}")
            if cls.ENVIRONMENT.lower() == "production":
                logger.error("Configuration validation failed in production!")
                raise

    # =========================================================================
    # Environment Checks
    # =========================================================================

    @classmethod
    def is_production(cls) -> bool:
        """Check if running in production environment."""
        return cls.ENVIRONMENT.lower() == "production"

    # =========================================================================
    # Summary
    # =========================================================================

    @classmethod
    def get_config_summary(cls) -> Dict[str, Any]:
        """
        Get non-sensitive configuration summary for debugging.

        Example
        -------
        >>> Config.get_config_summary()["environment"]
        'development'
        """
        return {
            "environment": cls.ENVIRONMENT,
            "debug": cls.DEBUG,
            "log_level": cls.LOG_LEVEL,
            "engine_api_url": cls.ENGINE_API_URL,
            "engine_socket_url": cls.ENGINE_SOCKET_URL,
            "engine_server_id": cls.ENGINE_SERVER_ID,
            "engine_http_timeout_seconds": cls.ENGINE_HTTP_TIMEOUT_SECONDS,
            "engine_api_key_set": bool(cls.ENGINE_API_KEY_ID and cls.ENGINE_API_KEY_SECRET),
            "server_version": cls.SERVER_VERSION,
        }


# Auto-validate on import
Config.validate()
