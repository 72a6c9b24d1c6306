"""
Core infrastructure layer of the reference server.

Purpose
-------
Provide a single import surface for the core infrastructure subsystems:

- Configuration management (Config, ConfigManager)
- Logging (structured logging, logger factory)
- Event bus (EventBus, ListenerPriority)
- Infrastructure exceptions (ServerInfrastructureException hierarchy)

Non-Responsibilities
--------------------
- Implement infra logic (delegated to submodules)
- Business logic
- Any side effects beyond simple re-exports

Design Decisions
----------------
- Public API is explicit via __all__.
- Engine adapters and the application context are not re-exported here;
  import them from `src.core.engine` and `src.core.infra`.
"""

from __future__ import annotations

from src.core.config import Config, ConfigManager
from src.core.event import EventBus, ListenerPriority
from src.core.exceptions import (
    ConfigurationError,
    EngineApiError,
    EngineSocketError,
    ErrorSeverity,
    EventBusError,
    MetricValueError,
    RuleEvaluationError,
    ServerInfrastructureException,
)
from src.core.logging import get_logger, setup_logging

__all__ = [
    # Configuration
    "Config",
    "ConfigManager",
    # Events
    "EventBus",
    "ListenerPriority",
    # Logging
    "setup_logging",
    "get_logger",
    # Exceptions
    "ServerInfrastructureException",
    "ConfigurationError",
    "EngineApiError",
    "EngineSocketError",
    "EventBusError",
    "RuleEvaluationError",
    "MetricValueError",
    "ErrorSeverity",
]
