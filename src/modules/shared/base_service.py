"""
Base Service Foundation

Purpose
-------
Foundation class for the server's domain services. A service owns its
in-memory state, reacts to bus events through an explicit handler table,
and publishes its own events for other modules.

Design Notes
------------
This base class provides:
- Structured logging with operation context
- Safe config access
- Handler-table subscription with tracked listener ids
- An explicit `initialize()` / `dispose()` lifecycle

What this class does NOT do:
- Discover handlers by reflection; subclasses list them in `event_handlers`
- Own infrastructure clients (they are injected)

Usage
-----
    class ReferenceService(BaseService):
        def __init__(self, config_manager, event_bus, api_client, logger):
            super().__init__(config_manager, event_bus, logger)
            self.event_handlers = {"session.authorized": self.on_session_authorized}

        async def initialize(self) -> None:
            ...
            self.subscribe_handlers()
            await super().initialize()
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, List, Optional, Tuple

from src.core.event.types import ListenerPriority
from src.core.exceptions import ConfigurationError

if TYPE_CHECKING:
    from logging import Logger

    from src.core.config.manager import ConfigManager
    from src.core.event.bus import EventBus

EventHandler = Callable[..., Awaitable[Any]]


class BaseService:
    """
    Base class for domain services.

    Args:
        config_manager: Configuration manager (class or instance exposing `get`)
        event_bus: Event bus for cross-module communication
        logger: Structured logger instance
    """

    handler_priority: ListenerPriority = ListenerPriority.NORMAL

    def __init__(
        self,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
    ) -> None:
        self._config = config_manager
        self._events = event_bus
        self.log = logger

        self.event_handlers: Dict[str, EventHandler] = {}
        self._subscriptions: List[Tuple[str, str]] = []
        self._ready = False

    @property
    def name(self) -> str:
        return type(self).__name__

    @property
    def is_ready(self) -> bool:
        return self._ready

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    async def initialize(self) -> None:
        """Mark the service ready. Subclasses load state first, then call this."""
        self._ready = True
        self.log_operation("initialize", service=self.name)

    async def dispose(self) -> None:
        """Unsubscribe handlers and mark the service not ready."""
        self.unsubscribe_handlers()
        self._ready = False
        self.log_operation("dispose", service=self.name)

    # ------------------------------------------------------------------ #
    # Config
    # ------------------------------------------------------------------ #

    def get_config(
        self, key: str, default: Optional[Any] = None, required: bool = False
    ) -> Any:
        """
        Retrieve a configuration value.

        Raises:
            ConfigurationError: If required=True and key is missing
        """
        value = self._config.get(key, default)
        if required and value is None:
            raise ConfigurationError(
                key, f"Required configuration key '{key}' is missing"
            )
        return value

    # ------------------------------------------------------------------ #
    # Events
    # ------------------------------------------------------------------ #

    def subscribe_handlers(self) -> None:
        """Subscribe every entry of `event_handlers` on the bus."""
        for event_name, handler in self.event_handlers.items():
            identifier = self._events.subscribe(
                event_name,
                handler,
                priority=self.handler_priority,
                identifier=f"{self.name}.{getattr(handler, '__name__', 'handler')}@{event_name}",
            )
            self._subscriptions.append((event_name, identifier))

        self.log.debug(
            "Service handlers subscribed",
            extra={"service": self.name, "events": list(self.event_handlers)},
        )

    def unsubscribe_handlers(self) -> None:
        for event_name, identifier in self._subscriptions:
            self._events.unsubscribe(event_name, identifier)
        self._subscriptions.clear()

    # ------------------------------------------------------------------ #
    # Logging
    # ------------------------------------------------------------------ #

    def log_operation(self, operation: str, **context: Any) -> None:
        self.log.info(
            f"Service operation: {operation}",
            extra={"operation": operation, **context},
        )

