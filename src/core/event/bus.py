"""
EventBus: async pub/sub with tiered concurrency.

Purpose
-------
Decouples the push-channel socket, the session lifecycle and the reference
cache. Producers publish named events with a dict payload; subscribers
register callbacks per event name or wildcard pattern.

Responsibilities
----------------
- Register/unregister listeners with priorities
- Publish events to exact and wildcard subscribers
- Execute listeners via `EventScheduler` (CRITICAL/HIGH sequential with
  timeout, NORMAL concurrent and awaited, LOW fire-and-forget)
- Isolate listener failures from publishers
- Collect publish/error metrics

Design Decisions
----------------
- Instance-based so tests can build a private bus.
- Listener timeouts are read from `core.event.listener_timeout.*` through
  the injected ConfigManager, with explicit overrides taking precedence.
"""

from __future__ import annotations

import inspect
from typing import Any, Optional

from src.core.event.context import apply_event_log_context
from src.core.event.metrics import EventMetrics, EventMetricsRecorder
from src.core.event.registry import ListenerRegistry
from src.core.event.scheduler import EventScheduler
from src.core.event.types import (
    CallbackType,
    EventListener,
    EventPayload,
    ListenerPriority,
)
from src.core.logging.logger import get_logger

logger = get_logger(__name__)


class EventBus:
    """
    Async EventBus with tiered listener execution.

    Designed for single-threaded asyncio usage; all methods must be called
    from the same event loop.

    Examples
    --------
    >>> bus = EventBus()
    >>> bus.subscribe("session.authorized", on_authorized)
    >>> await bus.publish("session.authorized", {"session_id": "s-1", "account_id": "42"})
    """

    def __init__(
        self,
        registry: Optional[ListenerRegistry] = None,
        scheduler: Optional[EventScheduler] = None,
        metrics: Optional[EventMetricsRecorder] = None,
        config_manager: Optional[Any] = None,
        *,
        enable_metrics: bool = True,
        critical_timeout_seconds: Optional[float] = None,
        high_timeout_seconds: Optional[float] = None,
    ) -> None:
        self._config_manager = config_manager
        self._registry = registry or ListenerRegistry()
        self._scheduler = scheduler or EventScheduler()
        self._metrics = metrics or EventMetricsRecorder()
        self._metrics_enabled = enable_metrics

        self._critical_timeout = self._load_timeout(
            key="core.event.listener_timeout.critical",
            override=critical_timeout_seconds,
            default=5.0,
        )
        self._high_timeout = self._load_timeout(
            key="core.event.listener_timeout.high",
            override=high_timeout_seconds,
            default=10.0,
        )

        logger.info(
            "EventBus initialized",
            extra={
                "metrics_enabled": self._metrics_enabled,
                "critical_timeout_seconds": self._critical_timeout,
                "high_timeout_seconds": self._high_timeout,
            },
        )

    # ------------------------------------------------------------------ #
    # Configuration Loading
    # ------------------------------------------------------------------ #

    def _load_timeout(self, key: str, override: Optional[float], default: float) -> float:
        """Resolve a timeout: explicit override, then config, then default."""
        if override is not None:
            return float(override)
        if self._config_manager is None:
            return float(default)

        value = self._config_manager.get(key, default)
        try:
            return float(value)
        except (TypeError, ValueError):
            logger.warning(
                "Invalid listener timeout in config, using default",
                extra={"config_key": key, "value": value, "default_value": default},
            )
            return float(default)

    # ------------------------------------------------------------------ #
    # Subscription API
    # ------------------------------------------------------------------ #

    @staticmethod
    def _validate_callback_signature(callback: CallbackType) -> None:
        """Reject callbacks that cannot take exactly one payload argument."""
        try:
            sig = inspect.signature(callback)
        except (TypeError, ValueError):
            return

        params = [
            p
            for p in sig.parameters.values()
            if p.kind not in (p.VAR_POSITIONAL, p.VAR_KEYWORD)
        ]
        has_varargs = any(p.kind == p.VAR_POSITIONAL for p in sig.parameters.values())
        if len(params) == 1 or (not params and has_varargs):
            return

        callback_name = getattr(callback, "__qualname__", None) or getattr(
            callback, "__name__", repr(callback)
        )
        raise ValueError(
            f"Event listener must accept exactly 1 parameter (EventPayload), "
            f"got {len(params)} parameters for '{callback_name}'"
        )

    def subscribe(
        self,
        event_name: str,
        callback: CallbackType,
        *,
        priority: ListenerPriority = ListenerPriority.NORMAL,
        identifier: Optional[str] = None,
        once: bool = False,
        allow_duplicates: bool = False,
    ) -> str:
        """
        Subscribe a callback to an event name or wildcard pattern.

        Returns
        -------
        str:
            The listener identifier, used with `unsubscribe()`.

        Raises
        ------
        ValueError:
            If the callback does not take exactly one parameter.
        """
        self._validate_callback_signature(callback)

        listener = EventListener.from_callback(
            event_name=event_name,
            callback=callback,
            priority=priority,
            identifier=identifier,
            once=once,
        )

        added = self._registry.add_listener(
            event_name=event_name,
            listener=listener,
            allow_duplicates=allow_duplicates,
        )

        if added:
            if self._metrics_enabled:
                self._metrics.adjust_listener_count(1)
            logger.debug(
                "EventBus: subscribed listener",
                extra={
                    "event_name": event_name,
                    "listener_id": listener.identifier,
                    "priority": listener.priority.name,
                    "once": listener.once,
                },
            )
        else:
            logger.warning(
                "EventBus: duplicate listener prevented",
                extra={"event_name": event_name, "listener_id": listener.identifier},
            )

        return listener.identifier

    def unsubscribe(self, event_name: str, identifier: str) -> bool:
        """Remove a listener. Returns True if one was removed."""
        removed = self._registry.remove_listener(
            event_name=event_name, identifier=identifier
        )

        if removed:
            if self._metrics_enabled:
                self._metrics.adjust_listener_count(-1)
            logger.debug(
                "EventBus: unsubscribed listener",
                extra={"event_name": event_name, "listener_id": identifier},
            )

        return removed

    def clear(self) -> None:
        """Remove all listeners from all events."""
        total = self._registry.clear_all()
        if self._metrics_enabled:
            self._metrics.reset_listener_count()
        logger.info(
            "EventBus: cleared all listeners",
            extra={"previous_listener_count": total},
        )

    # ------------------------------------------------------------------ #
    # Publish API
    # ------------------------------------------------------------------ #

    async def publish(self, event_name: str, data: EventPayload) -> list[Any]:
        """
        Publish an event to all matching listeners.

        Returns
        -------
        list[Any]:
            Results from CRITICAL, HIGH and NORMAL listeners. Listener
            failures contribute None.
        """
        if self._metrics_enabled:
            self._metrics.record_publish(event_name)

        apply_event_log_context(event_name, data)

        listeners = self._registry.extract_listeners_for_event(event_name=event_name)
        if not listeners:
            logger.debug(
                "EventBus: no listeners for event",
                extra={"event_name": event_name},
            )
            return []

        logger.debug(
            "EventBus: publishing event",
            extra={
                "event_name": event_name,
                "payload_keys": list(data.keys()),
                "listener_count": len(listeners),
            },
        )

        return await self._scheduler.execute(
            event_name=event_name,
            payload=data,
            listeners=listeners,
            metrics=self._metrics if self._metrics_enabled else None,
            logger=logger,
            critical_timeout=self._critical_timeout,
            high_timeout=self._high_timeout,
        )

    async def drain(self) -> None:
        """Wait for fire-and-forget (LOW) listeners still running."""
        await self._scheduler.drain()

    # ------------------------------------------------------------------ #
    # Metrics & Introspection
    # ------------------------------------------------------------------ #

    def get_metrics(self) -> Optional[EventMetrics]:
        if not self._metrics_enabled:
            return None
        return self._metrics.snapshot()

    def get_metrics_summary(self) -> dict[str, Any]:
        metrics = self.get_metrics()
        if metrics is None:
            return {}
        return metrics.get_summary()

    def get_listener_count(self, event_name: Optional[str] = None) -> int:
        """
        Listener count for one event (exact plus matching wildcards), or the
        total when no event name is given.
        """
        if event_name:
            return self._registry.get_listener_count_for_event(event_name)
        return self._registry.get_total_listener_count()

    def get_all_events(self) -> list[str]:
        return self._registry.get_all_event_keys()
