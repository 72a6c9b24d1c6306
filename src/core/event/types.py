"""
Core event types for the EventBus.

Purpose
-------
Type definitions shared by the event system: the payload alias, listener
priorities, the callback union and the immutable listener record.

Priority Levels
---------------
- CRITICAL (0): Sequential, awaited, timeout-protected.
- HIGH (10): Sequential, awaited, timeout-protected.
- NORMAL (50): Concurrent (asyncio.gather), awaited, no timeout. Cache
  synchronization listeners run here so a publisher knows the maps are
  patched once `publish()` returns.
- LOW (100): Fire-and-forget background tasks.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Union

# Payloads should stay JSON-serializable so they log cleanly
EventPayload = dict[str, Any]


class ListenerPriority(Enum):
    """
    Priority levels for event listeners (lower value runs earlier).

    Examples
    --------
    >>> ListenerPriority.NORMAL.value
    50
    """

    CRITICAL = 0
    HIGH = 10
    NORMAL = 50
    LOW = 100


CallbackType = Union[
    Callable[[EventPayload], Any],
    Callable[[EventPayload], Awaitable[Any]],
]


@dataclass(slots=True, frozen=True)
class EventListener:
    """
    A registered event listener.

    Attributes
    ----------
    callback:
        Async or sync callable invoked with the event payload.
    priority:
        Execution tier.
    identifier:
        Unique string used for deduplication and unsubscription.
    once:
        Remove the listener before its first execution.
    """

    callback: CallbackType
    priority: ListenerPriority
    identifier: str
    once: bool = False

    @classmethod
    def from_callback(
        cls,
        event_name: str,
        callback: CallbackType,
        priority: ListenerPriority,
        identifier: Optional[str],
        once: bool,
    ) -> EventListener:
        """
        Build a listener, deriving an identifier from the callback when none is given.

        Examples
        --------
        >>> listener = EventListener.from_callback(
        ...     event_name="socket.segment_created",
        ...     callback=handler,
        ...     priority=ListenerPriority.NORMAL,
        ...     identifier=None,
        ...     once=False,
        ... )
        >>> listener.identifier
        'mymodule.handler@socket.segment_created'
        """
        if identifier is None:
            module = getattr(callback, "__module__", "unknown")
            qualname = getattr(
                callback, "__qualname__", getattr(callback, "__name__", "callback")
            )
            identifier = f"{module}.{qualname}@{event_name}"

        return cls(
            callback=callback,
            priority=priority,
            identifier=identifier,
            once=once,
        )
