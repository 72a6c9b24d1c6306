"""
Event system for the reference server.

The ApplicationContext owns the process EventBus; tests build their own.
"""

from .bus import EventBus
from .context import apply_event_log_context
from .registry import ListenerRegistry, matches_pattern
from .scheduler import EventScheduler, handle_listener_error
from .types import (
    CallbackType,
    EventListener,
    EventPayload,
    ListenerPriority,
)

__all__ = [
    "EventBus",
    "EventPayload",
    "ListenerPriority",
    "EventListener",
    "CallbackType",
    "ListenerRegistry",
    "EventScheduler",
    "matches_pattern",
    "handle_listener_error",
    "apply_event_log_context",
]
