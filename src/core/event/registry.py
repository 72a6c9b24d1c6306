"""
ListenerRegistry: storage and lookup for EventBus listeners.

Purpose
-------
Stores listeners keyed by exact event name or wildcard pattern and resolves
the set of listeners that should receive a published event.

Wildcard Patterns
-----------------
`*` matches any run of characters (including dots):

- `"*"` matches every event
- `"socket.*"` matches `"socket.segment_created"`, `"socket.metrics_updated"`
- `"*.segment_created"` matches `"socket.segment_created"` and
  `"reference.segment_created"`
- `"reference.*_updated"` matches `"reference.metrics_updated"`

Design Decisions
----------------
- Synchronous methods: mutations happen on the event loop thread between
  awaits, so no locking is needed.
- Listeners are ordered by (priority, identifier) for deterministic execution.
- `extract_listeners_for_event()` prunes once=True listeners in the same pass
  that collects them.
"""

from __future__ import annotations

from src.core.event.types import EventListener


def matches_pattern(event_name: str, pattern: str) -> bool:
    """
    Return True when `event_name` matches the wildcard `pattern`.

    Examples
    --------
    >>> matches_pattern("socket.segment_created", "socket.*")
    True
    >>> matches_pattern("socket.segment_created", "reference.*")
    False
    """
    if pattern == "*":
        return True
    if "*" not in pattern:
        return event_name == pattern

    head, *middle, tail = pattern.split("*")
    if len(event_name) < len(head) + len(tail):
        return False
    if not event_name.startswith(head) or not event_name.endswith(tail):
        return False

    cursor = len(head)
    limit = len(event_name) - len(tail)
    for piece in middle:
        if not piece:
            continue
        found = event_name.find(piece, cursor, limit)
        if found == -1:
            return False
        cursor = found + len(piece)
    return True


def _sort_key(listener: EventListener) -> tuple[int, str]:
    return (listener.priority.value, listener.identifier)


class ListenerRegistry:
    """
    Registry for exact and wildcard listeners.

    Not thread-safe; use from a single asyncio event loop.
    """

    def __init__(self) -> None:
        self._listeners: dict[str, list[EventListener]] = {}
        self._wildcard_listeners: list[tuple[str, EventListener]] = []

    # ------------------------------------------------------------------ #
    # Modification
    # ------------------------------------------------------------------ #

    def add_listener(
        self,
        event_name: str,
        listener: EventListener,
        *,
        allow_duplicates: bool,
    ) -> bool:
        """
        Register a listener for an event name or wildcard pattern.

        Returns False when the (event_name, identifier) pair already exists and
        duplicates are not allowed.
        """
        if "*" in event_name:
            if not allow_duplicates and any(
                pattern == event_name and existing.identifier == listener.identifier
                for pattern, existing in self._wildcard_listeners
            ):
                return False
            self._wildcard_listeners.append((event_name, listener))
            self._wildcard_listeners.sort(key=lambda entry: _sort_key(entry[1]))
            return True

        bucket = self._listeners.setdefault(event_name, [])
        if not allow_duplicates and any(
            existing.identifier == listener.identifier for existing in bucket
        ):
            return False
        bucket.append(listener)
        bucket.sort(key=_sort_key)
        return True

    def remove_listener(self, event_name: str, identifier: str) -> bool:
        """Remove a listener by identifier. Returns whether anything was removed."""
        removed = False

        bucket = self._listeners.get(event_name)
        if bucket is not None:
            kept = [lst for lst in bucket if lst.identifier != identifier]
            removed = len(kept) < len(bucket)
            if kept:
                self._listeners[event_name] = kept
            else:
                del self._listeners[event_name]

        before = len(self._wildcard_listeners)
        self._wildcard_listeners = [
            (pattern, lst)
            for pattern, lst in self._wildcard_listeners
            if not (pattern == event_name and lst.identifier == identifier)
        ]
        return removed or len(self._wildcard_listeners) < before

    def clear_all(self) -> int:
        """Remove every listener and return how many there were."""
        total = self.get_total_listener_count()
        self._listeners.clear()
        self._wildcard_listeners.clear()
        return total

    # ------------------------------------------------------------------ #
    # Lookup & Once-Removal
    # ------------------------------------------------------------------ #

    def extract_listeners_for_event(self, event_name: str) -> list[EventListener]:
        """
        Collect exact and wildcard listeners for `event_name`, pruning once=True
        listeners from the registry in the same pass.
        """
        result: list[EventListener] = []

        bucket = self._listeners.get(event_name, [])
        result.extend(bucket)
        persistent = [lst for lst in bucket if not lst.once]
        if persistent:
            self._listeners[event_name] = persistent
        else:
            self._listeners.pop(event_name, None)

        remaining: list[tuple[str, EventListener]] = []
        for pattern, listener in self._wildcard_listeners:
            if matches_pattern(event_name, pattern):
                result.append(listener)
                if listener.once:
                    continue
            remaining.append((pattern, listener))
        self._wildcard_listeners = remaining

        result.sort(key=_sort_key)
        return result

    # ------------------------------------------------------------------ #
    # Introspection
    # ------------------------------------------------------------------ #

    def get_listener_count_for_event(self, event_name: str) -> int:
        count = len(self._listeners.get(event_name, []))
        count += sum(
            1
            for pattern, _ in self._wildcard_listeners
            if matches_pattern(event_name, pattern)
        )
        return count

    def get_total_listener_count(self) -> int:
        total = sum(len(bucket) for bucket in self._listeners.values())
        return total + len(self._wildcard_listeners)

    def get_all_event_keys(self) -> list[str]:
        keys = set(self._listeners)
        keys.update(pattern for pattern, _ in self._wildcard_listeners)
        return sorted(keys)
