"""
Log context helpers for event dispatch.

Only payload keys are recorded, never values.
"""

from __future__ import annotations

from src.core.event.types import EventPayload
from src.core.logging.logger import set_log_context


def apply_event_log_context(event_name: str, payload: EventPayload) -> None:
    """
    Tag subsequent log records in the current context with the event being dispatched.

    Examples
    --------
    >>> apply_event_log_context("session.authorized", {"session_id": "s-1", "account_id": "42"})
    # later records carry event_type="session.authorized", event_keys=[...]
    """
    set_log_context(
        event_type=event_name,
        event_keys=list(payload.keys()),
    )
