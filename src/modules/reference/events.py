"""
Bus event names and payload shapes used by the reference subsystem.

Inbound push events are published by the engine socket (snake_case keys
translated from the wire). Session events are published by the session
lifecycle. Outbound events are published by the delta handlers after a
successful patch.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, TypedDict

# ---------------------------------------------------------------------------
# Inbound push (engine socket)
# ---------------------------------------------------------------------------

SOCKET_SEGMENT_DEFINITION_CREATED = "socket.segment_definition_created"
SOCKET_SEGMENT_DEFINITION_UPDATED = "socket.segment_definition_updated"
SOCKET_SEGMENT_DEFINITION_REMOVED = "socket.segment_definition_removed"
SOCKET_SEGMENT_CREATED = "socket.segment_created"
SOCKET_SEGMENT_REMOVED = "socket.segment_removed"
SOCKET_METRICS_UPDATED = "socket.metrics_updated"

# Wire event name -> bus event name
SOCKET_EVENT_MAP: Dict[str, str] = {
    "segmentDefinition.created": SOCKET_SEGMENT_DEFINITION_CREATED,
    "segmentDefinition.updated": SOCKET_SEGMENT_DEFINITION_UPDATED,
    "segmentDefinition.removed": SOCKET_SEGMENT_DEFINITION_REMOVED,
    "segment.created": SOCKET_SEGMENT_CREATED,
    "segment.removed": SOCKET_SEGMENT_REMOVED,
    "metrics.updated": SOCKET_METRICS_UPDATED,
}

# ---------------------------------------------------------------------------
# Session lifecycle
# ---------------------------------------------------------------------------

SESSION_AUTHORIZED = "session.authorized"
SESSION_CHARACTER_LINKED = "session.character_linked"
SESSION_FINISHED = "session.finished"

# ---------------------------------------------------------------------------
# Outbound
# ---------------------------------------------------------------------------

REFERENCE_SEGMENT_CREATED = "reference.segment_created"
REFERENCE_SEGMENT_REMOVED = "reference.segment_removed"
REFERENCE_METRICS_UPDATED = "reference.metrics_updated"


class SegmentMembershipEvent(TypedDict, total=False):
    category_reference_id: str
    segment_definition_id: str
    category: str
    reference_id: str
    timestamp: int


class MetricsUpdatedEvent(TypedDict, total=False):
    id: str
    category: str
    reference_id: str
    keys: List[str]
    timestamp: int


class ReferenceMetricsUpdated(TypedDict):
    id: str
    reference_id: Optional[str]
    category: Optional[str]
    metrics: Dict[str, Any]


class SessionAuthorized(TypedDict):
    session_id: str
    account_id: str


class SessionCharacterLinked(TypedDict):
    session_id: str
    character_id: str


class SessionFinished(TypedDict, total=False):
    session_id: str
    account_id: Optional[str]
    character_id: Optional[str]
