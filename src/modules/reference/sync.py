"""
Delta synchronization from push events.

Each handler mutates exactly one store and is safe to replay. Handlers with
nothing to patch return quietly; successful membership and metric patches
are re-published for downstream modules.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Mapping, Optional

from src.core.event.types import EventPayload
from src.core.logging.logger import LogContext, get_logger
from src.modules.reference.events import (
    REFERENCE_METRICS_UPDATED,
    REFERENCE_SEGMENT_CREATED,
    REFERENCE_SEGMENT_REMOVED,
    SOCKET_METRICS_UPDATED,
    SOCKET_SEGMENT_CREATED,
    SOCKET_SEGMENT_DEFINITION_CREATED,
    SOCKET_SEGMENT_DEFINITION_REMOVED,
    SOCKET_SEGMENT_DEFINITION_UPDATED,
    SOCKET_SEGMENT_REMOVED,
    MetricsUpdatedEvent,
    ReferenceMetricsUpdated,
    SegmentMembershipEvent,
)
from src.modules.reference.identity import CategoryReferenceId, to_key
from src.modules.reference.models import SegmentDefinition
from src.modules.reference.registry import SegmentDefinitionRegistry
from src.modules.reference.store import ReferenceStore

if TYPE_CHECKING:
    from src.core.engine.client import EngineApiClient
    from src.core.event.bus import EventBus

logger = get_logger(__name__)


def _membership_key(payload: Mapping[str, Any]) -> CategoryReferenceId:
    key = payload.get("category_reference_id")
    if key:
        return key
    return to_key(payload)


def _event_timestamp(payload: Mapping[str, Any]) -> int:
    return int(payload.get("timestamp") or 0)


class DeltaSyncHandlers:
    def __init__(
        self,
        api: EngineApiClient,
        store: ReferenceStore,
        registry: SegmentDefinitionRegistry,
        event_bus: EventBus,
    ) -> None:
        self._api = api
        self._store = store
        self._registry = registry
        self._events = event_bus

    # ------------------------------------------------------------------ #
    # Segment definitions
    # ------------------------------------------------------------------ #

    async def on_segment_definition_created(self, payload: EventPayload) -> None:
        with LogContext(event_type=SOCKET_SEGMENT_DEFINITION_CREATED, operation="put_definition"):
            timestamp = _event_timestamp(payload)
            self._registry.put(SegmentDefinition.from_wire(payload, timestamp=timestamp))

    async def on_segment_definition_updated(self, payload: EventPayload) -> None:
        with LogContext(event_type=SOCKET_SEGMENT_DEFINITION_UPDATED, operation="upsert_definition"):
            timestamp = _event_timestamp(payload)
            self._registry.upsert(
                SegmentDefinition.from_wire(payload, timestamp=timestamp), timestamp
            )

    async def on_segment_definition_removed(self, payload: EventPayload) -> None:
        with LogContext(event_type=SOCKET_SEGMENT_DEFINITION_REMOVED, operation="remove_definition"):
            self._registry.remove(str(payload["id"]))

    # ------------------------------------------------------------------ #
    # Memberships
    # ------------------------------------------------------------------ #

    async def on_segment_created(self, payload: SegmentMembershipEvent) -> None:
        key = _membership_key(payload)
        with LogContext(reference_id=key, event_type=SOCKET_SEGMENT_CREATED):
            ids = self._store.memberships.get(key)
            if ids is None:
                return
            ids.add(payload["segment_definition_id"])
            await self._events.publish(REFERENCE_SEGMENT_CREATED, payload)

    async def on_segment_removed(self, payload: SegmentMembershipEvent) -> None:
        key = _membership_key(payload)
        with LogContext(reference_id=key, event_type=SOCKET_SEGMENT_REMOVED):
            ids = self._store.memberships.get(key)
            if ids is None:
                return
            ids.discard(payload["segment_definition_id"])
            await self._events.publish(REFERENCE_SEGMENT_REMOVED, payload)

    # ------------------------------------------------------------------ #
    # Metrics
    # ------------------------------------------------------------------ #

    async def on_metrics_updated(self, payload: MetricsUpdatedEvent) -> Optional[Dict[str, Any]]:
        """
        Re-fetch the named metric keys for a cached reference and merge them.

        Returns the changed metrics, or None when the reference has no
        cached metric map or the event names no keys.
        """
        key = payload.get("id") or to_key(payload)
        with LogContext(reference_id=key, event_type=SOCKET_METRICS_UPDATED):
            if key not in self._store.metrics:
                return None

            keys = list(payload.get("keys") or [])
            if not keys:
                logger.debug("Metrics update without keys ignored", extra={"reference_key": key})
                return None

            metrics = await self._api.get_reference_metrics(key, full_keys=keys)

            changed = {metric.full_key: metric.value for metric in metrics}
            if not self._store.patch_metrics(key, changed):
                logger.debug(
                    "Reference evicted during metrics refresh",
                    extra={"reference_key": key},
                )
                return None

            update: ReferenceMetricsUpdated = {
                "id": key,
                "reference_id": payload.get("reference_id"),
                "category": payload.get("category"),
                "metrics": changed,
            }
            await self._events.publish(REFERENCE_METRICS_UPDATED, update)
            return changed
