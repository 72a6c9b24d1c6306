"""
In-memory maps backing the reference cache.

All mutation helpers are synchronous, so each one is atomic with respect to
other coroutines on the loop. Callers stage upstream data locally and commit
it here in one step.
"""

from __future__ import annotations

from typing import Dict, Iterable, Mapping, Optional, Set

from src.modules.reference.identity import CategoryReferenceId
from src.modules.reference.models import (
    MetricKey,
    MetricValue,
    Reference,
    SegmentDefinitionId,
    SessionId,
)


class ReferenceStore:
    """
    References, metric maps, segment memberships and the ownership record,
    all keyed by CategoryReferenceId.
    """

    def __init__(self) -> None:
        self.references: Dict[CategoryReferenceId, Reference] = {}
        self.metrics: Dict[CategoryReferenceId, Dict[MetricKey, MetricValue]] = {}
        self.memberships: Dict[CategoryReferenceId, Set[SegmentDefinitionId]] = {}
        self.owners: Dict[CategoryReferenceId, SessionId] = {}

    # ------------------------------------------------------------------ #
    # Commits
    # ------------------------------------------------------------------ #

    def commit_reference(
        self,
        key: CategoryReferenceId,
        reference: Reference,
        metrics: Mapping[MetricKey, MetricValue],
        memberships: Iterable[SegmentDefinitionId],
    ) -> None:
        """Replace everything cached for one reference."""
        self.references[key] = reference
        self.metrics[key] = dict(metrics)
        self.memberships[key] = set(memberships)

    def commit_bulk(
        self,
        references: Mapping[CategoryReferenceId, Reference],
        metrics: Mapping[CategoryReferenceId, Mapping[MetricKey, MetricValue]],
        memberships: Mapping[CategoryReferenceId, Iterable[SegmentDefinitionId]],
    ) -> None:
        """
        Merge a bulk preload. Metric maps and membership sets present in the
        batch replace the cached ones for their keys.
        """
        self.references.update(references)
        for key, values in metrics.items():
            self.metrics[key] = dict(values)
        for key, ids in memberships.items():
            self.memberships[key] = set(ids)

    def patch_metrics(
        self,
        key: CategoryReferenceId,
        updates: Mapping[MetricKey, MetricValue],
    ) -> bool:
        """Merge `updates` into an existing metric map. No-op when none is cached."""
        current = self.metrics.get(key)
        if current is None:
            return False
        current.update(updates)
        return True

    # ------------------------------------------------------------------ #
    # Ownership & eviction
    # ------------------------------------------------------------------ #

    def set_owner(self, key: CategoryReferenceId, session_id: SessionId) -> None:
        self.owners[key] = session_id

    def get_owner(self, key: CategoryReferenceId) -> Optional[SessionId]:
        return self.owners.get(key)

    def evict(self, key: CategoryReferenceId) -> None:
        self.references.pop(key, None)
        self.metrics.pop(key, None)
        self.memberships.pop(key, None)
        self.owners.pop(key, None)

    def clear(self) -> None:
        self.references.clear()
        self.metrics.clear()
        self.memberships.clear()
        self.owners.clear()

    def stats(self) -> Dict[str, int]:
        return {
            "references": len(self.references),
            "metric_maps": len(self.metrics),
            "membership_sets": len(self.memberships),
            "owned": len(self.owners),
        }
