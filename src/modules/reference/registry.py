"""
Global registry of segment definitions keyed by id.

Updates follow last-write-wins on `last_modified_date`: an update is applied
only when its timestamp is not older than the stored one.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Dict, Iterable, List, Optional

from src.core.logging.logger import get_logger
from src.modules.reference.identity import CategoryReferenceIdParam, to_key
from src.modules.reference.models import SegmentDefinition, SegmentDefinitionId
from src.modules.reference.store import ReferenceStore

logger = get_logger(__name__)


class SegmentDefinitionRegistry:
    def __init__(self, store: ReferenceStore) -> None:
        self._store = store
        self._definitions: Dict[SegmentDefinitionId, SegmentDefinition] = {}

    def __len__(self) -> int:
        return len(self._definitions)

    def __contains__(self, segment_definition_id: object) -> bool:
        return segment_definition_id in self._definitions

    def get(self, segment_definition_id: SegmentDefinitionId) -> Optional[SegmentDefinition]:
        return self._definitions.get(segment_definition_id)

    def all(self) -> List[SegmentDefinition]:
        return list(self._definitions.values())

    def list_for_reference(self, ref: CategoryReferenceIdParam) -> List[SegmentDefinition]:
        """Definitions for a reference's memberships; unknown ids are skipped."""
        ids = self._store.memberships.get(to_key(ref), ())
        return self.resolve(ids)

    def resolve(self, ids: Iterable[SegmentDefinitionId]) -> List[SegmentDefinition]:
        definitions = []
        for segment_definition_id in ids:
            definition = self._definitions.get(segment_definition_id)
            if definition is not None:
                definitions.append(definition)
        return definitions

    # ------------------------------------------------------------------ #
    # Mutation
    # ------------------------------------------------------------------ #

    def put(self, definition: SegmentDefinition) -> None:
        """Unconditional insert or replace."""
        self._definitions[definition.id] = definition

    def upsert(self, definition: SegmentDefinition, timestamp: int) -> bool:
        """
        Apply an update stamped `timestamp`.

        An absent definition is inserted with both dates set to `timestamp`.
        A present one is replaced only when `timestamp` is at least its
        `last_modified_date`, keeping the original `created_date`.

        Returns whether the registry changed.
        """
        current = self._definitions.get(definition.id)
        if current is None:
            self._definitions[definition.id] = replace(
                definition, created_date=timestamp, last_modified_date=timestamp
            )
            return True

        if timestamp < current.last_modified_date:
            logger.debug(
                "Discarding stale segment definition update",
                extra={
                    "segment_definition_id": definition.id,
                    "event_timestamp": timestamp,
                    "stored_last_modified_date": current.last_modified_date,
                },
            )
            return False

        self._definitions[definition.id] = replace(
            definition,
            created_date=current.created_date,
            last_modified_date=timestamp,
        )
        return True

    def remove(self, segment_definition_id: SegmentDefinitionId) -> bool:
        return self._definitions.pop(segment_definition_id, None) is not None

    def clear(self) -> None:
        self._definitions.clear()
