"""
Access-policy queries over segment memberships.
"""

from __future__ import annotations

from typing import Iterable, List

from src.modules.reference.identity import CategoryReferenceIdParam, to_key
from src.modules.reference.models import AccessPolicy, SegmentDefinitionId
from src.modules.reference.registry import SegmentDefinitionRegistry
from src.modules.reference.store import ReferenceStore


class PolicyAggregator:
    def __init__(self, store: ReferenceStore, registry: SegmentDefinitionRegistry) -> None:
        self._store = store
        self._registry = registry

    def get_reference_access_policies(self, ref: CategoryReferenceIdParam) -> List[AccessPolicy]:
        """Deduplicated union of the policies of every segment the reference is in."""
        policies: List[AccessPolicy] = []
        seen = set()
        for definition in self._registry.list_for_reference(ref):
            for policy in definition.policy.access_policies:
                if policy not in seen:
                    seen.add(policy)
                    policies.append(policy)
        return policies

    def has_access_policy(self, ref: CategoryReferenceIdParam, policy: AccessPolicy) -> bool:
        ids = self._store.memberships.get(to_key(ref), ())
        return self.has_access_policy_in_segment_definitions(policy, ids)

    def has_access_policy_in_segment_definitions(
        self,
        policy: AccessPolicy,
        segment_definition_ids: Iterable[SegmentDefinitionId],
    ) -> bool:
        for segment_definition_id in segment_definition_ids:
            definition = self._registry.get(segment_definition_id)
            if definition is not None and policy in definition.policy.access_policies:
                return True
        return False

    def has_segment(
        self,
        ref: CategoryReferenceIdParam,
        segment_definition_id: SegmentDefinitionId,
    ) -> bool:
        return segment_definition_id in self._store.memberships.get(to_key(ref), ())
