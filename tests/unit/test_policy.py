"""
Unit tests for access-policy aggregation.
"""

import pytest

from src.modules.reference.models import SegmentDefinition, SegmentPolicy
from src.modules.reference.policy import PolicyAggregator
from src.modules.reference.registry import SegmentDefinitionRegistry
from src.modules.reference.store import ReferenceStore


@pytest.fixture
def aggregator():
    store = ReferenceStore()
    registry = SegmentDefinitionRegistry(store)
    for id, policies in (
        ("def_1", ("VEHICLE_DRIVE", "VEHICLE_LOCK")),
        ("def_2", ("ADMIN", "VEHICLE_DRIVE")),
        ("def_3", ()),
    ):
        registry.put(
            SegmentDefinition(
                id=id,
                type="MANUAL",
                category="ACCOUNT",
                policy=SegmentPolicy(access_policies=policies),
            )
        )
    store.memberships["ACCOUNT:42"] = {"def_1", "def_2", "def_3", "def_removed"}
    store.memberships["ACCOUNT:7"] = set()
    return PolicyAggregator(store, registry)


class TestAccessPolicies:
    def test_union_is_deduplicated(self, aggregator):
        policies = aggregator.get_reference_access_policies("ACCOUNT:42")
        assert sorted(policies) == ["ADMIN", "VEHICLE_DRIVE", "VEHICLE_LOCK"]

    def test_no_memberships_gives_empty_union(self, aggregator):
        assert aggregator.get_reference_access_policies("ACCOUNT:7") == []
        assert aggregator.get_reference_access_policies("ACCOUNT:unknown") == []

    def test_has_access_policy(self, aggregator):
        assert aggregator.has_access_policy(("ACCOUNT", "42"), "ADMIN") is True
        assert aggregator.has_access_policy(("ACCOUNT", "42"), "BAN") is False
        assert aggregator.has_access_policy(("ACCOUNT", "7"), "ADMIN") is False

    def test_has_access_policy_in_explicit_definitions(self, aggregator):
        assert aggregator.has_access_policy_in_segment_definitions("ADMIN", ["def_3", "def_2"]) is True
        assert aggregator.has_access_policy_in_segment_definitions("ADMIN", ["def_1", "nope"]) is False
        assert aggregator.has_access_policy_in_segment_definitions("ADMIN", []) is False


class TestHasSegment:
    def test_membership(self, aggregator):
        assert aggregator.has_segment("ACCOUNT:42", "def_1") is True
        assert aggregator.has_segment("ACCOUNT:42", "def_9") is False
        assert aggregator.has_segment("ACCOUNT:unknown", "def_1") is False
