"""
Unit tests for delta sync handlers.
"""

import pytest

from src.core.logging.logger import get_log_context
from src.modules.reference.registry import SegmentDefinitionRegistry
from src.modules.reference.store import ReferenceStore
from src.modules.reference.sync import DeltaSyncHandlers
from src.modules.reference.models import Reference


@pytest.fixture
def store():
    store = ReferenceStore()
    store.commit_reference(
        "VEHICLE:vehicle_1",
        Reference(id="VEHICLE:vehicle_1", category="VEHICLE", reference_id="vehicle_1"),
        {"ID": "vehicle_1", "CREATED_DATE": 0},
        {"def_1"},
    )
    return store


@pytest.fixture
def registry(store):
    return SegmentDefinitionRegistry(store)


@pytest.fixture
def handlers(fake_api, store, registry, event_bus):
    return DeltaSyncHandlers(fake_api, store, registry, event_bus)


def _definition_payload(timestamp, policies=("VEHICLE_DRIVE",)):
    return {
        "id": "def_7",
        "category": "VEHICLE",
        "type": "AUTO",
        "policy": {"accessPolicies": list(policies)},
        "style": {},
        "visible": True,
        "timestamp": timestamp,
    }


@pytest.mark.asyncio
class TestSegmentDefinitionEvents:
    async def test_created_stamps_both_dates(self, handlers, registry):
        await handlers.on_segment_definition_created(_definition_payload(1700))

        stored = registry.get("def_7")
        assert stored.created_date == 1700
        assert stored.last_modified_date == 1700

    async def test_updated_when_absent_behaves_like_created(self, handlers, registry):
        await handlers.on_segment_definition_updated(_definition_payload(1700))
        assert registry.get("def_7").created_date == 1700

    async def test_stale_update_is_dropped(self, handlers, registry):
        await handlers.on_segment_definition_created(_definition_payload(2000))
        await handlers.on_segment_definition_updated(_definition_payload(1000, ("ADMIN",)))

        stored = registry.get("def_7")
        assert stored.policy.access_policies == ("VEHICLE_DRIVE",)
        assert stored.last_modified_date == 2000

    async def test_newer_update_preserves_created_date(self, handlers, registry):
        await handlers.on_segment_definition_created(_definition_payload(2000))
        await handlers.on_segment_definition_updated(_definition_payload(3000, ("ADMIN",)))

        stored = registry.get("def_7")
        assert stored.policy.access_policies == ("ADMIN",)
        assert stored.created_date == 2000
        assert stored.last_modified_date == 3000

    async def test_removed_deletes(self, handlers, registry):
        await handlers.on_segment_definition_created(_definition_payload(2000))
        await handlers.on_segment_definition_removed({"id": "def_7", "timestamp": 1})
        assert registry.get("def_7") is None


@pytest.mark.asyncio
class TestMembershipEvents:
    async def test_created_adds_and_republishes(self, handlers, store, recorded_events):
        payload = {
            "category_reference_id": "VEHICLE:vehicle_1",
            "segment_definition_id": "def_2",
            "category": "VEHICLE",
            "reference_id": "vehicle_1",
        }

        await handlers.on_segment_created(payload)

        assert store.memberships["VEHICLE:vehicle_1"] == {"def_1", "def_2"}
        assert recorded_events == [("reference.segment_created", payload)]

    async def test_removed_discards_and_republishes(self, handlers, store, recorded_events):
        payload = {
            "category_reference_id": "VEHICLE:vehicle_1",
            "segment_definition_id": "def_1",
            "category": "VEHICLE",
            "reference_id": "vehicle_1",
        }

        await handlers.on_segment_removed(payload)

        assert store.memberships["VEHICLE:vehicle_1"] == set()
        assert recorded_events == [("reference.segment_removed", payload)]

    async def test_untracked_reference_is_a_silent_no_op(self, handlers, store, recorded_events):
        await handlers.on_segment_created(
            {
                "category_reference_id": "VEHICLE:ghost",
                "segment_definition_id": "def_2",
                "category": "VEHICLE",
                "reference_id": "ghost",
            }
        )

        assert "VEHICLE:ghost" not in store.memberships
        assert recorded_events == []

    async def test_key_is_derived_when_payload_lacks_it(self, handlers, store):
        await handlers.on_segment_created(
            {"segment_definition_id": "def_3", "category": "VEHICLE", "reference_id": "vehicle_1"}
        )
        assert "def_3" in store.memberships["VEHICLE:vehicle_1"]


@pytest.mark.asyncio
class TestMetricsUpdated:
    async def test_refetches_only_named_keys(self, fake_api, handlers, store, recorded_events):
        changed = await handlers.on_metrics_updated(
            {
                "id": "VEHICLE:vehicle_1",
                "category": "VEHICLE",
                "reference_id": "vehicle_1",
                "keys": ["CREATED_DATE"],
            }
        )

        assert fake_api.calls[-1] == (
            "get_reference_metrics",
            ("VEHICLE:vehicle_1", ["CREATED_DATE"]),
        )
        assert changed == {"CREATED_DATE": 1640995200000}
        assert store.metrics["VEHICLE:vehicle_1"] == {
            "ID": "vehicle_1",
            "CREATED_DATE": 1640995200000,
        }
        assert recorded_events == [
            (
                "reference.metrics_updated",
                {
                    "id": "VEHICLE:vehicle_1",
                    "reference_id": "vehicle_1",
                    "category": "VEHICLE",
                    "metrics": {"CREATED_DATE": 1640995200000},
                },
            )
        ]

    async def test_uncached_reference_is_ignored(self, fake_api, handlers, store, recorded_events):
        result = await handlers.on_metrics_updated(
            {
                "id": "VEHICLE:vehicle_2",
                "category": "VEHICLE",
                "reference_id": "vehicle_2",
                "keys": ["IS_ACTIVE"],
            }
        )

        assert result is None
        assert fake_api.count("get_reference_metrics") == 0
        assert "VEHICLE:vehicle_2" not in store.metrics
        assert recorded_events == []

    async def test_event_without_keys_skips_refetch(self, fake_api, handlers, store, recorded_events):
        for keys in ([], None):
            result = await handlers.on_metrics_updated({"id": "VEHICLE:vehicle_1", "keys": keys})
            assert result is None

        assert fake_api.count("get_reference_metrics") == 0
        assert store.metrics["VEHICLE:vehicle_1"] == {"ID": "vehicle_1", "CREATED_DATE": 0}
        assert recorded_events == []


@pytest.mark.asyncio
class TestLogContext:
    async def test_republish_carries_reference_context(self, handlers, event_bus):
        seen = []
        event_bus.subscribe(
            "reference.segment_created",
            lambda payload: seen.append(get_log_context()),
            identifier="context-capture@reference.segment_created",
        )

        await handlers.on_segment_created(
            {"category_reference_id": "VEHICLE:vehicle_1", "segment_definition_id": "def_2"}
        )

        assert seen[0]["reference_id"] == "VEHICLE:vehicle_1"
        assert get_log_context().get("reference_id") in (None, "N/A")
