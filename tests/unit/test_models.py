"""
Unit tests for reference domain models and wire parsing.
"""

import pytest

from src.core.exceptions import MetricValueError
from src.modules.reference.models import (
    Metric,
    MetricScope,
    MetricValueType,
    Reference,
    SegmentDefinition,
    SegmentMembership,
    build_metric_key,
    coerce_metric_value,
)


class TestMetricKey:
    def test_main_key_only(self):
        assert build_metric_key("TOP_SPEED") == "TOP_SPEED"

    def test_sub_key_is_appended(self):
        assert build_metric_key("KILLS", sub_key="PISTOL") == "KILLS:PISTOL"

    def test_scope_is_prefixed(self):
        key = build_metric_key("KILLS", sub_key="PISTOL", scope=MetricScope("SERVER", "eu-1"))
        assert key == "SERVER:eu-1:KILLS:PISTOL"


class TestCoerceMetricValue:
    def test_matching_declared_type_passes(self):
        assert coerce_metric_value(250, "NUMBER") == 250
        assert coerce_metric_value("Gasoline", MetricValueType.STRING) == "Gasoline"
        assert coerce_metric_value(True, "boolean") is True

    def test_bool_is_not_a_number(self):
        with pytest.raises(MetricValueError):
            coerce_metric_value(True, "NUMBER")

    def test_mismatched_type_raises(self):
        with pytest.raises(MetricValueError) as exc_info:
            coerce_metric_value("fast", "NUMBER", metric_key="TOP_SPEED")
        assert exc_info.value.details["metric_key"] == "TOP_SPEED"

    def test_value_outside_closed_set_raises(self):
        with pytest.raises(MetricValueError):
            coerce_metric_value(None)

    def test_unknown_declared_type_raises(self):
        with pytest.raises(MetricValueError):
            coerce_metric_value(1, "DATE")

    def test_map_alias_is_object(self):
        assert coerce_metric_value({"a": 1}, "MAP") == {"a": 1}


class TestWireParsing:
    def test_reference_from_wire(self):
        ref = Reference.from_wire(
            {
                "id": "VEHICLE:vehicle_1",
                "category": "VEHICLE",
                "referenceId": "vehicle_1",
                "name": "Test Vehicle 1",
                "enabled": True,
            }
        )
        assert ref.id == "VEHICLE:vehicle_1"
        assert ref.reference_id == "vehicle_1"

    def test_reference_without_id_derives_key(self):
        ref = Reference.from_wire({"category": "ACCOUNT", "referenceId": "7"})
        assert ref.id == "ACCOUNT:7"

    def test_metric_full_key_includes_scope_and_sub_key(self):
        metric = Metric.from_wire(
            {
                "categoryReferenceId": "CHARACTER:c1",
                "key": "KILLS",
                "subKey": "PISTOL",
                "scope": {"type": "SERVER", "key": "eu-1"},
                "valueType": "NUMBER",
                "value": 12,
            }
        )
        assert metric.full_key == "SERVER:eu-1:KILLS:PISTOL"
        assert metric.value_type is MetricValueType.NUMBER

    def test_segment_definition_delta_timestamp_stamps_both_dates(self):
        definition = SegmentDefinition.from_wire(
            {"id": "def_9", "type": "AUTO", "category": "VEHICLE", "policy": {}},
            timestamp=5000,
        )
        assert definition.created_date == 5000
        assert definition.last_modified_date == 5000

    def test_segment_definition_policies(self):
        definition = SegmentDefinition.from_wire(
            {
                "id": "def_1",
                "category": "VEHICLE",
                "policy": {"accessPolicies": ["VEHICLE_DRIVE"], "vehicle": {"maxSpeed": 250}},
            }
        )
        assert definition.policy.access_policies == ("VEHICLE_DRIVE",)
        assert definition.policy.attributes == {"vehicle": {"maxSpeed": 250}}

    def test_membership_key(self):
        membership = SegmentMembership.from_wire(
            {"segmentDefinitionId": "def_1", "category": "VEHICLE", "referenceId": "vehicle_1"}
        )
        assert membership.category_reference_id == "VEHICLE:vehicle_1"
