"""
Unit tests for the reference identity codec.
"""

import pytest

from src.modules.reference.identity import (
    ReferenceCategory,
    ReferenceIdentity,
    parse_key,
    to_key,
)


class TestToKey:
    def test_string_is_returned_unchanged(self):
        assert to_key("VEHICLE:vehicle_1") == "VEHICLE:vehicle_1"

    def test_identity_pair_with_enum_category(self):
        key = to_key(ReferenceIdentity(ReferenceCategory.VEHICLE, "vehicle_1"))
        assert key == "VEHICLE:vehicle_1"

    def test_plain_tuple(self):
        assert to_key(("CHARACTER", "abc")) == "CHARACTER:abc"

    def test_mapping_with_camel_case_reference_id(self):
        assert to_key({"category": "ACCOUNT", "referenceId": "42"}) == "ACCOUNT:42"

    def test_mapping_with_snake_case_reference_id(self):
        assert to_key({"category": "ACCOUNT", "reference_id": "42"}) == "ACCOUNT:42"

    def test_opaque_category_is_accepted(self):
        assert to_key(("BLUEPRINT", "bp-1")) == "BLUEPRINT:bp-1"

    def test_mapping_without_reference_id_is_rejected(self):
        with pytest.raises(ValueError):
            to_key({"category": "ACCOUNT"})

    def test_wrong_tuple_length_is_rejected(self):
        with pytest.raises(ValueError):
            to_key(("ACCOUNT", "1", "extra"))

    def test_unsupported_type_is_rejected(self):
        with pytest.raises(TypeError):
            to_key(42)


class TestParseKey:
    def test_splits_at_first_separator(self):
        assert parse_key("CHARACTER:abc:def") == ReferenceIdentity("CHARACTER", "abc:def")

    def test_key_without_separator_has_empty_category(self):
        assert parse_key("orphan") == ReferenceIdentity("", "orphan")

    @pytest.mark.parametrize(
        "param",
        [
            "VEHICLE:vehicle_1",
            ("ACCOUNT", "42"),
            {"category": "CHARACTER", "referenceId": "c:1"},
            ReferenceIdentity(ReferenceCategory.DISCORD_USER, "99"),
        ],
    )
    def test_reparsing_a_key_reproduces_it(self, param):
        key = to_key(param)
        assert to_key(parse_key(key)) == key
