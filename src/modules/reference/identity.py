"""
Reference identity codec.

A reference is addressed by a composite `CategoryReferenceId` string of the
form `"{category}:{reference_id}"`. Category and id are opaque strings; the
codec does not validate embedded separators, so reversal is by convention
only: `parse_key` splits at the first `:`.

Every cache component normalizes its inputs through `to_key` before touching
a map.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Mapping, NamedTuple, Union

CategoryReferenceId = str

KEY_SEPARATOR = ":"


class ReferenceCategory(str, Enum):
    """Known reference categories. Any other opaque string is accepted too."""

    ACCOUNT = "ACCOUNT"
    CHARACTER = "CHARACTER"
    VEHICLE = "VEHICLE"
    DISCORD_USER = "DISCORD_USER"


class ReferenceIdentity(NamedTuple):
    category: str
    reference_id: str


CategoryReferenceIdParam = Union[
    CategoryReferenceId,
    ReferenceIdentity,
    tuple,
    Mapping[str, Any],
]


def category_value(category: Union[str, Enum]) -> str:
    """Plain string form of a category (enum members contribute their value)."""
    if isinstance(category, Enum):
        return str(category.value)
    return str(category)


def to_key(param: CategoryReferenceIdParam) -> CategoryReferenceId:
    """
    Normalize any accepted reference form to its CategoryReferenceId.

    Examples
    --------
    >>> to_key("VEHICLE:vehicle_1")
    'VEHICLE:vehicle_1'
    >>> to_key(ReferenceIdentity(ReferenceCategory.VEHICLE, "vehicle_1"))
    'VEHICLE:vehicle_1'
    >>> to_key({"category": "ACCOUNT", "referenceId": "42"})
    'ACCOUNT:42'
    """
    if isinstance(param, str):
        return param

    if isinstance(param, tuple):
        if len(param) != 2:
            raise ValueError(f"Reference pair must have 2 elements, got {len(param)}")
        category, reference_id = param
    elif isinstance(param, Mapping):
        category = param.get("category")
        reference_id = param.get("reference_id", param.get("referenceId"))
        if category is None or reference_id is None:
            raise ValueError(
                "Reference mapping requires 'category' and 'reference_id' "
                f"(or 'referenceId'), got keys {sorted(param)}"
            )
    else:
        raise TypeError(f"Unsupported reference identifier type: {type(param).__name__}")

    return f"{category_value(category)}{KEY_SEPARATOR}{reference_id}"


def parse_key(key: CategoryReferenceId) -> ReferenceIdentity:
    """
    Split a key at the first separator.

    A key without a separator yields an empty category.

    Examples
    --------
    >>> parse_key("CHARACTER:abc:def")
    ReferenceIdentity(category='CHARACTER', reference_id='abc:def')
    """
    category, sep, reference_id = key.partition(KEY_SEPARATOR)
    if not sep:
        return ReferenceIdentity("", key)
    return ReferenceIdentity(category, reference_id)
