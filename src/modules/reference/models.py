"""
Reference domain models.

Purpose
-------
Immutable records for the data cached by the reference subsystem, plus the
parsers that turn Engine API / push-channel wire dicts into them.

Wire payloads use camelCase (`referenceId`, `lastModifiedDate`); bus payloads
produced by the socket use snake_case. Parsers accept either spelling.

MetricValue
-----------
A closed set of variants: int | float | str | bool | list | dict. Producers
go through `coerce_metric_value()`, which checks the raw value against the
declared `MetricValueType` and raises `MetricValueError` otherwise.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Generic, List, Mapping, Optional, Tuple, TypeVar, Union

from src.core.exceptions import MetricValueError
from src.modules.reference.identity import (
    CategoryReferenceId,
    category_value,
    to_key,
)

MetricKey = str
MetricValue = Union[int, float, str, bool, List[Any], Dict[str, Any]]
SegmentDefinitionId = str
SessionId = str
AccessPolicy = str

T = TypeVar("T")


def _pick(data: Mapping[str, Any], snake: str, camel: str, default: Any = None) -> Any:
    if snake in data:
        return data[snake]
    return data.get(camel, default)


# ============================================================================
# Metric values
# ============================================================================


class MetricValueType(str, Enum):
    NUMBER = "NUMBER"
    STRING = "STRING"
    BOOLEAN = "BOOLEAN"
    ARRAY = "ARRAY"
    OBJECT = "OBJECT"

    @classmethod
    def infer(cls, value: Any) -> Optional["MetricValueType"]:
        """Variant for a raw Python value, or None when it is outside the closed set."""
        if isinstance(value, bool):
            return cls.BOOLEAN
        if isinstance(value, (int, float)):
            return cls.NUMBER
        if isinstance(value, str):
            return cls.STRING
        if isinstance(value, list):
            return cls.ARRAY
        if isinstance(value, dict):
            return cls.OBJECT
        return None


_VALUE_TYPE_ALIASES = {"MAP": MetricValueType.OBJECT, "LIST": MetricValueType.ARRAY}


def coerce_metric_value(
    raw: Any,
    value_type: Union[MetricValueType, str, None] = None,
    metric_key: str = "",
) -> MetricValue:
    """
    Validate `raw` against `value_type` and return it as a MetricValue.

    With no declared type the variant is inferred from the raw value.

    Raises
    ------
    MetricValueError
        If the value is not one of the closed variants, or does not match
        the declared type.
    """
    inferred = MetricValueType.infer(raw)
    if inferred is None:
        raise MetricValueError(metric_key, str(value_type or "MetricValue"), raw)

    if value_type is None:
        return raw

    if isinstance(value_type, str) and not isinstance(value_type, MetricValueType):
        normalized = value_type.upper()
        declared = _VALUE_TYPE_ALIASES.get(normalized)
        if declared is None:
            try:
                declared = MetricValueType(normalized)
            except ValueError:
                raise MetricValueError(metric_key, value_type, raw) from None
    else:
        declared = MetricValueType(value_type)

    if declared is not inferred:
        raise MetricValueError(metric_key, declared.value, raw)
    return raw


@dataclass(frozen=True, slots=True)
class MetricScope:
    type: str
    key: str


def build_metric_key(
    main_key: str,
    sub_key: Optional[str] = None,
    scope: Optional[MetricScope] = None,
) -> MetricKey:
    """
    Compose `[SCOPE_TYPE:SCOPE_KEY:]MAIN_KEY[:SUB_KEY]`.

    Examples
    --------
    >>> build_metric_key("TOP_SPEED")
    'TOP_SPEED'
    >>> build_metric_key("KILLS", sub_key="PISTOL", scope=MetricScope("SERVER", "eu-1"))
    'SERVER:eu-1:KILLS:PISTOL'
    """
    key = ""
    if scope is not None:
        key += f"{scope.type}:{scope.key}:"
    key += main_key
    if sub_key:
        key += f":{sub_key}"
    return key


# ============================================================================
# Records
# ============================================================================


@dataclass(frozen=True, slots=True)
class Reference:
    """An external entity (account, character, vehicle, ...)."""

    id: CategoryReferenceId
    category: str
    reference_id: str
    name: str = ""
    enabled: bool = True

    @classmethod
    def from_wire(cls, data: Mapping[str, Any]) -> "Reference":
        category = category_value(data["category"])
        reference_id = str(_pick(data, "reference_id", "referenceId"))
        return cls(
            id=data.get("id") or to_key((category, reference_id)),
            category=category,
            reference_id=reference_id,
            name=data.get("name") or "",
            enabled=bool(data.get("enabled", True)),
        )


@dataclass(frozen=True, slots=True)
class Metric:
    """A single typed attribute value belonging to a reference."""

    category_reference_id: CategoryReferenceId
    key: str
    value: MetricValue
    value_type: Optional[MetricValueType] = None
    sub_key: Optional[str] = None
    scope: Optional[MetricScope] = None
    id: Optional[str] = None
    name: Optional[str] = None

    @property
    def full_key(self) -> MetricKey:
        return build_metric_key(self.key, self.sub_key, self.scope)

    @classmethod
    def from_wire(cls, data: Mapping[str, Any]) -> "Metric":
        raw_scope = data.get("scope")
        scope = (
            MetricScope(type=str(raw_scope["type"]), key=str(raw_scope["key"]))
            if raw_scope
            else None
        )
        sub_key = _pick(data, "sub_key", "subKey")
        main_key = str(data["key"])
        full_key = build_metric_key(main_key, sub_key, scope)

        raw_type = _pick(data, "value_type", "valueType")
        value = coerce_metric_value(data.get("value"), raw_type, full_key)

        category_reference_id = _pick(data, "category_reference_id", "categoryReferenceId")
        if category_reference_id is None:
            category_reference_id = to_key(data)

        return cls(
            category_reference_id=category_reference_id,
            key=main_key,
            value=value,
            value_type=MetricValueType.infer(value),
            sub_key=sub_key,
            scope=scope,
            id=data.get("id"),
            name=data.get("name"),
        )


class SegmentType(str, Enum):
    MANUAL = "MANUAL"
    AUTO = "AUTO"


@dataclass(frozen=True, slots=True)
class SegmentPolicy:
    access_policies: Tuple[AccessPolicy, ...] = ()
    attributes: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_wire(cls, data: Optional[Mapping[str, Any]]) -> "SegmentPolicy":
        if not data:
            return cls()
        policies = _pick(data, "access_policies", "accessPolicies", []) or []
        attributes = {
            k: v for k, v in data.items() if k not in ("access_policies", "accessPolicies")
        }
        return cls(access_policies=tuple(policies), attributes=attributes)


@dataclass(frozen=True, slots=True)
class SegmentDefinition:
    """
    A rule/policy template that references can be members of.

    Dates are epoch milliseconds.
    """

    id: SegmentDefinitionId
    type: str
    category: str
    policy: SegmentPolicy = field(default_factory=SegmentPolicy)
    style: Dict[str, Any] = field(default_factory=dict)
    visible: bool = True
    created_date: int = 0
    last_modified_date: int = 0

    @classmethod
    def from_wire(
        cls,
        data: Mapping[str, Any],
        timestamp: Optional[int] = None,
    ) -> "SegmentDefinition":
        """
        Parse a definition. When `timestamp` is given (delta events) it stamps
        both dates; otherwise the payload's own dates are used.
        """
        created = _pick(data, "created_date", "createdDate", 0)
        modified = _pick(data, "last_modified_date", "lastModifiedDate", created)
        if timestamp is not None:
            created = modified = timestamp

        raw_type = data.get("type", SegmentType.MANUAL.value)
        return cls(
            id=str(data["id"]),
            type=category_value(raw_type),
            category=category_value(data.get("category", "")),
            policy=SegmentPolicy.from_wire(data.get("policy")),
            style=dict(data.get("style") or {}),
            visible=bool(data.get("visible", True)),
            created_date=int(created or 0),
            last_modified_date=int(modified or 0),
        )


@dataclass(frozen=True, slots=True)
class SegmentMembership:
    """A reference's membership in one segment definition."""

    segment_definition_id: SegmentDefinitionId
    category: str
    reference_id: str

    @property
    def category_reference_id(self) -> CategoryReferenceId:
        return to_key((self.category, self.reference_id))

    @classmethod
    def from_wire(cls, data: Mapping[str, Any]) -> "SegmentMembership":
        return cls(
            segment_definition_id=str(_pick(data, "segment_definition_id", "segmentDefinitionId")),
            category=category_value(data["category"]),
            reference_id=str(_pick(data, "reference_id", "referenceId")),
        )


@dataclass(frozen=True)
class Page(Generic[T]):
    """
    One page of a paginated upstream listing.

    `page_count` is reported by the upstream; the bulk loader stops once
    `page_count <= page_index`.
    """

    items: List[T]
    page_index: int
    page_count: int
    page_size: int = 0
    total_count: Optional[int] = None
