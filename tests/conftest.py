"""
Pytest Configuration and Fixtures for the Reference Server Tests
================================================================

Purpose
-------
Centralized fixtures for the test suite: an in-memory fake of the Engine
API, a private EventBus per test, a clean ConfigManager, and wire-format
test data.

Architecture Notes
------------------
- Unit tests never touch the network; the Engine API is faked in memory
  and the socket is driven with raw frames.
- The fake API paginates the way the Engine does: a listing of P pages
  reports `pageCount = P - 1`.
- Fixtures are function scoped; every test gets a clean slate.
"""

from __future__ import annotations

import asyncio
import os
from math import ceil
from typing import Any, Dict, Iterable, List, Optional

import pytest

from src.core.config.manager import ConfigManager
from src.core.event.bus import EventBus
from src.core.exceptions import EngineApiError
from src.core.logging.logger import get_logger
from src.modules.reference.identity import to_key
from src.modules.reference.models import (
    Metric,
    Page,
    Reference,
    SegmentDefinition,
    SegmentMembership,
)

logger = get_logger(__name__)

# ============================================================================
# PYTEST CONFIGURATION
# ============================================================================


def pytest_configure(config):
    """Configure pytest environment."""
    os.environ.setdefault("ENVIRONMENT", "testing")
    os.environ.setdefault("LOG_LEVEL", "DEBUG")


# ============================================================================
# WIRE TEST DATA
# ============================================================================

VEHICLE_REFERENCES: List[Dict[str, Any]] = [
    {
        "id": "VEHICLE:vehicle_1",
        "category": "VEHICLE",
        "categoryName": "Vehicle",
        "referenceId": "vehicle_1",
        "name": "Test Vehicle 1",
        "enabled": True,
    },
    {
        "id": "VEHICLE:vehicle_2",
        "category": "VEHICLE",
        "categoryName": "Vehicle",
        "referenceId": "vehicle_2",
        "name": "Test Vehicle 2",
        "enabled": True,
    },
    {
        "id": "VEHICLE:vehicle_3",
        "category": "VEHICLE",
        "categoryName": "Vehicle",
        "referenceId": "vehicle_3",
        "name": "Test Vehicle 3",
        "enabled": False,
    },
]

VEHICLE_METRICS: List[Dict[str, Any]] = [
    {
        "id": "metric_1",
        "categoryReferenceId": "VEHICLE:vehicle_1",
        "key": "ID",
        "valueType": "STRING",
        "value": "vehicle_1",
        "name": "Vehicle ID",
        "description": "Unique identifier for the vehicle",
    },
    {
        "id": "metric_2",
        "categoryReferenceId": "VEHICLE:vehicle_1",
        "key": "CREATED_DATE",
        "valueType": "NUMBER",
        "value": 1640995200000,
        "name": "Created Date",
        "description": "Date when the vehicle was created",
    },
    {
        "id": "metric_3",
        "categoryReferenceId": "VEHICLE:vehicle_2",
        "key": "IS_ACTIVE",
        "valueType": "BOOLEAN",
        "value": True,
        "name": "Is Active",
        "description": "Whether the vehicle is currently active",
    },
    {
        "id": "metric_4",
        "categoryReferenceId": "VEHICLE:vehicle_2",
        "key": "CREATED_DATE",
        "valueType": "NUMBER",
        "value": 1641081600000,
        "name": "Created Date",
        "description": "Date when the vehicle was created",
    },
]

VEHICLE_SEGMENTS: List[Dict[str, Any]] = [
    {
        "id": "segment_1",
        "segmentDefinitionId": "def_1",
        "name": "Test Vehicles",
        "type": "MANUAL",
        "category": "VEHICLE",
        "referenceId": "vehicle_1",
        "visible": True,
    },
]

SEGMENT_DEFINITIONS: List[Dict[str, Any]] = [
    {
        "id": "def_1",
        "type": "MANUAL",
        "category": "VEHICLE",
        "policy": {"accessPolicies": ["VEHICLE_DRIVE", "VEHICLE_LOCK"]},
        "style": {"color": {"background": "#FFD700", "text": "#000000"}},
        "visible": True,
        "createdDate": 1000,
        "lastModifiedDate": 2000,
    },
    {
        "id": "def_2",
        "type": "AUTO",
        "category": "ACCOUNT",
        "policy": {"accessPolicies": ["ADMIN", "VEHICLE_DRIVE"]},
        "style": {},
        "visible": False,
        "createdDate": 1000,
        "lastModifiedDate": 1000,
    },
]


# ============================================================================
# FAKE ENGINE API
# ============================================================================


class FakeEngineApi:
    """
    In-memory stand-in for `EngineApiClient`.

    Holds wire-format dicts and parses them through the real model parsers.
    Every call is recorded in `calls` as `(operation, args)`. Setting
    `failures[operation]` makes that operation raise; setting `gate` to an
    `asyncio.Event` makes the single-reference fetches wait for it.
    """

    def __init__(
        self,
        references: Iterable[Dict[str, Any]] = (),
        metrics: Iterable[Dict[str, Any]] = (),
        segments: Iterable[Dict[str, Any]] = (),
        definitions: Iterable[Dict[str, Any]] = (),
    ) -> None:
        self.references = list(references)
        self.metrics = list(metrics)
        self.segments = list(segments)
        self.definitions = list(definitions)
        self.calls: List[tuple] = []
        self.failures: Dict[str, Exception] = {}
        self.gate: Optional[asyncio.Event] = None
        self.closed = False

    def _record(self, operation: str, *args: Any) -> None:
        self.calls.append((operation, args))
        failure = self.failures.get(operation)
        if failure is not None:
            raise failure

    def count(self, operation: str) -> int:
        return sum(1 for name, _ in self.calls if name == operation)

    @staticmethod
    def _page(items: List[Any], page_index: int, page_size: int) -> Page:
        pages = max(1, ceil(len(items) / page_size))
        return Page(
            items=items[page_index * page_size : (page_index + 1) * page_size],
            page_index=page_index,
            page_count=pages - 1,
            page_size=page_size,
            total_count=len(items),
        )

    async def _wait_gate(self) -> None:
        if self.gate is not None:
            await self.gate.wait()

    # Paginated listings

    async def get_references(self, category, enabled=True, page_index=0, page_size=100):
        self._record("get_references", category, enabled, page_index, page_size)
        items = [
            Reference.from_wire(r)
            for r in self.references
            if r["category"] == category and (enabled is None or r["enabled"] == enabled)
        ]
        return self._page(items, page_index, page_size)

    async def get_metrics(self, category, page_index=0, page_size=100):
        self._record("get_metrics", category, page_index, page_size)
        items = [
            Metric.from_wire(m)
            for m in self.metrics
            if m["categoryReferenceId"].startswith(f"{category}:")
        ]
        return self._page(items, page_index, page_size)

    async def get_segments(self, category, page_index=0, page_size=100):
        self._record("get_segments", category, page_index, page_size)
        items = [
            SegmentMembership.from_wire(s) for s in self.segments if s["category"] == category
        ]
        return self._page(items, page_index, page_size)

    async def get_segment_definitions(self):
        self._record("get_segment_definitions")
        return [SegmentDefinition.from_wire(d) for d in self.definitions]

    # Single reference

    async def get_reference_by_id(self, id):
        self._record("get_reference_by_id", id)
        await self._wait_gate()
        for r in self.references:
            if to_key(r) == id:
                return Reference.from_wire(r)
        raise EngineApiError("get_reference_by_id", status_code=404)

    async def get_reference_metrics(self, id, full_keys=None):
        self._record("get_reference_metrics", id, full_keys)
        await self._wait_gate()
        metrics = [Metric.from_wire(m) for m in self.metrics if m["categoryReferenceId"] == id]
        if full_keys is not None:
            metrics = [m for m in metrics if m.full_key in full_keys]
        return metrics

    async def get_reference_segments(self, id):
        self._record("get_reference_segments", id)
        await self._wait_gate()
        return [
            SegmentMembership.from_wire(s) for s in self.segments if to_key(s) == id
        ]

    async def aclose(self):
        self.closed = True


# ============================================================================
# FIXTURES
# ============================================================================


@pytest.fixture
def fake_api() -> FakeEngineApi:
    """Engine API preloaded with the vehicle test data and two definitions."""
    return FakeEngineApi(
        references=VEHICLE_REFERENCES,
        metrics=VEHICLE_METRICS,
        segments=VEHICLE_SEGMENTS,
        definitions=SEGMENT_DEFINITIONS,
    )


@pytest.fixture
def config_manager():
    """
    Clean ConfigManager loaded from the repository's YAML defaults.

    Overrides made with `ConfigManager.set` are dropped after the test.
    """
    ConfigManager.clear_cache()
    ConfigManager.initialize()
    yield ConfigManager
    ConfigManager.reset()


@pytest.fixture
def event_bus(config_manager) -> EventBus:
    """Private EventBus per test."""
    return EventBus(config_manager=config_manager)


@pytest.fixture
def mock_event_bus(mocker):
    """
    Mock EventBus for unit tests that only assert on publishing.
    """
    mock_bus = mocker.MagicMock()
    mock_bus.publish = mocker.AsyncMock(return_value=[])
    mock_bus.subscribe = mocker.MagicMock(side_effect=lambda event, cb, **kw: kw.get("identifier"))
    mock_bus.unsubscribe = mocker.MagicMock(return_value=True)
    return mock_bus


@pytest.fixture
def recorded_events(event_bus):
    """Every `reference.*` event published on `event_bus`, in order."""
    captured: List[tuple] = []

    def _bind(event_name):
        async def _listener(payload):
            captured.append((event_name, payload))

        return _listener

    for name in (
        "reference.segment_created",
        "reference.segment_removed",
        "reference.metrics_updated",
    ):
        event_bus.subscribe(name, _bind(name), identifier=f"recorder@{name}")

    return captured
