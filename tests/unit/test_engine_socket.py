"""
Unit tests for the Engine push-channel socket bridge.
"""

import asyncio
import json

import pytest
import websockets

from src.core.engine.socket import EngineSocket, to_snake_case
from src.core.exceptions import EngineSocketError
from src.modules.reference.events import (
    REFERENCE_SEGMENT_CREATED,
    SOCKET_METRICS_UPDATED,
    SOCKET_SEGMENT_CREATED,
)
from src.modules.reference.models import Reference
from src.modules.reference.registry import SegmentDefinitionRegistry
from src.modules.reference.store import ReferenceStore
from src.modules.reference.sync import DeltaSyncHandlers

_CLOSED = object()


class FakeWebSocket:
    """In-memory websocket: frames queued by the test are returned by recv()."""

    def __init__(self, frames=()):
        self.inbox: asyncio.Queue = asyncio.Queue()
        for frame in frames:
            self.inbox.put_nowait(frame)
        self.sent = []
        self.closed = False

    async def recv(self):
        frame = await self.inbox.get()
        if frame is _CLOSED:
            raise websockets.ConnectionClosed(None, None)
        return frame

    async def send(self, message):
        self.sent.append(json.loads(message))

    async def close(self):
        if not self.closed:
            self.closed = True
            self.inbox.put_nowait(_CLOSED)


def _frame(event, data):
    return json.dumps({"event": event, "data": data, "headers": {}})


def _socket(event_bus, connect=None, **kwargs):
    options = {
        "api_key_id": "key-id",
        "api_key_secret": "key-secret",
        "server_id": "eu-1",
        "initial_backoff_seconds": 0,
        "handshake_timeout_seconds": 0.5,
        "version": "9.9.9",
    }
    options.update(kwargs)
    return EngineSocket("ws://engine.test/ws", event_bus, connect=connect, **options)


class TestHelpers:
    @pytest.mark.parametrize(
        "name, expected",
        [
            ("segmentDefinitionId", "segment_definition_id"),
            ("categoryReferenceId", "category_reference_id"),
            ("id", "id"),
            ("keys", "keys"),
        ],
    )
    def test_to_snake_case(self, name, expected):
        assert to_snake_case(name) == expected

    def test_connection_url_carries_credentials(self, event_bus):
        url = _socket(event_bus).connection_url()
        assert url == "ws://engine.test/ws?apiKeyId=key-id&apiKeySecret=key-secret&serverId=eu-1"

    def test_connection_url_without_credentials(self, event_bus):
        socket = _socket(event_bus, api_key_id="", api_key_secret="", server_id="")
        assert socket.connection_url() == "ws://engine.test/ws"

    def test_backoff_doubles_and_caps(self, event_bus):
        socket = _socket(event_bus, initial_backoff_seconds=1.0, max_backoff_seconds=5.0)
        assert [socket.backoff_delay(n) for n in (1, 2, 3, 4)] == [1.0, 2.0, 4.0, 5.0]


class TestTranslateMessage:
    @pytest.fixture
    def socket(self, event_bus):
        socket = _socket(event_bus)
        socket.connected_at = 1000
        return socket

    def test_maps_known_event_and_converts_keys(self, socket):
        raw = _frame(
            "segment.created",
            {
                "categoryReferenceId": "VEHICLE:vehicle_1",
                "segmentDefinitionId": "def_2",
                "category": "VEHICLE",
                "referenceId": "vehicle_1",
                "timestamp": 2000,
            },
        )

        event, payload = socket.translate_message(raw)

        assert event == "socket.segment_created"
        assert payload == {
            "category_reference_id": "VEHICLE:vehicle_1",
            "segment_definition_id": "def_2",
            "category": "VEHICLE",
            "reference_id": "vehicle_1",
            "timestamp": 2000,
        }

    def test_definition_and_metrics_events_are_mapped(self, socket):
        assert socket.translate_message(_frame("segmentDefinition.updated", {"id": "d"}))[0] == (
            "socket.segment_definition_updated"
        )
        assert socket.translate_message(_frame("metrics.updated", {"id": "x"}))[0] == (
            "socket.metrics_updated"
        )

    def test_messages_older_than_connection_are_dropped(self, socket):
        assert socket.translate_message(_frame("segment.removed", {"id": "x", "timestamp": 999})) is None

    def test_messages_without_timestamp_pass(self, socket):
        assert socket.translate_message(_frame("segment.removed", {"id": "x"})) is not None

    @pytest.mark.parametrize(
        "raw",
        [
            "{not json",
            json.dumps([1, 2]),
            _frame("segment.created", None),
            _frame("segment.created", {}),
            _frame("segment.created", [1]),
            _frame("account.banned", {"id": "x"}),
        ],
    )
    def test_skipped_frames(self, socket, raw):
        assert socket.translate_message(raw) is None


@pytest.mark.asyncio
class TestHandleMessage:
    async def test_publishes_translated_event(self, event_bus):
        socket = _socket(event_bus)
        seen = []
        event_bus.subscribe("socket.metrics_updated", seen.append)

        await socket.handle_message(_frame("metrics.updated", {"id": "ACCOUNT:42", "keys": ["LEVEL"]}))
        await socket.handle_message("{broken")

        assert seen == [{"id": "ACCOUNT:42", "keys": ["LEVEL"]}]


@pytest.mark.asyncio
class TestLifecycle:
    async def test_handshake_reply_then_events_flow_to_bus(self, event_bus):
        ws = FakeWebSocket([json.dumps({"event": "connected"})])
        urls = []

        async def connect(url):
            urls.append(url)
            return ws

        received = asyncio.Event()
        seen = []

        def on_created(payload):
            seen.append(payload)
            received.set()

        event_bus.subscribe("socket.segment_created", on_created)
        socket = _socket(event_bus, connect=connect)

        await socket.start()

        assert socket.is_connected
        assert urls == [socket.connection_url()]
        assert ws.sent == [
            {
                "event": "connected",
                "data": {"version": "9.9.9", "timestamp": socket.connected_at},
                "headers": {},
            }
        ]

        ws.inbox.put_nowait(
            _frame(
                "segment.created",
                {"segmentDefinitionId": "def_1", "category": "VEHICLE", "referenceId": "vehicle_9"},
            )
        )
        await asyncio.wait_for(received.wait(), timeout=1)

        await socket.stop()

        assert seen[0]["segment_definition_id"] == "def_1"
        assert ws.closed
        assert not socket.is_connected

    async def test_retries_until_connected(self, event_bus):
        attempts = []

        async def connect(url):
            attempts.append(url)
            if len(attempts) < 3:
                raise OSError("connection refused")
            return FakeWebSocket([json.dumps({"event": "connected"})])

        socket = _socket(event_bus, connect=connect, max_retries=5)

        await socket.start()
        await socket.stop()

        assert len(attempts) == 3

    async def test_gives_up_after_max_retries(self, event_bus):
        async def connect(url):
            raise OSError("connection refused")

        socket = _socket(event_bus, connect=connect, max_retries=2)

        with pytest.raises(EngineSocketError) as exc_info:
            await socket.start()

        assert exc_info.value.attempts == 3
        assert isinstance(exc_info.value.original_error, OSError)

    async def test_handshake_timeout_closes_connection(self, event_bus):
        ws = FakeWebSocket()

        async def connect(url):
            return ws

        socket = _socket(event_bus, connect=connect, max_retries=0, handshake_timeout_seconds=0.01)

        with pytest.raises(EngineSocketError):
            await socket.start()

        assert ws.closed
        assert ws.sent == []

    async def test_slow_metrics_refresh_does_not_hold_back_later_frames(self, event_bus, fake_api):
        store = ReferenceStore()
        store.commit_reference(
            "VEHICLE:vehicle_1",
            Reference(id="VEHICLE:vehicle_1", category="VEHICLE", reference_id="vehicle_1"),
            {"ID": "vehicle_1"},
            set(),
        )
        handlers = DeltaSyncHandlers(fake_api, store, SegmentDefinitionRegistry(store), event_bus)
        event_bus.subscribe(SOCKET_METRICS_UPDATED, handlers.on_metrics_updated)
        event_bus.subscribe(SOCKET_SEGMENT_CREATED, handlers.on_segment_created)

        membership_published = asyncio.Event()
        event_bus.subscribe(REFERENCE_SEGMENT_CREATED, lambda payload: membership_published.set())

        fake_api.gate = asyncio.Event()
        ws = FakeWebSocket([json.dumps({"event": "connected"})])

        async def connect(url):
            return ws

        socket = _socket(event_bus, connect=connect)
        await socket.start()

        ws.inbox.put_nowait(_frame("metrics.updated", {"id": "VEHICLE:vehicle_1", "keys": ["TOP_SPEED"]}))
        ws.inbox.put_nowait(
            _frame(
                "segment.created",
                {"categoryReferenceId": "VEHICLE:vehicle_1", "segmentDefinitionId": "def_2"},
            )
        )

        await asyncio.wait_for(membership_published.wait(), timeout=1)

        assert store.memberships["VEHICLE:vehicle_1"] == {"def_2"}
        assert fake_api.count("get_reference_metrics") == 1
        assert not fake_api.gate.is_set()

        fake_api.gate.set()
        await socket.stop()
