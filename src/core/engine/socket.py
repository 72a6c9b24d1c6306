"""
Engine push-channel socket.

Purpose
-------
Holds the websocket to the Engine and republishes its push events on the
EventBus as `socket.*` events, so the cache never talks to the transport
directly.

Protocol
--------
1. Connect to `ENGINE_SOCKET_URL?apiKeyId=..&apiKeySecret=..&serverId=..`
2. Wait for `{"event": "connected"}` from the Engine (handshake timeout)
3. Reply with `{"event": "connected", "data": {"version", "timestamp"}}`
4. Every later `{event, data, headers}` message whose `event` is mapped is
   published on the bus with its top-level keys converted to snake_case
   from its own task, started in arrival order

Messages stamped before the connection was opened are dropped, as are
messages with non-object data. Malformed JSON is logged and skipped.

Reconnection
------------
Failed connects back off exponentially (`initial * 2 ** (attempt - 1)`,
capped at `max_backoff_seconds`). After `max_retries` consecutive failures
`EngineSocketError` is raised from `start()`, or logged at CRITICAL when the
loss happens after startup.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import re
import time
from typing import Any, Callable, Dict, Optional, Set, Tuple
from urllib.parse import urlencode

import websockets

from src.core.config.config import Config
from src.core.event.bus import EventBus
from src.core.exceptions import EngineSocketError
from src.core.logging.logger import get_logger
from src.modules.reference.events import SOCKET_EVENT_MAP

logger = get_logger(__name__)

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])([A-Z])")


def to_snake_case(name: str) -> str:
    """
    Examples
    --------
    >>> to_snake_case("segmentDefinitionId")
    'segment_definition_id'
    """
    return _CAMEL_BOUNDARY.sub(r"_\1", name).lower()


def now_ms() -> int:
    return int(time.time() * 1000)


class EngineSocket:
    """
    Websocket bridge from the Engine push channel to the EventBus.

    Args:
        url: Socket URL without credentials
        event_bus: Bus receiving the translated `socket.*` events
        api_key_id / api_key_secret / server_id: Credentials sent as query params
        max_retries: Consecutive failed connects tolerated before giving up
        initial_backoff_seconds / max_backoff_seconds: Reconnect delay bounds
        handshake_timeout_seconds: How long to wait for the `connected` message
        connect: Awaitable factory taking the URL and returning an open
            websocket connection (defaults to `websockets.connect`)
    """

    HANDSHAKE_EVENT = "connected"

    def __init__(
        self,
        url: str,
        event_bus: EventBus,
        *,
        api_key_id: str = "",
        api_key_secret: str = "",
        server_id: str = "",
        max_retries: int = 10,
        initial_backoff_seconds: float = 1.0,
        max_backoff_seconds: float = 30.0,
        handshake_timeout_seconds: float = 10.0,
        version: str = Config.SERVER_VERSION,
        connect: Optional[Callable[[str], Any]] = None,
    ) -> None:
        self.url = url
        self._events = event_bus
        self._credentials = {
            "apiKeyId": api_key_id,
            "apiKeySecret": api_key_secret,
            "serverId": server_id,
        }
        self.max_retries = max_retries
        self._initial_backoff = initial_backoff_seconds
        self._max_backoff = max_backoff_seconds
        self._handshake_timeout = handshake_timeout_seconds
        self._version = version
        self._connect = connect or websockets.connect

        self.connected_at = 0
        self._ws: Any = None
        self._task: Optional[asyncio.Task] = None
        self._dispatch_tasks: Set[asyncio.Task] = set()
        self._stop_event = asyncio.Event()

    @classmethod
    def from_config(cls, event_bus: EventBus, config_manager: Any) -> "EngineSocket":
        return cls(
            Config.ENGINE_SOCKET_URL,
            event_bus,
            api_key_id=Config.ENGINE_API_KEY_ID,
            api_key_secret=Config.ENGINE_API_KEY_SECRET,
            server_id=Config.ENGINE_SERVER_ID,
            max_retries=int(config_manager.get("socket.max_retries", 10)),
            initial_backoff_seconds=float(
                config_manager.get("socket.initial_backoff_seconds", 1.0)
            ),
            max_backoff_seconds=float(config_manager.get("socket.max_backoff_seconds", 30.0)),
            handshake_timeout_seconds=float(
                config_manager.get("socket.handshake_timeout_seconds", 10.0)
            ),
        )

    @property
    def is_connected(self) -> bool:
        return self._ws is not None

    def connection_url(self) -> str:
        query = {k: v for k, v in self._credentials.items() if v}
        if not query:
            return self.url
        separator = "&" if "?" in self.url else "?"
        return f"{self.url}{separator}{urlencode(query)}"

    def backoff_delay(self, attempt: int) -> float:
        return min(self._initial_backoff * 2 ** (attempt - 1), self._max_backoff)

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    async def start(self) -> None:
        """
        Connect (with retries), complete the handshake and start listening
        in the background.

        Raises
        ------
        EngineSocketError
            If no connection could be established within `max_retries`.
        """
        if self._task is not None and not self._task.done():
            logger.warning("Engine socket already running, ignoring start()")
            return

        self._stop_event.clear()
        connection = await self._connect_with_retry()
        self._task = asyncio.create_task(self._listen(connection))

    async def stop(self) -> None:
        self._stop_event.set()
        if self._ws is not None:
            with contextlib.suppress(Exception):
                await self._ws.close()
        if self._task is not None:
            try:
                await asyncio.wait_for(self._task, timeout=1.0)
            except asyncio.TimeoutError:
                self._task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await self._task
            finally:
                self._task = None
        if self._dispatch_tasks:
            pending = list(self._dispatch_tasks)
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
            self._dispatch_tasks.clear()
        self._ws = None
        logger.info("Engine socket stopped", extra={"url": self.url})

    # ------------------------------------------------------------------ #
    # Connection
    # ------------------------------------------------------------------ #

    async def _connect_with_retry(self) -> Any:
        attempt = 0
        while True:
            try:
                return await self._connect_once()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                attempt += 1
                if attempt > self.max_retries:
                    raise EngineSocketError(self.url, attempt, original_error=e) from e
                if self._stop_event.is_set():
                    raise EngineSocketError(self.url, attempt, original_error=e) from e

                delay = self.backoff_delay(attempt)
                logger.warning(
                    "Engine socket connection failed, retrying",
                    extra={
                        "url": self.url,
                        "attempt": attempt,
                        "delay_seconds": delay,
                        "error": str(e),
                    },
                )
                await asyncio.sleep(delay)

    async def _connect_once(self) -> Any:
        ws = await self._connect(self.connection_url())
        self.connected_at = now_ms()
        logger.info("Engine socket opened, waiting for handshake", extra={"url": self.url})
        try:
            await asyncio.wait_for(self._await_handshake(ws), self._handshake_timeout)
        except BaseException:
            with contextlib.suppress(Exception):
                await ws.close()
            raise

        await ws.send(
            json.dumps(
                {
                    "event": self.HANDSHAKE_EVENT,
                    "data": {
                        "version": self._version,
                        "timestamp": self.connected_at,
                    },
                    "headers": {},
                }
            )
        )
        self._ws = ws
        logger.info("Engine socket connected", extra={"url": self.url})
        return ws

    async def _await_handshake(self, ws: Any) -> None:
        while True:
            raw = await ws.recv()
            try:
                message = json.loads(raw)
            except json.JSONDecodeError:
                logger.warning("Unparseable message during handshake", extra={"raw": raw})
                continue
            if isinstance(message, dict) and message.get("event") == self.HANDSHAKE_EVENT:
                return

    async def _listen(self, ws: Any) -> None:
        while not self._stop_event.is_set():
            try:
                while not self._stop_event.is_set():
                    try:
                        raw = await ws.recv()
                    except websockets.ConnectionClosed:
                        break
                    self._dispatch(raw)
            finally:
                self._ws = None
                with contextlib.suppress(Exception):
                    await ws.close()

            if self._stop_event.is_set():
                break

            logger.warning("Engine socket connection lost, reconnecting", extra={"url": self.url})
            try:
                ws = await self._connect_with_retry()
            except EngineSocketError as e:
                logger.critical(
                    "Engine socket reconnection abandoned",
                    extra={"url": self.url, "attempts": e.attempts, "error": str(e)},
                )
                return

    # ------------------------------------------------------------------ #
    # Messages
    # ------------------------------------------------------------------ #

    def translate_message(self, raw: Any) -> Optional[Tuple[str, Dict[str, Any]]]:
        """
        Turn one raw socket frame into `(bus_event, payload)`, or None when
        the frame must be skipped.
        """
        try:
            message = json.loads(raw)
        except (json.JSONDecodeError, TypeError):
            logger.error("Invalid JSON on engine socket", extra={"raw": str(raw)[:200]})
            return None

        if not isinstance(message, dict):
            logger.warning("Engine socket message is not an object", extra={"raw": str(raw)[:200]})
            return None

        data = message.get("data")
        if not isinstance(data, dict) or not data:
            logger.warning(
                "Engine socket message with invalid data",
                extra={"socket_event": message.get("event")},
            )
            return None

        timestamp = data.get("timestamp")
        if (
            isinstance(timestamp, (int, float))
            and not isinstance(timestamp, bool)
            and timestamp < self.connected_at
        ):
            logger.debug(
                "Dropping engine socket message older than connection",
                extra={"socket_event": message.get("event"), "timestamp": timestamp},
            )
            return None

        wire_event = message.get("event")
        bus_event = SOCKET_EVENT_MAP.get(wire_event)
        if bus_event is None:
            logger.debug("Unhandled engine socket event", extra={"socket_event": wire_event})
            return None

        return bus_event, {to_snake_case(k): v for k, v in data.items()}

    async def handle_message(self, raw: Any) -> None:
        translated = self.translate_message(raw)
        if translated is None:
            return
        bus_event, payload = translated
        await self._events.publish(bus_event, payload)

    def _dispatch(self, raw: Any) -> None:
        # One task per frame; a slow handler must not hold back later frames.
        task = asyncio.create_task(self.handle_message(raw))
        self._dispatch_tasks.add(task)
        task.add_done_callback(self._dispatch_tasks.discard)
