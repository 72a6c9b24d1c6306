"""
EventScheduler: tiered execution of event listeners.

Execution Tiers
---------------
- CRITICAL: sequential, awaited, timeout-protected
- HIGH: sequential, awaited, timeout-protected
- NORMAL: concurrent via asyncio.gather, awaited, no timeout
- LOW: fire-and-forget tasks, tracked until completion

Error Isolation
---------------
A listener that raises (or times out) is logged through
`handle_listener_error`, counted in metrics, and contributes `None` to the
result list. It never prevents other listeners from running and never
propagates to the publisher.

Async callbacks are awaited. Sync callbacks run inline on the event loop,
so they must not block.
"""

from __future__ import annotations

import asyncio
import inspect
from logging import Logger
from typing import Any, Optional

from src.core.event.metrics import EventMetricsRecorder
from src.core.event.types import EventListener, EventPayload, ListenerPriority


def handle_listener_error(
    *,
    logger: Logger,
    event_name: str,
    listener: EventListener,
    exc: BaseException,
    metrics: Optional[EventMetricsRecorder],
) -> None:
    """Log a listener failure with full context and count it."""
    if metrics is not None:
        metrics.record_error(event_name)

    logger.error(
        "EventBus listener error",
        extra={
            "event_name": event_name,
            "listener_id": listener.identifier,
            "priority": listener.priority.name,
            "error": str(exc),
            "error_type": type(exc).__name__,
        },
        exc_info=exc,
    )


class EventScheduler:
    """
    Executes listeners according to the tiered concurrency model.

    Examples
    --------
    >>> scheduler = EventScheduler()
    >>> results = await scheduler.execute(
    ...     event_name="socket.segment_created",
    ...     payload={"segment_definition_id": "vip"},
    ...     listeners=listeners,
    ...     metrics=recorder,
    ...     logger=logger,
    ...     critical_timeout=5.0,
    ...     high_timeout=10.0,
    ... )
    """

    def __init__(self) -> None:
        # Strong references keep LOW-tier tasks alive until they finish
        self._background_tasks: set[asyncio.Task[Any]] = set()

    async def execute(
        self,
        *,
        event_name: str,
        payload: EventPayload,
        listeners: list[EventListener],
        metrics: Optional[EventMetricsRecorder],
        logger: Logger,
        critical_timeout: Optional[float],
        high_timeout: Optional[float],
    ) -> list[Any]:
        """
        Run `listeners` (already sorted) for one publish.

        Returns
        -------
        list[Any]:
            Results from CRITICAL, HIGH and NORMAL listeners in tier order.
            LOW-tier results are not collected.
        """
        tiers: dict[ListenerPriority, list[EventListener]] = {
            priority: [] for priority in ListenerPriority
        }
        for listener in listeners:
            tiers[listener.priority].append(listener)

        results: list[Any] = []

        for priority, timeout in (
            (ListenerPriority.CRITICAL, critical_timeout),
            (ListenerPriority.HIGH, high_timeout),
        ):
            for listener in tiers[priority]:
                results.append(
                    await self._run_with_timeout(
                        listener=listener,
                        event_name=event_name,
                        payload=payload,
                        metrics=metrics,
                        logger=logger,
                        timeout=timeout,
                    )
                )

        normal = tiers[ListenerPriority.NORMAL]
        if normal:
            results.extend(
                await asyncio.gather(
                    *(
                        self._run_listener(
                            listener=listener,
                            event_name=event_name,
                            payload=payload,
                            metrics=metrics,
                            logger=logger,
                        )
                        for listener in normal
                    )
                )
            )

        for listener in tiers[ListenerPriority.LOW]:
            task = asyncio.create_task(
                self._run_listener(
                    listener=listener,
                    event_name=event_name,
                    payload=payload,
                    metrics=metrics,
                    logger=logger,
                ),
                name=f"eventbus-low-{event_name}-{listener.identifier}",
            )
            self._background_tasks.add(task)
            task.add_done_callback(self._background_tasks.discard)

        return results

    async def _run_with_timeout(
        self,
        *,
        listener: EventListener,
        event_name: str,
        payload: EventPayload,
        metrics: Optional[EventMetricsRecorder],
        logger: Logger,
        timeout: Optional[float],
    ) -> Any:
        run = self._run_listener(
            listener=listener,
            event_name=event_name,
            payload=payload,
            metrics=metrics,
            logger=logger,
        )
        if timeout is None or timeout <= 0:
            return await run

        try:
            return await asyncio.wait_for(run, timeout=timeout)
        except asyncio.TimeoutError as exc:
            logger.error(
                "EventBus listener timeout",
                extra={
                    "event_name": event_name,
                    "listener_id": listener.identifier,
                    "priority": listener.priority.name,
                    "timeout_seconds": timeout,
                },
            )
            handle_listener_error(
                logger=logger,
                event_name=event_name,
                listener=listener,
                exc=exc,
                metrics=metrics,
            )
            return None

    async def _run_listener(
        self,
        *,
        listener: EventListener,
        event_name: str,
        payload: EventPayload,
        metrics: Optional[EventMetricsRecorder],
        logger: Logger,
    ) -> Any:
        logger.debug(
            "EventBus: executing listener",
            extra={
                "event_name": event_name,
                "listener_id": listener.identifier,
                "priority": listener.priority.name,
            },
        )
        try:
            result = listener.callback(payload)
            if inspect.isawaitable(result):
                result = await result
            return result
        except Exception as exc:
            handle_listener_error(
                logger=logger,
                event_name=event_name,
                listener=listener,
                exc=exc,
                metrics=metrics,
            )
            return None

    async def drain(self) -> None:
        """Wait for outstanding LOW-tier tasks."""
        if self._background_tasks:
            await asyncio.gather(*list(self._background_tasks), return_exceptions=True)

    def get_background_task_count(self) -> int:
        return len(self._background_tasks)
