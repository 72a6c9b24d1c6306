"""
On-demand reference loading with session ownership.

Purpose
-------
Loads a single reference (record, metrics, segment memberships) when a
session needs it, and evicts it again when the owning session ends.

Coalescing
----------
Concurrent `load_reference()` calls for the same key share one in-flight
task, so the upstream sees one set of fetches per key. Each caller that
passes a session id records a claim on the in-flight load, and the shared
task hands ownership to the latest claim in the same step as the commit. A
caller cancelled while waiting therefore still owns the committed entry.

Ownership
---------
Bulk-preloaded entries never have an owner and are never evicted by a
session. A session-scoped eviction only applies when the recorded owner
matches the session.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Dict, Optional

from src.core.logging.logger import get_logger
from src.modules.reference.identity import (
    CategoryReferenceId,
    CategoryReferenceIdParam,
    to_key,
)
from src.modules.reference.models import Reference, SessionId
from src.modules.reference.store import ReferenceStore

if TYPE_CHECKING:
    from src.core.engine.client import EngineApiClient

logger = get_logger(__name__)


class ReferenceLoader:
    def __init__(self, api: EngineApiClient, store: ReferenceStore) -> None:
        self._api = api
        self._store = store
        self._in_flight: Dict[CategoryReferenceId, asyncio.Task] = {}
        self._claims: Dict[CategoryReferenceId, SessionId] = {}

    @property
    def in_flight_count(self) -> int:
        return len(self._in_flight)

    async def load_reference(
        self,
        ref: CategoryReferenceIdParam,
        session_id: Optional[SessionId] = None,
    ) -> Reference:
        """
        Fetch and commit one reference, coalescing with any load already in
        flight for the same key.

        Raises whatever the upstream fetch raised; nothing is committed then.
        """
        key = to_key(ref)
        task = self._in_flight.get(key)
        if task is None or task.done():
            task = asyncio.create_task(self._fetch_and_commit(key))
            self._in_flight[key] = task
            task.add_done_callback(lambda done, key=key: self._forget(key, done))
        else:
            logger.debug("Joining in-flight reference load", extra={"reference_key": key})

        if session_id is not None:
            self._claims[key] = session_id

        return await asyncio.shield(task)

    def _forget(self, key: CategoryReferenceId, task: asyncio.Task) -> None:
        if self._in_flight.get(key) is task:
            del self._in_flight[key]
            self._claims.pop(key, None)
        if not task.cancelled() and task.exception() is not None:
            logger.warning(
                "Reference load failed",
                extra={"reference_key": key, "error": str(task.exception())},
            )

    async def _fetch_and_commit(self, key: CategoryReferenceId) -> Reference:
        reference, metrics, memberships = await asyncio.gather(
            self._api.get_reference_by_id(key),
            self._api.get_reference_metrics(key),
            self._api.get_reference_segments(key),
        )

        self._store.commit_reference(
            key,
            reference,
            {metric.full_key: metric.value for metric in metrics},
            (membership.segment_definition_id for membership in memberships),
        )
        owner = self._claims.pop(key, None)
        if owner is not None:
            self._store.set_owner(key, owner)
        logger.debug(
            "Reference loaded",
            extra={
                "reference_key": key,
                "metric_count": len(metrics),
                "segment_count": len(memberships),
            },
        )
        return reference

    def remove_reference(
        self,
        ref: CategoryReferenceIdParam,
        session_id: Optional[SessionId] = None,
    ) -> bool:
        """
        Evict a reference. With a session id only the recorded owner may
        evict; without one the eviction is unconditional.
        """
        key = to_key(ref)
        if session_id is not None and self._store.get_owner(key) != session_id:
            return False

        self._store.evict(key)
        logger.debug(
            "Reference evicted",
            extra={"reference_key": key, "session_id": session_id},
        )
        return True

    async def cancel_all(self) -> None:
        tasks = list(self._in_flight.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._in_flight.clear()
        self._claims.clear()
