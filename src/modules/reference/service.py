"""
ReferenceService - cached reference metadata for the game server.

Purpose
-------
Process-wide cache of reference metadata (metrics, segment memberships and
segment definitions) for accounts, characters, vehicles and other entities,
kept in sync with the Engine through bulk preload, session-driven loads and
push deltas.

Responsibilities
----------------
- Startup preload: segment definitions, then every category listed in
  `reference.preload_categories`
- Session lifecycle: load ACCOUNT / CHARACTER references for a session and
  evict them again when that session finishes
- Delta sync from `socket.*` events
- Read-only queries: lookups, rule evaluation and access policies

Design Notes
------------
Every collaborator (store, registry, loaders, sync handlers, rule engine,
policy aggregator) shares one `ReferenceStore`. The façade only wires them
together and owns the bus handler table, which is declared explicitly in the
constructor.

Lookups are soft: misses return None or empty collections.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional

from src.core.logging.logger import LogContext
from src.modules.reference import events
from src.modules.reference.bulk_loader import BulkLoader
from src.modules.reference.identity import (
    CategoryReferenceIdParam,
    ReferenceCategory,
    ReferenceIdentity,
    to_key,
)
from src.modules.reference.loader import ReferenceLoader
from src.modules.reference.logic import Rule, RuleEngine
from src.modules.reference.models import (
    AccessPolicy,
    MetricKey,
    MetricValue,
    Reference,
    SegmentDefinition,
    SegmentDefinitionId,
    SessionId,
)
from src.modules.reference.policy import PolicyAggregator
from src.modules.reference.registry import SegmentDefinitionRegistry
from src.modules.reference.store import ReferenceStore
from src.modules.reference.sync import DeltaSyncHandlers
from src.modules.shared.base_service import BaseService

if TYPE_CHECKING:
    from logging import Logger

    from src.core.config.manager import ConfigManager
    from src.core.engine.client import EngineApiClient
    from src.core.event.bus import EventBus

DEFAULT_PRELOAD_CATEGORIES = [ReferenceCategory.VEHICLE.value]


class ReferenceService(BaseService):
    """
    Façade over the reference cache.

    Usage
    -----
        service = ReferenceService(ConfigManager, bus, api, get_logger(__name__))
        await service.initialize()
        service.apply_metrics_logic("VEHICLE:vehicle_1", {">": [{"var": "TOP_SPEED"}, 200]})
    """

    def __init__(
        self,
        config_manager: ConfigManager,
        event_bus: EventBus,
        api_client: EngineApiClient,
        logger: Logger,
    ) -> None:
        super().__init__(config_manager, event_bus, logger)
        self._api = api_client

        self.store = ReferenceStore()
        self.registry = SegmentDefinitionRegistry(self.store)
        self.bulk_loader = BulkLoader(
            api_client,
            self.store,
            self.registry,
            page_size=int(self.get_config("reference.page_size", 100)),
        )
        self.loader = ReferenceLoader(api_client, self.store)
        self.sync = DeltaSyncHandlers(api_client, self.store, self.registry, event_bus)
        self.rules = RuleEngine(self.store)
        self.policies = PolicyAggregator(self.store, self.registry)

        self.event_handlers = {
            events.SESSION_AUTHORIZED: self.on_session_authorized,
            events.SESSION_CHARACTER_LINKED: self.on_session_character_linked,
            events.SESSION_FINISHED: self.on_session_finished,
            events.SOCKET_METRICS_UPDATED: self.sync.on_metrics_updated,
            events.SOCKET_SEGMENT_DEFINITION_CREATED: self.sync.on_segment_definition_created,
            events.SOCKET_SEGMENT_DEFINITION_UPDATED: self.sync.on_segment_definition_updated,
            events.SOCKET_SEGMENT_DEFINITION_REMOVED: self.sync.on_segment_definition_removed,
            events.SOCKET_SEGMENT_CREATED: self.sync.on_segment_created,
            events.SOCKET_SEGMENT_REMOVED: self.sync.on_segment_removed,
        }

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    async def initialize(self) -> None:
        """
        Preload segment definitions and the always-on categories, then start
        listening. Any upstream failure propagates and the service stays
        not ready.
        """
        await self.bulk_loader.preload_segment_definitions()

        categories = self.get_config("reference.preload_categories", DEFAULT_PRELOAD_CATEGORIES)
        for category in categories or []:
            await self.bulk_loader.preload_category(category)

        self.subscribe_handlers()
        await super().initialize()
        self.log.info(
            "Reference cache ready",
            extra={"preload_categories": list(categories or []), **self.store.stats()},
        )

    async def dispose(self) -> None:
        await super().dispose()
        await self.loader.cancel_all()
        self.store.clear()
        self.registry.clear()

    # ------------------------------------------------------------------ #
    # Loading
    # ------------------------------------------------------------------ #

    async def load_reference(
        self,
        ref: CategoryReferenceIdParam,
        session_id: Optional[SessionId] = None,
    ) -> Reference:
        return await self.loader.load_reference(ref, session_id)

    def remove_reference(
        self,
        ref: CategoryReferenceIdParam,
        session_id: Optional[SessionId] = None,
    ) -> bool:
        return self.loader.remove_reference(ref, session_id)

    # ------------------------------------------------------------------ #
    # Session handlers
    # ------------------------------------------------------------------ #

    async def on_session_authorized(self, payload: events.SessionAuthorized) -> None:
        account = ReferenceIdentity(ReferenceCategory.ACCOUNT.value, str(payload["account_id"]))
        async with LogContext(
            session_id=payload["session_id"],
            reference_id=to_key(account),
            event_type=events.SESSION_AUTHORIZED,
            operation="load_reference",
        ):
            await self.load_reference(account, payload["session_id"])

    async def on_session_character_linked(self, payload: events.SessionCharacterLinked) -> None:
        character = ReferenceIdentity(
            ReferenceCategory.CHARACTER.value, str(payload["character_id"])
        )
        async with LogContext(
            session_id=payload["session_id"],
            reference_id=to_key(character),
            event_type=events.SESSION_CHARACTER_LINKED,
            operation="load_reference",
        ):
            await self.load_reference(character, payload["session_id"])

    async def on_session_finished(self, payload: events.SessionFinished) -> None:
        session_id = payload["session_id"]
        owned = [
            ReferenceIdentity(category.value, str(payload[field]))
            for category, field in (
                (ReferenceCategory.ACCOUNT, "account_id"),
                (ReferenceCategory.CHARACTER, "character_id"),
            )
            if payload.get(field)
        ]
        for identity in owned:
            with LogContext(
                session_id=session_id,
                reference_id=to_key(identity),
                event_type=events.SESSION_FINISHED,
                operation="remove_reference",
            ):
                self.remove_reference(identity, session_id)

    # ------------------------------------------------------------------ #
    # Queries
    # ------------------------------------------------------------------ #

    def get_reference(self, ref: CategoryReferenceIdParam) -> Optional[Reference]:
        return self.store.references.get(to_key(ref))

    def get_metrics(self, ref: CategoryReferenceIdParam) -> Dict[MetricKey, MetricValue]:
        """Metric map for a reference; empty when nothing is cached."""
        return dict(self.store.metrics.get(to_key(ref), {}))

    def get_segment_definition(
        self, segment_definition_id: SegmentDefinitionId
    ) -> Optional[SegmentDefinition]:
        return self.registry.get(segment_definition_id)

    def get_reference_segments(self, ref: CategoryReferenceIdParam) -> List[SegmentDefinition]:
        return self.registry.list_for_reference(ref)

    def apply_metrics_logic(self, ref: CategoryReferenceIdParam, rule: Rule) -> Optional[Any]:
        return self.rules.apply_metrics_logic(ref, rule)

    def get_reference_access_policies(self, ref: CategoryReferenceIdParam) -> List[AccessPolicy]:
        return self.policies.get_reference_access_policies(ref)

    def has_access_policy(self, ref: CategoryReferenceIdParam, policy: AccessPolicy) -> bool:
        return self.policies.has_access_policy(ref, policy)

    def has_access_policy_in_segment_definitions(
        self,
        policy: AccessPolicy,
        segment_definition_ids: Iterable[SegmentDefinitionId],
    ) -> bool:
        return self.policies.has_access_policy_in_segment_definitions(
            policy, segment_definition_ids
        )

    def has_segment(
        self,
        ref: CategoryReferenceIdParam,
        segment_definition_id: SegmentDefinitionId,
    ) -> bool:
        return self.policies.has_segment(ref, segment_definition_id)
