"""
Paginated bulk preload of whole reference categories.

Each category preload runs three sequential paginated phases (references,
metrics, segment memberships). Results are staged in local maps and handed
to the store in one commit once every phase has succeeded; any page failure
propagates unchanged and leaves the store untouched.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Awaitable, Callable, Dict, List, Set, TypeVar

from src.core.logging.logger import get_logger
from src.modules.reference.identity import CategoryReferenceId, category_value
from src.modules.reference.models import MetricKey, MetricValue, Page, Reference

if TYPE_CHECKING:
    from src.core.engine.client import EngineApiClient
    from src.modules.reference.registry import SegmentDefinitionRegistry
    from src.modules.reference.store import ReferenceStore

logger = get_logger(__name__)

T = TypeVar("T")

PageFetcher = Callable[[int], Awaitable[Page[T]]]


async def paginate(fetch_page: PageFetcher[T]) -> List[T]:
    """
    Drain a paginated listing starting at page 0.

    Stops once the reported `page_count <= page_index`, so a page count of 0
    on the first page yields exactly one fetch.
    """
    items: List[T] = []
    page_index = 0
    while True:
        page = await fetch_page(page_index)
        items.extend(page.items)
        if page.page_count <= page_index:
            break
        page_index += 1
    return items


class BulkLoader:
    def __init__(
        self,
        api: EngineApiClient,
        store: ReferenceStore,
        registry: SegmentDefinitionRegistry,
        page_size: int = 100,
    ) -> None:
        self._api = api
        self._store = store
        self._registry = registry
        self.page_size = page_size

    async def preload_segment_definitions(self) -> int:
        definitions = await self._api.get_segment_definitions()
        for definition in definitions:
            self._registry.put(definition)

        logger.info(
            "Segment definitions preloaded",
            extra={"definition_count": len(definitions)},
        )
        return len(definitions)

    async def preload_category(self, category: str) -> int:
        """
        Preload every enabled reference of `category` with its metrics and
        segment memberships.

        Returns the number of references committed.
        """
        category = category_value(category)
        started = time.perf_counter()

        references: Dict[CategoryReferenceId, Reference] = {}
        for reference in await paginate(
            lambda page_index: self._api.get_references(
                category, enabled=True, page_index=page_index, page_size=self.page_size
            )
        ):
            references[reference.id] = reference

        metrics: Dict[CategoryReferenceId, Dict[MetricKey, MetricValue]] = {}
        for metric in await paginate(
            lambda page_index: self._api.get_metrics(
                category, page_index=page_index, page_size=self.page_size
            )
        ):
            metrics.setdefault(metric.category_reference_id, {})[metric.full_key] = metric.value

        memberships: Dict[CategoryReferenceId, Set[str]] = {}
        for membership in await paginate(
            lambda page_index: self._api.get_segments(
                category, page_index=page_index, page_size=self.page_size
            )
        ):
            memberships.setdefault(membership.category_reference_id, set()).add(
                membership.segment_definition_id
            )

        self._store.commit_bulk(references, metrics, memberships)

        logger.info(
            "Reference category preloaded",
            extra={
                "category": category,
                "reference_count": len(references),
                "metric_map_count": len(metrics),
                "membership_set_count": len(memberships),
                "duration_ms": round((time.perf_counter() - started) * 1000, 2),
            },
        )
        return len(references)
