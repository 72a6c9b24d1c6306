"""
Engine API client.

Purpose
-------
Thin async adapter over the upstream Engine REST API. Responses are camelCase
JSON; each call parses them into the reference domain models.

Responsibilities
----------------
- Authenticate every request (basic auth with the API key pair plus the
  `x-server-id` header)
- Map transport failures and non-2xx responses to `EngineApiError`
- Parse paginated listings into `Page[...]`

Paginated responses look like::

    {"items": [...], "pageIndex": 0, "pageSize": 100,
     "pageCount": 3, "totalCount": 250}
"""

from __future__ import annotations

from typing import Any, Callable, Dict, Iterable, List, Optional, TypeVar

import httpx

from src.core.config.config import Config
from src.core.exceptions import EngineApiError
from src.core.logging.logger import get_logger
from src.modules.reference.identity import CategoryReferenceId, category_value
from src.modules.reference.models import (
    Metric,
    Page,
    Reference,
    SegmentDefinition,
    SegmentMembership,
)

logger = get_logger(__name__)

T = TypeVar("T")

DEFAULT_PAGE_SIZE = 100


class EngineApiClient:
    """
    Async client for the Engine API.

    Usage
    -----
        async with EngineApiClient.from_config() as api:
            page = await api.get_references("VEHICLE", enabled=True)
    """

    def __init__(
        self,
        base_url: str,
        *,
        api_key_id: str = "",
        api_key_secret: str = "",
        server_id: str = "",
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        headers = {"accept": "application/json"}
        if server_id:
            headers["x-server-id"] = server_id

        auth = (api_key_id, api_key_secret) if api_key_id else None
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            auth=auth,
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_config(cls, transport: Optional[httpx.AsyncBaseTransport] = None) -> "EngineApiClient":
        return cls(
            Config.ENGINE_API_URL,
            api_key_id=Config.ENGINE_API_KEY_ID,
            api_key_secret=Config.ENGINE_API_KEY_SECRET,
            server_id=Config.ENGINE_SERVER_ID,
            timeout=float(Config.ENGINE_HTTP_TIMEOUT_SECONDS),
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "EngineApiClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    # ------------------------------------------------------------------ #
    # Transport
    # ------------------------------------------------------------------ #

    async def _get(
        self,
        operation: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
    ) -> Any:
        query = {k: v for k, v in (params or {}).items() if v is not None}
        try:
            response = await self._client.get(path, params=query)
        except httpx.HTTPError as e:
            logger.error(
                "Engine API transport failure",
                extra={"operation": operation, "path": path, "error": str(e)},
            )
            raise EngineApiError(operation, original_error=e) from e

        if response.is_error:
            logger.warning(
                "Engine API returned error status",
                extra={
                    "operation": operation,
                    "path": path,
                    "status_code": response.status_code,
                },
            )
            raise EngineApiError(operation, status_code=response.status_code)

        try:
            return response.json()
        except ValueError as e:
            raise EngineApiError(
                operation, status_code=response.status_code, original_error=e
            ) from e

    @staticmethod
    def _parse_page(payload: Dict[str, Any], parse: Callable[[Dict[str, Any]], T]) -> Page[T]:
        items = [parse(item) for item in payload.get("items") or []]
        return Page(
            items=items,
            page_index=int(payload.get("pageIndex", 0)),
            page_count=int(payload.get("pageCount", 0)),
            page_size=int(payload.get("pageSize", len(items))),
            total_count=payload.get("totalCount"),
        )

    @staticmethod
    def _as_list(payload: Any) -> List[Dict[str, Any]]:
        if isinstance(payload, dict):
            return list(payload.get("items") or [])
        return list(payload or [])

    # ------------------------------------------------------------------ #
    # References
    # ------------------------------------------------------------------ #

    async def get_references(
        self,
        category: str,
        enabled: Optional[bool] = True,
        page_index: int = 0,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> Page[Reference]:
        payload = await self._get(
            "get_references",
            "/references",
            {
                "category": category_value(category),
                "enabled": None if enabled is None else str(enabled).lower(),
                "pageIndex": page_index,
                "pageSize": page_size,
            },
        )
        return self._parse_page(payload, Reference.from_wire)

    async def get_reference_by_id(self, id: CategoryReferenceId) -> Reference:
        payload = await self._get("get_reference_by_id", f"/references/{id}")
        return Reference.from_wire(payload)

    async def get_reference_metrics(
        self,
        id: CategoryReferenceId,
        full_keys: Optional[Iterable[str]] = None,
    ) -> List[Metric]:
        params = {"fullKeys": ",".join(full_keys)} if full_keys is not None else None
        payload = await self._get(
            "get_reference_metrics", f"/references/{id}/metrics", params
        )
        return [Metric.from_wire(item) for item in self._as_list(payload)]

    async def get_reference_segments(
        self, id: CategoryReferenceId
    ) -> List[SegmentMembership]:
        payload = await self._get(
            "get_reference_segments", f"/references/{id}/segments"
        )
        return [SegmentMembership.from_wire(item) for item in self._as_list(payload)]

    # ------------------------------------------------------------------ #
    # Segments & metrics
    # ------------------------------------------------------------------ #

    async def get_segment_definitions(self) -> List[SegmentDefinition]:
        payload = await self._get("get_segment_definitions", "/segments/definitions")
        return [SegmentDefinition.from_wire(item) for item in self._as_list(payload)]

    async def get_segments(
        self,
        category: str,
        page_index: int = 0,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> Page[SegmentMembership]:
        payload = await self._get(
            "get_segments",
            "/segments",
            {
                "category": category_value(category),
                "pageIndex": page_index,
                "pageSize": page_size,
            },
        )
        return self._parse_page(payload, SegmentMembership.from_wire)

    async def get_metrics(
        self,
        category: str,
        page_index: int = 0,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> Page[Metric]:
        payload = await self._get(
            "get_metrics",
            "/metrics",
            {
                "category": category_value(category),
                "pageIndex": page_index,
                "pageSize": page_size,
            },
        )
        return self._parse_page(payload, Metric.from_wire)
