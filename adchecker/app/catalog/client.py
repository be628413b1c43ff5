"""
Checklist / scene catalog client.

The catalog is a spreadsheet-backed HTTP endpoint answering GET requests
with query parameters. Every response is wrapped in an envelope:

    {"success": true, "data": [...]}
    {"success": false, "error": "..."}

Three query shapes are used:

    ?action=categories                      -> ["売買（新築）", ...]
    ?action=checklist&category=<ad type>    -> [ChecklistItem, ...]
    ?action=scenes&category=<scene type>    -> [SceneRecord, ...]

Reads are idempotent: transport errors are retried with exponential
backoff, and results are cached per query for the lifetime of the client
so repeated fetches within a process are referentially stable.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple, Type, TypeVar

import httpx
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from adchecker.app.checking.errors import CatalogError
from adchecker.app.config import CheckerConfig
from adchecker.app.schemas.catalog import AdType, ChecklistItem, SceneRecord

logger = logging.getLogger(__name__)

RecordT = TypeVar("RecordT", bound=BaseModel)


class ChecklistCatalogClient:
    """
    Async client for the external catalog.

    A single httpx.AsyncClient is reused across requests; per-request
    timeouts come from configuration.
    """

    def __init__(
        self,
        *,
        base_url: str,
        timeout_seconds: float = 15.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._base_url = base_url
        self._timeout_seconds = timeout_seconds
        self._http_client = http_client or httpx.AsyncClient()
        self._owns_client = http_client is None
        self._cache: Dict[Tuple[str, Optional[str]], Tuple[Any, ...]] = {}

    @classmethod
    def from_config(cls, config: CheckerConfig) -> "ChecklistCatalogClient":
        return cls(
            base_url=config.CATALOG_URL,
            timeout_seconds=config.CATALOG_TIMEOUT_SECONDS,
        )

    @property
    def enabled(self) -> bool:
        return bool(self._base_url)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http_client.aclose()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def list_categories(self) -> List[str]:
        data = await self._get("categories")
        if not all(isinstance(c, str) for c in data):
            raise CatalogError("Catalog returned non-string categories")
        return list(data)

    async def fetch_checklist(self, ad_type: AdType) -> List[ChecklistItem]:
        """Checklist items for one advertisement type, in catalog order."""
        data = await self._get("checklist", ad_type.value)
        return self._parse_records(data, ChecklistItem, ad_type.value)

    async def fetch_scenes(self, category: str) -> List[SceneRecord]:
        """Tabular scene records for one scene type, in catalog order."""
        data = await self._get("scenes", category)
        return self._parse_records(data, SceneRecord, category)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _get(
        self,
        action: str,
        category: Optional[str] = None,
    ) -> Tuple[Any, ...]:
        if not self.enabled:
            raise CatalogError("Catalog endpoint is not configured")

        key = (action, category)
        if key in self._cache:
            logger.debug("catalog: cache hit action=%s category=%s", action, category)
            return self._cache[key]

        params = {"action": action}
        if category is not None:
            params["category"] = category

        logger.info("catalog: GET action=%s category=%s", action, category)
        try:
            response = await self._request(params)
            response.raise_for_status()
            envelope = response.json()
        except httpx.HTTPStatusError as exc:
            logger.error("catalog: HTTP %s", exc.response.status_code)
            raise CatalogError(
                f"Catalog returned {exc.response.status_code}",
                failure_type="upstream_error",
                cause=str(exc),
            ) from exc
        except httpx.RequestError as exc:
            logger.error("catalog: connection error: %s", exc)
            raise CatalogError(
                "Catalog unreachable",
                failure_type="upstream_error",
                cause=str(exc),
            ) from exc
        except ValueError as exc:
            logger.error("catalog: response is not JSON")
            raise CatalogError(
                "Catalog returned a non-JSON response",
                failure_type="upstream_error",
                cause=str(exc),
            ) from exc

        if not isinstance(envelope, dict) or not envelope.get("success"):
            error = envelope.get("error") if isinstance(envelope, dict) else None
            logger.error("catalog: request failed: %s", error)
            raise CatalogError(
                f"Catalog request failed: {error or 'unknown error'}",
                failure_type="upstream_error",
                cause=error,
            )

        data = envelope.get("data")
        if not isinstance(data, list):
            raise CatalogError("Catalog envelope carries no data array")

        self._cache[key] = tuple(data)
        return self._cache[key]

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.1, min=0.1, max=2),
        retry=retry_if_exception_type(httpx.TransportError),
        reraise=True,
    )
    async def _request(self, params: Dict[str, str]) -> httpx.Response:
        return await self._http_client.get(
            self._base_url,
            params=params,
            timeout=self._timeout_seconds,
        )

    @staticmethod
    def _parse_records(
        data: Tuple[Any, ...],
        record_type: Type[RecordT],
        category: str,
    ) -> List[RecordT]:
        records: List[RecordT] = []
        for position, raw in enumerate(data):
            if not isinstance(raw, dict):
                raise CatalogError(
                    f"Catalog record {position} is not an object"
                )

            raw = dict(raw)
            # Spreadsheet row ids arrive as numbers or not at all
            if raw.get("id") is None:
                raw["id"] = f"{category}-{position}"
            else:
                raw["id"] = str(raw["id"])

            try:
                records.append(record_type.model_validate(raw))
            except PydanticValidationError as exc:
                raise CatalogError(
                    f"Catalog record {position} is malformed",
                    cause=str(exc),
                ) from exc

        return records
