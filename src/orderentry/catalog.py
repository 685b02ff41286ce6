"""Barcode existence-check port and its adapters."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Iterable, Optional, Protocol
from urllib.parse import quote

import httpx

from orderentry.config import OrderEntryConfig
from orderentry.exceptions import VerificationTransportError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExistenceOutcome:
    """Successful answer from the catalog. Not-found is exists=False."""

    exists: bool


class CatalogLookup(Protocol):
    """Existence check consumed by the row validation coordinator."""

    async def check_exists(self, barcode: str) -> ExistenceOutcome:
        ...


class InMemoryCatalogLookup(CatalogLookup):
    """Catalog backed by a set of known barcodes (mock mode and tests)."""

    def __init__(
        self,
        known_barcodes: Iterable[str] = (),
        *,
        failing_barcodes: Iterable[str] = (),
        delay_sec: float = 0.0,
    ) -> None:
        self.known_barcodes = set(known_barcodes)
        self.failing_barcodes = set(failing_barcodes)
        self.delay_sec = delay_sec
        self.calls: list[str] = []

    async def check_exists(self, barcode: str) -> ExistenceOutcome:
        self.calls.append(barcode)
        if self.delay_sec:
            await asyncio.sleep(self.delay_sec)
        if barcode in self.failing_barcodes:
            raise VerificationTransportError(f"Catalog unavailable for {barcode}")
        return ExistenceOutcome(exists=barcode in self.known_barcodes)


class HttpCatalogLookup(CatalogLookup):
    """Products service client: GET {base_url}/check/{barcode} -> JSON boolean."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout_sec: float = 5.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout_sec = timeout_sec
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout_sec)
        return self._client

    async def check_exists(self, barcode: str) -> ExistenceOutcome:
        url = f"{self.base_url}/check/{quote(barcode, safe='')}"
        try:
            response = await self._get_client().get(url, timeout=self.timeout_sec)
        except httpx.HTTPError as exc:
            logger.warning("catalog request failed: barcode=%s error=%s", barcode, exc)
            raise VerificationTransportError(str(exc)) from exc

        if response.status_code == httpx.codes.NOT_FOUND:
            return ExistenceOutcome(exists=False)

        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            logger.warning(
                "catalog returned %s for barcode=%s", response.status_code, barcode
            )
            raise VerificationTransportError(
                f"Catalog returned HTTP {response.status_code}"
            ) from exc

        try:
            payload = response.json()
        except ValueError as exc:
            raise VerificationTransportError("Catalog returned invalid JSON") from exc

        return ExistenceOutcome(exists=_parse_exists(payload))

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None


def _parse_exists(payload: Any) -> bool:
    if isinstance(payload, bool):
        return payload
    if isinstance(payload, dict) and isinstance(payload.get("exists"), bool):
        return payload["exists"]
    raise VerificationTransportError(
        f"Unexpected catalog payload: {type(payload).__name__}"
    )


def build_catalog_lookup(config: OrderEntryConfig) -> CatalogLookup:
    """Create the catalog adapter selected by configuration."""
    if config.mock_catalog:
        logger.info("Using in-memory catalog (no products service calls)")
        return InMemoryCatalogLookup(config.get_known_barcodes())
    return HttpCatalogLookup(
        config.catalog_base_url, timeout_sec=config.catalog_timeout_sec
    )
