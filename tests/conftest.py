"""Shared test fixtures."""

import asyncio
from collections.abc import Generator
from typing import Any

import pytest
from fastapi.testclient import TestClient

from orderentry.api import create_app
from orderentry.catalog import ExistenceOutcome, InMemoryCatalogLookup
from orderentry.config import OrderEntryConfig
from orderentry.exceptions import VerificationTransportError
from orderentry.form import OrderEntryForm
from orderentry.persistence import DraftPersistence
from orderentry.repositories.memory import InMemoryDraftStore


class ControlledCatalog:
    """Catalog whose answers are released by the test, in any order."""

    def __init__(self) -> None:
        self.requests: list[tuple[str, asyncio.Future]] = []

    async def check_exists(self, barcode: str) -> ExistenceOutcome:
        future = asyncio.get_running_loop().create_future()
        self.requests.append((barcode, future))
        return await future

    def _future(self, barcode: str) -> asyncio.Future:
        for requested, future in self.requests:
            if requested == barcode and not future.done():
                return future
        raise AssertionError(f"No open request for {barcode}")

    def resolve(self, barcode: str, *, exists: bool = True) -> None:
        self._future(barcode).set_result(ExistenceOutcome(exists=exists))

    def fail(self, barcode: str) -> None:
        self._future(barcode).set_exception(VerificationTransportError("HTTP 503"))


async def settle() -> None:
    """Let scheduled verification tasks run up to their next suspension."""
    for _ in range(5):
        await asyncio.sleep(0)


@pytest.fixture
def config() -> OrderEntryConfig:
    """Test-owned config; checks never time out unless a test asks for it."""
    return OrderEntryConfig(
        _env_file=None,
        verification_timeout_sec=None,
        mock_catalog=True,
    )


@pytest.fixture
def controlled_catalog() -> ControlledCatalog:
    return ControlledCatalog()


@pytest.fixture
def draft_store() -> InMemoryDraftStore:
    return InMemoryDraftStore()


@pytest.fixture
def persistence(draft_store: InMemoryDraftStore) -> DraftPersistence:
    return DraftPersistence(draft_store, "add-order-modal-items:test")


@pytest.fixture
def form(
    config: OrderEntryConfig,
    controlled_catalog: ControlledCatalog,
    persistence: DraftPersistence,
) -> OrderEntryForm:
    return OrderEntryForm(config, controlled_catalog, persistence=persistence)


def fill_row(
    form: OrderEntryForm,
    row_id: str,
    barcode: str,
    quantity: Any = 5,
    unit_price: Any = "10.00",
) -> None:
    form.update_field(row_id, "barcode", barcode)
    form.update_field(row_id, "quantity", quantity)
    form.update_field(row_id, "unit_price", unit_price)


@pytest.fixture
def api_catalog() -> InMemoryCatalogLookup:
    return InMemoryCatalogLookup({"SKU1", "SKU2"}, failing_barcodes={"FLAKY"})


@pytest.fixture
def api_test_app(
    config: OrderEntryConfig,
    api_catalog: InMemoryCatalogLookup,
    draft_store: InMemoryDraftStore,
) -> Any:
    """Create a fresh FastAPI app with explicit collaborators."""
    return create_app(config=config, catalog=api_catalog, draft_store=draft_store)


@pytest.fixture
def api_test_client(api_test_app: Any) -> Generator[TestClient, None, None]:
    """Create a TestClient for the app (lifespan included)."""
    with TestClient(api_test_app) as client:
        yield client
