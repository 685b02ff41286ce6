"""Tests for DraftSessionRegistry."""

import pytest

from conftest import ControlledCatalog, fill_row, settle
from orderentry.catalog import InMemoryCatalogLookup
from orderentry.config import OrderEntryConfig
from orderentry.exceptions import DraftNotFoundError, SubmissionBlockedError
from orderentry.repositories.memory import InMemoryDraftStore
from orderentry.sessions import DraftSessionRegistry


def _registry(catalog=None, max_open_drafts: int = 3) -> DraftSessionRegistry:
    config = OrderEntryConfig(
        _env_file=None,
        verification_timeout_sec=None,
        max_open_drafts=max_open_drafts,
    )
    return DraftSessionRegistry(
        config, catalog or InMemoryCatalogLookup({"SKU1"}), InMemoryDraftStore()
    )


def test_open_sessions_are_bounded():
    registry = _registry(max_open_drafts=3)
    ids = [registry.create()[0] for _ in range(5)]

    assert len(registry) == 3
    assert ids[0] not in registry and ids[1] not in registry
    assert all(session_id in registry for session_id in ids[2:])


def test_evicted_session_is_reopened_from_storage():
    registry = _registry(max_open_drafts=1)
    first, form = registry.create()
    row_id = form.rows[0].row_id
    fill_row(form, row_id, "SKU1")

    registry.create()
    assert first not in registry

    reopened = registry.get(first)
    assert reopened is not form
    assert [(row.row_id, row.barcode) for row in reopened.rows] == [(row_id, "SKU1")]
    assert len(registry) == 1


def test_get_unknown_session_raises():
    registry = _registry()
    with pytest.raises(DraftNotFoundError):
        registry.get("0" * 32)
    with pytest.raises(DraftNotFoundError):
        registry.get("not-a-session")
    assert len(registry) == 0


@pytest.mark.asyncio
async def test_submit_ends_session():
    registry = _registry()
    session_id, form = registry.create()
    row_id = form.rows[0].row_id
    fill_row(form, row_id, "SKU1")
    await form.commit_barcode(row_id)

    items = registry.submit(session_id)

    assert [item.barcode for item in items] == ["SKU1"]
    assert session_id not in registry
    with pytest.raises(DraftNotFoundError):
        registry.get(session_id)


def test_blocked_submit_keeps_session():
    registry = _registry()
    session_id, _ = registry.create()

    with pytest.raises(SubmissionBlockedError):
        registry.submit(session_id)
    assert session_id in registry


@pytest.mark.asyncio
async def test_session_with_check_in_flight_is_not_evicted():
    catalog = ControlledCatalog()
    registry = _registry(catalog, max_open_drafts=1)
    busy, form = registry.create()
    row_id = form.rows[0].row_id
    fill_row(form, row_id, "SKU1")
    task = form.commit_barcode(row_id)
    await settle()

    latest, _ = registry.create()

    assert busy in registry and latest in registry

    catalog.resolve("SKU1")
    await task
    assert form.validation_state(row_id).is_valid
    await registry.aclose()
