"""Behavioural tests for OrderEntryForm."""

from decimal import Decimal

import pytest

from conftest import ControlledCatalog, fill_row, settle
from orderentry.exceptions import SubmissionBlockedError
from orderentry.form import OrderEntryForm
from orderentry.models import RowValidationState, SubmittedLineItem
from orderentry.persistence import DraftPersistence


async def _make_valid(form: OrderEntryForm, catalog: ControlledCatalog, row_id: str, barcode: str) -> None:
    fill_row(form, row_id, barcode)
    task = form.commit_barcode(row_id)
    await settle()
    catalog.resolve(barcode, exists=True)
    await task


@pytest.mark.asyncio
async def test_end_to_end_submit(form, controlled_catalog, draft_store, persistence):
    submitted: list[list[SubmittedLineItem]] = []
    form.on_submit = submitted.append
    row_id = form.rows[0].row_id

    form.update_field(row_id, "barcode", "SKU1")
    form.update_field(row_id, "quantity", 5)
    form.update_field(row_id, "unit_price", Decimal("10.00"))
    task = form.commit_barcode(row_id)
    assert form.validation_state(row_id).status == "checking"

    await settle()
    assert controlled_catalog.requests[0][0] == "SKU1"
    controlled_catalog.resolve("SKU1", exists=True)
    await task

    assert form.validation_state(row_id).is_valid
    assert form.is_form_valid() is True

    items = form.submit()

    assert [item.model_dump() for item in items] == [
        {"barcode": "SKU1", "quantity": 5, "unit_price": Decimal("10.00")}
    ]
    assert submitted == [items]
    assert len(form.rows) == 1
    assert form.rows[0].row_id != row_id
    assert form.rows[0].barcode == ""
    assert form.validation_state(form.rows[0].row_id) == RowValidationState.pending()
    assert persistence.load() is None


@pytest.mark.asyncio
async def test_identity_stability_after_removal(form, controlled_catalog):
    a = form.rows[0].row_id
    b = form.add_row().row_id
    c = form.add_row().row_id

    await _make_valid(form, controlled_catalog, a, "A")
    fill_row(form, b, "B")
    fill_row(form, c, "C")
    task = form.commit_barcode(c)
    await settle()
    controlled_catalog.resolve("C", exists=False)
    await task

    assert form.remove_row(a) is True

    view = form.rows_view()
    assert [(row.row_id, row.validation.status) for row in view] == [
        (b, "pending"),
        (c, "invalid"),
    ]
    assert [row.position for row in view] == [1, 2]
    assert set(form.coordinator.states) == {b, c}


def test_removing_sole_row_is_noop(form):
    only = form.rows[0].row_id
    assert form.remove_row(only) is False
    assert [row.row_id for row in form.rows] == [only]
    assert form.validation_state(only) == RowValidationState.pending()


def test_duplicate_flags_and_clears(form):
    r1 = form.rows[0].row_id
    r2 = form.add_row().row_id
    form.update_field(r1, "barcode", "ABC123")
    form.update_field(r2, "barcode", " abc123 ")

    assert form.field_errors(r2)["barcode"] == "Duplicate barcode found at row 1"
    assert r2 in form.duplicates

    form.update_field(r1, "barcode", "XYZ999")
    assert form.duplicates == {}
    assert "barcode" not in form.field_errors(r1)
    assert "barcode" not in form.field_errors(r2)


def test_removal_resolves_duplicate(form):
    r1 = form.rows[0].row_id
    r2 = form.add_row().row_id
    form.update_field(r1, "barcode", "SKU")
    form.update_field(r2, "barcode", "sku")

    assert form.commit_barcode(r2) is None
    assert form.validation_state(r2) == RowValidationState.invalid("duplicate")

    form.remove_row(r1)

    assert form.duplicates == {}
    assert form.validation_state(r2) == RowValidationState.pending()


def test_reorder_resolves_duplicate(form):
    r1 = form.rows[0].row_id
    r2 = form.add_row().row_id
    form.update_field(r1, "barcode", "SKU")
    form.update_field(r2, "barcode", "sku")

    assert form.commit_barcode(r2) is None
    assert form.validation_state(r2) == RowValidationState.invalid("duplicate")

    form.move_row(r2, 1)

    # r2 now owns the barcode; r1 is the later row and gets flagged instead.
    assert [row.row_id for row in form.rows] == [r2, r1]
    assert form.validation_state(r2) == RowValidationState.pending()
    assert list(form.duplicates) == [r1]
    assert form.field_errors(r1)["barcode"] == "Duplicate barcode found at row 1"
    assert "barcode" not in form.field_errors(r2)


@pytest.mark.asyncio
async def test_stale_response_does_not_overwrite_newer_edit(form, controlled_catalog):
    r1 = form.rows[0].row_id
    fill_row(form, r1, "A")
    first = form.commit_barcode(r1)
    await settle()

    form.update_field(r1, "barcode", "B")
    assert form.validation_state(r1) == RowValidationState.pending()
    second = form.commit_barcode(r1)
    await settle()

    controlled_catalog.resolve("B", exists=True)
    await second
    controlled_catalog.resolve("A", exists=False)
    await first

    assert form.validation_state(r1).is_valid
    assert form.is_form_valid() is True


@pytest.mark.asyncio
async def test_barcode_edit_during_check_resets_to_pending(form, controlled_catalog):
    r1 = form.rows[0].row_id
    fill_row(form, r1, "A")
    task = form.commit_barcode(r1)
    await settle()

    form.update_field(r1, "barcode", "A2")
    controlled_catalog.resolve("A", exists=True)
    await task

    assert form.validation_state(r1) == RowValidationState.pending()
    assert form.is_form_valid() is False


@pytest.mark.asyncio
async def test_validity_composition(form, controlled_catalog):
    r1 = form.rows[0].row_id
    r2 = form.add_row().row_id
    await _make_valid(form, controlled_catalog, r1, "SKU1")
    await _make_valid(form, controlled_catalog, r2, "SKU2")
    assert form.is_form_valid() is True

    form.update_field(r2, "quantity", 0)
    assert form.is_form_valid() is False
    form.update_field(r2, "quantity", 3)
    assert form.is_form_valid() is True

    form.update_field(r2, "unit_price", -5)
    assert form.is_form_valid() is False
    form.update_field(r2, "unit_price", "2.50")
    assert form.is_form_valid() is True

    form.update_field(r2, "barcode", "sku1")
    assert form.is_form_valid() is False
    assert form.evaluate().blocking[0].duplicate_of == r1


@pytest.mark.asyncio
async def test_non_valid_states_block_submit(form, controlled_catalog):
    r1 = form.rows[0].row_id
    fill_row(form, r1, "SKU1")
    assert form.is_form_valid() is False  # pending

    task = form.commit_barcode(r1)
    assert form.is_form_valid() is False  # checking
    await settle()
    controlled_catalog.resolve("SKU1", exists=False)
    await task
    assert form.is_form_valid() is False  # invalid
    assert form.field_errors(r1)["barcode"] == "Product with barcode: SKU1 not found"

    with pytest.raises(SubmissionBlockedError) as exc_info:
        form.submit()
    assert exc_info.value.code == "FORM_INVALID"
    assert exc_info.value.details["rows"][0]["verification"] == "invalid"
    assert form.rows[0].barcode == "SKU1"


def test_commit_skips_catalog_for_blank_or_oversized_barcode(form, controlled_catalog):
    r1 = form.rows[0].row_id
    assert form.commit_barcode(r1) is None

    form.update_field(r1, "barcode", "X" * 51)
    assert form.commit_barcode(r1) is None
    assert form.validation_state(r1) == RowValidationState.pending()
    assert form.field_errors(r1)["barcode"] == "Barcode cannot exceed 50 characters"
    assert controlled_catalog.requests == []


@pytest.mark.asyncio
async def test_duplicate_does_not_cancel_in_flight_check(form, controlled_catalog):
    r1 = form.rows[0].row_id
    r2 = form.add_row().row_id
    fill_row(form, r1, "SKU1")
    fill_row(form, r2, "SKU2")
    task = form.commit_barcode(r2)
    await settle()

    form.move_row(r2, 1)
    form.update_field(r1, "barcode", "sku2")
    controlled_catalog.resolve("SKU2", exists=True)
    await task

    assert form.validation_state(r2).is_valid
    assert form.field_errors(r1)["barcode"] == "Duplicate barcode found at row 1"
    assert form.is_form_valid() is False


@pytest.mark.asyncio
async def test_transport_failure_shows_retry_message(form, controlled_catalog):
    r1 = form.rows[0].row_id
    fill_row(form, r1, "SKU1")
    task = form.commit_barcode(r1)
    await settle()
    controlled_catalog.fail("SKU1")
    await task

    assert form.field_errors(r1)["barcode"] == "Barcode could not be verified, please retry"

    retry = form.commit_barcode(r1)
    await settle()
    controlled_catalog.resolve("SKU1", exists=True)
    await retry
    assert form.is_form_valid() is True


@pytest.mark.asyncio
async def test_draft_survives_reload(config, controlled_catalog, persistence):
    first = OrderEntryForm(config, controlled_catalog, persistence=persistence)
    r1 = first.rows[0].row_id
    r2 = first.add_row().row_id
    await _make_valid(first, controlled_catalog, r1, "SKU1")
    fill_row(first, r2, "SKU2")
    first.commit_barcode(r2)
    first.close()

    reloaded = OrderEntryForm(config, ControlledCatalog(), persistence=persistence)

    assert reloaded.restored is True
    assert [row.row_id for row in reloaded.rows] == [r1, r2]
    assert reloaded.rows[1].quantity == "5"
    assert reloaded.validation_state(r1).is_valid
    # The in-flight check did not survive the reload.
    assert reloaded.validation_state(r2) == RowValidationState.pending()


def test_every_mutation_saves_draft(form, draft_store):
    writes = draft_store.write_count
    r2 = form.add_row().row_id
    form.update_field(r2, "quantity", "2")
    form.move_row(r2, 1)
    form.remove_row(r2)
    assert draft_store.write_count == writes + 4


class BrokenStore:
    def write(self, key, value):
        raise OSError("disk full")

    def read(self, key):
        raise OSError("disk gone")

    def delete(self, key):
        raise OSError("disk gone")


def test_persistence_failures_never_block_the_form(config, controlled_catalog, caplog):
    form = OrderEntryForm(
        config, controlled_catalog, persistence=DraftPersistence(BrokenStore(), "k")
    )
    assert form.restored is False

    with caplog.at_level("WARNING"):
        r2 = form.add_row().row_id
        form.update_field(r2, "barcode", "X")
        form.reset()

    assert len(form.rows) == 1
    assert "Draft save failed" in caplog.text


def test_reset_starts_over(form):
    form.add_row()
    form.update_field(form.rows[0].row_id, "barcode", "A")
    form.reset()
    assert len(form.rows) == 1
    assert form.rows[0].barcode == ""
    assert set(form.coordinator.states) == {form.rows[0].row_id}


def test_clear_barcode(form):
    r1 = form.rows[0].row_id
    form.update_field(r1, "barcode", "A")
    form.coordinator.mark_invalid(r1, "not found")
    form.clear_barcode(r1)
    assert form.rows[0].barcode == ""
    assert form.validation_state(r1) == RowValidationState.pending()
