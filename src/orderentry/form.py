"""Order entry form: event handlers tying the row components together."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Optional

from orderentry.catalog import CatalogLookup
from orderentry.config import OrderEntryConfig
from orderentry.coordinator import RowValidationCoordinator
from orderentry.duplicates import DuplicateConflict, find_duplicates
from orderentry.exceptions import SubmissionBlockedError
from orderentry.models import (
    REASON_DUPLICATE,
    REASON_NOT_FOUND,
    REASON_TIMEOUT,
    REASON_VERIFICATION_FAILED,
    DraftSnapshot,
    FormView,
    LineItem,
    RowValidationState,
    RowView,
    SubmittedLineItem,
)
from orderentry.persistence import DraftPersistence
from orderentry.rules import FieldRuleEngine, parse_quantity, parse_unit_price
from orderentry.store import LineItemStore
from orderentry.validity import FormValidity, FormValidityAggregator

logger = logging.getLogger(__name__)

SubmitHandler = Callable[[list[SubmittedLineItem]], None]


def _verification_message(barcode: str, state: RowValidationState) -> Optional[str]:
    if state.status != "invalid":
        return None
    if state.reason == REASON_NOT_FOUND:
        return f"Product with barcode: {barcode.strip()} not found"
    if state.reason == REASON_TIMEOUT:
        return "Barcode verification timed out, please retry"
    if state.reason == REASON_VERIFICATION_FAILED:
        return "Barcode could not be verified, please retry"
    return None


class OrderEntryForm:
    """Row-based order entry with asynchronous barcode verification.

    Every mutation saves the draft; every applied verification result saves
    it again. Duplicate findings and validity are derived from the live rows
    on each call.
    """

    def __init__(
        self,
        config: OrderEntryConfig,
        lookup: CatalogLookup,
        *,
        persistence: Optional[DraftPersistence] = None,
        on_submit: Optional[SubmitHandler] = None,
    ) -> None:
        self.config = config
        self.rules = FieldRuleEngine(config)
        self.aggregator = FormValidityAggregator(self.rules)
        self.store = LineItemStore()
        self.coordinator = RowValidationCoordinator(
            lookup,
            timeout_sec=config.verification_timeout_sec,
            on_change=self._on_verification_resolved,
        )
        self.persistence = persistence
        self.on_submit = on_submit

        for row_id in self.store.row_ids:
            self.coordinator.track(row_id)
        self.restored = self._load_draft()

    @property
    def rows(self) -> list[LineItem]:
        return self.store.rows

    @property
    def duplicates(self) -> dict[str, DuplicateConflict]:
        return find_duplicates((row.row_id, row.barcode) for row in self.store.rows)

    def add_row(self) -> LineItem:
        item = self.store.add_row()
        self.coordinator.track(item.row_id)
        self._save()
        return item

    def remove_row(self, row_id: str) -> bool:
        """Remove a row and purge its state. No-op for the last row."""
        if not self.store.remove_row(row_id):
            return False
        self.coordinator.forget(row_id)
        self._rescan_duplicates()
        self._save()
        return True

    def update_field(self, row_id: str, field: str, value: Any) -> LineItem:
        previous = self.store.get(row_id)
        item = self.store.update_field(row_id, field, value)
        if field == "barcode" and item.barcode != previous.barcode:
            self.coordinator.reset(row_id)
            self._rescan_duplicates()
        self._save()
        return item

    def clear_barcode(self, row_id: str) -> LineItem:
        return self.update_field(row_id, "barcode", "")

    def move_row(self, row_id: str, position: int) -> None:
        self.store.move_row(row_id, position)
        self._rescan_duplicates()
        self._save()

    def commit_barcode(self, row_id: str) -> Optional[asyncio.Task[RowValidationState]]:
        """
        Barcode field lost focus: verify the barcode if it may be checked.

        Returns:
            The verification task, or None when local rules or a duplicate
            prevented a catalog call
        """
        item = self.store.get(row_id)
        barcode = item.barcode.strip()

        if not barcode or self.rules.check_barcode(item.barcode):
            self.coordinator.reset(row_id)
            self._save()
            return None

        conflict = self.duplicates.get(row_id)
        if conflict is not None:
            logger.info(
                "row %s duplicates row %s, skipping catalog check",
                row_id,
                conflict.conflicts_with,
            )
            self.coordinator.mark_invalid(row_id, REASON_DUPLICATE)
            self._save()
            return None

        task = self.coordinator.dispatch(row_id, barcode)
        self._save()
        return task

    def validation_state(self, row_id: str) -> RowValidationState:
        return self.coordinator.state(row_id)

    def field_errors(self, row_id: str) -> dict[str, str]:
        """Display messages for one row; a duplicate outranks the check state."""
        item = self.store.get(row_id)
        return self._row_errors(item, self.duplicates)

    def all_field_errors(self) -> dict[str, dict[str, str]]:
        duplicates = self.duplicates
        return {
            row.row_id: errors
            for row in self.store.rows
            if (errors := self._row_errors(row, duplicates))
        }

    def evaluate(self) -> FormValidity:
        return self.aggregator.evaluate(
            self.store.rows, self.coordinator.states, self.duplicates
        )

    def is_form_valid(self) -> bool:
        return self.aggregator.is_valid(
            self.store.rows, self.coordinator.states, self.duplicates
        )

    def rows_view(self) -> list[RowView]:
        duplicates = self.duplicates
        states = self.coordinator.states
        return [
            RowView(
                position=position,
                row_id=row.row_id,
                barcode=row.barcode,
                quantity=row.quantity,
                unit_price=row.unit_price,
                validation=states[row.row_id],
                errors=self._row_errors(row, duplicates),
            )
            for position, row in enumerate(self.store.rows, start=1)
        ]

    def view(self, draft_id: Optional[str] = None) -> FormView:
        return FormView(
            draft_id=draft_id,
            rows=self.rows_view(),
            is_valid=self.is_form_valid(),
        )

    def snapshot(self) -> DraftSnapshot:
        return DraftSnapshot(
            rows=self.store.rows,
            validation_states=self.coordinator.states,
        )

    def submit(self) -> list[SubmittedLineItem]:
        """
        Emit the finalized rows and clear the form.

        Raises:
            SubmissionBlockedError: when any row is not ready for submission
        """
        validity = self.evaluate()
        if not validity.is_valid:
            logger.info("submit blocked: %d rows need attention", len(validity.blocking))
            raise SubmissionBlockedError(validity.as_details())

        items = [
            SubmittedLineItem(
                barcode=row.barcode.strip(),
                quantity=parse_quantity(row.quantity, max_value=self.config.quantity_max),
                unit_price=parse_unit_price(row.unit_price, max_value=self.config.price_max),
            )
            for row in self.store.rows
        ]

        if self.on_submit is not None:
            self.on_submit(items)

        logger.info("order submitted with %d items", len(items))
        self._clear()
        if self.persistence is not None:
            self.persistence.clear()
        return items

    def reset(self) -> None:
        """Discard the draft and start over with one empty row."""
        self._clear()
        self._save()

    def close(self) -> None:
        """Teardown: outstanding checks are abandoned."""
        self.coordinator.close()

    async def aclose(self) -> None:
        await self.coordinator.aclose()

    def _clear(self) -> None:
        for row_id in self.store.row_ids:
            self.coordinator.forget(row_id)
        item = self.store.clear()
        self.coordinator.track(item.row_id)

    def _row_errors(
        self, item: LineItem, duplicates: dict[str, DuplicateConflict]
    ) -> dict[str, str]:
        errors = self.rules.check_row(item)
        if "barcode" in errors:
            return errors

        conflict = duplicates.get(item.row_id)
        if conflict is not None:
            errors["barcode"] = conflict.message
            return errors

        message = _verification_message(item.barcode, self.coordinator.state(item.row_id))
        if message:
            errors["barcode"] = message
        return errors

    def _rescan_duplicates(self) -> None:
        """Rows rejected as duplicates become checkable once the conflict is gone."""
        duplicates = self.duplicates
        for row_id, state in self.coordinator.states.items():
            if state.reason == REASON_DUPLICATE and row_id not in duplicates:
                self.coordinator.reset(row_id)

    def _load_draft(self) -> bool:
        if self.persistence is None:
            return False

        snapshot = self.persistence.load()
        if snapshot is None:
            return False

        rows = self.store.restore(snapshot.rows)
        if rows is None:
            return False

        self.coordinator.restore(
            {
                row.row_id: snapshot.validation_states.get(
                    row.row_id, RowValidationState.pending()
                )
                for row in rows
            }
        )
        self._rescan_duplicates()
        logger.info("restored draft %s with %d rows", self.persistence.key, len(rows))
        return True

    def _save(self) -> None:
        if self.persistence is not None:
            self.persistence.save(self.snapshot())

    def _on_verification_resolved(self, row_id: str, state: RowValidationState) -> None:
        self._save()
