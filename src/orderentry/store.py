"""Ordered line-item storage addressed by stable row identifiers."""

from __future__ import annotations

import logging
import uuid
from decimal import Decimal
from typing import Any, Iterable, Optional

from orderentry.exceptions import UnknownRowError
from orderentry.models import ROW_FIELDS, LineItem

logger = logging.getLogger(__name__)


def new_row_id() -> str:
    """Generate an opaque row identifier that is never reused."""
    return f"r_{uuid.uuid4().hex[:12]}"


def _to_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        raise ValueError("Boolean is not a valid field value")
    if isinstance(value, Decimal):
        # Keep the user's scale ("10.00") but never emit exponent notation.
        return format(value, "f")
    return str(value)


class LineItemStore:
    """Owns the order rows. Display order is a projection over identity."""

    def __init__(self) -> None:
        self._items: dict[str, LineItem] = {}
        self._order: list[str] = []
        self.add_row()

    def __len__(self) -> int:
        return len(self._order)

    def __contains__(self, row_id: object) -> bool:
        return row_id in self._items

    @property
    def rows(self) -> list[LineItem]:
        """Rows in display order."""
        return [self._items[row_id] for row_id in self._order]

    @property
    def row_ids(self) -> list[str]:
        return list(self._order)

    def get(self, row_id: str) -> LineItem:
        try:
            return self._items[row_id]
        except KeyError:
            raise UnknownRowError(row_id) from None

    def position(self, row_id: str) -> int:
        """Return the 1-based display position of a row."""
        self.get(row_id)
        return self._order.index(row_id) + 1

    def add_row(self) -> LineItem:
        """Append a fresh row with default values."""
        item = LineItem(row_id=new_row_id())
        self._items[item.row_id] = item
        self._order.append(item.row_id)
        logger.debug("row added: %s (rows=%d)", item.row_id, len(self._order))
        return item

    def remove_row(self, row_id: str) -> bool:
        """Remove a row. The last remaining row is never removed."""
        self.get(row_id)
        if len(self._order) <= 1:
            logger.debug("refusing to remove last row %s", row_id)
            return False
        self._order.remove(row_id)
        del self._items[row_id]
        logger.debug("row removed: %s (rows=%d)", row_id, len(self._order))
        return True

    def update_field(self, row_id: str, field: str, value: Any) -> LineItem:
        """Set one field of one row."""
        if field not in ROW_FIELDS:
            raise ValueError(
                f"Unknown field: {field}. Valid: {', '.join(ROW_FIELDS)}"
            )
        item = self.get(row_id)
        updated = item.model_copy(update={field: _to_text(value)})
        self._items[row_id] = updated
        return updated

    def move_row(self, row_id: str, position: int) -> None:
        """Move a row to a 1-based position, clamped to the list bounds."""
        self.get(row_id)
        target = max(1, min(position, len(self._order))) - 1
        self._order.remove(row_id)
        self._order.insert(target, row_id)

    def clear(self) -> LineItem:
        """Drop every row and start over with a single fresh row."""
        self._items.clear()
        self._order.clear()
        return self.add_row()

    def restore(self, rows: Iterable[LineItem]) -> Optional[list[LineItem]]:
        """Replace contents with previously persisted rows.

        Rows with a repeated identifier are skipped. Returns None and leaves
        the store untouched when nothing usable remains.
        """
        items: dict[str, LineItem] = {}
        order: list[str] = []
        for row in rows:
            if row.row_id in items:
                logger.warning("skipping duplicate row_id in draft: %s", row.row_id)
                continue
            items[row.row_id] = row
            order.append(row.row_id)

        if not order:
            return None

        self._items = items
        self._order = order
        return self.rows
