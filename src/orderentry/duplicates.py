"""Cross-row duplicate barcode detection."""

from dataclasses import dataclass
from typing import Iterable

from orderentry.rules import normalize_barcode


@dataclass(frozen=True)
class DuplicateConflict:
    """A row whose barcode repeats one from an earlier row."""

    row_id: str
    conflicts_with: str
    conflicts_with_position: int

    @property
    def message(self) -> str:
        return f"Duplicate barcode found at row {self.conflicts_with_position}"


def find_duplicates(rows: Iterable[tuple[str, str]]) -> dict[str, DuplicateConflict]:
    """
    Scan (row_id, barcode) pairs given in display order.

    The first row holding a normalized barcode owns it; every later row with
    the same key is reported against that first row. Blank barcodes never
    conflict.
    """
    first_seen: dict[str, tuple[str, int]] = {}
    conflicts: dict[str, DuplicateConflict] = {}

    for position, (row_id, barcode) in enumerate(rows, start=1):
        key = normalize_barcode(barcode)
        if not key:
            continue
        owner = first_seen.get(key)
        if owner is None:
            first_seen[key] = (row_id, position)
            continue
        conflicts[row_id] = DuplicateConflict(
            row_id=row_id,
            conflicts_with=owner[0],
            conflicts_with_position=owner[1],
        )

    return conflicts
