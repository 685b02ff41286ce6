"""Synchronous field rules for order rows."""

import re
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING

from orderentry.exceptions import FieldShapeError
from orderentry.models import LineItem

if TYPE_CHECKING:
    from orderentry.config import OrderEntryConfig

_INTEGER_PATTERN = re.compile(r"[0-9]+", re.ASCII)
_DECIMAL_PATTERN = re.compile(r"(?:[0-9]+(?:\.[0-9]*)?|\.[0-9]+)", re.ASCII)

QUANTITY_SHAPE_MESSAGE = "Quantity must be a positive whole number"
PRICE_SHAPE_MESSAGE = "Price must be a positive number"


def _limit_text(limit: int) -> str:
    return f"{limit:,}"


def parse_quantity(text: str, *, max_value: int = 999_999) -> int:
    """Parse quantity text as a base-10 integer in (0, max_value]."""
    raw = text.strip()
    if not _INTEGER_PATTERN.fullmatch(raw):
        raise FieldShapeError("quantity", QUANTITY_SHAPE_MESSAGE)

    value = int(raw, 10)
    if value <= 0:
        raise FieldShapeError("quantity", QUANTITY_SHAPE_MESSAGE)
    if value > max_value:
        raise FieldShapeError(
            "quantity", f"Quantity cannot exceed {_limit_text(max_value)}"
        )
    return value


def parse_unit_price(text: str, *, max_value: int = 999_999) -> Decimal:
    """Parse price text as a plain decimal in (0, max_value].

    Scientific notation, signs and repeated decimal points are rejected by
    the pattern before Decimal ever sees the text.
    """
    raw = text.strip()
    if not _DECIMAL_PATTERN.fullmatch(raw):
        raise FieldShapeError("unit_price", PRICE_SHAPE_MESSAGE)

    try:
        value = Decimal(raw)
    except InvalidOperation:
        raise FieldShapeError("unit_price", PRICE_SHAPE_MESSAGE) from None

    if not value.is_finite() or value <= 0:
        raise FieldShapeError("unit_price", PRICE_SHAPE_MESSAGE)
    if value > max_value:
        raise FieldShapeError(
            "unit_price", f"Price cannot exceed {_limit_text(max_value)}"
        )
    return value


def normalize_barcode(barcode: str) -> str:
    """Comparison key for barcodes: trimmed and case-folded."""
    return barcode.strip().casefold()


class FieldRuleEngine:
    """Pure per-row field checks."""

    def __init__(self, config: "OrderEntryConfig"):
        self.barcode_max_length = config.barcode_max_length
        self.quantity_max = config.quantity_max
        self.price_max = config.price_max

    def check_barcode(self, barcode: str) -> str | None:
        trimmed = barcode.strip()
        if not trimmed:
            return "Barcode cannot be empty"
        if len(trimmed) > self.barcode_max_length:
            return f"Barcode cannot exceed {self.barcode_max_length} characters"
        return None

    def check_quantity(self, quantity: str) -> str | None:
        try:
            parse_quantity(quantity, max_value=self.quantity_max)
        except FieldShapeError as exc:
            return exc.message
        return None

    def check_unit_price(self, unit_price: str) -> str | None:
        try:
            parse_unit_price(unit_price, max_value=self.price_max)
        except FieldShapeError as exc:
            return exc.message
        return None

    def check_row(self, item: LineItem) -> dict[str, str]:
        """
        Run every field rule for a row.

        Returns:
            Mapping of field name to message, containing failing fields only
        """
        errors: dict[str, str] = {}
        for field, message in (
            ("barcode", self.check_barcode(item.barcode)),
            ("quantity", self.check_quantity(item.quantity)),
            ("unit_price", self.check_unit_price(item.unit_price)),
        ):
            if message:
                errors[field] = message
        return errors
