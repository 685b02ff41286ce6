"""Pydantic data models for order entry rows, drafts and API payloads."""

from decimal import Decimal
from typing import Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

RowField = Literal["barcode", "quantity", "unit_price"]
ROW_FIELDS: tuple[str, ...] = ("barcode", "quantity", "unit_price")

ValidationStatus = Literal["pending", "checking", "valid", "invalid"]

REASON_NOT_FOUND = "not found"
REASON_VERIFICATION_FAILED = "verification failed"
REASON_TIMEOUT = "timeout"
REASON_DUPLICATE = "duplicate"


class LineItem(BaseModel):
    """One order line as the user typed it.

    Numeric fields hold the raw input text; parsing happens in the rule engine
    so malformed input can be reported instead of rejected on assignment.
    """

    row_id: str = Field(..., min_length=1, description="Stable row identifier")
    barcode: str = Field(default="", description="Product barcode")
    quantity: str = Field(default="1", description="Quantity input text")
    unit_price: str = Field(default="0", description="Unit price input text")


class RowValidationState(BaseModel):
    """Existence-check state for a single row."""

    model_config = ConfigDict(frozen=True)

    status: ValidationStatus = "pending"
    reason: Optional[str] = None

    @classmethod
    def pending(cls) -> "RowValidationState":
        return cls(status="pending")

    @classmethod
    def checking(cls) -> "RowValidationState":
        return cls(status="checking")

    @classmethod
    def valid(cls) -> "RowValidationState":
        return cls(status="valid")

    @classmethod
    def invalid(cls, reason: str) -> "RowValidationState":
        return cls(status="invalid", reason=reason)

    @property
    def is_valid(self) -> bool:
        return self.status == "valid"


class DraftSnapshot(BaseModel):
    """Persisted in-progress form: rows in display order plus their states."""

    version: int = Field(default=1, ge=1)
    rows: List[LineItem] = Field(default_factory=list)
    validation_states: Dict[str, RowValidationState] = Field(default_factory=dict)


class SubmittedLineItem(BaseModel):
    """Finalized row emitted to the order-creation collaborator."""

    barcode: str = Field(..., min_length=1)
    quantity: int = Field(..., gt=0)
    unit_price: Decimal = Field(..., gt=0)


class RowView(BaseModel):
    """Display projection of one row."""

    position: int = Field(..., ge=1, description="1-based display position")
    row_id: str
    barcode: str
    quantity: str
    unit_price: str
    validation: RowValidationState
    errors: Dict[str, str] = Field(default_factory=dict)


class FormView(BaseModel):
    """Display projection of the whole form."""

    draft_id: Optional[str] = None
    rows: List[RowView]
    is_valid: bool


class CreateDraftResponse(BaseModel):
    """Response payload for draft session creation."""

    draft_id: str
    form: FormView


class UpdateFieldRequest(BaseModel):
    """Request payload for a single field edit."""

    field: RowField
    value: Union[int, float, str]


class MoveRowRequest(BaseModel):
    """Request payload for reordering a row."""

    position: int = Field(..., ge=1, description="Target 1-based position")


class SubmitResponse(BaseModel):
    """Response payload for a successful submission."""

    items: List[SubmittedLineItem]
