"""Exceptions raised by the order entry engine and its adapters."""

from typing import Any, Dict, Optional


class ContractError(Exception):
    """Error that maps to a stable API error payload."""

    def __init__(
        self,
        code: str,
        message: str,
        *,
        status_code: int = 400,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}


class SubmissionBlockedError(ContractError):
    """Raised when submit is attempted while the form is not valid."""

    def __init__(self, details: Dict[str, Any]) -> None:
        super().__init__(
            "FORM_INVALID",
            "Please fix the form errors before submitting",
            status_code=409,
            details=details,
        )


class DraftNotFoundError(ContractError):
    """Raised when an API call references an unknown draft session."""

    def __init__(self, session_id: str) -> None:
        super().__init__(
            "DRAFT_NOT_FOUND",
            f"Unknown draft: {session_id}",
            status_code=404,
            details={"draft_id": session_id},
        )


class UnknownRowError(KeyError):
    """Raised when a row identifier does not exist in the store."""

    def __init__(self, row_id: str) -> None:
        super().__init__(row_id)
        self.row_id = row_id

    def __str__(self) -> str:
        return f"Unknown row_id: {self.row_id}"


class FieldShapeError(ValueError):
    """Raised when quantity/price/barcode text is malformed or out of bounds."""

    def __init__(self, field: str, message: str) -> None:
        super().__init__(message)
        self.field = field
        self.message = message


class VerificationTransportError(Exception):
    """Raised by catalog adapters when an existence check cannot be answered."""


class PersistenceError(Exception):
    """Raised by draft stores when a read or write fails."""
