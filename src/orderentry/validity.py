"""Submit eligibility across rule, duplicate and verification results."""

from dataclasses import dataclass, field
from typing import Mapping, Sequence

from orderentry.duplicates import DuplicateConflict
from orderentry.models import LineItem, RowValidationState
from orderentry.rules import FieldRuleEngine


@dataclass(frozen=True)
class RowIssues:
    """Everything blocking one row from submission."""

    row_id: str
    position: int
    field_errors: dict[str, str] = field(default_factory=dict)
    duplicate_of: str | None = None
    verification: str = "pending"


@dataclass(frozen=True)
class FormValidity:
    """Aggregate result. Valid only when no row is blocked."""

    blocking: list[RowIssues]

    @property
    def is_valid(self) -> bool:
        return not self.blocking

    def as_details(self) -> dict:
        return {
            "rows": [
                {
                    "row_id": issue.row_id,
                    "position": issue.position,
                    "field_errors": issue.field_errors,
                    "duplicate_of": issue.duplicate_of,
                    "verification": issue.verification,
                }
                for issue in self.blocking
            ]
        }


class FormValidityAggregator:
    """Combine per-row results into one submit decision.

    Computed on every call, O(rows); nothing is cached between mutations.
    """

    def __init__(self, rules: FieldRuleEngine):
        self.rules = rules

    def evaluate(
        self,
        rows: Sequence[LineItem],
        states: Mapping[str, RowValidationState],
        duplicates: Mapping[str, DuplicateConflict],
    ) -> FormValidity:
        blocking: list[RowIssues] = []
        for position, row in enumerate(rows, start=1):
            errors = self.rules.check_row(row)
            conflict = duplicates.get(row.row_id)
            state = states.get(row.row_id, RowValidationState.pending())
            if errors or conflict is not None or not state.is_valid:
                blocking.append(
                    RowIssues(
                        row_id=row.row_id,
                        position=position,
                        field_errors=errors,
                        duplicate_of=conflict.conflicts_with if conflict else None,
                        verification=state.status,
                    )
                )
        return FormValidity(blocking=blocking)

    def is_valid(
        self,
        rows: Sequence[LineItem],
        states: Mapping[str, RowValidationState],
        duplicates: Mapping[str, DuplicateConflict],
    ) -> bool:
        return bool(rows) and self.evaluate(rows, states, duplicates).is_valid
