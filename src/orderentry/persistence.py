"""Draft save/restore over the persistence port."""

import logging
from typing import Optional

from pydantic import ValidationError

from orderentry.models import DraftSnapshot, RowValidationState
from orderentry.repositories.base import DraftStore

logger = logging.getLogger(__name__)


class DraftPersistence:
    """Best-effort draft storage. Failures are logged and never raised."""

    def __init__(self, store: DraftStore, key: str) -> None:
        self.store = store
        self.key = key

    def save(self, snapshot: DraftSnapshot) -> bool:
        """Write the snapshot. Returns False if the store rejected it."""
        try:
            self.store.write(self.key, snapshot.model_dump(mode="json"))
        except Exception as e:
            logger.warning("Draft save failed for %s: %s", self.key, e)
            return False
        return True

    def load(self) -> Optional[DraftSnapshot]:
        """
        Read and sanitize the persisted draft.

        Returns:
            The restorable snapshot, or None when there is nothing usable
        """
        try:
            raw = self.store.read(self.key)
        except Exception as e:
            logger.warning("Draft load failed for %s: %s", self.key, e)
            return None

        if raw is None:
            return None

        try:
            snapshot = DraftSnapshot.model_validate(raw)
        except ValidationError as e:
            logger.warning(
                "Discarding malformed draft %s (%d errors)", self.key, e.error_count()
            )
            return None

        if not snapshot.rows:
            return None

        return _sanitize(snapshot)

    def clear(self) -> None:
        try:
            self.store.delete(self.key)
        except Exception as e:
            logger.warning("Draft clear failed for %s: %s", self.key, e)


def _sanitize(snapshot: DraftSnapshot) -> DraftSnapshot:
    """Give every restored row exactly one state.

    No request survives a reload, so rows saved mid-check come back Pending.
    """
    states: dict[str, RowValidationState] = {}
    for row in snapshot.rows:
        state = snapshot.validation_states.get(row.row_id)
        if state is None or state.status == "checking":
            state = RowValidationState.pending()
        states[row.row_id] = state

    dropped = set(snapshot.validation_states) - set(states)
    if dropped:
        logger.debug("Dropping %d orphaned validation states", len(dropped))

    return DraftSnapshot(
        version=snapshot.version,
        rows=snapshot.rows,
        validation_states=states,
    )
