"""Per-row asynchronous barcode verification.

Each row carries a monotonically increasing sequence number. Every dispatch
and every state reset (barcode edit, commit-time rejection) advances it, and a
resolving check may only write the row's state when the sequence it was issued
with is still the current one. A superseded check keeps running to completion
but its answer is dropped; removed rows and teardown cancel outstanding work.
"""

from __future__ import annotations

import asyncio
import logging
from functools import partial
from typing import Callable, Iterable, Mapping, Optional

from orderentry.catalog import CatalogLookup
from orderentry.exceptions import UnknownRowError, VerificationTransportError
from orderentry.models import (
    REASON_NOT_FOUND,
    REASON_TIMEOUT,
    REASON_VERIFICATION_FAILED,
    RowValidationState,
)

logger = logging.getLogger(__name__)

StateListener = Callable[[str, RowValidationState], None]


class RowValidationCoordinator:
    """Issues, tracks and gates existence checks keyed by row identity."""

    def __init__(
        self,
        lookup: CatalogLookup,
        *,
        timeout_sec: Optional[float] = None,
        on_change: Optional[StateListener] = None,
    ) -> None:
        self.lookup = lookup
        self.timeout_sec = timeout_sec
        self.on_change = on_change
        self._states: dict[str, RowValidationState] = {}
        self._sequence: dict[str, int] = {}
        self._tasks: dict[str, set[asyncio.Task[RowValidationState]]] = {}
        self._closed = False

    @property
    def states(self) -> dict[str, RowValidationState]:
        return dict(self._states)

    def state(self, row_id: str) -> RowValidationState:
        try:
            return self._states[row_id]
        except KeyError:
            raise UnknownRowError(row_id) from None

    def sequence(self, row_id: str) -> int:
        """Latest sequence number issued for a row."""
        self.state(row_id)
        return self._sequence[row_id]

    def in_flight(self, row_id: Optional[str] = None) -> int:
        """Number of checks still running (superseded ones included)."""
        if row_id is not None:
            return len(self._tasks.get(row_id, ()))
        return sum(len(tasks) for tasks in self._tasks.values())

    def track(self, row_id: str) -> None:
        """Start tracking a newly created row as Pending."""
        self._states[row_id] = RowValidationState.pending()
        self._sequence.setdefault(row_id, 0)

    def restore(self, states: Mapping[str, RowValidationState]) -> None:
        """Replace all tracked rows with restored draft states."""
        self._cancel(self._tasks.keys())
        self._states = dict(states)
        self._sequence = {row_id: 0 for row_id in states}

    def forget(self, row_id: str) -> None:
        """Purge a removed row. Any late resolution becomes a no-op."""
        self._states.pop(row_id, None)
        self._sequence.pop(row_id, None)
        self._cancel([row_id])

    def reset(self, row_id: str) -> None:
        """Back to Pending, superseding whatever check is outstanding."""
        self.state(row_id)
        self._advance(row_id)
        self._states[row_id] = RowValidationState.pending()

    def mark_invalid(self, row_id: str, reason: str) -> None:
        """Reject a row locally without consulting the catalog."""
        self.state(row_id)
        self._advance(row_id)
        self._states[row_id] = RowValidationState.invalid(reason)

    def dispatch(self, row_id: str, barcode: str) -> asyncio.Task[RowValidationState]:
        """
        Move a row to Checking and schedule an existence check.

        Must be called from a running event loop.

        Returns:
            The task; it resolves to the state it computed, whether or not
            that state was still authoritative when it arrived
        """
        if self._closed:
            raise RuntimeError("Verification coordinator is closed")
        self.state(row_id)

        sequence = self._advance(row_id)
        self._states[row_id] = RowValidationState.checking()

        task = asyncio.get_running_loop().create_task(
            self._verify(row_id, sequence, barcode),
            name=f"verify:{row_id}:{sequence}",
        )
        self._tasks.setdefault(row_id, set()).add(task)
        task.add_done_callback(partial(self._discard_task, row_id))
        logger.debug("dispatched check: row=%s seq=%d", row_id, sequence)
        return task

    async def wait_idle(self) -> None:
        """Wait until no check is running."""
        while True:
            pending = [
                task
                for tasks in self._tasks.values()
                for task in tasks
                if not task.done()
            ]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    def close(self) -> None:
        """Teardown: cancel every outstanding check and refuse new ones."""
        self._closed = True
        self._cancel(list(self._tasks.keys()))

    async def aclose(self) -> None:
        """Teardown and wait for cancelled checks to unwind."""
        pending = [task for tasks in self._tasks.values() for task in tasks]
        self.close()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    async def _verify(
        self, row_id: str, sequence: int, barcode: str
    ) -> RowValidationState:
        try:
            if self.timeout_sec is None:
                outcome = await self.lookup.check_exists(barcode)
            else:
                outcome = await asyncio.wait_for(
                    self.lookup.check_exists(barcode), timeout=self.timeout_sec
                )
        except asyncio.TimeoutError:
            logger.warning(
                "barcode check timed out after %ss: row=%s barcode=%s",
                self.timeout_sec,
                row_id,
                barcode,
            )
            state = RowValidationState.invalid(REASON_TIMEOUT)
        except VerificationTransportError as e:
            logger.warning("barcode check failed: row=%s error=%s", row_id, e)
            state = RowValidationState.invalid(REASON_VERIFICATION_FAILED)
        except Exception:
            logger.exception("unexpected error checking barcode for row %s", row_id)
            state = RowValidationState.invalid(REASON_VERIFICATION_FAILED)
        else:
            if outcome.exists:
                state = RowValidationState.valid()
            else:
                state = RowValidationState.invalid(REASON_NOT_FOUND)

        self._apply(row_id, sequence, state)
        return state

    def _apply(self, row_id: str, sequence: int, state: RowValidationState) -> bool:
        if row_id not in self._states or self._sequence.get(row_id) != sequence:
            logger.debug(
                "dropping stale check result: row=%s seq=%d current=%s",
                row_id,
                sequence,
                self._sequence.get(row_id),
            )
            return False

        self._states[row_id] = state
        logger.info(
            "barcode check resolved: row=%s seq=%d status=%s",
            row_id,
            sequence,
            state.status,
        )
        if self.on_change is not None:
            self.on_change(row_id, state)
        return True

    def _advance(self, row_id: str) -> int:
        sequence = self._sequence.get(row_id, 0) + 1
        self._sequence[row_id] = sequence
        return sequence

    def _cancel(self, row_ids: Iterable[str]) -> None:
        for row_id in list(row_ids):
            for task in self._tasks.pop(row_id, set()):
                task.cancel()

    def _discard_task(self, row_id: str, task: asyncio.Task) -> None:
        tasks = self._tasks.get(row_id)
        if tasks is None:
            return
        tasks.discard(task)
        if not tasks:
            self._tasks.pop(row_id, None)
