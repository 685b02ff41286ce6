"""In-memory draft store for the API session registry and tests."""

from __future__ import annotations

import copy
import threading
from typing import Any, Optional

from orderentry.repositories.base import DraftStore


class InMemoryDraftStore(DraftStore):
    """Thread-safe in-memory storage."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.reset()

    def reset(self) -> None:
        """Reset all in-memory state (used by tests)."""
        with self._lock:
            self._values: dict[str, dict[str, Any]] = {}
            self.write_count = 0

    def write(self, key: str, value: dict[str, Any]) -> None:
        with self._lock:
            self._values[key] = copy.deepcopy(value)
            self.write_count += 1

    def read(self, key: str) -> Optional[dict[str, Any]]:
        with self._lock:
            value = self._values.get(key)
            return copy.deepcopy(value) if value is not None else None

    def delete(self, key: str) -> None:
        with self._lock:
            self._values.pop(key, None)

    def keys(self) -> list[str]:
        with self._lock:
            return sorted(self._values)
