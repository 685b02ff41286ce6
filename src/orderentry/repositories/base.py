"""Repository interface for draft persistence."""

from typing import Any, Optional, Protocol


class DraftStore(Protocol):
    """Durable key-value storage for in-progress drafts.

    Implementations raise PersistenceError on failure.
    """

    def write(self, key: str, value: dict[str, Any]) -> None:
        ...

    def read(self, key: str) -> Optional[dict[str, Any]]:
        ...

    def delete(self, key: str) -> None:
        ...
