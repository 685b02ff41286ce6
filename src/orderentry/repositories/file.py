"""JSON file draft store: one file per draft key."""

from __future__ import annotations

import hashlib
import json
import logging
import os
from pathlib import Path
from typing import Any, Optional

from orderentry.exceptions import PersistenceError
from orderentry.repositories.base import DraftStore

logger = logging.getLogger(__name__)


def _file_name(key: str) -> str:
    digest = hashlib.sha256(key.encode("utf-8")).hexdigest()[:16]
    safe = "".join(ch if ch.isalnum() or ch in "-_" else "_" for ch in key)
    return f"{safe[:64]}-{digest}.json"


class JsonFileDraftStore(DraftStore):
    """Persist drafts as JSON documents under a directory."""

    def __init__(self, directory: Path) -> None:
        self.directory = directory

    def path_for(self, key: str) -> Path:
        return self.directory / _file_name(key)

    def write(self, key: str, value: dict[str, Any]) -> None:
        path = self.path_for(key)
        tmp_path = path.with_suffix(".json.tmp")
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            with tmp_path.open("w", encoding="utf-8") as f:
                json.dump({"key": key, "value": value}, f, indent=2)
            # Readers never observe a half-written document.
            os.replace(tmp_path, path)
        except (OSError, TypeError, ValueError) as exc:
            raise PersistenceError(f"Failed to write draft {key}: {exc}") from exc

    def read(self, key: str) -> Optional[dict[str, Any]]:
        path = self.path_for(key)
        if not path.exists():
            return None
        try:
            with path.open("r", encoding="utf-8") as f:
                document = json.load(f)
        except (OSError, ValueError) as exc:
            raise PersistenceError(f"Failed to read draft {key}: {exc}") from exc

        if not isinstance(document, dict) or document.get("key") != key:
            raise PersistenceError(f"Draft file for {key} has unexpected content")
        value = document.get("value")
        if not isinstance(value, dict):
            raise PersistenceError(f"Draft {key} is not an object")
        return value

    def delete(self, key: str) -> None:
        try:
            self.path_for(key).unlink(missing_ok=True)
        except OSError as exc:
            raise PersistenceError(f"Failed to delete draft {key}: {exc}") from exc
