"""Registry of live order entry forms keyed by draft session id."""

from __future__ import annotations

import logging
import re
import uuid
from collections import OrderedDict
from typing import Optional

from orderentry.catalog import CatalogLookup
from orderentry.config import OrderEntryConfig
from orderentry.exceptions import DraftNotFoundError
from orderentry.form import OrderEntryForm, SubmitHandler
from orderentry.models import SubmittedLineItem
from orderentry.persistence import DraftPersistence
from orderentry.repositories.base import DraftStore

logger = logging.getLogger(__name__)

_SESSION_ID_PATTERN = re.compile(r"[0-9a-f]{32}")


class DraftSessionRegistry:
    """Keeps recently used forms open; persisted drafts are reopened on demand.

    At most ``config.max_open_drafts`` forms stay in memory. The least recently
    used idle ones are closed first; their drafts remain in the store, so a
    later ``get()`` reopens them. Forms with a check in flight are never
    evicted.
    """

    def __init__(
        self,
        config: OrderEntryConfig,
        catalog: CatalogLookup,
        store: DraftStore,
        *,
        on_submit: Optional[SubmitHandler] = None,
    ) -> None:
        self.config = config
        self.catalog = catalog
        self.store = store
        self.on_submit = on_submit
        self._forms: OrderedDict[str, OrderEntryForm] = OrderedDict()

    def __len__(self) -> int:
        return len(self._forms)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._forms

    def create(self) -> tuple[str, OrderEntryForm]:
        session_id = uuid.uuid4().hex
        form = self._open(session_id)
        form.reset()
        logger.info("draft session created: %s", session_id)
        self._prune_capacity(keep=session_id)
        return session_id, form

    def get(self, session_id: str) -> OrderEntryForm:
        form = self._forms.get(session_id)
        if form is not None:
            self._forms.move_to_end(session_id)
            return form

        if not _SESSION_ID_PATTERN.fullmatch(session_id):
            raise DraftNotFoundError(session_id)

        form = self._open(session_id)
        if not form.restored:
            form.close()
            self._forms.pop(session_id, None)
            raise DraftNotFoundError(session_id)
        logger.info("draft session reopened from storage: %s", session_id)
        self._prune_capacity(keep=session_id)
        return form

    def submit(self, session_id: str) -> list[SubmittedLineItem]:
        """Submit a draft and end its session.

        The persisted draft is deleted by the form, so the id is unknown
        afterwards. A blocked submission keeps the session open.
        """
        form = self.get(session_id)
        items = form.submit()
        self._forms.pop(session_id, None)
        form.close()
        logger.info("draft session submitted: %s", session_id)
        return items

    async def discard(self, session_id: str) -> None:
        """Tear down a session and delete its persisted draft."""
        form = self.get(session_id)
        await form.aclose()
        if form.persistence is not None:
            form.persistence.clear()
        self._forms.pop(session_id, None)

    async def aclose(self) -> None:
        """Cancel outstanding checks for every open session."""
        for form in list(self._forms.values()):
            await form.aclose()
        self._forms.clear()

    def _open(self, session_id: str) -> OrderEntryForm:
        persistence = DraftPersistence(self.store, self.config.draft_key(session_id))
        form = OrderEntryForm(
            self.config,
            self.catalog,
            persistence=persistence,
            on_submit=self.on_submit,
        )
        self._forms[session_id] = form
        return form

    def _prune_capacity(self, keep: str) -> None:
        excess = len(self._forms) - self.config.max_open_drafts
        if excess <= 0:
            return

        idle = [
            session_id
            for session_id, form in self._forms.items()
            if session_id != keep and form.coordinator.in_flight() == 0
        ]
        for session_id in idle[:excess]:
            self._forms.pop(session_id).close()
            logger.debug("draft session evicted from memory: %s", session_id)
