"""Summary: Category label resolution with a run-scoped cache.

Importance: Resolves each category's remote label once per run instead of once per message.
Alternatives: Resolve the label for every message and rely on provider caching.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass

from triageflow.gmail import MailClient
from triageflow.storage.sqlite_store import SqliteStore


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LabelStyle:
    """Summary: Display name and palette colour of a category label.

    Importance: Gmail only accepts colours from its fixed palette.
    Alternatives: Let users pick label names and colours.
    """

    name: str
    background_color: str
    text_color: str

    def color(self) -> dict[str, str]:
        return {"backgroundColor": self.background_color, "textColor": self.text_color}


CATEGORY_LABELS = {
    "urgent": LabelStyle("TriageFlow/Urgent", "#cc3a21", "#ffffff"),
    "personal": LabelStyle("TriageFlow/Personal", "#a46a21", "#ffffff"),
    "business": LabelStyle("TriageFlow/Business", "#285bac", "#ffffff"),
    "invoices": LabelStyle("TriageFlow/Invoices", "#f2b200", "#000000"),
    "newsletters": LabelStyle("TriageFlow/Newsletters", "#0d7813", "#ffffff"),
    "spam": LabelStyle("TriageFlow/Spam", "#666666", "#ffffff"),
}


class LabelResolver:
    """Summary: Maps categories to remote label ids for one account during one run.

    Importance: Concurrent callers for the same category share a single resolution.
    Alternatives: Pre-create every label before the run starts.
    """

    def __init__(self, store: SqliteStore, client: MailClient, account_id: int) -> None:
        self._store = store
        # Swapped between batches, never while workers are resolving.
        self.client = client
        self._account_id = account_id
        self._cache: dict[str, str | None] = {}
        self._guard = threading.Lock()
        self._category_locks: dict[str, threading.Lock] = {}
        self.hits = 0
        self.misses = 0
        self.failures = 0

    def resolve(self, category: str) -> str | None:
        """Summary: Return the remote label id for a category, creating the label if needed.

        Importance: Remote failures yield None so labelling is skipped rather than failed.
        Alternatives: Raise and let the caller decide.
        """

        style = CATEGORY_LABELS.get(category)
        if style is None:
            return None
        with self._guard:
            lock = self._category_locks.setdefault(category, threading.Lock())
        with lock:
            if category in self._cache:
                with self._guard:
                    self.hits += 1
                return self._cache[category]
            with self._guard:
                self.misses += 1
            label_id = self._lookup(category, style)
            self._cache[category] = label_id
            return label_id

    def _lookup(self, category: str, style: LabelStyle) -> str | None:
        try:
            stored = self._store.get_label_mapping(self._account_id, category)
            if stored:
                return stored
            existing = next(
                (label["id"] for label in self.client.list_labels() if label.get("name") == style.name),
                None,
            )
            label_id = existing or self.client.create_label(style.name, style.color())
            self._store.save_label_mapping(self._account_id, category, label_id, style.name)
        except Exception as exc:
            with self._guard:
                self.failures += 1
            logger.warning(
                "Label resolution failed for account %s category %s: %s",
                self._account_id,
                category,
                exc,
            )
            return None
        return label_id
