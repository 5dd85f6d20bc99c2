from __future__ import annotations
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set

from .db import ChangeFeed, ChangeNotification, DocumentStore
from .recall import RecallModel

Models = Dict[str, Optional[RecallModel]]


def fold_change(models: Models, change: ChangeNotification) -> Models:
    """Fold one change notification into `models`, in place.

    A deletion (or an empty document) collapses the entry to unknown;
    otherwise the notified document replaces the entry. The most recently
    delivered notification wins.
    """
    models[change.key] = None if change.deleted else RecallModel.from_doc(change.doc)
    return models


class SyncBridge:
    """Keeps one in-memory key -> model mapping in step with the store.

    The mapping is changed only by `load()`, by `apply_local()` after a
    successful write, and by `sync()` folding change notifications. Local
    updates stay provisional until a notification for the same key arrives;
    the notification always wins.
    """

    def __init__(self, store: DocumentStore, keys: Iterable[str]) -> None:
        self.store = store
        self.models: Models = {key: None for key in keys}
        self.provisional: Set[str] = set()
        self._feed: Optional[ChangeFeed] = None

    def load(self) -> Models:
        # Subscribe before reading so nothing committed in between is missed
        if self._feed is None:
            self._feed = self.store.subscribe_changes(self.models.keys())
        docs = self.store.get_many(self.models.keys())
        for key, doc in docs.items():
            self.models[key] = RecallModel.from_doc(doc)
        self.provisional.clear()
        return self.models

    def apply_local(self, updates: Mapping[str, RecallModel]) -> None:
        for key, model in updates.items():
            if key in self.models:
                self.models[key] = model
                self.provisional.add(key)

    def sync(self) -> List[ChangeNotification]:
        """Fold every pending notification. Returns what was folded."""
        if self._feed is None:
            return []
        changes = self._feed.poll()
        for change in changes:
            fold_change(self.models, change)
            self.provisional.discard(change.key)
        return changes

    def close(self) -> None:
        if self._feed is not None:
            self._feed.close()
            self._feed = None

    def __enter__(self) -> SyncBridge:
        self.load()
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()
