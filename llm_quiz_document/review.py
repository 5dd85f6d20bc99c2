from __future__ import annotations
import datetime
import os
import uuid
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .db import Doc, DocumentStore
from .keys import QUIZ_PREFIX, RANGE_END, key_range, key_root
from .recall import (
    SCHEMA_VERSION,
    RecallModel,
    elapsed_hours,
    from_iso,
    initialize_model,
    refresh_model,
    to_iso,
    update_model,
)

DEBUG_MODE = os.getenv("DEBUG", "0") == "1"


class ReviewError(LookupError):
    pass


@dataclass(frozen=True)
class QuizEvent:
    """Immutable record of one review outcome for one key."""
    model_key: str
    active: bool
    timestamp: datetime.datetime
    result: bool
    old_strength: Dict[str, float]
    new_strength: Dict[str, float]
    last_seen: datetime.datetime
    response: Optional[str] = None

    def to_doc(self) -> Doc:
        extra: Dict[str, Any] = {}
        if self.response is not None:
            extra["response"] = self.response
        return {
            "schemaVersion": SCHEMA_VERSION,
            "modelKey": self.model_key,
            "active": self.active,
            "timestamp": to_iso(self.timestamp),
            "result": self.result,
            "newStrength": self.new_strength,
            "oldStrength": self.old_strength,
            "lastSeen": to_iso(self.last_seen),
            "extra": extra,
        }

    @classmethod
    def from_doc(cls, doc: Doc) -> QuizEvent:
        return cls(
            model_key=doc["modelKey"],
            active=bool(doc["active"]),
            timestamp=from_iso(doc["timestamp"]),
            result=bool(doc["result"]),
            old_strength=dict(doc["oldStrength"]),
            new_strength=dict(doc["newStrength"]),
            last_seen=from_iso(doc["lastSeen"]),
            response=doc.get("extra", {}).get("response"),
        )


def event_key(now: datetime.datetime, index: int) -> str:
    return f"{QUIZ_PREFIX}/{to_iso(now)}-{uuid.uuid4().hex[:8]}-{index}"


def related_keys(store: DocumentStore, key: str) -> List[str]:
    """Every stored key under the same sentence/vocab root as `key`."""
    start, end = key_range(key_root(key))
    return [k for k, _ in store.all_docs(start, end)]


def apply_review(
    store: DocumentStore,
    key: str,
    result: bool,
    now: datetime.datetime,
    response: Optional[str] = None,
) -> Tuple[Dict[str, RecallModel], QuizEvent]:
    """Record a quiz on `key` and passively refresh its siblings.

    The active key gets a Bayesian update for the time elapsed since it was
    last seen. Every other related key that has a model only has its
    `last_seen` moved to `now`. Each changed key is written with a
    read-modify-write upsert, then one event per changed key is appended
    under `quiz/`. Any store failure propagates; nothing is reported as
    reviewed unless every write went through.

    Returns the updated models and the active key's event.
    """
    changes: Dict[str, Tuple[RecallModel, RecallModel]] = {}

    def merge_active(doc: Doc) -> Doc:
        old = RecallModel.from_doc(doc)
        if old is None:
            raise ReviewError(f"no recall model to review for {key}")
        new = update_model(old, result, elapsed_hours(old.last_seen, now), now)
        changes[key] = (old, new)
        return new.to_doc()

    def merge_passive(sibling: str):
        def merge(doc: Doc) -> Optional[Doc]:
            old = RecallModel.from_doc(doc)
            if old is None:
                return None
            new = refresh_model(old, now)
            changes[sibling] = (old, new)
            return new.to_doc()
        return merge

    store.upsert(key, merge_active)
    for related in related_keys(store, key):
        if related != key:
            store.upsert(related, merge_passive(related))

    events: Dict[str, QuizEvent] = {}
    for index, (related, (old, new)) in enumerate(changes.items()):
        event = QuizEvent(
            model_key=related,
            active=related == key,
            timestamp=now,
            result=result,
            old_strength=old.strength(),
            new_strength=new.strength(),
            last_seen=new.last_seen,
            response=response if related == key else None,
        )
        store.put(event_key(now, index), event.to_doc())
        events[related] = event

    if DEBUG_MODE:
        print(f"📝 Reviewed {key}: result={result}, refreshed {len(changes) - 1} sibling(s)")
    return {k: new for k, (_, new) in changes.items()}, events[key]


def learn(store: DocumentStore, keys: Iterable[str], now: datetime.datetime) -> Dict[str, RecallModel]:
    """Start tracking `keys` with the default model. Keys already learned are left alone."""
    learned: Dict[str, RecallModel] = {}
    for key in keys:
        fresh = initialize_model(now)

        def merge(doc: Doc, fresh: RecallModel = fresh) -> Optional[Doc]:
            if RecallModel.from_doc(doc) is not None:
                return None
            return fresh.to_doc()

        if store.upsert(key, merge) is not None:
            learned[key] = fresh
    return learned


def unlearn(store: DocumentStore, keys: Iterable[str]) -> List[str]:
    """Tombstone `keys` so they read as unknown again. Returns the keys that existed."""
    return [key for key in keys if store.delete(key)]


def events_for(store: DocumentStore, key: str) -> List[QuizEvent]:
    prefix = QUIZ_PREFIX + "/"
    return [
        QuizEvent.from_doc(doc)
        for _, doc in store.all_docs(prefix, prefix + RANGE_END)
        if doc.get("modelKey") == key
    ]
