from __future__ import annotations
from sqlalchemy import create_engine, select, func, Integer, String, Text, DateTime, Boolean
from sqlalchemy.orm import DeclarativeBase, sessionmaker, Session, Mapped, mapped_column
from dataclasses import dataclass
import copy
import datetime
import json
import os
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

DEBUG_MODE = os.getenv("DEBUG", "0") == "1"


class Base(DeclarativeBase):
    pass
DB_PATH: str = os.environ.get("LLM_QUIZ_DB", "quiz_document.db")
engine = create_engine(f"sqlite:///{DB_PATH}")
# Prevent attribute expiration on commit so returned objects remain accessible
SessionLocal = sessionmaker(bind=engine, expire_on_commit=False)

Doc = Dict[str, Any]
MergeFn = Callable[[Doc], Optional[Doc]]


class Document(Base):
    __tablename__ = "documents"
    key: Mapped[str] = mapped_column(String, primary_key=True)
    body: Mapped[str] = mapped_column(Text, nullable=False)  # JSON
    updated_at: Mapped[datetime.datetime] = mapped_column(DateTime, default=lambda: datetime.datetime.now(datetime.UTC), onupdate=lambda: datetime.datetime.now(datetime.UTC))


class Change(Base):
    """One row per committed write; the change feed reads these in `seq` order."""
    __tablename__ = "changes"
    seq: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    key: Mapped[str] = mapped_column(String, nullable=False, index=True)
    deleted: Mapped[bool] = mapped_column(Boolean, default=False)
    body: Mapped[Optional[str]] = mapped_column(Text)


def init_db() -> None:
    """Initialize the database by creating all tables."""
    Base.metadata.create_all(bind=engine)


def get_session() -> Session:
    return SessionLocal()


@dataclass(frozen=True)
class ChangeNotification:
    key: str
    deleted: bool
    doc: Optional[Doc]
    seq: int


class StoreError(RuntimeError):
    pass


def _dumps(doc: Doc) -> str:
    return json.dumps(doc, ensure_ascii=False, sort_keys=True)


class DocumentStore:
    """Local document store over SQLAlchemy.

    Documents are JSON bodies addressed by string keys. Every write also appends
    a row to `changes`, which `ChangeFeed` replays to subscribers.
    """

    def __init__(self, session_factory: Optional[Callable[[], Session]] = None) -> None:
        self._session_factory = session_factory

    def session(self) -> Session:
        if self._session_factory is not None:
            return self._session_factory()
        return get_session()

    def get(self, key: str) -> Optional[Doc]:
        session = self.session()
        try:
            row = session.get(Document, key)
            return json.loads(row.body) if row is not None else None
        finally:
            session.close()

    def get_many(self, keys: Iterable[str]) -> Dict[str, Optional[Doc]]:
        wanted = list(keys)
        session = self.session()
        try:
            found: Dict[str, Doc] = {}
            # Stay well below SQLite's bound-parameter limit
            for i in range(0, len(wanted), 500):
                chunk = wanted[i:i + 500]
                for row in session.scalars(select(Document).where(Document.key.in_(chunk))):
                    found[row.key] = json.loads(row.body)
            return {key: found.get(key) for key in wanted}
        finally:
            session.close()

    def all_docs(self, start: str, end: str) -> List[Tuple[str, Doc]]:
        """Documents with start <= key < end, ordered by key."""
        session = self.session()
        try:
            rows = session.scalars(
                select(Document).where(Document.key >= start, Document.key < end).order_by(Document.key)
            ).all()
            return [(row.key, json.loads(row.body)) for row in rows]
        finally:
            session.close()

    def upsert(self, key: str, merge_fn: MergeFn) -> Optional[Doc]:
        """Read-modify-write one document in a single transaction.

        `merge_fn` gets a copy of the stored body (or `{}` when absent) and
        returns the new body, or None to leave the document untouched.
        Returns the written body, or None when nothing was written.
        """
        session = self.session()
        try:
            with session.begin():
                row = session.get(Document, key, with_for_update=True)
                current: Doc = json.loads(row.body) if row is not None else {}
                new_doc = merge_fn(copy.deepcopy(current))
                if new_doc is None:
                    return None
                body = _dumps(new_doc)
                if row is None:
                    session.add(Document(key=key, body=body))
                else:
                    row.body = body
                session.add(Change(key=key, deleted=False, body=body))
            if DEBUG_MODE:
                print(f"💾 upsert {key}: {body}")
            return new_doc
        finally:
            session.close()

    def put(self, key: str, doc: Doc) -> None:
        """Insert a new document; writing an existing key is an error (append-only records)."""
        session = self.session()
        try:
            with session.begin():
                if session.get(Document, key) is not None:
                    raise StoreError(f"document already exists: {key}")
                body = _dumps(doc)
                session.add(Document(key=key, body=body))
                session.add(Change(key=key, deleted=False, body=body))
            if DEBUG_MODE:
                print(f"💾 put {key}")
        finally:
            session.close()

    def delete(self, key: str) -> bool:
        """Tombstone a document. Returns False when there was nothing to delete."""
        session = self.session()
        try:
            with session.begin():
                row = session.get(Document, key)
                if row is None:
                    return False
                session.delete(row)
                session.add(Change(key=key, deleted=True, body=None))
            if DEBUG_MODE:
                print(f"🗑️  delete {key}")
            return True
        finally:
            session.close()

    def last_seq(self) -> int:
        session = self.session()
        try:
            return session.scalar(select(func.max(Change.seq))) or 0
        finally:
            session.close()

    def changes_since(self, seq: int, limit: int = 1000) -> List[ChangeNotification]:
        session = self.session()
        try:
            rows = session.scalars(
                select(Change).where(Change.seq > seq).order_by(Change.seq).limit(limit)
            ).all()
            return [
                ChangeNotification(
                    key=row.key,
                    deleted=bool(row.deleted),
                    doc=json.loads(row.body) if row.body is not None else None,
                    seq=row.seq,
                )
                for row in rows
            ]
        finally:
            session.close()

    def subscribe_changes(self, keys: Optional[Iterable[str]] = None) -> ChangeFeed:
        """Live feed of changes committed from now on, optionally limited to `keys`."""
        return ChangeFeed(self, keys)


class ChangeFeed:
    """Pull-based subscription to a DocumentStore's changes.

    Starts at the store's current sequence number. `poll()` returns everything
    committed since the previous poll for the subscribed keys. `close()`
    releases the subscription; calling it twice is harmless.
    """

    def __init__(self, store: DocumentStore, keys: Optional[Iterable[str]] = None) -> None:
        self._store = store
        self._keys = frozenset(keys) if keys is not None else None
        self._since = store.last_seq()
        self.closed = False

    def poll(self) -> List[ChangeNotification]:
        if self.closed:
            return []
        out: List[ChangeNotification] = []
        while True:
            batch = self._store.changes_since(self._since)
            if not batch:
                break
            self._since = batch[-1].seq
            out.extend(c for c in batch if self._keys is None or c.key in self._keys)
        return out

    def close(self) -> None:
        self.closed = True

    def __enter__(self) -> ChangeFeed:
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()
