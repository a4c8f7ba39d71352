"""
Document-style access over the SQLAlchemy session factory.

Core code only needs get-by-id, get-by-query, set/merge, delete, atomic
batches and change subscriptions; everything here is expressed in those
terms so services never care which database sits underneath.
"""
import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, FrozenSet, List, Optional, Type

from sqlalchemy import event, inspect
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

logger = logging.getLogger(__name__)

_PENDING_KEY = "hasta.pending_changes"


# =====================================================
# CHANGE FEED
# =====================================================

@dataclass(frozen=True)
class Change:
    kind: str  # "added" | "modified" | "removed"
    model: Type
    doc_id: Any
    data: Dict[str, Any]
    changed_fields: FrozenSet[str] = field(default_factory=frozenset)


class Subscription:
    def __init__(self, store: "DocumentStore", model: Type, callback: Callable, where: Optional[Callable]):
        self._store = store
        self.model = model
        self.callback = callback
        self.where = where

    def matches(self, change: Change) -> bool:
        if change.model is not self.model:
            return False
        return self.where is None or bool(self.where(change.data))

    def unsubscribe(self) -> None:
        self._store._remove(self)


def _snapshot(obj) -> Dict[str, Any]:
    state = inspect(obj)
    loaded = state.dict
    return {
        attr.key: loaded[attr.key]
        for attr in state.mapper.column_attrs
        if attr.key in loaded
    }


def _changed_fields(obj) -> FrozenSet[str]:
    state = inspect(obj)
    return frozenset(
        attr.key
        for attr in state.mapper.column_attrs
        if state.attrs[attr.key].history.has_changes()
    )


# =====================================================
# STORE
# =====================================================

class DocumentStore:
    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory
        self._subscriptions: List[Subscription] = []
        self._lock = threading.Lock()

        event.listen(session_factory, "after_flush", self._collect_changes)
        event.listen(session_factory, "after_commit", self._dispatch_changes)
        event.listen(session_factory, "after_rollback", self._discard_changes)

    # ---------- reads ----------

    def get(self, model: Type, doc_id) -> Optional[Any]:
        with self._session_factory() as db:
            return db.get(model, doc_id)

    def query(self, model: Type, **equals) -> List[Any]:
        with self._session_factory() as db:
            return db.query(model).filter_by(**equals).all()

    # ---------- writes ----------

    @contextmanager
    def batch(self):
        """All writes made on the yielded session commit together or not at all."""
        db = self._session_factory()
        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def set(self, model: Type, doc_id, data: Dict[str, Any], merge: bool = True):
        """
        Upsert a document. With merge=False the existing row is replaced,
        so columns missing from `data` fall back to their defaults.
        """
        with self.batch() as db:
            doc = db.get(model, doc_id)
            if doc is not None and not merge:
                db.delete(doc)
                db.flush()
                doc = None

            if doc is None:
                doc = model(id=doc_id, **data)
                db.add(doc)
            else:
                for key, value in data.items():
                    setattr(doc, key, value)
        return doc

    def delete(self, model: Type, doc_id) -> bool:
        with self.batch() as db:
            doc = db.get(model, doc_id)
            if doc is None:
                return False
            db.delete(doc)
        return True

    # ---------- subscriptions ----------

    def subscribe(self, model: Type, callback: Callable[[Change], None], where: Optional[Callable] = None) -> Subscription:
        sub = Subscription(self, model, callback, where)
        with self._lock:
            self._subscriptions.append(sub)
        return sub

    def _remove(self, sub: Subscription) -> None:
        with self._lock:
            if sub in self._subscriptions:
                self._subscriptions.remove(sub)

    def _collect_changes(self, session: Session, _flush_context) -> None:
        pending = session.info.setdefault(_PENDING_KEY, [])
        for obj in session.new:
            data = _snapshot(obj)
            pending.append(Change("added", type(obj), data.get("id"), data))
        for obj in session.dirty:
            if session.is_modified(obj, include_collections=False):
                data = _snapshot(obj)
                pending.append(Change("modified", type(obj), data.get("id"), data, _changed_fields(obj)))
        for obj in session.deleted:
            data = _snapshot(obj)
            pending.append(Change("removed", type(obj), data.get("id"), data))

    def _discard_changes(self, session: Session) -> None:
        session.info.pop(_PENDING_KEY, None)

    def _dispatch_changes(self, session: Session) -> None:
        changes = session.info.pop(_PENDING_KEY, [])
        if not changes:
            return
        with self._lock:
            subs = list(self._subscriptions)
        for change in changes:
            for sub in subs:
                if not sub.matches(change):
                    continue
                try:
                    sub.callback(change)
                except Exception:
                    # Subscribers never break the committing caller
                    logger.exception(
                        "Subscriber failed | model=%s | doc_id=%s",
                        change.model.__name__,
                        change.doc_id,
                    )


# =====================================================
# AWAITED COMMIT
# =====================================================

def commit(db: Session, action: str, **fields) -> None:
    """Commit an awaited write; failures are logged, rolled back and re-raised."""
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception(
            "Write failed | action=%s | %s",
            action,
            " | ".join(f"{k}={v}" for k, v in fields.items()),
        )
        raise
