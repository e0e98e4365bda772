"""
SQLAlchemy-backed Store.

Documents live in the `documents` table (see tandem.models). Equality filters
of a query become JSON path comparisons in SQL. Subscribers are
notified in-process after each successful commit; every SqlStore shares the
module-level hub so request-scoped stores reach long-lived listeners.
"""
import copy
import logging
import uuid
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from tandem.bookings.errors import StoreUnavailable
from tandem.models import Document
from tandem.store.base import Store, SubscriptionHub, OnChange, Predicate, matches

logger = logging.getLogger(__name__)

shared_hub = SubscriptionHub()


class SqlStore(Store):

    def __init__(self, db: Session, hub: Optional[SubscriptionHub] = None):
        self.db = db
        self.hub = hub or shared_hub

    # ── Reads ─────────────────────────────────────────────────────────────────

    def get(self, collection: str, doc_id: str) -> Optional[dict]:
        try:
            row = self.db.get(Document, (collection, doc_id))
        except SQLAlchemyError as e:
            raise StoreUnavailable(str(e)) from e
        return _to_doc(row) if row else None

    def query(self, collection: str, predicate: Optional[Predicate] = None,
              **equals) -> list[dict]:
        try:
            rows = (
                self.db.query(Document)
                .filter(Document.collection == collection, *_field_filters(equals))
                .order_by(Document.id)
                .all()
            )
        except SQLAlchemyError as e:
            raise StoreUnavailable(str(e)) from e
        # exact types and callables are checked here, on the rows SQL already narrowed
        docs = [_to_doc(r) for r in rows]
        return [d for d in docs if matches(d, predicate, equals)]

    # ── Writes ────────────────────────────────────────────────────────────────

    def set(self, collection: str, doc_id: str, doc: dict) -> None:
        body = _strip(doc)
        try:
            row = self.db.get(Document, (collection, doc_id))
            if row:
                row.data = body
            else:
                self.db.add(Document(collection=collection, id=doc_id, data=body))
            self.db.commit()
        except SQLAlchemyError as e:
            self._fail(e)
        self.hub.notify(collection, doc_id, {**body, "id": doc_id})

    def update(self, collection: str, doc_id: str, partial: dict) -> None:
        try:
            row = self.db.get(Document, (collection, doc_id))
            if row is None:
                raise KeyError(f"{collection}/{doc_id} does not exist")
            # New dict so the JSON column registers the change
            body = {**row.data, **_strip(partial)}
            row.data = body
            self.db.commit()
        except SQLAlchemyError as e:
            self._fail(e)
        self.hub.notify(collection, doc_id, {**body, "id": doc_id})

    def add(self, collection: str, doc: dict) -> str:
        doc_id = uuid.uuid4().hex
        self.set(collection, doc_id, doc)
        return doc_id

    def delete(self, collection: str, doc_id: str) -> None:
        try:
            row = self.db.get(Document, (collection, doc_id))
            if row is None:
                return
            self.db.delete(row)
            self.db.commit()
        except SQLAlchemyError as e:
            self._fail(e)
        self.hub.notify(collection, doc_id, None)

    def subscribe(self, collection: str, on_change: OnChange,
                  doc_id: Optional[str] = None) -> Callable[[], None]:
        return self.hub.subscribe(collection, on_change, doc_id)

    def _fail(self, e: SQLAlchemyError):
        self.db.rollback()
        logger.error("store write failed: %s", e)
        raise StoreUnavailable(str(e)) from e


# ── Helpers ───────────────────────────────────────────────────────────────────

def _to_doc(row: Document) -> dict:
    doc = copy.deepcopy(row.data)
    doc["id"] = row.id
    return doc


def _strip(doc: dict) -> dict:
    body = copy.deepcopy(doc)
    body.pop("id", None)
    return body


def _field_filters(equals: dict) -> list:
    """JSON path comparisons for the scalar equality filters of a query."""
    clauses = []
    for key, value in equals.items():
        field = Document.data[key]
        if isinstance(value, bool):
            clauses.append(field.as_boolean() == value)
        elif isinstance(value, int):
            clauses.append(field.as_integer() == value)
        elif isinstance(value, float):
            clauses.append(field.as_float() == value)
        elif isinstance(value, str):
            clauses.append(field.as_string() == value)
    return clauses
