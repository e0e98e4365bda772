"""
In-process Store. Used by tests and by single-process tooling.
"""
import copy
import uuid
from typing import Callable, Optional

from tandem.bookings.errors import StoreUnavailable
from tandem.store.base import Store, SubscriptionHub, OnChange, Predicate, matches


class MemoryStore(Store):

    def __init__(self, hub: Optional[SubscriptionHub] = None):
        self._data: dict[str, dict[str, dict]] = {}
        self.hub = hub or SubscriptionHub()
        self.offline = False        # flip to simulate an outage

    def _check(self):
        if self.offline:
            raise StoreUnavailable("store is offline")

    def _out(self, doc_id: str, doc: dict) -> dict:
        out = copy.deepcopy(doc)
        out["id"] = doc_id
        return out

    def get(self, collection: str, doc_id: str) -> Optional[dict]:
        self._check()
        doc = self._data.get(collection, {}).get(doc_id)
        return self._out(doc_id, doc) if doc is not None else None

    def query(self, collection: str, predicate: Optional[Predicate] = None,
              **equals) -> list[dict]:
        self._check()
        docs = [self._out(i, d) for i, d in self._data.get(collection, {}).items()]
        return [d for d in docs if matches(d, predicate, equals)]

    def set(self, collection: str, doc_id: str, doc: dict) -> None:
        self._check()
        body = copy.deepcopy(doc)
        body.pop("id", None)
        self._data.setdefault(collection, {})[doc_id] = body
        self.hub.notify(collection, doc_id, self._out(doc_id, body))

    def update(self, collection: str, doc_id: str, partial: dict) -> None:
        self._check()
        existing = self._data.get(collection, {}).get(doc_id)
        if existing is None:
            raise KeyError(f"{collection}/{doc_id} does not exist")
        body = {**existing, **copy.deepcopy(partial)}
        body.pop("id", None)
        self._data[collection][doc_id] = body
        self.hub.notify(collection, doc_id, self._out(doc_id, body))

    def add(self, collection: str, doc: dict) -> str:
        doc_id = uuid.uuid4().hex
        self.set(collection, doc_id, doc)
        return doc_id

    def delete(self, collection: str, doc_id: str) -> None:
        self._check()
        if self._data.get(collection, {}).pop(doc_id, None) is not None:
            self.hub.notify(collection, doc_id, None)

    def subscribe(self, collection: str, on_change: OnChange,
                  doc_id: Optional[str] = None) -> Callable[[], None]:
        return self.hub.subscribe(collection, on_change, doc_id)
