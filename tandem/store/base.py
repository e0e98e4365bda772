"""
Abstract document store.

The booking engine only ever talks to this contract: get / query / set /
update / add / delete plus push subscriptions. Documents are plain dicts and
always come back with their "id" key filled in.

Subscriptions are in-process callbacks fired after a write lands:
    on_change(doc_id, doc)   # doc is None when the document was deleted
"""
import logging
import threading
from abc import ABC, abstractmethod
from typing import Callable, Optional

logger = logging.getLogger(__name__)

BOOKINGS = "bookings"
AVAILABILITY = "availability"
PROFILES = "userProfiles"
EMAIL_QUEUE = "emailQueue"

OnChange = Callable[[str, Optional[dict]], None]
Predicate = Callable[[dict], bool]


def matches(doc: dict, predicate: Optional[Predicate], equals: dict) -> bool:
    if any(doc.get(k) != v for k, v in equals.items()):
        return False
    return predicate is None or predicate(doc)


class SubscriptionHub:
    """Fan-out of write notifications to collection and document listeners."""

    def __init__(self):
        self._lock = threading.Lock()
        self._listeners: list[tuple[str, Optional[str], OnChange]] = []

    def subscribe(self, collection: str, on_change: OnChange,
                  doc_id: Optional[str] = None) -> Callable[[], None]:
        entry = (collection, doc_id, on_change)
        with self._lock:
            self._listeners.append(entry)

        def unsubscribe():
            with self._lock:
                if entry in self._listeners:
                    self._listeners.remove(entry)

        return unsubscribe

    def notify(self, collection: str, doc_id: str, doc: Optional[dict]):
        with self._lock:
            targets = [
                cb for (c, d, cb) in self._listeners
                if c == collection and (d is None or d == doc_id)
            ]
        for cb in targets:
            # A failing listener must not break the write path or its siblings
            try:
                cb(doc_id, dict(doc) if doc is not None else None)
            except Exception:
                logger.exception("subscriber failed for %s/%s", collection, doc_id)


class Store(ABC):

    @abstractmethod
    def get(self, collection: str, doc_id: str) -> Optional[dict]:
        ...

    @abstractmethod
    def query(self, collection: str, predicate: Optional[Predicate] = None,
              **equals) -> list[dict]:
        ...

    @abstractmethod
    def set(self, collection: str, doc_id: str, doc: dict) -> None:
        ...

    @abstractmethod
    def update(self, collection: str, doc_id: str, partial: dict) -> None:
        ...

    @abstractmethod
    def add(self, collection: str, doc: dict) -> str:
        ...

    @abstractmethod
    def delete(self, collection: str, doc_id: str) -> None:
        ...

    @abstractmethod
    def subscribe(self, collection: str, on_change: OnChange,
                  doc_id: Optional[str] = None) -> Callable[[], None]:
        ...
