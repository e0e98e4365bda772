"""
DaySchedule: everything the grid needs for one date, as a snapshot.

Holds the day's departure list, the pilot columns, the availability index and
the booking ledger. Capacity and allocation are computed from this object
only, so they are snapshots at read time and not guarantees.

The on_*_change methods accept store subscription callbacks, which keeps a
background copy current while an editor's draft is frozen.
"""
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Optional

from pydantic import ValidationError

from tandem.bookings.schemas import Booking, Pilot
from tandem.scheduling.availability import AvailabilityIndex, load_pilot, pilots_for_day
from tandem.scheduling.time_slots import time_slots_for
from tandem.store.base import Store, BOOKINGS, AVAILABILITY

logger = logging.getLogger(__name__)


@dataclass
class DaySchedule:
    date: date
    time_slots: list[str]
    pilots: list[Pilot] = field(default_factory=list)
    availability: AvailabilityIndex = field(default_factory=AvailabilityIndex)
    bookings: dict[str, Booking] = field(default_factory=dict)
    availability_docs: dict[str, dict] = field(default_factory=dict)

    def time_slot(self, time_index: int) -> Optional[str]:
        if 0 <= time_index < len(self.time_slots):
            return self.time_slots[time_index]
        return None

    def is_column_available(self, column: int, time_index: int) -> bool:
        if not 0 <= column < len(self.pilots):
            return False
        return self.availability.is_available(
            self.pilots[column].uid, self.date, self.time_slot(time_index)
        )

    def bookings_at(self, time_index: int, exclude_booking_id: Optional[str] = None,
                    active_only: bool = True) -> list[Booking]:
        return [
            b for b in self.bookings.values()
            if b.timeIndex == time_index
            and b.id != exclude_booking_id
            and (not active_only or b.bookingStatus.holds_seats)
        ]

    # ── Live updates ──────────────────────────────────────────────────────────

    def on_booking_change(self, doc_id: str, doc: Optional[dict]):
        if doc is None or doc.get("date") != self.date.isoformat():
            self.bookings.pop(doc_id, None)
            return
        try:
            self.bookings[doc_id] = Booking.from_doc(doc)
        except ValidationError:
            logger.warning("ignoring malformed booking %s", doc_id)

    def on_availability_change(self, doc_id: str, doc: Optional[dict],
                               store: Optional[Store] = None):
        old = self.availability_docs.pop(doc_id, None)
        if old:
            self.availability.discard(old["userId"], old["date"], old["timeSlot"])
        if doc is None or doc.get("date") != self.date.isoformat():
            return
        self.availability_docs[doc_id] = doc
        self.availability.add(doc["userId"], doc["date"], doc["timeSlot"])
        if store is not None and all(p.uid != doc["userId"] for p in self.pilots):
            self.pilots = sorted(
                self.pilots + [load_pilot(store, doc["userId"])],
                key=lambda p: (p.displayName.casefold(), p.uid),
            )


def load_day(store: Store, d: date) -> DaySchedule:
    """Fresh read of one date from the store."""
    records = store.query(AVAILABILITY, date=d.isoformat())
    index = AvailabilityIndex(records)
    bookings = {}
    for doc in store.query(BOOKINGS, date=d.isoformat()):
        try:
            bookings[doc["id"]] = Booking.from_doc(doc)
        except ValidationError:
            logger.warning("skipping malformed booking %s", doc.get("id"))
    return DaySchedule(
        date=d,
        time_slots=time_slots_for(d),
        pilots=pilots_for_day(store, index, d),
        availability=index,
        bookings=bookings,
        availability_docs={r["id"]: r for r in records},
    )
