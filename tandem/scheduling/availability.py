"""
Availability Index: which pilot can fly which departure.

A pilot is available for (date, time slot) iff an `availability` document
{userId, date, timeSlot} exists. There is no partial availability.

Also hosts the pilot-side toggles: withdrawing availability unassigns the
pilot from every booking at that departure. Like bookings, a day locks for
everyone but admins once EDIT_LOCK_HOURS have passed since it ended.
"""
import logging
from collections import defaultdict
from datetime import date, datetime
from typing import Iterable, Optional, Union

from tandem.bookings.errors import PermissionDenied
from tandem.bookings.permissions import Actor
from tandem.bookings.schemas import Booking, HistoryAction, Pilot
from tandem.bookings.transitions import day_locked, record, sync_payments
from tandem.scheduling.time_slots import time_slots_for, index_of
from tandem.store.base import Store, AVAILABILITY, BOOKINGS, PROFILES

logger = logging.getLogger(__name__)

DateLike = Union[date, str]


def _day(d: DateLike) -> str:
    return d if isinstance(d, str) else d.isoformat()


class AvailabilityIndex:

    def __init__(self, records: Iterable[dict] = ()):
        self._by_slot: dict[tuple[str, str], set[str]] = defaultdict(set)
        self._by_pilot: dict[tuple[str, str], set[str]] = defaultdict(set)
        for r in records:
            self.add(r["userId"], r["date"], r["timeSlot"])

    @classmethod
    def for_date(cls, store: Store, d: DateLike) -> "AvailabilityIndex":
        return cls(store.query(AVAILABILITY, date=_day(d)))

    def add(self, pilot_uid: str, d: DateLike, time_slot: str):
        self._by_slot[(_day(d), time_slot)].add(pilot_uid)
        self._by_pilot[(pilot_uid, _day(d))].add(time_slot)

    def discard(self, pilot_uid: str, d: DateLike, time_slot: str):
        self._by_slot[(_day(d), time_slot)].discard(pilot_uid)
        self._by_pilot[(pilot_uid, _day(d))].discard(time_slot)

    def is_available(self, pilot_uid: str, d: DateLike, time_slot: Optional[str]) -> bool:
        if time_slot is None:
            return False
        return pilot_uid in self._by_slot.get((_day(d), time_slot), ())

    def pilots_at(self, d: DateLike, time_slot: str) -> set[str]:
        return set(self._by_slot.get((_day(d), time_slot), ()))

    def slots_for(self, pilot_uid: str, d: DateLike) -> set[str]:
        return set(self._by_pilot.get((pilot_uid, _day(d)), ()))

    def pilot_ids(self, d: DateLike) -> set[str]:
        day = _day(d)
        return {uid for (uid, dd), slots in self._by_pilot.items() if dd == day and slots}


# ── Pilot roster ──────────────────────────────────────────────────────────────

def load_pilot(store: Store, uid: str) -> Pilot:
    # profiles are keyed by the pilot's uid
    p = store.get(PROFILES, uid)
    if p is None:
        return Pilot(uid=uid)
    return Pilot(
        uid=uid,
        displayName=p.get("displayName") or "Unknown Pilot",
        femalePilot=bool(p.get("femalePilot", False)),
        priority=p.get("priority"),
    )


def pilots_for_day(store: Store, index: AvailabilityIndex, d: DateLike) -> list[Pilot]:
    """Pilots with any availability that day, sorted by name, one grid column each."""
    pilots = [load_pilot(store, uid) for uid in index.pilot_ids(d)]
    return sorted(pilots, key=lambda p: (p.displayName.casefold(), p.uid))


# ── Toggles ───────────────────────────────────────────────────────────────────

def ensure_day_open(d: date, actor: Optional[Actor] = None, now: Optional[datetime] = None):
    """Non-admins may not change availability once the day is locked."""
    if (actor is None or not actor.is_admin) and day_locked(d, now):
        raise PermissionDenied(f"Availability for {_day(d)} is locked")


def toggle_availability(store: Store, pilot_uid: str, d: date, time_slot: str,
                        actor: Optional[Actor] = None,
                        now: Optional[datetime] = None) -> bool:
    """Flip one departure for a pilot. Returns the new availability."""
    ensure_day_open(d, actor, now)
    existing = store.query(AVAILABILITY, userId=pilot_uid, date=_day(d), timeSlot=time_slot)
    if existing:
        for rec in existing:
            store.delete(AVAILABILITY, rec["id"])
        unassign_pilot_from_bookings(store, d, time_slot, pilot_uid, actor)
        logger.info("pilot %s signed out of %s %s", pilot_uid, _day(d), time_slot)
        return False

    store.add(AVAILABILITY, {"userId": pilot_uid, "date": _day(d), "timeSlot": time_slot})
    logger.info("pilot %s signed in for %s %s", pilot_uid, _day(d), time_slot)
    return True


def toggle_day(store: Store, pilot_uid: str, d: date,
               time_slots: Optional[list[str]] = None,
               actor: Optional[Actor] = None,
               now: Optional[datetime] = None) -> bool:
    """
    All-or-nothing for a day: if every given slot is already available they
    are all withdrawn, otherwise the missing ones are added.
    """
    ensure_day_open(d, actor, now)
    slots = time_slots if time_slots is not None else time_slots_for(d)
    mine = {r["timeSlot"]: r for r in store.query(AVAILABILITY, userId=pilot_uid, date=_day(d))}

    if all(s in mine for s in slots):
        for s in slots:
            store.delete(AVAILABILITY, mine[s]["id"])
            unassign_pilot_from_bookings(store, d, s, pilot_uid, actor)
        return False

    for s in slots:
        if s not in mine:
            store.add(AVAILABILITY, {"userId": pilot_uid, "date": _day(d), "timeSlot": s})
    return True


def unassign_pilot_from_bookings(store: Store, d: date, time_slot: str,
                                 pilot_uid: str, actor: Optional[Actor] = None) -> list[str]:
    """
    Empty the pilot's seat in every booking at the departure and drop their
    payment entry. Returns the ids of bookings that changed.
    """
    time_index = index_of(d, time_slot)
    if time_index == -1:
        logger.warning("time slot %s not found for %s", time_slot, _day(d))
        return []

    pilot = load_pilot(store, pilot_uid)
    actor = actor or Actor(uid=pilot_uid, name=pilot.displayName, role="pilot")
    changed = []

    for doc in store.query(BOOKINGS, date=_day(d), timeIndex=time_index):
        booking = Booking.from_doc(doc)
        if pilot.displayName not in booking.assignedPilots:
            continue
        booking.assignedPilots = [
            "" if p == pilot.displayName else p for p in booking.assignedPilots
        ]
        sync_payments(booking)
        record(booking, HistoryAction.PILOT_UNASSIGNED, actor,
               details=f"{pilot.displayName} withdrew availability for {time_slot}")
        store.update(BOOKINGS, booking.id, {
            "assignedPilots": booking.assignedPilots,
            "pilotPayments": [p.model_dump(mode="json") for p in booking.pilotPayments],
            "history": [h.model_dump(mode="json") for h in booking.history],
        })
        changed.append(booking.id)
        logger.info("unassigned %s from booking %s", pilot.displayName, booking.id)

    return changed
