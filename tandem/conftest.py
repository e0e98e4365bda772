"""
Shared fixtures. No external services: bookings run against MemoryStore, the
API tests against an in-memory SQLite database.

  pytest tandem/
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite://")

from datetime import date

import pytest

from tandem.bookings.permissions import Actor
from tandem.bookings.schemas import Booking
from tandem.store.base import AVAILABILITY, BOOKINGS, PROFILES
from tandem.store.memory import MemoryStore

# A summer day far enough ahead that the 24h edit lock never applies
DAY = date(2030, 7, 7)
NEXT_DAY = date(2030, 7, 8)
SLOT = "9:45"           # timeIndex 2 in the summer schedule
SLOT_INDEX = 2
LATER_SLOT = "11:00"    # timeIndex 3


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def add_pilot():
    """add_pilot(store, uid, name, female=False, slots=(SLOT,), d=DAY)"""
    def _add(store, uid, name, female=False, slots=(SLOT,), d=DAY):
        store.set(PROFILES, uid, {
            "uid": uid, "displayName": name, "femalePilot": female, "role": "pilot",
        })
        for s in slots:
            store.add(AVAILABILITY, {"userId": uid, "date": d.isoformat(), "timeSlot": s})
    return _add


@pytest.fixture
def three_pilots(store, add_pilot):
    """Anna (f), Bruno, Carla (f): grid columns 0, 1, 2, all free at 9:45 and 11:00."""
    add_pilot(store, "p-anna", "Anna", female=True, slots=(SLOT, LATER_SLOT))
    add_pilot(store, "p-bruno", "Bruno", slots=(SLOT, LATER_SLOT))
    add_pilot(store, "p-carla", "Carla", female=True, slots=(SLOT, LATER_SLOT))
    return store


@pytest.fixture
def put_booking():
    """Write a booking document directly, bypassing capacity checks."""
    def _put(store, **fields) -> Booking:
        fields.setdefault("date", DAY)
        fields.setdefault("timeIndex", SLOT_INDEX)
        fields.setdefault("numberOfPeople", 1)
        fields.setdefault("createdBy", "u-agency")
        booking = Booking(**fields)
        booking.id = store.add(BOOKINGS, booking.to_doc())
        return booking
    return _put


@pytest.fixture
def admin():
    return Actor(uid="u-admin", name="Alex Admin", role="admin")


@pytest.fixture
def agency():
    return Actor(uid="u-agency", name="Sky Tours", role="agency")


@pytest.fixture
def driver():
    return Actor(uid="u-driver", name="Dario", role="driver")


@pytest.fixture
def pilot():
    return Actor(uid="p-bruno", name="Bruno", role="pilot")
