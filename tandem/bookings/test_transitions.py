"""
Booking state machine and its side effects, on in-memory models only.

  pytest tandem/bookings/test_transitions.py
"""
from datetime import date, datetime

import pytest

from tandem.bookings import transitions as sm
from tandem.bookings.errors import (
    CapacityExceeded, InvalidAssignment, InvalidTransition, PermissionDenied,
)
from tandem.bookings.permissions import Actor
from tandem.bookings.schemas import (
    Booking, BookingStatus, HistoryAction, PaymentMethod, Pilot,
)

DAY = date(2030, 7, 7)


def make_booking(**fields) -> Booking:
    fields.setdefault("date", DAY)
    fields.setdefault("timeIndex", 2)
    fields.setdefault("numberOfPeople", 2)
    fields.setdefault("createdBy", "u-agency")
    return Booking(id="b1", **fields)


def paid(names, amount=90.0):
    return [{"pilotName": n, "amount": amount} for n in names]


# ── Transition table ──────────────────────────────────────────────────────────

def test_live_statuses_reach_each_other_and_deleted():
    targets = sm.allowed_targets(BookingStatus.CONFIRMED)
    assert BookingStatus.CONFIRMED not in targets
    assert {BookingStatus.CANCELLED, BookingStatus.NO_SHOW, BookingStatus.DELETED} <= targets


def test_deleted_only_restores_to_pending():
    assert sm.allowed_targets(BookingStatus.DELETED) == {BookingStatus.PENDING}
    with pytest.raises(InvalidTransition):
        sm.check_transition(BookingStatus.DELETED, BookingStatus.CONFIRMED)


def test_no_show_needs_pay_decision():
    b = make_booking(bookingStatus=BookingStatus.CONFIRMED)
    with pytest.raises(InvalidTransition):
        sm.apply_status(b, BookingStatus.NO_SHOW)
    assert b.bookingStatus == BookingStatus.CONFIRMED


def test_no_show_paid_gives_every_pilot_compensation():
    b = make_booking(assignedPilots=["Anna", "Bruno"], pilotPayments=[
        {"pilotName": "Anna", "amount": 90, "receiptFiles": [{"filename": "r.pdf"}]},
    ])
    previous = sm.apply_status(b, BookingStatus.NO_SHOW, pay_pilots=True)

    assert previous == BookingStatus.UNCONFIRMED
    assert b.bookingStatus == BookingStatus.NO_SHOW
    assert [p.pilotName for p in b.pilotPayments] == ["Anna", "Bruno"]
    assert all(p.amount == -103 for p in b.pilotPayments)
    assert all(p.paymentMethod == PaymentMethod.TICKET for p in b.pilotPayments)
    assert b.pilotPayments[0].receiptFiles[0].filename == "r.pdf"
    assert b.assignedPilots == ["Anna", "Bruno"]


def test_no_show_unpaid_clears_seats():
    b = make_booking(assignedPilots=["Anna", "Bruno"], pilotPayments=paid(["Anna", "Bruno"]))
    sm.apply_status(b, BookingStatus.NO_SHOW, pay_pilots=False)
    assert b.assignedPilots == ["", ""]
    assert b.pilotPayments == []


def test_cancellation_defers_seat_release():
    b = make_booking(assignedPilots=["Anna", "Bruno"], pilotPayments=paid(["Anna", "Bruno"]))
    sm.apply_status(b, BookingStatus.CANCELLED)
    assert b.assignedPilots == ["Anna", "Bruno"]

    assert sm.release_if_cancelled(b)
    assert b.assignedPilots == ["", ""]
    assert b.pilotPayments == []
    assert not sm.release_if_cancelled(b)


def test_release_ignores_bookings_that_are_not_cancelled():
    b = make_booking(assignedPilots=["Anna"])
    assert not sm.release_if_cancelled(b)
    assert b.assignedPilots == ["Anna", ""]


# ── Seats ─────────────────────────────────────────────────────────────────────

def test_move_clears_seats_and_payments():
    b = make_booking(assignedPilots=["Anna", "Bruno"], pilotPayments=paid(["Anna", "Bruno"]))
    assert sm.move(b, new_time_index=3)
    assert b.timeIndex == 3
    assert b.assignedPilots == ["", ""]
    assert b.pilotPayments == []


def test_move_to_same_slot_is_noop():
    b = make_booking(assignedPilots=["Anna", ""])
    assert not sm.move(b, new_date=DAY, new_time_index=2)
    assert b.assignedPilots == ["Anna", ""]


def test_shrinking_party_truncates_seats_and_payments():
    b = make_booking(numberOfPeople=3, assignedPilots=["Anna", "Bruno", "Carla"],
                     pilotPayments=paid(["Anna", "Bruno", "Carla"]))
    sm.resize_party(b, 2)
    assert b.numberOfPeople == b.span == 2
    assert b.assignedPilots == ["Anna", "Bruno"]
    assert [p.pilotName for p in b.pilotPayments] == ["Anna", "Bruno"]


def test_growing_party_pads_seats():
    b = make_booking(numberOfPeople=1, assignedPilots=["Anna"])
    sm.resize_party(b, 3)
    assert b.assignedPilots == ["Anna", "", ""]


def test_party_of_zero_rejected():
    with pytest.raises(ValueError):
        sm.resize_party(make_booking(), 0)


def test_assign_pilot_rules():
    anna = Pilot(uid="a", displayName="Anna", femalePilot=True)
    bruno = Pilot(uid="b", displayName="Bruno")
    b = make_booking(femalePilotsRequired=1)

    with pytest.raises(InvalidAssignment):
        sm.assign_pilot(b, 0, bruno)                 # seat 0 needs a woman
    sm.assign_pilot(b, 0, anna)
    with pytest.raises(InvalidAssignment):
        sm.assign_pilot(b, 1, anna)                  # already on this booking
    with pytest.raises(InvalidAssignment):
        sm.assign_pilot(b, 1, bruno, busy_names=frozenset({"Bruno"}))
    with pytest.raises(InvalidAssignment):
        sm.assign_pilot(b, 2, bruno)                 # party of two

    sm.assign_pilot(b, 1, bruno)
    assert b.assignedPilots == ["Anna", "Bruno"]
    assert [p.pilotName for p in b.pilotPayments] == ["Anna", "Bruno"]

    sm.assign_pilot(b, 0, None)
    assert b.assignedPilots == ["", "Bruno"]
    assert [p.pilotName for p in b.pilotPayments] == ["Bruno"]


def test_sync_payments_keeps_existing_entries():
    b = make_booking(assignedPilots=["Anna", "Bruno"], pilotPayments=paid(["Bruno"], 120))
    sm.sync_payments(b)
    assert [(p.pilotName, p.amount) for p in b.pilotPayments] == [("Anna", None), ("Bruno", 120)]


def test_parse_amount():
    assert sm.parse_amount("") == 0
    assert sm.parse_amount(" - ") == 0
    assert sm.parse_amount(None) == 0
    assert sm.parse_amount("85.5") == 85.5
    assert sm.parse_amount(40) == 40.0


# ── Gates ─────────────────────────────────────────────────────────────────────

def test_edit_window_closes_24h_after_the_booking_day():
    b = make_booking()
    assert not sm.edit_window_closed(b, datetime(2030, 7, 8, 12, 0))
    assert sm.edit_window_closed(b, datetime(2030, 7, 9, 0, 0, 1))


def test_admin_ignores_edit_window():
    b = make_booking()
    late = datetime(2030, 8, 1)
    with pytest.raises(PermissionDenied):
        sm.ensure_editable(b, Actor(uid="u-agency", role="agency"), late)
    sm.ensure_editable(b, Actor(uid="u-admin", role="admin"), late)


def test_check_capacity():
    agency = Actor(uid="u", role="agency")
    admin = Actor(uid="a", role="admin")
    assert sm.check_capacity(2, 2, agency) is False
    assert sm.check_capacity(3, 2, admin) is True
    with pytest.raises(CapacityExceeded) as exc:
        sm.check_capacity(3, 2, agency)
    assert "Only 2 slots are available" in str(exc.value)


# ── History & diff ────────────────────────────────────────────────────────────

def test_record_appends_history():
    b = make_booking()
    sm.record(b, HistoryAction.EDITED, Actor(uid="u", name="Una"), details="notes")
    entry = b.history[-1]
    assert (entry.action, entry.userId, entry.userName, entry.details) == (
        HistoryAction.EDITED, "u", "Una", "notes")


def test_diff_contains_only_changed_fields():
    persisted = make_booking(customerName="Kim", assignedPilots=["Anna"])
    draft = persisted.model_copy(deep=True)
    assert not sm.diff_booking(persisted, draft)

    draft.customerName = "Kim Lee"
    draft.assignedPilots = ["Anna", ""]     # same value, new list
    update = sm.diff_booking(persisted, draft)
    assert update.to_partial() == {"customerName": "Kim Lee"}
