"""
Booking state machine: status transitions and their side effects.

Everything here mutates a Booking model in place and never touches the store;
tandem.bookings.service decides when to persist.

Transition table:
  unconfirmed / confirmed / pending / cancelled / no show  → each other, deleted
  deleted                                                  → pending (restore)

Side effects:
  → cancelled      seats are released when the edit session closes, not now
  → no show        pay:   every assigned pilot gets NO_SHOW_COMPENSATION as ticket
                   don't: seats emptied, payments dropped
  date/time moved  seats and payments cleared
  party resized    seats truncated from the end / padded with ""
"""
import logging
from datetime import datetime, date, time, timedelta, timezone
from typing import Optional, Union

from tandem.config import NO_SHOW_COMPENSATION, EDIT_LOCK_HOURS
from tandem.bookings.errors import (
    CapacityExceeded, InvalidAssignment, InvalidTransition, PermissionDenied,
)
from tandem.bookings.permissions import Actor, can_edit_booking
from tandem.bookings.schemas import (
    Booking, BookingStatus, BookingUpdate, HistoryAction, HistoryEntry,
    PaymentMethod, Pilot, PilotPayment,
)

logger = logging.getLogger(__name__)

_LIVE = {
    BookingStatus.UNCONFIRMED, BookingStatus.CONFIRMED, BookingStatus.PENDING,
    BookingStatus.CANCELLED, BookingStatus.NO_SHOW,
}


def allowed_targets(current: BookingStatus) -> set[BookingStatus]:
    if current == BookingStatus.DELETED:
        return {BookingStatus.PENDING}
    if current in _LIVE:
        return (_LIVE | {BookingStatus.DELETED}) - {current}
    raise InvalidTransition(f"Unknown status {current!r}")


def check_transition(current: BookingStatus, target: BookingStatus):
    if target not in allowed_targets(current):
        raise InvalidTransition(
            f"Cannot move booking from '{current.value}' to '{target.value}'"
        )


# ── History ───────────────────────────────────────────────────────────────────

def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def record(booking: Booking, action: HistoryAction, actor: Actor,
           details: Optional[str] = None, at: Optional[datetime] = None):
    booking.history.append(HistoryEntry(
        action=action,
        userId=actor.uid,
        userName=actor.name,
        timestamp=at or utcnow(),
        details=details,
    ))


# ── Seats & payments ──────────────────────────────────────────────────────────

def sync_payments(booking: Booking):
    """
    One payment entry per named pilot, in seat order. Existing entries are
    kept as-is, entries for pilots no longer seated are dropped.
    """
    existing = {p.pilotName: p for p in booking.pilotPayments}
    synced = []
    for name in booking.named_pilots:
        if any(p.pilotName == name for p in synced):
            continue
        synced.append(existing.get(name) or PilotPayment(pilotName=name))
    booking.pilotPayments = synced


def clear_seats(booking: Booking):
    booking.assignedPilots = [""] * booking.numberOfPeople
    booking.pilotPayments = []


def resize_party(booking: Booking, number_of_people: int):
    if number_of_people < 1:
        raise ValueError("A booking needs at least one passenger")
    seats = booking.assignedPilots[:number_of_people]
    seats += [""] * (number_of_people - len(seats))
    booking.numberOfPeople = number_of_people
    booking.span = number_of_people
    booking.assignedPilots = seats
    sync_payments(booking)


def move(booking: Booking, new_date: Optional[date] = None,
         new_time_index: Optional[int] = None) -> bool:
    """
    Change date and/or time. Pilots were only reserved for the old slot, so
    any real move clears seats and payments. Returns True if anything moved.
    """
    target_date = new_date if new_date is not None else booking.date
    target_index = new_time_index if new_time_index is not None else booking.timeIndex
    if target_date == booking.date and target_index == booking.timeIndex:
        return False
    booking.date = target_date
    booking.timeIndex = target_index
    clear_seats(booking)
    return True


def assign_pilot(booking: Booking, seat: int, pilot: Optional[Pilot],
                 busy_names: frozenset = frozenset()):
    """
    Put `pilot` in `seat` (None empties it). busy_names are pilots already
    flying another booking at the same slot.
    """
    if not 0 <= seat < booking.numberOfPeople:
        raise InvalidAssignment(f"Seat {seat} outside party of {booking.numberOfPeople}")

    if pilot is not None:
        others = [p for i, p in enumerate(booking.assignedPilots) if i != seat]
        if pilot.displayName in others:
            raise InvalidAssignment(f"{pilot.displayName} already flies this booking")
        if pilot.displayName in busy_names:
            raise InvalidAssignment(f"{pilot.displayName} is already assigned at this time")
        if seat < booking.femalePilotsRequired and not pilot.femalePilot:
            raise InvalidAssignment(f"Seat {seat} requires a female pilot")

    booking.assignedPilots[seat] = pilot.displayName if pilot else ""
    sync_payments(booking)


def parse_amount(value: Union[str, float, int, None]) -> float:
    """Form amounts: '' and '-' mean nothing entered yet and are stored as 0."""
    if value is None:
        return 0.0
    if isinstance(value, str):
        value = value.strip()
        if value in ("", "-"):
            return 0.0
        return float(value)
    return float(value)


# ── Status side effects ───────────────────────────────────────────────────────

def settle_no_show(booking: Booking, pay_pilots: bool):
    if not pay_pilots:
        clear_seats(booking)
        return

    receipts = {p.pilotName: p.receiptFiles for p in booking.pilotPayments}
    booking.pilotPayments = [
        PilotPayment(
            pilotName=name,
            amount=NO_SHOW_COMPENSATION,
            paymentMethod=PaymentMethod.TICKET,
            receiptFiles=receipts.get(name, []),
        )
        for name in dict.fromkeys(booking.named_pilots)
    ]


def apply_status(booking: Booking, target: BookingStatus,
                 pay_pilots: Optional[bool] = None) -> BookingStatus:
    """
    Move the booking to `target` and run the immediate side effects.
    Returns the previous status.
    """
    previous = booking.bookingStatus
    check_transition(previous, target)

    if target == BookingStatus.NO_SHOW:
        if pay_pilots is None:
            raise InvalidTransition("No-show needs a decision: will the pilots be paid?")
        settle_no_show(booking, pay_pilots)
    elif target == BookingStatus.CANCELLED:
        pass    # seats released on session close, see release_if_cancelled
    elif target in (BookingStatus.UNCONFIRMED, BookingStatus.CONFIRMED,
                    BookingStatus.PENDING, BookingStatus.DELETED):
        pass
    else:
        raise InvalidTransition(f"Unhandled status {target!r}")

    booking.bookingStatus = target
    logger.debug("booking %s: %s → %s", booking.id, previous.value, target.value)
    return previous


def release_if_cancelled(booking: Booking) -> bool:
    """Deferred half of → cancelled. True if seats were released."""
    if booking.bookingStatus != BookingStatus.CANCELLED:
        return False
    if not booking.named_pilots and not booking.pilotPayments:
        return False
    clear_seats(booking)
    return True


# ── Gates ─────────────────────────────────────────────────────────────────────

def day_locked(d: date, now: Optional[datetime] = None) -> bool:
    """True once EDIT_LOCK_HOURS have passed since the day ended."""
    now = now or datetime.now()
    end_of_day = datetime.combine(d, time.max)
    return now > end_of_day + timedelta(hours=EDIT_LOCK_HOURS)


def edit_window_closed(booking: Booking, now: Optional[datetime] = None) -> bool:
    return day_locked(booking.date, now)


def ensure_editable(booking: Booking, actor: Actor, now: Optional[datetime] = None):
    if not can_edit_booking(actor, booking.createdBy):
        raise PermissionDenied(f"{actor.role or 'no role'} may not edit this booking")
    if not actor.is_admin and edit_window_closed(booking, now):
        raise PermissionDenied("Booking is more than 24 hours in the past")


def check_capacity(requested: int, available: int, actor: Actor) -> bool:
    """
    Raise CapacityExceeded for regular users. Admins may overbook; the return
    value tells the caller the grid will expand.
    """
    if requested <= available:
        return False
    if actor.is_admin:
        logger.info("overbooking by %s: %d requested, %d available",
                    actor.uid, requested, available)
        return True
    raise CapacityExceeded(requested, available)


# ── Diff ──────────────────────────────────────────────────────────────────────

def diff_booking(persisted: Booking, draft: Booking) -> BookingUpdate:
    """Value-equality diff of draft against the last persisted snapshot."""
    old = persisted.model_dump(mode="json", exclude={"id"})
    new = draft.model_dump(mode="json", exclude={"id"})
    changed = {k: v for k, v in new.items() if old.get(k) != v}
    return BookingUpdate.model_validate(changed)
