"""
Booking service: validates and persists booking changes through the Store.

Every operation follows the same order:
  1. load the persisted booking
  2. permission gate (role, 24h edit window)
  3. state machine on a draft copy (tandem.bookings.transitions)
  4. capacity against the client's last known day, then a fresh read
  5. history entry, sparse diff, single store write

Nothing is written when a step before 5 fails.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from tandem.bookings.errors import (
    BookingNotFound, CapacityExceeded, InvalidAssignment, PermissionDenied,
    StaleAvailability,
)
from tandem.bookings.permissions import Actor, can_delete_booking
from tandem.bookings.schemas import (
    Booking, BookingCreate, BookingStatus, BookingUpdate, HistoryAction,
    PilotPayment,
)
from tandem.bookings import transitions as sm
from tandem.scheduling.allocator import Placement, allocate_position, occupied_columns
from tandem.scheduling.availability import load_pilot
from tandem.scheduling.capacity import available_slots
from tandem.scheduling.day import DaySchedule, load_day
from tandem.store.base import Store, BOOKINGS

logger = logging.getLogger(__name__)


@dataclass
class SaveResult:
    booking: Booking
    update: Optional[BookingUpdate] = None
    overbooked: bool = False
    warnings: list[str] = field(default_factory=list)


def get_booking(store: Store, booking_id: str) -> Booking:
    doc = store.get(BOOKINGS, booking_id)
    if doc is None:
        raise BookingNotFound(booking_id)
    return Booking.from_doc(doc)


def _write(store: Store, booking_id: str, partial: dict):
    try:
        store.update(BOOKINGS, booking_id, partial)
    except KeyError:
        # deleted by another client since it was read
        raise BookingNotFound(booking_id) from None


def default_booking_source(actor: Actor, public: bool = False) -> str:
    if public:
        return "Online"
    if actor.role == "agency":
        return actor.name
    return "Direct"


def _require_slot(day: DaySchedule, time_index: int):
    if day.time_slot(time_index) is None:
        raise InvalidAssignment(
            f"{day.date} has no departure #{time_index} "
            f"({len(day.time_slots)} departures that day)"
        )


def _reserve(day: DaySchedule, booking: Booking, actor: Actor,
             known: Optional[DaySchedule] = None) -> tuple[bool, Placement]:
    """
    Capacity check plus column placement for `booking` at its target slot.
    `known` is the day as the client last saw it; `day` is a fresh read.
    """
    n = booking.numberOfPeople
    if known is not None:
        sm.check_capacity(n, available_slots(known, booking.timeIndex, booking.id), actor)

    fresh = available_slots(day, booking.timeIndex, booking.id)
    try:
        overbooked = sm.check_capacity(n, fresh, actor)
    except CapacityExceeded:
        if known is not None:
            raise StaleAvailability(n, fresh)
        raise

    placement = allocate_position(
        day, booking.timeIndex, n,
        exclude_booking_id=booking.id, privileged=actor.is_admin,
    )
    return overbooked or placement.overbooked, placement


# ── Create ────────────────────────────────────────────────────────────────────

def create_booking(store: Store, payload: BookingCreate, actor: Actor,
                   public: bool = False) -> SaveResult:
    if not public and not actor.permissions.can_create_bookings:
        raise PermissionDenied(f"{actor.role or 'no role'} may not create bookings")

    day = load_day(store, payload.date)
    _require_slot(day, payload.timeIndex)

    booking = Booking(
        **payload.model_dump(exclude={"bookingSource"}),
        bookingStatus=BookingStatus.UNCONFIRMED,
        bookingSource=payload.bookingSource or default_booking_source(actor, public),
        createdBy=actor.uid,
        createdByName=actor.name,
        createdAt=sm.utcnow(),
    )
    overbooked, placement = _reserve(day, booking, actor)
    booking.pilotIndex = placement.column
    sm.sync_payments(booking)
    sm.record(booking, HistoryAction.CREATED, actor,
              details=f"{booking.numberOfPeople} pax at {day.time_slot(booking.timeIndex)}")

    booking.id = store.add(BOOKINGS, booking.to_doc())
    logger.info("booking %s created by %s on %s #%d col %d%s",
                booking.id, actor.uid, booking.date, booking.timeIndex,
                booking.pilotIndex, " (overbooked)" if overbooked else "")

    warnings = ["Overbooked: the grid will expand"] if overbooked else []
    return SaveResult(booking=booking, overbooked=overbooked, warnings=warnings)


# ── Edit ──────────────────────────────────────────────────────────────────────

def apply_changes(booking: Booking, changes,
                  pay_pilots: Optional[bool] = None) -> Booking:
    """
    Build a draft from plain field changes, running the side effects each
    field mandates. The input booking is not modified.
    """
    draft = booking.model_copy(deep=True)
    parsed = changes if isinstance(changes, BookingUpdate) else BookingUpdate.model_validate(changes)
    changes = {k: getattr(parsed, k) for k in parsed.model_fields_set}
    changes.update(parsed.model_extra or {})
    changes.pop("history", None)
    changes.pop("id", None)

    new_date = changes.pop("date", None)
    new_time = changes.pop("timeIndex", None)
    if new_date is not None or new_time is not None:
        sm.move(draft, new_date, new_time)

    if "numberOfPeople" in changes:
        sm.resize_party(draft, changes.pop("numberOfPeople"))
    changes.pop("span", None)

    if "assignedPilots" in changes:
        seats = list(changes.pop("assignedPilots"))[:draft.numberOfPeople]
        draft.assignedPilots = seats + [""] * (draft.numberOfPeople - len(seats))
        sm.sync_payments(draft)

    status = changes.pop("bookingStatus", None)
    if status is not None and BookingStatus(status) != draft.bookingStatus:
        sm.apply_status(draft, BookingStatus(status), pay_pilots)

    for key, value in changes.items():
        setattr(draft, key, value)
    return draft


def _capacity_relevant(persisted: Booking, draft: Booking) -> bool:
    if not draft.bookingStatus.holds_seats:
        return False
    return (
        draft.date != persisted.date
        or draft.timeIndex != persisted.timeIndex
        or draft.numberOfPeople > persisted.numberOfPeople
        or not persisted.bookingStatus.holds_seats
    )


def _gate_status(persisted: Booking, draft: Booking, actor: Actor):
    if draft.bookingStatus == persisted.bookingStatus:
        return
    sm.check_transition(persisted.bookingStatus, draft.bookingStatus)
    touches_delete = BookingStatus.DELETED in (persisted.bookingStatus, draft.bookingStatus)
    if touches_delete and not can_delete_booking(actor, persisted.createdBy):
        raise PermissionDenied("Not allowed to delete or restore this booking")


def save_booking(store: Store, persisted: Booking, draft: Booking, actor: Actor,
                 known_day: Optional[DaySchedule] = None,
                 now: Optional[datetime] = None) -> SaveResult:
    """
    Persist an edited draft. `persisted` is the snapshot the draft was taken
    from; only fields that differ from it are written.
    """
    sm.ensure_editable(persisted, actor, now)
    _gate_status(persisted, draft, actor)

    draft = draft.model_copy(deep=True)
    moved = (draft.date, draft.timeIndex) != (persisted.date, persisted.timeIndex)
    overbooked = False

    if _capacity_relevant(persisted, draft):
        day = load_day(store, draft.date)
        _require_slot(day, draft.timeIndex)
        if known_day is not None and known_day.date != draft.date:
            known_day = None
        overbooked, placement = _reserve(day, draft, actor, known_day)

        clash = occupied_columns(day, draft.timeIndex, draft.id) & set(draft.columns)
        if moved or clash:
            draft.pilotIndex = placement.column

    if moved:
        sm.record(draft, HistoryAction.MOVED, actor, details=(
            f"from {persisted.date} #{persisted.timeIndex} "
            f"to {draft.date} #{draft.timeIndex}"
        ))
    if draft.bookingStatus != persisted.bookingStatus:
        sm.record(draft, HistoryAction.STATUS_CHANGED, actor, details=(
            f"{persisted.bookingStatus.value} → {draft.bookingStatus.value}"
        ))

    update = sm.diff_booking(persisted, draft)
    edited = sorted(
        k for k in update.to_partial()
        if k not in ("date", "timeIndex", "pilotIndex", "bookingStatus", "history", "span")
    )
    if edited:
        sm.record(draft, HistoryAction.EDITED, actor, details=", ".join(edited))
        update = sm.diff_booking(persisted, draft)

    if not update:
        return SaveResult(booking=persisted)

    _write(store, persisted.id, update.to_partial())
    logger.info("booking %s saved by %s: %s", persisted.id, actor.uid,
                sorted(update.to_partial()))

    warnings = ["Overbooked: the grid will expand"] if overbooked else []
    return SaveResult(booking=draft, update=update, overbooked=overbooked, warnings=warnings)


def update_booking(store: Store, booking_id: str, changes: dict, actor: Actor,
                   pay_pilots: Optional[bool] = None,
                   now: Optional[datetime] = None) -> SaveResult:
    """One-shot edit without an edit session (API PATCH)."""
    persisted = get_booking(store, booking_id)
    draft = apply_changes(persisted, changes, pay_pilots)
    result = save_booking(store, persisted, draft, actor, now=now)
    if result.booking.bookingStatus == BookingStatus.CANCELLED:
        release_cancelled(store, booking_id, actor)
    return result


# ── Quick actions ─────────────────────────────────────────────────────────────

def set_status(store: Store, booking_id: str, status: BookingStatus, actor: Actor,
               pay_pilots: Optional[bool] = None,
               now: Optional[datetime] = None) -> SaveResult:
    """
    Status badge click: written immediately, outside any edit session. With
    no session to close, a cancellation releases its seats right away.
    """
    result = update_booking(
        store, booking_id, {"bookingStatus": status}, actor,
        pay_pilots=pay_pilots, now=now,
    )
    if status == BookingStatus.CANCELLED:
        result.booking = get_booking(store, booking_id)
    return result


def soft_delete(store: Store, booking_id: str, actor: Actor,
                now: Optional[datetime] = None) -> SaveResult:
    persisted = get_booking(store, booking_id)
    if not can_delete_booking(actor, persisted.createdBy):
        raise PermissionDenied("Not allowed to delete this booking")

    draft = persisted.model_copy(deep=True)
    sm.apply_status(draft, BookingStatus.DELETED)
    draft.deletedBy = actor.uid
    draft.deletedByName = actor.name
    draft.deletedAt = now or sm.utcnow()
    sm.record(draft, HistoryAction.DELETED, actor)

    update = sm.diff_booking(persisted, draft)
    _write(store, booking_id, update.to_partial())
    logger.info("booking %s deleted by %s", booking_id, actor.uid)
    return SaveResult(booking=draft, update=update)


def restore_booking(store: Store, booking_id: str, actor: Actor) -> SaveResult:
    """deleted → pending. The seats are claimed again, so capacity applies."""
    persisted = get_booking(store, booking_id)
    if not can_delete_booking(actor, persisted.createdBy):
        raise PermissionDenied("Not allowed to restore this booking")

    draft = persisted.model_copy(deep=True)
    sm.apply_status(draft, BookingStatus.PENDING)
    draft.deletedBy = draft.deletedByName = None
    draft.deletedAt = None

    day = load_day(store, draft.date)
    _require_slot(day, draft.timeIndex)
    overbooked, placement = _reserve(day, draft, actor)
    draft.pilotIndex = placement.column
    sm.record(draft, HistoryAction.RESTORED, actor)

    update = sm.diff_booking(persisted, draft)
    _write(store, booking_id, update.to_partial())
    logger.info("booking %s restored by %s", booking_id, actor.uid)
    return SaveResult(booking=draft, update=update, overbooked=overbooked)


def release_cancelled(store: Store, booking_id: str, actor: Actor) -> bool:
    """Deferred cancellation side effect; run when the edit session closes."""
    persisted = get_booking(store, booking_id)
    draft = persisted.model_copy(deep=True)
    if not sm.release_if_cancelled(draft):
        return False
    sm.record(draft, HistoryAction.PILOT_UNASSIGNED, actor,
              details="seats released after cancellation")
    _write(store, booking_id, sm.diff_booking(persisted, draft).to_partial())
    logger.info("booking %s cancelled: released %d seat(s)",
                booking_id, persisted.numberOfPeople)
    return True


# ── Pilots & payments ─────────────────────────────────────────────────────────

def assign_seat(store: Store, booking_id: str, seat: int, pilot_uid: Optional[str],
                actor: Actor, now: Optional[datetime] = None) -> SaveResult:
    persisted = get_booking(store, booking_id)
    sm.ensure_editable(persisted, actor, now)
    draft = persisted.model_copy(deep=True)

    if pilot_uid is None:
        removed = draft.assignedPilots[seat] if 0 <= seat < draft.numberOfPeople else ""
        sm.assign_pilot(draft, seat, None)
        sm.record(draft, HistoryAction.PILOT_UNASSIGNED, actor, details=removed or None)
    else:
        day = load_day(store, draft.date)
        pilot = load_pilot(store, pilot_uid)
        slot = day.time_slot(draft.timeIndex)
        if not actor.is_admin and not day.availability.is_available(pilot_uid, draft.date, slot):
            raise InvalidAssignment(f"{pilot.displayName} is not available at {slot}")
        busy = frozenset(
            name for b in day.bookings_at(draft.timeIndex, draft.id)
            for name in b.named_pilots
        )
        sm.assign_pilot(draft, seat, pilot, busy)
        sm.record(draft, HistoryAction.PILOT_ASSIGNED, actor,
                  details=f"{pilot.displayName} → seat {seat + 1}")

    update = sm.diff_booking(persisted, draft)
    _write(store, booking_id, update.to_partial())
    return SaveResult(booking=draft, update=update)


def save_payments(store: Store, booking_id: str, payments: list[dict], actor: Actor,
                  now: Optional[datetime] = None) -> SaveResult:
    """Only seated pilots keep a payment entry; blank amounts become 0."""
    persisted = get_booking(store, booking_id)
    sm.ensure_editable(persisted, actor, now)
    draft = persisted.model_copy(deep=True)

    seated = set(draft.named_pilots)
    by_name = {}
    for p in payments:
        if p.get("pilotName") in seated:
            by_name[p["pilotName"]] = PilotPayment.model_validate(
                {**p, "amount": sm.parse_amount(p.get("amount"))}
            )
    draft.pilotPayments = list(by_name.values())
    sm.sync_payments(draft)

    update = sm.diff_booking(persisted, draft)
    if update:
        _write(store, booking_id, update.to_partial())
    return SaveResult(booking=draft, update=update)
