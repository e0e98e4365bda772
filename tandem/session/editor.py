"""
BookingEditSession: one open booking editor.

Lifecycle:
  open()   → permission check, coordinator.begin(), subscribe to the booking
             and to the edited date's bookings + availability
  edit     → set_date / set_time_index / set_number_of_people / set_status /
             assign / update_fields, all on the draft only
  save()   → service.save_booking against the snapshot the draft came from,
             re-checking capacity on a fresh read (StaleAvailability)
  close()  → deferred cancellation release, unsubscribe, coordinator.end()

Capacity shown to the editor comes from `day`, the edited date's schedule.
It keeps receiving live booking updates while the draft is frozen, and is
reloaded whenever the draft moves to another date.
"""
import logging
from datetime import date, datetime
from typing import Callable, Optional

from tandem.bookings import service
from tandem.bookings import transitions as sm
from tandem.bookings.errors import InvalidAssignment
from tandem.bookings.permissions import Actor
from tandem.bookings.schemas import Booking, BookingStatus, Pilot
from tandem.scheduling import capacity
from tandem.scheduling.availability import AvailabilityIndex
from tandem.scheduling.day import DaySchedule, load_day
from tandem.session.coordinator import BookingBuffer, SessionCoordinator
from tandem.store.base import Store, AVAILABILITY, BOOKINGS

logger = logging.getLogger(__name__)

# Fields an editor may set directly; the rest go through dedicated setters
PLAIN_FIELDS = {
    "customerName", "phoneNumber", "email", "pickupLocation", "bookingSource",
    "notes", "commission", "commissionStatus", "flightType",
    "femalePilotsRequired", "pilotIndex",
}


class BookingEditSession:

    def __init__(self, store: Store, coordinator: SessionCoordinator,
                 booking_id: str, actor: Actor, now: Optional[datetime] = None):
        self.store = store
        self.coordinator = coordinator
        self.booking_id = booking_id
        self.actor = actor
        self.now = now

        self.base: Optional[Booking] = None
        self.buffer: Optional[BookingBuffer] = None
        self.day: Optional[DaySchedule] = None
        self.last_result: Optional[service.SaveResult] = None
        self._cancelled_in_session = False
        self._booking_unsub: Optional[Callable[[], None]] = None
        self._day_unsubs: list[Callable[[], None]] = []

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    def open(self) -> "BookingEditSession":
        self.base = service.get_booking(self.store, self.booking_id)
        sm.ensure_editable(self.base, self.actor, self.now)

        self.buffer = BookingBuffer(self.coordinator, self.base)
        try:
            self.coordinator.begin()
            self._booking_unsub = self.store.subscribe(
                BOOKINGS, self.buffer.on_store_change, doc_id=self.booking_id
            )
            self._load_day(self.base.date)
        except BaseException:
            # __exit__ never runs when open() fails inside a with statement
            self.close()
            raise
        return self

    def close(self):
        try:
            if self._cancelled_in_session:
                service.release_cancelled(self.store, self.booking_id, self.actor)
        finally:
            self._drop_day_subscriptions()
            if self._booking_unsub:
                self._booking_unsub()
                self._booking_unsub = None
            self.coordinator.end()

    def __enter__(self):
        return self.open()

    def __exit__(self, exc_type, exc, tb):
        self.close()

    # ── Edited-date dataset ───────────────────────────────────────────────────

    def _load_day(self, d: date):
        self._drop_day_subscriptions()
        self.day = load_day(self.store, d)
        day = self.day
        self._day_unsubs = [
            self.store.subscribe(BOOKINGS, day.on_booking_change),
            self.store.subscribe(
                AVAILABILITY, lambda i, doc: day.on_availability_change(i, doc, self.store)
            ),
        ]
        logger.debug("edit session %s loaded %s", self.booking_id, d)

    def _drop_day_subscriptions(self):
        for unsub in self._day_unsubs:
            unsub()
        self._day_unsubs = []

    @property
    def draft(self) -> Booking:
        return self.buffer.draft

    @property
    def edited_date_availability(self) -> AvailabilityIndex:
        return self.day.availability

    @property
    def edited_date_pilots(self) -> list[Pilot]:
        return self.day.pilots

    @property
    def edited_date_bookings(self) -> list[Booking]:
        return list(self.day.bookings.values())

    # ── Capacity views ────────────────────────────────────────────────────────

    def available_slots(self) -> int:
        return capacity.available_slots(self.day, self.draft.timeIndex, self.booking_id)

    def available_slots_per_time(self) -> dict[int, int]:
        return capacity.available_slots_per_time(self.day, self.booking_id)

    def available_female_slots(self) -> int:
        return capacity.available_female_slots(self.day, self.draft.timeIndex, self.booking_id)

    def headcount_options(self, max_people: int = 10) -> dict[int, bool]:
        return capacity.headcount_options(
            self.day, self.draft.timeIndex, self.booking_id, max_people
        )

    @property
    def grid_will_expand(self) -> bool:
        """Draft needs more seats than are free: blocked for users, a warning for admins."""
        return (
            self.draft.bookingStatus.holds_seats
            and self.draft.numberOfPeople > self.available_slots()
        )

    # ── Draft edits ───────────────────────────────────────────────────────────

    def set_date(self, new_date: date):
        if sm.move(self.draft, new_date=new_date) and new_date != self.day.date:
            self._load_day(new_date)

    def set_time_index(self, time_index: int):
        if self.day.time_slot(time_index) is None:
            raise InvalidAssignment(f"{self.day.date} has no departure #{time_index}")
        sm.move(self.draft, new_time_index=time_index)

    def set_number_of_people(self, number_of_people: int):
        sm.resize_party(self.draft, number_of_people)

    def set_status(self, status: BookingStatus, pay_pilots: Optional[bool] = None):
        sm.apply_status(self.draft, status, pay_pilots)

    def assign(self, seat: int, pilot_uid: Optional[str]):
        if pilot_uid is None:
            sm.assign_pilot(self.draft, seat, None)
            return
        pilot = next((p for p in self.day.pilots if p.uid == pilot_uid), None)
        slot = self.day.time_slot(self.draft.timeIndex)
        if pilot is None or not self.day.availability.is_available(pilot_uid, self.day.date, slot):
            raise InvalidAssignment(f"Pilot {pilot_uid} is not available at {slot}")
        busy = frozenset(
            name for b in self.day.bookings_at(self.draft.timeIndex, self.booking_id)
            for name in b.named_pilots
        )
        sm.assign_pilot(self.draft, seat, pilot, busy)

    def update_fields(self, **fields):
        unknown = set(fields) - PLAIN_FIELDS
        if unknown:
            raise ValueError(f"Use the dedicated setter for {sorted(unknown)}")
        for key, value in fields.items():
            setattr(self.draft, key, value)

    def discard(self):
        """Throw the draft away; nothing was written."""
        self.buffer.reset_draft(self.base)
        if self.day.date != self.base.date:
            self._load_day(self.base.date)

    # ── Save ──────────────────────────────────────────────────────────────────

    def save(self) -> service.SaveResult:
        """
        Validate and persist. On any error the draft is left untouched so the
        user can fix it or retry.
        """
        result = service.save_booking(
            self.store, self.base, self.draft, self.actor,
            known_day=self.day, now=self.now,
        )
        if result.booking.bookingStatus == BookingStatus.CANCELLED:
            self._cancelled_in_session = True
        elif result.update is not None and result.update.bookingStatus is not None:
            self._cancelled_in_session = False

        self.base = result.booking.model_copy(deep=True)
        self.buffer.reset_draft(self.base)
        self.last_result = result
        return result
