"""
Capacity Calculator.

Capacity is pooled: available pilots at a departure minus seats already
reserved there. Seat reservation and naming a pilot are separate steps, so a
booking holds its seats before anyone is assigned to it.

  available_slots        = max(0, available pilots − reserved seats)
  available_female_slots = max(0, available female pilots − distinct female
                                  pilots of the roster already named at
                                  the departure)

Cancelled and deleted bookings reserve nothing. The booking being edited is
excluded so it never competes with itself.
"""
from collections import defaultdict
from typing import Optional

from tandem.scheduling.day import DaySchedule


def available_pilot_count(day: DaySchedule, time_index: int) -> int:
    slot = day.time_slot(time_index)
    if slot is None:
        return 0
    return len(day.availability.pilots_at(day.date, slot))


def reserved_seats(day: DaySchedule, time_index: int,
                   exclude_booking_id: Optional[str] = None) -> int:
    return sum(b.numberOfPeople for b in day.bookings_at(time_index, exclude_booking_id))


def available_slots(day: DaySchedule, time_index: int,
                    exclude_booking_id: Optional[str] = None) -> int:
    total = available_pilot_count(day, time_index)
    booked = reserved_seats(day, time_index, exclude_booking_id)
    return max(0, total - booked)


def available_slots_per_time(day: DaySchedule,
                             exclude_booking_id: Optional[str] = None) -> dict[int, int]:
    """Every departure of the day in one pass over the ledger; feeds the time selector."""
    booked = defaultdict(int)
    for b in day.bookings.values():
        if b.id == exclude_booking_id or not b.bookingStatus.holds_seats:
            continue
        booked[b.timeIndex] += b.numberOfPeople

    return {
        i: max(0, len(day.availability.pilots_at(day.date, slot)) - booked[i])
        for i, slot in enumerate(day.time_slots)
    }


def available_female_slots(day: DaySchedule, time_index: int,
                           exclude_booking_id: Optional[str] = None) -> int:
    slot = day.time_slot(time_index)
    if slot is None:
        return 0
    here = day.availability.pilots_at(day.date, slot)
    female = {p.displayName for p in day.pilots if p.femalePilot}
    free = {p.displayName for p in day.pilots if p.femalePilot and p.uid in here}

    # a seated female pilot counts even when she is not on the availability list
    named = {
        name
        for b in day.bookings_at(time_index, exclude_booking_id)
        for name in b.named_pilots
        if name in female
    }
    return max(0, len(free) - len(named))


def headcount_options(day: DaySchedule, time_index: int,
                      exclude_booking_id: Optional[str] = None,
                      max_people: int = 10) -> dict[int, bool]:
    """Party size → selectable. Sizes above capacity are disabled."""
    free = available_slots(day, time_index, exclude_booking_id)
    return {n: n <= free for n in range(1, max_people + 1)}
