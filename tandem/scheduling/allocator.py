"""
Position Allocator: picks the grid column a booking lands in.

Strategy (deterministic, leftmost first):
  1. occupied  = columns claimed by other active bookings at the departure
  2. available = columns whose pilot is available at the departure
  3. candidates = available − occupied → return the smallest
  4. none left + admin      → first column past the occupied maximum (grid expands)
  5. none left + regular    → CapacityExceeded
"""
import logging
from collections import Counter
from dataclasses import dataclass
from typing import Optional

from tandem.bookings.errors import CapacityExceeded
from tandem.scheduling.capacity import available_pilot_count, reserved_seats
from tandem.scheduling.day import DaySchedule

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Placement:
    column: int
    overbooked: bool = False    # UI must warn: grid will expand


def occupied_columns(day: DaySchedule, time_index: int,
                     exclude_booking_id: Optional[str] = None) -> set[int]:
    taken = set()
    for b in day.bookings_at(time_index, exclude_booking_id):
        taken.update(b.columns)
    return taken


def available_columns(day: DaySchedule, time_index: int) -> set[int]:
    return {
        i for i in range(len(day.pilots))
        if day.is_column_available(i, time_index)
    }


def allocate_position(day: DaySchedule, time_index: int, span: int,
                      exclude_booking_id: Optional[str] = None,
                      privileged: bool = False) -> Placement:
    occupied = occupied_columns(day, time_index, exclude_booking_id)
    candidates = available_columns(day, time_index) - occupied

    if candidates:
        return Placement(column=min(candidates))

    if not privileged:
        free = max(0, available_pilot_count(day, time_index)
                   - reserved_seats(day, time_index, exclude_booking_id))
        raise CapacityExceeded(span, free)

    column = max(occupied) + 1 if occupied else 0
    logger.info("grid expansion at %s #%d: span %d placed at column %d",
                day.date, time_index, span, column)
    return Placement(column=column, overbooked=True)


# ── Grid layout ───────────────────────────────────────────────────────────────

def grid_columns(day: DaySchedule) -> int:
    """
    Column count for the day: every departure needs room for its booked seats
    plus its unavailable pilots. Never fewer than the pilot count, never 0.
    """
    width = len(day.pilots)
    for i, slot in enumerate(day.time_slots):
        booked = reserved_seats(day, i)
        unavailable = sum(
            1 for p in day.pilots
            if not day.availability.is_available(p.uid, day.date, slot)
        )
        width = max(width, booked + unavailable)
    return max(1, width)


def overbooked_positions(day: DaySchedule, time_index: int) -> dict[str, list[int]]:
    """
    booking id → seat numbers that sit past the available pilot count.
    Bookings are stacked in column order, like the grid renders them.
    """
    limit = available_pilot_count(day, time_index)
    result = {}
    position = 0
    for b in sorted(day.bookings_at(time_index), key=lambda b: (b.pilotIndex, b.id or "")):
        seats = [s for s in range(b.numberOfPeople) if position + s >= limit]
        if seats:
            result[b.id] = seats
        position += b.numberOfPeople
    return result


def pilot_flight_counts(day: DaySchedule) -> dict[str, int]:
    """displayName → flights assigned that day."""
    counts = Counter()
    for b in day.bookings.values():
        if b.bookingStatus.holds_seats:
            counts.update(b.named_pilots)
    return dict(counts)
