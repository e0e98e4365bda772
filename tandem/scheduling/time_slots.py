"""
Seasonal departure times.

The list of flight departures depends on the date; a booking's timeIndex is
an ordinal into the list for its own date.
"""
from datetime import date
from typing import Optional


AUTUMN = ["8:00", "9:15", "10:30", "12:00", "13:30", "14:45", "16:00"]   # Oct 11 – Nov, Feb
WINTER = ["8:30", "9:45", "11:00", "12:15", "13:45", "15:00"]            # Dec – Jan
MARCH = ["7:30", "8:30", "9:45", "11:00", "12:15", "13:45", "15:00", "16:00"]
SUMMER = ["7:30", "8:30", "9:45", "11:00", "12:30", "14:00", "15:30", "16:45"]  # Apr – Oct 10


def time_slots_for(d: date) -> list[str]:
    """date → ordered departure times for that day."""
    month, day = d.month, d.day

    if month == 10 and day >= 11:
        return list(AUTUMN)
    if month in (11, 2):
        return list(AUTUMN)
    if month in (12, 1):
        return list(WINTER)
    if month == 3:
        return list(MARCH)
    return list(SUMMER)


def time_slot_at(d: date, time_index: int) -> Optional[str]:
    """timeIndex → '9:45', or None when the index is outside the day's list."""
    slots = time_slots_for(d)
    if 0 <= time_index < len(slots):
        return slots[time_index]
    return None


def index_of(d: date, time_slot: str) -> int:
    """'9:45' → its timeIndex for the date, -1 if the day has no such departure."""
    slots = time_slots_for(d)
    return slots.index(time_slot) if time_slot in slots else -1
