"""
Error taxonomy for the booking engine.

Validation errors (capacity, staleness, permissions, transitions) are raised
before anything touches the store. StoreUnavailable wraps backing-store
failures; callers keep their draft and may retry.
"""


class SchedulingError(Exception):
    """Base class for every error the booking engine raises."""


class CapacityExceeded(SchedulingError):
    def __init__(self, requested: int, available: int):
        self.requested = requested
        self.available = available
        seats = "slot is" if available == 1 else "slots are"
        super().__init__(
            f"Cannot book {requested} passenger(s). "
            f"Only {available} {seats} available at this time."
        )


class StaleAvailability(CapacityExceeded):
    """Capacity was enough when the editor opened but another client took it."""

    def __init__(self, requested: int, available: int):
        super().__init__(requested, available)
        self.args = (
            f"Availability changed: {requested} passenger(s) requested, "
            f"{available} slot(s) left.",
        )


class PermissionDenied(SchedulingError):
    pass


class InvalidTransition(SchedulingError):
    pass


class BookingNotFound(SchedulingError):
    def __init__(self, booking_id: str):
        self.booking_id = booking_id
        super().__init__(f"Booking {booking_id} not found")


class StoreUnavailable(SchedulingError):
    pass


class InvalidAssignment(SchedulingError):
    """Pilot cannot take that seat (double-booked, wrong seat, not available)."""
