"""
FastAPI app: schedule, capacity and booking endpoints:
  GET    /schedule/{day}
  GET    /capacity
  POST   /bookings                       POST /booking-requests (public form)
  GET    /bookings/{id}                  PATCH /bookings/{id}
  POST   /bookings/{id}/status           DELETE /bookings/{id}
  POST   /bookings/{id}/restore
  PUT    /bookings/{id}/seats/{seat}     PUT /bookings/{id}/payments
  POST   /bookings/{id}/confirmation-email
  POST   /availability/toggle            POST /availability/toggle-day

The caller is identified by X-User-Id / X-User-Name / X-User-Role headers,
issued by the auth layer in front of this service.
"""
import logging
import datetime as dt
from typing import Optional

from fastapi import FastAPI, Depends, HTTPException, Header
from pydantic import BaseModel
from sqlalchemy.orm import Session

from tandem.config import configure_logging, EMAIL_TIMEOUT_SECONDS
from tandem.database import get_db, init_db
from tandem.bookings import service
from tandem.bookings.errors import (
    SchedulingError, CapacityExceeded, PermissionDenied, BookingNotFound,
    InvalidTransition, InvalidAssignment, StoreUnavailable,
)
from tandem.bookings.permissions import Actor, can_manage_availability
from tandem.bookings.schemas import BookingCreate, BookingStatus
from tandem.notifications.email_queue import enqueue_confirmation, wait_for_delivery
from tandem.scheduling import capacity
from tandem.scheduling.allocator import grid_columns, overbooked_positions, pilot_flight_counts
from tandem.scheduling.availability import toggle_availability, toggle_day
from tandem.scheduling.day import load_day
from tandem.store.base import Store
from tandem.store.sql import SqlStore

logger = logging.getLogger(__name__)

app = FastAPI(title="Tandem Scheduling API", version="1.0.0")


@app.on_event("startup")
def startup():
    configure_logging()
    init_db()
    logger.info("[API] Database initialized")


# ── Dependencies ──────────────────────────────────────────────────────────────

def get_store(db: Session = Depends(get_db)) -> Store:
    return SqlStore(db)


def get_actor(
    x_user_id: str = Header(...),
    x_user_name: str = Header(""),
    x_user_role: Optional[str] = Header(None),
) -> Actor:
    return Actor(uid=x_user_id, name=x_user_name, role=x_user_role)


# ── Request bodies ────────────────────────────────────────────────────────────

class StatusChange(BaseModel):
    status: BookingStatus
    payPilots: Optional[bool] = None     # required for "no show"


class SeatAssignment(BaseModel):
    pilotUid: Optional[str] = None       # None empties the seat


class PaymentsBody(BaseModel):
    pilotPayments: list[dict]


class AvailabilityToggle(BaseModel):
    pilotUid: str
    date: dt.date
    timeSlot: str


class DayToggle(BaseModel):
    pilotUid: str
    date: dt.date
    timeSlots: Optional[list[str]] = None


class ConfirmationEmail(BaseModel):
    senderName: str = ""
    customMessage: str = ""
    wait: bool = False


# ── Endpoint 1: Schedule & capacity ───────────────────────────────────────────

@app.get("/schedule/{day}")
def schedule(day: dt.date, store: Store = Depends(get_store)):
    """
    Everything the grid renders for a date: departures, pilot columns,
    free seats per departure and overbooked seat positions.
    """
    try:
        snapshot = load_day(store, day)
    except SchedulingError as e:
        raise _to_http(e)

    free = capacity.available_slots_per_time(snapshot)
    return {
        "date": day.isoformat(),
        "time_slots": snapshot.time_slots,
        "pilots": [p.model_dump() for p in snapshot.pilots],
        "grid_columns": grid_columns(snapshot),
        "available_slots": free,
        "overbooked": {
            i: overbooked_positions(snapshot, i) for i in range(len(snapshot.time_slots))
        },
        "pilot_flight_counts": pilot_flight_counts(snapshot),
        "bookings": [
            b.model_dump(mode="json")
            for b in sorted(snapshot.bookings.values(), key=lambda b: (b.timeIndex, b.pilotIndex))
            if b.bookingStatus.holds_seats
        ],
        "deleted": [
            b.model_dump(mode="json") for b in snapshot.bookings.values()
            if b.bookingStatus == BookingStatus.DELETED
        ],
    }


@app.get("/capacity")
def capacity_at(
    day: dt.date,
    time_index: int,
    exclude_booking_id: Optional[str] = None,
    store: Store = Depends(get_store),
):
    try:
        snapshot = load_day(store, day)
    except SchedulingError as e:
        raise _to_http(e)
    if snapshot.time_slot(time_index) is None:
        raise HTTPException(status_code=400, detail=f"No departure #{time_index} on {day}")

    return {
        "date": day.isoformat(),
        "time_index": time_index,
        "time_slot": snapshot.time_slot(time_index),
        "available_slots": capacity.available_slots(snapshot, time_index, exclude_booking_id),
        "available_female_slots": capacity.available_female_slots(
            snapshot, time_index, exclude_booking_id
        ),
        "headcount_options": capacity.headcount_options(snapshot, time_index, exclude_booking_id),
    }


# ── Endpoint 2: Bookings ──────────────────────────────────────────────────────

@app.post("/bookings", status_code=201)
def create_booking(payload: BookingCreate, store: Store = Depends(get_store),
                   actor: Actor = Depends(get_actor)):
    try:
        result = service.create_booking(store, payload, actor)
    except SchedulingError as e:
        raise _to_http(e)
    return _result(result)


@app.post("/booking-requests", status_code=201)
def create_booking_request(payload: BookingCreate, store: Store = Depends(get_store)):
    """Public booking form: no role, never overbooks."""
    try:
        result = service.create_booking(store, payload, Actor(uid="public", name="Online"),
                                        public=True)
    except SchedulingError as e:
        raise _to_http(e)
    return _result(result)


@app.get("/bookings/{booking_id}")
def get_booking(booking_id: str, store: Store = Depends(get_store)):
    try:
        return service.get_booking(store, booking_id).model_dump(mode="json")
    except SchedulingError as e:
        raise _to_http(e)


@app.patch("/bookings/{booking_id}")
def update_booking(booking_id: str, changes: dict, pay_pilots: Optional[bool] = None,
                   store: Store = Depends(get_store), actor: Actor = Depends(get_actor)):
    try:
        result = service.update_booking(store, booking_id, changes, actor, pay_pilots=pay_pilots)
    except SchedulingError as e:
        raise _to_http(e)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return _result(result)


@app.post("/bookings/{booking_id}/status")
def change_status(booking_id: str, body: StatusChange, store: Store = Depends(get_store),
                  actor: Actor = Depends(get_actor)):
    try:
        if body.status == BookingStatus.DELETED:
            result = service.soft_delete(store, booking_id, actor)
        else:
            result = service.set_status(store, booking_id, body.status, actor,
                                        pay_pilots=body.payPilots)
    except SchedulingError as e:
        raise _to_http(e)
    return _result(result)


@app.delete("/bookings/{booking_id}")
def delete_booking(booking_id: str, store: Store = Depends(get_store),
                   actor: Actor = Depends(get_actor)):
    try:
        return _result(service.soft_delete(store, booking_id, actor))
    except SchedulingError as e:
        raise _to_http(e)


@app.post("/bookings/{booking_id}/restore")
def restore_booking(booking_id: str, store: Store = Depends(get_store),
                    actor: Actor = Depends(get_actor)):
    try:
        return _result(service.restore_booking(store, booking_id, actor))
    except SchedulingError as e:
        raise _to_http(e)


@app.put("/bookings/{booking_id}/seats/{seat}")
def assign_seat(booking_id: str, seat: int, body: SeatAssignment,
                store: Store = Depends(get_store), actor: Actor = Depends(get_actor)):
    try:
        return _result(service.assign_seat(store, booking_id, seat, body.pilotUid, actor))
    except SchedulingError as e:
        raise _to_http(e)


@app.put("/bookings/{booking_id}/payments")
def save_payments(booking_id: str, body: PaymentsBody, store: Store = Depends(get_store),
                  actor: Actor = Depends(get_actor)):
    try:
        return _result(service.save_payments(store, booking_id, body.pilotPayments, actor))
    except SchedulingError as e:
        raise _to_http(e)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))


@app.post("/bookings/{booking_id}/confirmation-email", status_code=202)
def send_confirmation(booking_id: str, body: ConfirmationEmail,
                      store: Store = Depends(get_store), actor: Actor = Depends(get_actor)):
    """Queue the confirmation; with wait=true, report the worker's outcome."""
    try:
        booking = service.get_booking(store, booking_id)
        queue_id = enqueue_confirmation(store, booking, body.senderName, body.customMessage)
    except SchedulingError as e:
        raise _to_http(e)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    response = {"queue_id": queue_id, "status": "pending", "error": None}
    if body.wait:
        status, error = wait_for_delivery(store, queue_id, EMAIL_TIMEOUT_SECONDS)
        response.update(status=status.value, error=error)
    return response


# ── Endpoint 3: Availability ──────────────────────────────────────────────────

@app.post("/availability/toggle")
def availability_toggle(body: AvailabilityToggle, store: Store = Depends(get_store),
                        actor: Actor = Depends(get_actor)):
    if not can_manage_availability(actor, body.pilotUid):
        raise HTTPException(status_code=403, detail="Not allowed to change this availability")
    try:
        available = toggle_availability(store, body.pilotUid, body.date, body.timeSlot, actor)
    except SchedulingError as e:
        raise _to_http(e)
    return {"pilotUid": body.pilotUid, "date": body.date.isoformat(),
            "timeSlot": body.timeSlot, "available": available}


@app.post("/availability/toggle-day")
def availability_toggle_day(body: DayToggle, store: Store = Depends(get_store),
                            actor: Actor = Depends(get_actor)):
    if not can_manage_availability(actor, body.pilotUid):
        raise HTTPException(status_code=403, detail="Not allowed to change this availability")
    try:
        available = toggle_day(store, body.pilotUid, body.date, body.timeSlots, actor)
    except SchedulingError as e:
        raise _to_http(e)
    return {"pilotUid": body.pilotUid, "date": body.date.isoformat(), "available": available}


# ── Helpers ───────────────────────────────────────────────────────────────────

def _result(result: service.SaveResult) -> dict:
    return {
        "booking": result.booking.model_dump(mode="json"),
        "changed": sorted(result.update.to_partial()) if result.update else [],
        "overbooked": result.overbooked,
        "warnings": result.warnings,
    }


def _to_http(e: SchedulingError) -> HTTPException:
    """Map the engine's error taxonomy onto status codes."""
    if isinstance(e, CapacityExceeded):
        code = 409
    elif isinstance(e, PermissionDenied):
        code = 403
    elif isinstance(e, BookingNotFound):
        code = 404
    elif isinstance(e, (InvalidTransition, InvalidAssignment)):
        code = 400
    elif isinstance(e, StoreUnavailable):
        code = 503
    else:
        code = 500
    logger.info("request rejected (%d): %s", code, e)
    return HTTPException(status_code=code, detail=str(e))


# ── Health check ──────────────────────────────────────────────────────────────

@app.get("/")
def root():
    return {
        "service": "Tandem Scheduling API",
        "version": "1.0.0",
        "endpoints": ["/schedule/{day}", "/capacity", "/bookings", "/availability/toggle"],
    }
