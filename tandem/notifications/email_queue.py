"""
Outbound booking-confirmation queue.

The core never sends mail. It writes an `emailQueue` record with status
"pending"; an external worker delivers it and flips the status to "sent" or
"failed". wait_for_delivery() watches that record so the initiating user
can be told how it went.
"""
import logging
import threading
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from tandem.config import EMAIL_TIMEOUT_SECONDS
from tandem.bookings.schemas import Booking
from tandem.scheduling.time_slots import time_slot_at
from tandem.store.base import Store, EMAIL_QUEUE

logger = logging.getLogger(__name__)


class DeliveryStatus(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"


def enqueue_confirmation(store: Store, booking: Booking, sender_name: str = "",
                         custom_message: str = "") -> str:
    """Queue a confirmation for the booking's customer. Returns the queue record id."""
    if not booking.email:
        raise ValueError("Booking has no customer email address")

    record = {
        "type": "bookingConfirmation",
        "to": booking.email,
        "customerName": booking.customerName,
        "numberOfPeople": booking.numberOfPeople,
        "date": booking.date.isoformat(),
        "time": time_slot_at(booking.date, booking.timeIndex),
        "pickupLocation": booking.pickupLocation,
        "senderName": sender_name,
        "customMessage": custom_message,
        "status": DeliveryStatus.PENDING.value,
        "createdAt": datetime.now(timezone.utc).isoformat(),
    }
    queue_id = store.add(EMAIL_QUEUE, record)
    logger.info("queued confirmation %s for booking %s", queue_id, booking.id)
    return queue_id


def wait_for_delivery(store: Store, queue_id: str,
                      timeout: float = EMAIL_TIMEOUT_SECONDS) -> tuple[DeliveryStatus, Optional[str]]:
    """
    Block until the queue record reaches sent/failed, or `timeout` seconds.
    Returns (status, error message). On timeout the status is still PENDING:
    the mail may yet go out.
    """
    done = threading.Event()
    outcome: dict = {}

    def _watch(doc_id: str, doc: Optional[dict]):
        if doc is None:
            return
        status = doc.get("status")
        if status in (DeliveryStatus.SENT.value, DeliveryStatus.FAILED.value):
            outcome["status"] = DeliveryStatus(status)
            outcome["error"] = doc.get("error")
            done.set()

    unsubscribe = store.subscribe(EMAIL_QUEUE, _watch, doc_id=queue_id)
    try:
        current = store.get(EMAIL_QUEUE, queue_id)
        if current is not None:
            _watch(queue_id, current)
        if not done.wait(timeout):
            logger.warning("confirmation %s still pending after %.0fs", queue_id, timeout)
            return DeliveryStatus.PENDING, "Email sending timed out. Please check if it was received."
    finally:
        unsubscribe()

    if outcome["status"] == DeliveryStatus.FAILED:
        logger.error("confirmation %s failed: %s", queue_id, outcome.get("error"))
        return DeliveryStatus.FAILED, outcome.get("error") or "Failed to send email."
    return DeliveryStatus.SENT, None


def mark_delivery(store: Store, queue_id: str, status: DeliveryStatus,
                  error: Optional[str] = None):
    """Worker-side status update."""
    partial = {"status": status.value}
    if error:
        partial["error"] = error
    store.update(EMAIL_QUEUE, queue_id, partial)
