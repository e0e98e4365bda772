"""
Edit-session gate and the live/draft booking buffer.

The coordinator is one object per client session, injected wherever the grid
or an editor needs it. While it is editing, store pushes still refresh the
`live` copy of a booking but never overwrite the user's `draft`; they are
only counted so the UI can say "N updates arrived while you were editing".

Local only: it does not stop another client from writing the same booking.
Conflicts resolve last-write-wins in the store.
"""
import logging
from contextlib import contextmanager
from typing import Optional

from tandem.bookings.schemas import Booking

logger = logging.getLogger(__name__)


class SessionCoordinator:

    def __init__(self):
        self._editing = False
        self.pending_updates = 0

    @property
    def is_editing(self) -> bool:
        return self._editing

    def begin(self):
        if self._editing:
            logger.warning("edit session already active")
        self._editing = True
        logger.info("editing started, pausing live updates")

    def end(self):
        self._editing = False
        self.pending_updates = 0
        logger.info("editing stopped, resuming live updates")

    def note_pending_update(self):
        self.pending_updates += 1

    def clear_pending_updates(self):
        self.pending_updates = 0

    @contextmanager
    def editing(self):
        self.begin()
        try:
            yield self
        finally:
            self.end()


class BookingBuffer:
    """
    Two read models of one booking:
      live:  always the latest store state (None once the document is gone)
      draft: what the user edits; follows live only outside edit sessions
    """

    def __init__(self, coordinator: SessionCoordinator, booking: Booking):
        self.coordinator = coordinator
        self.live: Optional[Booking] = booking
        self.draft: Booking = booking.model_copy(deep=True)

    def on_store_change(self, doc_id: str, doc: Optional[dict]):
        self.live = Booking.from_doc(doc) if doc is not None else None
        if self.coordinator.is_editing:
            self.coordinator.note_pending_update()
            return
        if self.live is not None:
            self.draft = self.live.model_copy(deep=True)

    @property
    def bound(self) -> Optional[Booking]:
        """The model the UI should render right now."""
        return self.draft if self.coordinator.is_editing else self.live

    def reset_draft(self, booking: Optional[Booking] = None):
        source = booking or self.live
        if source is not None:
            self.draft = source.model_copy(deep=True)
