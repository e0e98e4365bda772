"""
Document schemas for bookings, pilots and payments.

Field names are camelCase so a model dumps straight into the store document
it was read from. Unknown document keys (driver, vehicle, ...) are kept.
"""
import datetime as dt
from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class BookingStatus(str, Enum):
    UNCONFIRMED = "unconfirmed"
    CONFIRMED = "confirmed"
    PENDING = "pending"
    CANCELLED = "cancelled"
    NO_SHOW = "no show"
    DELETED = "deleted"

    @property
    def holds_seats(self) -> bool:
        """Cancelled and deleted bookings do not count against capacity."""
        return self not in (BookingStatus.CANCELLED, BookingStatus.DELETED)


class PaymentMethod(str, Enum):
    DIREKT = "direkt"
    TICKET = "ticket"
    CCP = "ccp"


class HistoryAction(str, Enum):
    CREATED = "created"
    EDITED = "edited"
    MOVED = "moved"
    DELETED = "deleted"
    RESTORED = "restored"
    STATUS_CHANGED = "status_changed"
    PILOT_ASSIGNED = "pilot_assigned"
    PILOT_UNASSIGNED = "pilot_unassigned"


class Pilot(BaseModel):
    uid: str
    displayName: str = "Unknown Pilot"
    femalePilot: bool = False
    priority: Optional[int] = None


class ReceiptFile(BaseModel):
    filename: str
    url: Optional[str] = None
    data: Optional[str] = None      # legacy base64 upload


class PilotPayment(BaseModel):
    pilotName: str
    amount: Optional[float] = None  # None = not entered yet
    paymentMethod: PaymentMethod = PaymentMethod.DIREKT
    receiptFiles: list[ReceiptFile] = Field(default_factory=list)


class HistoryEntry(BaseModel):
    action: HistoryAction
    userId: str = ""
    userName: str = ""
    timestamp: dt.datetime
    details: Optional[str] = None


class Booking(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None
    date: dt.date
    timeIndex: int = Field(ge=0)
    pilotIndex: int = Field(default=0, ge=0)
    numberOfPeople: int = Field(ge=1)
    span: int = 0
    assignedPilots: list[str] = Field(default_factory=list)
    bookingStatus: BookingStatus = BookingStatus.UNCONFIRMED
    pilotPayments: list[PilotPayment] = Field(default_factory=list)
    femalePilotsRequired: int = Field(default=0, ge=0)

    commission: Optional[float] = None
    commissionStatus: Optional[Literal["paid", "unpaid"]] = None
    flightType: Optional[Literal["sensational", "classic", "early bird"]] = None

    customerName: Optional[str] = None
    phoneNumber: Optional[str] = None
    email: Optional[str] = None
    pickupLocation: Optional[str] = None
    bookingSource: str = ""
    notes: Optional[str] = None

    createdBy: Optional[str] = None
    createdByName: Optional[str] = None
    createdAt: Optional[dt.datetime] = None
    deletedBy: Optional[str] = None
    deletedByName: Optional[str] = None
    deletedAt: Optional[dt.datetime] = None

    history: list[HistoryEntry] = Field(default_factory=list)

    @model_validator(mode="after")
    def _seat_list_matches_party(self):
        # span mirrors numberOfPeople; one seat string per passenger
        self.span = self.numberOfPeople
        seats = list(self.assignedPilots[:self.numberOfPeople])
        seats += [""] * (self.numberOfPeople - len(seats))
        self.assignedPilots = seats
        return self

    @property
    def columns(self) -> range:
        """Grid columns occupied at (date, timeIndex)."""
        return range(self.pilotIndex, self.pilotIndex + self.numberOfPeople)

    @property
    def named_pilots(self) -> list[str]:
        return [p for p in self.assignedPilots if p]

    def to_doc(self) -> dict:
        return self.model_dump(mode="json", exclude={"id"})

    @classmethod
    def from_doc(cls, doc: dict) -> "Booking":
        return cls.model_validate(doc)


class BookingUpdate(BaseModel):
    """Sparse update: only the fields that differ from the persisted booking."""
    model_config = ConfigDict(extra="allow")

    date: Optional[dt.date] = None
    timeIndex: Optional[int] = None
    pilotIndex: Optional[int] = None
    numberOfPeople: Optional[int] = None
    span: Optional[int] = None
    assignedPilots: Optional[list[str]] = None
    bookingStatus: Optional[BookingStatus] = None
    pilotPayments: Optional[list[PilotPayment]] = None
    femalePilotsRequired: Optional[int] = None
    commission: Optional[float] = None
    commissionStatus: Optional[Literal["paid", "unpaid"]] = None
    flightType: Optional[Literal["sensational", "classic", "early bird"]] = None
    customerName: Optional[str] = None
    phoneNumber: Optional[str] = None
    email: Optional[str] = None
    pickupLocation: Optional[str] = None
    bookingSource: Optional[str] = None
    notes: Optional[str] = None
    deletedBy: Optional[str] = None
    deletedByName: Optional[str] = None
    deletedAt: Optional[dt.datetime] = None
    history: Optional[list[HistoryEntry]] = None

    def to_partial(self) -> dict:
        return self.model_dump(mode="json", exclude_unset=True)

    def __bool__(self) -> bool:
        return bool(self.model_fields_set) or bool(self.model_extra)


class BookingCreate(BaseModel):
    """Payload of a staff or public booking submission."""
    date: dt.date
    timeIndex: int = Field(ge=0)
    numberOfPeople: int = Field(ge=1)
    customerName: Optional[str] = None
    phoneNumber: Optional[str] = None
    email: Optional[str] = None
    pickupLocation: Optional[str] = None
    bookingSource: Optional[str] = None
    notes: Optional[str] = None
    femalePilotsRequired: int = Field(default=0, ge=0)
    flightType: Optional[Literal["sensational", "classic", "early bird"]] = None
    commission: Optional[float] = None
    assignedPilots: list[str] = Field(default_factory=list)
