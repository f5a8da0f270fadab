from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional

from pydantic import BaseModel


class BookingStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


ALLOWED_TRANSITIONS: Dict[BookingStatus, FrozenSet[BookingStatus]] = {
    BookingStatus.PENDING: frozenset({BookingStatus.CONFIRMED, BookingStatus.CANCELLED}),
    BookingStatus.CONFIRMED: frozenset({BookingStatus.COMPLETED, BookingStatus.CANCELLED}),
    BookingStatus.COMPLETED: frozenset(),
    BookingStatus.CANCELLED: frozenset(),
}

# Column stamped when a booking enters the status
STATUS_TIMESTAMP_FIELDS = {
    BookingStatus.CONFIRMED: "confirmed_at",
    BookingStatus.COMPLETED: "completed_at",
    BookingStatus.CANCELLED: "cancelled_at",
}

RESCHEDULABLE_STATUSES = frozenset({BookingStatus.PENDING, BookingStatus.CONFIRMED})


def can_transition(current: BookingStatus, target: BookingStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


# Request bodies stay permissive; field-level rules live in app.core.validation
# so the 400 message can name the offending field.

class BookingCreate(BaseModel):
    patient_name: Optional[str] = None
    patient_phone: Optional[str] = None
    patient_address: Optional[str] = None
    patient_notes: Optional[str] = None
    appointment_date: Optional[str] = None
    appointment_time: Optional[str] = None
    selected_services: Optional[List[Dict[str, Any]]] = None


class StatusUpdate(BaseModel):
    status: Optional[str] = None


class RescheduleRequest(BaseModel):
    appointment_date: Optional[str] = None
    appointment_time: Optional[str] = None
    phone: Optional[str] = None
