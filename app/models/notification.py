from enum import Enum
from typing import Optional

from pydantic import BaseModel


class NotificationType(str, Enum):
    BOOKING_CREATED = "booking_created"
    BOOKING_CONFIRMED = "booking_confirmed"
    BOOKING_COMPLETED = "booking_completed"
    BOOKING_CANCELLED = "booking_cancelled"
    BOOKING_RESCHEDULED = "booking_rescheduled"
    REMINDER = "reminder"
    PROMO = "promo"
    SYSTEM = "system"


class NotificationCreate(BaseModel):
    user_phone: Optional[str] = None
    type: Optional[str] = None
    title: Optional[str] = None
    message: Optional[str] = None
    booking_id: Optional[str] = None


class PhoneBody(BaseModel):
    phone: Optional[str] = None
