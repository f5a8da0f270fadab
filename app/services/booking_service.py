from datetime import date
from typing import Any, Dict, List, Optional, Tuple

from app.core.constants import (
    BOOKING_HISTORY_LIMIT,
    BOOKING_ID_ATTEMPTS,
    BOOKING_PHONE_DATE_CONSTRAINT,
    BOOKING_PRIMARY_KEY_CONSTRAINT,
    BOOKING_SORT_FIELDS,
    DEFAULT_PATIENT_NOTES,
    ERROR_MESSAGES,
    PAGINATION,
)
from app.core.exceptions import (
    ConflictError,
    DatabaseError,
    ForbiddenError,
    NotFoundError,
    UniqueViolationError,
    ValidationError,
)
from app.core.logger import logger
from app.core.validation import (
    is_valid_date,
    is_valid_name,
    is_valid_time,
    missing_fields,
    parse_date,
    sanitize_phone,
    validate_booking_payload,
)
from app.models.booking import (
    RESCHEDULABLE_STATUSES,
    STATUS_TIMESTAMP_FIELDS,
    BookingStatus,
    can_transition,
)
from app.services.db_service import BOOKING_CHECK_COLUMNS, db_service
from app.services.notification_service import notification_service
from app.utils.helpers import (
    create_pagination_meta,
    extract_price,
    format_local,
    format_price,
    generate_booking_id,
    local_to_utc,
    utc_now_iso,
)

RESCHEDULE_REQUIRED_FIELDS = ["appointment_date", "appointment_time", "phone"]


def _duplicate_booking() -> ConflictError:
    return ConflictError(ERROR_MESSAGES["DUPLICATE_BOOKING"], code="DUPLICATE_BOOKING")


class BookingService:
    async def create_booking(self, payload: Dict[str, Any], today: Optional[date] = None) -> Dict[str, Any]:
        """
        Validates, de-duplicates and stores a booking with its line items.

        The (phone, date) unique constraint is the authoritative duplicate check;
        the lookup before the insert only avoids a wasted round-trip.
        """
        data = validate_booking_payload(payload, today=today)
        phone = data["patient_phone"]
        day = data["appointment_date"]
        clock = data["appointment_time"]

        if not is_valid_name(data["patient_name"]):
            logger.info(f"ℹ️ Single-word patient name on booking request: '{data['patient_name']}'")

        if await db_service.find_booking_on_date(phone, day):
            logger.warning(f"⚠️ Duplicate booking attempt for {phone} on {day}")
            raise _duplicate_booking()

        appointment_datetime = local_to_utc(day, clock).isoformat()
        services = data["selected_services"]
        total_price = sum(extract_price(item["price"]) for item in services)

        logger.info(f"📥 Booking Request - Date: {day}, Time: {clock}, Services: {len(services)}")

        booking_id = None
        for attempt in range(1, BOOKING_ID_ATTEMPTS + 1):
            booking_id = generate_booking_id()
            record = {
                "id": booking_id,
                "patient_name": data["patient_name"],
                "patient_phone": phone,
                "patient_address": data["patient_address"],
                "patient_notes": data["patient_notes"] or DEFAULT_PATIENT_NOTES,
                "appointment_date": day,
                "appointment_time": clock,
                "appointment_datetime": appointment_datetime,
                "status": BookingStatus.PENDING.value,
                "total_price": total_price,
            }
            line_items = [
                {
                    "booking_id": booking_id,
                    "service_id": item["id"],
                    "service_name": item["name"],
                    "service_price": item["price"],
                    "price_numeric": extract_price(item["price"]),
                }
                for item in services
            ]
            try:
                await db_service.create_booking_with_services(record, line_items)
                break
            except UniqueViolationError as e:
                if e.constraint == BOOKING_PHONE_DATE_CONSTRAINT:
                    logger.warning(f"⚠️ Duplicate booking for {phone} on {day} caught by unique constraint")
                    raise _duplicate_booking() from e
                if e.constraint == BOOKING_PRIMARY_KEY_CONSTRAINT and attempt < BOOKING_ID_ATTEMPTS:
                    logger.warning(f"🔁 Booking id {booking_id} collided, retrying ({attempt}/{BOOKING_ID_ATTEMPTS})")
                    continue
                raise

        booking = await db_service.get_booking(booking_id)
        if not booking:
            raise DatabaseError(context={"operation": "create_booking", "booking_id": booking_id})

        logger.info(f"✅ Booking {booking_id} created (total {total_price})")
        return booking

    async def list_bookings(
        self,
        status: Optional[str] = None,
        day: Optional[str] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
        sort_by: Optional[str] = None,
        sort_order: Optional[str] = None,
    ) -> Tuple[List[Dict[str, Any]], Dict[str, Any]]:
        if status:
            try:
                status = BookingStatus(status).value
            except ValueError:
                raise ValidationError(ERROR_MESSAGES["INVALID_STATUS"], field="status")

        if day:
            parsed = parse_date(day)
            if parsed is None:
                raise ValidationError(ERROR_MESSAGES["INVALID_DATE"], field="date")
            day = parsed.isoformat()

        sort_by = sort_by or "created_at"
        if sort_by not in BOOKING_SORT_FIELDS:
            raise ValidationError(ERROR_MESSAGES["INVALID_SORT_FIELD"], field="sortBy")
        sort_order = "asc" if (sort_order or "").lower() == "asc" else "desc"

        limit = PAGINATION["DEFAULT_LIMIT"] if limit is None else limit
        limit = min(max(limit, 1), PAGINATION["MAX_LIMIT"])
        offset = max(offset or PAGINATION["DEFAULT_OFFSET"], 0)

        bookings, total = await db_service.list_bookings(status, day, limit, offset, sort_by, sort_order)
        return bookings, create_pagination_meta(total, limit, offset)

    async def get_booking(self, booking_id: str) -> Dict[str, Any]:
        booking = await db_service.get_booking(booking_id)
        if not booking:
            raise NotFoundError(ERROR_MESSAGES["BOOKING_NOT_FOUND"], resource_id=booking_id)

        if booking.get("appointment_datetime"):
            booking["appointment_datetime_local"] = format_local(booking["appointment_datetime"])
        booking["total_price_formatted"] = format_price(booking.get("total_price") or 0)
        return booking

    async def check_booking(self, booking_id: str) -> Dict[str, Any]:
        booking = await db_service.get_booking(booking_id, columns=BOOKING_CHECK_COLUMNS)
        if not booking:
            raise NotFoundError(ERROR_MESSAGES["BOOKING_NOT_FOUND"], resource_id=booking_id)
        return booking

    async def booking_history(self, phone: str) -> List[Dict[str, Any]]:
        return await db_service.get_booking_history(sanitize_phone(phone), BOOKING_HISTORY_LIMIT)

    async def update_status(self, booking_id: str, status: Optional[str]) -> Dict[str, Any]:
        try:
            target = BookingStatus(status)
        except ValueError:
            raise ValidationError(ERROR_MESSAGES["INVALID_STATUS"], field="status")

        booking = await db_service.get_booking(booking_id)
        if not booking:
            raise NotFoundError(ERROR_MESSAGES["BOOKING_NOT_FOUND"], resource_id=booking_id)

        current = BookingStatus(booking["status"])
        if not can_transition(current, target):
            logger.warning(f"⛔ Booking {booking_id}: transition {current.value} -> {target.value} refused")
            raise ConflictError(
                ERROR_MESSAGES["INVALID_STATUS_TRANSITION"],
                code="INVALID_STATUS_TRANSITION",
                context={"from": current.value, "to": target.value},
            )

        changes = {"status": target.value, STATUS_TIMESTAMP_FIELDS[target]: utc_now_iso()}
        updated = await db_service.update_booking(booking_id, changes, expected_status=current.value, admin=True)
        if not updated:
            # Another request moved the booking away from `current` first
            raise ConflictError(ERROR_MESSAGES["STATUS_CHANGED"], code="INVALID_STATUS_TRANSITION")

        logger.info(f"✅ Booking {booking_id}: {current.value} -> {target.value}")
        await notification_service.notify_booking({**booking, **updated}, target.value)
        return updated

    async def reschedule(
        self,
        booking_id: str,
        appointment_date: Optional[str],
        appointment_time: Optional[str],
        phone: Optional[str],
        today: Optional[date] = None,
    ) -> Dict[str, Any]:
        request = {"appointment_date": appointment_date, "appointment_time": appointment_time, "phone": phone}
        missing = missing_fields(request, RESCHEDULE_REQUIRED_FIELDS)
        if missing:
            raise ValidationError(
                ERROR_MESSAGES["RESCHEDULE_FIELDS_REQUIRED"],
                field=missing[0],
                required=RESCHEDULE_REQUIRED_FIELDS,
            )

        phone = sanitize_phone(phone)
        booking = await db_service.get_booking(booking_id)
        # Same answer for an unknown id and a foreign phone
        if not booking or booking["patient_phone"] != phone:
            logger.warning(f"⛔ Reschedule of booking {booking_id} refused: not found or phone mismatch")
            raise ForbiddenError(ERROR_MESSAGES["BOOKING_ACCESS_DENIED"], code="FORBIDDEN")

        current = BookingStatus(booking["status"])
        if current not in RESCHEDULABLE_STATUSES:
            raise ConflictError(ERROR_MESSAGES["BOOKING_LOCKED"], code="BOOKING_LOCKED")

        if not is_valid_date(appointment_date, today=today):
            raise ValidationError(ERROR_MESSAGES["INVALID_DATE"], field="appointment_date")
        if not is_valid_time(appointment_time):
            raise ValidationError(ERROR_MESSAGES["INVALID_TIME"], field="appointment_time")

        day = parse_date(appointment_date).isoformat()
        clock = appointment_time.strip()[:5]

        if await db_service.find_booking_on_date(phone, day, exclude_id=booking_id):
            raise _duplicate_booking()

        changes = {
            "appointment_date": day,
            "appointment_time": clock,
            "appointment_datetime": local_to_utc(day, clock).isoformat(),
        }
        try:
            updated = await db_service.update_booking(booking_id, changes, expected_status=current.value)
        except UniqueViolationError as e:
            if e.constraint == BOOKING_PHONE_DATE_CONSTRAINT:
                raise _duplicate_booking() from e
            raise
        if not updated:
            raise ConflictError(ERROR_MESSAGES["STATUS_CHANGED"], code="BOOKING_LOCKED")

        logger.info(f"📅 Booking {booking_id} rescheduled to {day} {clock}")
        await notification_service.notify_booking({**booking, **updated}, "rescheduled")
        return updated

    async def delete_booking(self, booking_id: str) -> None:
        if not await db_service.delete_booking(booking_id):
            raise NotFoundError(ERROR_MESSAGES["BOOKING_NOT_FOUND"], resource_id=booking_id)


booking_service = BookingService()
