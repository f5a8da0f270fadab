from typing import Any, Dict, List, Optional

from app.core.constants import ERROR_MESSAGES, PAGINATION, STATUS_NOTIFICATIONS
from app.core.exceptions import ClinicError, ForbiddenError, NotFoundError, ValidationError
from app.core.logger import logger
from app.core.validation import is_valid_uuid, sanitize_phone, sanitize_string
from app.models.notification import NotificationType
from app.services.db_service import db_service
from app.utils.helpers import utc_now_iso

NOTIFICATION_REQUIRED_FIELDS = ["user_phone", "type", "title", "message"]


class NotificationService:
    """Patient notifications, keyed by phone number."""

    async def list_for_phone(self, phone: str, status: Optional[str] = None, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        limit = min(max(limit or PAGINATION["DEFAULT_LIMIT"], 1), PAGINATION["MAX_LIMIT"])
        if status not in (None, "read", "unread"):
            raise ValidationError(ERROR_MESSAGES["INVALID_STATUS"], field="status")
        return await db_service.list_notifications(sanitize_phone(phone), status, limit)

    async def unread_count(self, phone: str) -> int:
        return await db_service.count_unread_notifications(sanitize_phone(phone))

    async def _owned(self, notification_id: str, phone: Optional[str]) -> Dict[str, Any]:
        if not phone:
            raise ValidationError(ERROR_MESSAGES["PHONE_REQUIRED"], field="phone", required=["phone"])
        if not is_valid_uuid(notification_id):
            raise ValidationError(ERROR_MESSAGES["INVALID_NOTIFICATION_ID"], field="id")

        notification = await db_service.get_notification(notification_id)
        if not notification or notification.get("is_deleted"):
            raise NotFoundError(ERROR_MESSAGES["NOTIFICATION_NOT_FOUND"], resource_id=notification_id)

        if notification["user_phone"] != sanitize_phone(phone):
            logger.warning(f"⛔ Notification {notification_id} accessed with a foreign phone number")
            raise ForbiddenError(ERROR_MESSAGES["NOTIFICATION_ACCESS_DENIED"], code="FORBIDDEN")
        return notification

    async def mark_read(self, notification_id: str, phone: Optional[str]) -> Dict[str, Any]:
        await self._owned(notification_id, phone)
        updated = await db_service.update_notification(
            notification_id, {"is_read": True, "read_at": utc_now_iso()}
        )
        if not updated:
            raise NotFoundError(ERROR_MESSAGES["NOTIFICATION_NOT_FOUND"], resource_id=notification_id)
        return updated

    async def mark_all_read(self, phone: str) -> int:
        count = await db_service.mark_all_notifications_read(sanitize_phone(phone))
        logger.info(f"📬 Marked {count} notification(s) as read")
        return count

    async def delete(self, notification_id: str, phone: Optional[str]) -> None:
        await self._owned(notification_id, phone)
        await db_service.update_notification(notification_id, {"is_deleted": True})

    async def create(self, payload: Dict[str, Any]) -> Any:
        missing = [field for field in NOTIFICATION_REQUIRED_FIELDS if not payload.get(field)]
        if missing:
            raise ValidationError(
                ERROR_MESSAGES["INCOMPLETE_DATA"],
                field=missing[0],
                required=NOTIFICATION_REQUIRED_FIELDS,
            )

        try:
            notification_type = NotificationType(payload["type"])
        except ValueError:
            raise ValidationError(ERROR_MESSAGES["INVALID_NOTIFICATION_TYPE"], field="type")

        notification_id = await db_service.create_notification(
            sanitize_phone(payload["user_phone"]),
            notification_type.value,
            sanitize_string(payload["title"]),
            sanitize_string(payload["message"]),
            payload.get("booking_id"),
        )
        logger.info(f"🔔 Notification {notification_id} ({notification_type.value}) created")
        return notification_id

    async def notify_booking(self, booking: Dict[str, Any], event: str) -> None:
        """
        Creates the patient notification for a booking event
        (confirmed / completed / cancelled / rescheduled).

        Best effort: a failure is logged and never reaches the caller.
        """
        template = STATUS_NOTIFICATIONS.get(event)
        if not template:
            return

        title, message = template
        try:
            await db_service.create_notification(
                booking["patient_phone"],
                f"booking_{event}",
                title,
                message.format(
                    booking_id=booking["id"],
                    date=booking.get("appointment_date", ""),
                    time=str(booking.get("appointment_time", ""))[:5],
                ),
                booking["id"],
            )
        except ClinicError as e:
            logger.warning(f"⚠️ Notification for booking {booking.get('id')} ({event}) not created: {e.message}")


notification_service = NotificationService()
