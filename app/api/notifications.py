from typing import Optional

from fastapi import APIRouter, Body, Depends
from fastapi.responses import JSONResponse

from app.core.constants import SUCCESS_MESSAGES
from app.core.security import require_admin
from app.models.auth import Principal
from app.models.notification import NotificationCreate, PhoneBody
from app.services.notification_service import notification_service
from app.utils.helpers import create_response

router = APIRouter(prefix="/notifications")


@router.get("/phone/{phone}")
async def list_notifications(phone: str, status: Optional[str] = None, limit: Optional[int] = None):
    notifications = await notification_service.list_for_phone(phone, status, limit)
    return create_response(data=notifications, count=len(notifications))


@router.get("/phone/{phone}/unread-count")
async def unread_count(phone: str):
    return create_response(data={"count": await notification_service.unread_count(phone)})


@router.put("/phone/{phone}/read-all")
async def mark_all_read(phone: str):
    count = await notification_service.mark_all_read(phone)
    return create_response(data={"count": count}, message=SUCCESS_MESSAGES["NOTIFICATIONS_READ"])


@router.put("/{notification_id}/read")
async def mark_read(notification_id: str, req: Optional[PhoneBody] = Body(None)):
    notification = await notification_service.mark_read(notification_id, req.phone if req else None)
    return create_response(data=notification, message=SUCCESS_MESSAGES["NOTIFICATION_READ"])


@router.delete("/{notification_id}")
async def delete_notification(notification_id: str, req: Optional[PhoneBody] = Body(None)):
    await notification_service.delete(notification_id, req.phone if req else None)
    return create_response(message=SUCCESS_MESSAGES["NOTIFICATION_DELETED"])


@router.post("", status_code=201)
async def create_notification(req: NotificationCreate, admin: Principal = Depends(require_admin)):
    notification_id = await notification_service.create(req.model_dump())
    return JSONResponse(
        status_code=201,
        content=create_response(
            data={"notification_id": notification_id},
            message=SUCCESS_MESSAGES["NOTIFICATION_CREATED"],
        ),
    )
