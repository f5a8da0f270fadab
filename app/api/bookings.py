from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from app.core.constants import SUCCESS_MESSAGES
from app.core.rate_limit import rate_limit
from app.core.security import require_admin
from app.models.auth import Principal
from app.models.booking import BookingCreate, RescheduleRequest, StatusUpdate
from app.services.booking_service import booking_service
from app.utils.helpers import create_response

router = APIRouter(prefix="/bookings")


@router.post("", status_code=201, dependencies=[Depends(rate_limit("booking"))])
async def create_booking(req: BookingCreate):
    booking = await booking_service.create_booking(req.model_dump())
    return JSONResponse(
        status_code=201,
        content=create_response(data=booking, message=SUCCESS_MESSAGES["BOOKING_CREATED"]),
    )


@router.get("")
async def list_bookings(
    status: Optional[str] = None,
    date: Optional[str] = None,
    limit: Optional[int] = None,
    offset: Optional[int] = None,
    sort_by: Optional[str] = Query(None, alias="sortBy"),
    sort_order: Optional[str] = Query(None, alias="sortOrder"),
    admin: Principal = Depends(require_admin),
):
    bookings, pagination = await booking_service.list_bookings(status, date, limit, offset, sort_by, sort_order)
    return create_response(data=bookings, pagination=pagination)


@router.get("/check/{booking_id}")
async def check_booking(booking_id: str):
    return create_response(data=await booking_service.check_booking(booking_id))


@router.get("/history/{phone}")
async def booking_history(phone: str):
    bookings = await booking_service.booking_history(phone)
    return create_response(data=bookings, count=len(bookings))


@router.get("/{booking_id}")
async def get_booking(booking_id: str):
    return create_response(data=await booking_service.get_booking(booking_id))


@router.put("/{booking_id}/status")
async def update_status(booking_id: str, req: StatusUpdate, admin: Principal = Depends(require_admin)):
    booking = await booking_service.update_status(booking_id, req.status)
    return create_response(data=booking, message=SUCCESS_MESSAGES["BOOKING_STATUS_UPDATED"])


@router.put("/{booking_id}/reschedule")
async def reschedule_booking(booking_id: str, req: RescheduleRequest):
    booking = await booking_service.reschedule(booking_id, req.appointment_date, req.appointment_time, req.phone)
    return create_response(data=booking, message=SUCCESS_MESSAGES["BOOKING_RESCHEDULED"])


@router.delete("/{booking_id}")
async def delete_booking(booking_id: str, admin: Principal = Depends(require_admin)):
    await booking_service.delete_booking(booking_id)
    return create_response(message=SUCCESS_MESSAGES["BOOKING_DELETED"])
