from unittest.mock import ANY

import pytest

from app.core.exceptions import (
    ConflictError,
    DatabaseError,
    ForbiddenError,
    NotFoundError,
    UniqueViolationError,
    ValidationError,
)
from app.services.booking_service import booking_service


def _stored(booking_id="BK1", status="pending", phone="081234567890", date="2030-01-01"):
    return {
        "id": booking_id,
        "patient_name": "Siti Rahma",
        "patient_phone": phone,
        "appointment_date": date,
        "appointment_time": "10:30:00",
        "appointment_datetime": "2030-01-01T03:30:00+00:00",
        "status": status,
        "booking_services": [],
    }


@pytest.mark.asyncio
async def test_create_booking_writes_booking_and_items(mock_db, booking_payload, future_date):
    mock_db.get_booking.return_value = _stored()

    booking = await booking_service.create_booking(booking_payload)

    assert booking["id"] == "BK1"
    record, items = mock_db.create_booking_with_services.call_args.args
    assert record["id"].startswith("BK")
    assert record["patient_phone"] == "081234567890"
    assert record["appointment_date"] == future_date
    assert record["status"] == "pending"
    assert record["total_price"] == 350000
    assert record["patient_notes"] == "Tidak ada catatan"
    assert record["appointment_datetime"].endswith("+00:00")
    assert [item["price_numeric"] for item in items] == [150000, 200000]
    assert {item["booking_id"] for item in items} == {record["id"]}


@pytest.mark.asyncio
async def test_invalid_payload_never_touches_the_database(mock_db, booking_payload):
    booking_payload["selected_services"] = []

    with pytest.raises(ValidationError):
        await booking_service.create_booking(booking_payload)

    mock_db.find_booking_on_date.assert_not_called()
    mock_db.create_booking_with_services.assert_not_called()


@pytest.mark.asyncio
async def test_cancelled_booking_on_the_same_day_is_still_a_conflict(mock_db, booking_payload, future_date):
    mock_db.find_booking_on_date.return_value = {"id": "BK0", "status": "cancelled"}

    with pytest.raises(ConflictError) as exc:
        await booking_service.create_booking(booking_payload)

    assert exc.value.code == "DUPLICATE_BOOKING"
    mock_db.find_booking_on_date.assert_awaited_once_with("081234567890", future_date)
    mock_db.create_booking_with_services.assert_not_called()


@pytest.mark.asyncio
async def test_unique_constraint_violation_is_a_conflict(mock_db, booking_payload):
    mock_db.create_booking_with_services.side_effect = UniqueViolationError(constraint="bookings_phone_date_key")

    with pytest.raises(ConflictError) as exc:
        await booking_service.create_booking(booking_payload)
    assert exc.value.code == "DUPLICATE_BOOKING"


@pytest.mark.asyncio
async def test_id_collision_is_retried_with_a_new_id(mock_db, booking_payload):
    mock_db.create_booking_with_services.side_effect = [UniqueViolationError(constraint="bookings_pkey"), "BK2"]
    mock_db.get_booking.return_value = _stored("BK2")

    await booking_service.create_booking(booking_payload)

    first, second = mock_db.create_booking_with_services.call_args_list
    assert first.args[0]["id"] != second.args[0]["id"]


@pytest.mark.asyncio
async def test_id_collision_gives_up_after_three_attempts(mock_db, booking_payload):
    mock_db.create_booking_with_services.side_effect = UniqueViolationError(constraint="bookings_pkey")

    with pytest.raises(UniqueViolationError):
        await booking_service.create_booking(booking_payload)
    assert mock_db.create_booking_with_services.await_count == 3


@pytest.mark.asyncio
async def test_other_database_failures_propagate(mock_db, booking_payload):
    mock_db.create_booking_with_services.side_effect = DatabaseError(context={"code": "42P01"})

    with pytest.raises(DatabaseError):
        await booking_service.create_booking(booking_payload)
    mock_db.get_booking.assert_not_called()


@pytest.mark.asyncio
async def test_list_bookings_clamps_paging(mock_db):
    mock_db.list_bookings.return_value = ([_stored()], 1)

    bookings, pagination = await booking_service.list_bookings(limit=500, offset=-5, sort_order="ASC")

    mock_db.list_bookings.assert_awaited_once_with(None, None, 100, 0, "created_at", "asc")
    assert pagination["limit"] == 100
    assert pagination["hasMore"] is False


@pytest.mark.asyncio
@pytest.mark.parametrize("kwargs", [{"sort_by": "patient_phone"}, {"status": "archived"}, {"day": "yesterday"}])
async def test_list_bookings_rejects_bad_filters(mock_db, kwargs):
    with pytest.raises(ValidationError):
        await booking_service.list_bookings(**kwargs)


@pytest.mark.asyncio
async def test_get_booking_adds_local_datetime(mock_db):
    mock_db.get_booking.return_value = _stored()

    booking = await booking_service.get_booking("BK1")
    assert booking["appointment_datetime_local"] == "2030-01-01 10:30:00"


@pytest.mark.asyncio
async def test_missing_booking_is_404(mock_db):
    with pytest.raises(NotFoundError):
        await booking_service.get_booking("BK404")
    with pytest.raises(NotFoundError):
        await booking_service.check_booking("BK404")
    with pytest.raises(NotFoundError):
        await booking_service.delete_booking("BK404")


@pytest.mark.asyncio
async def test_confirm_is_compare_and_set(mock_db):
    mock_db.get_booking.return_value = _stored(status="pending")
    mock_db.update_booking.return_value = {**_stored(status="confirmed"), "confirmed_at": "2030-01-01T00:00:00Z"}

    updated = await booking_service.update_status("BK1", "confirmed")

    assert updated["status"] == "confirmed"
    mock_db.update_booking.assert_awaited_once_with(
        "BK1", {"status": "confirmed", "confirmed_at": ANY}, expected_status="pending", admin=True
    )
    phone, notification_type, *_ = mock_db.create_notification.call_args.args
    assert (phone, notification_type) == ("081234567890", "booking_confirmed")


@pytest.mark.asyncio
@pytest.mark.parametrize("current,target", [
    ("completed", "pending"),
    ("cancelled", "confirmed"),
    ("pending", "completed"),
    ("confirmed", "confirmed"),
])
async def test_illegal_transitions_are_409(mock_db, current, target):
    mock_db.get_booking.return_value = _stored(status=current)

    with pytest.raises(ConflictError) as exc:
        await booking_service.update_status("BK1", target)

    assert exc.value.code == "INVALID_STATUS_TRANSITION"
    mock_db.update_booking.assert_not_called()


@pytest.mark.asyncio
async def test_concurrent_status_change_is_409(mock_db):
    mock_db.get_booking.return_value = _stored(status="pending")
    mock_db.update_booking.return_value = None

    with pytest.raises(ConflictError):
        await booking_service.update_status("BK1", "cancelled")
    mock_db.create_notification.assert_not_called()


@pytest.mark.asyncio
async def test_unknown_status_is_400(mock_db):
    with pytest.raises(ValidationError):
        await booking_service.update_status("BK1", "archived")
    mock_db.get_booking.assert_not_called()


@pytest.mark.asyncio
async def test_notification_failure_does_not_fail_the_transition(mock_db):
    mock_db.get_booking.return_value = _stored(status="confirmed")
    mock_db.update_booking.return_value = _stored(status="completed")
    mock_db.create_notification.side_effect = DatabaseError()

    updated = await booking_service.update_status("BK1", "completed")
    assert updated["status"] == "completed"


@pytest.mark.asyncio
async def test_reschedule_moves_the_booking(mock_db, future_date):
    mock_db.get_booking.return_value = _stored(status="confirmed")
    mock_db.update_booking.return_value = _stored(status="confirmed", date=future_date)

    await booking_service.reschedule("BK1", future_date, "14:00", "0812-3456-7890")

    mock_db.find_booking_on_date.assert_awaited_once_with("081234567890", future_date, exclude_id="BK1")
    booking_id, changes = mock_db.update_booking.call_args.args
    assert changes["appointment_date"] == future_date
    assert changes["appointment_time"] == "14:00"
    assert mock_db.update_booking.call_args.kwargs == {"expected_status": "confirmed"}
    assert mock_db.create_notification.call_args.args[1] == "booking_rescheduled"


@pytest.mark.asyncio
async def test_reschedule_requires_all_fields(mock_db, future_date):
    with pytest.raises(ValidationError) as exc:
        await booking_service.reschedule("BK1", future_date, "14:00", None)
    assert exc.value.required == ["appointment_date", "appointment_time", "phone"]


@pytest.mark.asyncio
async def test_reschedule_hides_missing_and_foreign_bookings(mock_db, future_date):
    with pytest.raises(ForbiddenError):
        await booking_service.reschedule("BK404", future_date, "14:00", "081234567890")

    mock_db.get_booking.return_value = _stored(phone="089999999999")
    with pytest.raises(ForbiddenError):
        await booking_service.reschedule("BK1", future_date, "14:00", "081234567890")


@pytest.mark.asyncio
async def test_reschedule_of_finished_booking_is_locked(mock_db, future_date):
    mock_db.get_booking.return_value = _stored(status="completed")

    with pytest.raises(ConflictError) as exc:
        await booking_service.reschedule("BK1", future_date, "14:00", "081234567890")
    assert exc.value.code == "BOOKING_LOCKED"


@pytest.mark.asyncio
async def test_reschedule_onto_an_occupied_day_is_a_conflict(mock_db, future_date):
    mock_db.get_booking.return_value = _stored()
    mock_db.find_booking_on_date.return_value = {"id": "BK9"}

    with pytest.raises(ConflictError) as exc:
        await booking_service.reschedule("BK1", future_date, "14:00", "081234567890")
    assert exc.value.code == "DUPLICATE_BOOKING"
    mock_db.update_booking.assert_not_called()


@pytest.mark.asyncio
async def test_reschedule_validates_new_slot(mock_db):
    mock_db.get_booking.return_value = _stored()

    with pytest.raises(ValidationError):
        await booking_service.reschedule("BK1", "2001-01-01", "14:00", "081234567890")
