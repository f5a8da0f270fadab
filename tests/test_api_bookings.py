from datetime import date, timedelta

from app.core.exceptions import UniqueViolationError


def _stored(booking_id="BK1", status="pending"):
    return {
        "id": booking_id,
        "patient_name": "Siti Rahma",
        "patient_phone": "081234567890",
        "appointment_date": "2030-01-01",
        "appointment_time": "10:30:00",
        "appointment_datetime": "2030-01-01T03:30:00+00:00",
        "status": status,
        "booking_services": [{"service_name": "Facial Treatment", "service_price": "Rp 150.000"}],
    }


def test_create_booking_returns_201(client, mock_db, booking_payload):
    mock_db.get_booking.return_value = _stored()

    response = client.post("/api/bookings", json=booking_payload)

    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    assert body["message"] == "Booking berhasil dibuat"
    assert body["data"]["id"] == "BK1"


def test_create_booking_without_services_is_400(client, mock_db, booking_payload):
    del booking_payload["selected_services"]

    response = client.post("/api/bookings", json=booking_payload)

    assert response.status_code == 400
    assert response.json()["success"] is False
    mock_db.create_booking_with_services.assert_not_called()


def test_create_booking_missing_fields_lists_them(client, mock_db):
    response = client.post("/api/bookings", json={"patient_name": "Siti Rahma"})

    assert response.status_code == 400
    assert response.json()["required"] == ["patient_name", "patient_phone", "appointment_date", "appointment_time"]


def test_second_booking_same_day_is_409(client, mock_db, booking_payload):
    mock_db.create_booking_with_services.side_effect = [
        "BK1",
        UniqueViolationError(constraint="bookings_phone_date_key"),
    ]
    mock_db.get_booking.return_value = _stored()

    assert client.post("/api/bookings", json=booking_payload).status_code == 201
    response = client.post("/api/bookings", json=booking_payload)

    assert response.status_code == 409
    assert response.json()["code"] == "DUPLICATE_BOOKING"


def test_same_phone_on_another_day_is_accepted(client, mock_db, booking_payload, future_date):
    booked_days = set()

    async def find_booking_on_date(phone, day, exclude_id=None):
        return {"id": "BK1"} if day in booked_days else None

    async def create_booking_with_services(booking, services):
        booked_days.add(booking["appointment_date"])
        return booking["id"]

    mock_db.find_booking_on_date.side_effect = find_booking_on_date
    mock_db.create_booking_with_services.side_effect = create_booking_with_services
    mock_db.get_booking.return_value = _stored()
    next_day = (date.fromisoformat(future_date) + timedelta(days=1)).isoformat()

    assert client.post("/api/bookings", json=booking_payload).status_code == 201
    assert client.post("/api/bookings", json={**booking_payload, "appointment_date": next_day}).status_code == 201

    response = client.post("/api/bookings", json=booking_payload)
    assert response.status_code == 409
    assert response.json()["code"] == "DUPLICATE_BOOKING"
    assert mock_db.create_booking_with_services.await_count == 2


def test_booking_limiter_blocks_the_eleventh_request(client, mock_db, booking_payload):
    mock_db.get_booking.return_value = _stored()

    for _ in range(10):
        assert client.post("/api/bookings", json=booking_payload).status_code == 201
    response = client.post("/api/bookings", json=booking_payload)

    assert response.status_code == 429
    assert response.json()["code"] == "RATE_LIMIT_EXCEEDED"
    assert int(response.headers["Retry-After"]) > 0


def test_list_requires_a_token(client, mock_db):
    response = client.get("/api/bookings")
    assert response.status_code == 401
    assert response.json()["code"] == "TOKEN_MISSING"


def test_list_rejects_non_admin(client, mock_db, user_headers):
    response = client.get("/api/bookings", headers=user_headers)
    assert response.status_code == 403
    assert response.json()["code"] == "FORBIDDEN"


def test_list_rejects_tampered_token(client, mock_db, admin_token):
    response = client.get("/api/bookings", headers={"Authorization": f"Bearer {admin_token}x"})
    assert response.status_code == 403
    assert response.json()["code"] == "TOKEN_INVALID"


def test_list_for_admin(client, mock_db, admin_headers):
    mock_db.list_bookings.return_value = ([_stored()], 61)

    response = client.get(
        "/api/bookings?status=pending&limit=20&offset=20&sortBy=appointment_date&sortOrder=asc",
        headers=admin_headers,
    )

    assert response.status_code == 200
    body = response.json()
    assert body["pagination"] == {
        "total": 61,
        "limit": 20,
        "offset": 20,
        "hasMore": True,
        "currentPage": 2,
        "totalPages": 4,
    }
    mock_db.list_bookings.assert_awaited_once_with("pending", None, 20, 20, "appointment_date", "asc")


def test_list_rejects_unknown_sort_field(client, mock_db, admin_headers):
    response = client.get("/api/bookings?sortBy=patient_phone", headers=admin_headers)
    assert response.status_code == 400


def test_admin_token_from_cookie(client, mock_db, admin_token):
    response = client.get("/api/bookings", headers={"Cookie": f"auth_token={admin_token}"})
    assert response.status_code == 200


def test_get_booking_by_id_without_token(client, mock_db):
    mock_db.get_booking.return_value = _stored()

    response = client.get("/api/bookings/BK1")

    assert response.status_code == 200
    assert response.json()["data"]["appointment_datetime_local"] == "2030-01-01 10:30:00"

    mock_db.get_booking.return_value = None
    assert client.get("/api/bookings/BK404").status_code == 404


def test_check_booking_is_public(client, mock_db):
    mock_db.get_booking.return_value = _stored()
    assert client.get("/api/bookings/check/BK1").status_code == 200

    mock_db.get_booking.return_value = None
    response = client.get("/api/bookings/check/BK404")
    assert response.status_code == 404
    assert response.json()["message"] == "Booking tidak ditemukan"


def test_history_uses_sanitized_phone(client, mock_db):
    mock_db.get_booking_history.return_value = [_stored("BK2"), _stored("BK1")]

    response = client.get("/api/bookings/history/0812-3456-7890")

    assert response.json()["count"] == 2
    mock_db.get_booking_history.assert_awaited_once_with("081234567890", 10)


def test_status_update_flow(client, mock_db, admin_headers):
    mock_db.get_booking.return_value = _stored(status="pending")
    mock_db.update_booking.return_value = _stored(status="confirmed")

    response = client.put("/api/bookings/BK1/status", json={"status": "confirmed"}, headers=admin_headers)

    assert response.status_code == 200
    assert response.json()["data"]["status"] == "confirmed"


def test_completed_back_to_pending_is_409(client, mock_db, admin_headers):
    mock_db.get_booking.return_value = _stored(status="completed")

    response = client.put("/api/bookings/BK1/status", json={"status": "pending"}, headers=admin_headers)

    assert response.status_code == 409
    assert response.json()["code"] == "INVALID_STATUS_TRANSITION"


def test_status_update_on_missing_booking_is_404(client, mock_db, admin_headers):
    response = client.put("/api/bookings/BK404/status", json={"status": "confirmed"}, headers=admin_headers)
    assert response.status_code == 404


def test_reschedule_with_wrong_phone_is_403(client, mock_db, future_date):
    mock_db.get_booking.return_value = _stored()

    response = client.put(
        "/api/bookings/BK1/reschedule",
        json={"appointment_date": future_date, "appointment_time": "11:00", "phone": "089999999999"},
    )
    assert response.status_code == 403


def test_delete_booking(client, mock_db, admin_headers):
    mock_db.delete_booking.return_value = True

    response = client.delete("/api/bookings/BK1", headers=admin_headers)

    assert response.status_code == 200
    assert response.json()["message"] == "Booking berhasil dihapus"
