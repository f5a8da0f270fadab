import os

# Settings are read at import time
os.environ["ENVIRONMENT"] = "test"
os.environ["SUPABASE_URL"] = "https://test-project.supabase.co"
os.environ["SUPABASE_ANON_KEY"] = "test-anon-key"
os.environ["SUPABASE_SERVICE_ROLE_KEY"] = ""
os.environ["JWT_SECRET"] = "test-secret-that-is-definitely-long-enough-123"
os.environ["ALLOWED_ORIGINS"] = "http://localhost:3000,https://admin.alracare.test"
os.environ["RATE_LIMIT_REDIS_URL"] = ""
os.environ["LOG_LEVEL"] = "WARNING"

from datetime import datetime, timedelta
from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

from app.core.rate_limit import InMemoryCounterStore
from app.core.security import issue_token
from app.main import create_app
from app.services.db_service import db_service
from app.utils.helpers import clinic_tz

DB_METHODS = {
    "list_bookings": ([], 0),
    "get_booking": None,
    "find_booking_on_date": None,
    "get_booking_history": [],
    "create_booking_with_services": None,
    "update_booking": None,
    "delete_booking": False,
    "list_service_categories": [],
    "get_service": None,
    "list_services_by_category": [],
    "create_service": None,
    "update_service": None,
    "list_notifications": [],
    "count_unread_notifications": 0,
    "get_notification": None,
    "update_notification": None,
    "mark_all_notifications_read": 0,
    "create_notification": None,
    "authenticate_user": None,
}


@pytest.fixture
def mock_db():
    """Every DBService query replaced by an AsyncMock with an empty result."""
    mocks = {name: AsyncMock(return_value=value) for name, value in DB_METHODS.items()}
    with patch.multiple(db_service, **mocks):
        yield db_service


@pytest.fixture
def app():
    # Fresh counters for every test
    return create_app(counter_store=InMemoryCounterStore())


@pytest.fixture
def client(app):
    return TestClient(app, raise_server_exceptions=False)


@pytest.fixture
def admin_token():
    return issue_token({"id": "11111111-1111-1111-1111-111111111111", "username": "admin", "role": "admin"})


@pytest.fixture
def user_token():
    return issue_token({"id": "22222222-2222-2222-2222-222222222222", "username": "staff", "role": "user"})


@pytest.fixture
def admin_headers(admin_token):
    return {"Authorization": f"Bearer {admin_token}"}


@pytest.fixture
def user_headers(user_token):
    return {"Authorization": f"Bearer {user_token}"}


@pytest.fixture
def future_date():
    return (datetime.now(clinic_tz()).date() + timedelta(days=7)).isoformat()


@pytest.fixture
def booking_payload(future_date):
    return {
        "patient_name": "Siti Rahma",
        "patient_phone": "0812-3456-7890",
        "patient_address": "Jl. Merdeka 1",
        "appointment_date": future_date,
        "appointment_time": "10:30",
        "selected_services": [
            {"id": "svc-1", "name": "Facial Treatment", "price": "Rp 150.000"},
            {"id": "svc-2", "name": "Body Massage", "price": "Rp 200.000"},
        ],
    }
