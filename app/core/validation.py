"""
Input validation and sanitization.

Pure functions over primitive values. ``validate_booking_payload`` is the only
one that raises; the rest are predicates or transforms.
"""

import re
from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional

from app.core.constants import ERROR_MESSAGES, MAX_BOOKING_DAYS_AHEAD, MAX_STRING_LENGTH
from app.core.exceptions import ValidationError
from app.utils.helpers import clinic_tz

PHONE_RE = re.compile(r"^(\+62|62|0)[0-9]{9,12}$")
PHONE_SEPARATORS_RE = re.compile(r"[\s\-()]")
UUID_RE = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE)
TIME_RE = re.compile(r"^([01]\d|2[0-3]):[0-5]\d(:[0-5]\d)?$")
UNSAFE_CHARS_RE = re.compile(r"[';\\]")

SUSPICIOUS_PATTERNS = [
    re.compile(r"(\.\.|/etc/|/proc/|/sys/)", re.IGNORECASE),
    re.compile(r"\b(union\s+select|insert\s+into|drop\s+table|delete\s+from|alter\s+table|exec\s*\()", re.IGNORECASE),
    re.compile(r"(<script|javascript:|onerror=|onload=)", re.IGNORECASE),
]

BOOKING_REQUIRED_FIELDS = ["patient_name", "patient_phone", "appointment_date", "appointment_time"]


def sanitize_phone(phone: Any) -> Any:
    if not isinstance(phone, str):
        return phone
    return PHONE_SEPARATORS_RE.sub("", phone).strip()


def is_valid_phone(phone: Any) -> bool:
    """Indonesian format after stripping separators: 0 / 62 / +62 prefix, then 9-12 digits."""
    if not isinstance(phone, str) or not phone:
        return False
    return bool(PHONE_RE.match(sanitize_phone(phone)))


def parse_date(value: Any) -> Optional[date]:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    try:
        return date.fromisoformat(text)
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError:
        return None


def is_valid_date(value: Any, today: Optional[date] = None) -> bool:
    """True for today through today + 365 days, both inclusive."""
    parsed = parse_date(value)
    if parsed is None:
        return False
    if today is None:
        # Local midnight in the clinic timezone
        today = datetime.now(clinic_tz()).date()
    return today <= parsed <= today + timedelta(days=MAX_BOOKING_DAYS_AHEAD)


def is_valid_time(value: Any) -> bool:
    return isinstance(value, str) and bool(TIME_RE.match(value.strip()))


def sanitize_string(value: Any) -> Any:
    if not isinstance(value, str):
        return value
    return UNSAFE_CHARS_RE.sub("", value).strip()[:MAX_STRING_LENGTH]


def is_valid_uuid(value: Any) -> bool:
    return isinstance(value, str) and bool(UUID_RE.match(value))


def is_valid_name(name: Any) -> bool:
    if not isinstance(name, str):
        return False
    return len(name.split()) >= 2


def is_suspicious(value: Optional[str]) -> bool:
    if not value:
        return False
    return any(pattern.search(value) for pattern in SUSPICIOUS_PATTERNS)


def missing_fields(payload: Dict[str, Any], fields: Iterable[str]) -> List[str]:
    return [field for field in fields if payload.get(field) in (None, "")]


def validate_booking_payload(payload: Dict[str, Any], today: Optional[date] = None) -> Dict[str, Any]:
    """
    Validates a booking request body and returns a sanitized copy.

    Order of checks: required fields, phone, date, time, services list,
    each service item. The first failure raises ValidationError.
    """
    missing = missing_fields(payload, BOOKING_REQUIRED_FIELDS)
    if missing:
        raise ValidationError(
            ERROR_MESSAGES["INCOMPLETE_DATA"],
            field=missing[0],
            required=BOOKING_REQUIRED_FIELDS,
        )

    if not is_valid_phone(payload["patient_phone"]):
        raise ValidationError(ERROR_MESSAGES["INVALID_PHONE"], field="patient_phone")

    if not is_valid_date(payload["appointment_date"], today=today):
        raise ValidationError(ERROR_MESSAGES["INVALID_DATE"], field="appointment_date")

    if not is_valid_time(payload["appointment_time"]):
        raise ValidationError(ERROR_MESSAGES["INVALID_TIME"], field="appointment_time")

    services = payload.get("selected_services")
    if not isinstance(services, list) or not services:
        raise ValidationError(ERROR_MESSAGES["SERVICES_REQUIRED"], field="selected_services")

    for item in services:
        if not isinstance(item, dict) or not item.get("id") or not item.get("name") or item.get("price") is None:
            raise ValidationError(ERROR_MESSAGES["INVALID_SERVICE_ITEM"], field="selected_services")

    cleaned = dict(payload)
    cleaned["patient_name"] = sanitize_string(payload["patient_name"])
    cleaned["patient_phone"] = sanitize_phone(payload["patient_phone"])
    cleaned["patient_address"] = sanitize_string(payload.get("patient_address") or "")
    cleaned["patient_notes"] = sanitize_string(payload.get("patient_notes") or "")
    cleaned["appointment_date"] = parse_date(payload["appointment_date"]).isoformat()
    cleaned["appointment_time"] = payload["appointment_time"].strip()[:5]
    cleaned["selected_services"] = [
        {
            "id": str(item["id"]),
            "name": sanitize_string(str(item["name"])),
            "price": str(item["price"]),
        }
        for item in services
    ]
    return cleaned
