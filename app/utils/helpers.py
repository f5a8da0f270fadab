import math
import re
import time
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Optional, Union
from zoneinfo import ZoneInfo

from app.core.config import settings
from app.core.constants import BOOKING_ID_PREFIX, DATETIME_FORMAT

_DECIMAL_SUFFIX_RE = re.compile(r",\d{1,2}\s*$")
_NON_DIGIT_RE = re.compile(r"[^0-9]")


def clinic_tz() -> ZoneInfo:
    return ZoneInfo(settings.TIMEZONE)


def extract_price(price: Union[str, int, float, None]) -> int:
    """
    Turns a display price into a whole number of rupiah.
    "Rp 150.000" -> 150000, "Rp 1.250.000,00" -> 1250000, 75000 -> 75000.
    Unparseable input yields 0.
    """
    if price is None or isinstance(price, bool):
        return 0
    if isinstance(price, (int, float)):
        return int(price)
    text = _DECIMAL_SUFFIX_RE.sub("", str(price))
    digits = _NON_DIGIT_RE.sub("", text)
    return int(digits) if digits else 0


def format_price(price: Union[int, float, Decimal]) -> str:
    """Formats a number the way id-ID locale does: Rp 1.250.000 (decimal comma when needed)."""
    value = Decimal(str(price))
    sign = "-" if value < 0 else ""
    value = abs(value)
    whole = int(value)
    fraction = value - whole
    text = f"{whole:,}".replace(",", ".")
    if fraction:
        decimals = str(fraction.quantize(Decimal("0.001")).normalize()).split(".")[1]
        text = f"{text},{decimals}"
    return f"Rp {sign}{text}"


def generate_booking_id(now_ms: Optional[int] = None) -> str:
    """BK + millisecond timestamp + 8 upper-case hex chars, e.g. BK1718000000000A1B2C3D4."""
    timestamp = now_ms if now_ms is not None else int(time.time() * 1000)
    return f"{BOOKING_ID_PREFIX}{timestamp}{uuid.uuid4().hex[:8].upper()}"


def local_to_utc(day: str, clock: str, tz: Optional[ZoneInfo] = None) -> datetime:
    """
    Combines a local date ("YYYY-MM-DD") and time ("HH:MM" or "HH:MM:SS")
    in the clinic timezone into an aware UTC datetime.
    """
    if len(clock) == 5:
        clock = f"{clock}:00"
    local_dt = datetime.fromisoformat(f"{day}T{clock}").replace(tzinfo=tz or clinic_tz())
    return local_dt.astimezone(timezone.utc)


def utc_to_local(value: Union[str, datetime], tz: Optional[ZoneInfo] = None) -> datetime:
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(tz or clinic_tz())


def format_local(value: Union[str, datetime]) -> str:
    return utc_to_local(value).strftime(DATETIME_FORMAT)


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def create_pagination_meta(total: int, limit: int, offset: int) -> Dict[str, Any]:
    return {
        "total": total,
        "limit": limit,
        "offset": offset,
        "hasMore": (offset + limit) < total,
        "currentPage": offset // limit + 1 if limit else 1,
        "totalPages": math.ceil(total / limit) if limit else 0,
    }


def create_response(success: bool = True, data: Any = None, message: str = "", **extra: Any) -> Dict[str, Any]:
    response: Dict[str, Any] = {"success": success}
    if message:
        response["message"] = message
    if data is not None:
        response["data"] = data
    response.update(extra)
    return response
