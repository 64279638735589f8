from __future__ import annotations

import random
import re
from datetime import date, datetime, time, timedelta
from typing import Any, Iterable

from barbershop.availability import parse_hhmm
from barbershop.constants import (
    BOOKING_CODE_ALPHABET,
    BOOKING_CODE_LENGTH,
    BOOKING_TRANSITIONS,
    DEFAULT_POSITION_PRIORITY,
    POSITION_PRIORITY,
)

_DDMMYYYY = re.compile(r"^\d{2}/\d{2}/\d{4}$")


def now() -> datetime:
    return datetime.now()


def in_booking_window(value: date, window_days: int, today: date | None = None) -> bool:
    current = today or now().date()
    return current <= value < (current + timedelta(days=window_days))


def can_transition(current: str, target: str) -> bool:
    return target in BOOKING_TRANSITIONS.get(current, set())


def normalize_bool(value: object) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "y"}
    return False


def parse_shop_date(raw: Any) -> date:
    """
    Accept the date shapes found in stored data.

    ISO dates are written by this service. ``DD/MM/YYYY`` is the shop's display
    format; anything else with slashes is treated as legacy ``M/D/YYYY``.
    """
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    text = str(raw or "").strip()
    if "/" not in text:
        return date.fromisoformat(text)
    parts = text.split("/")
    if len(parts) != 3 or not all(part.isdigit() for part in parts):
        raise ValueError(f"Unsupported date: {raw!r}")
    first, second, year = (int(part) for part in parts)
    if _DDMMYYYY.match(text):
        try:
            return date(year, second, first)
        except ValueError:
            pass
    return date(year, first, second)


def format_shop_date(value: date) -> str:
    return value.strftime("%d/%m/%Y")


def month_key(month: int, year: int) -> str:
    return f"{month}-{year}"


def normalize_phone(raw: Any) -> str:
    if raw is None:
        return ""
    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
        # Spreadsheet cells typed as numbers drop the leading zero.
        text = str(int(raw))
        return f"0{text}" if len(text) == 9 else text
    return re.sub(r"[\s-]", "", str(raw))


def is_valid_phone(phone: str) -> bool:
    return phone.startswith("0") and len(phone) == 10 and phone.isdigit()


def parse_weekdays(raw: Any) -> list[int]:
    if raw is None or raw == "":
        return []
    if isinstance(raw, (list, tuple, set)):
        items: Iterable[Any] = raw
    elif isinstance(raw, (int, float)) and not isinstance(raw, bool):
        items = [raw]
    else:
        items = str(raw).replace(";", ",").split(",")
    days = sorted({int(str(item).strip()) for item in items if str(item).strip() != ""})
    for day in days:
        if not 0 <= day <= 6:
            raise ValueError(f"Weekday out of range: {day}")
    return days


def format_weekdays(days: Iterable[int]) -> str:
    return ",".join(str(day) for day in sorted(set(days)))


def position_priority(position: str | None) -> int:
    text = position or ""
    for marker, priority in POSITION_PRIORITY:
        if marker in text:
            return priority
    return DEFAULT_POSITION_PRIORITY


def generate_booking_code(taken: Iterable[str]) -> str:
    existing = set(taken)
    while True:
        code = "".join(random.choice(BOOKING_CODE_ALPHABET) for _ in range(BOOKING_CODE_LENGTH))
        if code not in existing:
            return code


def _first(row: dict[str, Any], *names: str) -> Any:
    for name in names:
        value = row.get(name)
        if value is not None and value != "":
            return value
    return None


# Canonical column first, then the legacy names seen in stored sheets. The id column leads.
BOOKING_COLUMN_ALIASES: dict[str, tuple[str, ...]] = {
    "booking_id": ("booking_id", "bookingId", "id"),
    "booking_type": ("booking_type", "bookingType"),
    "barber_id": ("barber_id", "barberId"),
    "barber_name": ("barber_name", "barberName"),
    "service_id": ("service_id", "serviceId"),
    "service_name": ("service_name", "serviceName"),
    "date": ("date",),
    "time": ("time", "startTime"),
    "duration_min": ("duration_min",),
    "customer_name": ("customer_name", "customerName"),
    "phone": ("phone", "customerPhone", "customer_phone"),
    "slip_url": ("slip_url", "slipUrl"),
    "price": ("price",),
    "deposit_amount": ("deposit_amount", "depositAmount"),
    "commission_amount": ("commission_amount", "commissionAmount"),
    "status": ("status",),
    "created_at": ("created_at", "createdAt"),
    "updated_at": ("updated_at", "updatedAt"),
}

LEAVE_COLUMN_ALIASES: dict[str, tuple[str, ...]] = {
    "leave_id": ("leave_id", "id"),
    "barber_id": ("barber_id", "barberId"),
    "date": ("date",),
    "type": ("type",),
    "start_time": ("start_time", "startTime"),
    "duration_min": ("duration_min",),
    "reason": ("reason",),
    "status": ("status",),
    "created_at": ("created_at", "createdAt"),
}


def rename_columns(row: dict[str, Any], aliases: dict[str, tuple[str, ...]]) -> dict[str, Any]:
    """Move legacy column names onto canonical ones without touching the values."""
    renamed = dict(row)
    for column, names in aliases.items():
        value = _first(row, *names)
        for name in names:
            renamed.pop(name, None)
        renamed[column] = value
    return renamed


def _time_text(value: Any) -> str | None:
    if value is None or value == "":
        return None
    if isinstance(value, (time, datetime)):
        return value.strftime("%H:%M")
    return str(value).strip()


def _optional_float(value: Any) -> float | None:
    if value is None or value == "":
        return None
    return float(value)


def _hours_to_minutes(value: Any) -> int:
    return int(round(float(value) * 60))


def canonical_booking_row(row: dict[str, Any]) -> dict[str, Any]:
    """Map a stored booking row, including legacy column names, onto one shape."""
    duration = _first(row, "duration_min")
    if duration is not None:
        duration_min: int | None = int(float(duration))
    else:
        hours = _first(row, "durationHrs", "duration")
        duration_min = _hours_to_minutes(hours) if hours is not None else None

    return {
        "booking_id": str(_first(row, "booking_id", "bookingId", "id") or ""),
        "booking_type": _first(row, "booking_type", "bookingType") or "online",
        "barber_id": str(_first(row, "barber_id", "barberId") or ""),
        "barber_name": _first(row, "barber_name", "barberName") or "",
        "service_id": str(_first(row, "service_id", "serviceId") or ""),
        "service_name": _first(row, "service_name", "serviceName") or "",
        "date": parse_shop_date(_first(row, "date")),
        "time": _time_text(_first(row, "time", "startTime")) or "",
        "duration_min": duration_min,
        "customer_name": _first(row, "customer_name", "customerName") or "",
        "phone": normalize_phone(_first(row, "phone", "customerPhone", "customer_phone")),
        "slip_url": _first(row, "slip_url", "slipUrl"),
        "price": float(_first(row, "price") or 0),
        "deposit_amount": float(_first(row, "deposit_amount", "depositAmount") or 0),
        "commission_amount": _optional_float(_first(row, "commission_amount", "commissionAmount")),
        "status": _first(row, "status") or "pending",
        "created_at": _first(row, "created_at", "createdAt"),
        "updated_at": _first(row, "updated_at", "updatedAt", "created_at", "createdAt"),
    }


def canonical_leave_row(row: dict[str, Any]) -> dict[str, Any]:
    start_time = _time_text(_first(row, "start_time", "startTime"))
    end_time = _time_text(_first(row, "end_time", "endTime"))

    duration = _first(row, "duration_min")
    if duration is not None:
        duration_min: int | None = int(float(duration))
    elif _first(row, "durationHrs", "duration_hours") is not None:
        duration_min = _hours_to_minutes(_first(row, "durationHrs", "duration_hours"))
    elif start_time and end_time:
        try:
            duration_min = parse_hhmm(end_time) - parse_hhmm(start_time)
        except ValueError:
            duration_min = None
    else:
        duration_min = None

    return {
        "leave_id": str(_first(row, "leave_id", "id") or ""),
        "barber_id": str(_first(row, "barber_id", "barberId") or ""),
        "date": parse_shop_date(_first(row, "date")),
        "type": _first(row, "type") or "leave",
        "start_time": start_time,
        "duration_min": duration_min if duration_min and duration_min > 0 else None,
        "reason": _first(row, "reason"),
        "status": _first(row, "status") or "pending",
        "created_at": _first(row, "created_at", "createdAt"),
    }
