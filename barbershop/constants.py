from __future__ import annotations

BOOKING_PENDING = "pending"
BOOKING_CONFIRMED = "confirmed"
BOOKING_IN_PROGRESS = "in_progress"
BOOKING_RESUBMIT = "resubmit"
BOOKING_DONE = "done"
BOOKING_REJECTED = "rejected"
BOOKING_CANCELLED = "cancelled"

# Statuses that still hold the barber's time.
BLOCKING_BOOKING_STATUSES = {
    BOOKING_PENDING,
    BOOKING_CONFIRMED,
    BOOKING_IN_PROGRESS,
    BOOKING_RESUBMIT,
    BOOKING_DONE,
}

BOOKING_TRANSITIONS: dict[str, set[str]] = {
    BOOKING_PENDING: {BOOKING_CONFIRMED, BOOKING_REJECTED, BOOKING_CANCELLED, BOOKING_RESUBMIT},
    BOOKING_RESUBMIT: {BOOKING_PENDING, BOOKING_CONFIRMED, BOOKING_REJECTED, BOOKING_CANCELLED},
    BOOKING_CONFIRMED: {BOOKING_IN_PROGRESS, BOOKING_DONE, BOOKING_CANCELLED, BOOKING_RESUBMIT},
    BOOKING_IN_PROGRESS: {BOOKING_DONE, BOOKING_CANCELLED},
    BOOKING_DONE: set(),
    BOOKING_REJECTED: set(),
    BOOKING_CANCELLED: set(),
}

LEAVE_PENDING = "pending"
LEAVE_APPROVED = "approved"
LEAVE_REJECTED = "rejected"
BLOCKING_LEAVE_STATUSES = {LEAVE_PENDING, LEAVE_APPROVED}

LEAVE_BREAK = "break"
FULL_DAY_LEAVE_TYPES = {"leave", "personal", "sick"}

BOOKING_CODE_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"
BOOKING_CODE_LENGTH = 6

# Lower sorts first on the barber picker.
POSITION_PRIORITY = (("Senior", 1), ("Master", 2))
DEFAULT_POSITION_PRIORITY = 3

SHEETS = [
    "barbers",
    "services",
    "barber_services",
    "bookings",
    "leave_requests",
    "salary_payments",
    "customers",
    "meta",
]

BARBERS_HEADERS = [
    "barber_id",
    "nickname",
    "name_th",
    "name_en",
    "position",
    "weekly_off_days",
    "status",
]
SERVICES_HEADERS = [
    "service_id",
    "name_th",
    "name_en",
    "duration_min",
    "base_price",
    "price_promo",
    "deposit_amount",
    "enabled",
]
BARBER_SERVICES_HEADERS = [
    "barber_id",
    "service_id",
    "price_normal",
    "price_promo",
    "commission_fixed",
    "enabled",
]
BOOKINGS_HEADERS = [
    "booking_id",
    "booking_type",
    "barber_id",
    "barber_name",
    "service_id",
    "service_name",
    "date",
    "time",
    "duration_min",
    "customer_name",
    "phone",
    "slip_url",
    "price",
    "deposit_amount",
    "commission_amount",
    "status",
    "created_at",
    "updated_at",
]
LEAVE_REQUESTS_HEADERS = [
    "leave_id",
    "barber_id",
    "date",
    "type",
    "start_time",
    "duration_min",
    "reason",
    "status",
    "created_at",
]
SALARY_PAYMENTS_HEADERS = ["payment_id", "barber_id", "amount", "month_key", "note", "created_at"]
CUSTOMERS_HEADERS = ["customer_id", "name", "phone", "note", "created_at"]
META_HEADERS = ["key", "value"]
