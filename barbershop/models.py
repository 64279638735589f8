from __future__ import annotations

from datetime import date as DateType, datetime
from typing import Literal

from pydantic import BaseModel, Field

from barbershop.constants import FULL_DAY_LEAVE_TYPES

BookingStatus = Literal[
    "pending",
    "confirmed",
    "in_progress",
    "resubmit",
    "done",
    "rejected",
    "cancelled",
]
LeaveStatus = Literal["pending", "approved", "rejected"]
LeaveType = Literal["break", "leave", "personal", "sick"]
BarberStatus = Literal["active", "inactive"]


class BarberRecord(BaseModel):
    barber_id: str
    nickname: str
    name_th: str | None = None
    name_en: str | None = None
    position: str | None = None
    weekly_off_days: list[int] = Field(default_factory=list)
    status: BarberStatus = "active"

    @property
    def display_name(self) -> str:
        return self.nickname or self.name_en or self.name_th or "Unknown Barber"


class ServiceRecord(BaseModel):
    service_id: str
    name_th: str
    name_en: str | None = None
    duration_min: int = Field(gt=0)
    base_price: float = 0
    price_promo: float | None = None
    deposit_amount: float = 0
    enabled: bool = True


class BarberServiceRecord(BaseModel):
    barber_id: str
    service_id: str
    price_normal: float = 0
    price_promo: float | None = None
    commission_fixed: float = 0
    enabled: bool = True


class BookingRecord(BaseModel):
    booking_id: str
    booking_type: str = "online"
    barber_id: str
    barber_name: str = ""
    service_id: str
    service_name: str = ""
    date: DateType
    time: str
    duration_min: int | None = None
    customer_name: str = ""
    phone: str = ""
    slip_url: str | None = None
    price: float = 0
    deposit_amount: float = 0
    commission_amount: float | None = None
    status: BookingStatus = "pending"
    created_at: datetime | None = None
    updated_at: datetime | None = None


class LeaveRequestRecord(BaseModel):
    leave_id: str
    barber_id: str
    date: DateType
    type: LeaveType
    start_time: str | None = None
    duration_min: int | None = None
    reason: str | None = None
    status: LeaveStatus = "pending"
    created_at: datetime | None = None

    @property
    def is_full_day(self) -> bool:
        return self.type in FULL_DAY_LEAVE_TYPES


class SalaryPaymentRecord(BaseModel):
    payment_id: str
    barber_id: str
    amount: float
    month_key: str
    note: str | None = None
    created_at: datetime


class CustomerRecord(BaseModel):
    customer_id: str
    name: str
    phone: str
    note: str | None = None
    created_at: datetime


class BookingCreate(BaseModel):
    barber_id: str
    service_id: str
    date: DateType
    time: str
    customer_name: str = Field(min_length=1)
    phone: str
    slip_url: str | None = None
    booking_type: Literal["online", "walk_in"] = "online"


class BookingStatusUpdate(BaseModel):
    status: BookingStatus


class SlipUpdate(BaseModel):
    slip_url: str = Field(min_length=1)


class LeaveRequestCreate(BaseModel):
    barber_id: str
    date: DateType
    type: LeaveType
    start_time: str | None = None
    duration_min: int | None = Field(default=None, gt=0)
    duration_hours: float | None = Field(default=None, gt=0)
    end_time: str | None = None
    reason: str | None = None


class LeaveDecision(BaseModel):
    approved: bool


class SalaryPaymentCreate(BaseModel):
    barber_id: str
    amount: float = Field(gt=0)
    month: int = Field(ge=1, le=12)
    year: int = Field(ge=2000, le=2100)
    note: str | None = None


class PhoneMigration(BaseModel):
    old_phone: str
    new_phone: str


class AdminBarberUpsert(BaseModel):
    barber_id: str | None = None
    nickname: str = Field(min_length=1)
    name_th: str | None = None
    name_en: str | None = None
    position: str | None = None
    weekly_off_days: list[int] = Field(default_factory=list)
    status: BarberStatus = "active"


class BarberOffer(BaseModel):
    barber: BarberRecord
    price: float
    commission_fixed: float


class AvailabilityResponse(BaseModel):
    barber_id: str
    service_id: str
    date: DateType
    duration_min: int
    available_times: list[str]


class CommissionJob(BaseModel):
    booking_id: str
    date: DateType
    time: str
    service_name: str
    customer_name: str
    price: float
    commission: float


class BarberCommission(BaseModel):
    barber_id: str
    name: str
    booking_count: int = 0
    total_earning: float = 0
    total_commission: float = 0
    total_paid: float = 0
    remaining: float = 0
    jobs: list[CommissionJob] = Field(default_factory=list)


class CommissionReport(BaseModel):
    month_key: str
    barbers: list[BarberCommission]


class CustomerSummary(BaseModel):
    name: str
    phone: str
    total_visits: int = 0
    total_spent: float = 0
    last_visit: DateType | None = None


class MigrationResult(BaseModel):
    old_phone: str
    new_phone: str
    bookings_updated: int
    customers_updated: int


class DashboardStats(BaseModel):
    pending_bookings: int
    pending_leave_requests: int
    today_bookings: int
    month_revenue: float
