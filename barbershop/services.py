from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date, datetime
from typing import Iterator
from zipfile import BadZipFile

from fastapi import HTTPException, status
from openpyxl.utils.exceptions import InvalidFileException

from barbershop.availability import (
    booking_engagements,
    format_hhmm,
    leave_engagements,
    parse_hhmm,
    resolve_available_slots,
)
from barbershop.config import settings
from barbershop.constants import (
    BLOCKING_BOOKING_STATUSES,
    BLOCKING_LEAVE_STATUSES,
    BOOKING_DONE,
    LEAVE_APPROVED,
    LEAVE_BREAK,
    LEAVE_PENDING,
    LEAVE_REJECTED,
)
from barbershop.domain import (
    in_booking_window,
    is_valid_phone,
    month_key,
    normalize_phone,
    now,
    position_priority,
)
from barbershop.models import (
    AdminBarberUpsert,
    AvailabilityResponse,
    BarberOffer,
    BarberRecord,
    BarberServiceRecord,
    BookingCreate,
    BookingRecord,
    CommissionReport,
    CustomerSummary,
    DashboardStats,
    LeaveRequestCreate,
    LeaveRequestRecord,
    MigrationResult,
    SalaryPaymentCreate,
    SalaryPaymentRecord,
    ServiceRecord,
)
from barbershop.reports import build_commission_report, build_customer_summaries
from barbershop.repository import ExcelRepository

logger = logging.getLogger(__name__)

ACTIVE_BOOKING_STATUSES = BLOCKING_BOOKING_STATUSES - {BOOKING_DONE}


@dataclass
class BookingService:
    repo: ExcelRepository

    # Catalogue

    def list_services(self) -> list[ServiceRecord]:
        services = [service for service in self.repo.list_services() if service.enabled]
        return sorted(services, key=lambda service: service.price_promo or service.base_price)

    def list_barbers_for_service(self, service_id: str) -> list[BarberOffer]:
        service = self._get_enabled_service_or_404(service_id)
        pricing = {
            item.barber_id: item
            for item in self.repo.list_barber_services()
            if item.service_id == service_id and item.enabled
        }
        offers = [
            BarberOffer(
                barber=barber,
                price=self._effective_price(pricing[barber.barber_id], service),
                commission_fixed=pricing[barber.barber_id].commission_fixed,
            )
            for barber in self.repo.list_barbers()
            if barber.status == "active" and barber.barber_id in pricing
        ]
        return sorted(offers, key=lambda offer: (position_priority(offer.barber.position), offer.price))

    def admin_upsert_barber(self, payload: AdminBarberUpsert) -> BarberRecord:
        for day in payload.weekly_off_days:
            if not 0 <= day <= 6:
                raise HTTPException(status_code=400, detail="Weekly off-days must be between 0 and 6")
        barber = self.repo.upsert_barber(
            nickname=payload.nickname,
            name_th=payload.name_th,
            name_en=payload.name_en,
            position=payload.position,
            weekly_off_days=payload.weekly_off_days,
            status=payload.status,
            barber_id=payload.barber_id,
        )
        logger.info("Saved barber %s (%s)", barber.barber_id, barber.nickname)
        return barber

    # Availability and bookings

    def available_slots(
        self,
        barber_id: str,
        service_id: str,
        value_date: date,
        current: datetime | None = None,
    ) -> AvailabilityResponse:
        current = current or now()
        with self._availability_read(barber_id, value_date):
            service = self._get_enabled_service_or_404(service_id)
            barber = self._get_active_barber_or_404(barber_id)
            self._get_pricing_or_400(barber.barber_id, service.service_id)
        response = AvailabilityResponse(
            barber_id=barber_id,
            service_id=service_id,
            date=value_date,
            duration_min=service.duration_min,
            available_times=[],
        )
        if not in_booking_window(value_date, settings.booking_window_days, today=current.date()):
            return response

        bookings, leaves = self._engagement_snapshot(barber_id, value_date)
        engagements = booking_engagements(bookings, settings.default_duration_minutes)
        engagements += leave_engagements(leaves, settings.default_duration_minutes)
        try:
            response.available_times = resolve_available_slots(
                value_date,
                service.duration_min,
                engagements,
                settings.operating_hours(),
                weekly_off_days=barber.weekly_off_days,
                is_today=value_date == current.date(),
                now=current,
                buffer_minutes=settings.same_day_buffer_minutes,
            )
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return response

    def create_booking(self, payload: BookingCreate, current: datetime | None = None) -> BookingRecord:
        phone = normalize_phone(payload.phone)
        if not is_valid_phone(phone):
            raise HTTPException(status_code=400, detail="Phone must be 10 digits starting with 0")
        if not settings.operating_hours().contains(payload.time):
            raise HTTPException(status_code=400, detail="Unsupported time slot")
        start_time = format_hhmm(parse_hhmm(payload.time))

        service = self._get_enabled_service_or_404(payload.service_id)
        barber = self._get_active_barber_or_404(payload.barber_id)
        pricing = self._get_pricing_or_400(barber.barber_id, service.service_id)

        current = current or now()
        if not in_booking_window(payload.date, settings.booking_window_days, today=current.date()):
            raise HTTPException(status_code=400, detail="Date outside booking window")
        availability = self.available_slots(barber.barber_id, service.service_id, payload.date, current)
        if start_time not in availability.available_times:
            raise HTTPException(status_code=409, detail="Slot is no longer available")

        try:
            booking = self.repo.create_booking(
                barber_id=barber.barber_id,
                barber_name=barber.display_name,
                service_id=service.service_id,
                service_name=service.name_th,
                value_date=payload.date,
                start_time=start_time,
                duration_min=service.duration_min,
                customer_name=payload.customer_name.strip(),
                phone=phone,
                price=self._effective_price(pricing, service),
                deposit_amount=service.deposit_amount,
                commission_amount=pricing.commission_fixed,
                slip_url=payload.slip_url,
                booking_type=payload.booking_type,
            )
        except ValueError as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        logger.info(
            "Booking %s created for barber %s on %s at %s",
            booking.booking_id,
            booking.barber_id,
            booking.date.isoformat(),
            booking.time,
        )
        return booking

    def get_booking_or_404(self, booking_id: str) -> BookingRecord:
        booking = self.repo.get_booking(booking_id)
        if not booking:
            raise HTTPException(status_code=404, detail="Booking not found")
        return booking

    def list_bookings(
        self,
        status_filter: str | None = None,
        search: str | None = None,
        value_date: date | None = None,
        barber_id: str | None = None,
    ) -> list[BookingRecord]:
        rows = self.repo.list_bookings(start_date=value_date, end_date=value_date, barber_id=barber_id)
        if status_filter:
            rows = [row for row in rows if row.status == status_filter]
        if search:
            needle = search.strip().lower()
            rows = [
                row
                for row in rows
                if needle in row.customer_name.lower()
                or needle in row.phone
                or needle == row.booking_id.lower()
            ]
        return sorted(rows, key=lambda row: (row.date, row.time, row.booking_id))

    def update_booking_status(self, booking_id: str, new_status: str) -> BookingRecord:
        try:
            booking = self.repo.update_booking_status(booking_id, new_status)
        except ValueError as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        if not booking:
            raise HTTPException(status_code=404, detail="Booking not found")
        logger.info("Booking %s moved to %s", booking.booking_id, new_status)
        return booking

    def replace_slip(self, booking_id: str, slip_url: str) -> BookingRecord:
        try:
            booking = self.repo.update_booking_slip(booking_id, slip_url)
        except ValueError as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        if not booking:
            raise HTTPException(status_code=404, detail="Booking not found")
        return booking

    # Leave requests

    def request_leave(self, payload: LeaveRequestCreate) -> LeaveRequestRecord:
        self._get_barber_or_404(payload.barber_id)
        start_time: str | None = None
        duration_min: int | None = None
        if payload.type == LEAVE_BREAK:
            if not payload.start_time:
                raise HTTPException(status_code=400, detail="A short break needs a start time")
            try:
                start_minute = parse_hhmm(payload.start_time)
                if payload.duration_min is not None:
                    duration_min = payload.duration_min
                elif payload.duration_hours is not None:
                    duration_min = int(round(payload.duration_hours * 60))
                elif payload.end_time:
                    duration_min = parse_hhmm(payload.end_time) - start_minute
                else:
                    duration_min = settings.default_duration_minutes
            except ValueError as exc:
                raise HTTPException(status_code=400, detail=str(exc)) from exc
            if duration_min <= 0:
                raise HTTPException(status_code=400, detail="Break must end after it starts")
            start_time = format_hhmm(start_minute)

        leave = self.repo.create_leave_request(
            barber_id=payload.barber_id,
            value_date=payload.date,
            leave_type=payload.type,
            start_time=start_time,
            duration_min=duration_min,
            reason=payload.reason,
        )
        logger.info("Leave request %s (%s) filed for barber %s", leave.leave_id, leave.type, leave.barber_id)
        return leave

    def list_leave_requests(self, status_filter: str | None = None) -> list[LeaveRequestRecord]:
        rows = self.repo.list_leave_requests()
        if status_filter:
            rows = [row for row in rows if row.status == status_filter]
        return sorted(rows, key=lambda row: (row.date, row.start_time or "", row.leave_id))

    def decide_leave(self, leave_id: str, approved: bool) -> LeaveRequestRecord:
        new_status = LEAVE_APPROVED if approved else LEAVE_REJECTED
        try:
            leave = self.repo.decide_leave_request(leave_id, new_status)
        except ValueError as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        if not leave:
            raise HTTPException(status_code=404, detail="Leave request not found")
        logger.info("Leave request %s %s", leave_id, new_status)
        return leave

    # Back office

    def commission_report(self, month: int, year: int) -> CommissionReport:
        return build_commission_report(
            bookings=self.repo.list_bookings(),
            payments=self.repo.list_salary_payments(month_key(month, year)),
            pricing=self.repo.list_barber_services(),
            barbers=self.repo.list_barbers(),
            month=month,
            year=year,
        )

    def record_salary_payment(self, payload: SalaryPaymentCreate) -> SalaryPaymentRecord:
        self._get_barber_or_404(payload.barber_id)
        payment = self.repo.create_salary_payment(
            barber_id=payload.barber_id,
            amount=payload.amount,
            month_key=month_key(payload.month, payload.year),
            note=payload.note,
        )
        logger.info("Recorded payment of %.2f to barber %s for %s", payment.amount, payment.barber_id, payment.month_key)
        return payment

    def customer_summaries(self, search: str | None = None) -> list[CustomerSummary]:
        return build_customer_summaries(self.repo.list_customers(), self.repo.list_bookings(), search)

    def migrate_customer_phone(self, old_phone: str, new_phone: str) -> MigrationResult:
        old = normalize_phone(old_phone)
        new = normalize_phone(new_phone)
        if not is_valid_phone(new):
            raise HTTPException(status_code=400, detail="Phone must be 10 digits starting with 0")
        if old == new:
            raise HTTPException(status_code=400, detail="New phone matches the current one")
        try:
            counts = self.repo.migrate_customer_phone(old, new)
        except ValueError as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        if counts is None:
            raise HTTPException(status_code=404, detail="Customer not found")
        logger.info("Migrated customer phone %s to %s", old, new)
        return MigrationResult(
            old_phone=old,
            new_phone=new,
            bookings_updated=counts[0],
            customers_updated=counts[1],
        )

    def dashboard(self, today: date | None = None) -> DashboardStats:
        current = today or now().date()
        bookings = self.repo.list_bookings()
        leaves = self.repo.list_leave_requests()
        return DashboardStats(
            pending_bookings=len([b for b in bookings if b.status == "pending"]),
            pending_leave_requests=len([item for item in leaves if item.status == LEAVE_PENDING]),
            today_bookings=len(
                [b for b in bookings if b.date == current and b.status in ACTIVE_BOOKING_STATUSES]
            ),
            month_revenue=sum(
                b.price
                for b in bookings
                if b.status == BOOKING_DONE
                and b.date.month == current.month
                and b.date.year == current.year
            ),
        )

    def _engagement_snapshot(
        self,
        barber_id: str,
        value_date: date,
    ) -> tuple[list[BookingRecord], list[LeaveRequestRecord]]:
        with self._availability_read(barber_id, value_date):
            bookings = self.repo.list_bookings(start_date=value_date, end_date=value_date, barber_id=barber_id)
            leaves = self.repo.list_leave_requests(value_date=value_date, barber_id=barber_id)
        return (
            [item for item in bookings if item.status in BLOCKING_BOOKING_STATUSES],
            [item for item in leaves if item.status in BLOCKING_LEAVE_STATUSES],
        )

    @contextmanager
    def _availability_read(self, barber_id: str, value_date: date) -> Iterator[None]:
        try:
            yield
        except (OSError, BadZipFile, InvalidFileException) as exc:
            logger.error("Could not read engagements for barber %s on %s: %s", barber_id, value_date, exc)
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="Could not determine availability, please retry",
            ) from exc

    def _effective_price(self, pricing: BarberServiceRecord, service: ServiceRecord) -> float:
        return pricing.price_promo or pricing.price_normal or service.price_promo or service.base_price

    def _get_enabled_service_or_404(self, service_id: str) -> ServiceRecord:
        service = self.repo.get_service(service_id)
        if not service:
            raise HTTPException(status_code=404, detail="Service not found")
        if not service.enabled:
            raise HTTPException(status_code=400, detail="Service disabled")
        return service

    def _get_barber_or_404(self, barber_id: str) -> BarberRecord:
        barber = self.repo.get_barber(barber_id)
        if not barber:
            raise HTTPException(status_code=404, detail="Barber not found")
        return barber

    def _get_active_barber_or_404(self, barber_id: str) -> BarberRecord:
        barber = self._get_barber_or_404(barber_id)
        if barber.status != "active":
            raise HTTPException(status_code=400, detail="Barber is not taking bookings")
        return barber

    def _get_pricing_or_400(self, barber_id: str, service_id: str) -> BarberServiceRecord:
        for item in self.repo.list_barber_services():
            if item.barber_id == barber_id and item.service_id == service_id and item.enabled:
                return item
        raise HTTPException(status_code=400, detail="Barber does not offer this service")
