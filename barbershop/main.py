from __future__ import annotations

import logging
from datetime import date

from fastapi import Depends, FastAPI, Query

from barbershop.config import settings
from barbershop.deps import get_service, repo
from barbershop.models import (
    AdminBarberUpsert,
    AvailabilityResponse,
    BarberOffer,
    BarberRecord,
    BookingCreate,
    BookingRecord,
    BookingStatusUpdate,
    CommissionReport,
    CustomerSummary,
    DashboardStats,
    LeaveDecision,
    LeaveRequestCreate,
    LeaveRequestRecord,
    MigrationResult,
    PhoneMigration,
    SalaryPaymentCreate,
    SalaryPaymentRecord,
    ServiceRecord,
    SlipUpdate,
)
from barbershop.services import BookingService

logger = logging.getLogger(__name__)

app = FastAPI(title="Barbershop Booking API", version="0.1.0")


def configure_logging() -> None:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@app.on_event("startup")
def on_startup() -> None:
    configure_logging()
    repo.init_storage()
    logger.info("Using workbook %s", repo.data_file)


@app.get("/healthz")
def healthz() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/api/services", response_model=list[ServiceRecord])
def list_services(service: BookingService = Depends(get_service)) -> list[ServiceRecord]:
    return service.list_services()


@app.get("/api/services/{service_id}/barbers", response_model=list[BarberOffer])
def list_barbers_for_service(
    service_id: str,
    service: BookingService = Depends(get_service),
) -> list[BarberOffer]:
    return service.list_barbers_for_service(service_id)


@app.get("/api/availability", response_model=AvailabilityResponse)
def availability(
    barber_id: str = Query(...),
    service_id: str = Query(...),
    value_date: date = Query(..., alias="date"),
    service: BookingService = Depends(get_service),
) -> AvailabilityResponse:
    return service.available_slots(barber_id=barber_id, service_id=service_id, value_date=value_date)


@app.post("/api/bookings", response_model=BookingRecord, status_code=201)
def create_booking(payload: BookingCreate, service: BookingService = Depends(get_service)) -> BookingRecord:
    return service.create_booking(payload)


@app.get("/api/bookings", response_model=list[BookingRecord])
def list_bookings(
    status: str | None = Query(default=None),
    search: str | None = Query(default=None),
    value_date: date | None = Query(default=None, alias="date"),
    barber_id: str | None = Query(default=None),
    service: BookingService = Depends(get_service),
) -> list[BookingRecord]:
    return service.list_bookings(
        status_filter=status,
        search=search,
        value_date=value_date,
        barber_id=barber_id,
    )


@app.get("/api/bookings/{booking_id}", response_model=BookingRecord)
def get_booking(booking_id: str, service: BookingService = Depends(get_service)) -> BookingRecord:
    return service.get_booking_or_404(booking_id)


@app.patch("/api/bookings/{booking_id}/status", response_model=BookingRecord)
def update_booking_status(
    booking_id: str,
    payload: BookingStatusUpdate,
    service: BookingService = Depends(get_service),
) -> BookingRecord:
    return service.update_booking_status(booking_id, payload.status)


@app.put("/api/bookings/{booking_id}/slip", response_model=BookingRecord)
def replace_slip(
    booking_id: str,
    payload: SlipUpdate,
    service: BookingService = Depends(get_service),
) -> BookingRecord:
    return service.replace_slip(booking_id, payload.slip_url)


@app.post("/api/leave-requests", response_model=LeaveRequestRecord, status_code=201)
def request_leave(
    payload: LeaveRequestCreate,
    service: BookingService = Depends(get_service),
) -> LeaveRequestRecord:
    return service.request_leave(payload)


@app.get("/api/leave-requests", response_model=list[LeaveRequestRecord])
def list_leave_requests(
    status: str | None = Query(default=None),
    service: BookingService = Depends(get_service),
) -> list[LeaveRequestRecord]:
    return service.list_leave_requests(status_filter=status)


@app.patch("/api/leave-requests/{leave_id}", response_model=LeaveRequestRecord)
def decide_leave(
    leave_id: str,
    payload: LeaveDecision,
    service: BookingService = Depends(get_service),
) -> LeaveRequestRecord:
    return service.decide_leave(leave_id, payload.approved)


@app.get("/api/admin/dashboard", response_model=DashboardStats)
def dashboard(service: BookingService = Depends(get_service)) -> DashboardStats:
    return service.dashboard()


@app.get("/api/admin/commission", response_model=CommissionReport)
def commission_report(
    month: int = Query(..., ge=1, le=12),
    year: int = Query(..., ge=2000, le=2100),
    service: BookingService = Depends(get_service),
) -> CommissionReport:
    return service.commission_report(month=month, year=year)


@app.post("/api/admin/salary-payments", response_model=SalaryPaymentRecord, status_code=201)
def record_salary_payment(
    payload: SalaryPaymentCreate,
    service: BookingService = Depends(get_service),
) -> SalaryPaymentRecord:
    return service.record_salary_payment(payload)


@app.get("/api/admin/customers", response_model=list[CustomerSummary])
def list_customers(
    search: str | None = Query(default=None),
    service: BookingService = Depends(get_service),
) -> list[CustomerSummary]:
    return service.customer_summaries(search=search)


@app.post("/api/admin/customers/migrate-phone", response_model=MigrationResult)
def migrate_customer_phone(
    payload: PhoneMigration,
    service: BookingService = Depends(get_service),
) -> MigrationResult:
    return service.migrate_customer_phone(payload.old_phone, payload.new_phone)


@app.post("/api/admin/barbers", response_model=BarberRecord)
def admin_upsert_barber(
    payload: AdminBarberUpsert,
    service: BookingService = Depends(get_service),
) -> BarberRecord:
    return service.admin_upsert_barber(payload)
