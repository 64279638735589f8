from __future__ import annotations

import logging
import shutil
import uuid
from dataclasses import dataclass, fields
from datetime import date, datetime
from pathlib import Path
from tempfile import NamedTemporaryFile
from typing import Any, Callable

from filelock import FileLock
from openpyxl import Workbook, load_workbook

from barbershop.availability import Engagement, booking_engagements, overlaps_any
from barbershop.config import settings
from barbershop.constants import (
    BARBER_SERVICES_HEADERS,
    BARBERS_HEADERS,
    BLOCKING_BOOKING_STATUSES,
    BOOKINGS_HEADERS,
    CUSTOMERS_HEADERS,
    LEAVE_PENDING,
    LEAVE_REQUESTS_HEADERS,
    META_HEADERS,
    SALARY_PAYMENTS_HEADERS,
    SERVICES_HEADERS,
)
from barbershop.domain import (
    BOOKING_COLUMN_ALIASES,
    LEAVE_COLUMN_ALIASES,
    can_transition,
    canonical_booking_row,
    canonical_leave_row,
    format_weekdays,
    generate_booking_code,
    normalize_bool,
    normalize_phone,
    parse_weekdays,
    rename_columns,
)
from barbershop.models import (
    BarberRecord,
    BarberServiceRecord,
    BookingRecord,
    CustomerRecord,
    LeaveRequestRecord,
    SalaryPaymentRecord,
    ServiceRecord,
)

logger = logging.getLogger(__name__)

SHEET_HEADERS: dict[str, list[str]] = {
    "barbers": BARBERS_HEADERS,
    "services": SERVICES_HEADERS,
    "barber_services": BARBER_SERVICES_HEADERS,
    "bookings": BOOKINGS_HEADERS,
    "leave_requests": LEAVE_REQUESTS_HEADERS,
    "salary_payments": SALARY_PAYMENTS_HEADERS,
    "customers": CUSTOMERS_HEADERS,
    "meta": META_HEADERS,
}


@dataclass
class Tables:
    barbers: list[dict[str, Any]]
    services: list[dict[str, Any]]
    barber_services: list[dict[str, Any]]
    bookings: list[dict[str, Any]]
    leave_requests: list[dict[str, Any]]
    salary_payments: list[dict[str, Any]]
    customers: list[dict[str, Any]]
    meta: list[dict[str, Any]]


class ExcelRepository:
    def __init__(self) -> None:
        self.data_file = settings.data_file
        self.backup_dir = settings.backup_dir
        self.lock = FileLock(str(settings.lock_file))

    def init_storage(self) -> None:
        self.data_file.parent.mkdir(parents=True, exist_ok=True)
        self.backup_dir.mkdir(parents=True, exist_ok=True)
        Path(self.lock.lock_file).parent.mkdir(parents=True, exist_ok=True)
        if self.data_file.exists():
            return

        wb = Workbook()
        default = wb.active
        wb.remove(default)
        for sheet_name, headers in SHEET_HEADERS.items():
            ws = wb.create_sheet(sheet_name)
            ws.append(headers)
        wb.save(self.data_file)
        logger.info("Created workbook %s", self.data_file)

    # Barbers, services and pricing

    def list_barbers(self) -> list[BarberRecord]:
        return [self._barber_from_row(row) for row in self._read_tables().barbers if row.get("barber_id")]

    def get_barber(self, barber_id: str) -> BarberRecord | None:
        for barber in self.list_barbers():
            if barber.barber_id == barber_id:
                return barber
        return None

    def upsert_barber(
        self,
        nickname: str,
        name_th: str | None = None,
        name_en: str | None = None,
        position: str | None = None,
        weekly_off_days: list[int] | None = None,
        status: str = "active",
        barber_id: str | None = None,
    ) -> BarberRecord:
        values = {
            "nickname": nickname,
            "name_th": name_th,
            "name_en": name_en,
            "position": position,
            "weekly_off_days": format_weekdays(weekly_off_days or []),
            "status": status,
        }

        def mutate(tables: Tables) -> dict[str, Any]:
            if barber_id:
                for row in tables.barbers:
                    if str(row.get("barber_id")) == barber_id:
                        row.update(values)
                        return row
            row = {"barber_id": barber_id or uuid.uuid4().hex, **values}
            tables.barbers.append(row)
            return row

        return self._barber_from_row(self._write_tables(mutate))

    def list_services(self) -> list[ServiceRecord]:
        return [self._service_from_row(row) for row in self._read_tables().services if row.get("service_id")]

    def get_service(self, service_id: str) -> ServiceRecord | None:
        for service in self.list_services():
            if service.service_id == service_id:
                return service
        return None

    def upsert_service(
        self,
        name_th: str,
        duration_min: int,
        base_price: float,
        name_en: str | None = None,
        price_promo: float | None = None,
        deposit_amount: float = 0,
        enabled: bool = True,
        service_id: str | None = None,
    ) -> ServiceRecord:
        values = {
            "name_th": name_th,
            "name_en": name_en,
            "duration_min": duration_min,
            "base_price": base_price,
            "price_promo": price_promo,
            "deposit_amount": deposit_amount,
            "enabled": enabled,
        }

        def mutate(tables: Tables) -> dict[str, Any]:
            if service_id:
                for row in tables.services:
                    if str(row.get("service_id")) == service_id:
                        row.update(values)
                        return row
            row = {"service_id": service_id or uuid.uuid4().hex, **values}
            tables.services.append(row)
            return row

        return self._service_from_row(self._write_tables(mutate))

    def list_barber_services(self) -> list[BarberServiceRecord]:
        return [
            BarberServiceRecord(
                barber_id=str(row["barber_id"]),
                service_id=str(row["service_id"]),
                price_normal=float(row.get("price_normal") or 0),
                price_promo=self._optional_float(row.get("price_promo")),
                commission_fixed=float(row.get("commission_fixed") or 0),
                enabled=normalize_bool(row.get("enabled")),
            )
            for row in self._read_tables().barber_services
            if row.get("barber_id") and row.get("service_id")
        ]

    def upsert_barber_service(
        self,
        barber_id: str,
        service_id: str,
        price_normal: float,
        price_promo: float | None = None,
        commission_fixed: float = 0,
        enabled: bool = True,
    ) -> BarberServiceRecord:
        values = {
            "price_normal": price_normal,
            "price_promo": price_promo,
            "commission_fixed": commission_fixed,
            "enabled": enabled,
        }

        def mutate(tables: Tables) -> None:
            for row in tables.barber_services:
                if str(row.get("barber_id")) == barber_id and str(row.get("service_id")) == service_id:
                    row.update(values)
                    return
            tables.barber_services.append({"barber_id": barber_id, "service_id": service_id, **values})

        self._write_tables(mutate)
        return BarberServiceRecord(barber_id=barber_id, service_id=service_id, **values)

    # Bookings

    def list_bookings(
        self,
        start_date: date | None = None,
        end_date: date | None = None,
        barber_id: str | None = None,
    ) -> list[BookingRecord]:
        rows: list[BookingRecord] = []
        for row in self._read_tables().bookings:
            booking = self._booking_or_none(row)
            if booking is None:
                continue
            if start_date and booking.date < start_date:
                continue
            if end_date and booking.date > end_date:
                continue
            if barber_id and booking.barber_id != barber_id:
                continue
            rows.append(booking)
        return rows

    def get_booking(self, booking_id: str) -> BookingRecord | None:
        code = booking_id.strip().upper()
        for item in self.list_bookings():
            if item.booking_id.upper() == code:
                return item
        return None

    def create_booking(
        self,
        barber_id: str,
        barber_name: str,
        service_id: str,
        service_name: str,
        value_date: date,
        start_time: str,
        duration_min: int,
        customer_name: str,
        phone: str,
        price: float,
        deposit_amount: float = 0,
        commission_amount: float | None = None,
        slip_url: str | None = None,
        booking_type: str = "online",
    ) -> BookingRecord:
        now = datetime.now().isoformat()
        requested = Engagement.from_start(start_time, duration_min, settings.default_duration_minutes)

        def mutate(tables: Tables) -> dict[str, Any]:
            bookings = [self._booking_or_none(row) for row in tables.bookings]
            same_day = [
                booking
                for booking in bookings
                if booking is not None
                and booking.barber_id == barber_id
                and booking.date == value_date
                and booking.status in BLOCKING_BOOKING_STATUSES
            ]
            engagements = booking_engagements(same_day, settings.default_duration_minutes)
            if overlaps_any(requested.start_minute, requested.end_minute, engagements):
                raise ValueError("Slot already booked")

            row = {
                "booking_id": generate_booking_code(str(item.get("booking_id")) for item in tables.bookings),
                "booking_type": booking_type,
                "barber_id": barber_id,
                "barber_name": barber_name,
                "service_id": service_id,
                "service_name": service_name,
                "date": value_date,
                "time": start_time,
                "duration_min": duration_min,
                "customer_name": customer_name,
                "phone": phone,
                "slip_url": slip_url,
                "price": price,
                "deposit_amount": deposit_amount,
                "commission_amount": commission_amount,
                "status": "pending",
                "created_at": now,
                "updated_at": now,
            }
            tables.bookings.append(row)
            if not any(normalize_phone(item.get("phone")) == phone for item in tables.customers):
                tables.customers.append(
                    {
                        "customer_id": uuid.uuid4().hex,
                        "name": customer_name,
                        "phone": phone,
                        "note": None,
                        "created_at": now,
                    }
                )
            return row

        return self._booking_from_row(self._write_tables(mutate))

    def update_booking_status(self, booking_id: str, status: str) -> BookingRecord | None:
        code = booking_id.strip().upper()

        def mutate(tables: Tables) -> dict[str, Any] | None:
            for row in tables.bookings:
                if str(row.get("booking_id") or "").upper() != code or self._booking_or_none(row) is None:
                    continue
                current = row.get("status")
                if not can_transition(current, status):
                    raise ValueError(f"Cannot move booking from {current} to {status}")
                row["status"] = status
                row["updated_at"] = datetime.now().isoformat()
                return row
            return None

        row = self._write_tables(mutate)
        return self._booking_from_row(row) if row else None

    def update_booking_slip(self, booking_id: str, slip_url: str) -> BookingRecord | None:
        code = booking_id.strip().upper()

        def mutate(tables: Tables) -> dict[str, Any] | None:
            for row in tables.bookings:
                if str(row.get("booking_id") or "").upper() != code or self._booking_or_none(row) is None:
                    continue
                if row.get("status") != "resubmit":
                    raise ValueError("Slip can only be replaced when a resubmission was requested")
                row["slip_url"] = slip_url
                row["status"] = "pending"
                row["updated_at"] = datetime.now().isoformat()
                return row
            return None

        row = self._write_tables(mutate)
        return self._booking_from_row(row) if row else None

    # Leave requests

    def list_leave_requests(
        self,
        value_date: date | None = None,
        barber_id: str | None = None,
    ) -> list[LeaveRequestRecord]:
        rows: list[LeaveRequestRecord] = []
        for row in self._read_tables().leave_requests:
            leave = self._leave_or_none(row)
            if leave is None:
                continue
            if value_date and leave.date != value_date:
                continue
            if barber_id and leave.barber_id != barber_id:
                continue
            rows.append(leave)
        return rows

    def create_leave_request(
        self,
        barber_id: str,
        value_date: date,
        leave_type: str,
        start_time: str | None = None,
        duration_min: int | None = None,
        reason: str | None = None,
    ) -> LeaveRequestRecord:
        row = {
            "leave_id": uuid.uuid4().hex,
            "barber_id": barber_id,
            "date": value_date,
            "type": leave_type,
            "start_time": start_time,
            "duration_min": duration_min,
            "reason": reason,
            "status": "pending",
            "created_at": datetime.now().isoformat(),
        }

        def mutate(tables: Tables) -> dict[str, Any]:
            tables.leave_requests.append(row)
            return row

        return self._leave_from_row(self._write_tables(mutate))

    def decide_leave_request(self, leave_id: str, status: str) -> LeaveRequestRecord | None:
        def mutate(tables: Tables) -> dict[str, Any] | None:
            for row in tables.leave_requests:
                if row.get("leave_id") != leave_id or self._leave_or_none(row) is None:
                    continue
                if row.get("status") != LEAVE_PENDING:
                    raise ValueError("Leave request already decided")
                row["status"] = status
                return row
            return None

        row = self._write_tables(mutate)
        return self._leave_from_row(row) if row else None

    # Payroll and customers

    def list_salary_payments(self, month_key: str | None = None) -> list[SalaryPaymentRecord]:
        rows: list[SalaryPaymentRecord] = []
        for row in self._read_tables().salary_payments:
            if not row.get("payment_id"):
                continue
            if month_key and str(row.get("month_key")) != month_key:
                continue
            rows.append(
                SalaryPaymentRecord(
                    payment_id=row["payment_id"],
                    barber_id=str(row["barber_id"]),
                    amount=float(row.get("amount") or 0),
                    month_key=str(row["month_key"]),
                    note=row.get("note") or None,
                    created_at=self._parse_datetime(row["created_at"]),
                )
            )
        return rows

    def create_salary_payment(
        self,
        barber_id: str,
        amount: float,
        month_key: str,
        note: str | None = None,
    ) -> SalaryPaymentRecord:
        record = SalaryPaymentRecord(
            payment_id=uuid.uuid4().hex,
            barber_id=barber_id,
            amount=amount,
            month_key=month_key,
            note=note,
            created_at=datetime.now(),
        )

        def mutate(tables: Tables) -> None:
            tables.salary_payments.append(record.model_dump())

        self._write_tables(mutate)
        return record

    def list_customers(self) -> list[CustomerRecord]:
        return [
            CustomerRecord(
                customer_id=row["customer_id"],
                name=str(row.get("name") or ""),
                phone=normalize_phone(row.get("phone")),
                note=row.get("note") or None,
                created_at=self._parse_datetime(row["created_at"]),
            )
            for row in self._read_tables().customers
            if row.get("customer_id")
        ]

    def migrate_customer_phone(self, old_phone: str, new_phone: str) -> tuple[int, int] | None:
        """Rewrite a customer's phone on every booking and customer row in one write."""

        def mutate(tables: Tables) -> tuple[int, int] | None:
            in_use = any(normalize_phone(row.get("phone")) == new_phone for row in tables.bookings)
            in_use = in_use or any(normalize_phone(row.get("phone")) == new_phone for row in tables.customers)
            if in_use:
                raise ValueError("New phone number already belongs to a customer")

            bookings_updated = 0
            for row in tables.bookings:
                if normalize_phone(row.get("phone")) == old_phone:
                    row["phone"] = new_phone
                    bookings_updated += 1
            customers_updated = 0
            for row in tables.customers:
                if normalize_phone(row.get("phone")) == old_phone:
                    row["phone"] = new_phone
                    customers_updated += 1
            if not bookings_updated and not customers_updated:
                return None
            return bookings_updated, customers_updated

        return self._write_tables(mutate)

    # Workbook plumbing

    def _read_tables(self) -> Tables:
        self.init_storage()
        wb = load_workbook(self.data_file)
        try:
            return self._load_tables(wb)
        finally:
            wb.close()

    def _write_tables(self, mutator: Callable[[Tables], Any]) -> Any:
        self.init_storage()
        with self.lock:
            wb = load_workbook(self.data_file)
            try:
                tables = self._load_tables(wb)
                result = mutator(tables)
                for item in fields(Tables):
                    self._write_sheet(wb, item.name, SHEET_HEADERS[item.name], getattr(tables, item.name))
                self._persist_workbook(wb)
                return result
            finally:
                wb.close()

    def _load_tables(self, workbook: Workbook) -> Tables:
        raw = {name: self._read_sheet(workbook, name) for name in SHEET_HEADERS}
        raw["bookings"] = [
            self._canonical_row(row, canonical_booking_row, BookingRecord, BOOKING_COLUMN_ALIASES)
            for row in raw["bookings"]
        ]
        raw["leave_requests"] = [
            self._canonical_row(row, canonical_leave_row, LeaveRequestRecord, LEAVE_COLUMN_ALIASES)
            for row in raw["leave_requests"]
        ]
        return Tables(**raw)

    def _canonical_row(
        self,
        row: dict[str, Any],
        normalizer: Callable[[dict[str, Any]], dict[str, Any]],
        model: type[BookingRecord] | type[LeaveRequestRecord],
        aliases: dict[str, tuple[str, ...]],
    ) -> dict[str, Any]:
        id_column = next(iter(aliases))
        if not any(row.get(name) for name in aliases[id_column]):
            return rename_columns(row, aliases)
        try:
            canonical = normalizer(row)
            model(**canonical)
            return canonical
        except (TypeError, ValueError):
            logger.warning("Keeping unreadable row as stored: %r", row)
            return rename_columns(row, aliases)

    def _persist_workbook(self, workbook: Workbook) -> None:
        with NamedTemporaryFile(suffix=".xlsx", delete=False) as tmp:
            temp_path = Path(tmp.name)
        try:
            workbook.save(temp_path)
            if self.data_file.exists():
                stamp = datetime.now().strftime("%Y%m%d%H%M%S%f")
                backup_path = self.backup_dir / f"barbershop-{stamp}.xlsx"
                shutil.copy2(self.data_file, backup_path)
            shutil.move(str(temp_path), self.data_file)
        finally:
            if temp_path.exists():
                temp_path.unlink(missing_ok=True)

    def _read_sheet(self, workbook: Workbook, name: str) -> list[dict[str, Any]]:
        if name not in workbook.sheetnames:
            return []
        ws = workbook[name]
        rows = ws.iter_rows(values_only=True)
        header_row = next(rows, None)
        if header_row is None:
            return []
        headers = [str(item).strip() if item is not None else "" for item in header_row]
        payloads: list[dict[str, Any]] = []
        for row in rows:
            if all(item is None for item in row):
                continue
            payload: dict[str, Any] = {}
            for index, header in enumerate(headers):
                if header:
                    payload[header] = row[index] if index < len(row) else None
            payloads.append(payload)
        return payloads

    def _write_sheet(
        self,
        workbook: Workbook,
        name: str,
        headers: list[str],
        rows: list[dict[str, Any]],
    ) -> None:
        if name not in workbook.sheetnames:
            workbook.create_sheet(name)
        # Columns we do not know about are carried along after the canonical ones.
        extras = [key for row in rows for key in row if key not in headers]
        columns = headers + list(dict.fromkeys(extras))
        ws = workbook[name]
        ws.delete_rows(1, ws.max_row)
        ws.append(columns)
        for row in rows:
            ws.append([self._cell_value(row.get(header)) for header in columns])

    def _cell_value(self, value: Any) -> Any:
        if isinstance(value, (date, datetime)):
            return value.isoformat()
        return value

    def _barber_from_row(self, row: dict[str, Any]) -> BarberRecord:
        return BarberRecord(
            barber_id=str(row["barber_id"]),
            nickname=str(row.get("nickname") or row.get("name_en") or row.get("name_th") or ""),
            name_th=row.get("name_th") or None,
            name_en=row.get("name_en") or None,
            position=row.get("position") or None,
            weekly_off_days=parse_weekdays(row.get("weekly_off_days")),
            status=row.get("status") or "active",
        )

    def _service_from_row(self, row: dict[str, Any]) -> ServiceRecord:
        return ServiceRecord(
            service_id=str(row["service_id"]),
            name_th=str(row.get("name_th") or ""),
            name_en=row.get("name_en") or None,
            duration_min=int(row.get("duration_min") or settings.default_duration_minutes),
            base_price=float(row.get("base_price") or 0),
            price_promo=self._optional_float(row.get("price_promo")),
            deposit_amount=float(row.get("deposit_amount") or 0),
            enabled=normalize_bool(row.get("enabled")),
        )

    def _booking_from_row(self, row: dict[str, Any]) -> BookingRecord:
        return BookingRecord(**row)

    def _leave_from_row(self, row: dict[str, Any]) -> LeaveRequestRecord:
        return LeaveRequestRecord(**row)

    def _booking_or_none(self, row: dict[str, Any]) -> BookingRecord | None:
        if not row.get("booking_id"):
            return None
        try:
            return self._booking_from_row(row)
        except ValueError:
            return None

    def _leave_or_none(self, row: dict[str, Any]) -> LeaveRequestRecord | None:
        if not row.get("leave_id"):
            return None
        try:
            return self._leave_from_row(row)
        except ValueError:
            return None

    def _optional_float(self, raw: Any) -> float | None:
        if raw is None or raw == "":
            return None
        return float(raw)

    def _parse_datetime(self, raw: Any) -> datetime:
        if isinstance(raw, datetime):
            return raw
        return datetime.fromisoformat(str(raw))
