from __future__ import annotations

from datetime import date, datetime, timedelta

import pytest
from fastapi import HTTPException
from filelock import FileLock

from barbershop.models import (
    BookingCreate,
    LeaveRequestCreate,
    SalaryPaymentCreate,
)
from barbershop.repository import ExcelRepository
from barbershop.services import BookingService

# Saturday morning; TUESDAY is inside the booking window.
CURRENT = datetime(2026, 10, 17, 9, 0)
MONDAY = date(2026, 10, 19)
TUESDAY = date(2026, 10, 20)
FULL_DAY = [f"{hour}:00" for hour in range(10, 21)]


@pytest.fixture()
def shop(tmp_path):
    repo = ExcelRepository()
    repo.data_file = tmp_path / "barbershop.xlsx"
    repo.backup_dir = tmp_path / "backups"
    repo.lock = FileLock(str(tmp_path / "barbershop.lock"))
    repo.init_storage()
    svc = BookingService(repo=repo)

    senior = repo.upsert_barber("Tony", position="Senior Barber", weekly_off_days=[1], barber_id="b1")
    junior = repo.upsert_barber("Mike", position="Barber", barber_id="b2")
    haircut = repo.upsert_service(
        "Haircut",
        duration_min=60,
        base_price=400,
        deposit_amount=100,
        service_id="s1",
    )
    wash_cut = repo.upsert_service("Wash and cut", duration_min=90, base_price=600, service_id="s2")
    repo.upsert_barber_service("b1", "s1", price_normal=500, commission_fixed=150)
    repo.upsert_barber_service("b2", "s1", price_normal=350, price_promo=300, commission_fixed=100)
    repo.upsert_barber_service("b2", "s2", price_normal=550, commission_fixed=180)

    return {
        "repo": repo,
        "service": svc,
        "senior": senior,
        "junior": junior,
        "haircut": haircut,
        "wash_cut": wash_cut,
    }


def _book(svc, barber_id="b2", service_id="s1", value_date=TUESDAY, time="10:00", phone="0812345678", name="Somchai"):
    return svc.create_booking(
        BookingCreate(
            barber_id=barber_id,
            service_id=service_id,
            date=value_date,
            time=time,
            customer_name=name,
            phone=phone,
        ),
        current=CURRENT,
    )


def _slots(svc, barber_id="b2", service_id="s1", value_date=TUESDAY, current=CURRENT):
    return svc.available_slots(barber_id, service_id, value_date, current=current).available_times


def test_free_day_offers_every_fitting_slot(shop):
    assert _slots(shop["service"]) == FULL_DAY


def test_weekly_off_day_has_no_slots(shop):
    assert _slots(shop["service"], barber_id="b1", value_date=MONDAY) == []
    assert _slots(shop["service"], barber_id="b1", value_date=TUESDAY) == FULL_DAY


def test_longer_booking_blocks_following_slot(shop):
    svc = shop["service"]
    _book(svc, service_id="s2", time="10:00")
    slots = _slots(svc)
    assert "10:00" not in slots
    assert "11:00" not in slots
    assert "12:00" in slots


def test_prevent_barber_double_booking(shop):
    svc = shop["service"]
    _book(svc, time="14:00")
    with pytest.raises(HTTPException) as exc:
        _book(svc, time="14:00", phone="0899999999")
    assert exc.value.status_code == 409


def test_repository_rechecks_overlap_inside_write(shop):
    repo = shop["repo"]
    fields = dict(
        barber_id="b2",
        barber_name="Mike",
        service_id="s1",
        service_name="Haircut",
        value_date=TUESDAY,
        start_time="16:00",
        duration_min=60,
        customer_name="Anan",
        phone="0811111111",
        price=300,
    )
    repo.create_booking(**fields)
    with pytest.raises(ValueError):
        repo.create_booking(**fields)


def test_other_barber_unaffected(shop):
    svc = shop["service"]
    _book(svc, time="10:00")
    assert _slots(svc, barber_id="b1") == FULL_DAY


def test_cancelled_booking_frees_slot(shop):
    svc = shop["service"]
    booking = _book(svc, time="12:00")
    assert "12:00" not in _slots(svc)
    svc.update_booking_status(booking.booking_id, "cancelled")
    assert "12:00" in _slots(svc)


def test_full_day_leave_blocks_until_rejected(shop):
    svc = shop["service"]
    leave = svc.request_leave(LeaveRequestCreate(barber_id="b2", date=TUESDAY, type="sick"))
    assert _slots(svc) == []

    svc.decide_leave(leave.leave_id, approved=False)
    assert _slots(svc) == FULL_DAY


def test_short_break_in_hours_is_normalized(shop):
    svc = shop["service"]
    leave = svc.request_leave(
        LeaveRequestCreate(barber_id="b2", date=TUESDAY, type="break", start_time="13:00", duration_hours=2)
    )
    assert leave.duration_min == 120
    svc.decide_leave(leave.leave_id, approved=True)
    slots = _slots(svc)
    assert "12:00" in slots
    assert "13:00" not in slots
    assert "14:00" not in slots
    assert "15:00" in slots


def test_short_break_with_end_time(shop):
    leave = shop["service"].request_leave(
        LeaveRequestCreate(barber_id="b2", date=TUESDAY, type="break", start_time="17:00", end_time="17:30")
    )
    assert leave.duration_min == 30


def test_break_needs_start_time(shop):
    with pytest.raises(HTTPException) as exc:
        shop["service"].request_leave(LeaveRequestCreate(barber_id="b2", date=TUESDAY, type="break"))
    assert exc.value.status_code == 400


def test_leave_can_only_be_decided_once(shop):
    svc = shop["service"]
    leave = svc.request_leave(LeaveRequestCreate(barber_id="b2", date=TUESDAY, type="leave"))
    svc.decide_leave(leave.leave_id, approved=True)
    with pytest.raises(HTTPException) as exc:
        svc.decide_leave(leave.leave_id, approved=False)
    assert exc.value.status_code == 409


def test_same_day_buffer(shop):
    now = datetime(2026, 10, 20, 14, 5)
    assert _slots(shop["service"], current=now) == ["15:00", "16:00", "17:00", "18:00", "19:00", "20:00"]


def test_past_date_has_no_slots(shop):
    assert _slots(shop["service"], value_date=CURRENT.date() - timedelta(days=1)) == []


def test_reject_invalid_phone(shop):
    with pytest.raises(HTTPException) as exc:
        _book(shop["service"], phone="12345")
    assert exc.value.status_code == 400


def test_reject_outside_window(shop):
    with pytest.raises(HTTPException) as exc:
        _book(shop["service"], value_date=CURRENT.date() + timedelta(days=30))
    assert exc.value.status_code == 400


def test_reject_time_off_grid(shop):
    with pytest.raises(HTTPException) as exc:
        _book(shop["service"], time="10:30")
    assert exc.value.status_code == 400


def test_reject_service_not_offered_by_barber(shop):
    with pytest.raises(HTTPException) as exc:
        _book(shop["service"], barber_id="b1", service_id="s2")
    assert exc.value.status_code == 400


def test_booking_carries_price_commission_and_code(shop):
    booking = _book(shop["service"], phone="081-234-5678")
    assert booking.price == 300
    assert booking.commission_amount == 100
    assert booking.deposit_amount == 100
    assert booking.phone == "0812345678"
    assert booking.status == "pending"
    assert len(booking.booking_id) == 6
    assert booking.booking_id.isalnum() and booking.booking_id.upper() == booking.booking_id
    assert shop["service"].get_booking_or_404(booking.booking_id.lower()).booking_id == booking.booking_id


def test_status_transitions(shop):
    svc = shop["service"]
    booking = _book(svc)
    for status in ["confirmed", "in_progress", "done"]:
        booking = svc.update_booking_status(booking.booking_id, status)
    assert booking.status == "done"
    with pytest.raises(HTTPException) as exc:
        svc.update_booking_status(booking.booking_id, "cancelled")
    assert exc.value.status_code == 409


def test_unknown_booking_status_update(shop):
    with pytest.raises(HTTPException) as exc:
        shop["service"].update_booking_status("ZZZZZZ", "confirmed")
    assert exc.value.status_code == 404


def test_slip_resubmission(shop):
    svc = shop["service"]
    booking = _book(svc)
    with pytest.raises(HTTPException) as exc:
        svc.replace_slip(booking.booking_id, "https://img.example/slip-2.jpg")
    assert exc.value.status_code == 409

    svc.update_booking_status(booking.booking_id, "resubmit")
    updated = svc.replace_slip(booking.booking_id, "https://img.example/slip-2.jpg")
    assert updated.status == "pending"
    assert updated.slip_url == "https://img.example/slip-2.jpg"


def test_barbers_sorted_by_position_then_price(shop):
    offers = shop["service"].list_barbers_for_service("s1")
    assert [offer.barber.barber_id for offer in offers] == ["b1", "b2"]
    assert [offer.price for offer in offers] == [500, 300]
    assert [offer.barber.barber_id for offer in shop["service"].list_barbers_for_service("s2")] == ["b2"]


def test_list_bookings_search(shop):
    svc = shop["service"]
    _book(svc, time="10:00", name="Somchai", phone="0812345678")
    _book(svc, time="11:00", name="Anan", phone="0899999999")
    assert [b.customer_name for b in svc.list_bookings(search="anan")] == ["Anan"]
    assert [b.time for b in svc.list_bookings(search="0812")] == ["10:00"]
    assert len(svc.list_bookings(status_filter="pending", value_date=TUESDAY)) == 2


def test_commission_report(shop):
    svc = shop["service"]
    first = _book(svc, time="10:00")
    second = _book(svc, time="11:00", phone="0899999999", name="Anan")
    _book(svc, time="12:00", phone="0877777777", name="Pending")
    for booking in (first, second):
        svc.update_booking_status(booking.booking_id, "confirmed")
        svc.update_booking_status(booking.booking_id, "done")
    svc.record_salary_payment(SalaryPaymentCreate(barber_id="b2", amount=120, month=10, year=2026))

    report = svc.commission_report(month=10, year=2026)
    assert report.month_key == "10-2026"
    assert len(report.barbers) == 1
    mike = report.barbers[0]
    assert mike.name == "Mike"
    assert mike.booking_count == 2
    assert mike.total_earning == 600
    assert mike.total_commission == 200
    assert mike.total_paid == 120
    assert mike.remaining == 80

    assert svc.commission_report(month=11, year=2026).barbers == []


def test_customer_summaries_and_phone_migration(shop):
    svc = shop["service"]
    booking = _book(svc, time="10:00", phone="0812345678", name="Somchai")
    svc.update_booking_status(booking.booking_id, "confirmed")
    svc.update_booking_status(booking.booking_id, "done")
    _book(svc, time="12:00", phone="0812345678", name="Somchai")
    _book(svc, time="14:00", phone="0899999999", name="Anan")

    summaries = {row.phone: row for row in svc.customer_summaries()}
    assert summaries["0812345678"].total_visits == 1
    assert summaries["0812345678"].total_spent == 300
    assert summaries["0812345678"].last_visit == TUESDAY
    assert summaries["0899999999"].total_visits == 0

    result = svc.migrate_customer_phone("0812345678", "0823456789")
    assert result.bookings_updated == 2
    assert result.customers_updated == 1
    phones = {row.phone for row in svc.customer_summaries()}
    assert phones == {"0823456789", "0899999999"}

    with pytest.raises(HTTPException) as exc:
        svc.migrate_customer_phone("0823456789", "0899999999")
    assert exc.value.status_code == 409
    with pytest.raises(HTTPException) as exc:
        svc.migrate_customer_phone("0800000000", "0811111111")
    assert exc.value.status_code == 404
    with pytest.raises(HTTPException) as exc:
        svc.migrate_customer_phone("0823456789", "123")
    assert exc.value.status_code == 400


def test_dashboard(shop):
    svc = shop["service"]
    done = _book(svc, time="10:00")
    svc.update_booking_status(done.booking_id, "confirmed")
    svc.update_booking_status(done.booking_id, "done")
    _book(svc, time="12:00", phone="0899999999")
    svc.request_leave(LeaveRequestCreate(barber_id="b1", date=TUESDAY, type="personal"))

    stats = svc.dashboard(today=TUESDAY)
    assert stats.pending_bookings == 1
    assert stats.pending_leave_requests == 1
    assert stats.today_bookings == 1
    assert stats.month_revenue == 300


def test_unreadable_workbook_reports_retryable_error(shop):
    shop["repo"].data_file.write_bytes(b"not a workbook")
    with pytest.raises(HTTPException) as exc:
        _slots(shop["service"])
    assert exc.value.status_code == 503


def test_backup_created_on_write(shop):
    _book(shop["service"])
    backups = list(shop["repo"].backup_dir.glob("*.xlsx"))
    assert backups


def test_services_listed_cheapest_first(shop):
    shop["repo"].upsert_service("Kids cut", duration_min=30, base_price=800, price_promo=200, service_id="s3")
    assert [item.service_id for item in shop["service"].list_services()] == ["s3", "s1", "s2"]


def test_no_slots_for_inactive_barber(shop):
    shop["repo"].upsert_barber("Mike", position="Barber", status="inactive", barber_id="b2")
    with pytest.raises(HTTPException) as exc:
        _slots(shop["service"])
    assert exc.value.status_code == 400


def test_no_slots_for_service_barber_does_not_offer(shop):
    with pytest.raises(HTTPException) as exc:
        _slots(shop["service"], barber_id="b1", service_id="s2")
    assert exc.value.status_code == 400


def test_list_bookings_for_one_barber(shop):
    svc = shop["service"]
    _book(svc, barber_id="b2", time="10:00")
    _book(svc, barber_id="b1", time="11:00", phone="0899999999", name="Anan")
    schedule = svc.list_bookings(barber_id="b1", value_date=TUESDAY)
    assert [(b.barber_id, b.time) for b in schedule] == [("b1", "11:00")]
    assert len(svc.list_bookings(value_date=TUESDAY)) == 2


def test_leave_decision_rechecked_inside_write(shop):
    repo = shop["repo"]
    leave = shop["service"].request_leave(LeaveRequestCreate(barber_id="b2", date=TUESDAY, type="leave"))
    repo.decide_leave_request(leave.leave_id, "approved")
    with pytest.raises(ValueError):
        repo.decide_leave_request(leave.leave_id, "rejected")
    assert [item.status for item in repo.list_leave_requests(barber_id="b2")] == ["approved"]
    assert repo.decide_leave_request("missing", "approved") is None
    with pytest.raises(HTTPException) as exc:
        shop["service"].decide_leave("missing", approved=True)
    assert exc.value.status_code == 404
