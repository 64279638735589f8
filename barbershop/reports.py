from __future__ import annotations

from typing import Iterable

from barbershop.constants import BOOKING_DONE
from barbershop.domain import month_key as build_month_key
from barbershop.models import (
    BarberCommission,
    BarberRecord,
    BarberServiceRecord,
    BookingRecord,
    CommissionJob,
    CommissionReport,
    CustomerRecord,
    CustomerSummary,
    SalaryPaymentRecord,
)


def job_commission(
    booking: BookingRecord,
    pricing: dict[tuple[str, str], float],
) -> float:
    """Commission stored on the booking wins; otherwise fall back to current pricing."""
    if booking.commission_amount is not None:
        return booking.commission_amount
    return pricing.get((booking.barber_id, booking.service_id), 0.0)


def build_commission_report(
    bookings: Iterable[BookingRecord],
    payments: Iterable[SalaryPaymentRecord],
    pricing: Iterable[BarberServiceRecord],
    barbers: Iterable[BarberRecord],
    month: int,
    year: int,
) -> CommissionReport:
    key = build_month_key(month, year)
    commission_by_pair = {
        (item.barber_id, item.service_id): item.commission_fixed for item in pricing if item.enabled
    }
    names = {barber.barber_id: barber.display_name for barber in barbers}

    stats: dict[str, BarberCommission] = {}
    for booking in bookings:
        if booking.date.month != month or booking.date.year != year:
            continue
        if booking.status != BOOKING_DONE:
            continue
        entry = stats.get(booking.barber_id)
        if entry is None:
            entry = BarberCommission(
                barber_id=booking.barber_id,
                name=names.get(booking.barber_id) or booking.barber_name,
            )
            stats[booking.barber_id] = entry

        commission = job_commission(booking, commission_by_pair)
        entry.booking_count += 1
        entry.total_earning += booking.price
        entry.total_commission += commission
        entry.jobs.append(
            CommissionJob(
                booking_id=booking.booking_id,
                date=booking.date,
                time=booking.time,
                service_name=booking.service_name,
                customer_name=booking.customer_name,
                price=booking.price,
                commission=commission,
            )
        )

    for payment in payments:
        if payment.month_key != key:
            continue
        # Payments for barbers without finished jobs this month are not reported.
        if payment.barber_id in stats:
            stats[payment.barber_id].total_paid += payment.amount

    for entry in stats.values():
        entry.remaining = entry.total_commission - entry.total_paid
        entry.jobs.sort(key=lambda job: (job.date, job.time))

    return CommissionReport(
        month_key=key,
        barbers=sorted(stats.values(), key=lambda item: (item.name.lower(), item.barber_id)),
    )


def build_customer_summaries(
    customers: Iterable[CustomerRecord],
    bookings: Iterable[BookingRecord],
    search: str | None = None,
) -> list[CustomerSummary]:
    summaries: dict[str, CustomerSummary] = {}

    for customer in customers:
        if customer.phone:
            summaries[customer.phone] = CustomerSummary(name=customer.name, phone=customer.phone)

    for booking in sorted(bookings, key=lambda item: (item.date, item.time)):
        if not booking.phone:
            continue
        summary = summaries.get(booking.phone)
        if summary is None:
            summary = CustomerSummary(name=booking.customer_name, phone=booking.phone)
            summaries[booking.phone] = summary
        elif not summary.name:
            summary.name = booking.customer_name
        if booking.status != BOOKING_DONE:
            continue
        summary.total_visits += 1
        summary.total_spent += booking.price
        summary.last_visit = booking.date

    rows = list(summaries.values())
    if search:
        needle = search.strip().lower()
        rows = [row for row in rows if needle in row.name.lower() or needle in row.phone]
    return sorted(rows, key=lambda row: (row.name.lower(), row.phone))
