from __future__ import annotations

from barbershop.repository import ExcelRepository
from barbershop.services import BookingService

repo = ExcelRepository()
service = BookingService(repo=repo)


def get_service() -> BookingService:
    return service
