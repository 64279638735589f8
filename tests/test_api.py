from __future__ import annotations

from datetime import date, timedelta

import pytest
from fastapi.testclient import TestClient
from filelock import FileLock

from barbershop.deps import get_service
from barbershop.main import app
from barbershop.repository import ExcelRepository
from barbershop.services import BookingService


@pytest.fixture()
def client(tmp_path):
    repo = ExcelRepository()
    repo.data_file = tmp_path / "barbershop.xlsx"
    repo.backup_dir = tmp_path / "backups"
    repo.lock = FileLock(str(tmp_path / "barbershop.lock"))
    repo.init_storage()
    repo.upsert_barber("Mike", barber_id="b2")
    repo.upsert_service("Haircut", duration_min=60, base_price=300, service_id="s1")
    repo.upsert_barber_service("b2", "s1", price_normal=300, commission_fixed=100)

    service = BookingService(repo=repo)
    app.dependency_overrides[get_service] = lambda: service
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def _future_day() -> date:
    return date.today() + timedelta(days=3)


def test_healthz(client):
    response = client.get("/healthz")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_catalogue(client):
    services = client.get("/api/services").json()
    assert [item["service_id"] for item in services] == ["s1"]
    offers = client.get("/api/services/s1/barbers").json()
    assert [item["barber"]["barber_id"] for item in offers] == ["b2"]
    assert client.get("/api/services/missing/barbers").status_code == 404


def test_book_and_fetch(client):
    day = _future_day()
    params = {"barber_id": "b2", "service_id": "s1", "date": day.isoformat()}
    before = client.get("/api/availability", params=params).json()
    assert "13:00" in before["available_times"]
    assert before["duration_min"] == 60

    response = client.post(
        "/api/bookings",
        json={
            "barber_id": "b2",
            "service_id": "s1",
            "date": day.isoformat(),
            "time": "13:00",
            "customer_name": "Somchai",
            "phone": "0812345678",
        },
    )
    assert response.status_code == 201
    booking = response.json()
    assert booking["status"] == "pending"

    fetched = client.get(f"/api/bookings/{booking['booking_id'].lower()}")
    assert fetched.status_code == 200
    assert fetched.json()["booking_id"] == booking["booking_id"]

    after = client.get("/api/availability", params=params).json()
    assert "13:00" not in after["available_times"]

    clash = client.post(
        "/api/bookings",
        json={
            "barber_id": "b2",
            "service_id": "s1",
            "date": day.isoformat(),
            "time": "13:00",
            "customer_name": "Anan",
            "phone": "0899999999",
        },
    )
    assert clash.status_code == 409


def test_status_update_rejects_bad_transition(client):
    day = _future_day()
    created = client.post(
        "/api/bookings",
        json={
            "barber_id": "b2",
            "service_id": "s1",
            "date": day.isoformat(),
            "time": "10:00",
            "customer_name": "Somchai",
            "phone": "0812345678",
        },
    ).json()
    url = f"/api/bookings/{created['booking_id']}/status"
    assert client.patch(url, json={"status": "done"}).status_code == 409
    assert client.patch(url, json={"status": "confirmed"}).json()["status"] == "confirmed"
    assert client.patch(url, json={"status": "unknown"}).status_code == 422


def test_commission_query_validation(client):
    assert client.get("/api/admin/commission", params={"month": 13, "year": 2026}).status_code == 422
    report = client.get("/api/admin/commission", params={"month": 1, "year": 2026})
    assert report.status_code == 200
    assert report.json()["barbers"] == []


def test_admin_barber_and_leave_flow(client):
    saved = client.post("/api/admin/barbers", json={"nickname": "Tony", "position": "Senior", "weekly_off_days": [1]})
    assert saved.status_code == 200
    assert saved.json()["weekly_off_days"] == [1]
    assert client.post("/api/admin/barbers", json={"nickname": "Bad", "weekly_off_days": [7]}).status_code == 400

    day = _future_day()
    created = client.post(
        "/api/leave-requests",
        json={"barber_id": "b2", "date": day.isoformat(), "type": "leave", "reason": "family"},
    )
    assert created.status_code == 201
    leave_id = created.json()["leave_id"]

    pending = client.get("/api/leave-requests", params={"status": "pending"}).json()
    assert [item["leave_id"] for item in pending] == [leave_id]
    params = {"barber_id": "b2", "service_id": "s1", "date": day.isoformat()}
    assert client.get("/api/availability", params=params).json()["available_times"] == []

    decided = client.patch(f"/api/leave-requests/{leave_id}", json={"approved": False})
    assert decided.json()["status"] == "rejected"
    assert client.get("/api/availability", params=params).json()["available_times"] != []


def test_list_bookings_by_barber(client):
    day = _future_day()
    client.post(
        "/api/bookings",
        json={
            "barber_id": "b2",
            "service_id": "s1",
            "date": day.isoformat(),
            "time": "11:00",
            "customer_name": "Somchai",
            "phone": "0812345678",
        },
    )
    mine = client.get("/api/bookings", params={"barber_id": "b2", "date": day.isoformat()}).json()
    assert [item["time"] for item in mine] == ["11:00"]
    assert client.get("/api/bookings", params={"barber_id": "nobody"}).json() == []
