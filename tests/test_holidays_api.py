from __future__ import annotations

from datetime import date

from fastapi.testclient import TestClient
from sqlalchemy import select

import wfa_calendar.db as app_db
import wfa_calendar.main as main_module
from wfa_calendar.holiday_source import FetchedHoliday
from wfa_calendar.main import app
from wfa_calendar.models import AdminLog, PublicHoliday

ADMIN_PASSWORD = "test-admin-password"


def admin_client() -> TestClient:
    client = TestClient(app)
    res = client.post("/api/admin-auth", json={"password": ADMIN_PASSWORD})
    assert res.json()["isValid"] is True
    return client


def logged_actions() -> list[str]:
    db = app_db.SessionLocal()
    actions = [log.action for log in db.scalars(select(AdminLog).order_by(AdminLog.created_at.asc())).all()]
    db.close()
    return actions


def stub_source(monkeypatch, holidays):
    calls = []

    def fake_fetch(year, settings):
        calls.append(year)
        return list(holidays)

    monkeypatch.setattr(main_module, "fetch_holidays", fake_fetch)
    return calls


def test_first_request_for_a_year_fetches_and_stores(monkeypatch):
    calls = stub_source(
        monkeypatch,
        [FetchedHoliday(date(2026, 1, 1), "Tahun Baru"), FetchedHoliday(date(2026, 3, 20), "Nyepi")],
    )
    client = TestClient(app)
    res = client.get("/api/holidays", params={"year": 2026})
    assert res.status_code == 200
    body = res.json()
    assert [(h["date"], h["name"], h["isManual"]) for h in body] == [
        ("2026-01-01", "Tahun Baru", False),
        ("2026-03-20", "Nyepi", False),
    ]
    assert body[0]["description"] == "Tahun Baru"
    assert calls == [2026]
    # Anonymous fetches from the source are not admin actions.
    assert logged_actions() == []

    again = client.get("/api/holidays", params={"year": 2026})
    assert len(again.json()) == 2
    assert calls == [2026]
    assert logged_actions() == ["FETCH_HOLIDAYS_PUBLIC"]


def test_admin_fetch_from_source_is_logged(monkeypatch):
    stub_source(monkeypatch, [FetchedHoliday(date(2026, 5, 1), "Hari Buruh")])
    client = admin_client()
    res = client.get("/api/holidays", params={"year": 2026})
    assert len(res.json()) == 1
    assert logged_actions() == ["FETCH_HOLIDAYS"]


def test_unreachable_source_returns_empty_list(monkeypatch):
    stub_source(monkeypatch, [])
    client = TestClient(app)
    res = client.get("/api/holidays", params={"year": 2027})
    assert res.status_code == 200
    assert res.json() == []


def test_add_holiday_requires_admin():
    client = TestClient(app)
    res = client.post("/api/holidays", json={"date": "2025-01-02", "name": "Office closed"})
    assert res.status_code == 401
    assert res.json()["detail"] == "Admin authentication required"


def test_add_holiday_shifts_rotation_and_is_logged():
    client = admin_client()
    res = client.post("/api/holidays", json={"date": "2025-01-02", "name": "Office closed"})
    assert res.status_code == 201
    holiday = res.json()
    assert holiday["isManual"] is True
    assert holiday["description"] == "Office closed"

    schedule = client.get("/api/wfa-schedule", params={"startDate": "2025-01-01", "endDate": "2025-01-03"}).json()
    assert [(s["date"], s["block"]) for s in schedule["schedules"]] == [("2025-01-01", "A"), ("2025-01-03", "B")]
    assert logged_actions() == ["ADD_HOLIDAY"]


def test_add_holiday_validation():
    client = admin_client()
    assert client.post("/api/holidays", json={"name": "No date"}).status_code == 400
    assert client.post("/api/holidays", json={"date": "2025-01-02"}).status_code == 400
    assert client.post("/api/holidays", json={"date": "2025-01-02", "name": "First"}).status_code == 201
    duplicate = client.post("/api/holidays", json={"date": "2025-01-02", "name": "Second"})
    assert duplicate.status_code == 409


def test_delete_holiday():
    client = admin_client()
    created = client.post("/api/holidays", json={"date": "2025-01-02", "name": "Office closed"}).json()

    assert client.delete("/api/holidays").status_code == 400
    assert client.delete("/api/holidays", params={"id": "missing"}).status_code == 404
    assert TestClient(app).delete("/api/holidays", params={"id": created["id"]}).status_code == 401

    res = client.delete("/api/holidays", params={"id": created["id"]})
    assert res.status_code == 200
    assert res.json() == {"message": "Holiday deleted successfully"}

    db = app_db.SessionLocal()
    assert db.get(PublicHoliday, created["id"]) is None
    removal = db.scalar(select(AdminLog).where(AdminLog.action == "REMOVE_HOLIDAY"))
    assert removal.details == {"id": created["id"], "name": "Office closed", "date": "2025-01-02"}
    db.close()


def test_year_outside_calendar_range_is_rejected(monkeypatch):
    calls = stub_source(monkeypatch, [])
    client = TestClient(app)
    assert client.get("/api/holidays", params={"year": 10000}).status_code == 422
    assert client.get("/api/holidays", params={"year": 0}).status_code == 422
    assert calls == []


def test_blank_holiday_name_is_rejected_and_names_are_trimmed():
    client = admin_client()
    assert client.post("/api/holidays", json={"date": "2025-01-02", "name": "   "}).status_code == 400

    res = client.post("/api/holidays", json={"date": "2025-01-02", "name": "  Office closed "})
    assert res.status_code == 201
    assert res.json()["name"] == "Office closed"
    assert res.json()["description"] == "Office closed"


def test_source_entries_outside_the_year_update_stored_rows(monkeypatch):
    db = app_db.SessionLocal()
    db.add(PublicHoliday(date=date(2026, 12, 31), name="Old", description="Old", is_manual=False))
    db.commit()
    db.close()
    stub_source(
        monkeypatch,
        [FetchedHoliday(date(2026, 12, 31), "New"), FetchedHoliday(date(2027, 1, 1), "Tahun Baru")],
    )

    res = TestClient(app).get("/api/holidays", params={"year": 2027})
    assert res.status_code == 200
    assert [(h["date"], h["name"]) for h in res.json()] == [("2026-12-31", "New"), ("2027-01-01", "Tahun Baru")]

    db = app_db.SessionLocal()
    holidays = db.scalars(select(PublicHoliday).order_by(PublicHoliday.date.asc())).all()
    assert [(h.date, h.name, h.description) for h in holidays] == [
        (date(2026, 12, 31), "New", "New"),
        (date(2027, 1, 1), "Tahun Baru", "Tahun Baru"),
    ]
    db.close()
