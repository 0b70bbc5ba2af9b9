from __future__ import annotations

from datetime import datetime, timedelta, timezone

from fastapi.testclient import TestClient
from sqlalchemy import select

import wfa_calendar.db as app_db
from wfa_calendar.config import get_settings
from wfa_calendar.main import app
from wfa_calendar.models import AdminLog, AdminSession
from wfa_calendar.security import hash_password

ADMIN_PASSWORD = "test-admin-password"


def admin_login(client: TestClient, password: str = ADMIN_PASSWORD, **kwargs):
    return client.post("/api/admin-auth", json={"password": password}, **kwargs)


def test_login_sets_http_only_strict_cookie():
    client = TestClient(app)
    res = admin_login(client)
    assert res.status_code == 200
    assert res.json() == {"isValid": True, "message": "Authentication successful"}
    cookie = res.headers.get("set-cookie", "")
    assert "admin-session=" in cookie
    assert "HttpOnly" in cookie
    assert "SameSite=strict" in cookie
    assert "Secure" not in cookie
    assert client.get("/api/admin-logs").status_code == 200


def test_wrong_password_is_not_an_http_error():
    client = TestClient(app)
    res = admin_login(client, "nope")
    assert res.status_code == 200
    assert res.json() == {"isValid": False, "message": "Invalid password"}
    assert "set-cookie" not in res.headers
    assert client.get("/api/admin-logs").status_code == 401


def test_missing_password_and_unconfigured_admin(monkeypatch):
    client = TestClient(app)
    assert client.post("/api/admin-auth", json={}).status_code == 400

    monkeypatch.delenv("ADMIN_PASSWORD", raising=False)
    get_settings.cache_clear()
    res = admin_login(client)
    assert res.status_code == 500
    assert res.json()["detail"] == "Admin password not configured"


def test_bcrypt_hash_takes_precedence(monkeypatch):
    monkeypatch.setenv("ADMIN_PASSWORD_HASH", hash_password("hashed-admin-secret"))
    get_settings.cache_clear()
    client = TestClient(app)
    assert admin_login(client).json()["isValid"] is False
    assert admin_login(client, "hashed-admin-secret").json()["isValid"] is True


def test_cookie_is_secure_in_production_or_behind_https(monkeypatch):
    client = TestClient(app)
    behind_proxy = admin_login(client, headers={"x-forwarded-proto": "https"})
    assert "Secure" in behind_proxy.headers.get("set-cookie", "")

    monkeypatch.setenv("ENVIRONMENT", "production")
    get_settings.cache_clear()
    production = admin_login(TestClient(app))
    assert "Secure" in production.headers.get("set-cookie", "")


def test_logout_ends_session():
    client = TestClient(app)
    admin_login(client)
    session_id = client.cookies.get("admin-session")
    assert session_id

    res = client.delete("/api/admin-auth")
    assert res.status_code == 200
    assert res.json() == {"message": "Logged out successfully"}

    db = app_db.SessionLocal()
    assert db.get(AdminSession, session_id) is None
    db.close()

    other = TestClient(app)
    assert other.get("/api/admin-logs", headers={"x-admin-session": session_id}).status_code == 401


def test_session_header_and_expiry():
    client = TestClient(app)
    admin_login(client)
    session_id = client.cookies.get("admin-session")

    other = TestClient(app)
    assert other.get("/api/admin-logs", headers={"x-admin-session": session_id}).status_code == 200

    db = app_db.SessionLocal()
    row = db.get(AdminSession, session_id)
    row.expires_at = datetime.now(timezone.utc) - timedelta(seconds=1)
    db.add(row)
    db.commit()
    db.close()

    assert other.get("/api/admin-logs", headers={"x-admin-session": session_id}).status_code == 401
    db = app_db.SessionLocal()
    assert db.get(AdminSession, session_id) is None
    db.close()


def test_admin_logs_filter_and_paging():
    db = app_db.SessionLocal()
    base = datetime(2025, 1, 1, tzinfo=timezone.utc)
    for minute, action in enumerate(["ADD_HOLIDAY", "REMOVE_HOLIDAY", "ADD_HOLIDAY", "ADD_HOLIDAY"]):
        db.add(
            AdminLog(
                action=action,
                details={"n": minute},
                local_ip="10.0.0.1",
                created_at=base + timedelta(minutes=minute),
            )
        )
    db.commit()
    db.close()

    client = TestClient(app)
    admin_login(client)

    page = client.get("/api/admin-logs", params={"action": "ADD_HOLIDAY", "limit": 2}).json()
    assert page["total"] == 3
    assert page["limit"] == 2
    assert page["offset"] == 0
    assert page["hasMore"] is True
    assert [log["details"]["n"] for log in page["logs"]] == [3, 2]
    assert page["logs"][0]["localIP"] == "10.0.0.1"

    rest = client.get("/api/admin-logs", params={"action": "ADD_HOLIDAY", "limit": 2, "offset": 2}).json()
    assert [log["details"]["n"] for log in rest["logs"]] == [0]
    assert rest["hasMore"] is False

    everything = client.get("/api/admin-logs").json()
    assert everything["total"] == 4


def test_user_ip_endpoint():
    client = TestClient(app)
    assert client.get("/api/user-ip", headers={"x-forwarded-for": "::ffff:203.0.113.9"}).json() == {"ip": "203.0.113.9"}
    assert client.get("/api/user-ip").json() == {"ip": "127.0.0.1"}


def test_admin_logs_are_not_written_by_login():
    client = TestClient(app)
    admin_login(client)
    db = app_db.SessionLocal()
    assert db.scalars(select(AdminLog)).all() == []
    db.close()
