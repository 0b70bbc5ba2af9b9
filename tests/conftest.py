from __future__ import annotations

import os

import pytest

import wfa_calendar.db as app_db
from wfa_calendar import models  # noqa: F401
from wfa_calendar.config import get_settings

ADMIN_PASSWORD = "test-admin-password"

os.environ.setdefault("ADMIN_PASSWORD", ADMIN_PASSWORD)
os.environ.setdefault("WFA_START_DATE", "2025-01-01")


@pytest.fixture(autouse=True)
def reset_database(tmp_path, monkeypatch):
    db_file = tmp_path / "test_wfa_calendar.db"
    db_url = f"sqlite:///{db_file}"
    monkeypatch.setenv("DATABASE_URL", db_url)
    monkeypatch.setenv("ADMIN_PASSWORD", ADMIN_PASSWORD)
    monkeypatch.setenv("WFA_START_DATE", "2025-01-01")
    monkeypatch.delenv("ADMIN_PASSWORD_HASH", raising=False)
    monkeypatch.delenv("WFA_BLOCKS", raising=False)
    monkeypatch.delenv("WFA_PER_BLOCK_PATTERN", raising=False)
    monkeypatch.delenv("WFA_PATTERN_OFFSET", raising=False)
    monkeypatch.delenv("ENVIRONMENT", raising=False)
    get_settings.cache_clear()

    # Rebuild DB bindings per test so every test gets its own writable SQLite file.
    app_db.configure_database(get_settings().database_url)

    app_db.Base.metadata.drop_all(bind=app_db.engine)
    app_db.Base.metadata.create_all(bind=app_db.engine)
    yield
    app_db.Base.metadata.drop_all(bind=app_db.engine)
    app_db.engine.dispose()
    get_settings.cache_clear()
