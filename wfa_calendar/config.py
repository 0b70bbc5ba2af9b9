from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from datetime import date
from functools import lru_cache

from wfa_calendar.rotation import DEFAULT_BLOCKS, DEFAULT_PATTERN, RotationConfig

logger = logging.getLogger(__name__)

DEFAULT_START_DATE = "2025-01-01"
DEFAULT_HOLIDAY_API_URL = "https://grei.pythonanywhere.com/api/id_holiday"
DEFAULT_DATABASE_URL = "sqlite:///./wfa_calendar.db"


def normalize_database_url(raw_url: str) -> str:
    if raw_url.startswith("postgres://"):
        return raw_url.replace("postgres://", "postgresql+psycopg://", 1)
    if raw_url.startswith("postgresql://") and "+" not in raw_url.split("://", 1)[0]:
        return raw_url.replace("postgresql://", "postgresql+psycopg://", 1)
    return raw_url


def parse_blocks(raw: str | None) -> tuple[str, ...]:
    if not raw:
        return DEFAULT_BLOCKS
    blocks = tuple(part.strip() for part in raw.replace('"', "").split(",") if part.strip())
    return blocks or DEFAULT_BLOCKS


def parse_pattern(raw: str | None) -> tuple[str, ...]:
    if not raw:
        return DEFAULT_PATTERN
    try:
        pattern = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("WFA_PER_BLOCK_PATTERN is not valid JSON, using the default pattern")
        return DEFAULT_PATTERN
    if not isinstance(pattern, list) or not pattern:
        return DEFAULT_PATTERN
    return tuple(str(status) for status in pattern)


@dataclass(frozen=True)
class Settings:
    wfa_start_date: date
    database_url: str = DEFAULT_DATABASE_URL
    wfa_blocks: tuple[str, ...] = DEFAULT_BLOCKS
    wfa_pattern: tuple[str, ...] = DEFAULT_PATTERN
    wfa_pattern_offset: int = 0
    admin_password: str | None = None
    admin_password_hash: str | None = None
    holiday_api_url: str = DEFAULT_HOLIDAY_API_URL
    holiday_api_timeout: float = 10.0
    environment: str = "local"
    log_level: str = "INFO"

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    def rotation_config(self) -> RotationConfig:
        return RotationConfig(
            start_date=self.wfa_start_date,
            blocks=self.wfa_blocks,
            pattern=self.wfa_pattern,
            offset=self.wfa_pattern_offset,
        )


def load_settings() -> Settings:
    return Settings(
        wfa_start_date=date.fromisoformat(os.getenv("WFA_START_DATE", DEFAULT_START_DATE)),
        database_url=normalize_database_url(os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL)),
        wfa_blocks=parse_blocks(os.getenv("WFA_BLOCKS")),
        wfa_pattern=parse_pattern(os.getenv("WFA_PER_BLOCK_PATTERN")),
        wfa_pattern_offset=int(os.getenv("WFA_PATTERN_OFFSET", "0")),
        admin_password=os.getenv("ADMIN_PASSWORD") or None,
        admin_password_hash=os.getenv("ADMIN_PASSWORD_HASH") or None,
        holiday_api_url=os.getenv("HOLIDAY_API_URL", DEFAULT_HOLIDAY_API_URL).rstrip("/"),
        holiday_api_timeout=float(os.getenv("HOLIDAY_API_TIMEOUT", "10")),
        environment=os.getenv("ENVIRONMENT", "local"),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )


@lru_cache
def get_settings() -> Settings:
    return load_settings()


def configure_logging(settings: Settings | None = None) -> None:
    settings = settings or get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
