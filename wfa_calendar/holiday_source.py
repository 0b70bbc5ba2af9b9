"""Client for the third-party public holiday feed.

The feed answers ``GET <base>/<year>-01-01/<year>-12-31`` with a JSON object
mapping ISO dates to holiday names.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import NamedTuple

import requests

from wfa_calendar.config import Settings

logger = logging.getLogger(__name__)


class HolidaySourceError(RuntimeError):
    pass


class FetchedHoliday(NamedTuple):
    date: date
    name: str


def holiday_url(year: int, settings: Settings) -> str:
    return f"{settings.holiday_api_url}/{year}-01-01/{year}-12-31"


def parse_holiday_payload(payload: object) -> list[FetchedHoliday]:
    if not isinstance(payload, dict):
        raise HolidaySourceError(f"Unexpected holiday payload type: {type(payload).__name__}")
    holidays = []
    for raw_date, name in payload.items():
        try:
            holiday_date = date.fromisoformat(str(raw_date))
        except ValueError as exc:
            raise HolidaySourceError(f"Invalid holiday date {raw_date!r}") from exc
        holidays.append(FetchedHoliday(date=holiday_date, name=str(name)))
    holidays.sort(key=lambda h: h.date)
    return holidays


def _request_holidays(year: int, settings: Settings) -> list[FetchedHoliday]:
    try:
        response = requests.get(holiday_url(year, settings), timeout=settings.holiday_api_timeout)
        response.raise_for_status()
        payload = response.json()
    except (requests.RequestException, ValueError) as exc:
        raise HolidaySourceError(f"Holiday source request failed for {year}: {exc}") from exc
    return parse_holiday_payload(payload)


def fetch_holidays(year: int, settings: Settings) -> list[FetchedHoliday]:
    """Holidays for ``year``; an unreachable or malformed source yields none."""
    try:
        holidays = _request_holidays(year, settings)
    except HolidaySourceError:
        logger.exception("Error fetching holidays for %s from %s", year, settings.holiday_api_url)
        return []
    logger.info("Fetched %d holidays for %s from %s", len(holidays), year, settings.holiday_api_url)
    return holidays
