"""Stateless WFA rotation.

The block that works from anywhere on a given day is never stored. It is
derived from the number of working days (weekdays that are not holidays)
elapsed since the rotation epoch, so any past or future range can be
computed from the epoch, the pattern and the holiday set alone.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import AbstractSet, Any, Iterable

DEFAULT_BLOCKS = ("A", "B", "C", "D")
DEFAULT_PATTERN = ("WFA", "WFO", "WFO", "WFO")
OUT_OF_OFFICE_STATUS = "WFA"


class InvalidRangeError(ValueError):
    """Raised when a requested range ends before it starts."""


@dataclass(frozen=True)
class RotationConfig:
    start_date: date
    blocks: tuple[str, ...] = DEFAULT_BLOCKS
    pattern: tuple[str, ...] = DEFAULT_PATTERN
    out_of_office_status: str = OUT_OF_OFFICE_STATUS
    offset: int = 0

    def __post_init__(self) -> None:
        # Empty lists fall back to the default four-block rotation.
        object.__setattr__(self, "start_date", _as_date(self.start_date))
        object.__setattr__(self, "blocks", tuple(self.blocks) or DEFAULT_BLOCKS)
        object.__setattr__(self, "pattern", tuple(self.pattern) or DEFAULT_PATTERN)


@dataclass(frozen=True)
class ScheduleEntry:
    date: date
    block: str
    status: str

    @property
    def id(self) -> str:
        return f"{self.date.isoformat()}-{self.block}"


@dataclass(frozen=True)
class ScheduleResult:
    schedules: tuple[ScheduleEntry, ...] = ()
    holidays: tuple[Any, ...] = ()


def _as_date(value: date | datetime) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


def _holiday_date(holiday: Any) -> date:
    if isinstance(holiday, (date, datetime)):
        return _as_date(holiday)
    return _as_date(holiday.date)


def is_weekend(day: date) -> bool:
    return day.weekday() >= 5


def is_working_day(day: date, holiday_dates: AbstractSet[date]) -> bool:
    return not is_weekend(day) and day not in holiday_dates


def count_working_days(start: date, end: date, holiday_dates: AbstractSet[date]) -> int:
    """Working days in the half-open range ``[start, end)``."""
    count = 0
    current = start
    while current < end:
        if is_working_day(current, holiday_dates):
            count += 1
        current += timedelta(days=1)
    return count


def statuses_for_day(day_index: int, config: RotationConfig) -> dict[str, str]:
    """Status of every block on the working day at ``day_index``.

    The pattern is shifted right by one position per working day, so block
    ``i`` reads ``pattern[(i - day_index) % len(pattern)]``.
    """
    size = len(config.pattern)
    return {
        block: config.pattern[(position - day_index) % size]
        for position, block in enumerate(config.blocks)
    }


def rotation_index(day: date, config: RotationConfig, holiday_dates: AbstractSet[date]) -> int | None:
    """Rotation counter for ``day``, or ``None`` when no rotation applies."""
    day = _as_date(day)
    if day < config.start_date or not is_working_day(day, holiday_dates):
        return None
    return count_working_days(config.start_date, day, holiday_dates) + config.offset


def compute_schedule(
    start_date: date,
    end_date: date,
    config: RotationConfig,
    holidays: Iterable[Any] = (),
) -> ScheduleResult:
    start_date = _as_date(start_date)
    end_date = _as_date(end_date)
    if end_date < start_date:
        raise InvalidRangeError(f"End date {end_date.isoformat()} is before start date {start_date.isoformat()}")

    epoch = config.start_date
    if end_date < epoch:
        return ScheduleResult()

    holidays = list(holidays)
    holiday_dates = frozenset(_holiday_date(h) for h in holidays)
    actual_start = max(start_date, epoch)
    day_index = count_working_days(epoch, actual_start, holiday_dates) + config.offset

    schedules: list[ScheduleEntry] = []
    current = actual_start
    while current <= end_date:
        if is_working_day(current, holiday_dates):
            for block, status in statuses_for_day(day_index, config).items():
                if status == config.out_of_office_status:
                    schedules.append(ScheduleEntry(date=current, block=block, status=status))
            day_index += 1
        current += timedelta(days=1)

    in_range = sorted(
        (h for h in holidays if start_date <= _holiday_date(h) <= end_date),
        key=_holiday_date,
    )
    return ScheduleResult(schedules=tuple(schedules), holidays=tuple(in_range))
