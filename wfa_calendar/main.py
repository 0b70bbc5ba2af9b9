from __future__ import annotations

import calendar
import logging
from datetime import date, datetime, timezone
from typing import Any

from fastapi import Depends, FastAPI, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from wfa_calendar.config import Settings, configure_logging, get_settings
from wfa_calendar.db import get_db
from wfa_calendar.holiday_source import fetch_holidays
from wfa_calendar.ip_utils import get_client_ipv4
from wfa_calendar.models import AdminLog, PublicHoliday, UserLeave
from wfa_calendar.rotation import (
    InvalidRangeError,
    ScheduleEntry,
    compute_schedule,
    rotation_index,
    statuses_for_day,
)
from wfa_calendar.security import (
    ADMIN_SESSION_COOKIE_NAME,
    ADMIN_SESSION_MAX_AGE_SECONDS,
    AdminNotConfiguredError,
    admin_session_id,
    create_admin_session,
    delete_admin_session,
    is_admin,
    request_is_https,
    require_admin,
    verify_admin_password,
)

configure_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title="WFA Calendar")

MAX_INITIALS_LENGTH = 3
MAX_SCHEDULE_SPAN_DAYS = 5 * 366


@app.middleware("http")
async def disable_cache_for_api(request: Request, call_next):
    response = await call_next(request)
    if request.url.path.startswith("/api/"):
        response.headers["Cache-Control"] = "no-store, no-cache, max-age=0, must-revalidate"
        response.headers["Pragma"] = "no-cache"
    return response


@app.exception_handler(InvalidRangeError)
async def invalid_range_handler(request: Request, exc: InvalidRangeError) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": str(exc)})


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class HolidayOut(CamelModel):
    id: str
    date: date
    name: str
    description: str | None = None
    is_manual: bool = Field(alias="isManual")
    created_at: datetime = Field(alias="createdAt")
    updated_at: datetime = Field(alias="updatedAt")

    @classmethod
    def from_record(cls, holiday: PublicHoliday) -> "HolidayOut":
        return cls(
            id=holiday.id,
            date=holiday.date,
            name=holiday.name,
            description=holiday.description,
            is_manual=holiday.is_manual,
            created_at=holiday.created_at,
            updated_at=holiday.updated_at,
        )


class HolidayPayload(CamelModel):
    holiday_date: date | None = Field(default=None, alias="date")
    name: str | None = None
    description: str | None = None


class LeaveOut(CamelModel):
    id: str
    start_date: date = Field(alias="startDate")
    end_date: date = Field(alias="endDate")
    initials: str
    local_ip: str = Field(alias="localIP")
    created_at: datetime = Field(alias="createdAt")
    updated_at: datetime = Field(alias="updatedAt")

    @classmethod
    def from_record(cls, leave: UserLeave) -> "LeaveOut":
        return cls(
            id=leave.id,
            start_date=leave.start_date,
            end_date=leave.end_date,
            initials=leave.initials,
            local_ip=leave.local_ip,
            created_at=leave.created_at,
            updated_at=leave.updated_at,
        )


class LeavePayload(CamelModel):
    start_date: date | None = Field(default=None, alias="startDate")
    end_date: date | None = Field(default=None, alias="endDate")
    initials: str | None = None


class LeaveSavedOut(CamelModel):
    message: str
    leave: LeaveOut
    date_range: str = Field(alias="dateRange")


class LeaveDeletedOut(CamelModel):
    message: str
    deleted_leave: LeaveOut = Field(alias="deletedLeave")


class ScheduleEntryOut(BaseModel):
    id: str
    date: date
    block: str
    status: str

    @classmethod
    def from_entry(cls, entry: ScheduleEntry) -> "ScheduleEntryOut":
        return cls(id=entry.id, date=entry.date, block=entry.block, status=entry.status)


class ScheduleOut(BaseModel):
    schedules: list[ScheduleEntryOut]
    holidays: list[HolidayOut]


class DayStatusOut(CamelModel):
    date: date
    working: bool
    day_index: int | None = Field(default=None, alias="dayIndex")
    blocks: dict[str, str] = Field(default_factory=dict)


class CalendarDataOut(CamelModel):
    schedules: list[ScheduleEntryOut]
    holidays: list[HolidayOut]
    user_leaves: list[LeaveOut] = Field(alias="userLeaves")
    month: str
    cached_at: datetime = Field(alias="cachedAt")


class AdminAuthPayload(BaseModel):
    password: str | None = None


class AdminAuthOut(CamelModel):
    is_valid: bool = Field(alias="isValid")
    message: str


class AdminLogOut(CamelModel):
    id: str
    action: str
    details: dict[str, Any]
    local_ip: str = Field(alias="localIP")
    created_at: datetime = Field(alias="createdAt")

    @classmethod
    def from_record(cls, log: AdminLog) -> "AdminLogOut":
        return cls(id=log.id, action=log.action, details=log.details, local_ip=log.local_ip, created_at=log.created_at)


class AdminLogsPage(CamelModel):
    logs: list[AdminLogOut]
    total: int
    limit: int
    offset: int
    has_more: bool = Field(alias="hasMore")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_month(month: str) -> tuple[date, date]:
    try:
        year_str, month_str = month.split("-")
        year, month_number = int(year_str), int(month_str)
        last_day = calendar.monthrange(year, month_number)[1]
        return date(year, month_number, 1), date(year, month_number, last_day)
    except (ValueError, calendar.IllegalMonthError):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Month must use the YYYY-MM format")


def parse_iso_date(value: str, field_name: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"{field_name} must use the YYYY-MM-DD format")


def format_date_range(start: date, end: date) -> str:
    if start == end:
        return start.isoformat()
    return f"{start.isoformat()} - {end.isoformat()}"


def record_admin_log(db: Session, request: Request, action: str, details: dict[str, Any]) -> None:
    db.add(AdminLog(action=action, details=details, local_ip=get_client_ipv4(request.headers)))
    db.commit()


def load_holidays(db: Session, start: date, end: date) -> list[PublicHoliday]:
    return list(
        db.scalars(
            select(PublicHoliday)
            .where(PublicHoliday.date >= start, PublicHoliday.date <= end)
            .order_by(PublicHoliday.date.asc())
        ).all()
    )


def build_schedule(db: Session, settings: Settings, start: date, end: date) -> ScheduleOut:
    config = settings.rotation_config()
    holidays = load_holidays(db, config.start_date, end) if end >= config.start_date else []
    result = compute_schedule(start, end, config, holidays)
    return ScheduleOut(
        schedules=[ScheduleEntryOut.from_entry(entry) for entry in result.schedules],
        holidays=[HolidayOut.from_record(holiday) for holiday in result.holidays],
    )


def leaves_overlapping(db: Session, start: date, end: date) -> list[UserLeave]:
    return list(
        db.scalars(
            select(UserLeave)
            .where(UserLeave.start_date <= end, UserLeave.end_date >= start)
            .order_by(UserLeave.start_date.asc(), UserLeave.created_at.asc())
        ).all()
    )


def validated_leave_fields(payload: LeavePayload) -> tuple[date, date, str]:
    if payload.start_date is None or not payload.initials:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Start date and initials are required")
    initials = payload.initials.strip().upper()
    if not initials:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Start date and initials are required")
    if len(initials) > MAX_INITIALS_LENGTH:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Initials must be maximum 3 characters")
    start = payload.start_date
    end = payload.end_date or start
    if end < start:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="End date cannot be before start date")
    return start, end, initials


def find_leave_conflicts(db: Session, initials: str, start: date, end: date, exclude_id: str | None = None) -> list[UserLeave]:
    query = select(UserLeave).where(
        UserLeave.initials == initials,
        UserLeave.start_date <= end,
        UserLeave.end_date >= start,
    )
    if exclude_id is not None:
        query = query.where(UserLeave.id != exclude_id)
    return list(db.scalars(query.order_by(UserLeave.start_date.asc())).all())


def get_leave_for_change(db: Session, request: Request, leave_id: str | None, verb: str) -> UserLeave:
    if not leave_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Leave ID is required")
    leave = db.get(UserLeave, leave_id)
    if leave is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Leave not found")
    if not is_admin(request, db) and leave.local_ip != get_client_ipv4(request.headers):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"You can only {verb} leaves created from your IP address",
        )
    return leave


@app.get("/api/wfa-schedule", response_model=ScheduleOut)
def get_wfa_schedule(
    month: str | None = None,
    start_date: str | None = Query(default=None, alias="startDate"),
    end_date: str | None = Query(default=None, alias="endDate"),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> ScheduleOut:
    if start_date and end_date:
        start = parse_iso_date(start_date, "startDate")
        end = parse_iso_date(end_date, "endDate")
        if (end - start).days > MAX_SCHEDULE_SPAN_DAYS:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Date range cannot exceed {MAX_SCHEDULE_SPAN_DAYS} days",
            )
    elif month:
        start, end = parse_month(month)
    else:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Either month parameter (YYYY-MM) or startDate/endDate parameters (YYYY-MM-DD) required",
        )
    return build_schedule(db, settings, start, end)


@app.get("/api/wfa-schedule/day", response_model=DayStatusOut)
def get_wfa_day(
    day: str = Query(alias="date"),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> DayStatusOut:
    target = parse_iso_date(day, "date")
    config = settings.rotation_config()
    if target < config.start_date:
        return DayStatusOut(date=target, working=False)
    holiday_dates = {holiday.date for holiday in load_holidays(db, config.start_date, target)}
    day_index = rotation_index(target, config, holiday_dates)
    if day_index is None:
        return DayStatusOut(date=target, working=False)
    return DayStatusOut(date=target, working=True, day_index=day_index, blocks=statuses_for_day(day_index, config))


@app.get("/api/calendar-data", response_model=CalendarDataOut)
def get_calendar_data(
    month: str | None = None,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> CalendarDataOut:
    if not month:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Month parameter (YYYY-MM) required")
    start, end = parse_month(month)
    schedule = build_schedule(db, settings, start, end)
    return CalendarDataOut(
        schedules=schedule.schedules,
        holidays=schedule.holidays,
        user_leaves=[LeaveOut.from_record(leave) for leave in leaves_overlapping(db, start, end)],
        month=month,
        cached_at=utcnow(),
    )


@app.get("/api/holidays", response_model=list[HolidayOut])
def get_holidays(
    request: Request,
    year: int | None = Query(default=None, ge=1, le=9999),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> list[HolidayOut]:
    year = year or date.today().year
    existing = load_holidays(db, date(year, 1, 1), date(year, 12, 31))
    if existing:
        record_admin_log(
            db,
            request,
            "FETCH_HOLIDAYS_PUBLIC",
            {"year": year, "source": "database", "fetchedAt": utcnow().isoformat(), "count": len(existing)},
        )
        return [HolidayOut.from_record(holiday) for holiday in existing]

    saved: list[PublicHoliday] = []
    for fetched in fetch_holidays(year, settings):
        holiday = db.scalar(select(PublicHoliday).where(PublicHoliday.date == fetched.date))
        if holiday is None:
            holiday = PublicHoliday(date=fetched.date, name=fetched.name, description=fetched.name, is_manual=False)
        else:
            # Only reachable for feed entries dated outside the requested year,
            # since the year itself had no stored holidays.
            holiday.name = fetched.name
            holiday.description = fetched.name
        db.add(holiday)
        saved.append(holiday)
    db.commit()
    logger.info("Saved %d holidays for %s", len(saved), year)

    if saved and is_admin(request, db):
        record_admin_log(
            db,
            request,
            "FETCH_HOLIDAYS",
            {
                "year": year,
                "holidayCount": len(saved),
                "source": settings.holiday_api_url,
                "fetchedAt": utcnow().isoformat(),
            },
        )
    return [HolidayOut.from_record(holiday) for holiday in saved]


@app.post("/api/holidays", response_model=HolidayOut, status_code=status.HTTP_201_CREATED)
def add_holiday(
    payload: HolidayPayload,
    request: Request,
    _: None = Depends(require_admin),
    db: Session = Depends(get_db),
) -> HolidayOut:
    name = (payload.name or "").strip()
    if payload.holiday_date is None or not name:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Date and name are required")
    existing = db.scalar(select(PublicHoliday).where(PublicHoliday.date == payload.holiday_date))
    if existing is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"A holiday already exists on {payload.holiday_date.isoformat()}",
        )
    holiday = PublicHoliday(
        date=payload.holiday_date,
        name=name,
        description=payload.description or name,
        is_manual=True,
    )
    db.add(holiday)
    db.commit()
    db.refresh(holiday)
    record_admin_log(
        db,
        request,
        "ADD_HOLIDAY",
        {"date": payload.holiday_date.isoformat(), "name": name, "description": payload.description},
    )
    logger.info("Holiday added for %s", payload.holiday_date.isoformat())
    return HolidayOut.from_record(holiday)


@app.delete("/api/holidays")
def delete_holiday(
    request: Request,
    holiday_id: str | None = Query(default=None, alias="id"),
    _: None = Depends(require_admin),
    db: Session = Depends(get_db),
) -> dict[str, str]:
    if not holiday_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Holiday ID is required")
    holiday = db.get(PublicHoliday, holiday_id)
    if holiday is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Holiday not found")
    details = {"id": holiday.id, "name": holiday.name, "date": holiday.date.isoformat()}
    db.delete(holiday)
    db.commit()
    record_admin_log(db, request, "REMOVE_HOLIDAY", details)
    logger.info("Holiday deleted for %s", details["date"])
    return {"message": "Holiday deleted successfully"}


@app.get("/api/user-leaves", response_model=list[LeaveOut])
def get_user_leaves(
    month: str | None = None,
    initials: str | None = None,
    db: Session = Depends(get_db),
) -> list[LeaveOut]:
    query = select(UserLeave)
    if month:
        start, end = parse_month(month)
        query = query.where(UserLeave.start_date <= end, UserLeave.end_date >= start)
    if initials:
        query = query.where(UserLeave.initials.contains(initials.strip().upper(), autoescape=True))
    leaves = db.scalars(query.order_by(UserLeave.start_date.asc(), UserLeave.created_at.asc())).all()
    return [LeaveOut.from_record(leave) for leave in leaves]


@app.post("/api/user-leaves", response_model=LeaveSavedOut, status_code=status.HTTP_201_CREATED)
def create_user_leave(
    payload: LeavePayload,
    request: Request,
    db: Session = Depends(get_db),
) -> LeaveSavedOut:
    start, end, initials = validated_leave_fields(payload)
    conflicts = find_leave_conflicts(db, initials, start, end)
    if conflicts:
        ranges = ", ".join(format_date_range(leave.start_date, leave.end_date) for leave in conflicts)
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=f"Leave already exists for {initials} on: {ranges}")
    leave = UserLeave(start_date=start, end_date=end, initials=initials, local_ip=get_client_ipv4(request.headers))
    db.add(leave)
    db.commit()
    db.refresh(leave)
    return LeaveSavedOut(
        message="Successfully created leave",
        leave=LeaveOut.from_record(leave),
        date_range=format_date_range(start, end),
    )


@app.put("/api/user-leaves", response_model=LeaveSavedOut)
def update_user_leave(
    payload: LeavePayload,
    request: Request,
    leave_id: str | None = Query(default=None, alias="id"),
    db: Session = Depends(get_db),
) -> LeaveSavedOut:
    leave = get_leave_for_change(db, request, leave_id, "edit")
    start, end, initials = validated_leave_fields(payload)
    conflicts = find_leave_conflicts(db, initials, start, end, exclude_id=leave.id)
    if conflicts:
        ranges = ", ".join(format_date_range(other.start_date, other.end_date) for other in conflicts)
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Leave conflicts with existing leave(s) for {initials} on: {ranges}",
        )
    leave.start_date = start
    leave.end_date = end
    leave.initials = initials
    leave.local_ip = get_client_ipv4(request.headers)
    db.add(leave)
    db.commit()
    db.refresh(leave)
    return LeaveSavedOut(
        message="Leave updated successfully",
        leave=LeaveOut.from_record(leave),
        date_range=format_date_range(start, end),
    )


@app.delete("/api/user-leaves", response_model=LeaveDeletedOut)
def delete_user_leave(
    request: Request,
    leave_id: str | None = Query(default=None, alias="id"),
    db: Session = Depends(get_db),
) -> LeaveDeletedOut:
    leave = get_leave_for_change(db, request, leave_id, "delete")
    deleted = LeaveOut.from_record(leave)
    db.delete(leave)
    db.commit()
    return LeaveDeletedOut(message="Leave deleted successfully", deleted_leave=deleted)


@app.post("/api/admin-auth", response_model=AdminAuthOut)
def admin_login(
    payload: AdminAuthPayload,
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> AdminAuthOut:
    if not payload.password:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Password is required")
    try:
        valid = verify_admin_password(payload.password, settings)
    except AdminNotConfiguredError as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))
    if not valid:
        return AdminAuthOut(is_valid=False, message="Invalid password")
    session_id = create_admin_session(db)
    response.set_cookie(
        key=ADMIN_SESSION_COOKIE_NAME,
        value=session_id,
        max_age=ADMIN_SESSION_MAX_AGE_SECONDS,
        httponly=True,
        samesite="strict",
        secure=settings.is_production or request_is_https(request),
        path="/",
    )
    return AdminAuthOut(is_valid=True, message="Authentication successful")


@app.delete("/api/admin-auth")
def admin_logout(
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> dict[str, str]:
    session_id = admin_session_id(request)
    if session_id:
        delete_admin_session(db, session_id)
    response.delete_cookie(
        key=ADMIN_SESSION_COOKIE_NAME,
        httponly=True,
        samesite="strict",
        secure=settings.is_production or request_is_https(request),
        path="/",
    )
    return {"message": "Logged out successfully"}


@app.get("/api/admin-logs", response_model=AdminLogsPage)
def get_admin_logs(
    action: str | None = None,
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    _: None = Depends(require_admin),
    db: Session = Depends(get_db),
) -> AdminLogsPage:
    query = select(AdminLog)
    count_query = select(func.count(AdminLog.id))
    if action:
        query = query.where(AdminLog.action == action)
        count_query = count_query.where(AdminLog.action == action)
    logs = db.scalars(query.order_by(AdminLog.created_at.desc(), AdminLog.id.desc()).limit(limit).offset(offset)).all()
    total = db.scalar(count_query) or 0
    return AdminLogsPage(
        logs=[AdminLogOut.from_record(log) for log in logs],
        total=total,
        limit=limit,
        offset=offset,
        has_more=total > offset + limit,
    )


@app.get("/api/user-ip")
def get_user_ip(request: Request) -> dict[str, str]:
    return {"ip": get_client_ipv4(request.headers)}


@app.get("/health")
def health(settings: Settings = Depends(get_settings)) -> dict[str, bool | str]:
    return {"ok": True, "env": settings.environment}
