from __future__ import annotations

import hmac
import secrets
from datetime import timedelta, timezone

import bcrypt
from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from wfa_calendar.config import Settings
from wfa_calendar.db import get_db
from wfa_calendar.models import AdminSession, utcnow

ADMIN_SESSION_COOKIE_NAME = "admin-session"
ADMIN_SESSION_HEADER = "x-admin-session"
ADMIN_SESSION_MAX_AGE_SECONDS = 24 * 60 * 60


class AdminNotConfiguredError(RuntimeError):
    """Raised when neither ADMIN_PASSWORD nor ADMIN_PASSWORD_HASH is set."""


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))


def verify_admin_password(candidate: str, settings: Settings) -> bool:
    if settings.admin_password_hash:
        return verify_password(candidate, settings.admin_password_hash)
    if settings.admin_password:
        return hmac.compare_digest(candidate.encode("utf-8"), settings.admin_password.encode("utf-8"))
    raise AdminNotConfiguredError("Admin password not configured")


def request_is_https(request: Request) -> bool:
    forwarded_proto = request.headers.get("x-forwarded-proto", "")
    if forwarded_proto:
        first_proto = forwarded_proto.split(",")[0].strip().lower()
        if first_proto:
            return first_proto == "https"
    return request.url.scheme == "https"


def create_admin_session(db: Session) -> str:
    while True:
        session_id = secrets.token_urlsafe(32)
        if db.get(AdminSession, session_id) is None:
            break
    db.add(
        AdminSession(
            session_id=session_id,
            expires_at=utcnow() + timedelta(seconds=ADMIN_SESSION_MAX_AGE_SECONDS),
        )
    )
    db.commit()
    return session_id


def delete_admin_session(db: Session, session_id: str) -> None:
    session = db.get(AdminSession, session_id)
    if session is not None:
        db.delete(session)
        db.commit()


def admin_session_id(request: Request) -> str | None:
    return request.cookies.get(ADMIN_SESSION_COOKIE_NAME) or request.headers.get(ADMIN_SESSION_HEADER)


def is_admin(request: Request, db: Session) -> bool:
    session_id = admin_session_id(request)
    if not session_id:
        return False
    session = db.get(AdminSession, session_id)
    if session is None:
        return False
    expires_at = session.expires_at
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    if expires_at <= utcnow():
        db.delete(session)
        db.commit()
        return False
    return True


def require_admin(request: Request, db: Session = Depends(get_db)) -> None:
    if not is_admin(request, db):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Admin authentication required")
