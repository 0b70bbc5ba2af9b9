from __future__ import annotations

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

from wfa_calendar.config import get_settings

Base = declarative_base()


def create_db_engine(database_url: str) -> Engine:
    connect_args = {"check_same_thread": False} if database_url.startswith("sqlite") else {}
    return create_engine(database_url, connect_args=connect_args, pool_pre_ping=True)


def create_session_factory(bind: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=bind, expire_on_commit=False)


engine = create_db_engine(get_settings().database_url)
SessionLocal = create_session_factory(engine)


def configure_database(database_url: str) -> None:
    """Rebind the module engine and session factory to ``database_url``."""
    global engine, SessionLocal
    engine.dispose()
    engine = create_db_engine(database_url)
    SessionLocal = create_session_factory(engine)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
