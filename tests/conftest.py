"""Shared fixtures: in-memory SQLite, a fixed clock, and an API client
whose caller identity comes from the X-Test-User header."""

import os

# Must be set before bluetradie is imported
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("DB_LOG_SLOW_QUERIES", "false")
os.environ.pop("CALENDAR_TIMEZONE", None)

from datetime import datetime, timezone  # noqa: E402

import pytest  # noqa: E402
from fastapi import HTTPException, Request  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from bluetradie import models_calendar  # noqa: E402,F401
from bluetradie.auth import get_current_user_id  # noqa: E402
from bluetradie.database import Base, get_db  # noqa: E402
from bluetradie.domain.calendar.router import get_calendar_service  # noqa: E402
from bluetradie.domain.calendar.service import CalendarService  # noqa: E402
from bluetradie.main import create_app  # noqa: E402

# 2025-03-01 08:00 UTC
NOW = datetime(2025, 3, 1, 8, 0, 0)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db_session(engine):
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def service(db_session):
    return CalendarService(db_session, clock=lambda: NOW, tz=timezone.utc)


def _user_from_test_header(request: Request) -> str:
    user_id = request.headers.get("X-Test-User")
    if not user_id:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return user_id


@pytest.fixture
def app(db_session):
    app = create_app()

    def _get_db():
        yield db_session

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_calendar_service] = lambda: CalendarService(
        db_session, clock=lambda: NOW, tz=timezone.utc
    )
    app.dependency_overrides[get_current_user_id] = _user_from_test_header
    return app


@pytest.fixture
def client(app):
    return TestClient(app)


def as_user(user_id: str) -> dict:
    return {"X-Test-User": user_id}
