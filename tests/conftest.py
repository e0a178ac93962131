"""Shared fixtures: environment, a clean SQLite database and Salla HTTP stubs."""

import datetime
import os
import tempfile
from pathlib import Path
from typing import Any, Generator
from unittest.mock import MagicMock

import pytest

TEST_DB_PATH = Path(tempfile.gettempdir()) / "test_marketing_backend.db"

os.environ.setdefault("DATABASE_URL", f"sqlite:///{TEST_DB_PATH}")
os.environ.setdefault("SALLA_CLIENT_ID", "test_client_id")
os.environ.setdefault("SALLA_CLIENT_SECRET", "test_client_secret")
os.environ.setdefault("STATE_SECRET_KEY", "test_state_secret")
os.environ.setdefault("JWT_SECRET_KEY", "test_secret_key")

from sqlalchemy.orm import Session  # noqa: E402

from marketing_backend.core import models, tokens  # noqa: E402
from marketing_backend.core.database import Base, SessionLocal, engine  # noqa: E402
from marketing_backend.core.dependencies import get_salla_settings  # noqa: E402
from marketing_backend.core.settings import SallaSettings  # noqa: E402


@pytest.fixture(autouse=True)
def reset_database() -> Generator[None, None, None]:
    """Start every test with empty tables and no refresh locks."""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    tokens._refresh_locks.clear()
    yield


@pytest.fixture
def db() -> Generator[Session, None, None]:
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def settings() -> SallaSettings:
    return get_salla_settings()


@pytest.fixture
def make_connection(db: Session):
    """Factory inserting a SallaConnection row with sensible defaults."""

    def _make(user_id: int = 1, **overrides: Any) -> models.SallaConnection:
        values: dict[str, Any] = {
            "user_id": user_id,
            "merchant_id": "1001",
            "store_name": "Test Store",
            "store_email": "owner@example.com",
            "store_domain": "https://test-store.salla.sa",
            "store_plan": "pro",
            "access_token": f"access-{user_id}-secret",
            "refresh_token": None,
            "expires_at": None,
            "is_active": True,
        }
        values.update(overrides)
        connection = models.SallaConnection(**values)
        db.add(connection)
        db.commit()
        db.refresh(connection)
        return connection

    return _make


def utc_in(seconds: float) -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc) + datetime.timedelta(seconds=seconds)


def as_utc(value: datetime.datetime) -> datetime.datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=datetime.timezone.utc)
    return value


def json_response(body: Any, status_code: int = 200) -> MagicMock:
    """A stand-in for requests.Response returning ``body`` from .json()."""
    response = MagicMock(status_code=status_code)
    response.json.return_value = body
    return response
