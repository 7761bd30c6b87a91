"""Pytest configuration and fixtures"""
import os
import tempfile
from pathlib import Path
from typing import Generator

# Settings are read once at import; point them at a throwaway database first.
_TMP_DIR = Path(tempfile.mkdtemp(prefix="farmauth-tests-"))
os.environ.setdefault("DATABASE_URL", f"sqlite:///{_TMP_DIR / 'test.db'}")
os.environ.setdefault("DB_INIT_MODE", "off")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("LOG_FILE", str(_TMP_DIR / "app.log"))
os.environ.setdefault("EMAIL_BACKEND", "log")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402

from farmauth.core.database import Base, SessionLocal, engine, get_db  # noqa: E402
from farmauth.main import app  # noqa: E402
from farmauth.models.user import User  # noqa: E402
from farmauth.services.email_service import email_service  # noqa: E402
from farmauth.services.rate_limiter import rate_limiter  # noqa: E402
from farmauth.services.user_service import user_service  # noqa: E402

STRONG_PASSWORD = "Harvest#2024"


@pytest.fixture(autouse=True)
def _reset_process_state():
    rate_limiter.reset()
    email_service.clear()
    yield
    rate_limiter.reset()


@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """Create a fresh database for each test"""
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client(db: Session) -> Generator[TestClient, None, None]:
    """Test client; each request gets its own session on the test database"""

    def override_get_db():
        session = SessionLocal()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def user(db: Session) -> User:
    return user_service.create_user(db, "grower@example.com", STRONG_PASSWORD, "Green Acres")
