"""
Pytest configuration and fixtures for Asset Atlas tests.

Tests run against a throwaway SQLite file so the background pipeline, which
opens its own sessions, sees the same data as the test. The schema is rebuilt
for every test.
"""
import os
import tempfile

_TEST_DB_DIR = tempfile.mkdtemp(prefix="asset_atlas_tests_")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_TEST_DB_DIR, 'test.db')}"
os.environ["SKIP_DB_INIT"] = "1"

import pytest

from asset_atlas.db import models  # noqa: F401
from asset_atlas.db.session import Base, get_engine, get_session_local, reset_engine


@pytest.fixture(autouse=True)
def fresh_database():
    engine = get_engine()
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield engine
    reset_engine()


@pytest.fixture
def db_session(fresh_database):
    SessionLocal = get_session_local()
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


class RecordingNotifier:
    """Collects notify() calls instead of writing outbox rows."""

    def __init__(self):
        self.calls = []

    def notify(self, user_id, outcome, file_name, details=None):
        self.calls.append({
            "user_id": user_id,
            "outcome": outcome,
            "file_name": file_name,
            "details": details or {},
        })


@pytest.fixture
def notifier():
    return RecordingNotifier()
