"""
Shared fixtures for incentive engine tests.
Each test gets a fresh in-memory SQLite database.
"""
import os
import tempfile

os.environ["INCENTIVE_ENGINE_DATABASE_URL"] = "sqlite://"
os.environ["INCENTIVE_ENGINE_API_KEY"] = "test-key"
os.environ["INCENTIVE_ENGINE_SCHEDULER_ENABLED"] = "false"
os.environ.setdefault("INCENTIVE_ENGINE_LOG_DIR", tempfile.mkdtemp(prefix="incentive_engine_logs_"))

import pytest
from datetime import datetime, timedelta
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from incentive_engine.database import Base, enable_sqlite_savepoints
from incentive_engine.models import Student, AchievementBadge, AttendanceCheckin
from incentive_engine.repositories.settings_repository import SettingsRepository
from incentive_engine.services.ledger_service import LedgerService

API_HEADERS = {"X-API-Key": "test-key"}

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
enable_sqlite_savepoints(engine)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db_session():
    """Fresh database per test"""
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def default_settings(db_session):
    settings = SettingsRepository.get(db_session)
    db_session.commit()
    return settings


@pytest.fixture
def now():
    """Monday 2024-01-01 00:00 UTC"""
    return datetime(2024, 1, 1, 0, 0, 0)


@pytest.fixture
def day():
    return timedelta(days=1)


def make_student(db, name="Student", points=0):
    """Create a student, optionally seeded with a manual ledger entry"""
    student = Student(name=name)
    db.add(student)
    db.commit()
    db.refresh(student)
    if points:
        LedgerService(db).append_ledger_entry(student.id, points, category="manual")
        db.refresh(student)
    return student


def make_badge(db, name="Badge", criteria_type=None, threshold=None, points_award=0,
               category=None, enabled=True):
    badge = AchievementBadge(
        name=name,
        category=category,
        criteria_type=criteria_type,
        threshold=threshold,
        points_award=points_award,
        enabled=enabled,
    )
    db.add(badge)
    db.commit()
    db.refresh(badge)
    return badge


def add_checkins(db, student_id, count, start=None):
    start = start or datetime(2024, 1, 1, 9, 0)
    for i in range(count):
        db.add(AttendanceCheckin(student_id=student_id, checked_in_at=start + timedelta(days=i)))
    db.commit()
