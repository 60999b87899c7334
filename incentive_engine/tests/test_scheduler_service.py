"""
Tests for the scheduled batch jobs.
"""
import asyncio
import pytest
from datetime import timedelta

from incentive_engine.models import LedgerEntry, StudentAchievementBadge
from incentive_engine.services import scheduler_service
from incentive_engine.services.date_service import DateService
from incentive_engine.services.sprint_service import SprintService
from incentive_engine.tests.conftest import TestingSessionLocal, make_student, make_badge


@pytest.fixture(autouse=True)
def job_sessions(monkeypatch):
    """Jobs open their own sessions on the test database"""
    monkeypatch.setattr(scheduler_service, "SessionLocal", TestingSessionLocal)


@pytest.fixture
def late_sprint(db_session, default_settings):
    base = DateService.utcnow()
    student = make_student(db_session, points=100)
    return SprintService(db_session).assign_skill_sprint(
        student.id, "Scales", base - timedelta(days=3, hours=1),
        penalty_points_per_day=5, now=base - timedelta(days=5)
    )


def run_job(db, job):
    """Release the test session's connection, then run the job on its own session"""
    db.commit()
    asyncio.run(job())


def penalty_count(db):
    return db.query(LedgerEntry).filter(LedgerEntry.category == "skill_sprint_penalty").count()


class TestAutoPenalties:

    def test_job_charges_elapsed_days(self, db_session, late_sprint):
        """The penalty job charges missed days and is idempotent"""
        run_job(db_session, scheduler_service.run_auto_penalties)
        assert penalty_count(db_session) == 3

        run_job(db_session, scheduler_service.run_auto_penalties)
        assert penalty_count(db_session) == 3

    def test_switch_off(self, db_session, default_settings, late_sprint):
        """Disabled auto-penalties leave sprints uncharged"""
        default_settings.auto_penalties_enabled = False
        db_session.commit()

        run_job(db_session, scheduler_service.run_auto_penalties)

        assert penalty_count(db_session) == 0


class TestAutoAchievements:

    def test_job_awards_badges(self, db_session, default_settings):
        """The achievement job awards eligible badges"""
        make_student(db_session, points=100)
        make_badge(db_session, "Century", "lifetime_points", 100)

        run_job(db_session, scheduler_service.run_auto_achievements)

        assert db_session.query(StudentAchievementBadge).count() == 1

    def test_switch_off(self, db_session, default_settings):
        """Disabled auto-achievements award nothing"""
        default_settings.auto_achievements_enabled = False
        db_session.commit()
        make_student(db_session, points=100)
        make_badge(db_session, "Century", "lifetime_points", 100)

        run_job(db_session, scheduler_service.run_auto_achievements)

        assert db_session.query(StudentAchievementBadge).count() == 0
