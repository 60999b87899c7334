"""
Tests for PenaltyService.

Tests cover:
1. One penalty per elapsed day
2. Idempotency across repeated runs
3. Days already claimed by another run
4. Zero-point penalties
5. Penalty anchor setting
"""
import pytest
from datetime import timedelta

from incentive_engine.models import LedgerEntry, SkillSprintPenaltyCharge, Student
from incentive_engine.services.penalty_service import PenaltyService
from incentive_engine.services.sprint_service import SprintService
from incentive_engine.tests.conftest import make_student


def penalty_entries(db, assignment_id):
    return db.query(LedgerEntry).filter(
        LedgerEntry.category == "skill_sprint_penalty",
        LedgerEntry.source_id == assignment_id
    ).order_by(LedgerEntry.id).all()


@pytest.fixture
def overdue_sprint(db_session, default_settings, now, day):
    """Sprint due two days after `now` with a 5 point daily penalty"""
    student = make_student(db_session, points=100)
    return SprintService(db_session).assign_skill_sprint(
        student.id, "Scales", now + 2 * day, reward_points=10, penalty_points_per_day=5, now=now
    )


class TestDailyCharging:

    def test_nothing_before_a_full_day_overdue(self, db_session, overdue_sprint, day):
        """Less than a day overdue charges nothing"""
        run_at = overdue_sprint.due_at + timedelta(hours=23)
        result = PenaltyService(db_session).process_penalties(now=run_at)
        assert result.penalties_applied == 0
        assert penalty_entries(db_session, overdue_sprint.id) == []

    def test_one_penalty_after_one_day(self, db_session, overdue_sprint, day):
        """First full overdue day appends one penalty entry"""
        run_at = overdue_sprint.due_at + day + timedelta(hours=1)
        result = PenaltyService(db_session).process_penalties(now=run_at)

        assert result.penalties_applied == 1
        assert result.points_charged == 5
        entries = penalty_entries(db_session, overdue_sprint.id)
        assert [e.points for e in entries] == [-5]
        assert entries[0].note == "Skill Sprint missed: Scales (day 1)"
        assert entries[0].source_type == "skill_sprint"

        student = db_session.get(Student, overdue_sprint.student_id)
        assert student.points_total == 95
        assert student.lifetime_points == 100

    def test_multiple_missed_days_in_one_run(self, db_session, overdue_sprint, day):
        """A late run catches up every missed day in order"""
        run_at = overdue_sprint.due_at + 3 * day + timedelta(minutes=5)
        result = PenaltyService(db_session).process_penalties(now=run_at)

        assert result.penalties_applied == 3
        db_session.refresh(overdue_sprint)
        assert overdue_sprint.charged_days == 3
        assert overdue_sprint.last_penalty_at == overdue_sprint.due_at + 3 * day
        assert [e.note for e in penalty_entries(db_session, overdue_sprint.id)] == [
            "Skill Sprint missed: Scales (day 1)",
            "Skill Sprint missed: Scales (day 2)",
            "Skill Sprint missed: Scales (day 3)",
        ]


class TestIdempotency:

    def test_repeated_runs_same_day_charge_once(self, db_session, overdue_sprint, day):
        """Several runs within one day charge that day once"""
        service = PenaltyService(db_session)
        run_at = overdue_sprint.due_at + day + timedelta(hours=2)
        for minutes in range(0, 60, 15):
            service.process_penalties(now=run_at + timedelta(minutes=minutes))

        assert len(penalty_entries(db_session, overdue_sprint.id)) == 1
        assert db_session.query(SkillSprintPenaltyCharge).count() == 1

    def test_next_day_charges_only_new_day(self, db_session, overdue_sprint, day):
        """A run on the next day charges only the new day"""
        service = PenaltyService(db_session)
        service.process_penalties(now=overdue_sprint.due_at + day + timedelta(hours=1))
        result = service.process_penalties(now=overdue_sprint.due_at + 2 * day + timedelta(hours=1))

        assert result.penalties_applied == 1
        assert len(penalty_entries(db_session, overdue_sprint.id)) == 2

    def test_day_claimed_elsewhere_is_skipped(self, db_session, overdue_sprint, day):
        """A charge row written by a concurrent run wins; no second ledger entry"""
        db_session.add(SkillSprintPenaltyCharge(
            assignment_id=overdue_sprint.id,
            day_index=1,
            boundary_at=overdue_sprint.due_at + day,
            points=5,
        ))
        db_session.commit()

        result = PenaltyService(db_session).process_penalties(
            now=overdue_sprint.due_at + day + timedelta(hours=1)
        )

        assert result.penalties_applied == 0
        assert result.updates_applied == 1
        assert penalty_entries(db_session, overdue_sprint.id) == []
        db_session.refresh(overdue_sprint)
        assert overdue_sprint.charged_days == 1

    def test_completed_sprint_not_charged(self, db_session, overdue_sprint, now, day):
        """Completed sprints leave the working set"""
        SprintService(db_session).complete_skill_sprint(overdue_sprint.id, now=now)
        result = PenaltyService(db_session).process_penalties(now=overdue_sprint.due_at + 4 * day)
        assert result.penalties_applied == 0
        assert result.updates_applied == 0


class TestEdgeCases:

    def test_zero_point_penalty_advances_without_entries(self, db_session, default_settings, now, day):
        """Zero-point days advance charged_days with no ledger entries"""
        student = make_student(db_session)
        assignment = SprintService(db_session).assign_skill_sprint(
            student.id, "Scales", now + day, penalty_points_per_day=5, now=now
        )
        assert assignment.penalty_points_per_day == 0

        result = PenaltyService(db_session).process_penalties(now=assignment.due_at + 2 * day)

        assert result.penalties_applied == 0
        assert result.updates_applied == 1
        assert db_session.query(LedgerEntry).count() == 0
        db_session.refresh(assignment)
        assert assignment.charged_days == 2

    def test_student_filter(self, db_session, overdue_sprint, default_settings, now, day):
        """A single-student run leaves other students alone"""
        other = make_student(db_session, name="Other", points=100)
        SprintService(db_session).assign_skill_sprint(
            other.id, "Chords", now + 2 * day, penalty_points_per_day=5, now=now
        )

        result = PenaltyService(db_session).process_penalties(
            student_id=other.id, now=overdue_sprint.due_at + day + timedelta(hours=1)
        )

        assert result.penalties_applied == 1
        assert penalty_entries(db_session, overdue_sprint.id) == []

    def test_assigned_at_anchor(self, db_session, default_settings, now, day):
        """With the assigned_at anchor, days count from assignment"""
        default_settings.penalty_anchor = "assigned_at"
        db_session.commit()
        student = make_student(db_session, points=100)
        assignment = SprintService(db_session).assign_skill_sprint(
            student.id, "Scales", now + 5 * day, penalty_points_per_day=5, now=now
        )

        result = PenaltyService(db_session).process_penalties(now=now + 2 * day + timedelta(hours=1))

        assert result.penalties_applied == 2
        db_session.refresh(assignment)
        assert assignment.last_penalty_at == now + 2 * day
