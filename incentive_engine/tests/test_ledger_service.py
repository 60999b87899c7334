"""
Tests for LedgerService.
"""
import pytest
from sqlalchemy.exc import OperationalError

from incentive_engine.models import LedgerEntry, Student
from incentive_engine.schemas import LedgerFilter
from incentive_engine.services.ledger_service import LedgerService
from incentive_engine.exceptions import (
    ValidationException, StudentNotFoundException, LedgerEntryNotFoundException,
    StorageException,
)
from incentive_engine.tests.conftest import make_student


class TestAppend:

    def test_append_updates_balances(self, db_session, default_settings):
        """Appending recomputes every balance field and the level"""
        student = make_student(db_session)
        service = LedgerService(db_session)

        entry_id = service.append_ledger_entry(student.id, 75, category="manual", note="Great week")

        db_session.refresh(student)
        assert entry_id is not None
        assert student.points_total == 75
        assert student.points_balance == 75
        assert student.lifetime_points == 75
        assert student.level == 2

    def test_spending_does_not_lower_lifetime(self, db_session, default_settings):
        """Negative entries lower the total but not lifetime points"""
        student = make_student(db_session, points=100)
        LedgerService(db_session).append_ledger_entry(student.id, -30, category="redeem")

        db_session.refresh(student)
        assert student.points_total == 70
        assert student.lifetime_points == 100

    @pytest.mark.parametrize("points", [0, 1.5, None, True, float("inf"), "10"])
    def test_rejects_bad_amounts(self, db_session, default_settings, points):
        """Zero, fractional, missing, boolean, infinite and string amounts are rejected"""
        student = make_student(db_session)
        with pytest.raises(ValidationException):
            LedgerService(db_session).append_ledger_entry(student.id, points)
        assert db_session.query(LedgerEntry).count() == 0

    def test_integral_float_accepted(self, db_session, default_settings):
        """Whole-number floats are accepted as integers"""
        student = make_student(db_session)
        LedgerService(db_session).append_ledger_entry(student.id, 12.0)
        db_session.refresh(student)
        assert student.points_total == 12

    def test_unknown_student(self, db_session, default_settings):
        """Appending for a missing student raises not-found"""
        with pytest.raises(StudentNotFoundException):
            LedgerService(db_session).append_ledger_entry(404, 10)

    def test_missing_student_id(self, db_session, default_settings):
        """A student id is required"""
        with pytest.raises(ValidationException):
            LedgerService(db_session).append_ledger_entry(None, 10)


class TestListAndUndo:

    def test_list_filters_newest_first(self, db_session, default_settings):
        """Filters narrow the listing; newest entries come first"""
        student = make_student(db_session)
        other = make_student(db_session, name="Other")
        service = LedgerService(db_session)
        first = service.append_ledger_entry(student.id, 5)
        second = service.append_ledger_entry(student.id, 7, category="badge_award")
        service.append_ledger_entry(other.id, 9)

        rows = service.list_entries(LedgerFilter(student_id=student.id))
        assert [r.id for r in rows] == [second, first]

        rows = service.list_entries(LedgerFilter(category="badge_award"))
        assert [r.id for r in rows] == [second]

    def test_delete_recomputes(self, db_session, default_settings):
        """Undo removes the entry and recomputes balances"""
        student = make_student(db_session, points=40)
        service = LedgerService(db_session)
        entry_id = service.append_ledger_entry(student.id, 20)

        balances = service.delete_ledger_entry(entry_id)

        assert balances.points_total == 40
        assert balances.lifetime_points == 40
        assert db_session.get(Student, student.id).points_total == 40
        assert db_session.get(LedgerEntry, entry_id) is None

    def test_delete_unknown_entry(self, db_session, default_settings):
        """Undoing a missing entry raises not-found"""
        with pytest.raises(LedgerEntryNotFoundException):
            LedgerService(db_session).delete_ledger_entry(12345)


class TestStorageFailure:
    """Commit failures roll back and surface as StorageException"""

    def test_failed_commit_rolls_back(self, db_session, default_settings, monkeypatch):
        """Neither the entry nor the balance change survives a failed commit; a retry converges"""
        student = make_student(db_session, points=40)

        def failing_commit():
            raise OperationalError("COMMIT", {}, Exception("database is locked"))

        monkeypatch.setattr(db_session, "commit", failing_commit)
        with pytest.raises(StorageException):
            LedgerService(db_session).append_ledger_entry(student.id, 25)
        monkeypatch.undo()

        assert db_session.query(LedgerEntry).count() == 1
        assert db_session.get(Student, student.id).points_total == 40

        LedgerService(db_session).append_ledger_entry(student.id, 25)
        assert db_session.query(LedgerEntry).count() == 2
        assert db_session.get(Student, student.id).points_total == 65
