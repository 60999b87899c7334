"""
Balance aggregation service.
Derives a student's stored balances from their ledger entries.
"""
import logging
from typing import Iterable, Optional
from sqlalchemy.orm import Session

from incentive_engine.models import LedgerEntry, Student
from incentive_engine.repositories.ledger_repository import LedgerRepository
from incentive_engine.repositories.student_repository import StudentRepository
from incentive_engine.repositories.settings_repository import SettingsRepository
from incentive_engine.services.level_service import LevelService
from incentive_engine.services.transaction import commit_or_raise
from incentive_engine.schemas import Balances, RecomputeAllResult
from incentive_engine.exceptions import StudentNotFoundException
from incentive_engine.constants import LIFETIME_EXCLUDED_CATEGORIES

logger = logging.getLogger("incentive_engine.balances")


def aggregate_entries(entries: Iterable[LedgerEntry]) -> Balances:
    """
    Pure aggregation over ledger entries.

    - points_total: sum of every entry
    - points_balance: spendable amount; hold entries are negative deltas,
      so held points are already excluded from it
    - lifetime_points: sum of positive entries outside the refund/release
      categories; spending never lowers it

    Level is left at 1; callers apply the level curve.
    """
    total = 0
    lifetime = 0
    for entry in entries:
        points = int(entry.points or 0)
        total += points
        if points > 0 and entry.category not in LIFETIME_EXCLUDED_CATEGORIES:
            lifetime += points
    return Balances(points_total=total, points_balance=total, lifetime_points=lifetime)


class BalanceService:
    """Service for recomputing derived balances"""

    def __init__(self, db: Session):
        self.db = db
        self.ledger_repo = LedgerRepository()
        self.student_repo = StudentRepository()
        self.settings_repo = SettingsRepository()
        self.level_service = LevelService()
        self._thresholds = None

    def _level_thresholds(self):
        if self._thresholds is None:
            settings = self.settings_repo.get(self.db)
            self._thresholds = self.level_service.compute_thresholds(
                settings.level_base_jump, settings.level_difficulty_pct
            )
        return self._thresholds

    def apply_balances(self, student: Student) -> Balances:
        """
        Recompute and write balances onto the student without committing.
        Used inside the same transaction as the ledger mutation.
        """
        self.db.flush()
        balances = aggregate_entries(self.ledger_repo.get_for_student(self.db, student.id))
        balances.level = self.level_service.level_for(
            balances.lifetime_points, self._level_thresholds()
        )

        student.points_total = balances.points_total
        student.points_balance = balances.points_balance
        student.lifetime_points = balances.lifetime_points
        student.level = balances.level
        self.db.flush()
        return balances

    def apply_balances_for(self, student_id: int) -> Balances:
        student = self.student_repo.get_by_id(self.db, student_id)
        if not student:
            raise StudentNotFoundException(student_id)
        return self.apply_balances(student)

    def recompute_balances(self, student_id: int) -> Balances:
        """
        Recompute a student's balances from the ledger and persist them.

        Raises:
            StudentNotFoundException: Unknown student
            StorageException: Commit failed
        """
        balances = self.apply_balances_for(student_id)
        commit_or_raise(self.db, "recompute_balances")
        return balances

    def recompute_all(self, student_ids: Optional[Iterable[int]] = None) -> RecomputeAllResult:
        """Re-derive every student's balances; one commit per student"""
        ids = list(student_ids) if student_ids is not None else self.student_repo.get_ids(self.db)
        changed = 0
        for student_id in ids:
            student = self.student_repo.get_by_id(self.db, student_id)
            if not student:
                continue
            before = (student.points_total, student.points_balance, student.lifetime_points, student.level)
            balances = self.apply_balances(student)
            after = (balances.points_total, balances.points_balance, balances.lifetime_points, balances.level)
            if before != after:
                changed += 1
                logger.info(f"Student {student_id} balances converged: {before} -> {after}")
            commit_or_raise(self.db, "recompute_all")
        return RecomputeAllResult(scanned=len(ids), changed=changed)
