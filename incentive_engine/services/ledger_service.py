"""
Ledger service - append, list and undo point transactions.
Every mutation recomputes the student's balances in the same transaction.
"""
import logging
import math
from typing import List, Optional
from sqlalchemy.orm import Session

from incentive_engine.models import LedgerEntry
from incentive_engine.repositories.ledger_repository import LedgerRepository
from incentive_engine.repositories.student_repository import StudentRepository
from incentive_engine.services.balance_service import BalanceService
from incentive_engine.services.transaction import commit_or_raise
from incentive_engine.schemas import LedgerFilter, Balances
from incentive_engine.exceptions import (
    ValidationException, StudentNotFoundException, LedgerEntryNotFoundException,
)
from incentive_engine.constants import CATEGORY_MANUAL

logger = logging.getLogger("incentive_engine.ledger")


class LedgerService:
    """Service for ledger mutations"""

    def __init__(self, db: Session):
        self.db = db
        self.ledger_repo = LedgerRepository()
        self.student_repo = StudentRepository()
        self.balance_service = BalanceService(db)

    @staticmethod
    def _validate_points(points) -> int:
        if isinstance(points, bool) or points is None:
            raise ValidationException("points", "must be an integer")
        if isinstance(points, float):
            if not math.isfinite(points) or not points.is_integer():
                raise ValidationException("points", "must be a finite integer")
            points = int(points)
        if not isinstance(points, int):
            raise ValidationException("points", "must be an integer")
        if points == 0:
            raise ValidationException("points", "must be non-zero")
        return points

    def add_entry(
        self,
        student_id: int,
        points: int,
        category: str = CATEGORY_MANUAL,
        note: Optional[str] = None,
        source_type: Optional[str] = None,
        source_id: Optional[int] = None,
        created_by: Optional[str] = None
    ) -> LedgerEntry:
        """
        Append an entry without committing or recomputing.
        Callers idempotency-check before calling.
        """
        if not student_id:
            raise ValidationException("student_id", "is required")
        points = self._validate_points(points)

        entry = LedgerEntry(
            student_id=student_id,
            points=points,
            category=(category or CATEGORY_MANUAL)[:64],
            note=note[:200] if note else None,
            source_type=source_type,
            source_id=source_id,
            created_by=created_by,
        )
        return self.ledger_repo.create(self.db, entry)

    def append_ledger_entry(
        self,
        student_id: int,
        points: int,
        category: str = CATEGORY_MANUAL,
        source_type: Optional[str] = None,
        source_id: Optional[int] = None,
        note: Optional[str] = None,
        created_by: Optional[str] = None
    ) -> int:
        """
        Append a point transaction and recompute the student's balances.

        Returns:
            New entry id

        Raises:
            ValidationException: Missing student id or bad amount
            StudentNotFoundException: Unknown student
            StorageException: Commit failed
        """
        if not student_id:
            raise ValidationException("student_id", "is required")
        student = self.student_repo.get_by_id(self.db, student_id)
        if not student:
            raise StudentNotFoundException(student_id)

        entry = self.add_entry(
            student_id, points, category, note, source_type, source_id, created_by
        )
        self.balance_service.apply_balances(student)
        commit_or_raise(self.db, "append_ledger_entry")

        logger.info(f"Ledger +{entry.points} ({entry.category}) for student {student_id}, entry {entry.id}")
        return entry.id

    def list_entries(self, flt: LedgerFilter) -> List[LedgerEntry]:
        return self.ledger_repo.list(self.db, flt)

    def delete_ledger_entry(self, entry_id: int) -> Balances:
        """
        Undo: remove an entry and recompute the owner's balances.

        Returns:
            The student's balances after removal
        """
        entry = self.ledger_repo.get_by_id(self.db, entry_id)
        if not entry:
            raise LedgerEntryNotFoundException(entry_id)

        student_id = entry.student_id
        self.ledger_repo.delete(self.db, entry)
        balances = self.balance_service.apply_balances_for(student_id)
        commit_or_raise(self.db, "delete_ledger_entry")

        logger.info(f"Ledger entry {entry_id} removed for student {student_id}")
        return balances
