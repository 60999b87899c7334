"""
Ledger repository - Data access layer for LedgerEntry.
Entries are append-only; deletion exists only for undo flows.
"""
from typing import List, Optional
from sqlalchemy.orm import Session

from incentive_engine.models import LedgerEntry
from incentive_engine.schemas import LedgerFilter


class LedgerRepository:
    """Repository for LedgerEntry data access"""

    @staticmethod
    def create(db: Session, entry: LedgerEntry) -> LedgerEntry:
        """Add entry and flush so it gets an id (caller commits)"""
        db.add(entry)
        db.flush()
        return entry

    @staticmethod
    def get_by_id(db: Session, entry_id: int) -> Optional[LedgerEntry]:
        return db.query(LedgerEntry).filter(LedgerEntry.id == entry_id).first()

    @staticmethod
    def get_for_student(db: Session, student_id: int) -> List[LedgerEntry]:
        """All entries for a student in insertion order"""
        return db.query(LedgerEntry).filter(
            LedgerEntry.student_id == student_id
        ).order_by(LedgerEntry.id).all()

    @staticmethod
    def list(db: Session, flt: LedgerFilter) -> List[LedgerEntry]:
        """List entries matching a filter, newest first"""
        query = db.query(LedgerEntry)
        if flt.student_id is not None:
            query = query.filter(LedgerEntry.student_id == flt.student_id)
        if flt.category:
            query = query.filter(LedgerEntry.category == flt.category)
        if flt.source_type:
            query = query.filter(LedgerEntry.source_type == flt.source_type)
        if flt.source_id is not None:
            query = query.filter(LedgerEntry.source_id == flt.source_id)
        if flt.created_from:
            query = query.filter(LedgerEntry.created_at >= flt.created_from)
        if flt.created_to:
            query = query.filter(LedgerEntry.created_at < flt.created_to)
        return query.order_by(LedgerEntry.id.desc()).offset(flt.skip).limit(flt.limit).all()

    @staticmethod
    def delete(db: Session, entry: LedgerEntry) -> None:
        db.delete(entry)
        db.flush()
