"""
Skill sprint repository - Data access layer for countdown assignments and penalty charges.
"""
from datetime import datetime, timedelta
from typing import List, Optional
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from incentive_engine.models import SkillCountdownAssignment, SkillSprintPenaltyCharge
from incentive_engine.constants import PENALTY_ANCHOR_ASSIGNED


class SprintRepository:
    """Repository for SkillCountdownAssignment data access"""

    @staticmethod
    def get_by_id(db: Session, assignment_id: int) -> Optional[SkillCountdownAssignment]:
        return db.query(SkillCountdownAssignment).filter(
            SkillCountdownAssignment.id == assignment_id
        ).first()

    @staticmethod
    def create(db: Session, assignment: SkillCountdownAssignment) -> SkillCountdownAssignment:
        db.add(assignment)
        db.flush()
        return assignment

    @staticmethod
    def get_active(db: Session, student_id: Optional[int] = None) -> List[SkillCountdownAssignment]:
        """Enabled, uncompleted assignments ordered by due date"""
        query = db.query(SkillCountdownAssignment).filter(
            SkillCountdownAssignment.enabled == True,
            SkillCountdownAssignment.completed_at.is_(None)
        )
        if student_id is not None:
            query = query.filter(SkillCountdownAssignment.student_id == student_id)
        return query.order_by(SkillCountdownAssignment.due_at).all()

    @staticmethod
    def get_due_for_penalties(
        db: Session,
        now: datetime,
        anchor: str,
        student_id: Optional[int] = None
    ) -> List[SkillCountdownAssignment]:
        """
        Active assignments whose penalty anchor is at least one full day old.

        Args:
            db: Database session
            now: Reference time for the run
            anchor: Which timestamp penalty days count from (due_at or assigned_at)
            student_id: Restrict to one student

        Returns:
            Assignments that may have an uncharged penalty day
        """
        anchor_column = (
            SkillCountdownAssignment.assigned_at
            if anchor == PENALTY_ANCHOR_ASSIGNED
            else SkillCountdownAssignment.due_at
        )
        query = db.query(SkillCountdownAssignment).filter(
            SkillCountdownAssignment.enabled == True,
            SkillCountdownAssignment.completed_at.is_(None),
            anchor_column <= now - timedelta(days=1)
        )
        if student_id is not None:
            query = query.filter(SkillCountdownAssignment.student_id == student_id)
        return query.order_by(SkillCountdownAssignment.due_at, SkillCountdownAssignment.id).all()

    @staticmethod
    def mark_completed(
        db: Session,
        assignment_id: int,
        completed_at: datetime,
        completed_by: Optional[str]
    ) -> bool:
        """
        Compare-and-set completion.

        Returns:
            True if this call completed the assignment, False if it was already completed
        """
        updated = db.query(SkillCountdownAssignment).filter(
            SkillCountdownAssignment.id == assignment_id,
            SkillCountdownAssignment.completed_at.is_(None)
        ).update(
            {"completed_at": completed_at, "completed_by": completed_by},
            synchronize_session=False
        )
        return updated == 1

    @staticmethod
    def try_insert_charge(db: Session, charge: SkillSprintPenaltyCharge) -> bool:
        """
        Insert a penalty charge unless that (assignment, day) is already charged.

        Returns:
            True if inserted, False on a uniqueness conflict
        """
        try:
            with db.begin_nested():
                db.add(charge)
        except IntegrityError:
            return False
        return True
