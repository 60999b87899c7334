"""
Badge repository - Data access layer for achievement badges and award rows.
"""
from typing import List, Optional
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from incentive_engine.models import (
    AchievementBadge, StudentAchievementBadge, Student, AttendanceCheckin,
)
from incentive_engine.constants import (
    BADGE_CATEGORY_PRESTIGE, CRITERIA_CHECKINS, CRITERIA_LIFETIME_POINTS, CRITERIA_LEVEL,
)


class BadgeRepository:
    """Repository for AchievementBadge and StudentAchievementBadge data access"""

    @staticmethod
    def get_by_id(db: Session, badge_id: int) -> Optional[AchievementBadge]:
        return db.query(AchievementBadge).filter(AchievementBadge.id == badge_id).first()

    @staticmethod
    def create(db: Session, badge: AchievementBadge) -> AchievementBadge:
        db.add(badge)
        db.flush()
        return badge

    @staticmethod
    def get_auto_awardable(db: Session) -> List[AchievementBadge]:
        """Enabled badges outside the prestige category"""
        return db.query(AchievementBadge).filter(
            AchievementBadge.enabled == True,
            (AchievementBadge.category.is_(None)) | (AchievementBadge.category != BADGE_CATEGORY_PRESTIGE)
        ).order_by(AchievementBadge.id).all()

    @staticmethod
    def get_award(db: Session, student_id: int, badge_id: int) -> Optional[StudentAchievementBadge]:
        return db.query(StudentAchievementBadge).filter(
            StudentAchievementBadge.student_id == student_id,
            StudentAchievementBadge.badge_id == badge_id
        ).first()

    @staticmethod
    def get_awards_for_badge(db: Session, badge_id: int) -> List[StudentAchievementBadge]:
        return db.query(StudentAchievementBadge).filter(
            StudentAchievementBadge.badge_id == badge_id
        ).order_by(StudentAchievementBadge.id).all()

    @staticmethod
    def set_points_awarded(db: Session, award_id: int, expected: int, target: int) -> bool:
        """
        Compare-and-set the recorded award value.

        Returns:
            True if the row still held `expected` and now holds `target`
        """
        updated = db.query(StudentAchievementBadge).filter(
            StudentAchievementBadge.id == award_id,
            StudentAchievementBadge.points_awarded == expected
        ).update({"points_awarded": target}, synchronize_session=False)
        return updated == 1

    @staticmethod
    def try_insert_award(db: Session, award: StudentAchievementBadge) -> bool:
        """
        Insert an award row unless the student already holds the badge.

        Returns:
            True if inserted, False on a uniqueness conflict
        """
        try:
            with db.begin_nested():
                db.add(award)
        except IntegrityError:
            return False
        return True

    @staticmethod
    def get_eligible_student_ids(
        db: Session,
        badge_id: int,
        criteria_type: str,
        threshold: int
    ) -> List[int]:
        """
        Students meeting a threshold who do not hold the badge yet.

        Args:
            db: Database session
            badge_id: Badge being evaluated
            criteria_type: checkins, lifetime_points or level
            threshold: Minimum value (inclusive)

        Returns:
            Student ids in ascending order
        """
        already_awarded = select(StudentAchievementBadge.student_id).where(
            StudentAchievementBadge.badge_id == badge_id
        )

        if criteria_type == CRITERIA_CHECKINS:
            query = db.query(AttendanceCheckin.student_id).filter(
                AttendanceCheckin.student_id.notin_(already_awarded)
            ).group_by(AttendanceCheckin.student_id).having(
                func.count(AttendanceCheckin.id) >= threshold
            ).order_by(AttendanceCheckin.student_id)
        elif criteria_type == CRITERIA_LIFETIME_POINTS:
            query = db.query(Student.id).filter(
                Student.lifetime_points >= threshold,
                Student.id.notin_(already_awarded)
            ).order_by(Student.id)
        elif criteria_type == CRITERIA_LEVEL:
            query = db.query(Student.id).filter(
                Student.level >= threshold,
                Student.id.notin_(already_awarded)
            ).order_by(Student.id)
        else:
            return []

        return [row[0] for row in query.all()]
