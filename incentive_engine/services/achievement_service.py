"""
Achievement badge awarding.
Batch pass over criteria badges plus the coach/admin manual award.
"""
import logging
from datetime import datetime
from typing import Optional
from pydantic import ValidationError
from sqlalchemy.orm import Session

from incentive_engine.models import AchievementBadge, StudentAchievementBadge
from incentive_engine.repositories.badge_repository import BadgeRepository
from incentive_engine.repositories.student_repository import StudentRepository
from incentive_engine.services.balance_service import BalanceService
from incentive_engine.services.date_service import DateService
from incentive_engine.services.ledger_service import LedgerService
from incentive_engine.services.transaction import commit_or_raise
from incentive_engine.schemas import (
    Actor, AwardStatus, BadgeAwardResult, AchievementPassResult, BadgeSave,
    badge_criteria_adapter,
)
from incentive_engine.exceptions import (
    StudentNotFoundException, BadgeNotFoundException, PermissionDeniedException,
)
from incentive_engine.constants import (
    CATEGORY_BADGE_AWARD, SOURCE_BADGE, AWARD_SOURCE_AUTO, AWARD_SOURCE_COACH,
    ROLE_ADMIN, ROLE_COACH,
)

logger = logging.getLogger("incentive_engine.achievements")


class AchievementService:
    """Service for badge criteria evaluation and awarding"""

    def __init__(self, db: Session):
        self.db = db
        self.badge_repo = BadgeRepository()
        self.student_repo = StudentRepository()
        self.ledger_service = LedgerService(db)
        self.balance_service = BalanceService(db)
        self.date_service = DateService()

    def _parse_criteria(self, badge: AchievementBadge):
        """Stored criteria as a tagged variant, or None if unusable"""
        criteria_type = (badge.criteria_type or "").strip().lower()
        if not criteria_type:
            return None
        try:
            return badge_criteria_adapter.validate_python({
                "criteria_type": criteria_type,
                "threshold": badge.threshold,
            })
        except ValidationError as e:
            logger.warning(f"Badge {badge.id} has invalid criteria, skipping: {e.errors()}")
            return None

    def _grant(
        self,
        student_id: int,
        badge: AchievementBadge,
        source: str,
        awarded_by: Optional[str],
        award_note: Optional[str],
        now: datetime
    ) -> bool:
        """
        Insert the award row and its ledger entry (no commit).

        Returns:
            False if the student already holds the badge
        """
        points_award = badge.points_award or 0
        award = StudentAchievementBadge(
            student_id=student_id,
            badge_id=badge.id,
            source=source,
            awarded_by=awarded_by,
            award_note=award_note,
            points_awarded=points_award,
            awarded_at=now,
        )
        if not self.badge_repo.try_insert_award(self.db, award):
            return False

        if points_award:
            self.ledger_service.add_entry(
                student_id,
                points_award,
                category=CATEGORY_BADGE_AWARD,
                note=f"Badge award: {badge.name or badge.id}",
                source_type=SOURCE_BADGE,
                source_id=badge.id,
                created_by=awarded_by,
            )
            self.balance_service.apply_balances_for(student_id)
        return True

    def run_achievement_pass(self, now: Optional[datetime] = None) -> AchievementPassResult:
        """
        Award every criteria badge to newly eligible students.

        Badges are processed in id order with one commit per badge, so a level
        reached through one badge's points can unlock a later level badge in
        the same pass. Running it again with unchanged data awards nothing.

        Returns:
            AchievementPassResult with the number of new award rows
        """
        now = now or self.date_service.utcnow()
        result = AchievementPassResult()

        for badge in self.badge_repo.get_auto_awardable(self.db):
            criteria = self._parse_criteria(badge)
            if criteria is None:
                result.badges_skipped += 1
                continue
            result.badges_scanned += 1

            eligible = self.badge_repo.get_eligible_student_ids(
                self.db, badge.id, criteria.criteria_type, criteria.threshold
            )
            if not eligible:
                continue

            awarded_here = 0
            for student_id in eligible:
                if self._grant(student_id, badge, AWARD_SOURCE_AUTO, None, None, now):
                    awarded_here += 1
            commit_or_raise(self.db, "run_achievement_pass")

            if awarded_here:
                logger.info(f"Badge {badge.id} ({badge.name}) auto-awarded to {awarded_here} students")
            result.awarded += awarded_here

        return result

    def award_badge(
        self,
        student_id: int,
        badge_id: int,
        actor: Actor,
        award_note: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> BadgeAwardResult:
        """
        Manually award a badge (coach or admin).

        Raises:
            PermissionDeniedException: Actor is neither coach nor admin
            StudentNotFoundException / BadgeNotFoundException
        """
        if not actor.has_any_role(ROLE_COACH, ROLE_ADMIN):
            raise PermissionDeniedException(ROLE_COACH)
        now = now or self.date_service.utcnow()

        if not self.student_repo.get_by_id(self.db, student_id):
            raise StudentNotFoundException(student_id)
        badge = self.badge_repo.get_by_id(self.db, badge_id)
        if not badge:
            raise BadgeNotFoundException(badge_id)

        if self.badge_repo.get_award(self.db, student_id, badge_id):
            return BadgeAwardResult(
                status=AwardStatus.ALREADY_AWARDED, student_id=student_id, badge_id=badge_id
            )

        note = (award_note or "").strip() or None
        if not self._grant(student_id, badge, AWARD_SOURCE_COACH, actor.user_id, note, now):
            self.db.rollback()
            return BadgeAwardResult(
                status=AwardStatus.ALREADY_AWARDED, student_id=student_id, badge_id=badge_id
            )
        commit_or_raise(self.db, "award_badge")

        logger.info(f"Badge {badge_id} awarded to student {student_id} by {actor.user_id}")
        return BadgeAwardResult(
            status=AwardStatus.AWARDED,
            student_id=student_id,
            badge_id=badge_id,
            points_awarded=badge.points_award or 0,
        )

    def save_badge(self, data: BadgeSave, actor: Actor) -> AchievementBadge:
        """
        Create or update a badge. Criteria arrive already validated as a
        tagged variant; points changes do not touch existing awards (see the
        retroactive adjuster).
        """
        if not actor.has_any_role(ROLE_ADMIN):
            raise PermissionDeniedException(ROLE_ADMIN)

        if data.id is not None:
            badge = self.badge_repo.get_by_id(self.db, data.id)
            if not badge:
                raise BadgeNotFoundException(data.id)
        else:
            badge = AchievementBadge()

        badge.name = data.name.strip()
        badge.category = (data.category or "").strip().lower() or None
        badge.criteria_type = data.criteria.criteria_type if data.criteria else None
        badge.threshold = data.criteria.threshold if data.criteria else None
        badge.points_award = data.points_award
        badge.enabled = data.enabled

        if data.id is None:
            self.badge_repo.create(self.db, badge)
        commit_or_raise(self.db, "save_badge")
        self.db.refresh(badge)
        return badge
