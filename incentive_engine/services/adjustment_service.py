"""
Retroactive badge point adjustment.
"""
import logging
from sqlalchemy.orm import Session

from incentive_engine.repositories.badge_repository import BadgeRepository
from incentive_engine.services.balance_service import BalanceService
from incentive_engine.services.ledger_service import LedgerService
from incentive_engine.services.transaction import commit_or_raise
from incentive_engine.schemas import Actor, AdjustmentResult
from incentive_engine.exceptions import (
    BadgeNotFoundException, ConfirmationRequiredException, PermissionDeniedException,
)
from incentive_engine.constants import CATEGORY_BADGE_ADJUSTMENT, SOURCE_BADGE, ROLE_ADMIN

logger = logging.getLogger("incentive_engine.adjustments")


class AdjustmentService:
    """Service for bringing past badge awards in line with the current award value"""

    def __init__(self, db: Session):
        self.db = db
        self.badge_repo = BadgeRepository()
        self.ledger_service = LedgerService(db)
        self.balance_service = BalanceService(db)

    def adjust_badge_points_retroactively(
        self,
        badge_id: int,
        confirm: bool,
        actor: Actor
    ) -> AdjustmentResult:
        """
        Issue compensating entries so every holder of the badge has received
        exactly its current points_award.

        For each award row: delta = points_award - points_awarded. Non-zero
        deltas (including clawbacks) append a badge_adjustment entry and
        record the new value on the row, in one transaction per student.
        The row update is a compare-and-set on the recorded value, so two
        concurrent runs adjust each award once.
        A second run with the badge unchanged finds no deltas.

        Raises:
            PermissionDeniedException: Actor is not an admin
            ConfirmationRequiredException: confirm is false
            BadgeNotFoundException: Unknown badge
        """
        if not actor.has_any_role(ROLE_ADMIN):
            raise PermissionDeniedException(ROLE_ADMIN)
        if not confirm:
            raise ConfirmationRequiredException("adjust_badge_points_retroactively")

        badge = self.badge_repo.get_by_id(self.db, badge_id)
        if not badge:
            raise BadgeNotFoundException(badge_id)

        target = badge.points_award or 0
        badge_name = badge.name or str(badge_id)
        adjusted = 0

        for award in self.badge_repo.get_awards_for_badge(self.db, badge_id):
            recorded = award.points_awarded or 0
            delta = target - recorded
            if not delta:
                continue
            if not self.badge_repo.set_points_awarded(self.db, award.id, recorded, target):
                logger.info(f"Award {award.id} already adjusted by another run, skipping")
                continue

            self.ledger_service.add_entry(
                award.student_id,
                delta,
                category=CATEGORY_BADGE_ADJUSTMENT,
                note=f"Badge points adjustment: {badge_name}",
                source_type=SOURCE_BADGE,
                source_id=badge_id,
                created_by=actor.user_id,
            )
            self.balance_service.apply_balances_for(award.student_id)
            commit_or_raise(self.db, "adjust_badge_points_retroactively")
            adjusted += 1

        logger.info(f"Badge {badge_id} retroactive adjustment: {adjusted} awards moved to {target} points")
        return AdjustmentResult(adjusted=adjusted, target_points=target)
