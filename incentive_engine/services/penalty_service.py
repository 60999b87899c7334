"""
Skill Sprint penalty processing.
Charges at most one penalty per assignment per elapsed day.
"""
import logging
from datetime import datetime, timedelta
from typing import Optional
from sqlalchemy.orm import Session

from incentive_engine.models import SkillCountdownAssignment, SkillSprintPenaltyCharge
from incentive_engine.repositories.sprint_repository import SprintRepository
from incentive_engine.repositories.settings_repository import SettingsRepository
from incentive_engine.services.balance_service import BalanceService
from incentive_engine.services.date_service import DateService
from incentive_engine.services.ledger_service import LedgerService
from incentive_engine.services.transaction import commit_or_raise
from incentive_engine.schemas import PenaltyRunResult
from incentive_engine.constants import (
    CATEGORY_SPRINT_PENALTY, SOURCE_SKILL_SPRINT, PENALTY_ANCHOR_ASSIGNED, PENALTY_ANCHOR_DUE,
)

logger = logging.getLogger("incentive_engine.penalties")


class PenaltyService:
    """Service for daily skill sprint penalties"""

    def __init__(self, db: Session):
        self.db = db
        self.sprint_repo = SprintRepository()
        self.settings_repo = SettingsRepository()
        self.ledger_service = LedgerService(db)
        self.balance_service = BalanceService(db)
        self.date_service = DateService()

    def process_penalties(
        self,
        student_id: Optional[int] = None,
        now: Optional[datetime] = None,
        actor_id: Optional[str] = None
    ) -> PenaltyRunResult:
        """
        Charge every uncharged elapsed penalty day.

        Safe to run repeatedly and concurrently: each (assignment, day index)
        is claimed through a unique charge row before its ledger entry is
        written, so a day is charged once no matter how many runs see it.

        Args:
            student_id: Limit the run to one student (None = everyone)
            now: Reference time, fixed for the whole run
            actor_id: Recorded as created_by on penalty entries

        Returns:
            PenaltyRunResult with entries appended and assignments advanced
        """
        now = now or self.date_service.utcnow()
        settings = self.settings_repo.get(self.db)
        anchor = settings.penalty_anchor or PENALTY_ANCHOR_DUE

        result = PenaltyRunResult()
        assignments = self.sprint_repo.get_due_for_penalties(self.db, now, anchor, student_id)

        for assignment in assignments:
            applied, points = self._charge_assignment(assignment, anchor, now, actor_id)
            if applied is None:
                continue
            result.updates_applied += 1
            result.penalties_applied += applied
            result.points_charged += points

        if result.penalties_applied:
            logger.info(
                f"Penalty run: {result.penalties_applied} penalties, "
                f"{result.points_charged} points across {result.updates_applied} assignments"
            )
        return result

    def _anchor_time(self, assignment: SkillCountdownAssignment, anchor: str) -> datetime:
        if anchor == PENALTY_ANCHOR_ASSIGNED:
            return assignment.assigned_at
        return assignment.due_at

    def _charge_assignment(
        self,
        assignment: SkillCountdownAssignment,
        anchor: str,
        now: datetime,
        actor_id: Optional[str]
    ):
        """
        Charge pending days for one assignment in a single transaction.

        Returns:
            (ledger entries appended, points charged), or (None, 0) if nothing was pending
        """
        start = self._anchor_time(assignment, anchor)
        elapsed_days = self.date_service.full_days_between(start, now)
        charged_days = max(0, assignment.charged_days or 0)
        if elapsed_days <= charged_days:
            return None, 0

        per_day = max(0, assignment.penalty_points_per_day or 0)
        applied = 0
        points = 0

        for day_index in range(charged_days + 1, elapsed_days + 1):
            boundary = start + timedelta(days=day_index)
            charge = SkillSprintPenaltyCharge(
                assignment_id=assignment.id,
                day_index=day_index,
                boundary_at=boundary,
                points=per_day,
            )
            claimed = self.sprint_repo.try_insert_charge(self.db, charge)
            if claimed and per_day > 0:
                entry = self.ledger_service.add_entry(
                    assignment.student_id,
                    -per_day,
                    category=CATEGORY_SPRINT_PENALTY,
                    note=f"Skill Sprint missed: {assignment.source_label} (day {day_index})",
                    source_type=SOURCE_SKILL_SPRINT,
                    source_id=assignment.id,
                    created_by=actor_id,
                )
                charge.ledger_entry_id = entry.id
                applied += 1
                points += per_day
            elif not claimed:
                logger.info(f"Assignment {assignment.id} day {day_index} already charged, skipping")

            assignment.charged_days = day_index
            assignment.last_penalty_at = boundary

        if applied:
            self.balance_service.apply_balances_for(assignment.student_id)
        commit_or_raise(self.db, "process_penalties")
        return applied, points
