"""
Skill Sprint lifecycle: assignment, completion and the student snapshot.
"""
import logging
import math
from datetime import datetime
from typing import Optional, Union
from sqlalchemy.orm import Session

from incentive_engine.models import SkillCountdownAssignment
from incentive_engine.repositories.sprint_repository import SprintRepository
from incentive_engine.repositories.student_repository import StudentRepository
from incentive_engine.repositories.settings_repository import SettingsRepository
from incentive_engine.services import decay_service
from incentive_engine.services.balance_service import BalanceService
from incentive_engine.services.date_service import DateService
from incentive_engine.services.ledger_service import LedgerService
from incentive_engine.services.transaction import commit_or_raise
from incentive_engine.schemas import (
    CompletionStatus, SprintCompletionResult, SkillSprintResponse, SkillSprintView,
    SkillSprintSummary, SkillSprintSnapshot,
)
from incentive_engine.exceptions import (
    ValidationException, InvalidDueDateException, StudentNotFoundException,
    AssignmentNotFoundException, AssignmentDisabledException,
)
from incentive_engine.constants import (
    DAY_MS, SPRINT_SOURCE_TYPES, SPRINT_STATUS_OVERDUE, SPRINT_STATUS_UPCOMING,
    CATEGORY_SPRINT_COMPLETE, SOURCE_SKILL_SPRINT,
)

logger = logging.getLogger("incentive_engine.sprints")


class SprintService:
    """Service for skill sprint assignments"""

    def __init__(self, db: Session):
        self.db = db
        self.sprint_repo = SprintRepository()
        self.student_repo = StudentRepository()
        self.settings_repo = SettingsRepository()
        self.ledger_service = LedgerService(db)
        self.balance_service = BalanceService(db)
        self.date_service = DateService()

    def capped_penalty(self, requested: int, points_total: int, cap_ratio: float) -> int:
        """Penalty per day, capped to a share of the balance at assignment time"""
        base = max(0, points_total or 0)
        max_per_day = max(0, math.floor(base * cap_ratio))
        return min(max(0, requested), max_per_day)

    def assign_skill_sprint(
        self,
        student_id: int,
        label: str,
        due_at: Union[str, datetime, None],
        reward_points: Optional[int] = None,
        penalty_points_per_day: Optional[int] = None,
        assigned_by: Optional[str] = None,
        source_type: str = "manual",
        source_key: Optional[str] = None,
        note: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> SkillCountdownAssignment:
        """
        Create a skill sprint for a student.

        The penalty per day is frozen here, capped to
        floor(points_total * cap ratio) of the student's balance right now.

        Raises:
            ValidationException: Empty label or unknown source type
            InvalidDueDateException: due_at unparsable or not after now
            StudentNotFoundException: Unknown student
        """
        now = now or self.date_service.utcnow()
        label = (label or "").strip()
        if not label:
            raise ValidationException("source_label", "is required")
        source_type = (source_type or "manual").strip().lower()
        if source_type not in SPRINT_SOURCE_TYPES:
            raise ValidationException("source_type", f"must be one of {', '.join(SPRINT_SOURCE_TYPES)}")

        due = self.date_service.parse_datetime(due_at)
        if due is None or due <= now:
            raise InvalidDueDateException(due_at)

        student = self.student_repo.get_by_id(self.db, student_id)
        if not student:
            raise StudentNotFoundException(student_id)

        settings = self.settings_repo.get(self.db)
        if penalty_points_per_day is None:
            penalty_points_per_day = settings.default_penalty_points_per_day
        if reward_points is None:
            reward_points = settings.default_reward_points

        effective_penalty = self.capped_penalty(
            int(penalty_points_per_day), student.points_total, settings.sprint_penalty_cap_ratio
        )

        assignment = SkillCountdownAssignment(
            student_id=student_id,
            source_type=source_type,
            source_key=(source_key or "").strip() or None,
            source_label=label,
            note=(note or "").strip() or None,
            assigned_at=now,
            assigned_by=assigned_by,
            due_at=due,
            penalty_points_per_day=effective_penalty,
            reward_points=max(0, int(reward_points)),
            charged_days=0,
            enabled=True,
        )
        self.sprint_repo.create(self.db, assignment)
        commit_or_raise(self.db, "assign_skill_sprint")
        self.db.refresh(assignment)

        if effective_penalty < penalty_points_per_day:
            logger.info(
                f"Sprint {assignment.id}: penalty capped {penalty_points_per_day} -> {effective_penalty} "
                f"(points_total {student.points_total})"
            )
        return assignment

    def complete_skill_sprint(
        self,
        assignment_id: int,
        completed_by: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> SprintCompletionResult:
        """
        Complete a sprint and award the decayed prize.

        Completion is a compare-and-set on completed_at, so concurrent calls
        award the prize once; the loser gets an already_completed result.

        Raises:
            AssignmentNotFoundException: Unknown assignment
            AssignmentDisabledException: Assignment was disabled
        """
        now = now or self.date_service.utcnow()
        assignment = self.sprint_repo.get_by_id(self.db, assignment_id)
        if not assignment:
            raise AssignmentNotFoundException(assignment_id)
        if not assignment.enabled:
            raise AssignmentDisabledException(assignment_id)
        if assignment.completed_at is not None:
            return SprintCompletionResult(
                status=CompletionStatus.ALREADY_COMPLETED,
                assignment_id=assignment_id,
                completed_at=assignment.completed_at,
            )

        reward = max(0, decay_service.prize_now(
            assignment.reward_points, assignment.assigned_at, assignment.due_at, now
        ))

        if not self.sprint_repo.mark_completed(self.db, assignment_id, now, completed_by):
            self.db.rollback()
            self.db.refresh(assignment)
            return SprintCompletionResult(
                status=CompletionStatus.ALREADY_COMPLETED,
                assignment_id=assignment_id,
                completed_at=assignment.completed_at,
            )

        if reward > 0:
            self.ledger_service.add_entry(
                assignment.student_id,
                reward,
                category=CATEGORY_SPRINT_COMPLETE,
                note=f"Skill Sprint complete: {assignment.source_label or 'Skill'}",
                source_type=SOURCE_SKILL_SPRINT,
                source_id=assignment_id,
                created_by=completed_by,
            )
            self.balance_service.apply_balances_for(assignment.student_id)
        commit_or_raise(self.db, "complete_skill_sprint")

        logger.info(f"Sprint {assignment_id} completed by {completed_by}: {reward} points")
        return SprintCompletionResult(
            status=CompletionStatus.COMPLETED,
            assignment_id=assignment_id,
            reward_points_awarded=reward,
            completed_at=now,
        )

    def _view(self, assignment: SkillCountdownAssignment, now: datetime) -> SkillSprintView:
        remaining_ms = int((assignment.due_at - now).total_seconds() * 1000)
        overdue_days = 0
        if now > assignment.due_at:
            overdue_days = int(-remaining_ms // DAY_MS)
        base = SkillSprintResponse.model_validate(assignment).model_dump()
        return SkillSprintView(
            **base,
            remaining_ms=remaining_ms,
            overdue_days=overdue_days,
            status=SPRINT_STATUS_OVERDUE if remaining_ms < 0 else SPRINT_STATUS_UPCOMING,
            prize_now=decay_service.prize_now(
                assignment.reward_points, assignment.assigned_at, assignment.due_at, now
            ),
            prize_drop_per_day=decay_service.prize_drop_per_day(
                assignment.reward_points, assignment.assigned_at, assignment.due_at
            ),
            prize_dropped=decay_service.pool_dropped(
                assignment.reward_points, assignment.assigned_at, assignment.due_at, now
            ),
            points_lost=decay_service.points_lost_to_penalties(
                assignment.charged_days, assignment.penalty_points_per_day
            ),
        )

    def skill_sprint_snapshot(self, student_id: int, now: Optional[datetime] = None) -> SkillSprintSnapshot:
        """Active sprints for a student with countdown state and totals"""
        now = now or self.date_service.utcnow()
        if not self.student_repo.get_by_id(self.db, student_id):
            raise StudentNotFoundException(student_id)

        rows = [self._view(a, now) for a in self.sprint_repo.get_active(self.db, student_id)]
        upcoming = sorted(
            (r for r in rows if r.status == SPRINT_STATUS_UPCOMING),
            key=lambda r: r.remaining_ms
        )
        next_row = upcoming[0] if upcoming else None

        summary = SkillSprintSummary(
            active_count=len(rows),
            overdue_count=sum(1 for r in rows if r.status == SPRINT_STATUS_OVERDUE),
            next_due_at=next_row.due_at if next_row else None,
            next_due_in_ms=next_row.remaining_ms if next_row else None,
            total_penalty_points_per_day=sum(max(0, r.penalty_points_per_day) for r in rows),
            total_reward_points=sum(max(0, r.reward_points) for r in rows),
        )
        return SkillSprintSnapshot(rows=rows, summary=summary)
