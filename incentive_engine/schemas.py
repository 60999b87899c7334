from enum import Enum
from pydantic import BaseModel, Field, TypeAdapter
from datetime import datetime
from typing import Annotated, FrozenSet, List, Literal, Optional, Union

from incentive_engine.constants import (
    CRITERIA_CHECKINS, CRITERIA_LIFETIME_POINTS, CRITERIA_LEVEL, CATEGORY_MANUAL,
)


class Actor(BaseModel):
    """Caller identity as supplied by the role resolver (trusted as given)"""
    user_id: Optional[str] = None
    roles: FrozenSet[str] = frozenset()

    def has_any_role(self, *roles: str) -> bool:
        return bool(self.roles.intersection(roles))


# Ledger schemas
class LedgerEntryCreate(BaseModel):
    student_id: int
    points: int
    category: str = Field(default=CATEGORY_MANUAL, min_length=1, max_length=64)
    note: Optional[str] = Field(None, max_length=200)
    source_type: Optional[str] = Field(None, max_length=64)
    source_id: Optional[int] = None


class LedgerEntryResponse(BaseModel):
    id: int
    student_id: int
    points: int
    category: str
    note: Optional[str]
    source_type: Optional[str]
    source_id: Optional[int]
    created_by: Optional[str]
    created_at: datetime

    class Config:
        from_attributes = True


class LedgerFilter(BaseModel):
    student_id: Optional[int] = None
    category: Optional[str] = None
    source_type: Optional[str] = None
    source_id: Optional[int] = None
    created_from: Optional[datetime] = None
    created_to: Optional[datetime] = None
    skip: int = Field(default=0, ge=0)
    limit: int = Field(default=100, ge=1, le=1000)


class Balances(BaseModel):
    points_total: int = 0
    points_balance: int = 0
    lifetime_points: int = 0
    level: int = 1


class StudentBalanceResponse(Balances):
    student_id: int


class RecomputeAllResult(BaseModel):
    scanned: int
    changed: int


# Skill sprint schemas
class SkillSprintAssign(BaseModel):
    student_id: int
    source_label: str = Field(..., min_length=1, max_length=200)
    due_at: datetime
    reward_points: Optional[int] = Field(None, ge=0)
    penalty_points_per_day: Optional[int] = Field(None, ge=0)
    source_type: str = Field(default="manual", pattern="^(skill_tree|skill_pulse|manual)$")
    source_key: Optional[str] = None
    note: Optional[str] = Field(None, max_length=500)


class SkillSprintResponse(BaseModel):
    id: int
    student_id: int
    source_type: str
    source_key: Optional[str]
    source_label: str
    note: Optional[str]
    assigned_at: datetime
    assigned_by: Optional[str]
    due_at: datetime
    penalty_points_per_day: int
    reward_points: int
    charged_days: int
    last_penalty_at: Optional[datetime]
    completed_at: Optional[datetime]
    completed_by: Optional[str]
    enabled: bool

    class Config:
        from_attributes = True


class CompletionStatus(str, Enum):
    COMPLETED = "completed"
    ALREADY_COMPLETED = "already_completed"


class SprintCompletionResult(BaseModel):
    status: CompletionStatus
    assignment_id: int
    reward_points_awarded: int = 0
    completed_at: Optional[datetime] = None


class PenaltyRunResult(BaseModel):
    penalties_applied: int = 0
    updates_applied: int = 0
    points_charged: int = 0


class SkillSprintView(SkillSprintResponse):
    remaining_ms: int
    overdue_days: int
    status: str
    prize_now: int
    prize_drop_per_day: float
    prize_dropped: int
    points_lost: int


class SkillSprintSummary(BaseModel):
    active_count: int = 0
    overdue_count: int = 0
    next_due_at: Optional[datetime] = None
    next_due_in_ms: Optional[int] = None
    total_penalty_points_per_day: int = 0
    total_reward_points: int = 0


class SkillSprintSnapshot(BaseModel):
    rows: List[SkillSprintView]
    summary: SkillSprintSummary


# Achievement schemas
class CheckinsCriteria(BaseModel):
    criteria_type: Literal["checkins"] = CRITERIA_CHECKINS
    threshold: int = Field(..., ge=1)


class LifetimePointsCriteria(BaseModel):
    criteria_type: Literal["lifetime_points"] = CRITERIA_LIFETIME_POINTS
    threshold: int = Field(..., ge=1)


class LevelCriteria(BaseModel):
    criteria_type: Literal["level"] = CRITERIA_LEVEL
    threshold: int = Field(..., ge=1)


BadgeCriteria = Annotated[
    Union[CheckinsCriteria, LifetimePointsCriteria, LevelCriteria],
    Field(discriminator="criteria_type"),
]
badge_criteria_adapter = TypeAdapter(BadgeCriteria)


class BadgeSave(BaseModel):
    id: Optional[int] = None
    name: str = Field(..., min_length=1, max_length=200)
    category: Optional[str] = None
    criteria: Optional[BadgeCriteria] = None  # None = manual-only badge
    points_award: int = 0
    enabled: bool = True


class BadgeResponse(BaseModel):
    id: int
    name: str
    category: Optional[str]
    criteria_type: Optional[str]
    threshold: Optional[int]
    points_award: int
    enabled: bool

    class Config:
        from_attributes = True


class AwardStatus(str, Enum):
    AWARDED = "awarded"
    ALREADY_AWARDED = "already_awarded"


class BadgeAwardRequest(BaseModel):
    student_id: int
    badge_id: int
    award_note: Optional[str] = Field(None, max_length=500)


class BadgeAwardResult(BaseModel):
    status: AwardStatus
    student_id: int
    badge_id: int
    points_awarded: int = 0


class AchievementPassResult(BaseModel):
    awarded: int = 0
    badges_scanned: int = 0
    badges_skipped: int = 0


class RetroactiveAdjustRequest(BaseModel):
    confirm: bool = False


class AdjustmentResult(BaseModel):
    adjusted: int = 0
    target_points: int = 0
