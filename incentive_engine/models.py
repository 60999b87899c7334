from sqlalchemy import (
    Column, Integer, String, Boolean, DateTime, Float, ForeignKey,
    UniqueConstraint, CheckConstraint, Index,
)
from datetime import datetime

from incentive_engine.database import Base
from incentive_engine.constants import (
    SPRINT_PENALTY_CAP_RATIO,
    DEFAULT_SPRINT_PENALTY_PER_DAY,
    DEFAULT_SPRINT_REWARD_POINTS,
    PENALTY_ANCHOR_DUE,
    DEFAULT_LEVEL_BASE_JUMP,
    DEFAULT_LEVEL_DIFFICULTY_PCT,
)


class Student(Base):
    __tablename__ = "students"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)

    # Derived from the ledger by the balance aggregator
    points_total = Column(Integer, default=0, nullable=False)
    points_balance = Column(Integer, default=0, nullable=False)  # Spendable (holds deducted)
    lifetime_points = Column(Integer, default=0, nullable=False)  # Earned only, drives leveling
    level = Column(Integer, default=1, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow)


class LedgerEntry(Base):
    __tablename__ = "ledger_entries"
    __table_args__ = (
        CheckConstraint("points <> 0", name="ck_ledger_points_nonzero"),
        Index("ix_ledger_source", "source_type", "source_id"),
    )

    id = Column(Integer, primary_key=True, index=True)
    student_id = Column(Integer, ForeignKey("students.id"), nullable=False, index=True)
    points = Column(Integer, nullable=False)  # Signed
    category = Column(String(64), nullable=False, default="manual", index=True)
    note = Column(String(200), nullable=True)

    # Correlation key for idempotency checks and undo
    source_type = Column(String(64), nullable=True)
    source_id = Column(Integer, nullable=True)

    created_by = Column(String, nullable=True)  # Actor id
    created_at = Column(DateTime, default=datetime.utcnow, index=True)


class SkillCountdownAssignment(Base):
    __tablename__ = "skill_countdown_assignments"

    id = Column(Integer, primary_key=True, index=True)
    student_id = Column(Integer, ForeignKey("students.id"), nullable=False, index=True)
    source_type = Column(String, default="manual")  # skill_tree, skill_pulse, manual
    source_key = Column(String, nullable=True)
    source_label = Column(String, nullable=False)
    note = Column(String, nullable=True)

    assigned_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    assigned_by = Column(String, nullable=True)
    due_at = Column(DateTime, nullable=False, index=True)

    # Frozen at assignment time (capped against the balance then)
    penalty_points_per_day = Column(Integer, default=0, nullable=False)
    reward_points = Column(Integer, default=0, nullable=False)  # Initial prize, decays

    charged_days = Column(Integer, default=0, nullable=False)
    last_penalty_at = Column(DateTime, nullable=True)

    completed_at = Column(DateTime, nullable=True)
    completed_by = Column(String, nullable=True)
    enabled = Column(Boolean, default=True, nullable=False)


class SkillSprintPenaltyCharge(Base):
    """One row per charged penalty day; the unique key makes charging idempotent"""
    __tablename__ = "skill_sprint_penalty_charges"
    __table_args__ = (
        UniqueConstraint("assignment_id", "day_index", name="uq_penalty_charge_assignment_day"),
    )

    id = Column(Integer, primary_key=True, index=True)
    assignment_id = Column(Integer, ForeignKey("skill_countdown_assignments.id"), nullable=False)
    day_index = Column(Integer, nullable=False)  # 1-based
    boundary_at = Column(DateTime, nullable=False)
    points = Column(Integer, default=0, nullable=False)
    ledger_entry_id = Column(Integer, ForeignKey("ledger_entries.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)


class AchievementBadge(Base):
    __tablename__ = "achievement_badges"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    category = Column(String, nullable=True)  # "prestige" badges are awarded elsewhere

    criteria_type = Column(String, nullable=True)  # checkins, lifetime_points, level
    threshold = Column(Integer, nullable=True)

    points_award = Column(Integer, default=0, nullable=False)
    enabled = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class StudentAchievementBadge(Base):
    __tablename__ = "student_achievement_badges"
    __table_args__ = (
        UniqueConstraint("student_id", "badge_id", name="uq_student_badge"),
    )

    id = Column(Integer, primary_key=True, index=True)
    student_id = Column(Integer, ForeignKey("students.id"), nullable=False, index=True)
    badge_id = Column(Integer, ForeignKey("achievement_badges.id"), nullable=False, index=True)
    source = Column(String, default="auto")  # auto, coach
    awarded_by = Column(String, nullable=True)
    award_note = Column(String, nullable=True)
    points_awarded = Column(Integer, default=0, nullable=False)  # Value recorded at award/adjust time
    awarded_at = Column(DateTime, default=datetime.utcnow)


class AttendanceCheckin(Base):
    __tablename__ = "attendance_checkins"

    id = Column(Integer, primary_key=True, index=True)
    student_id = Column(Integer, ForeignKey("students.id"), nullable=False, index=True)
    checked_in_at = Column(DateTime, default=datetime.utcnow)


class EngineSettings(Base):
    __tablename__ = "engine_settings"

    id = Column(Integer, primary_key=True, index=True)

    # Skill sprints
    sprint_penalty_cap_ratio = Column(Float, default=SPRINT_PENALTY_CAP_RATIO)
    default_penalty_points_per_day = Column(Integer, default=DEFAULT_SPRINT_PENALTY_PER_DAY)
    default_reward_points = Column(Integer, default=DEFAULT_SPRINT_REWARD_POINTS)
    penalty_anchor = Column(String, default=PENALTY_ANCHOR_DUE)  # due_at or assigned_at

    # Level curve: threshold(L) grows by base_jump * (1 + pct/100)^(L-1)
    level_base_jump = Column(Integer, default=DEFAULT_LEVEL_BASE_JUMP)
    level_difficulty_pct = Column(Float, default=DEFAULT_LEVEL_DIFFICULTY_PCT)

    # Scheduled jobs
    auto_penalties_enabled = Column(Boolean, default=True)
    auto_achievements_enabled = Column(Boolean, default=True)

    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
