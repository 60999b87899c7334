"""
Shared constants for the incentive engine.
Environment-driven defaults live here so every module reads the same values.
"""
import os

# Environment
DATABASE_URL = os.getenv("INCENTIVE_ENGINE_DATABASE_URL", "sqlite:///./incentive_engine.db")
API_KEY = os.getenv("INCENTIVE_ENGINE_API_KEY", "change-me")
DEFAULT_LOG_DIRECTORY_PROD = "/var/log/incentive_engine"
DEFAULT_LOG_DIRECTORY_DEV = "./logs"
SCHEDULER_ENABLED = os.getenv("INCENTIVE_ENGINE_SCHEDULER_ENABLED", "true").lower() in ("1", "true", "yes")

CORS_ALLOWED_ORIGINS = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]

# Time
DAY_MS = 24 * 60 * 60 * 1000

# Ledger categories
CATEGORY_MANUAL = "manual"
CATEGORY_BADGE_AWARD = "badge_award"
CATEGORY_BADGE_ADJUSTMENT = "badge_adjustment"
CATEGORY_SPRINT_PENALTY = "skill_sprint_penalty"
CATEGORY_SPRINT_COMPLETE = "skill_sprint_complete"
CATEGORY_REDEEM_HOLD_RELEASE = "redeem_hold_release"
CATEGORY_REDEEM_REFUND = "redeem_refund"

# Positive entries in these categories give spent points back;
# they never count toward lifetime points.
LIFETIME_EXCLUDED_CATEGORIES = frozenset({
    CATEGORY_REDEEM_HOLD_RELEASE,
    CATEGORY_REDEEM_REFUND,
})

# Ledger source correlation keys
SOURCE_BADGE = "badge"
SOURCE_SKILL_SPRINT = "skill_sprint"

# Skill sprints
SPRINT_SOURCE_TYPES = ("skill_tree", "skill_pulse", "manual")
SPRINT_PENALTY_CAP_RATIO = 0.08
DEFAULT_SPRINT_PENALTY_PER_DAY = 5
DEFAULT_SPRINT_REWARD_POINTS = 10
PENALTY_ANCHOR_DUE = "due_at"
PENALTY_ANCHOR_ASSIGNED = "assigned_at"
SPRINT_STATUS_UPCOMING = "upcoming"
SPRINT_STATUS_OVERDUE = "overdue"

# Achievements
CRITERIA_CHECKINS = "checkins"
CRITERIA_LIFETIME_POINTS = "lifetime_points"
CRITERIA_LEVEL = "level"
BADGE_CATEGORY_PRESTIGE = "prestige"
AWARD_SOURCE_AUTO = "auto"
AWARD_SOURCE_COACH = "coach"

# Roles
ROLE_ADMIN = "admin"
ROLE_COACH = "coach"

# Levels
MAX_LEVEL = 99
DEFAULT_LEVEL_BASE_JUMP = 50
DEFAULT_LEVEL_DIFFICULTY_PCT = 8.0
