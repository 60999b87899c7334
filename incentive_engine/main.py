from fastapi import FastAPI, Depends, HTTPException, Query, status
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.orm import Session
from datetime import datetime
from typing import List, Optional
import logging
import os
from pathlib import Path

from incentive_engine.database import engine, get_db, Base
from incentive_engine import models  # Import all models to register them with Base
from incentive_engine.schemas import (
    Actor, LedgerEntryCreate, LedgerEntryResponse, LedgerFilter,
    StudentBalanceResponse, Balances, RecomputeAllResult,
    SkillSprintAssign, SkillSprintResponse, SprintCompletionResult,
    SkillSprintSnapshot, PenaltyRunResult,
    BadgeSave, BadgeResponse, BadgeAwardRequest, BadgeAwardResult,
    AchievementPassResult, RetroactiveAdjustRequest, AdjustmentResult,
)
from incentive_engine.auth import verify_api_key, get_actor
from incentive_engine.exceptions import (
    IncentiveEngineException, ValidationException, NotFoundException,
    AssignmentDisabledException, PermissionDeniedException, StorageException,
)
from incentive_engine.services.ledger_service import LedgerService
from incentive_engine.services.balance_service import BalanceService
from incentive_engine.services.sprint_service import SprintService
from incentive_engine.services.penalty_service import PenaltyService
from incentive_engine.services.achievement_service import AchievementService
from incentive_engine.services.adjustment_service import AdjustmentService
from incentive_engine.services.scheduler_service import start_scheduler, stop_scheduler
from incentive_engine.constants import (
    DEFAULT_LOG_DIRECTORY_PROD, DEFAULT_LOG_DIRECTORY_DEV, CORS_ALLOWED_ORIGINS,
    SCHEDULER_ENABLED, ROLE_ADMIN, ROLE_COACH,
)

LOG_DIR = os.getenv("INCENTIVE_ENGINE_LOG_DIR", DEFAULT_LOG_DIRECTORY_PROD)
LOG_FILE = os.getenv("INCENTIVE_ENGINE_LOG_FILE", "app.log")

# Create log directory if it doesn't exist (for development)
try:
    Path(LOG_DIR).mkdir(parents=True, exist_ok=True)
    log_path = Path(LOG_DIR) / LOG_FILE
except PermissionError:
    # Fallback to local directory if no permissions for /var/log
    LOG_DIR = DEFAULT_LOG_DIRECTORY_DEV
    Path(LOG_DIR).mkdir(parents=True, exist_ok=True)
    log_path = Path(LOG_DIR) / LOG_FILE

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.FileHandler(log_path),
        logging.StreamHandler()
    ]
)

logger = logging.getLogger("incentive_engine")

# Create database tables
Base.metadata.create_all(bind=engine)

app = FastAPI(
    title="Incentive Engine API",
    description="Point ledger, skill sprints and achievement badges",
    version="1.0.0"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
async def startup_event():
    logger.info(f"Incentive Engine API started. Logging to: {log_path}")
    if SCHEDULER_ENABLED:
        start_scheduler()


@app.on_event("shutdown")
async def shutdown_event():
    logger.info("Shutting down Incentive Engine API")
    stop_scheduler()


def to_http_error(e: IncentiveEngineException) -> HTTPException:
    """Map engine exceptions to HTTP errors"""
    if isinstance(e, NotFoundException):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, (ValidationException, AssignmentDisabledException)):
        return HTTPException(status_code=400, detail=str(e))
    if isinstance(e, PermissionDeniedException):
        return HTTPException(status_code=403, detail=str(e))
    if isinstance(e, StorageException):
        logger.error(f"Storage failure: {e}")
    return HTTPException(status_code=500, detail=str(e))


def require_role(actor: Actor, *roles: str) -> None:
    if not actor.has_any_role(*roles):
        raise HTTPException(status_code=403, detail=f"Role required: {' or '.join(roles)}")


# Health check (no auth required)
@app.get("/")
async def root():
    return {"message": "Incentive Engine API", "status": "active"}


# Ledger
@app.post("/api/ledger", status_code=status.HTTP_201_CREATED, dependencies=[Depends(verify_api_key)])
def append_ledger_entry(
    entry: LedgerEntryCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor)
):
    """Append a point transaction and return the refreshed balances"""
    require_role(actor, ROLE_COACH, ROLE_ADMIN)
    try:
        entry_id = LedgerService(db).append_ledger_entry(
            entry.student_id,
            entry.points,
            category=entry.category,
            source_type=entry.source_type,
            source_id=entry.source_id,
            note=entry.note,
            created_by=actor.user_id,
        )
    except IncentiveEngineException as e:
        raise to_http_error(e)
    student = db.get(models.Student, entry.student_id)
    return {
        "id": entry_id,
        "student": StudentBalanceResponse(
            student_id=student.id,
            points_total=student.points_total,
            points_balance=student.points_balance,
            lifetime_points=student.lifetime_points,
            level=student.level,
        ),
    }


@app.get("/api/ledger", response_model=List[LedgerEntryResponse], dependencies=[Depends(verify_api_key)])
def list_ledger_entries(
    student_id: Optional[int] = None,
    category: Optional[str] = None,
    source_type: Optional[str] = None,
    source_id: Optional[int] = None,
    created_from: Optional[datetime] = None,
    created_to: Optional[datetime] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
    db: Session = Depends(get_db)
):
    """List ledger entries, newest first"""
    flt = LedgerFilter(
        student_id=student_id,
        category=category,
        source_type=source_type,
        source_id=source_id,
        created_from=created_from,
        created_to=created_to,
        skip=skip,
        limit=limit,
    )
    return LedgerService(db).list_entries(flt)


@app.delete("/api/ledger/{entry_id}", response_model=Balances, dependencies=[Depends(verify_api_key)])
def delete_ledger_entry(
    entry_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor)
):
    """Undo a ledger entry"""
    require_role(actor, ROLE_ADMIN)
    try:
        return LedgerService(db).delete_ledger_entry(entry_id)
    except IncentiveEngineException as e:
        raise to_http_error(e)


# Balances
@app.post("/api/students/{student_id}/recompute", response_model=StudentBalanceResponse,
          dependencies=[Depends(verify_api_key)])
def recompute_student(student_id: int, db: Session = Depends(get_db)):
    """Re-derive a student's balances from the ledger"""
    try:
        balances = BalanceService(db).recompute_balances(student_id)
    except IncentiveEngineException as e:
        raise to_http_error(e)
    return StudentBalanceResponse(student_id=student_id, **balances.model_dump())


@app.post("/api/students/recompute-all", response_model=RecomputeAllResult,
          dependencies=[Depends(verify_api_key)])
def recompute_all_students(db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    """Re-derive balances and levels for every student"""
    require_role(actor, ROLE_ADMIN)
    try:
        return BalanceService(db).recompute_all()
    except IncentiveEngineException as e:
        raise to_http_error(e)


# Skill sprints
@app.post("/api/skill-sprints", response_model=SkillSprintResponse, status_code=status.HTTP_201_CREATED,
          dependencies=[Depends(verify_api_key)])
def assign_skill_sprint(
    data: SkillSprintAssign,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor)
):
    """Assign a skill sprint to a student"""
    require_role(actor, ROLE_COACH, ROLE_ADMIN)
    try:
        return SprintService(db).assign_skill_sprint(
            data.student_id,
            data.source_label,
            data.due_at,
            reward_points=data.reward_points,
            penalty_points_per_day=data.penalty_points_per_day,
            assigned_by=actor.user_id,
            source_type=data.source_type,
            source_key=data.source_key,
            note=data.note,
        )
    except IncentiveEngineException as e:
        raise to_http_error(e)


@app.post("/api/skill-sprints/{assignment_id}/complete", response_model=SprintCompletionResult,
          dependencies=[Depends(verify_api_key)])
def complete_skill_sprint(
    assignment_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor)
):
    """Complete a skill sprint and award the current prize"""
    require_role(actor, ROLE_COACH, ROLE_ADMIN)
    try:
        return SprintService(db).complete_skill_sprint(assignment_id, completed_by=actor.user_id)
    except IncentiveEngineException as e:
        raise to_http_error(e)


@app.get("/api/skill-sprints", response_model=SkillSprintSnapshot, dependencies=[Depends(verify_api_key)])
def get_skill_sprints(student_id: int, db: Session = Depends(get_db)):
    """Active skill sprints for a student with countdown state"""
    try:
        return SprintService(db).skill_sprint_snapshot(student_id)
    except IncentiveEngineException as e:
        raise to_http_error(e)


@app.post("/api/skill-sprints/penalties", response_model=PenaltyRunResult,
          dependencies=[Depends(verify_api_key)])
def process_penalties(
    student_id: Optional[int] = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor)
):
    """Charge elapsed penalty days (one student or everyone)"""
    try:
        return PenaltyService(db).process_penalties(student_id=student_id, actor_id=actor.user_id)
    except IncentiveEngineException as e:
        raise to_http_error(e)


# Achievements
@app.post("/api/achievements/run", response_model=AchievementPassResult,
          dependencies=[Depends(verify_api_key)])
def run_achievement_pass(db: Session = Depends(get_db)):
    """Award criteria badges to every newly eligible student"""
    try:
        return AchievementService(db).run_achievement_pass()
    except IncentiveEngineException as e:
        raise to_http_error(e)


@app.post("/api/achievements/award", response_model=BadgeAwardResult,
          dependencies=[Depends(verify_api_key)])
def award_badge(
    data: BadgeAwardRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor)
):
    """Manually award a badge"""
    try:
        return AchievementService(db).award_badge(
            data.student_id, data.badge_id, actor, award_note=data.award_note
        )
    except IncentiveEngineException as e:
        raise to_http_error(e)


@app.put("/api/achievements/badges", response_model=BadgeResponse, dependencies=[Depends(verify_api_key)])
def save_badge(
    data: BadgeSave,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor)
):
    """Create or update a badge"""
    try:
        return AchievementService(db).save_badge(data, actor)
    except IncentiveEngineException as e:
        raise to_http_error(e)


@app.post("/api/achievements/badges/{badge_id}/retroactive", response_model=AdjustmentResult,
          dependencies=[Depends(verify_api_key)])
def adjust_badge_points_retroactively(
    badge_id: int,
    data: RetroactiveAdjustRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor)
):
    """Issue compensating entries after a badge's points_award changed"""
    try:
        return AdjustmentService(db).adjust_badge_points_retroactively(badge_id, data.confirm, actor)
    except IncentiveEngineException as e:
        raise to_http_error(e)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("incentive_engine.main:app", host="0.0.0.0", port=8000, reload=False)
