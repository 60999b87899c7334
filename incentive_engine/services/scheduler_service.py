"""
Background scheduler for the batch jobs.
Handles:
- Skill sprint penalty processing
- Automatic achievement pass
"""

import logging
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from incentive_engine.database import SessionLocal
from incentive_engine.repositories.settings_repository import SettingsRepository
from incentive_engine.services.achievement_service import AchievementService
from incentive_engine.services.penalty_service import PenaltyService

logger = logging.getLogger("incentive_engine.scheduler")

scheduler = AsyncIOScheduler()


async def run_auto_penalties():
    """Job: charge elapsed skill sprint penalty days"""
    db = SessionLocal()
    try:
        settings = SettingsRepository.get(db)
        if not settings.auto_penalties_enabled:
            return
        result = PenaltyService(db).process_penalties()
        if result.penalties_applied:
            logger.info(f"Auto-penalties: {result.penalties_applied} applied")
    except Exception as e:
        logger.error(f"Scheduler Error (Penalties): {e}")
    finally:
        db.close()


async def run_auto_achievements():
    """Job: award criteria badges to newly eligible students"""
    db = SessionLocal()
    try:
        settings = SettingsRepository.get(db)
        if not settings.auto_achievements_enabled:
            return
        result = AchievementService(db).run_achievement_pass()
        if result.awarded:
            logger.info(f"Auto-achievements: {result.awarded} badges awarded")
    except Exception as e:
        logger.error(f"Scheduler Error (Achievements): {e}")
    finally:
        db.close()


def start_scheduler():
    """Start the scheduler"""
    if not scheduler.running:
        scheduler.add_job(
            run_auto_penalties,
            CronTrigger(minute='*/15'),
            id='auto_penalties',
            replace_existing=True
        )

        scheduler.add_job(
            run_auto_achievements,
            CronTrigger(minute='5'),
            id='auto_achievements',
            replace_existing=True
        )

        scheduler.start()
        logger.info(">>> APScheduler STARTED <<<")
        logger.info(f"Scheduled jobs: {[job.id for job in scheduler.get_jobs()]}")


def stop_scheduler():
    """Stop the scheduler"""
    if scheduler.running:
        scheduler.shutdown()
        logger.info("APScheduler stopped")
