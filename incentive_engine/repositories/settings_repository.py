"""
Settings repository - Data access layer for EngineSettings.
"""
from sqlalchemy.orm import Session
from incentive_engine.models import EngineSettings


class SettingsRepository:
    """Repository for EngineSettings data access"""

    @staticmethod
    def get(db: Session) -> EngineSettings:
        """
        Get settings (creates with defaults if not exists).
        A created row is flushed and persists with the caller's commit.

        Returns:
            EngineSettings object
        """
        settings = db.query(EngineSettings).first()
        if not settings:
            settings = EngineSettings()
            db.add(settings)
            db.flush()
        return settings
