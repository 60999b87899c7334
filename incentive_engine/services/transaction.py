"""
Commit helper shared by services.
"""
import logging
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from incentive_engine.exceptions import StorageException

logger = logging.getLogger("incentive_engine.storage")


def commit_or_raise(db: Session, operation: str) -> None:
    """
    Commit the session; on failure roll back and raise StorageException.
    Nothing is compensated: the caller re-runs the idempotent job to converge.
    """
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Commit failed during {operation}: {e}")
        raise StorageException(operation, str(e)) from e
