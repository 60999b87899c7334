"""
Student repository - Data access layer for students.
"""
from typing import List, Optional
from sqlalchemy.orm import Session

from incentive_engine.models import Student


class StudentRepository:
    """Repository for Student data access"""

    @staticmethod
    def get_by_id(db: Session, student_id: int) -> Optional[Student]:
        return db.query(Student).filter(Student.id == student_id).first()

    @staticmethod
    def get_ids(db: Session) -> List[int]:
        return [row[0] for row in db.query(Student.id).order_by(Student.id).all()]
