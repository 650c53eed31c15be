"""
Student service — the minimal roster the ledger bills against.
"""

from sqlalchemy import select
from sqlalchemy.orm import Session

from tuition_ledger.models.student import Student
from tuition_ledger.schemas.student import StudentCreate


class StudentService:

    def __init__(self, db: Session):
        self.db = db

    def create_student(self, request: StudentCreate) -> Student:
        """Create a student. Student numbers must be unique."""
        existing = self.db.execute(
            select(Student).where(Student.student_number == request.student_number)
        ).scalar_one_or_none()

        if existing:
            raise ValueError(
                f"Student with number '{request.student_number}' already exists"
            )

        student = Student(
            student_number=request.student_number,
            first_name=request.first_name,
            last_name=request.last_name,
            is_active=request.is_active,
        )
        self.db.add(student)
        self.db.flush()
        return student

    def get_student(self, student_id: int) -> Student:
        student = self.db.get(Student, student_id)
        if not student:
            raise ValueError(f"Student {student_id} not found")
        return student

    def list_students(self, active_only: bool = False) -> list[Student]:
        query = select(Student).order_by(Student.student_number)
        if active_only:
            query = query.where(Student.is_active.is_(True))
        return list(self.db.execute(query).scalars().all())
