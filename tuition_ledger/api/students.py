"""
Student API endpoints.
"""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from tuition_ledger.models.base import get_db
from tuition_ledger.services.student_service import StudentService
from tuition_ledger.schemas.student import StudentCreate, StudentResponse

router = APIRouter(prefix="/students", tags=["Students"])


@router.post("", response_model=StudentResponse, status_code=201)
def create_student(
    request: StudentCreate,
    db: Session = Depends(get_db),
):
    """Create a new student."""
    service = StudentService(db)
    try:
        student = service.create_student(request)
        db.commit()
        return student
    except ValueError as e:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(e))


@router.get("", response_model=list[StudentResponse])
def list_students(
    active_only: bool = False,
    db: Session = Depends(get_db),
):
    return StudentService(db).list_students(active_only=active_only)


@router.get("/{student_id}", response_model=StudentResponse)
def get_student(
    student_id: int,
    db: Session = Depends(get_db),
):
    service = StudentService(db)
    try:
        return service.get_student(student_id)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))
