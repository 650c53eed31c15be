"""
Pydantic schemas for student records.
"""

from datetime import datetime

from pydantic import BaseModel, Field


class StudentCreate(BaseModel):
    student_number: str = Field(min_length=1, max_length=50)
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    is_active: bool = True


class StudentResponse(BaseModel):
    id: int
    student_number: str
    first_name: str
    last_name: str
    is_active: bool
    created_at: datetime

    model_config = {"from_attributes": True}
