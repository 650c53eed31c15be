"""
Student model.

Students are owned by the wider school portal. This is the
slice of that record the ledger needs: who is billable, and
which student number identifies them on a bank transfer.
"""

from datetime import datetime

from sqlalchemy import String, Boolean, DateTime
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tuition_ledger.models.base import Base


class Student(Base):
    __tablename__ = "students"

    id: Mapped[int] = mapped_column(primary_key=True)
    student_number: Mapped[str] = mapped_column(
        String(50), unique=True, nullable=False, index=True
    )
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow
    )

    invoices: Mapped[list["Invoice"]] = relationship(back_populates="student")

    def __repr__(self) -> str:
        return f"<Student {self.student_number} {self.first_name} {self.last_name}>"
