"""
Saved statement column mapping.

Banks lay out their exports differently. Once staff have told the
importer which column holds the reference, amount, date and
description for one bank, the choice is saved under a name and
offered again, most used first.
"""

from datetime import datetime

from sqlalchemy import String, DateTime, Integer
from sqlalchemy.orm import Mapped, mapped_column

from tuition_ledger.models.base import Base


class ColumnMapping(Base):
    __tablename__ = "column_mappings"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    bank_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    reference_column: Mapped[str] = mapped_column(String(255), nullable=False)
    amount_column: Mapped[str] = mapped_column(String(255), nullable=False)
    date_column: Mapped[str] = mapped_column(String(255), nullable=False)
    description_column: Mapped[str | None] = mapped_column(String(255), nullable=True)
    use_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow
    )
    last_used_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    def as_column_map(self) -> dict[str, str | None]:
        return {
            "reference": self.reference_column,
            "amount": self.amount_column,
            "date": self.date_column,
            "description": self.description_column,
        }

    def __repr__(self) -> str:
        return f"<ColumnMapping {self.name!r}>"
