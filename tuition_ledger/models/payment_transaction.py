"""
Payment transaction model.

The ledger: every payment event, bank-imported or entered by
staff. Rows are never updated in place except to edit a manual
entry or to mark one reversed. A reversed transaction no longer
counts toward its invoice's amount_paid.

Fingerprints are unique across the table, which is what makes
re-importing the same statement a no-op.
"""

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    String, Boolean, Date, DateTime, Numeric, ForeignKey,
    Enum as SAEnum,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tuition_ledger.models.base import Base
from tuition_ledger.models.enums import PaymentMethod, RowOutcome


class PaymentTransaction(Base):
    __tablename__ = "payment_transactions"

    id: Mapped[int] = mapped_column(primary_key=True)
    invoice_id: Mapped[int | None] = mapped_column(
        ForeignKey("invoices.id"), nullable=True, index=True
    )
    batch_id: Mapped[int | None] = mapped_column(
        ForeignKey("upload_batches.id"), nullable=True, index=True
    )
    method: Mapped[PaymentMethod] = mapped_column(
        SAEnum(
            PaymentMethod,
            name="payment_method_enum",
            create_constraint=True,
        ),
        nullable=False,
    )
    amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False
    )
    payment_date: Mapped[date] = mapped_column(Date, nullable=False)
    raw_reference: Mapped[str] = mapped_column(
        String(255), nullable=False
    )
    description: Mapped[str | None] = mapped_column(
        String(500), nullable=True
    )
    fingerprint: Mapped[str] = mapped_column(
        String(100), unique=True, nullable=False, index=True
    )
    classification: Mapped[RowOutcome | None] = mapped_column(
        SAEnum(
            RowOutcome,
            name="row_outcome_enum",
            create_constraint=True,
        ),
        nullable=True,
    )
    reversed: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    reversed_at: Mapped[datetime | None] = mapped_column(
        DateTime, nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow
    )

    # Relationships
    invoice: Mapped["Invoice | None"] = relationship(
        back_populates="transactions"
    )
    batch: Mapped["UploadBatch | None"] = relationship(
        back_populates="transactions"
    )

    def __repr__(self) -> str:
        return (
            f"<PaymentTransaction {self.method.value} {self.amount} "
            f"ref={self.raw_reference!r} invoice={self.invoice_id}>"
        )
