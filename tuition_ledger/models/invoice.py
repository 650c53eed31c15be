"""
Invoice model.

One invoice per student per billing month. The paid amount is
only ever changed by the LedgerService; the balance columns and
status are derived from (amount_due, amount_paid) and refreshed
by recalculate() after every change.
"""

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    String, Date, DateTime, Integer, Numeric, ForeignKey,
    UniqueConstraint, Enum as SAEnum,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tuition_ledger.models.base import Base
from tuition_ledger.models.enums import InvoiceStatus

ZERO = Decimal("0.00")

# Money columns are Numeric(12, 2): ten integer digits.
MAX_AMOUNT = Decimal("10000000000")


def derive_status(amount_due: Decimal, amount_paid: Decimal) -> InvoiceStatus:
    """Status is a pure function of the due and paid amounts."""
    if amount_paid == 0:
        return InvoiceStatus.UNPAID
    if amount_paid < amount_due:
        return InvoiceStatus.PARTIAL
    if amount_paid == amount_due:
        return InvoiceStatus.PAID
    return InvoiceStatus.OVERPAID


class Invoice(Base):
    __tablename__ = "invoices"
    __table_args__ = (
        UniqueConstraint(
            "student_id", "month", "year", name="uq_invoice_student_period"
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    student_id: Mapped[int] = mapped_column(
        ForeignKey("students.id"), nullable=False, index=True
    )
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    reference_number: Mapped[str] = mapped_column(
        String(50), nullable=False, index=True
    )
    amount_due: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False
    )
    amount_paid: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, default=ZERO
    )
    outstanding_balance: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, default=ZERO
    )
    overpaid_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, default=ZERO
    )
    status: Mapped[InvoiceStatus] = mapped_column(
        SAEnum(
            InvoiceStatus,
            name="invoice_status_enum",
            create_constraint=True,
        ),
        nullable=False,
        default=InvoiceStatus.UNPAID,
        index=True,
    )
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    # Relationships
    student: Mapped["Student"] = relationship(back_populates="invoices")
    transactions: Mapped[list["PaymentTransaction"]] = relationship(
        back_populates="invoice"
    )

    @property
    def remaining(self) -> Decimal:
        """Signed amount still owed; negative once overpaid."""
        return Decimal(self.amount_due) - Decimal(self.amount_paid)

    def recalculate(self) -> None:
        """Refresh balance, overpayment and status from the paid amount."""
        amount_due = Decimal(self.amount_due)
        amount_paid = Decimal(self.amount_paid)
        self.outstanding_balance = max(ZERO, amount_due - amount_paid)
        self.overpaid_amount = max(ZERO, amount_paid - amount_due)
        self.status = derive_status(amount_due, amount_paid)

    def __repr__(self) -> str:
        return (
            f"<Invoice {self.reference_number} {self.month:02d}/{self.year} "
            f"{self.amount_paid}/{self.amount_due} ({self.status.value})>"
        )
