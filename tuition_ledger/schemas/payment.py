"""
Pydantic schemas for payment transactions and manual entry.
"""

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from tuition_ledger.models.enums import PaymentMethod, RowOutcome
from tuition_ledger.models.invoice import MAX_AMOUNT
from tuition_ledger.schemas.invoice import Pagination


class ManualPaymentCreate(BaseModel):
    student_id: int
    amount: Decimal = Field(lt=MAX_AMOUNT, max_digits=12, decimal_places=2)
    payment_date: date
    month: int = Field(ge=1, le=12)
    year: int = Field(ge=2000, le=2100)
    reference: str | None = Field(default=None, max_length=255)
    notes: str | None = Field(default=None, max_length=500)


class ManualPaymentUpdate(BaseModel):
    """Fields left as None keep their current value."""
    amount: Decimal | None = Field(
        default=None, lt=MAX_AMOUNT, max_digits=12, decimal_places=2
    )
    payment_date: date | None = None
    reference: str | None = Field(default=None, max_length=255)
    notes: str | None = Field(default=None, max_length=500)


class AssignTransactionRequest(BaseModel):
    invoice_id: int


class TransactionFilters(BaseModel):
    invoice_id: int | None = None
    method: PaymentMethod | None = None
    unmatched_only: bool = False
    include_reversed: bool = True
    reference: str | None = None
    date_from: date | None = None
    date_to: date | None = None


class TransactionResponse(BaseModel):
    id: int
    invoice_id: int | None
    batch_id: int | None
    method: PaymentMethod
    amount: Decimal
    payment_date: date
    raw_reference: str
    description: str | None
    classification: RowOutcome | None
    reversed: bool
    reversed_at: datetime | None
    created_at: datetime

    model_config = {"from_attributes": True}


class TransactionListResponse(BaseModel):
    transactions: list[TransactionResponse]
    pagination: Pagination
