"""
Pydantic schemas for invoice operations.

These define the API contract. They are separate from the
database models because the API shape and the storage shape
are often different.
"""

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from tuition_ledger.models.enums import InvoiceStatus
from tuition_ledger.models.invoice import MAX_AMOUNT


# --- Request Schemas ---

class GenerateInvoicesRequest(BaseModel):
    """Bill every active student for one month."""
    month: int = Field(ge=1, le=12)
    year: int = Field(ge=2000, le=2100)
    amount_due: Decimal = Field(ge=0, lt=MAX_AMOUNT, max_digits=12, decimal_places=2)


class InvoiceFilters(BaseModel):
    status: InvoiceStatus | None = None
    month: int | None = Field(default=None, ge=1, le=12)
    year: int | None = Field(default=None, ge=2000, le=2100)
    student_number: str | None = None


# --- Response Schemas ---

class GenerateInvoicesResponse(BaseModel):
    created_count: int
    skipped_count: int


class InvoiceResponse(BaseModel):
    id: int
    student_id: int
    month: int
    year: int
    reference_number: str
    amount_due: Decimal
    amount_paid: Decimal
    outstanding_balance: Decimal
    overpaid_amount: Decimal
    status: InvoiceStatus
    due_date: date
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class InvoiceSummary(BaseModel):
    """Aggregates over every invoice matching the filters, not just one page."""
    total_students: int
    total_invoices: int
    unpaid_count: int
    partial_count: int
    paid_count: int
    overpaid_count: int
    total_amount_due: Decimal
    total_amount_paid: Decimal
    total_outstanding: Decimal
    total_overpaid: Decimal


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int


class InvoiceListResponse(BaseModel):
    invoices: list[InvoiceResponse]
    summary: InvoiceSummary
    pagination: Pagination


class ClearInvoicesResponse(BaseModel):
    deleted_invoices: int
    deleted_transactions: int
    deleted_batches: int


class InvoiceDriftResponse(BaseModel):
    """An invoice whose stored paid amount disagrees with its ledger."""
    invoice_id: int
    reference_number: str
    amount_paid: Decimal
    ledger_total: Decimal
    drift: Decimal
