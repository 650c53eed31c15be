"""
Pydantic schemas for bank statement imports.
"""

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel

from tuition_ledger.models.enums import RowOutcome


class RowErrorResponse(BaseModel):
    row_number: int
    reason: str

    model_config = {"from_attributes": True}


class RowResultResponse(BaseModel):
    """What happened to one statement row."""
    row_number: int
    reference: str
    amount: Decimal
    payment_date: date
    outcome: RowOutcome
    invoice_id: int | None = None
    remaining_balance: Decimal | None = None
    overpaid_amount: Decimal | None = None

    model_config = {"from_attributes": True}


class ImportSummaryResponse(BaseModel):
    batch_id: int
    processed: int
    matched: int
    partial: int
    overpaid: int
    unmatched: int
    duplicates: int
    errors: list[RowErrorResponse]
    rows: list[RowResultResponse]
    columns: dict[str, str]

    model_config = {"from_attributes": True}


class UploadBatchResponse(BaseModel):
    id: int
    filename: str
    uploaded_at: datetime
    processed_count: int
    matched_count: int
    partial_count: int
    overpaid_count: int
    unmatched_count: int
    duplicate_count: int
    error_count: int

    model_config = {"from_attributes": True}


class ColumnMappingResponse(BaseModel):
    id: int
    name: str
    bank_name: str | None
    reference_column: str
    amount_column: str
    date_column: str
    description_column: str | None
    use_count: int
    last_used_at: datetime | None

    model_config = {"from_attributes": True}


class StatementPreviewResponse(BaseModel):
    """
    Headers and sample rows of an upload, with the columns the
    importer would use. needs_manual_mapping is set when a required
    field has no column yet.
    """
    headers: list[str]
    columns: dict[str, str]
    missing_fields: list[str]
    needs_manual_mapping: bool
    sample_rows: list[dict[str, str]]
    total_rows: int
    saved_mappings: list[ColumnMappingResponse]
