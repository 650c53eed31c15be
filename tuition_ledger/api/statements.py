"""
Bank statement API endpoints.

The import endpoint commits row by row inside ImportService,
so only the column mapping bookkeeping is committed here; a
partially processed upload keeps the rows that succeeded.
"""

import math

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile
from sqlalchemy.orm import Session

from tuition_ledger.config import get_settings
from tuition_ledger.exceptions import ReconciliationError
from tuition_ledger.models.base import get_db
from tuition_ledger.services.column_mapping_service import ColumnMappingService
from tuition_ledger.services.import_service import ImportService
from tuition_ledger.services.statement_parser import preview_statement
from tuition_ledger.schemas.invoice import Pagination
from tuition_ledger.schemas.statement import (
    ColumnMappingResponse,
    ImportSummaryResponse,
    StatementPreviewResponse,
    UploadBatchResponse,
)
from tuition_ledger.api.errors import to_http_error

router = APIRouter(prefix="/statements", tags=["Statements"])


def _read_upload(file: UploadFile) -> bytes:
    settings = get_settings()
    content = file.file.read(settings.MAX_STATEMENT_BYTES + 1)
    if len(content) > settings.MAX_STATEMENT_BYTES:
        raise HTTPException(
            status_code=413,
            detail=f"Statement exceeds {settings.MAX_STATEMENT_BYTES} bytes",
        )
    return content


def column_overrides(
    reference_column: str | None = Form(default=None),
    amount_column: str | None = Form(default=None),
    date_column: str | None = Form(default=None),
    description_column: str | None = Form(default=None),
) -> dict[str, str | None]:
    return {
        "reference": reference_column,
        "amount": amount_column,
        "date": date_column,
        "description": description_column,
    }


@router.post("/analyze", response_model=StatementPreviewResponse)
def analyze_statement(
    file: UploadFile = File(...),
    mapping_id: int | None = Form(default=None),
    overrides: dict = Depends(column_overrides),
    db: Session = Depends(get_db),
):
    """
    Show the headers, sample rows and detected columns of a statement.

    Nothing is imported. When needs_manual_mapping is set, resend the
    file to /statements/import with the missing columns named.
    """
    content = _read_upload(file)
    mappings = ColumnMappingService(db)
    try:
        column_map = mappings.resolve(mapping_id, overrides)
        preview = preview_statement(content, column_map)
    except ReconciliationError as e:
        raise to_http_error(e)

    return StatementPreviewResponse(
        headers=preview.headers,
        columns=preview.columns,
        missing_fields=preview.missing_fields,
        needs_manual_mapping=bool(preview.missing_fields),
        sample_rows=preview.sample_rows,
        total_rows=preview.total_rows,
        saved_mappings=[
            ColumnMappingResponse.model_validate(m) for m in mappings.list_mappings()
        ],
    )


@router.post("/import", response_model=ImportSummaryResponse)
def import_statement(
    file: UploadFile = File(...),
    mapping_id: int | None = Form(default=None),
    save_mapping_as: str | None = Form(default=None, max_length=100),
    bank_name: str | None = Form(default=None, max_length=100),
    overrides: dict = Depends(column_overrides),
    db: Session = Depends(get_db),
):
    """
    Reconcile an uploaded bank statement CSV against invoices.

    Re-uploading a statement is safe: rows already imported are
    reported as duplicates and change nothing. Columns can be named
    explicitly, taken from a saved mapping, or both; the columns
    used can be saved as a new mapping with save_mapping_as.
    """
    content = _read_upload(file)
    mappings = ColumnMappingService(db)
    try:
        column_map = mappings.resolve(mapping_id, overrides)
        summary = ImportService(db).import_statement(
            content,
            filename=file.filename or "statement.csv",
            column_map=column_map,
        )
    except ReconciliationError as e:
        db.rollback()
        raise to_http_error(e)

    try:
        if mapping_id is not None:
            mappings.record_use(mappings.get_mapping(mapping_id))
        if save_mapping_as:
            mappings.save_mapping(save_mapping_as, summary.columns, bank_name)
        db.commit()
    except ReconciliationError as e:
        db.rollback()
        raise to_http_error(e)
    return ImportSummaryResponse.model_validate(summary)


@router.get("/mappings", response_model=list[ColumnMappingResponse])
def list_column_mappings(db: Session = Depends(get_db)):
    """Saved column mappings, most used first."""
    return ColumnMappingService(db).list_mappings()


@router.get("/batches")
def list_upload_batches(
    page: int = Query(default=1, ge=1),
    limit: int | None = Query(default=None, ge=1),
    db: Session = Depends(get_db),
):
    """Upload history, newest first."""
    settings = get_settings()
    limit = min(limit or settings.DEFAULT_PAGE_LIMIT, settings.MAX_PAGE_LIMIT)
    batches, total = ImportService(db).list_batches(page=page, limit=limit)
    return {
        "batches": [UploadBatchResponse.model_validate(b) for b in batches],
        "pagination": Pagination(
            page=page,
            limit=limit,
            total=total,
            total_pages=math.ceil(total / limit),
        ),
    }
