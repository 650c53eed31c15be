"""
Invoice API endpoints.

The API layer is thin: it handles HTTP concerns and delegates
all business logic to the services.
"""

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from tuition_ledger.config import get_settings
from tuition_ledger.exceptions import ReconciliationError
from tuition_ledger.models.base import get_db
from tuition_ledger.models.enums import InvoiceStatus
from tuition_ledger.services.invoice_service import InvoiceService
from tuition_ledger.services.ledger_service import LedgerService
from tuition_ledger.schemas.invoice import (
    ClearInvoicesResponse,
    GenerateInvoicesRequest,
    GenerateInvoicesResponse,
    InvoiceDriftResponse,
    InvoiceFilters,
    InvoiceListResponse,
    InvoiceResponse,
)
from tuition_ledger.api.errors import to_http_error

router = APIRouter(prefix="/invoices", tags=["Invoices"])


def invoice_filters(
    status: InvoiceStatus | None = None,
    month: int | None = Query(default=None, ge=1, le=12),
    year: int | None = Query(default=None, ge=2000, le=2100),
    student_number: str | None = None,
) -> InvoiceFilters:
    return InvoiceFilters(
        status=status, month=month, year=year, student_number=student_number,
    )


@router.post("/generate", response_model=GenerateInvoicesResponse, status_code=201)
def generate_monthly_invoices(
    request: GenerateInvoicesRequest,
    db: Session = Depends(get_db),
):
    """
    Bill every active student for a month.

    Safe to repeat: students already billed for the period are
    skipped and counted.
    """
    service = InvoiceService(db)
    try:
        result = service.generate_monthly_invoices(request)
        db.commit()
        return result
    except ReconciliationError as e:
        db.rollback()
        raise to_http_error(e)


@router.get("", response_model=InvoiceListResponse)
def list_invoices(
    filters: InvoiceFilters = Depends(invoice_filters),
    page: int = Query(default=1, ge=1),
    limit: int | None = Query(default=None, ge=1),
    db: Session = Depends(get_db),
):
    """List invoices with totals over the whole filtered set."""
    settings = get_settings()
    limit = min(limit or settings.DEFAULT_PAGE_LIMIT, settings.MAX_PAGE_LIMIT)
    invoices, summary, pagination = InvoiceService(db).list_invoices(
        filters, page=page, limit=limit
    )
    return InvoiceListResponse(
        invoices=[InvoiceResponse.model_validate(i) for i in invoices],
        summary=summary,
        pagination=pagination,
    )


@router.get("/export/csv")
def export_invoices_csv(
    filters: InvoiceFilters = Depends(invoice_filters),
    db: Session = Depends(get_db),
):
    """Download the filtered invoices as CSV."""
    content = InvoiceService(db).export_invoices_csv(filters)
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="invoices.csv"'},
    )


@router.get("/integrity", response_model=list[InvoiceDriftResponse])
def check_ledger_integrity(db: Session = Depends(get_db)):
    """
    Invoices whose paid amount disagrees with their transactions.

    An empty list means the ledger is consistent.
    """
    drifts = LedgerService(db).check_integrity()
    return [
        InvoiceDriftResponse(
            invoice_id=d.invoice_id,
            reference_number=d.reference_number,
            amount_paid=d.amount_paid,
            ledger_total=d.ledger_total,
            drift=d.drift,
        )
        for d in drifts
    ]


@router.delete("", response_model=ClearInvoicesResponse)
def clear_all_invoices(db: Session = Depends(get_db)):
    """
    Delete every invoice, transaction and upload batch.

    Confirmation is the client's job; this endpoint does not ask.
    """
    result = InvoiceService(db).clear_all_invoices()
    db.commit()
    return result


@router.get("/{invoice_id}", response_model=InvoiceResponse)
def get_invoice(
    invoice_id: int,
    db: Session = Depends(get_db),
):
    service = InvoiceService(db)
    try:
        return service.get_invoice(invoice_id)
    except ReconciliationError as e:
        raise to_http_error(e)


@router.post("/{invoice_id}/rebuild", response_model=InvoiceResponse)
def rebuild_invoice(
    invoice_id: int,
    db: Session = Depends(get_db),
):
    """Recompute an invoice's paid amount from its transactions."""
    service = LedgerService(db)
    try:
        invoice = service.rebuild_invoice(invoice_id)
        db.commit()
        return invoice
    except ReconciliationError as e:
        db.rollback()
        raise to_http_error(e)
