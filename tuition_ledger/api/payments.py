"""
Payment API endpoints: manual entry and the transaction ledger.
"""

import math
from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from tuition_ledger.config import get_settings
from tuition_ledger.exceptions import ReconciliationError
from tuition_ledger.models.base import get_db
from tuition_ledger.models.enums import PaymentMethod
from tuition_ledger.services.ledger_service import LedgerService
from tuition_ledger.services.manual_payment_service import ManualPaymentService
from tuition_ledger.schemas.invoice import InvoiceResponse, Pagination
from tuition_ledger.schemas.payment import (
    AssignTransactionRequest,
    ManualPaymentCreate,
    ManualPaymentUpdate,
    TransactionFilters,
    TransactionListResponse,
    TransactionResponse,
)
from tuition_ledger.api.errors import to_http_error

router = APIRouter(prefix="/payments", tags=["Payments"])


@router.post("/manual", response_model=InvoiceResponse, status_code=201)
def add_manual_payment(
    request: ManualPaymentCreate,
    db: Session = Depends(get_db),
):
    """Record a payment taken outside the bank statement."""
    service = ManualPaymentService(db)
    try:
        invoice = service.add_payment(request)
        db.commit()
        return invoice
    except ReconciliationError as e:
        db.rollback()
        raise to_http_error(e)


@router.patch("/manual/{transaction_id}", response_model=InvoiceResponse)
def update_manual_payment(
    transaction_id: int,
    request: ManualPaymentUpdate,
    db: Session = Depends(get_db),
):
    """Edit a manual payment; the invoice moves by the difference."""
    service = ManualPaymentService(db)
    try:
        invoice = service.update_payment(transaction_id, request)
        db.commit()
        return invoice
    except ReconciliationError as e:
        db.rollback()
        raise to_http_error(e)


@router.delete("/manual/{transaction_id}", response_model=InvoiceResponse)
def delete_manual_payment(
    transaction_id: int,
    db: Session = Depends(get_db),
):
    """Reverse a manual payment in full."""
    service = ManualPaymentService(db)
    try:
        invoice = service.delete_payment(transaction_id)
        db.commit()
        return invoice
    except ReconciliationError as e:
        db.rollback()
        raise to_http_error(e)


@router.get("", response_model=TransactionListResponse)
def list_transactions(
    invoice_id: int | None = None,
    method: PaymentMethod | None = None,
    unmatched_only: bool = False,
    include_reversed: bool = True,
    reference: str | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
    page: int = Query(default=1, ge=1),
    limit: int | None = Query(default=None, ge=1),
    db: Session = Depends(get_db),
):
    settings = get_settings()
    limit = min(limit or settings.DEFAULT_PAGE_LIMIT, settings.MAX_PAGE_LIMIT)
    filters = TransactionFilters(
        invoice_id=invoice_id,
        method=method,
        unmatched_only=unmatched_only,
        include_reversed=include_reversed,
        reference=reference,
        date_from=date_from,
        date_to=date_to,
    )
    transactions, total = LedgerService(db).list_transactions(
        filters, page=page, limit=limit
    )
    return TransactionListResponse(
        transactions=[TransactionResponse.model_validate(t) for t in transactions],
        pagination=Pagination(
            page=page,
            limit=limit,
            total=total,
            total_pages=math.ceil(total / limit),
        ),
    )


@router.get("/{transaction_id}", response_model=TransactionResponse)
def get_transaction(
    transaction_id: int,
    db: Session = Depends(get_db),
):
    try:
        return LedgerService(db).get_transaction(transaction_id)
    except ReconciliationError as e:
        raise to_http_error(e)


@router.post("/{transaction_id}/assign", response_model=InvoiceResponse)
def assign_transaction(
    transaction_id: int,
    request: AssignTransactionRequest,
    db: Session = Depends(get_db),
):
    """Reconcile an unmatched bank payment to an invoice by hand."""
    service = ManualPaymentService(db)
    try:
        invoice = service.assign_transaction(transaction_id, request.invoice_id)
        db.commit()
        return invoice
    except ReconciliationError as e:
        db.rollback()
        raise to_http_error(e)
