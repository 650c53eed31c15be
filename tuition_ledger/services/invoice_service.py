"""
Invoice service — billing runs, listings, export and clearing.

Generation is idempotent: a run only creates the invoices that
are missing for the period, so it can be repeated to pick up
students enrolled after the first run. Runs lock the active
roster, and the unique (student, month, year) constraint backs
that up.

Nothing here changes amount_paid; that belongs to LedgerService.
"""

import csv
import io
import logging
import math
from decimal import Decimal

from sqlalchemy import select, func, delete, case
from sqlalchemy.orm import Session

from tuition_ledger.exceptions import InvoiceNotFound
from tuition_ledger.models.enums import InvoiceStatus
from tuition_ledger.models.invoice import Invoice, ZERO
from tuition_ledger.models.payment_transaction import PaymentTransaction
from tuition_ledger.models.student import Student
from tuition_ledger.models.upload_batch import UploadBatch
from tuition_ledger.schemas.invoice import (
    GenerateInvoicesRequest,
    GenerateInvoicesResponse,
    ClearInvoicesResponse,
    InvoiceFilters,
    InvoiceSummary,
    Pagination,
)
from tuition_ledger.services.transaction_matcher import billing_due_date

logger = logging.getLogger(__name__)

EXPORT_HEADERS = [
    "Reference Number", "Student Number", "First Name", "Last Name",
    "Month", "Year", "Amount Due", "Amount Paid", "Outstanding Balance",
    "Overpaid Amount", "Due Date", "Status",
]


def _money(value) -> Decimal:
    return Decimal(str(value or 0)).quantize(Decimal("0.01"))


class InvoiceService:

    def __init__(self, db: Session):
        self.db = db

    def generate_monthly_invoices(
        self, request: GenerateInvoicesRequest
    ) -> GenerateInvoicesResponse:
        """
        Create one invoice per active student for the period.

        Students who already have an invoice for the period are
        skipped, never overwritten.
        """
        # Locking the roster serializes concurrent runs, so the gap
        # check below cannot race another run for the same period.
        students = self.db.execute(
            select(Student)
            .where(Student.is_active.is_(True))
            .order_by(Student.id)
            .with_for_update()
        ).scalars().all()

        existing = set(self.db.execute(
            select(Invoice.student_id).where(
                Invoice.month == request.month,
                Invoice.year == request.year,
            )
        ).scalars().all())

        due_date = billing_due_date(request.month, request.year)
        created = 0
        skipped = 0
        for student in students:
            if student.id in existing:
                skipped += 1
                continue
            invoice = Invoice(
                student_id=student.id,
                month=request.month,
                year=request.year,
                reference_number=student.student_number,
                amount_due=request.amount_due,
                amount_paid=ZERO,
                due_date=due_date,
            )
            invoice.recalculate()
            self.db.add(invoice)
            created += 1

        self.db.flush()
        logger.info(
            "Generated invoices for %02d/%d: created=%d skipped=%d",
            request.month, request.year, created, skipped,
        )
        return GenerateInvoicesResponse(created_count=created, skipped_count=skipped)

    def get_invoice(self, invoice_id: int) -> Invoice:
        invoice = self.db.get(Invoice, invoice_id)
        if not invoice:
            raise InvoiceNotFound(f"Invoice {invoice_id} not found")
        return invoice

    def _filtered(self, query, filters: InvoiceFilters):
        if filters.status is not None:
            query = query.where(Invoice.status == filters.status)
        if filters.month is not None:
            query = query.where(Invoice.month == filters.month)
        if filters.year is not None:
            query = query.where(Invoice.year == filters.year)
        if filters.student_number:
            query = query.where(
                Invoice.reference_number.ilike(f"%{filters.student_number}%")
            )
        return query

    def summarize(self, filters: InvoiceFilters) -> InvoiceSummary:
        """Totals over every invoice matching the filters."""

        def count_status(status: InvoiceStatus):
            return func.coalesce(
                func.sum(case((Invoice.status == status, 1), else_=0)), 0
            )

        row = self.db.execute(self._filtered(
            select(
                func.count(Invoice.id),
                count_status(InvoiceStatus.UNPAID),
                count_status(InvoiceStatus.PARTIAL),
                count_status(InvoiceStatus.PAID),
                count_status(InvoiceStatus.OVERPAID),
                func.sum(Invoice.amount_due),
                func.sum(Invoice.amount_paid),
                func.sum(Invoice.outstanding_balance),
                func.sum(Invoice.overpaid_amount),
            ),
            filters,
        )).one()

        total_students = self.db.execute(
            select(func.count(Student.id)).where(Student.is_active.is_(True))
        ).scalar()

        return InvoiceSummary(
            total_students=total_students,
            total_invoices=row[0],
            unpaid_count=row[1],
            partial_count=row[2],
            paid_count=row[3],
            overpaid_count=row[4],
            total_amount_due=_money(row[5]),
            total_amount_paid=_money(row[6]),
            total_outstanding=_money(row[7]),
            total_overpaid=_money(row[8]),
        )

    def list_invoices(
        self, filters: InvoiceFilters, page: int = 1, limit: int = 50
    ) -> tuple[list[Invoice], InvoiceSummary, Pagination]:
        """One page of invoices, newest period first, plus totals."""
        total = self.db.execute(
            self._filtered(select(func.count(Invoice.id)), filters)
        ).scalar()

        invoices = self.db.execute(
            self._filtered(select(Invoice), filters)
            .order_by(
                Invoice.year.desc(),
                Invoice.month.desc(),
                Invoice.reference_number,
            )
            .offset((page - 1) * limit)
            .limit(limit)
        ).scalars().all()

        pagination = Pagination(
            page=page,
            limit=limit,
            total=total,
            total_pages=math.ceil(total / limit) if limit else 0,
        )
        return list(invoices), self.summarize(filters), pagination

    def export_invoices_csv(self, filters: InvoiceFilters) -> bytes:
        """Render the filtered invoices as a CSV download."""
        rows = self.db.execute(
            self._filtered(select(Invoice, Student).join(Student), filters)
            .order_by(Invoice.due_date.desc(), Invoice.reference_number)
        ).all()

        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator="\n")
        writer.writerow(EXPORT_HEADERS)
        for invoice, student in rows:
            writer.writerow([
                invoice.reference_number,
                student.student_number,
                student.first_name,
                student.last_name,
                invoice.month,
                invoice.year,
                f"{_money(invoice.amount_due)}",
                f"{_money(invoice.amount_paid)}",
                f"{_money(invoice.outstanding_balance)}",
                f"{_money(invoice.overpaid_amount)}",
                invoice.due_date.isoformat(),
                invoice.status.value,
            ])
        return buffer.getvalue().encode("utf-8")

    def clear_all_invoices(self) -> ClearInvoicesResponse:
        """
        Delete every invoice together with the whole ledger.

        Transactions go first so no ledger row is left pointing at
        a missing invoice. The caller commits.
        """
        deleted_transactions = self.db.execute(delete(PaymentTransaction)).rowcount
        deleted_batches = self.db.execute(delete(UploadBatch)).rowcount
        deleted_invoices = self.db.execute(delete(Invoice)).rowcount
        self.db.flush()

        logger.warning(
            "Cleared all invoices: invoices=%d transactions=%d batches=%d",
            deleted_invoices, deleted_transactions, deleted_batches,
        )
        return ClearInvoicesResponse(
            deleted_invoices=deleted_invoices,
            deleted_transactions=deleted_transactions,
            deleted_batches=deleted_batches,
        )
