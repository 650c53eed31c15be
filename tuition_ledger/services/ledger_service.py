"""
Ledger service — the only writer of invoice balances.

This service enforces the fundamental rules:
1. amount_paid changes only through apply(), by a signed delta
2. The invoice row is locked for the read-modify-write
3. Balance, overpayment and status are recomputed on every change
4. amount_paid always equals the sum of the invoice's
   non-reversed transactions

The caller owns the transaction boundary. A transaction row and
the balance change it causes must be flushed in the same unit of
work and committed (or rolled back) together.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy import select, func
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from tuition_ledger.exceptions import (
    InvoiceLockConflict,
    InvoiceNotFound,
    LedgerIntegrityError,
    TransactionLockConflict,
    TransactionNotFound,
)
from tuition_ledger.models.invoice import Invoice, ZERO
from tuition_ledger.models.payment_transaction import PaymentTransaction
from tuition_ledger.schemas.payment import TransactionFilters

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InvoiceDrift:
    invoice_id: int
    reference_number: str
    amount_paid: Decimal
    ledger_total: Decimal

    @property
    def drift(self) -> Decimal:
        return self.amount_paid - self.ledger_total


class LedgerService:
    """
    All balance mutations pass through this service.

    The service takes a database session as a constructor
    argument, so the caller decides when to commit or rollback.
    """

    def __init__(self, db: Session):
        self.db = db

    def lock_invoice(self, invoice_id: int) -> Invoice:
        """
        Load an invoice with an exclusive row lock.

        Concurrent writers on the same invoice queue behind this
        lock until the holder commits, so no update is lost.
        """
        try:
            invoice = self.db.execute(
                select(Invoice)
                .where(Invoice.id == invoice_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            ).scalar_one_or_none()
        except OperationalError as e:
            logger.warning("Could not lock invoice %s: %s", invoice_id, e)
            raise InvoiceLockConflict(invoice_id) from e

        if not invoice:
            raise InvoiceNotFound(f"Invoice {invoice_id} not found")
        return invoice

    def apply(self, invoice_id: int | None, signed_amount: Decimal) -> Invoice | None:
        """
        Add a signed amount to an invoice's paid total.

        A None invoice_id is an unmatched payment: nothing to update.
        Negative amounts are reversals. Raises if the invoice is
        missing or locked elsewhere, or if the result would be a
        negative paid total; in every failure case nothing changes.
        """
        if invoice_id is None:
            return None

        delta = Decimal(signed_amount)
        invoice = self.lock_invoice(invoice_id)

        new_paid = Decimal(invoice.amount_paid) + delta
        if new_paid < 0:
            raise LedgerIntegrityError(invoice.id, Decimal(invoice.amount_paid), delta)

        invoice.amount_paid = new_paid
        invoice.recalculate()
        self.db.flush()

        logger.debug(
            "Applied %s to invoice %s: paid=%s status=%s",
            delta, invoice.id, invoice.amount_paid, invoice.status.value,
        )
        return invoice

    def ledger_total(self, invoice_id: int) -> Decimal:
        """Sum of the non-reversed transactions linked to an invoice."""
        total = self.db.execute(
            select(func.coalesce(func.sum(PaymentTransaction.amount), 0)).where(
                PaymentTransaction.invoice_id == invoice_id,
                PaymentTransaction.reversed.is_(False),
            )
        ).scalar()
        return Decimal(str(total)).quantize(Decimal("0.01"))

    def check_integrity(self) -> list[InvoiceDrift]:
        """
        Compare every invoice's paid total with its transaction history.

        Returns only the invoices that disagree.
        """
        totals = (
            select(
                PaymentTransaction.invoice_id.label("invoice_id"),
                func.sum(PaymentTransaction.amount).label("total"),
            )
            .where(
                PaymentTransaction.invoice_id.is_not(None),
                PaymentTransaction.reversed.is_(False),
            )
            .group_by(PaymentTransaction.invoice_id)
            .subquery()
        )
        rows = self.db.execute(
            select(Invoice, func.coalesce(totals.c.total, 0))
            .outerjoin(totals, totals.c.invoice_id == Invoice.id)
            .order_by(Invoice.id)
        ).all()

        drifts = []
        for invoice, total in rows:
            ledger_total = Decimal(str(total)).quantize(Decimal("0.01"))
            amount_paid = Decimal(invoice.amount_paid)
            if amount_paid != ledger_total:
                drifts.append(InvoiceDrift(
                    invoice_id=invoice.id,
                    reference_number=invoice.reference_number,
                    amount_paid=amount_paid,
                    ledger_total=ledger_total,
                ))
        return drifts

    def rebuild_invoice(self, invoice_id: int) -> Invoice:
        """
        Bring an invoice back in line with its transaction history.

        The correction goes through apply() like any other change.
        """
        invoice = self.lock_invoice(invoice_id)
        correction = self.ledger_total(invoice_id) - Decimal(invoice.amount_paid)
        if correction == ZERO:
            return invoice

        logger.warning(
            "Invoice %s drifted from its ledger by %s, rebuilding",
            invoice_id, -correction,
        )
        return self.apply(invoice_id, correction)

    def get_transaction(self, transaction_id: int) -> PaymentTransaction:
        txn = self.db.get(PaymentTransaction, transaction_id)
        if not txn:
            raise TransactionNotFound(transaction_id)
        return txn

    def lock_transaction(self, transaction_id: int) -> PaymentTransaction:
        """
        Load a transaction with an exclusive row lock.

        The row is re-read from the database, so a writer that waited
        for the lock sees what the previous holder committed.
        """
        try:
            txn = self.db.execute(
                select(PaymentTransaction)
                .where(PaymentTransaction.id == transaction_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            ).scalar_one_or_none()
        except OperationalError as e:
            logger.warning("Could not lock transaction %s: %s", transaction_id, e)
            raise TransactionLockConflict(transaction_id) from e

        if not txn:
            raise TransactionNotFound(transaction_id)
        return txn

    def list_transactions(
        self, filters: TransactionFilters, page: int = 1, limit: int = 50
    ) -> tuple[list[PaymentTransaction], int]:
        """Ledger rows matching the filters, newest payment first."""
        conditions = []
        if filters.invoice_id is not None:
            conditions.append(PaymentTransaction.invoice_id == filters.invoice_id)
        if filters.method is not None:
            conditions.append(PaymentTransaction.method == filters.method)
        if filters.unmatched_only:
            conditions.append(PaymentTransaction.invoice_id.is_(None))
        if not filters.include_reversed:
            conditions.append(PaymentTransaction.reversed.is_(False))
        if filters.reference:
            conditions.append(
                PaymentTransaction.raw_reference.ilike(f"%{filters.reference}%")
            )
        if filters.date_from is not None:
            conditions.append(PaymentTransaction.payment_date >= filters.date_from)
        if filters.date_to is not None:
            conditions.append(PaymentTransaction.payment_date <= filters.date_to)

        total = self.db.execute(
            select(func.count(PaymentTransaction.id)).where(*conditions)
        ).scalar()
        transactions = self.db.execute(
            select(PaymentTransaction)
            .where(*conditions)
            .order_by(
                PaymentTransaction.payment_date.desc(),
                PaymentTransaction.id.desc(),
            )
            .offset((page - 1) * limit)
            .limit(limit)
        ).scalars().all()
        return list(transactions), total
