"""
Manual payment service — staff-entered payments and corrections.

Every change goes through the LedgerService as a single signed
delta in the same unit of work as the transaction row:
    add    -> +amount
    edit   -> new amount - old amount (one apply, never remove+re-add)
    delete -> -amount, then the row is marked reversed

Deleted entries stay in the ledger as reversed rows so the audit
trail survives. Bank-imported rows cannot be edited here; an
unmatched one can be assigned to an invoice instead.

Edits, deletes and assignments lock the transaction row before
reading it, then the invoice. Two requests on the same payment
therefore run one after the other, and the second sees the amount
and reversal flag the first committed.

The caller owns the commit.
"""

import logging
from datetime import datetime
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from tuition_ledger.exceptions import (
    InvalidAmount,
    InvalidTransactionState,
    InvoiceNotFound,
)
from tuition_ledger.models.enums import PaymentMethod
from tuition_ledger.models.invoice import Invoice
from tuition_ledger.models.payment_transaction import PaymentTransaction
from tuition_ledger.models.student import Student
from tuition_ledger.schemas.payment import ManualPaymentCreate, ManualPaymentUpdate
from tuition_ledger.services.duplicate_detector import manual_fingerprint
from tuition_ledger.services.ledger_service import LedgerService
from tuition_ledger.services.transaction_matcher import classify

logger = logging.getLogger(__name__)


def _validate_amount(amount) -> Decimal:
    if amount is None:
        raise InvalidAmount(amount)
    amount = Decimal(amount)
    if not amount.is_finite() or amount <= 0:
        raise InvalidAmount(amount)
    return amount


class ManualPaymentService:

    def __init__(self, db: Session):
        self.db = db
        self.ledger_service = LedgerService(db)

    def _get_manual_transaction(self, transaction_id: int) -> PaymentTransaction:
        txn = self.ledger_service.lock_transaction(transaction_id)
        if txn.method != PaymentMethod.MANUAL_ENTRY:
            raise InvalidTransactionState(
                f"Transaction {transaction_id} was imported from a bank "
                f"statement and cannot be changed manually"
            )
        if txn.reversed:
            raise InvalidTransactionState(
                f"Transaction {transaction_id} has already been deleted"
            )
        return txn

    def add_payment(self, request: ManualPaymentCreate) -> Invoice:
        """
        Record a payment against a student's invoice for a period.

        Raises InvalidAmount before anything is written, and
        InvoiceNotFound if the student or the period's invoice
        does not exist.
        """
        amount = _validate_amount(request.amount)

        student = self.db.get(Student, request.student_id)
        if not student:
            raise InvoiceNotFound(f"Student {request.student_id} not found")

        invoice = self.db.execute(
            select(Invoice).where(
                Invoice.student_id == student.id,
                Invoice.month == request.month,
                Invoice.year == request.year,
            )
        ).scalar_one_or_none()
        if not invoice:
            raise InvoiceNotFound(
                f"No invoice for student {student.student_number} "
                f"for {request.month:02d}/{request.year}"
            )

        invoice = self.ledger_service.lock_invoice(invoice.id)
        txn = PaymentTransaction(
            invoice_id=invoice.id,
            method=PaymentMethod.MANUAL_ENTRY,
            amount=amount,
            payment_date=request.payment_date,
            raw_reference=request.reference or invoice.reference_number,
            description=request.notes,
            fingerprint=manual_fingerprint(),
        )
        self.db.add(txn)
        self.db.flush()

        invoice = self.ledger_service.apply(invoice.id, amount)
        logger.info(
            "Manual payment %s of %s recorded on invoice %s",
            txn.id, amount, invoice.id,
        )
        return invoice

    def update_payment(
        self, transaction_id: int, request: ManualPaymentUpdate
    ) -> Invoice:
        """
        Edit a manual payment.

        An amount change is applied to the invoice as one delta,
        so no reader ever sees the old amount removed without the
        new one in place.
        """
        txn = self._get_manual_transaction(transaction_id)

        delta = Decimal("0")
        if request.amount is not None:
            new_amount = _validate_amount(request.amount)
            delta = new_amount - Decimal(txn.amount)
            txn.amount = new_amount

        if request.payment_date is not None:
            txn.payment_date = request.payment_date
        if request.reference is not None:
            txn.raw_reference = request.reference
        if request.notes is not None:
            txn.description = request.notes
        self.db.flush()

        if delta:
            invoice = self.ledger_service.apply(txn.invoice_id, delta)
            logger.info(
                "Manual payment %s changed by %s on invoice %s",
                txn.id, delta, invoice.id,
            )
        else:
            invoice = self.ledger_service.lock_invoice(txn.invoice_id)
        return invoice

    def delete_payment(self, transaction_id: int) -> Invoice:
        """
        Undo a manual payment completely.

        The invoice ends up exactly as if the payment had never
        been entered. The row stays behind, marked reversed.
        """
        txn = self._get_manual_transaction(transaction_id)

        txn.reversed = True
        txn.reversed_at = datetime.utcnow()
        self.db.flush()

        invoice = self.ledger_service.apply(txn.invoice_id, -Decimal(txn.amount))
        logger.info(
            "Manual payment %s of %s reversed on invoice %s",
            txn.id, txn.amount, invoice.id,
        )
        return invoice

    def assign_transaction(self, transaction_id: int, invoice_id: int) -> Invoice:
        """
        Link an unmatched bank payment to an invoice and apply it.

        This is how staff resolve references the matcher could not.
        """
        txn = self.ledger_service.lock_transaction(transaction_id)
        if txn.invoice_id is not None:
            raise InvalidTransactionState(
                f"Transaction {transaction_id} is already linked to "
                f"invoice {txn.invoice_id}"
            )
        if txn.reversed:
            raise InvalidTransactionState(
                f"Transaction {transaction_id} has been reversed"
            )

        invoice = self.ledger_service.lock_invoice(invoice_id)
        txn.classification = classify(invoice.amount_due, invoice.amount_paid, txn.amount)
        txn.invoice_id = invoice.id
        self.db.flush()

        invoice = self.ledger_service.apply(invoice.id, txn.amount)
        logger.info(
            "Transaction %s assigned to invoice %s as %s",
            txn.id, invoice.id, txn.classification.value,
        )
        return invoice
