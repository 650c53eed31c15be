"""
Transaction matcher — finds the invoice a payment belongs to.

Matching is by reference number only: the whole reference, or any
alphanumeric token inside it, must equal an invoice's reference
number. Each candidate is also tried zero-padded (HAR20 -> HAR020)
and zero-trimmed (HAR020 -> HAR20), since parents type student
numbers both ways. There is no fuzzy matching; whatever fails
here is left unmatched for staff to reconcile by hand.

Classification only looks at the invoice balance before the
payment and the payment amount:
    amount == remaining  -> matched
    amount <  remaining  -> partial
    amount >  remaining  -> overpaid
"""

import calendar
import logging
import re
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from sqlalchemy import select, func
from sqlalchemy.orm import Session

from tuition_ledger.config import get_settings
from tuition_ledger.models.enums import InvoiceStatus, RowOutcome
from tuition_ledger.models.invoice import Invoice, ZERO
from tuition_ledger.models.student import Student
from tuition_ledger.services.ledger_service import LedgerService

logger = logging.getLogger(__name__)

_TOKEN = re.compile(r"[A-Z0-9]+")
_LETTERS_DIGITS = re.compile(r"^([A-Z]+)(\d+)$")

OPEN_STATUSES = (InvoiceStatus.UNPAID, InvoiceStatus.PARTIAL)


@dataclass(frozen=True)
class MatchResult:
    invoice: Invoice | None
    outcome: RowOutcome


def classify(amount_due: Decimal, amount_paid: Decimal, amount: Decimal) -> RowOutcome:
    """Classify a payment against an invoice's balance before it lands."""
    remaining = Decimal(amount_due) - Decimal(amount_paid)
    if amount == remaining:
        return RowOutcome.MATCHED
    if amount < remaining:
        return RowOutcome.PARTIAL
    return RowOutcome.OVERPAID


def _variants(key: str) -> list[str]:
    variants = [key]
    m = _LETTERS_DIGITS.match(key)
    if m:
        letters, digits = m.groups()
        padded = letters + digits.zfill(3)
        trimmed = letters + (digits.lstrip("0") or "0")
        for variant in (padded, trimmed):
            if variant not in variants:
                variants.append(variant)
    return variants


def candidate_keys(reference: str) -> list[str]:
    """
    Reference numbers a raw bank reference could stand for.

    Ordered from most to least specific: the whole reference first,
    then each token in the order it appears.
    """
    normalized = (reference or "").strip().upper()
    if not normalized:
        return []

    keys = []
    for key in [normalized] + _TOKEN.findall(normalized):
        for variant in _variants(key):
            if variant not in keys:
                keys.append(variant)
    return keys


def billing_due_date(month: int, year: int) -> date:
    """Invoices fall due on the last day of their billing month."""
    return date(year, month, calendar.monthrange(year, month)[1])


class TransactionMatcher:

    def __init__(self, db: Session):
        self.db = db
        self.settings = get_settings()

    def find_invoice(self, reference: str) -> Invoice | None:
        """
        Pick the invoice a reference pays.

        The oldest open invoice wins. When every invoice for the
        reference is settled, the most recent one takes the payment.
        """
        keys = candidate_keys(reference)
        if not keys:
            return None

        for key in keys:
            invoices = self.db.execute(
                select(Invoice)
                .where(func.upper(Invoice.reference_number) == key)
                .order_by(Invoice.year, Invoice.month, Invoice.id)
            ).scalars().all()
            if not invoices:
                continue

            open_invoices = [i for i in invoices if i.status in OPEN_STATUSES]
            if open_invoices:
                return open_invoices[0]
            return invoices[-1]
        return None

    def find_student(self, reference: str) -> Student | None:
        for key in candidate_keys(reference):
            student = self.db.execute(
                select(Student).where(
                    func.upper(Student.student_number) == key,
                    Student.is_active.is_(True),
                )
            ).scalar_one_or_none()
            if student:
                return student
        return None

    def create_fallback_invoice(self, student: Student, payment_date: date) -> Invoice:
        """
        Open an invoice for a known student who has none yet.

        Billed for the payment's month at the configured default fee.
        """
        invoice = Invoice(
            student_id=student.id,
            month=payment_date.month,
            year=payment_date.year,
            reference_number=student.student_number,
            amount_due=self.settings.DEFAULT_MONTHLY_FEE,
            amount_paid=ZERO,
            due_date=billing_due_date(payment_date.month, payment_date.year),
        )
        invoice.recalculate()
        self.db.add(invoice)
        self.db.flush()
        logger.info(
            "Created invoice %s for %s %02d/%d from an unbilled payment",
            invoice.id, student.student_number, invoice.month, invoice.year,
        )
        return invoice

    def match(self, reference: str, amount: Decimal, payment_date: date) -> MatchResult:
        """
        Resolve a payment to zero or one invoice and classify it.

        The chosen invoice is locked before its balance is read, so
        the outcome agrees with the balance the ledger will update.
        """
        invoice = self.find_invoice(reference)

        if invoice is None:
            student = self.find_student(reference)
            if student is not None:
                invoice = self.db.execute(
                    select(Invoice).where(Invoice.student_id == student.id)
                    .order_by(Invoice.year.desc(), Invoice.month.desc())
                    .limit(1)
                ).scalar_one_or_none()
                if invoice is None:
                    invoice = self.create_fallback_invoice(student, payment_date)

        if invoice is None:
            return MatchResult(invoice=None, outcome=RowOutcome.UNMATCHED)

        invoice = LedgerService(self.db).lock_invoice(invoice.id)
        outcome = classify(invoice.amount_due, invoice.amount_paid, amount)
        return MatchResult(invoice=invoice, outcome=outcome)
