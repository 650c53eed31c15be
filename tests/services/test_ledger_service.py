"""
Tests for the LedgerService — the only writer of invoice balances.

These cover the rules every other service relies on:
- status is derived from (amount_due, amount_paid)
- unmatched payments change nothing
- failures leave the invoice untouched
- amount_paid is recoverable from the transaction history
"""

from datetime import date
from decimal import Decimal

import pytest

from tuition_ledger.exceptions import InvoiceNotFound, LedgerIntegrityError
from tuition_ledger.models.enums import InvoiceStatus, PaymentMethod
from tuition_ledger.models.invoice import derive_status
from tuition_ledger.models.payment_transaction import PaymentTransaction
from tuition_ledger.services.duplicate_detector import manual_fingerprint
from tuition_ledger.services.ledger_service import LedgerService


def record_payment(db_session, invoice, amount, reversed=False):
    """Helper: write a transaction and apply it like the services do."""
    txn = PaymentTransaction(
        invoice_id=invoice.id,
        method=PaymentMethod.MANUAL_ENTRY,
        amount=Decimal(amount),
        payment_date=date(2025, 3, 5),
        raw_reference=invoice.reference_number,
        fingerprint=manual_fingerprint(),
        reversed=reversed,
    )
    db_session.add(txn)
    db_session.flush()
    if not reversed:
        LedgerService(db_session).apply(invoice.id, Decimal(amount))
    db_session.commit()
    return txn


class TestDeriveStatus:

    @pytest.mark.parametrize("due, paid, expected", [
        ("500.00", "0.00", InvoiceStatus.UNPAID),
        ("500.00", "0.01", InvoiceStatus.PARTIAL),
        ("500.00", "499.99", InvoiceStatus.PARTIAL),
        ("500.00", "500.00", InvoiceStatus.PAID),
        ("500.00", "500.01", InvoiceStatus.OVERPAID),
        ("0.00", "0.00", InvoiceStatus.UNPAID),
        ("0.00", "10.00", InvoiceStatus.OVERPAID),
    ])
    def test_status_table(self, due, paid, expected):
        assert derive_status(Decimal(due), Decimal(paid)) == expected


class TestApply:

    def test_partial_payment(self, db_session, billed_student):
        invoice = billed_student.invoices[0]
        updated = LedgerService(db_session).apply(invoice.id, Decimal("300.00"))

        assert updated.amount_paid == Decimal("300.00")
        assert updated.outstanding_balance == Decimal("200.00")
        assert updated.overpaid_amount == Decimal("0.00")
        assert updated.status == InvoiceStatus.PARTIAL

    def test_full_payment(self, db_session, billed_student):
        invoice = billed_student.invoices[0]
        updated = LedgerService(db_session).apply(invoice.id, Decimal("500.00"))

        assert updated.outstanding_balance == Decimal("0.00")
        assert updated.status == InvoiceStatus.PAID

    def test_overpayment_keeps_full_amount(self, db_session, billed_student):
        invoice = billed_student.invoices[0]
        service = LedgerService(db_session)
        service.apply(invoice.id, Decimal("300.00"))
        updated = service.apply(invoice.id, Decimal("250.00"))

        assert updated.amount_paid == Decimal("550.00")
        assert updated.overpaid_amount == Decimal("50.00")
        assert updated.outstanding_balance == Decimal("0.00")
        assert updated.status == InvoiceStatus.OVERPAID

    def test_negative_delta_reverses(self, db_session, billed_student):
        invoice = billed_student.invoices[0]
        service = LedgerService(db_session)
        service.apply(invoice.id, Decimal("500.00"))
        updated = service.apply(invoice.id, Decimal("-500.00"))

        assert updated.amount_paid == Decimal("0.00")
        assert updated.status == InvoiceStatus.UNPAID

    def test_none_invoice_is_a_no_op(self, db_session):
        assert LedgerService(db_session).apply(None, Decimal("100.00")) is None

    def test_missing_invoice_raises(self, db_session):
        with pytest.raises(InvoiceNotFound):
            LedgerService(db_session).apply(999, Decimal("100.00"))

    def test_paid_total_cannot_go_negative(self, db_session, billed_student):
        invoice = billed_student.invoices[0]
        service = LedgerService(db_session)
        service.apply(invoice.id, Decimal("100.00"))
        db_session.commit()

        with pytest.raises(LedgerIntegrityError):
            service.apply(invoice.id, Decimal("-100.01"))

        db_session.rollback()
        assert service.lock_invoice(invoice.id).amount_paid == Decimal("100.00")

    def test_changes_persist_after_commit(self, db_session, billed_student):
        invoice = billed_student.invoices[0]
        LedgerService(db_session).apply(invoice.id, Decimal("125.50"))
        db_session.commit()
        db_session.expire_all()

        reloaded = LedgerService(db_session).lock_invoice(invoice.id)
        assert reloaded.amount_paid == Decimal("125.50")
        assert reloaded.outstanding_balance == Decimal("374.50")


class TestIntegrity:

    def test_consistent_ledger_has_no_drift(self, db_session, billed_student):
        invoice = billed_student.invoices[0]
        record_payment(db_session, invoice, "200.00")
        record_payment(db_session, invoice, "50.00")
        record_payment(db_session, invoice, "75.00", reversed=True)

        service = LedgerService(db_session)
        assert service.ledger_total(invoice.id) == Decimal("250.00")
        assert service.check_integrity() == []

    def test_drift_is_reported_and_rebuilt(self, db_session, billed_student):
        invoice = billed_student.invoices[0]
        record_payment(db_session, invoice, "200.00")
        service = LedgerService(db_session)
        # A balance change with no transaction behind it.
        service.apply(invoice.id, Decimal("40.00"))
        db_session.commit()

        drifts = service.check_integrity()
        assert len(drifts) == 1
        assert drifts[0].invoice_id == invoice.id
        assert drifts[0].drift == Decimal("40.00")

        rebuilt = service.rebuild_invoice(invoice.id)
        db_session.commit()
        assert rebuilt.amount_paid == Decimal("200.00")
        assert rebuilt.status == InvoiceStatus.PARTIAL
        assert service.check_integrity() == []
