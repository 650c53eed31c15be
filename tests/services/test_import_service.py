"""
Tests for statement import: parse, deduplicate, match, apply.
"""

from decimal import Decimal

import pytest
from sqlalchemy import select, func

from tuition_ledger.exceptions import StatementFormatError
from tuition_ledger.models.enums import InvoiceStatus, PaymentMethod, RowOutcome
from tuition_ledger.models.invoice import Invoice
from tuition_ledger.models.payment_transaction import PaymentTransaction
from tuition_ledger.models.upload_batch import UploadBatch
from tuition_ledger.services.import_service import ImportService
from tuition_ledger.services.ledger_service import LedgerService


def csv_bytes(*rows):
    lines = ["reference,amount,date"] + [",".join(r) for r in rows]
    return ("\n".join(lines) + "\n").encode("utf-8")


def transaction_count(db_session):
    return db_session.execute(select(func.count(PaymentTransaction.id))).scalar()


def reload_invoice(db_session, student):
    db_session.expire_all()
    return db_session.execute(
        select(Invoice).where(Invoice.student_id == student.id)
    ).scalar_one()


class TestScenarios:

    def test_full_payment_is_matched(self, db_session, billed_student):
        summary = ImportService(db_session).import_statement(
            csv_bytes(("STU001", "500.00", "2025-03-05"))
        )

        assert summary.processed == 1
        assert summary.matched == 1
        invoice = reload_invoice(db_session, billed_student)
        assert invoice.status == InvoiceStatus.PAID
        assert invoice.outstanding_balance == Decimal("0.00")

    def test_partial_then_overpaid(self, db_session, billed_student):
        summary = ImportService(db_session).import_statement(csv_bytes(
            ("STU001", "300.00", "2025-03-05"),
            ("STU001", "250.00", "2025-03-20"),
        ))

        assert [r.outcome for r in summary.rows] == [
            RowOutcome.PARTIAL, RowOutcome.OVERPAID,
        ]
        assert summary.rows[0].remaining_balance == Decimal("200.00")
        invoice = reload_invoice(db_session, billed_student)
        assert invoice.amount_paid == Decimal("550.00")
        assert invoice.overpaid_amount == Decimal("50.00")
        assert invoice.status == InvoiceStatus.OVERPAID

    def test_unknown_reference_is_unmatched(self, db_session, billed_student):
        summary = ImportService(db_session).import_statement(
            csv_bytes(("UNKNOWN999", "120.00", "2025-03-05"))
        )

        assert summary.unmatched == 1
        invoice = reload_invoice(db_session, billed_student)
        assert invoice.amount_paid == Decimal("0.00")
        assert invoice.status == InvoiceStatus.UNPAID

        txn = db_session.execute(select(PaymentTransaction)).scalar_one()
        assert txn.invoice_id is None
        assert txn.method == PaymentMethod.BANK_IMPORT
        assert txn.classification == RowOutcome.UNMATCHED


class TestClassificationBoundary:

    @pytest.mark.parametrize("amount, outcome, status, overpaid", [
        ("500.00", RowOutcome.MATCHED, InvoiceStatus.PAID, "0.00"),
        ("499.99", RowOutcome.PARTIAL, InvoiceStatus.PARTIAL, "0.00"),
        ("500.01", RowOutcome.OVERPAID, InvoiceStatus.OVERPAID, "0.01"),
    ])
    def test_boundary(self, db_session, billed_student, amount, outcome, status, overpaid):
        summary = ImportService(db_session).import_statement(
            csv_bytes(("STU001", amount, "2025-03-05"))
        )

        assert summary.rows[0].outcome == outcome
        invoice = reload_invoice(db_session, billed_student)
        assert invoice.status == status
        assert invoice.overpaid_amount == Decimal(overpaid)


class TestIdempotency:

    def test_reimport_changes_nothing(self, db_session, billed_student):
        content = csv_bytes(
            ("STU001", "300.00", "2025-03-05"),
            ("UNKNOWN999", "80.00", "2025-03-06"),
        )
        service = ImportService(db_session)
        service.import_statement(content)
        count_after_first = transaction_count(db_session)
        paid_after_first = reload_invoice(db_session, billed_student).amount_paid

        second = service.import_statement(content)

        assert second.duplicates == 2
        assert second.matched == second.partial == second.unmatched == 0
        assert transaction_count(db_session) == count_after_first
        assert reload_invoice(db_session, billed_student).amount_paid == paid_after_first

    def test_reference_case_does_not_defeat_deduplication(self, db_session, billed_student):
        service = ImportService(db_session)
        service.import_statement(csv_bytes(("STU001", "100.00", "2025-03-05")))
        summary = service.import_statement(csv_bytes(("stu001 ", "100", "05/03/2025")))
        assert summary.duplicates == 1

    def test_same_payment_on_another_day_is_not_a_duplicate(self, db_session, billed_student):
        service = ImportService(db_session)
        service.import_statement(csv_bytes(("STU001", "100.00", "2025-03-05")))
        summary = service.import_statement(csv_bytes(("STU001", "100.00", "2025-03-06")))
        assert summary.duplicates == 0
        assert summary.partial == 1


class TestErrorsAndBatches:

    def test_bad_rows_reported_good_rows_applied(self, db_session, billed_student):
        summary = ImportService(db_session).import_statement(csv_bytes(
            ("STU001", "abc", "2025-03-05"),
            ("STU001", "200.00", "2025-03-05"),
        ))

        assert summary.processed == 1
        assert summary.partial == 1
        assert len(summary.errors) == 1
        assert summary.errors[0].row_number == 2

    def test_unreadable_file_writes_nothing(self, db_session, billed_student):
        with pytest.raises(StatementFormatError):
            ImportService(db_session).import_statement(b"no,useful,columns\n1,2,3\n")

        assert db_session.execute(select(func.count(UploadBatch.id))).scalar() == 0
        assert transaction_count(db_session) == 0

    def test_batch_counts_are_saved(self, db_session, billed_student):
        service = ImportService(db_session)
        summary = service.import_statement(csv_bytes(
            ("STU001", "500.00", "2025-03-05"),
            ("UNKNOWN999", "10.00", "2025-03-05"),
            ("STU001", "-5", "2025-03-05"),
        ), filename="march.csv")

        batch = db_session.get(UploadBatch, summary.batch_id)
        assert batch.filename == "march.csv"
        assert batch.processed_count == 2
        assert batch.matched_count == 1
        assert batch.unmatched_count == 1
        assert batch.error_count == 1

        batches, total = service.list_batches()
        assert total == 1
        assert batches[0].id == summary.batch_id

    def test_ledger_stays_consistent_after_import(self, db_session, billed_student):
        ImportService(db_session).import_statement(csv_bytes(
            ("STU001", "100.00", "2025-03-01"),
            ("STU001", "150.00", "2025-03-02"),
            ("UNKNOWN999", "10.00", "2025-03-03"),
            ("STU001", "400.00", "2025-03-04"),
        ))
        assert LedgerService(db_session).check_integrity() == []

    def test_oversized_amount_does_not_abort_import(self, db_session, billed_student):
        summary = ImportService(db_session).import_statement(csv_bytes(
            ("STU001", "100.00", "2025-03-01"),
            ("STU001", "12345678901234567890123456789", "2025-03-02"),
            ("STU001", "50.00", "2025-03-03"),
        ))

        assert summary.processed == 2
        assert summary.partial == 2
        assert [e.row_number for e in summary.errors] == [3]
        assert "too large" in summary.errors[0].reason
        assert reload_invoice(db_session, billed_student).amount_paid == Decimal("150.00")


class TestStatementLayouts:

    def test_reference_found_in_description(self, db_session, billed_student):
        summary = ImportService(db_session).import_statement(
            b"reference,amount,date,description\n"
            b",500.00,2025-03-01,SCHOOL FEES STU001\n"
        )

        assert summary.matched == 1
        assert summary.errors == []
        txn = db_session.execute(select(PaymentTransaction)).scalar_one()
        assert txn.raw_reference == "SCHOOL FEES STU001"
        assert reload_invoice(db_session, billed_student).status == InvoiceStatus.PAID

    def test_explicit_column_map(self, db_session, billed_student):
        summary = ImportService(db_session).import_statement(
            b"Beneficiary,Value,Posted\nSTU001,200.00,2025-03-05\n",
            column_map={"reference": "Beneficiary", "amount": "Value", "date": "Posted"},
        )

        assert summary.partial == 1
        assert summary.columns == {
            "reference": "Beneficiary", "amount": "Value", "date": "Posted",
        }
