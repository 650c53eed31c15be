"""
Import service — reconciles a bank statement against invoices.

Pipeline per statement:
    parse -> fingerprint -> match -> apply

Each parsed row is its own unit of work: the duplicate check, the
transaction insert and the balance change commit together, and a
failing row is rolled back without touching rows already done.
That is why this service commits, unlike the others, which leave
the commit to their caller.

All counters live on the BatchSummary returned from each call.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from tuition_ledger.exceptions import ReconciliationError
from tuition_ledger.models.enums import PaymentMethod, RowOutcome
from tuition_ledger.models.payment_transaction import PaymentTransaction
from tuition_ledger.models.upload_batch import UploadBatch
from tuition_ledger.services.duplicate_detector import (
    DuplicateDetector,
    bank_fingerprint,
)
from tuition_ledger.services.ledger_service import LedgerService
from tuition_ledger.services.statement_parser import (
    ParsedRow,
    RowError,
    parse_statement,
)
from tuition_ledger.services.transaction_matcher import TransactionMatcher

logger = logging.getLogger(__name__)


@dataclass
class RowResult:
    row_number: int
    reference: str
    amount: Decimal
    payment_date: date
    outcome: RowOutcome
    invoice_id: int | None = None
    remaining_balance: Decimal | None = None
    overpaid_amount: Decimal | None = None


@dataclass
class BatchSummary:
    batch_id: int
    processed: int = 0
    matched: int = 0
    partial: int = 0
    overpaid: int = 0
    unmatched: int = 0
    duplicates: int = 0
    errors: list[RowError] = field(default_factory=list)
    rows: list[RowResult] = field(default_factory=list)
    columns: dict[str, str] = field(default_factory=dict)

    _COUNTERS = {
        RowOutcome.MATCHED: "matched",
        RowOutcome.PARTIAL: "partial",
        RowOutcome.OVERPAID: "overpaid",
        RowOutcome.UNMATCHED: "unmatched",
        RowOutcome.DUPLICATE: "duplicates",
    }

    def record(self, result: RowResult) -> None:
        self.rows.append(result)
        attr = self._COUNTERS[result.outcome]
        setattr(self, attr, getattr(self, attr) + 1)

    def record_error(self, error: RowError) -> None:
        self.errors.append(error)


class ImportService:

    def __init__(self, db: Session):
        self.db = db
        self.ledger_service = LedgerService(db)
        self.matcher = TransactionMatcher(db)
        self.detector = DuplicateDetector(db)

    def import_statement(
        self,
        content: bytes,
        filename: str = "statement.csv",
        column_map: dict[str, str | None] | None = None,
    ) -> BatchSummary:
        """
        Import one statement file and report what happened to each row.

        Raises StatementFormatError, before anything is written, when
        the file cannot be parsed at all. Row-level problems never
        raise; they are listed in the summary.

        column_map names the file's columns for fields the header
        aliases would not find. The columns actually used are echoed
        back on the summary.
        """
        parsed = parse_statement(content, column_map)

        batch = UploadBatch(filename=filename)
        self.db.add(batch)
        self.db.commit()

        summary = BatchSummary(batch_id=batch.id, columns=parsed.columns)
        for error in parsed.errors:
            summary.record_error(error)

        for row in parsed.rows:
            summary.processed += 1
            try:
                result = self._process_row(batch.id, row)
                self.db.commit()
            except IntegrityError as e:
                self.db.rollback()
                fingerprint = bank_fingerprint(
                    row.reference, row.amount, row.payment_date
                )
                if not self.detector.is_duplicate(fingerprint):
                    logger.exception("Row %s failed", row.row_number)
                    summary.record_error(
                        RowError(row.row_number, f"database error: {e.orig}")
                    )
                    continue
                # A concurrent import recorded this row first.
                result = RowResult(
                    row_number=row.row_number,
                    reference=row.reference,
                    amount=row.amount,
                    payment_date=row.payment_date,
                    outcome=RowOutcome.DUPLICATE,
                )
            except ReconciliationError as e:
                self.db.rollback()
                logger.warning("Row %s skipped: %s", row.row_number, e.message)
                summary.record_error(RowError(row.row_number, e.message))
                continue
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.exception("Row %s failed", row.row_number)
                summary.record_error(RowError(row.row_number, f"database error: {e}"))
                continue
            summary.record(result)

        self._save_counts(batch.id, summary)
        logger.info(
            "Imported %s (batch %s): processed=%d matched=%d partial=%d "
            "overpaid=%d unmatched=%d duplicates=%d errors=%d",
            filename, summary.batch_id, summary.processed, summary.matched,
            summary.partial, summary.overpaid, summary.unmatched,
            summary.duplicates, len(summary.errors),
        )
        return summary

    def _process_row(self, batch_id: int, row: ParsedRow) -> RowResult:
        """Fingerprint, match and apply one row. Does not commit."""
        result = RowResult(
            row_number=row.row_number,
            reference=row.reference,
            amount=row.amount,
            payment_date=row.payment_date,
            outcome=RowOutcome.DUPLICATE,
        )

        fingerprint = bank_fingerprint(row.reference, row.amount, row.payment_date)
        if self.detector.is_duplicate(fingerprint):
            return result

        match = self.matcher.match(row.reference, row.amount, row.payment_date)
        invoice_id = match.invoice.id if match.invoice else None

        txn = PaymentTransaction(
            invoice_id=invoice_id,
            batch_id=batch_id,
            method=PaymentMethod.BANK_IMPORT,
            amount=row.amount,
            payment_date=row.payment_date,
            raw_reference=row.reference,
            description=row.description,
            fingerprint=fingerprint,
            classification=match.outcome,
        )
        self.db.add(txn)
        self.db.flush()

        invoice = self.ledger_service.apply(invoice_id, row.amount)

        result.outcome = match.outcome
        result.invoice_id = invoice_id
        if invoice is not None:
            result.remaining_balance = invoice.outstanding_balance
            result.overpaid_amount = invoice.overpaid_amount
        return result

    def _save_counts(self, batch_id: int, summary: BatchSummary) -> None:
        batch = self.db.get(UploadBatch, batch_id)
        batch.processed_count = summary.processed
        batch.matched_count = summary.matched
        batch.partial_count = summary.partial
        batch.overpaid_count = summary.overpaid
        batch.unmatched_count = summary.unmatched
        batch.duplicate_count = summary.duplicates
        batch.error_count = len(summary.errors)
        self.db.commit()

    def list_batches(self, page: int = 1, limit: int = 50) -> tuple[list[UploadBatch], int]:
        """Upload log, newest first, with the total count."""
        total = self.db.execute(select(func.count(UploadBatch.id))).scalar()
        batches = self.db.execute(
            select(UploadBatch)
            .order_by(UploadBatch.uploaded_at.desc(), UploadBatch.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        ).scalars().all()
        return list(batches), total
