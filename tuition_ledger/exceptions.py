"""
Typed errors raised by the reconciliation services.

Every error carries a machine-readable ``code`` so API handlers
can map it to a status code without parsing messages.

Duplicate and unmatched statement rows are not errors. They are
classification outcomes (see ``RowOutcome``) and never raise.
"""

from decimal import Decimal


class ReconciliationError(Exception):
    """Base class for all reconciliation errors."""

    code: str = "RECONCILIATION_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class StatementFormatError(ReconciliationError):
    """The uploaded statement cannot be read as a whole."""

    code = "STATEMENT_FORMAT_ERROR"


class InvalidAmount(ReconciliationError):
    code = "INVALID_AMOUNT"

    def __init__(self, amount):
        super().__init__(f"Amount must be a positive value, got {amount}")
        self.amount = amount


class InvoiceNotFound(ReconciliationError):
    code = "INVOICE_NOT_FOUND"


class TransactionNotFound(ReconciliationError):
    code = "TRANSACTION_NOT_FOUND"

    def __init__(self, transaction_id: int):
        super().__init__(f"Payment transaction {transaction_id} not found")
        self.transaction_id = transaction_id


class InvalidTransactionState(ReconciliationError):
    code = "INVALID_TRANSACTION_STATE"


class InvoiceLockConflict(ReconciliationError):
    """The invoice row is held by another writer. Safe to retry."""

    code = "INVOICE_LOCK_CONFLICT"

    def __init__(self, invoice_id: int):
        super().__init__(
            f"Invoice {invoice_id} is being updated by another request, retry"
        )
        self.invoice_id = invoice_id


class LedgerIntegrityError(ReconciliationError):
    code = "LEDGER_INTEGRITY_ERROR"

    def __init__(self, invoice_id: int, amount_paid: Decimal, delta: Decimal):
        super().__init__(
            f"Applying {delta} to invoice {invoice_id} would make "
            f"amount_paid negative (currently {amount_paid})"
        )
        self.invoice_id = invoice_id
        self.amount_paid = amount_paid
        self.delta = delta


class TransactionLockConflict(ReconciliationError):
    """The transaction row is held by another writer. Safe to retry."""

    code = "TRANSACTION_LOCK_CONFLICT"

    def __init__(self, transaction_id: int):
        super().__init__(
            f"Payment transaction {transaction_id} is being updated by "
            f"another request, retry"
        )
        self.transaction_id = transaction_id


class ColumnMappingNotFound(ReconciliationError):
    code = "COLUMN_MAPPING_NOT_FOUND"

    def __init__(self, mapping_id: int):
        super().__init__(f"Column mapping {mapping_id} not found")
        self.mapping_id = mapping_id
