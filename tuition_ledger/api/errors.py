"""
Mapping from service errors to HTTP errors.
"""

from fastapi import HTTPException

from tuition_ledger.exceptions import (
    ColumnMappingNotFound,
    InvalidTransactionState,
    InvoiceLockConflict,
    InvoiceNotFound,
    LedgerIntegrityError,
    ReconciliationError,
    TransactionLockConflict,
    TransactionNotFound,
)

STATUS_CODES = {
    InvoiceNotFound: 404,
    TransactionNotFound: 404,
    ColumnMappingNotFound: 404,
    InvoiceLockConflict: 409,
    TransactionLockConflict: 409,
    InvalidTransactionState: 409,
    LedgerIntegrityError: 409,
}


def to_http_error(error: ReconciliationError) -> HTTPException:
    """Anything without a specific code is a bad request."""
    status_code = STATUS_CODES.get(type(error), 400)
    return HTTPException(
        status_code=status_code,
        detail={"code": error.code, "message": error.message},
    )
