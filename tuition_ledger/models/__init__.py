"""
Database models package.

All models must be imported here so that Alembic can discover
them through Base.metadata when generating migrations.
"""

from tuition_ledger.models.base import Base
from tuition_ledger.models.enums import (
    InvoiceStatus,
    PaymentMethod,
    RowOutcome,
)
from tuition_ledger.models.student import Student
from tuition_ledger.models.invoice import Invoice
from tuition_ledger.models.upload_batch import UploadBatch
from tuition_ledger.models.payment_transaction import PaymentTransaction
from tuition_ledger.models.column_mapping import ColumnMapping

__all__ = [
    "Base",
    "InvoiceStatus",
    "PaymentMethod",
    "RowOutcome",
    "Student",
    "Invoice",
    "UploadBatch",
    "PaymentTransaction",
    "ColumnMapping",
]
