"""
Shared enumerations for database models.

Mapped to database enums so only valid values can be stored.
"""

import enum


class InvoiceStatus(str, enum.Enum):
    """Derived from (amount_due, amount_paid), never set by hand."""
    UNPAID = "Unpaid"
    PARTIAL = "Partial"
    PAID = "Paid"
    OVERPAID = "Overpaid"


class PaymentMethod(str, enum.Enum):
    BANK_IMPORT = "bank_import"
    MANUAL_ENTRY = "manual_entry"


class RowOutcome(str, enum.Enum):
    """How a statement row was classified during import."""
    MATCHED = "matched"
    PARTIAL = "partial"
    OVERPAID = "overpaid"
    UNMATCHED = "unmatched"
    DUPLICATE = "duplicate"
    ERROR = "error"
