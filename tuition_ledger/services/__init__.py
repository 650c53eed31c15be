"""Business logic services."""

from tuition_ledger.services.ledger_service import LedgerService
from tuition_ledger.services.transaction_matcher import TransactionMatcher
from tuition_ledger.services.duplicate_detector import DuplicateDetector
from tuition_ledger.services.import_service import ImportService
from tuition_ledger.services.manual_payment_service import ManualPaymentService
from tuition_ledger.services.invoice_service import InvoiceService
from tuition_ledger.services.student_service import StudentService
from tuition_ledger.services.column_mapping_service import ColumnMappingService

__all__ = [
    "LedgerService",
    "TransactionMatcher",
    "DuplicateDetector",
    "ImportService",
    "ManualPaymentService",
    "InvoiceService",
    "StudentService",
    "ColumnMappingService",
]
