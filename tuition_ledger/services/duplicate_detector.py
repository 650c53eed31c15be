"""
Duplicate detector — recognizes statement rows seen before.

A bank row is identified by its normalized reference, amount and
date. The fingerprint is stored on the transaction under a unique
constraint, so the check here and the insert that follows in the
same unit of work cannot both succeed for the same row.
"""

import hashlib
import re
import uuid
from datetime import date
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from tuition_ledger.models.payment_transaction import PaymentTransaction

_WHITESPACE = re.compile(r"\s+")


def normalize_reference(reference: str) -> str:
    return _WHITESPACE.sub(" ", (reference or "").strip()).upper()


def bank_fingerprint(reference: str, amount: Decimal, payment_date: date) -> str:
    """Deterministic fingerprint for a bank statement row."""
    key = "|".join([
        normalize_reference(reference),
        f"{Decimal(amount):.2f}",
        payment_date.isoformat(),
    ])
    return "bank:" + hashlib.sha256(key.encode("utf-8")).hexdigest()


def manual_fingerprint() -> str:
    """Manual entries are unique by construction."""
    return f"manual:{uuid.uuid4().hex}"


class DuplicateDetector:

    def __init__(self, db: Session):
        self.db = db

    def find_existing(self, fingerprint: str) -> PaymentTransaction | None:
        """Return the transaction already recorded under this fingerprint."""
        return self.db.execute(
            select(PaymentTransaction).where(
                PaymentTransaction.fingerprint == fingerprint
            )
        ).scalar_one_or_none()

    def is_duplicate(self, fingerprint: str) -> bool:
        return self.find_existing(fingerprint) is not None
