"""
Column mapping service — saved statement layouts.

A mapping only names columns. Whether those columns exist in a
given file is checked by the parser when the file is read.
"""

import logging
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from tuition_ledger.exceptions import ColumnMappingNotFound, StatementFormatError
from tuition_ledger.models.column_mapping import ColumnMapping
from tuition_ledger.services.statement_parser import REQUIRED_FIELDS

logger = logging.getLogger(__name__)


class ColumnMappingService:

    def __init__(self, db: Session):
        self.db = db

    def get_mapping(self, mapping_id: int) -> ColumnMapping:
        mapping = self.db.get(ColumnMapping, mapping_id)
        if not mapping:
            raise ColumnMappingNotFound(mapping_id)
        return mapping

    def list_mappings(self) -> list[ColumnMapping]:
        """Most used first, then most recently used."""
        return list(self.db.execute(
            select(ColumnMapping).order_by(
                ColumnMapping.use_count.desc(),
                ColumnMapping.last_used_at.desc(),
                ColumnMapping.id,
            )
        ).scalars().all())

    def resolve(
        self,
        mapping_id: int | None = None,
        overrides: dict[str, str | None] | None = None,
    ) -> dict[str, str | None]:
        """
        Build the column map for one upload.

        Starts from the saved mapping, if any, and lets columns named
        in overrides replace it field by field.
        """
        column_map = {}
        if mapping_id is not None:
            column_map.update(self.get_mapping(mapping_id).as_column_map())
        for semantic, header in (overrides or {}).items():
            if header:
                column_map[semantic] = header
        return column_map

    def save_mapping(
        self,
        name: str,
        columns: dict[str, str],
        bank_name: str | None = None,
    ) -> ColumnMapping:
        """
        Save the columns an import actually used under a name.

        Saving under an existing name replaces that mapping.
        """
        missing = [field for field in REQUIRED_FIELDS if not columns.get(field)]
        if missing:
            raise StatementFormatError(
                f"Cannot save mapping {name!r} without column(s): {', '.join(missing)}"
            )

        mapping = self.db.execute(
            select(ColumnMapping).where(ColumnMapping.name == name)
        ).scalar_one_or_none()
        if mapping is None:
            mapping = ColumnMapping(name=name, use_count=0)
            self.db.add(mapping)

        mapping.bank_name = bank_name
        mapping.reference_column = columns["reference"]
        mapping.amount_column = columns["amount"]
        mapping.date_column = columns["date"]
        mapping.description_column = columns.get("description")
        self.db.flush()
        logger.info("Saved column mapping %r", name)
        return mapping

    def record_use(self, mapping: ColumnMapping) -> None:
        mapping.use_count = (mapping.use_count or 0) + 1
        mapping.last_used_at = datetime.utcnow()
        self.db.flush()
