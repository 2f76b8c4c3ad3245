"""
Document Sequence Service for document numbering.

Two schemes are in use:

- Counter numbering for sales orders: SO-<year>-<seq>. The per-year counter
  row is locked with SELECT FOR UPDATE, so concurrent requests never receive
  the same number. A new counter is seeded from the highest SO-<year>-<n>
  already stored, keeping numbering continuous with existing rows.
- Token numbering for everything else: <PREFIX>-<6 timestamp digits><4 random
  characters>, e.g. LPO-4817239QX2A.

USAGE:
    from docflow.services.document_sequence_service import DocumentSequenceService, generate_number

    async def create_order(db: AsyncSession):
        service = DocumentSequenceService(db)
        order_number = await service.get_next_number("SO")
        # Returns: SO-2026-001

    lpo_number = generate_number("LPO")

PREFIXES:
    SO    - Sales Order (counter)
    QT    - Quotation
    LPO   - Supplier LPO
    INV   - Final Invoice
    PFINV - Proforma Invoice
    CN    - Credit Note
"""
import logging
import re
import secrets
import string
import time
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from docflow.config import settings
from docflow.models.document_sequence import DocumentSequence, DocumentType
from docflow.models.sales_order import SalesOrder


logger = logging.getLogger(__name__)


# Where existing numbers live, for seeding a fresh counter
DOCUMENT_METADATA = {
    DocumentType.SALES_ORDER.value: {
        "name": "Sales Order",
        "model": SalesOrder,
        "column": SalesOrder.order_number,
    },
}

_TOKEN_ALPHABET = string.ascii_uppercase + string.digits


def generate_number(prefix: str) -> str:
    """Non-sequential document number: timestamp slice plus random suffix."""
    timestamp = str(int(time.time() * 1000))[-6:]
    suffix = "".join(secrets.choice(_TOKEN_ALPHABET) for _ in range(4))
    return f"{prefix}-{timestamp}{suffix}"


class DocumentSequenceService:
    """
    Service for generating counter-based document numbers.

    Uses database-level locking (SELECT FOR UPDATE) to ensure
    no duplicate numbers are generated even under concurrent load.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_next_number(
        self,
        document_type: str,
        period: Optional[str] = None
    ) -> str:
        """
        Get next document number with atomic increment.

        Args:
            document_type: Document type code (SO)
            period: Calendar year. Defaults to the current year.

        Returns:
            Formatted document number, e.g., SO-2026-001

        Raises:
            ValueError: If document_type is not counter-numbered
        """
        doc_type = document_type.upper()
        if doc_type not in DOCUMENT_METADATA:
            valid_types = ", ".join(DOCUMENT_METADATA.keys())
            raise ValueError(f"Invalid document type '{doc_type}'. Valid types: {valid_types}")

        if not period:
            period = DocumentSequence.get_period()

        sequence = await self._get_or_create_sequence(doc_type, period)
        doc_number = sequence.get_next_number()
        await self.db.flush()

        logger.debug(f"Allocated {doc_number}")
        return doc_number

    async def preview_next_number(
        self,
        document_type: str,
        period: Optional[str] = None
    ) -> str:
        """Preview what the next number would be without incrementing."""
        doc_type = document_type.upper()
        if not period:
            period = DocumentSequence.get_period()

        result = await self.db.execute(
            select(DocumentSequence)
            .where(
                DocumentSequence.document_type == doc_type,
                DocumentSequence.period == period,
            )
        )
        sequence = result.scalar_one_or_none()
        if sequence:
            return sequence.preview_next_number()

        seed = await self._max_existing_number(doc_type, period)
        preview = DocumentSequence(
            document_type=doc_type,
            period=period,
            current_number=seed,
            padding_length=settings.SALES_ORDER_NUMBER_PADDING,
            separator="-",
        )
        return preview.preview_next_number()

    async def _max_existing_number(self, document_type: str, period: str) -> int:
        """Highest <TYPE>-<period>-<n> already stored; amendment suffixes are ignored."""
        column = DOCUMENT_METADATA[document_type]["column"]
        pattern = re.compile(rf"^{re.escape(document_type)}-{re.escape(period)}-(\d+)")

        result = await self.db.execute(
            select(column).where(column.like(f"{document_type}-{period}-%"))
        )
        highest = 0
        for number in result.scalars():
            match = pattern.match(number)
            if match:
                highest = max(highest, int(match.group(1)))
        return highest

    async def _get_or_create_sequence(
        self,
        document_type: str,
        period: str
    ) -> DocumentSequence:
        """
        Get existing sequence with row lock, or create new one.

        Two requests may both miss the row on first use; the loser of the
        unique-constraint race rolls back its savepoint and re-reads.
        """
        stmt = (
            select(DocumentSequence)
            .where(
                DocumentSequence.document_type == document_type,
                DocumentSequence.period == period,
            )
            .with_for_update()
        )
        result = await self.db.execute(stmt)
        sequence = result.scalar_one_or_none()
        if sequence:
            return sequence

        seed = await self._max_existing_number(document_type, period)
        try:
            async with self.db.begin_nested():
                sequence = DocumentSequence(
                    document_type=document_type,
                    period=period,
                    current_number=seed,
                    padding_length=settings.SALES_ORDER_NUMBER_PADDING,
                    separator="-",
                )
                self.db.add(sequence)
            logger.info(f"Started {document_type} sequence for {period} at {seed}")
        except IntegrityError:
            logger.debug(f"{document_type} sequence for {period} created concurrently, re-reading")

        result = await self.db.execute(stmt.execution_options(populate_existing=True))
        return result.scalar_one()
