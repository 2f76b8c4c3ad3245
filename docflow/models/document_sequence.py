"""
Document Sequence Model for Atomic Number Generation

Calendar-year numbering for documents with human-facing counters:
• SO: SO-2026-001 (Sales Order)

The counter row is locked (SELECT FOR UPDATE) while it is incremented, so two
concurrent requests never receive the same number. On first use in a year the
counter is seeded from the highest number already present in the documents
table, which keeps numbers continuous with rows created before the counter.

USAGE:
    from docflow.services.document_sequence_service import DocumentSequenceService

    async def create_order(db):
        service = DocumentSequenceService(db)
        order_number = await service.get_next_number("SO")
        # Returns: SO-2026-001
"""

import uuid
from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import String, Integer, DateTime, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from docflow.database import Base
from docflow.db_types import UUIDType


class DocumentType(str, Enum):
    """Document types that use counter-based numbering."""
    SALES_ORDER = "SO"


class DocumentSequence(Base):
    """
    One counter per document type per calendar year.

    Example:
        document_type = "SO"
        period = "2026"
        current_number = 42
        → Next number: SO-2026-043
    """
    __tablename__ = "document_sequences"
    __table_args__ = (
        UniqueConstraint(
            "document_type", "period",
            name="uq_document_type_period"
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )

    document_type: Mapped[str] = mapped_column(
        String(10),
        nullable=False,
        index=True,
        comment="SO"
    )
    period: Mapped[str] = mapped_column(
        String(10),
        nullable=False,
        comment="Calendar year, e.g. 2026"
    )

    # Sequence Counter
    current_number: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
        comment="Last used sequence number"
    )

    # Formatting
    padding_length: Mapped[int] = mapped_column(
        Integer,
        default=3,
        comment="Zero padding for sequence (3 = 001)"
    )
    separator: Mapped[str] = mapped_column(
        String(5),
        default="-",
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    def format_number(self, number: int) -> str:
        seq = str(number).zfill(self.padding_length)
        sep = self.separator
        return f"{self.document_type}{sep}{self.period}{sep}{seq}"

    def get_next_number(self) -> str:
        """
        Generate next document number.

        NOTE: This method increments current_number but does NOT
        commit to database. The caller must handle the transaction.
        """
        self.current_number += 1
        return self.format_number(self.current_number)

    def preview_next_number(self) -> str:
        """Preview next number without incrementing."""
        return self.format_number(self.current_number + 1)

    @staticmethod
    def get_period() -> str:
        """Current calendar year as a string, e.g. "2026"."""
        return str(datetime.now(timezone.utc).year)

    def __repr__(self) -> str:
        return f"<DocumentSequence({self.document_type}/{self.period}: {self.current_number})>"
