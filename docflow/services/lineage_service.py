"""
Amendment lineage for versioned documents (sales orders, supplier LPOs).

A lineage is a root row (parent id NULL) plus amendment rows whose parent id
is the root itself. Amendments never point at other amendments, so every
lookup is at most one hop.

Sequence allocation locks the root and its amendment rows (SELECT FOR UPDATE)
and must run in the same transaction as the insert of the new amendment. The
sequence is the smallest positive integer used neither as an
amendment_sequence nor as an -A<n> suffix of a sibling's number.
"""
import logging
import re
import uuid
from typing import List, Tuple, Type

from sqlalchemy import select, text
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from docflow.config import settings
from docflow.core.exceptions import ConflictError, DocflowError, NotFoundError, PersistenceError
from docflow.models.sales_order import SalesOrder
from docflow.models.supplier_lpo import SupplierLpo


logger = logging.getLogger(__name__)


AMENDMENT_SUFFIX = re.compile(r"-A(\d+)$")

# model -> (parent column, human-readable number column, entity label)
LINEAGE_FIELDS = {
    SalesOrder: ("parent_order_id", "order_number", "Sales order"),
    SupplierLpo: ("parent_lpo_id", "lpo_number", "Supplier LPO"),
}


def strip_amendment_suffix(number: str) -> str:
    """SO-2026-001-A2 -> SO-2026-001"""
    return AMENDMENT_SUFFIX.sub("", number)


def amendment_number(root_number: str, sequence: int) -> str:
    return f"{strip_amendment_suffix(root_number)}-A{sequence}"


def next_free_sequence(used: set) -> int:
    """Smallest positive integer not in used."""
    candidate = 1
    while candidate in used:
        candidate += 1
    return candidate


def translate_amendment_error(exc: Exception) -> DocflowError:
    """
    Map a database failure during amendment to the error callers see.

    Lock timeouts and sequence/number collisions are retryable conflicts;
    anything else is a persistence failure.
    """
    if isinstance(exc, (OperationalError, StaleDataError)):
        return ConflictError(
            "Another amendment of this document is in progress. Retry the request.",
            retryable=True,
        )
    if isinstance(exc, IntegrityError):
        message = str(exc.orig)
        if "amendment_sequence" in message or "_number" in message:
            return ConflictError(
                "Amendment sequence collision. Retry the request.",
                retryable=True,
            )
    logger.error(f"Amendment write rejected: {exc}")
    return PersistenceError("Amendment could not be saved", original=exc)


class LineageService:
    """Root resolution, locked sequence allocation and lineage listing."""

    def __init__(self, db: AsyncSession):
        self.db = db

    @staticmethod
    def _fields(model: Type) -> Tuple[str, str, str]:
        try:
            return LINEAGE_FIELDS[model]
        except KeyError:
            raise ValueError(f"{model.__name__} does not support amendments")

    async def _set_lock_timeout(self) -> None:
        # SQLite gets the same bound from the connection's busy timeout
        if self.db.get_bind().dialect.name == "postgresql":
            timeout_ms = int(settings.AMENDMENT_LOCK_TIMEOUT_SECONDS * 1000)
            await self.db.execute(text(f"SET LOCAL lock_timeout = {timeout_ms}"))

    async def resolve_root(self, model: Type, document_id: uuid.UUID, lock: bool = False):
        """Return the lineage root of document_id (one parent hop)."""
        parent_attr, _, label = self._fields(model)

        document = await self.db.scalar(select(model).where(model.id == document_id))
        if document is None:
            raise NotFoundError(label, document_id)

        root_id = getattr(document, parent_attr) or document.id
        stmt = select(model).where(model.id == root_id)
        if lock:
            stmt = stmt.with_for_update()
        root = await self.db.scalar(stmt)
        if root is None:
            raise NotFoundError(label, root_id)
        if getattr(root, parent_attr) is not None:
            raise ConflictError(
                f"{label} lineage is corrupt: {root_id} is an amendment but is referenced as a root"
            )
        return root

    async def allocate_amendment_sequence(self, model: Type, document_id: uuid.UUID) -> Tuple[object, int]:
        """
        Lock the lineage and return (root, next free amendment sequence).

        The caller must insert the amendment before the transaction ends;
        the locks are what keep a concurrent allocator from seeing the same
        free integer.

        Raises:
            NotFoundError: document_id or its root does not exist
            ConflictError: the lock was not acquired in time (retryable)
        """
        parent_attr, number_attr, _ = self._fields(model)
        parent_col = getattr(model, parent_attr)
        number_col = getattr(model, number_attr)

        try:
            await self._set_lock_timeout()
            root = await self.resolve_root(model, document_id, lock=True)

            result = await self.db.execute(
                select(model.amendment_sequence, number_col)
                .where(parent_col == root.id)
                .with_for_update()
            )
            used = set()
            for sequence, number in result.all():
                if sequence:
                    used.add(sequence)
                match = AMENDMENT_SUFFIX.search(number or "")
                if match:
                    used.add(int(match.group(1)))
        except OperationalError as e:
            raise translate_amendment_error(e)

        sequence = next_free_sequence(used)
        logger.debug(f"Allocated amendment {sequence} for {getattr(root, number_attr)} (used: {sorted(used)})")
        return root, sequence

    async def get_lineage(self, model: Type, document_id: uuid.UUID) -> List:
        """Root first, then its amendments by ascending sequence."""
        parent_attr, _, _ = self._fields(model)
        root = await self.resolve_root(model, document_id)

        result = await self.db.execute(
            select(model).where(getattr(model, parent_attr) == root.id)
        )
        amendments = sorted(
            result.scalars().all(),
            key=lambda doc: (doc.amendment_sequence or 0, doc.created_at),
        )
        return [root] + amendments
