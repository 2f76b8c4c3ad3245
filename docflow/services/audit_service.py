import logging
from typing import Optional, Dict, Any
import uuid

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from docflow.models.audit_log import AuditLog
from docflow.models.master_data import User


logger = logging.getLogger(__name__)


class AuditService:
    """
    Audit service for logging document lifecycle changes.

    Writes are a side channel: a failed audit insert is logged and rolled
    back to its savepoint, and the caller's operation carries on.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def resolve_actor(self, user_id: Optional[uuid.UUID]) -> Optional[uuid.UUID]:
        """
        Return user_id if it names an existing user, else None.

        Checked before insert so an unknown actor never fails a
        created_by / approved_by foreign key.
        """
        if user_id is None:
            return None
        found = await self.db.scalar(select(User.id).where(User.id == user_id))
        if found is None:
            logger.warning(f"Unknown actor {user_id}; recording action without a user")
            return None
        return found

    async def log(
        self,
        action: str,
        entity_type: str,
        entity_id: uuid.UUID,
        user_id: Optional[uuid.UUID] = None,
        old_values: Optional[Dict[str, Any]] = None,
        new_values: Optional[Dict[str, Any]] = None,
        description: Optional[str] = None,
    ) -> Optional[AuditLog]:
        """
        Create an audit log entry inside a SAVEPOINT.

        Args:
            action: The action performed (CREATED, AMENDED, STATUS_CHANGED, etc.)
            entity_type: Type of entity (SALES_ORDER, SUPPLIER_LPO, INVOICE, etc.)
            entity_id: ID of the affected entity
            user_id: ID of the user performing the action
            old_values: Previous values (for updates)
            new_values: New values (for creates/updates)
            description: Human-readable description

        Returns:
            The created AuditLog entry, or None if the write failed
        """
        # Pending document changes must fail loudly, not inside the savepoint
        await self.db.flush()

        audit_log = AuditLog(
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            user_id=await self.resolve_actor(user_id),
            old_values=old_values,
            new_values=new_values,
            description=description,
        )
        try:
            async with self.db.begin_nested():
                self.db.add(audit_log)
        except SQLAlchemyError as e:
            logger.warning(f"Audit write failed for {entity_type} {entity_id} ({action}): {e}")
            return None
        return audit_log

    async def log_event(
        self,
        entity_type: str,
        entity_id: uuid.UUID,
        action: str,
        user_id: Optional[uuid.UUID] = None,
        old_values: Optional[Dict[str, Any]] = None,
        new_values: Optional[Dict[str, Any]] = None,
    ) -> Optional[AuditLog]:
        """Positional-order shortcut used by the document services."""
        return await self.log(
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            user_id=user_id,
            old_values=old_values,
            new_values=new_values,
        )

    async def log_status_change(
        self,
        entity_type: str,
        entity_id: uuid.UUID,
        old_status: str,
        new_status: str,
        user_id: Optional[uuid.UUID] = None,
    ) -> Optional[AuditLog]:
        """Log a state machine transition."""
        return await self.log(
            action="STATUS_CHANGED",
            entity_type=entity_type,
            entity_id=entity_id,
            user_id=user_id,
            old_values={"status": old_status},
            new_values={"status": new_status},
            description=f"{old_status} -> {new_status}",
        )
