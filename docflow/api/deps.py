from typing import Annotated, Optional
import uuid
import logging

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from docflow.database import get_db


logger = logging.getLogger(__name__)


async def get_actor_id(
    x_user_id: Annotated[Optional[str], Header()] = None,
) -> Optional[uuid.UUID]:
    """
    Acting user from the X-User-Id header.

    Authentication happens in front of this service; the header only names
    who to record on created_by / approved_by and in the audit trail. A
    malformed value is ignored.
    """
    if not x_user_id:
        return None
    try:
        return uuid.UUID(x_user_id)
    except ValueError:
        logger.warning(f"Ignoring malformed X-User-Id header: {x_user_id}")
        return None


# Type aliases for cleaner dependency injection
DB = Annotated[AsyncSession, Depends(get_db)]
ActorId = Annotated[Optional[uuid.UUID], Depends(get_actor_id)]
