"""Service for the slot activity log."""

import logging
from enum import Enum
from typing import Optional

from sqlalchemy import desc, select

from ..orm.activity_log import ActivityLog
from .database import get_db_service, storage_operation
from .exceptions import StorageError

logger = logging.getLogger(__name__)


class ActivityAction(Enum):
    FREE_SLOT_CREATED = "FREE_SLOT_CREATED"
    VIP_SLOT_CREATED = "VIP_SLOT_CREATED"
    SLOT_REDEEMED = "SLOT_REDEEMED"
    SLOT_REMOVED = "SLOT_REMOVED"
    SLOT_REVOKED = "SLOT_REVOKED"
    WARNING_ISSUED = "WARNING_ISSUED"
    POINTS_GIVEN = "POINTS_GIVEN"
    CONFIG_UPDATED = "CONFIG_UPDATED"
    INVITE_CREDITED = "INVITE_CREDITED"


class ActivityService:
    """Service for recording and listing slot activity."""

    @storage_operation
    async def _insert(
        self, guild_id: int, user_id: int, action: ActivityAction, details: Optional[str]
    ) -> ActivityLog:
        db = get_db_service()
        async with db.session() as session:
            entry = ActivityLog(
                guild_id=guild_id,
                user_id=user_id,
                action=action.value,
                details=details,
            )
            session.add(entry)
            return entry

    async def record(
        self,
        guild_id: int,
        user_id: int,
        action: ActivityAction,
        details: Optional[str] = None,
    ) -> Optional[ActivityLog]:
        """Append an entry. The audit trail never fails the action it describes."""
        try:
            return await self._insert(guild_id, user_id, action, details)
        except StorageError as e:
            logger.error("Failed to record %s activity: %s", action.value, e, exc_info=True)
            return None

    @storage_operation
    async def recent(self, guild_id: int, limit: int = 10) -> list[ActivityLog]:
        db = get_db_service()
        async with db.session() as session:
            result = await session.execute(
                select(ActivityLog)
                .where(ActivityLog.guild_id == guild_id)
                .order_by(desc(ActivityLog.created_at))
                .limit(limit)
            )
            return list(result.scalars().all())
