"""Warning accumulation and revocation policy."""

import logging
from dataclasses import dataclass
from enum import Enum

from sqlalchemy import delete, select
from sqlalchemy.dialects.sqlite import insert as sqlite_insert

from ..orm.base import utcnow
from ..orm.warning import WarningRecord
from .database import get_db_service, storage_operation

logger = logging.getLogger(__name__)

# Warnings at which the slot is revoked instead of warned again.
WARNING_THRESHOLD = 2


class PenaltyAction(Enum):
    NONE = "none"
    WARNED = "warned"
    REVOKED = "revoked"


@dataclass
class PenaltyOutcome:
    """Result of one infraction."""

    warning_count: int
    action: PenaltyAction


class PenaltyService:
    """Clean -> Warned(1) -> Revoked, for automatic breaches and manual warns alike.

    Each call counts one infraction; callers invoke it at most once per
    breaching event. Executing the revocation (channel, role, slot row) is
    the caller's job.
    """

    threshold = WARNING_THRESHOLD

    @storage_operation
    async def apply_infraction(self, user_id: int, guild_id: int) -> PenaltyOutcome:
        now = utcnow()
        db = get_db_service()
        async with db.session() as session:
            stmt = (
                sqlite_insert(WarningRecord)
                .values(user_id=user_id, guild_id=guild_id, warning_count=1, last_warning=now)
                .on_conflict_do_update(
                    index_elements=["user_id", "guild_id"],
                    set_={
                        "warning_count": WarningRecord.warning_count + 1,
                        "last_warning": now,
                        "updated_at": now,
                    },
                )
                .returning(WarningRecord.warning_count)
            )
            result = await session.execute(stmt)
            warning_count = result.scalar_one()

        if warning_count >= self.threshold:
            action = PenaltyAction.REVOKED
        else:
            action = PenaltyAction.WARNED

        logger.info(
            "Infraction for user %s in guild %s: %d warning(s), action=%s",
            user_id,
            guild_id,
            warning_count,
            action.value,
        )
        return PenaltyOutcome(warning_count=warning_count, action=action)

    @storage_operation
    async def get_warning_count(self, user_id: int, guild_id: int) -> int:
        db = get_db_service()
        async with db.session() as session:
            result = await session.execute(
                select(WarningRecord.warning_count).where(
                    WarningRecord.user_id == user_id,
                    WarningRecord.guild_id == guild_id,
                )
            )
            return result.scalar_one_or_none() or 0

    @storage_operation
    async def reset(self, user_id: int, guild_id: int) -> bool:
        """Clear a user's warning record. Returns whether one existed."""
        db = get_db_service()
        async with db.session() as session:
            result = await session.execute(
                delete(WarningRecord)
                .where(
                    WarningRecord.user_id == user_id,
                    WarningRecord.guild_id == guild_id,
                )
                .execution_options(synchronize_session=False)
            )
            return (result.rowcount or 0) > 0
