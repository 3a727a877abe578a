"""Usage ledger for @here/@everyone counters."""

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.dialects.sqlite import insert as sqlite_insert

from ..orm.base import utcnow
from ..orm.mention_usage import MentionUsage
from .database import get_db_service, storage_operation
from .guild_config_service import GuildConfigService, limit_for
from .period_clock import MentionKind, PeriodClock

logger = logging.getLogger(__name__)


@dataclass
class UsageResult:
    """Counter state after one recorded use."""

    kind: MentionKind
    count: int
    limit: int

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.count)

    @property
    def breached(self) -> bool:
        # The limit-th use is still allowed; the next one is the breach.
        return self.count > self.limit


class UsageLedger:
    """Per-(user, guild, period, kind) mention counters.

    Measurement only: a breach is reported, never punished here.
    """

    def __init__(
        self,
        guild_config_service: GuildConfigService,
        clock: Optional[PeriodClock] = None,
    ):
        self.guild_config_service = guild_config_service
        self.clock = clock or PeriodClock()

    @storage_operation
    async def record_usage(
        self, user_id: int, guild_id: int, kind: MentionKind, is_vip: bool
    ) -> UsageResult:
        """Increment the current-period counter and compare it to the limit."""
        period_key = self.clock.key_for(kind)
        config = await self.guild_config_service.get(guild_id)

        db = get_db_service()
        async with db.session() as session:
            stmt = (
                sqlite_insert(MentionUsage)
                .values(
                    user_id=user_id,
                    guild_id=guild_id,
                    period_key=period_key,
                    kind=kind.value,
                    count=1,
                )
                .on_conflict_do_update(
                    index_elements=["user_id", "guild_id", "period_key", "kind"],
                    set_={"count": MentionUsage.count + 1, "updated_at": utcnow()},
                )
                .returning(MentionUsage.count)
            )
            result = await session.execute(stmt)
            count = result.scalar_one()

        usage = UsageResult(kind=kind, count=count, limit=limit_for(config, kind, is_vip))
        logger.debug(
            "Usage %s for user %s in guild %s (%s): %d/%d",
            kind.marker,
            user_id,
            guild_id,
            period_key,
            usage.count,
            usage.limit,
        )
        return usage

    @storage_operation
    async def get_usage(self, user_id: int, guild_id: int, kind: MentionKind) -> int:
        """Current-period count, 0 if nothing was recorded yet."""
        db = get_db_service()
        async with db.session() as session:
            result = await session.execute(
                select(MentionUsage.count).where(
                    MentionUsage.user_id == user_id,
                    MentionUsage.guild_id == guild_id,
                    MentionUsage.period_key == self.clock.key_for(kind),
                    MentionUsage.kind == kind.value,
                )
            )
            return result.scalar_one_or_none() or 0

    @storage_operation
    async def compact(self, kind: MentionKind) -> int:
        """Delete counters of one kind that belong to past periods."""
        db = get_db_service()
        async with db.session() as session:
            result = await session.execute(
                delete(MentionUsage)
                .where(
                    MentionUsage.kind == kind.value,
                    MentionUsage.period_key != self.clock.key_for(kind),
                )
                .execution_options(synchronize_session=False)
            )
            removed = result.rowcount or 0

        if removed:
            logger.info("Compacted %d stale %s counter(s)", removed, kind.marker)
        return removed
