"""Slot lifecycle: issue, lookup, revoke, expire, award points."""

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import delete, desc, select, update
from sqlalchemy.exc import IntegrityError

from ..orm.base import utcnow
from ..orm.slot import Slot
from .database import get_db_service, storage_operation

logger = logging.getLogger(__name__)


@dataclass
class IssueResult:
    """Outcome of an issue call: the new slot, or an already-active rejection."""

    slot: Optional[Slot] = None
    already_active: bool = False

    @property
    def ok(self) -> bool:
        return self.slot is not None


@dataclass
class SlotOverview:
    total: int = 0
    total_points: int = 0
    by_category: dict[str, int] = field(default_factory=dict)


class SlotService:
    """Service for managing slots."""

    @storage_operation
    async def issue(
        self,
        user_id: int,
        guild_id: int,
        user_tag: str,
        duration_days: int,
        category: str,
        channel_id: Optional[int] = None,
        role_id: Optional[int] = None,
    ) -> IssueResult:
        """Create a slot unless the user already holds an active one.

        Expired rows for the same user are dropped in the same transaction;
        the (user, guild) unique constraint rejects concurrent issues.
        """
        if duration_days < 1:
            raise ValueError("duration_days must be at least 1")

        now = utcnow()
        db = get_db_service()
        try:
            async with db.session() as session:
                await session.execute(
                    delete(Slot)
                    .where(
                        Slot.user_id == user_id,
                        Slot.guild_id == guild_id,
                        Slot.expiry_date <= now,
                    )
                    .execution_options(synchronize_session=False)
                )
                slot = Slot(
                    user_id=user_id,
                    guild_id=guild_id,
                    user_tag=user_tag,
                    duration=duration_days,
                    category=category,
                    created_at=now,
                    expiry_date=now + timedelta(days=duration_days),
                    channel_id=channel_id,
                    role_id=role_id,
                    points=0,
                )
                session.add(slot)
                await session.flush()
        except IntegrityError:
            logger.info("User %s already has an active slot in guild %s", user_id, guild_id)
            return IssueResult(already_active=True)

        logger.info(
            "Issued %s slot to %s (%s) in guild %s for %d day(s)",
            category,
            user_tag,
            user_id,
            guild_id,
            duration_days,
        )
        return IssueResult(slot=slot)

    @storage_operation
    async def lookup_active(self, user_id: int, guild_id: int) -> Optional[Slot]:
        db = get_db_service()
        async with db.session() as session:
            result = await session.execute(
                select(Slot).where(
                    Slot.user_id == user_id,
                    Slot.guild_id == guild_id,
                    Slot.expiry_date > utcnow(),
                )
            )
            return result.scalar_one_or_none()

    @storage_operation
    async def revoke(self, user_id: int, guild_id: int) -> bool:
        """Delete the user's slot row. External resources are left alone."""
        db = get_db_service()
        async with db.session() as session:
            result = await session.execute(
                delete(Slot)
                .where(Slot.user_id == user_id, Slot.guild_id == guild_id)
                .execution_options(synchronize_session=False)
            )
            return (result.rowcount or 0) > 0

    @storage_operation
    async def sweep_expired(self, now: Optional[datetime] = None) -> int:
        """Delete every slot whose expiry has passed."""
        now = now or utcnow()
        db = get_db_service()
        async with db.session() as session:
            result = await session.execute(
                delete(Slot)
                .where(Slot.expiry_date < now)
                .execution_options(synchronize_session=False)
            )
            removed = result.rowcount or 0

        if removed:
            logger.info("Swept %d expired slot(s)", removed)
        return removed

    @storage_operation
    async def award_points(self, user_id: int, guild_id: int, delta: int) -> None:
        """Add ``delta`` (possibly negative) to the slot's points. No floor."""
        db = get_db_service()
        async with db.session() as session:
            await session.execute(
                update(Slot)
                .where(Slot.user_id == user_id, Slot.guild_id == guild_id)
                .values(points=Slot.points + delta)
                .execution_options(synchronize_session=False)
            )

    @storage_operation
    async def list_active(
        self, guild_id: int, limit: int = 10, by_points: bool = False
    ) -> list[Slot]:
        """Active slots, newest first or highest points first."""
        order = desc(Slot.points) if by_points else desc(Slot.created_at)
        db = get_db_service()
        async with db.session() as session:
            result = await session.execute(
                select(Slot)
                .where(Slot.guild_id == guild_id, Slot.expiry_date > utcnow())
                .order_by(order)
                .limit(limit)
            )
            return list(result.scalars().all())

    @storage_operation
    async def overview(self, guild_id: int) -> SlotOverview:
        db = get_db_service()
        async with db.session() as session:
            result = await session.execute(
                select(Slot.category, Slot.points).where(
                    Slot.guild_id == guild_id, Slot.expiry_date > utcnow()
                )
            )
            rows = result.all()

        categories = Counter(category for category, _ in rows)
        return SlotOverview(
            total=len(rows),
            total_points=sum(points or 0 for _, points in rows),
            by_category=dict(categories.most_common()),
        )
