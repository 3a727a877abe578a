"""Invitation point ledger and invite attribution."""

import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from sqlalchemy import desc, select, update
from sqlalchemy.dialects.sqlite import insert as sqlite_insert

from ..orm.base import utcnow
from ..orm.invite_points import InvitePointAccount
from .database import get_db_service, storage_operation

logger = logging.getLogger(__name__)


@dataclass
class InviteBalance:
    user_id: int
    points: int
    total_invites: int


@dataclass
class DebitResult:
    """Outcome of a debit; ``balance`` is the balance after the attempt."""

    ok: bool
    balance: int
    requested: int

    @property
    def shortfall(self) -> int:
        if self.ok:
            return 0
        return max(0, self.requested - self.balance)


class InvitePointLedger:
    """Points earned per invited member and spent on slot redemption."""

    async def _upsert(
        self, session, user_id: int, guild_id: int, points: int, invites: int
    ) -> InviteBalance:
        now = utcnow()
        stmt = (
            sqlite_insert(InvitePointAccount)
            .values(
                user_id=user_id,
                guild_id=guild_id,
                points=points,
                total_invites=invites,
                last_updated=now,
            )
            .on_conflict_do_update(
                index_elements=["user_id", "guild_id"],
                set_={
                    "points": InvitePointAccount.points + points,
                    "total_invites": InvitePointAccount.total_invites + invites,
                    "last_updated": now,
                    "updated_at": now,
                },
            )
            .returning(InvitePointAccount.points, InvitePointAccount.total_invites)
        )
        row = (await session.execute(stmt)).one()
        return InviteBalance(user_id=user_id, points=row.points, total_invites=row.total_invites)

    async def _read(self, session, user_id: int, guild_id: int) -> InviteBalance:
        """Read an account, creating an empty one if it does not exist yet."""
        await session.execute(
            sqlite_insert(InvitePointAccount)
            .values(
                user_id=user_id,
                guild_id=guild_id,
                points=0,
                total_invites=0,
                last_updated=utcnow(),
            )
            .on_conflict_do_nothing(index_elements=["user_id", "guild_id"])
        )
        account = (
            await session.execute(
                select(InvitePointAccount).where(
                    InvitePointAccount.user_id == user_id,
                    InvitePointAccount.guild_id == guild_id,
                )
            )
        ).scalar_one()
        return InviteBalance(
            user_id=user_id, points=account.points, total_invites=account.total_invites
        )

    @storage_operation
    async def credit(self, user_id: int, guild_id: int, amount: int = 1) -> InviteBalance:
        """Credit one invited member: +amount points, +1 total invite."""
        if amount < 1:
            raise ValueError("amount must be positive")
        db = get_db_service()
        async with db.session() as session:
            balance = await self._upsert(session, user_id, guild_id, amount, 1)

        logger.info(
            "Credited %d invite point(s) to %s in guild %s (balance %d)",
            amount,
            user_id,
            guild_id,
            balance.points,
        )
        return balance

    @storage_operation
    async def refund(self, user_id: int, guild_id: int, amount: int) -> InviteBalance:
        """Return points from a failed redemption. Invite count is unchanged."""
        if amount < 1:
            raise ValueError("amount must be positive")
        db = get_db_service()
        async with db.session() as session:
            balance = await self._upsert(session, user_id, guild_id, amount, 0)

        logger.info("Refunded %d point(s) to %s in guild %s", amount, user_id, guild_id)
        return balance

    @storage_operation
    async def debit(self, user_id: int, guild_id: int, amount: int) -> DebitResult:
        """Spend points if and only if the balance covers ``amount``.

        The check and the decrement are a single conditional UPDATE, so
        concurrent debits can never overdraw the account.
        """
        if amount < 1:
            raise ValueError("amount must be positive")
        now = utcnow()
        db = get_db_service()
        async with db.session() as session:
            result = await session.execute(
                update(InvitePointAccount)
                .where(
                    InvitePointAccount.user_id == user_id,
                    InvitePointAccount.guild_id == guild_id,
                    InvitePointAccount.points >= amount,
                )
                .values(
                    points=InvitePointAccount.points - amount,
                    last_updated=now,
                )
                .returning(InvitePointAccount.points)
                .execution_options(synchronize_session=False)
            )
            remaining = result.scalar_one_or_none()
            if remaining is not None:
                logger.info(
                    "Debited %d point(s) from %s in guild %s (balance %d)",
                    amount,
                    user_id,
                    guild_id,
                    remaining,
                )
                return DebitResult(ok=True, balance=remaining, requested=amount)

            current = await self._read(session, user_id, guild_id)

        logger.info(
            "Debit of %d refused for %s in guild %s (balance %d)",
            amount,
            user_id,
            guild_id,
            current.points,
        )
        return DebitResult(ok=False, balance=current.points, requested=amount)

    @storage_operation
    async def balance(self, user_id: int, guild_id: int) -> InviteBalance:
        """Current balance; creates an empty account on first query."""
        db = get_db_service()
        async with db.session() as session:
            return await self._read(session, user_id, guild_id)

    @storage_operation
    async def top_n(self, guild_id: int, n: int = 10) -> list[InviteBalance]:
        """Accounts with the most invites; ties keep creation order."""
        db = get_db_service()
        async with db.session() as session:
            result = await session.execute(
                select(InvitePointAccount)
                .where(InvitePointAccount.guild_id == guild_id)
                .order_by(desc(InvitePointAccount.total_invites), InvitePointAccount.created_at)
                .limit(n)
            )
            return [
                InviteBalance(
                    user_id=account.user_id,
                    points=account.points,
                    total_invites=account.total_invites,
                )
                for account in result.scalars().all()
            ]


@dataclass(frozen=True)
class InviteState:
    """One invite as seen on the platform."""

    code: str
    uses: int
    inviter_id: Optional[int]


class InviteTracker:
    """Attributes joins to inviters by diffing invite use counters.

    Holds the last seen invites per guild. The platform adapter feeds it
    snapshots; the core only consumes the resolved inviter id.
    """

    def __init__(self):
        self._invites: dict[int, dict[str, InviteState]] = {}

    def snapshot(self, guild_id: int, invites: Iterable[InviteState]) -> None:
        self._invites[guild_id] = {invite.code: invite for invite in invites}

    def add(self, guild_id: int, invite: InviteState) -> None:
        self._invites.setdefault(guild_id, {})[invite.code] = invite

    def remove(self, guild_id: int, code: str) -> None:
        self._invites.get(guild_id, {}).pop(code, None)

    def forget(self, guild_id: int) -> None:
        self._invites.pop(guild_id, None)

    def known_codes(self, guild_id: int) -> set[str]:
        return set(self._invites.get(guild_id, {}))

    def resolve_inviter(self, guild_id: int, current: Iterable[InviteState]) -> Optional[int]:
        """Find who invited a new member, then store ``current`` as the new snapshot.

        Returns None when no single invite's use count went up.
        """
        current = list(current)
        previous = self._invites.get(guild_id, {})
        used = [
            invite
            for invite in current
            if invite.code in previous and invite.uses > previous[invite.code].uses
        ]
        self.snapshot(guild_id, current)

        if len(used) != 1:
            if used:
                logger.warning(
                    "Ambiguous invite attribution in guild %s: %s",
                    guild_id,
                    ", ".join(invite.code for invite in used),
                )
            return None
        return used[0].inviter_id
