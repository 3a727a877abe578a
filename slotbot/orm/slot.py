"""Slot model: a time-boxed channel + role grant."""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import BigInteger, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from .base import SqlalchemyBase, UTCDateTime

VIP_MARKERS = ("vip", "💎")


def is_vip_category(category: str) -> bool:
    """Whether a category label denotes a VIP slot."""
    lowered = category.lower()
    return any(marker in lowered for marker in VIP_MARKERS)


class Slot(SqlalchemyBase):
    """A slot held by a user in a guild."""

    __tablename__ = "slots"
    __table_args__ = (
        UniqueConstraint("user_id", "guild_id", name="uq_slots_user_guild"),
        Index("idx_slots_guild_expiry", "guild_id", "expiry_date"),
    )

    user_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    guild_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    user_tag: Mapped[str] = mapped_column(String, nullable=False)
    duration: Mapped[int] = mapped_column(Integer, nullable=False)  # days
    category: Mapped[str] = mapped_column(String, nullable=False)
    expiry_date: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    channel_id: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    role_id: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    @property
    def is_vip(self) -> bool:
        return is_vip_category(self.category)

    def days_left(self, now: Optional[datetime] = None) -> int:
        """Whole days remaining, rounded up."""
        now = now or datetime.now(timezone.utc)
        seconds = (self.expiry_date - now).total_seconds()
        if seconds <= 0:
            return 0
        return int(-(-seconds // 86400))
