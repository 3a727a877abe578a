"""InvitePointAccount model for referral points."""

from datetime import datetime

from sqlalchemy import BigInteger, CheckConstraint, Index, Integer, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from .base import SqlalchemyBase, UTCDateTime


class InvitePointAccount(SqlalchemyBase):
    """Points earned by inviting members, spent on slot redemption."""

    __tablename__ = "invite_points"
    __table_args__ = (
        UniqueConstraint("user_id", "guild_id", name="uq_invite_points_user_guild"),
        CheckConstraint("points >= 0", name="ck_invite_points_non_negative"),
        Index("idx_invite_points_guild_invites", "guild_id", "total_invites"),
    )

    user_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    guild_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_invites: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_updated: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
