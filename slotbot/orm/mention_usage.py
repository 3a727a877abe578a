"""MentionUsage model for per-period @here/@everyone counters."""

from sqlalchemy import BigInteger, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from .base import SqlalchemyBase


class MentionUsage(SqlalchemyBase):
    """Count of one mention kind used by a user in a guild during one period."""

    __tablename__ = "mention_usage"
    __table_args__ = (
        UniqueConstraint(
            "user_id", "guild_id", "period_key", "kind", name="uq_mention_usage_key"
        ),
    )

    user_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    guild_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    period_key: Mapped[str] = mapped_column(String, nullable=False, index=True)
    kind: Mapped[str] = mapped_column(String, nullable=False)  # 'here' or 'everyone'
    count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
