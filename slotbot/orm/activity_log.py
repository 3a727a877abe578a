"""ActivityLog model for the slot audit trail."""

from typing import Optional

from sqlalchemy import BigInteger, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import SqlalchemyBase


class ActivityLog(SqlalchemyBase):
    """Record of an administrative or automatic slot action."""

    __tablename__ = "activity_logs"
    __table_args__ = (Index("idx_activity_logs_guild_created", "guild_id", "created_at"),)

    guild_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    user_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    action: Mapped[str] = mapped_column(String, nullable=False)
    details: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
