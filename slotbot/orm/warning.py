"""WarningRecord model for accumulated infractions."""

from datetime import datetime
from typing import Optional

from sqlalchemy import BigInteger, Integer, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from .base import SqlalchemyBase, UTCDateTime


class WarningRecord(SqlalchemyBase):
    """Infraction count per user and guild."""

    __tablename__ = "warnings"
    __table_args__ = (UniqueConstraint("user_id", "guild_id", name="uq_warnings_user_guild"),)

    user_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    guild_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    warning_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_warning: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
