"""GuildConfig model for per-guild slot policy."""

from typing import Optional

from sqlalchemy import BigInteger, Boolean, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from .base import SqlalchemyBase


class GuildConfig(SqlalchemyBase):
    """Tunable slot policy for one guild."""

    __tablename__ = "guild_configs"

    guild_id: Mapped[int] = mapped_column(BigInteger, nullable=False, unique=True)
    slot_role_name: Mapped[str] = mapped_column(String, nullable=False)
    slot_role_color: Mapped[str] = mapped_column(String, nullable=False)
    logs_channel_id: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    max_here_per_day: Mapped[int] = mapped_column(Integer, nullable=False)
    vip_here_per_day: Mapped[int] = mapped_column(Integer, nullable=False)
    vip_everyone_per_week: Mapped[int] = mapped_column(Integer, nullable=False)
    auto_role: Mapped[bool] = mapped_column(Boolean, nullable=False)
