"""Service for per-guild slot policy."""

import re
from enum import Enum
from typing import Any, Callable, Optional

from sqlalchemy import select, update
from sqlalchemy.dialects.sqlite import insert as sqlite_insert

from ..config import HEX_COLOR_PATTERN, GuildDefaults
from ..orm.guild_config import GuildConfig
from .database import get_db_service, storage_operation
from .period_clock import MentionKind


def _positive_int(value: Any) -> int:
    number = int(value)
    if number < 1:
        raise ValueError("must be at least 1")
    return number


def _limit(value: Any) -> int:
    number = _positive_int(value)
    if number > 10:
        raise ValueError("must be at most 10")
    return number


def _role_name(value: Any) -> str:
    name = str(value).strip()
    if not name or len(name) > 100:
        raise ValueError("must be 1-100 characters")
    return name


def _hex_color(value: Any) -> str:
    color = str(value).strip()
    if not color.startswith("#"):
        color = f"#{color}"
    if not re.match(HEX_COLOR_PATTERN, color):
        raise ValueError("must be a hex color like #FFD700")
    return color.upper()


def _channel_id(value: Any) -> Optional[int]:
    if value is None:
        return None
    return _positive_int(value)


_TRUE_WORDS = {"1", "true", "yes", "on", "enable", "enabled"}
_FALSE_WORDS = {"0", "false", "no", "off", "disable", "disabled"}


def _flag(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    word = str(value).strip().lower()
    if word in _TRUE_WORDS:
        return True
    if word in _FALSE_WORDS:
        return False
    raise ValueError("must be on or off")


class ConfigField(Enum):
    """Guild settings that may be changed at runtime.

    Each member maps to exactly one column and one coercer.
    """

    ROLE_NAME = ("slot_role_name", _role_name)
    ROLE_COLOR = ("slot_role_color", _hex_color)
    LOGS_CHANNEL = ("logs_channel_id", _channel_id)
    HERE_LIMIT = ("max_here_per_day", _limit)
    VIP_HERE_LIMIT = ("vip_here_per_day", _limit)
    VIP_EVERYONE_LIMIT = ("vip_everyone_per_week", _limit)
    AUTO_ROLE = ("auto_role", _flag)

    def __init__(self, column: str, coerce: Callable[[Any], Any]):
        self.column = column
        self.coerce = coerce


def limit_for(config: GuildConfig, kind: MentionKind, is_vip: bool) -> int:
    """The per-period limit that applies to a slot category."""
    if kind is MentionKind.HERE:
        return config.vip_here_per_day if is_vip else config.max_here_per_day
    # Free slots are not allowed to use @everyone at all.
    return config.vip_everyone_per_week if is_vip else 0


class GuildConfigService:
    """Service for reading and updating guild configuration."""

    def __init__(self, defaults: Optional[GuildDefaults] = None):
        self.defaults = defaults or GuildDefaults()

    @storage_operation
    async def get(self, guild_id: int) -> GuildConfig:
        """Get a guild's config, creating it with defaults on first access."""
        db = get_db_service()
        async with db.session() as session:
            await session.execute(
                sqlite_insert(GuildConfig)
                .values(guild_id=guild_id, **self.defaults.model_dump())
                .on_conflict_do_nothing(index_elements=["guild_id"])
            )
            result = await session.execute(
                select(GuildConfig).where(GuildConfig.guild_id == guild_id)
            )
            return result.scalar_one()

    @storage_operation
    async def update(self, guild_id: int, field: ConfigField, value: Any) -> GuildConfig:
        """Set one field.

        Raises:
            ValueError: If the value is invalid for the field.
        """
        coerced = field.coerce(value)
        await self.get(guild_id)

        db = get_db_service()
        async with db.session() as session:
            await session.execute(
                update(GuildConfig)
                .where(GuildConfig.guild_id == guild_id)
                .values({field.column: coerced})
                .execution_options(synchronize_session=False)
            )
            result = await session.execute(
                select(GuildConfig).where(GuildConfig.guild_id == guild_id)
            )
            return result.scalar_one()
