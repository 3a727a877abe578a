"""ORM models for database persistence."""

from .activity_log import ActivityLog
from .base import Base, SqlalchemyBase
from .guild_config import GuildConfig
from .invite_points import InvitePointAccount
from .mention_usage import MentionUsage
from .slot import Slot, is_vip_category
from .warning import WarningRecord

__all__ = [
    "ActivityLog",
    "Base",
    "SqlalchemyBase",
    "GuildConfig",
    "InvitePointAccount",
    "MentionUsage",
    "Slot",
    "WarningRecord",
    "is_vip_category",
]
