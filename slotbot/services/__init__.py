"""Service layer for business logic and database operations."""

from .activity_service import ActivityAction, ActivityService
from .database import DatabaseService, get_db_service, init_db_service
from .exceptions import CommandUsageError, ProvisioningFailure, SlotBotError, StorageError
from .guild_config_service import ConfigField, GuildConfigService
from .invite_service import (
    DebitResult,
    InviteBalance,
    InvitePointLedger,
    InviteState,
    InviteTracker,
)
from .maintenance_service import MaintenanceService
from .penalty_service import PenaltyAction, PenaltyOutcome, PenaltyService
from .slot_service import IssueResult, SlotOverview, SlotService
from .usage_service import UsageLedger, UsageResult

__all__ = [
    "ActivityAction",
    "ActivityService",
    "CommandUsageError",
    "ConfigField",
    "DatabaseService",
    "DebitResult",
    "GuildConfigService",
    "InviteBalance",
    "InvitePointLedger",
    "InviteState",
    "InviteTracker",
    "IssueResult",
    "MaintenanceService",
    "PenaltyAction",
    "PenaltyOutcome",
    "PenaltyService",
    "ProvisioningFailure",
    "SlotBotError",
    "SlotOverview",
    "SlotService",
    "StorageError",
    "UsageLedger",
    "UsageResult",
    "get_db_service",
    "init_db_service",
]
