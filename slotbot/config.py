"""Configuration management for the slot bot."""

import os
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, SecretStr

HEX_COLOR_PATTERN = r"^#[0-9A-Fa-f]{6}$"


class DiscordConfig(BaseModel):
    """Discord connection settings."""

    token: SecretStr = Field(..., description="Bot token")
    command_prefix: str = Field(default="!", min_length=1, max_length=3)
    admin_role_ids: list[int] = Field(
        default_factory=list, description="Roles allowed to run admin commands"
    )


class GuildDefaults(BaseModel):
    """Values a guild's config row starts with."""

    slot_role_name: str = "VIP Slot"
    slot_role_color: str = Field(default="#FFD700", pattern=HEX_COLOR_PATTERN)
    max_here_per_day: int = Field(default=1, ge=1)
    vip_here_per_day: int = Field(default=2, ge=1)
    vip_everyone_per_week: int = Field(default=1, ge=1)
    auto_role: bool = True


class BotConfig(BaseModel):
    """Bot behavior settings."""

    # Database settings
    database_path: str = Field(
        default="~/.slotbot/slots.db", description="Path to SQLite database file"
    )
    storage_timeout_seconds: float = Field(default=5.0, gt=0)

    reset_warnings_on_revoke: bool = Field(
        default=False,
        description="Clear a user's warnings when their slot is revoked",
    )
    leaderboard_size: int = Field(default=10, ge=1, le=25)
    max_slot_days: int = Field(default=365, ge=1)
    max_redeem_days: int = Field(default=30, ge=1)
    maintenance_enabled: bool = True


class Config(BaseModel):
    """Root configuration model."""

    discord: DiscordConfig
    bot: BotConfig = BotConfig()
    defaults: GuildDefaults = GuildDefaults()


def load_config(config_path: str | Path = "config.yaml") -> Config:
    """Load and validate configuration from YAML file.

    Supports ${VAR_NAME} syntax for environment variable expansion.

    Args:
        config_path: Path to the configuration file.

    Returns:
        Validated Config object.

    Raises:
        FileNotFoundError: If config file doesn't exist.
        ValidationError: If config is invalid.
        ValueError: If referenced environment variable is not set.
    """
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(
            f"Config file not found: {path}\n"
            "Copy config.example.yaml to config.yaml and fill in your values."
        )

    with path.open() as f:
        raw_config = yaml.safe_load(f) or {}

    # Expand environment variables in the format ${VAR_NAME}
    def expand_env_vars(obj):
        if isinstance(obj, dict):
            return {k: expand_env_vars(v) for k, v in obj.items()}
        elif isinstance(obj, list):
            return [expand_env_vars(item) for item in obj]
        elif isinstance(obj, str) and obj.startswith("${") and obj.endswith("}"):
            env_var = obj[2:-1]
            value = os.getenv(env_var)
            if value is None:
                raise ValueError(f"Environment variable '{env_var}' is not set")
            return value
        return obj

    raw_config = expand_env_vars(raw_config)

    return Config(**raw_config)
