"""Shared fixtures: a temporary database and an in-memory platform."""

import itertools
from datetime import datetime, timezone

import pytest

from slotbot.config import Config, DiscordConfig
from slotbot.services import ProvisioningFailure, init_db_service
from slotbot.services.period_clock import PeriodClock

GUILD_ID = 1000
ADMIN_ID = 1
LOGS_CHANNEL_ID = 5000


@pytest.fixture
async def db(tmp_path):
    """Fresh SQLite database for each test."""
    service = await init_db_service(tmp_path / "test.db")
    yield service
    await service.close()


class FixedClock(PeriodClock):
    """Clock that only moves when told to."""

    def __init__(self, now: datetime):
        self.current = now
        super().__init__(lambda: self.current)

    def set(self, now: datetime) -> None:
        self.current = now


class FakePlatform:
    """Records provisioning calls; individual calls can be made to fail."""

    def __init__(self):
        self._ids = itertools.count(9000)
        self.roles: dict[str, int] = {}
        self.member_roles: set[tuple[int, int]] = set()
        self.channels: dict[int, str] = {}
        self.vip_channels: set[int] = set()
        self.deleted_channels: list[int] = []
        self.messages: list[tuple[int, str]] = []
        self.admins: set[int] = {ADMIN_ID}
        self.fail_on: set[str] = set()

    def _check(self, operation: str) -> None:
        if operation in self.fail_on:
            raise ProvisioningFailure(f"{operation} failed")

    async def create_role(self, guild_id, name, color):
        self._check("create_role")
        if name not in self.roles:
            self.roles[name] = next(self._ids)
        return self.roles[name]

    async def add_role(self, guild_id, user_id, role_id, reason):
        self._check("add_role")
        self.member_roles.add((user_id, role_id))

    async def remove_role(self, guild_id, user_id, role_id, reason):
        self._check("remove_role")
        self.member_roles.discard((user_id, role_id))

    async def create_channel(self, guild_id, owner_id, name, *, vip, role_id, reason):
        self._check("create_channel")
        channel_id = next(self._ids)
        self.channels[channel_id] = name
        if vip:
            self.vip_channels.add(channel_id)
        return channel_id

    async def delete_channel(self, channel_id, reason):
        self._check("delete_channel")
        self.channels.pop(channel_id, None)
        self.deleted_channels.append(channel_id)

    async def notify(self, channel_id, content):
        self._check("notify")
        self.messages.append((channel_id, content))

    async def is_admin(self, guild_id, user_id):
        return user_id in self.admins

    async def get_user_tag(self, user_id):
        return f"user{user_id}"

    def texts(self, channel_id=None) -> list[str]:
        return [text for cid, text in self.messages if channel_id is None or cid == channel_id]


@pytest.fixture
def platform():
    return FakePlatform()


@pytest.fixture
def clock():
    return FixedClock(datetime(2024, 3, 13, 12, 0, tzinfo=timezone.utc))


def make_config(**bot_settings) -> Config:
    return Config(discord=DiscordConfig(token="test-token"), bot=bot_settings)
