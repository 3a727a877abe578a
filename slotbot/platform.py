"""Boundary between the slot core and the chat platform."""

from dataclasses import dataclass
from typing import Optional, Protocol


@dataclass
class IncomingMessage:
    """A guild message delivered to the bot."""

    guild_id: int
    channel_id: int
    author_id: int
    author_tag: str
    content: str
    is_bot: bool = False


@dataclass
class MemberJoin:
    """A new member, with the inviter resolved by the platform adapter."""

    guild_id: int
    user_id: int
    user_tag: str
    is_bot: bool = False
    inviter_id: Optional[int] = None


class Platform(Protocol):
    """Provisioning and notification calls the core makes.

    Provisioning methods raise ProvisioningFailure. ``notify`` may raise
    anything; callers treat delivery as fire-and-forget.
    """

    async def create_role(self, guild_id: int, name: str, color: str) -> int:
        """Find the slot role by name or create it. Returns the role id."""
        ...

    async def add_role(self, guild_id: int, user_id: int, role_id: int, reason: str) -> None: ...

    async def remove_role(
        self, guild_id: int, user_id: int, role_id: int, reason: str
    ) -> None: ...

    async def create_channel(
        self,
        guild_id: int,
        owner_id: int,
        name: str,
        *,
        vip: bool,
        role_id: Optional[int],
        reason: str,
    ) -> int:
        """Create the holder's slot channel. Returns the channel id."""
        ...

    async def delete_channel(self, channel_id: int, reason: str) -> None: ...

    async def notify(self, channel_id: int, content: str) -> None: ...

    async def is_admin(self, guild_id: int, user_id: int) -> bool: ...

    async def get_user_tag(self, user_id: int) -> str: ...
