"""hikari gateway wrapper for Discord interactions."""

import logging
import re
from typing import Optional

import hikari

from .bot import Bot
from .config import DiscordConfig
from .platform import IncomingMessage, MemberJoin
from .services import InviteState, InviteTracker, ProvisioningFailure

logger = logging.getLogger(__name__)

INTENTS = (
    hikari.Intents.GUILDS
    | hikari.Intents.GUILD_MESSAGES
    | hikari.Intents.MESSAGE_CONTENT  # For mention detection and commands
    | hikari.Intents.GUILD_MEMBERS  # For member joins
    | hikari.Intents.GUILD_INVITES  # For invite attribution
)

FREE_CATEGORY_NAME = "🌟 FREE | slots"
VIP_CATEGORY_NAME = "💎 VIP | slots"

HOLDER_PERMISSIONS = (
    hikari.Permissions.VIEW_CHANNEL
    | hikari.Permissions.SEND_MESSAGES
    | hikari.Permissions.READ_MESSAGE_HISTORY
    | hikari.Permissions.USE_EXTERNAL_EMOJIS
    | hikari.Permissions.ADD_REACTIONS
    | hikari.Permissions.MENTION_ROLES
)
VISITOR_DENY = (
    hikari.Permissions.SEND_MESSAGES
    | hikari.Permissions.ADD_REACTIONS
    | hikari.Permissions.USE_EXTERNAL_EMOJIS
)


def channel_slug(name: str, vip: bool) -> str:
    """Lowercase, dash-separated channel name with a slot-type marker."""
    slug = re.sub(r"[^a-z0-9-]", "-", name.lower())
    slug = re.sub(r"-+", "-", slug).strip("-") or "slot"
    marker = "💎" if vip else "⭐"
    return f"{marker}-{slug}"[:100]


def _invite_state(invite: hikari.InviteWithMetadata) -> InviteState:
    inviter = invite.inviter
    return InviteState(
        code=invite.code,
        uses=invite.uses,
        inviter_id=int(inviter.id) if inviter else None,
    )


class DiscordClient:
    """Connects the slot bot to the Discord gateway and REST API."""

    def __init__(self, config: DiscordConfig) -> None:
        self.config = config
        self.app = hikari.GatewayBot(
            token=config.token.get_secret_value(),
            intents=INTENTS,
        )
        self.invites = InviteTracker()
        self.bot: Optional[Bot] = None

    @property
    def rest(self):
        return self.app.rest

    def attach(self, bot: Bot) -> None:
        """Route gateway events to ``bot``."""
        self.bot = bot
        self.app.subscribe(hikari.StartedEvent, self.on_started)
        self.app.subscribe(hikari.GuildAvailableEvent, self.on_guild_available)
        self.app.subscribe(hikari.GuildLeaveEvent, self.on_guild_leave)
        self.app.subscribe(hikari.InviteCreateEvent, self.on_invite_create)
        self.app.subscribe(hikari.InviteDeleteEvent, self.on_invite_delete)
        self.app.subscribe(hikari.GuildMessageCreateEvent, self.on_message_create)
        self.app.subscribe(hikari.MemberCreateEvent, self.on_member_join)

    async def start(self) -> None:
        await self.app.start()

    async def join(self) -> None:
        await self.app.join()

    async def close(self) -> None:
        await self.app.close()

    # Gateway events

    async def on_started(self, event: hikari.StartedEvent) -> None:
        me = self.app.get_me()
        if me and self.bot:
            self.bot.bot_user_id = int(me.id)
            logger.info("Bot started as %s", me.username)

    async def on_guild_available(self, event: hikari.GuildAvailableEvent) -> None:
        try:
            invites = await self.rest.fetch_guild_invites(event.guild_id)
        except hikari.HTTPError as e:
            logger.warning("Cannot read invites of guild %s: %s", event.guild_id, e)
            return
        self.invites.snapshot(int(event.guild_id), [_invite_state(i) for i in invites])
        logger.info("Cached %d invite(s) for guild %s", len(invites), event.guild_id)

    async def on_guild_leave(self, event: hikari.GuildLeaveEvent) -> None:
        self.invites.forget(int(event.guild_id))

    async def on_invite_create(self, event: hikari.InviteCreateEvent) -> None:
        if event.guild_id is None:
            return
        self.invites.add(int(event.guild_id), _invite_state(event.invite))

    async def on_invite_delete(self, event: hikari.InviteDeleteEvent) -> None:
        if event.guild_id is None:
            return
        self.invites.remove(int(event.guild_id), event.code)

    async def on_message_create(self, event: hikari.GuildMessageCreateEvent) -> None:
        if self.bot is None or event.is_bot or not event.content:
            return
        message = IncomingMessage(
            guild_id=int(event.guild_id),
            channel_id=int(event.channel_id),
            author_id=int(event.author_id),
            author_tag=event.author.username,
            content=event.content,
            is_bot=event.is_bot,
        )
        try:
            await self.bot.process_message(message)
        except Exception as e:
            logger.error("Error processing message %s: %s", event.message_id, e, exc_info=True)

    async def on_member_join(self, event: hikari.MemberCreateEvent) -> None:
        if self.bot is None:
            return
        guild_id = int(event.guild_id)
        inviter_id: Optional[int] = None
        try:
            invites = await self.rest.fetch_guild_invites(guild_id)
            inviter_id = self.invites.resolve_inviter(
                guild_id, [_invite_state(i) for i in invites]
            )
        except hikari.HTTPError as e:
            logger.warning("Cannot read invites of guild %s: %s", guild_id, e)

        join = MemberJoin(
            guild_id=guild_id,
            user_id=int(event.user_id),
            user_tag=event.user.username,
            is_bot=event.user.is_bot,
            inviter_id=inviter_id,
        )
        try:
            await self.bot.process_member_join(join)
        except Exception as e:
            logger.error("Error processing join of %s: %s", join.user_tag, e, exc_info=True)

    # Platform

    async def create_role(self, guild_id: int, name: str, color: str) -> int:
        try:
            for role in await self.rest.fetch_roles(guild_id):
                if role.name == name:
                    return int(role.id)
            role = await self.rest.create_role(
                guild_id,
                name=name,
                color=hikari.Color.from_hex_code(color),
                reason="Slot role",
            )
        except hikari.HTTPError as e:
            raise ProvisioningFailure(f"Cannot create role {name!r}: {e}") from e
        logger.info("Created role %s in guild %s", name, guild_id)
        return int(role.id)

    async def add_role(self, guild_id: int, user_id: int, role_id: int, reason: str) -> None:
        try:
            await self.rest.add_role_to_member(guild_id, user_id, role_id, reason=reason)
        except hikari.HTTPError as e:
            raise ProvisioningFailure(f"Cannot add role {role_id} to {user_id}: {e}") from e

    async def remove_role(self, guild_id: int, user_id: int, role_id: int, reason: str) -> None:
        try:
            await self.rest.remove_role_from_member(guild_id, user_id, role_id, reason=reason)
        except hikari.HTTPError as e:
            raise ProvisioningFailure(f"Cannot remove role {role_id} from {user_id}: {e}") from e

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
        overwrites = [
            hikari.PermissionOverwrite(
                id=guild_id,  # @everyone role shares the guild id
                type=hikari.PermissionOverwriteType.ROLE,
                allow=hikari.Permissions.VIEW_CHANNEL | hikari.Permissions.READ_MESSAGE_HISTORY,
                deny=VISITOR_DENY,
            ),
            hikari.PermissionOverwrite(
                id=owner_id,
                type=hikari.PermissionOverwriteType.MEMBER,
                allow=HOLDER_PERMISSIONS,
            ),
        ]
        try:
            category_id = await self._slot_category(guild_id, vip)
            channel = await self.rest.create_guild_text_channel(
                guild_id,
                channel_slug(name, vip),
                category=category_id,
                permission_overwrites=overwrites,
                reason=reason,
            )
        except hikari.HTTPError as e:
            raise ProvisioningFailure(f"Cannot create channel {name!r}: {e}") from e
        return int(channel.id)

    async def delete_channel(self, channel_id: int, reason: str) -> None:
        try:
            await self.rest.delete_channel(channel_id, reason=reason)
        except hikari.NotFoundError:
            logger.debug("Channel %s already gone", channel_id)
        except hikari.HTTPError as e:
            raise ProvisioningFailure(f"Cannot delete channel {channel_id}: {e}") from e

    async def notify(self, channel_id: int, content: str) -> None:
        await self.rest.create_message(
            channel_id,
            content,
            user_mentions=True,
            role_mentions=False,
            mentions_everyone=False,
        )

    async def is_admin(self, guild_id: int, user_id: int) -> bool:
        guild = await self.rest.fetch_guild(guild_id)
        if int(guild.owner_id) == user_id:
            return True
        member = await self.rest.fetch_member(guild_id, user_id)
        for role_id in member.role_ids:
            if int(role_id) in self.config.admin_role_ids:
                return True
            role = guild.get_role(role_id)
            if role and hikari.Permissions.ADMINISTRATOR in role.permissions:
                return True
        return False

    async def get_user_tag(self, user_id: int) -> str:
        user = await self.rest.fetch_user(user_id)
        return user.username

    async def _slot_category(self, guild_id: int, vip: bool) -> int:
        name = VIP_CATEGORY_NAME if vip else FREE_CATEGORY_NAME
        for channel in await self.rest.fetch_guild_channels(guild_id):
            if channel.type == hikari.ChannelType.GUILD_CATEGORY and channel.name == name:
                return int(channel.id)
        category = await self.rest.create_guild_category(guild_id, name, reason="Slot category")
        logger.info("Created slot category %s in guild %s", name, guild_id)
        return int(category.id)
