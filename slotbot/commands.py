"""Handlers for the prefixed text commands."""

import logging
from typing import TYPE_CHECKING, Awaitable, Callable, Optional

from .command_router import CommandType, ParsedCommand, parse_channel_id, parse_user_id
from .orm.slot import is_vip_category
from .platform import IncomingMessage
from .services import (
    ActivityAction,
    CommandUsageError,
    ConfigField,
    PenaltyAction,
    ProvisioningFailure,
    StorageError,
)
from .services.period_clock import MentionKind

if TYPE_CHECKING:
    from .bot import Bot

logger = logging.getLogger(__name__)

Handler = Callable[[ParsedCommand, IncomingMessage], Awaitable[str]]

# Points awarded for a tracked in-limit @here and taken for a breach.
HERE_REWARD = 1
HERE_PENALTY = -5

USAGE = {
    CommandType.FREESLOT: "freeslot <@user> <days> <category> <channel_name>",
    CommandType.VIPSLOT: "vipslot <@user> <days> <category> <channel_name>",
    CommandType.SLOTINFO: "slotinfo [@user]",
    CommandType.REMOVESLOT: "removeslot <@user>",
    CommandType.ADDHERE: "addhere <@user>",
    CommandType.ADDEVERYONE: "addeveryone <@user>",
    CommandType.WARN: "warn <@user> [reason]",
    CommandType.HEREUSED: "hereused <@user>",
    CommandType.SLOTCONFIG: (
        "slotconfig role <name> [#color] | limits <n> | viplimits <here> <everyone> "
        "| logs <#channel> | autorole <on|off>"
    ),
    CommandType.SLOTSTATS: "slotstats [overview|active|points|activity]",
    CommandType.GIVEPOINTS: "givepoints <@user> <points> [reason]",
    CommandType.SLOTHELP: "slothelp",
    CommandType.INVITEPOINTS: "invitepoints [@user]",
    CommandType.REDEEMSLOT: "redeemslot <days> <category> <channel_name>",
    CommandType.INVITELEADERBOARD: "inviteleaderboard",
    CommandType.INVITEINFO: "inviteinfo",
}

MEDALS = ("🥇", "🥈", "🥉")


def _rank(index: int) -> str:
    return MEDALS[index] if index < len(MEDALS) else f"**{index + 1}.**"


class CommandHandler:
    """Executes parsed commands against the bot's services.

    Every handler returns the reply text; ``dispatch`` sends it and maps
    failures to user-facing messages.
    """

    def __init__(self, bot: "Bot"):
        self.bot = bot
        self.handlers: dict[CommandType, Handler] = {
            CommandType.FREESLOT: self._freeslot,
            CommandType.VIPSLOT: self._vipslot,
            CommandType.SLOTINFO: self._slotinfo,
            CommandType.REMOVESLOT: self._removeslot,
            CommandType.ADDHERE: self._addhere,
            CommandType.ADDEVERYONE: self._addeveryone,
            CommandType.WARN: self._warn,
            CommandType.HEREUSED: self._hereused,
            CommandType.SLOTCONFIG: self._slotconfig,
            CommandType.SLOTSTATS: self._slotstats,
            CommandType.GIVEPOINTS: self._givepoints,
            CommandType.SLOTHELP: self._slothelp,
            CommandType.INVITEPOINTS: self._invitepoints,
            CommandType.REDEEMSLOT: self._redeemslot,
            CommandType.INVITELEADERBOARD: self._inviteleaderboard,
            CommandType.INVITEINFO: self._inviteinfo,
        }

    @property
    def prefix(self) -> str:
        return self.bot.command_router.prefix

    async def dispatch(self, command: ParsedCommand, message: IncomingMessage) -> Optional[str]:
        """Run a command and send its reply to the invoking channel.

        Returns:
            The reply text, or None if nothing could be sent.
        """
        try:
            reply = await self._execute(command, message)
        except CommandUsageError as e:
            reply = f"❌ {e}\nUsage: `{self.prefix}{USAGE[command.command_type]}`"
        except StorageError as e:
            logger.error("Storage failure in %s: %s", command.command_type.value, e)
            reply = "❌ Database error occurred."
        except ProvisioningFailure as e:
            logger.error("Provisioning failure in %s: %s", command.command_type.value, e)
            reply = "❌ Failed to set up the slot. Make sure the bot has the required permissions."
        except Exception as e:
            logger.error(
                "Unexpected error handling %s: %s", command.command_type.value, e, exc_info=True
            )
            reply = "❌ Something went wrong while running that command."

        await self.bot.send_notice(message.channel_id, reply)
        return reply

    async def _execute(self, command: ParsedCommand, message: IncomingMessage) -> str:
        if command.command_type.admin_only:
            is_admin = await self.bot.platform.is_admin(message.guild_id, message.author_id)
            if not is_admin:
                logger.info(
                    "Denied %s to non-admin %s", command.command_type.value, message.author_tag
                )
                return "❌ You don't have permission to use this command."

        handler = self.handlers.get(command.command_type)
        if handler is None:
            # Unknown command (shouldn't happen due to enum)
            logger.warning("Unknown command type: %s", command.command_type)
            return "❌ Unknown command."
        return await handler(command, message)

    # Argument helpers

    @staticmethod
    def _user_arg(command: ParsedCommand, index: int = 0) -> int:
        if len(command.args) <= index:
            raise CommandUsageError("Missing user.")
        user_id = parse_user_id(command.args[index])
        if user_id is None:
            raise CommandUsageError(f"`{command.args[index]}` is not a user.")
        return user_id

    @staticmethod
    def _int_arg(command: ParsedCommand, index: int, name: str, low: int, high: int) -> int:
        if len(command.args) <= index:
            raise CommandUsageError(f"Missing {name}.")
        try:
            value = int(command.args[index])
        except ValueError:
            raise CommandUsageError(f"{name} must be a number.") from None
        if not low <= value <= high:
            raise CommandUsageError(f"{name} must be between {low} and {high}.")
        return value

    @staticmethod
    def _require(command: ParsedCommand, count: int) -> None:
        if len(command.args) < count:
            raise CommandUsageError("Missing arguments.")

    async def _tag(self, user_id: int) -> str:
        try:
            return await self.bot.platform.get_user_tag(user_id)
        except Exception as e:
            logger.debug("Could not resolve tag for %s: %s", user_id, e)
            return str(user_id)

    # Slot grants

    async def _grant(
        self, command: ParsedCommand, message: IncomingMessage, vip: bool
    ) -> str:
        self._require(command, 4)
        user_id = self._user_arg(command)
        days = self._int_arg(command, 1, "days", 1, self.bot.config.bot.max_slot_days)
        category = command.args[2]
        channel_name = " ".join(command.args[3:])
        if vip and not is_vip_category(category):
            category = f"VIP {category}"

        user_tag = await self._tag(user_id)
        action = ActivityAction.VIP_SLOT_CREATED if vip else ActivityAction.FREE_SLOT_CREATED
        result = await self.bot.issue_slot(
            message.guild_id,
            user_id,
            user_tag,
            days,
            category,
            channel_name,
            action,
            message.author_tag,
        )
        if result.already_active:
            return f"❌ {user_tag} already has an active slot."

        kind = "VIP slot" if vip else "Slot"
        return (
            f"✅ {kind} created for <@{user_id}>: {days} day(s), category **{category}**, "
            f"channel <#{result.slot.channel_id}>."
        )

    async def _freeslot(self, command: ParsedCommand, message: IncomingMessage) -> str:
        return await self._grant(command, message, vip=False)

    async def _vipslot(self, command: ParsedCommand, message: IncomingMessage) -> str:
        return await self._grant(command, message, vip=True)

    async def _removeslot(self, command: ParsedCommand, message: IncomingMessage) -> str:
        user_id = self._user_arg(command)
        report = await self.bot.remove_slot(message.guild_id, user_id, message.author_tag)
        if report is None:
            return f"❌ <@{user_id}> doesn't have an active slot."
        return f"✅ Slot of <@{user_id}> removed."

    async def _slotinfo(self, command: ParsedCommand, message: IncomingMessage) -> str:
        user_id = self._user_arg(command) if command.args else message.author_id
        bot = self.bot
        slot = await bot.slot_service.lookup_active(user_id, message.guild_id)
        if slot is None:
            return f"❌ <@{user_id}> doesn't have an active slot."

        config = await bot.guild_configs.get(message.guild_id)
        here_used = await bot.usage_ledger.get_usage(user_id, message.guild_id, MentionKind.HERE)
        warnings = await bot.penalty_service.get_warning_count(user_id, message.guild_id)
        here_limit = config.vip_here_per_day if slot.is_vip else config.max_here_per_day
        lines = [
            f"📋 **Slot of {slot.user_tag}**",
            f"• Category: {slot.category}",
            f"• Expires: {slot.expiry_date:%Y-%m-%d %H:%M} UTC "
            f"({slot.days_left(bot.clock.now())} day(s) left)",
            f"• @here today: {here_used}/{here_limit}",
        ]
        if slot.is_vip:
            everyone_used = await bot.usage_ledger.get_usage(
                user_id, message.guild_id, MentionKind.EVERYONE
            )
            lines.append(f"• @everyone this week: {everyone_used}/{config.vip_everyone_per_week}")
        lines.append(f"• Points: {slot.points}")
        lines.append(f"• Warnings: {warnings}/{bot.penalty_service.threshold}")
        if slot.channel_id:
            lines.append(f"• Channel: <#{slot.channel_id}>")
        return "\n".join(lines)

    # Usage and penalties

    async def _add_usage(
        self, command: ParsedCommand, message: IncomingMessage, kind: MentionKind
    ) -> str:
        user_id = self._user_arg(command)
        bot = self.bot
        slot = await bot.slot_service.lookup_active(user_id, message.guild_id)
        if slot is None:
            return f"❌ <@{user_id}> doesn't have an active slot."
        if kind is MentionKind.EVERYONE and not slot.is_vip:
            return f"❌ <@{user_id}> doesn't have a VIP slot. @everyone usage is only for VIP slots."

        usage = await bot.usage_ledger.record_usage(user_id, message.guild_id, kind, slot.is_vip)
        period = "today" if kind is MentionKind.HERE else "this week"
        await bot.send_notice(
            slot.channel_id or message.channel_id,
            f"📢 <@{user_id}>, you have **{usage.remaining}/{usage.limit} {kind.marker}** "
            f"left {period}. (Added manually by admin)",
        )
        return (
            f"✅ Added {kind.marker} usage to {slot.user_tag}. "
            f"Usage: {usage.count}/{usage.limit}. Remaining: {usage.remaining}"
        )

    async def _addhere(self, command: ParsedCommand, message: IncomingMessage) -> str:
        return await self._add_usage(command, message, MentionKind.HERE)

    async def _addeveryone(self, command: ParsedCommand, message: IncomingMessage) -> str:
        return await self._add_usage(command, message, MentionKind.EVERYONE)

    async def _warn(self, command: ParsedCommand, message: IncomingMessage) -> str:
        user_id = self._user_arg(command)
        reason = " ".join(command.args[1:]) or "excessive @here usage"
        slot = await self.bot.slot_service.lookup_active(user_id, message.guild_id)
        if slot is None:
            return f"❌ <@{user_id}> doesn't have an active slot."

        outcome = await self.bot.handle_infraction(slot, message.channel_id, reason)
        if outcome.action is PenaltyAction.REVOKED:
            return f"✅ {slot.user_tag} warned; slot revoked."
        threshold = self.bot.penalty_service.threshold
        return f"✅ {slot.user_tag} warned ({outcome.warning_count}/{threshold})."

    async def _hereused(self, command: ParsedCommand, message: IncomingMessage) -> str:
        user_id = self._user_arg(command)
        bot = self.bot
        slot = await bot.slot_service.lookup_active(user_id, message.guild_id)
        if slot is None:
            return f"❌ <@{user_id}> doesn't have an active slot."

        usage = await bot.usage_ledger.record_usage(
            user_id, message.guild_id, MentionKind.HERE, slot.is_vip
        )
        notice_channel = slot.channel_id or message.channel_id
        if usage.breached:
            await bot.slot_service.award_points(user_id, message.guild_id, HERE_PENALTY)
            await bot.send_notice(
                notice_channel,
                f"⚠️ <@{user_id}>, you have **exceeded** your daily @here limit "
                f"({usage.count}/{usage.limit}). {HERE_PENALTY} points.",
            )
            await bot.handle_infraction(slot, message.channel_id, "excessive @here usage")
        elif usage.remaining > 0:
            await bot.slot_service.award_points(user_id, message.guild_id, HERE_REWARD)
            await bot.send_notice(
                notice_channel,
                f"📢 <@{user_id}>, you used @here successfully! "
                f"{usage.count}/{usage.limit} today, {usage.remaining} left. +{HERE_REWARD} point.",
            )
        else:
            await bot.send_notice(
                notice_channel,
                f"⚠️ <@{user_id}>, you've reached your daily @here limit "
                f"({usage.count}/{usage.limit}). Resets at midnight UTC.",
            )
        return f"✅ Tracked @here usage for {slot.user_tag}. Usage: **{usage.count}/{usage.limit}**"

    async def _givepoints(self, command: ParsedCommand, message: IncomingMessage) -> str:
        user_id = self._user_arg(command)
        points = self._int_arg(command, 1, "points", 1, 1000)
        reason = " ".join(command.args[2:]) or "No reason provided"
        bot = self.bot
        slot = await bot.slot_service.lookup_active(user_id, message.guild_id)
        if slot is None:
            return f"❌ <@{user_id}> doesn't have an active slot."

        await bot.slot_service.award_points(user_id, message.guild_id, points)
        await bot.activity_service.record(
            message.guild_id,
            user_id,
            ActivityAction.POINTS_GIVEN,
            f"{points} points given by {message.author_tag}: {reason}",
        )
        await bot.send_notice(
            slot.channel_id,
            f"🎉 <@{user_id}>, you received **{points} points** from "
            f"{message.author_tag}! Reason: {reason}",
        )
        return f"⭐ Gave **{points}** points to {slot.user_tag}. Reason: {reason}"

    # Configuration and statistics

    async def _slotconfig(self, command: ParsedCommand, message: IncomingMessage) -> str:
        if not command.args:
            raise CommandUsageError("Missing setting.")
        sub = command.args[0].lower()
        rest = command.args[1:]

        if sub == "role":
            if not rest:
                raise CommandUsageError("Missing role name.")
            if len(rest) > 1 and rest[-1].startswith("#"):
                updates = [
                    (ConfigField.ROLE_NAME, " ".join(rest[:-1])),
                    (ConfigField.ROLE_COLOR, rest[-1]),
                ]
            else:
                updates = [(ConfigField.ROLE_NAME, " ".join(rest))]
        elif sub == "limits":
            if len(rest) != 1:
                raise CommandUsageError("Give exactly one @here limit.")
            updates = [(ConfigField.HERE_LIMIT, rest[0])]
        elif sub == "viplimits":
            if len(rest) != 2:
                raise CommandUsageError("Give the VIP @here and @everyone limits.")
            updates = [
                (ConfigField.VIP_HERE_LIMIT, rest[0]),
                (ConfigField.VIP_EVERYONE_LIMIT, rest[1]),
            ]
        elif sub == "logs":
            channel_id = parse_channel_id(rest[0]) if rest else None
            if channel_id is None:
                raise CommandUsageError("Give a channel.")
            updates = [(ConfigField.LOGS_CHANNEL, channel_id)]
        elif sub == "autorole":
            if len(rest) != 1:
                raise CommandUsageError("Give on or off.")
            updates = [(ConfigField.AUTO_ROLE, rest[0])]
        else:
            raise CommandUsageError(f"Unknown setting `{sub}`.")

        # Validate everything before writing anything
        try:
            coerced = [(field, field.coerce(value)) for field, value in updates]
        except ValueError as e:
            raise CommandUsageError(f"Invalid value: {e}") from None

        changes = []
        for field, value in coerced:
            await self.bot.guild_configs.update(message.guild_id, field, value)
            changes.append(f"{field.column} = {value}")

        summary = ", ".join(changes)
        await self.bot.activity_service.record(
            message.guild_id, message.author_id, ActivityAction.CONFIG_UPDATED, summary
        )
        logger.info("Guild %s config updated by %s: %s", message.guild_id, message.author_tag, summary)
        return f"⚙️ Configuration updated: {summary}"

    async def _slotstats(self, command: ParsedCommand, message: IncomingMessage) -> str:
        kind = command.args[0].lower() if command.args else "overview"
        bot = self.bot
        guild_id = message.guild_id

        if kind == "overview":
            overview = await bot.slot_service.overview(guild_id)
            top = list(overview.by_category.items())[:5]
            categories = "\n".join(f"• **{name}**: {count}" for name, count in top)
            return (
                "📊 **Slot System Overview**\n"
                f"Active slots: {overview.total}\n"
                f"Total points: {overview.total_points}\n"
                f"{categories or 'No active slots'}"
            )

        if kind == "active":
            slots = await bot.slot_service.list_active(guild_id, limit=10)
            if not slots:
                return "📝 No active slots found."
            now = bot.clock.now()
            lines = [
                f"**{i + 1}.** {slot.user_tag} - {slot.category} ({slot.days_left(now)} days left)"
                for i, slot in enumerate(slots)
            ]
            return "📋 **Active Slots**\n" + "\n".join(lines)

        if kind == "points":
            slots = await bot.slot_service.list_active(guild_id, limit=10, by_points=True)
            if not slots:
                return "📝 No slots with points found."
            lines = [
                f"{_rank(i)} {slot.user_tag} - **{slot.points}** points"
                for i, slot in enumerate(slots)
            ]
            return "🏆 **Points Leaderboard**\n" + "\n".join(lines)

        if kind == "activity":
            entries = await bot.activity_service.recent(guild_id, limit=10)
            if not entries:
                return "📝 No recent activity found."
            lines = [
                f"**{entry.action}** - <@{entry.user_id}> <t:{int(entry.created_at.timestamp())}:R>"
                for entry in entries
            ]
            return "📈 **Recent Activity**\n" + "\n".join(lines)

        raise CommandUsageError(f"Unknown stats type `{kind}`.")

    async def _slothelp(self, command: ParsedCommand, message: IncomingMessage) -> str:
        admin = [USAGE[cmd] for cmd in CommandType if cmd.admin_only]
        public = [USAGE[cmd] for cmd in CommandType if not cmd.admin_only]
        return (
            "🆘 **Slot System Help**\n"
            "**Admin commands**\n"
            + "\n".join(f"`{self.prefix}{usage}`" for usage in admin)
            + "\n**Everyone**\n"
            + "\n".join(f"`{self.prefix}{usage}`" for usage in public)
        )

    # Invitation points

    async def _invitepoints(self, command: ParsedCommand, message: IncomingMessage) -> str:
        user_id = self._user_arg(command) if command.args else message.author_id
        if user_id != message.author_id:
            if not await self.bot.platform.is_admin(message.guild_id, message.author_id):
                return "❌ You can only check your own points or be an admin."

        balance = await self.bot.invite_ledger.balance(user_id, message.guild_id)
        return (
            f"🎉 **Invitation points of <@{user_id}>**\n"
            f"Available points: **{balance.points}**\n"
            f"Total invites: **{balance.total_invites}**\n"
            f"Can redeem: **{balance.points}** day(s) of free slot. "
            f"Use `{self.prefix}redeemslot` to exchange them."
        )

    async def _redeemslot(self, command: ParsedCommand, message: IncomingMessage) -> str:
        self._require(command, 3)
        days = self._int_arg(command, 0, "days", 1, self.bot.config.bot.max_redeem_days)
        category = command.args[1]
        channel_name = " ".join(command.args[2:])

        result = await self.bot.redeem_slot(
            message.guild_id,
            message.author_id,
            message.author_tag,
            days,
            category,
            channel_name,
        )
        if result.already_active:
            return (
                "❌ You already have an active slot. "
                f"Ask an admin to remove it with `{self.prefix}removeslot`."
            )
        if result.insufficient_funds:
            return (
                f"❌ Insufficient points: need **{days}**, have **{result.debit.balance}** "
                f"(missing **{result.debit.shortfall}**). Invite friends to earn 1 point each!"
            )
        return (
            f"🎉 Slot redeemed for <@{message.author_id}>: {days} day(s), category "
            f"**{category}**, channel <#{result.issue.slot.channel_id}>. "
            f"{days} point(s) used, {result.debit.balance} left."
        )

    async def _inviteleaderboard(self, command: ParsedCommand, message: IncomingMessage) -> str:
        top = await self.bot.invite_ledger.top_n(
            message.guild_id, self.bot.config.bot.leaderboard_size
        )
        if not top:
            return (
                "📊 No invitations recorded yet! Invite friends and earn 1 point per person. "
                "1 point = 1 day of free slot."
            )
        lines = [
            f"{_rank(i)} <@{entry.user_id}> - **{entry.total_invites}** invites "
            f"(**{entry.points}** points)"
            for i, entry in enumerate(top)
        ]
        return "🏆 **Top Inviters**\n" + "\n".join(lines)

    async def _inviteinfo(self, command: ParsedCommand, message: IncomingMessage) -> str:
        return (
            "🎉 **Invitation Rewards**\n"
            "• Invite friends to the server and earn **1 point** per new member.\n"
            "• **1 point = 1 day** of free slot with 1 @here per day.\n"
            f"• `{self.prefix}invitepoints` shows your points, "
            f"`{self.prefix}redeemslot` exchanges them, "
            f"`{self.prefix}inviteleaderboard` shows the top inviters."
        )
