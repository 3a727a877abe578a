"""Main bot logic: mention tracking, penalties, slot grants and invites."""

import logging
from dataclasses import dataclass
from typing import Optional

from .command_router import CommandRouter
from .commands import CommandHandler
from .config import Config
from .orm.slot import Slot, is_vip_category
from .platform import IncomingMessage, MemberJoin, Platform
from .services import (
    ActivityAction,
    ActivityService,
    CommandUsageError,
    DebitResult,
    GuildConfigService,
    InvitePointLedger,
    IssueResult,
    PenaltyAction,
    PenaltyOutcome,
    PenaltyService,
    ProvisioningFailure,
    SlotService,
    StorageError,
    UsageLedger,
)
from .services.period_clock import MentionKind, PeriodClock, detect_mentions

logger = logging.getLogger(__name__)


@dataclass
class CleanupReport:
    """What best-effort cleanup managed to undo on the platform."""

    channel_deleted: bool = False
    role_removed: bool = False


@dataclass
class RedeemResult:
    """Outcome of a point redemption."""

    debit: Optional[DebitResult] = None
    issue: Optional[IssueResult] = None
    already_active: bool = False

    @property
    def ok(self) -> bool:
        return self.issue is not None and self.issue.ok

    @property
    def insufficient_funds(self) -> bool:
        return self.debit is not None and not self.debit.ok


class Bot:
    """Main bot orchestrator, independent of the chat platform."""

    def __init__(
        self,
        config: Config,
        platform: Platform,
        clock: Optional[PeriodClock] = None,
    ) -> None:
        self.config = config
        self.platform = platform
        self.clock = clock or PeriodClock()

        # Use database-backed services
        self.guild_configs = GuildConfigService(config.defaults)
        self.usage_ledger = UsageLedger(self.guild_configs, self.clock)
        self.penalty_service = PenaltyService()
        self.slot_service = SlotService()
        self.invite_ledger = InvitePointLedger()
        self.activity_service = ActivityService()

        # Command router for prefixed commands
        self.command_router = CommandRouter(config.discord.command_prefix)
        self.commands = CommandHandler(self)

        # Set by the platform adapter once connected
        self.bot_user_id: Optional[int] = None

    async def process_message(self, message: IncomingMessage) -> bool:
        """Process a single guild message.

        Returns:
            True if the message was a command or carried a tracked mention.
        """
        if message.is_bot:
            return False

        parsed_command = self.command_router.parse_command(message.content, self.bot_user_id)
        if parsed_command:
            logger.info(
                "Command %s%s from %s in guild %s",
                self.command_router.prefix,
                parsed_command.command_type.value,
                message.author_tag,
                message.guild_id,
            )
            await self.commands.dispatch(parsed_command, message)
            return True

        kinds = detect_mentions(message.content)
        if not kinds:
            return False

        try:
            return await self.track_mentions(message, kinds)
        except Exception as e:
            logger.error(
                "Error tracking mentions from %s in guild %s: %s",
                message.author_tag,
                message.guild_id,
                e,
                exc_info=True,
            )
            return False

    async def track_mentions(self, message: IncomingMessage, kinds: list[MentionKind]) -> bool:
        """Count broadcast mentions of a slot holder and punish breaches.

        Returns:
            False if the author holds no active slot.
        """
        slot = await self.slot_service.lookup_active(message.author_id, message.guild_id)
        if slot is None:
            logger.debug("User %s has no active slot, ignoring mention", message.author_tag)
            return False

        logger.info(
            "Mention %s from slot holder %s",
            "/".join(kind.marker for kind in kinds),
            message.author_tag,
        )

        if not slot.is_vip and MentionKind.EVERYONE in kinds:
            config = await self.guild_configs.get(message.guild_id)
            await self.send_notice(
                message.channel_id,
                f"🚫 <@{message.author_id}>, free slots cannot use @everyone! "
                f"Allowed: @here {config.max_here_per_day}/day.",
            )
            return True

        for kind in kinds:
            usage = await self.usage_ledger.record_usage(
                message.author_id, message.guild_id, kind, slot.is_vip
            )
            status = "⚠️ LIMIT EXCEEDED" if usage.breached else "USE MM TO BE SURE"
            await self.send_notice(
                message.channel_id,
                f"• **{usage.count}/{usage.limit}** {kind.marker} | {status}",
            )
            if usage.breached:
                outcome = await self.handle_infraction(
                    slot, message.channel_id, f"excessive {kind.marker} usage"
                )
                if outcome.action is PenaltyAction.REVOKED:
                    break
        return True

    async def handle_infraction(
        self, slot: Slot, notice_channel_id: int, reason: str
    ) -> PenaltyOutcome:
        """Warn the holder, or revoke the slot once the threshold is reached."""
        outcome = await self.penalty_service.apply_infraction(slot.user_id, slot.guild_id)
        threshold = self.penalty_service.threshold
        await self.activity_service.record(
            slot.guild_id,
            slot.user_id,
            ActivityAction.WARNING_ISSUED,
            f"Warning {outcome.warning_count}/{threshold}: {reason}",
        )

        if outcome.action is PenaltyAction.REVOKED:
            await self.revoke_slot(slot, f"Auto-revoked: {reason}")
            await self.activity_service.record(
                slot.guild_id,
                slot.user_id,
                ActivityAction.SLOT_REVOKED,
                f"{reason} after {outcome.warning_count} warnings",
            )
            await self.send_notice(
                notice_channel_id,
                f"🚫 <@{slot.user_id}>, your **slot has been revoked** due to {reason} "
                f"after **{outcome.warning_count} warnings**.",
            )
            await self.notify_logs(
                slot.guild_id,
                f"🚫 Slot of {slot.user_tag} revoked: {reason} "
                f"({outcome.warning_count} warnings).",
            )
        else:
            await self.send_notice(
                notice_channel_id,
                f"⚠️ Warning **{outcome.warning_count}/{threshold}** issued to "
                f"<@{slot.user_id}> for {reason}. "
                "Next warning will result in **slot revocation**.",
            )
        return outcome

    async def revoke_slot(self, slot: Slot, reason: str) -> CleanupReport:
        """Remove a slot: platform cleanup first (best effort), then the row."""
        report = await self._cleanup_platform(
            slot.guild_id, slot.user_id, slot.channel_id, slot.role_id, reason
        )
        await self.slot_service.revoke(slot.user_id, slot.guild_id)
        if self.config.bot.reset_warnings_on_revoke:
            await self.penalty_service.reset(slot.user_id, slot.guild_id)
        logger.info("Revoked slot of %s in guild %s: %s", slot.user_tag, slot.guild_id, reason)
        return report

    async def remove_slot(
        self, guild_id: int, user_id: int, actor_tag: str
    ) -> Optional[CleanupReport]:
        """Admin removal. Returns None if the user has no active slot."""
        slot = await self.slot_service.lookup_active(user_id, guild_id)
        if slot is None:
            return None

        report = await self.revoke_slot(slot, f"Slot removed by {actor_tag}")
        await self.activity_service.record(
            guild_id, user_id, ActivityAction.SLOT_REMOVED, f"Removed by {actor_tag}"
        )
        await self.notify_logs(guild_id, f"🗑️ Slot of {slot.user_tag} removed by {actor_tag}.")
        return report

    async def issue_slot(
        self,
        guild_id: int,
        user_id: int,
        user_tag: str,
        duration_days: int,
        category: str,
        channel_name: str,
        action: ActivityAction,
        actor_tag: str,
    ) -> IssueResult:
        """Provision the role and channel, then store the slot.

        Anything already created on the platform is undone if a later step
        fails, and the failure is re-raised.
        """
        config = await self.guild_configs.get(guild_id)
        if await self.slot_service.lookup_active(user_id, guild_id) is not None:
            return IssueResult(already_active=True)

        vip = is_vip_category(category)
        reason = f"Slot granted to {user_tag} by {actor_tag}"
        role_id: Optional[int] = None
        granted_role: Optional[int] = None
        channel_id: Optional[int] = None
        try:
            if config.auto_role:
                role_id = await self.platform.create_role(
                    guild_id, config.slot_role_name, config.slot_role_color
                )
                await self.platform.add_role(guild_id, user_id, role_id, reason)
                granted_role = role_id
            channel_id = await self.platform.create_channel(
                guild_id, user_id, channel_name, vip=vip, role_id=role_id, reason=reason
            )
            result = await self.slot_service.issue(
                user_id,
                guild_id,
                user_tag,
                duration_days,
                category,
                channel_id=channel_id,
                role_id=role_id,
            )
        except Exception:
            await self._cleanup_platform(
                guild_id, user_id, channel_id, granted_role, "Slot creation failed"
            )
            raise

        if not result.ok:
            await self._cleanup_platform(
                guild_id, user_id, channel_id, granted_role, "Slot already active"
            )
            return result

        await self.activity_service.record(
            guild_id,
            user_id,
            action,
            f"Duration: {duration_days} days, Category: {category}",
        )
        await self.send_notice(channel_id, self._welcome_text(result.slot, config))
        await self.notify_logs(
            guild_id,
            f"📈 {action.value}: {user_tag} for {duration_days} day(s), "
            f"category {category}, channel <#{channel_id}> (by {actor_tag}).",
        )
        return result

    async def redeem_slot(
        self,
        guild_id: int,
        user_id: int,
        user_tag: str,
        days: int,
        category: str,
        channel_name: str,
    ) -> RedeemResult:
        """Spend ``days`` invite points on a slot of ``days`` days.

        Redeemed slots are always free slots, so VIP categories are refused.
        Points are debited first and refunded if the slot cannot be issued.
        """
        if is_vip_category(category):
            raise CommandUsageError("Redeemed slots are free slots; pick a non-VIP category.")
        if await self.slot_service.lookup_active(user_id, guild_id) is not None:
            return RedeemResult(already_active=True)

        debit = await self.invite_ledger.debit(user_id, guild_id, days)
        if not debit.ok:
            return RedeemResult(debit=debit)

        try:
            issue = await self.issue_slot(
                guild_id,
                user_id,
                user_tag,
                days,
                category,
                channel_name,
                ActivityAction.SLOT_REDEEMED,
                user_tag,
            )
        except Exception:
            await self._refund(user_id, guild_id, days)
            raise

        if not issue.ok:
            await self._refund(user_id, guild_id, days)
            return RedeemResult(debit=debit, issue=issue, already_active=True)

        return RedeemResult(debit=debit, issue=issue)

    async def process_member_join(self, join: MemberJoin) -> bool:
        """Credit the inviter of a new member.

        Returns:
            True if a point was credited.
        """
        if join.is_bot or join.inviter_id is None or join.inviter_id == join.user_id:
            logger.debug("No creditable inviter for %s in guild %s", join.user_tag, join.guild_id)
            return False

        try:
            balance = await self.invite_ledger.credit(join.inviter_id, join.guild_id)
        except StorageError as e:
            logger.error("Failed to credit invite for %s: %s", join.user_tag, e, exc_info=True)
            return False

        await self.activity_service.record(
            join.guild_id,
            join.inviter_id,
            ActivityAction.INVITE_CREDITED,
            f"Invited {join.user_tag}",
        )
        await self.notify_logs(
            join.guild_id,
            f"🆕 {join.user_tag} joined with an invite from <@{join.inviter_id}> "
            f"({balance.total_invites} invites, {balance.points} points).",
        )
        return True

    async def notify_logs(self, guild_id: int, content: str) -> None:
        """Post to the guild's configured logs channel, if any."""
        try:
            config = await self.guild_configs.get(guild_id)
        except StorageError as e:
            logger.warning("Could not load config for logs notice in %s: %s", guild_id, e)
            return
        if config.logs_channel_id:
            await self.send_notice(config.logs_channel_id, content)

    async def send_notice(self, channel_id: Optional[int], content: str) -> None:
        """Fire-and-forget delivery; failures are only logged."""
        if channel_id is None:
            return
        try:
            await self.platform.notify(channel_id, content)
        except Exception as e:
            logger.warning("Failed to send message to channel %s: %s", channel_id, e)

    async def _cleanup_platform(
        self,
        guild_id: int,
        user_id: int,
        channel_id: Optional[int],
        role_id: Optional[int],
        reason: str,
    ) -> CleanupReport:
        report = CleanupReport()
        if channel_id is not None:
            try:
                await self.platform.delete_channel(channel_id, reason)
                report.channel_deleted = True
            except ProvisioningFailure as e:
                logger.warning("Failed to delete channel %s: %s", channel_id, e)
        if role_id is not None:
            try:
                await self.platform.remove_role(guild_id, user_id, role_id, reason)
                report.role_removed = True
            except ProvisioningFailure as e:
                logger.warning("Failed to remove role %s from %s: %s", role_id, user_id, e)
        return report

    async def _refund(self, user_id: int, guild_id: int, amount: int) -> None:
        try:
            await self.invite_ledger.refund(user_id, guild_id, amount)
        except StorageError as e:
            logger.critical(
                "Could not refund %d point(s) to %s in guild %s: %s",
                amount,
                user_id,
                guild_id,
                e,
                exc_info=True,
            )

    @staticmethod
    def _welcome_text(slot: Slot, config) -> str:
        if slot.is_vip:
            limits = (
                f"{config.vip_everyone_per_week} @everyone per week and "
                f"{config.vip_here_per_day} @here per day"
            )
        else:
            limits = f"{config.max_here_per_day} @here per day"
        return (
            f"🎉 Welcome to your slot, <@{slot.user_id}>! "
            f"It lasts {slot.duration} day(s) and allows {limits}. "
            "Going over the limit earns a warning; the second warning revokes the slot."
        )
