"""Tests for the Bot orchestration flows."""

import pytest
from conftest import ADMIN_ID, GUILD_ID, LOGS_CHANNEL_ID, FakePlatform, FixedClock, make_config

from slotbot.bot import Bot
from slotbot.orm.base import utcnow
from slotbot.platform import IncomingMessage, MemberJoin
from slotbot.services import (
    ActivityAction,
    ConfigField,
    CommandUsageError,
    PenaltyAction,
    ProvisioningFailure,
    StorageError,
)
from slotbot.services.period_clock import MentionKind

pytestmark = pytest.mark.usefixtures("db")

HOLDER_ID = 42
CHANNEL_ID = 700


def post(content: str, author_id: int = HOLDER_ID, channel_id: int = CHANNEL_ID) -> IncomingMessage:
    return IncomingMessage(
        guild_id=GUILD_ID,
        channel_id=channel_id,
        author_id=author_id,
        author_tag=f"user{author_id}",
        content=content,
    )


class BotTestCase:
    config_settings: dict = {}

    def setup_method(self):
        self.platform = FakePlatform()
        self.clock = FixedClock(utcnow())
        self.bot = Bot(make_config(**self.config_settings), self.platform, self.clock)

    async def grant(self, category="Gaming", vip=False, user_id=HOLDER_ID):
        action = ActivityAction.VIP_SLOT_CREATED if vip else ActivityAction.FREE_SLOT_CREATED
        return await self.bot.issue_slot(
            GUILD_ID, user_id, f"user{user_id}", 7, category, "my shop", action, "admin"
        )


class TestIssueSlot(BotTestCase):
    async def test_issue_provisions_role_and_channel(self):
        result = await self.grant()

        assert result.ok
        slot = result.slot
        assert slot.channel_id in self.platform.channels
        assert slot.role_id == self.platform.roles["VIP Slot"]
        assert (HOLDER_ID, slot.role_id) in self.platform.member_roles
        assert any("Welcome" in text for text in self.platform.texts(slot.channel_id))

    async def test_issue_without_auto_role(self):
        await self.bot.guild_configs.update(GUILD_ID, ConfigField.AUTO_ROLE, False)

        result = await self.grant()

        assert result.ok
        assert result.slot.role_id is None
        assert self.platform.roles == {}

    async def test_already_active_provisions_nothing(self):
        await self.grant()
        channels = dict(self.platform.channels)

        result = await self.grant(category="Other")

        assert result.already_active
        assert self.platform.channels == channels

    async def test_channel_failure_rolls_back_role(self):
        self.platform.fail_on.add("create_channel")

        with pytest.raises(ProvisioningFailure):
            await self.grant()

        assert self.platform.member_roles == set()
        assert await self.bot.slot_service.lookup_active(HOLDER_ID, GUILD_ID) is None

    async def test_storage_failure_rolls_back_channel_and_role(self, monkeypatch):
        async def broken_issue(*args, **kwargs):
            raise StorageError("disk full")

        monkeypatch.setattr(self.bot.slot_service, "issue", broken_issue)

        with pytest.raises(StorageError):
            await self.grant()

        assert self.platform.channels == {}
        assert len(self.platform.deleted_channels) == 1
        assert self.platform.member_roles == set()

    async def test_issue_is_logged(self):
        await self.bot.guild_configs.update(GUILD_ID, ConfigField.LOGS_CHANNEL, LOGS_CHANNEL_ID)

        await self.grant(category="VIP Gaming", vip=True)

        entries = await self.bot.activity_service.recent(GUILD_ID)
        assert [e.action for e in entries] == ["VIP_SLOT_CREATED"]
        assert len(self.platform.texts(LOGS_CHANNEL_ID)) == 1

    async def test_channel_placement_follows_category(self):
        free = (await self.grant()).slot
        vip = (await self.grant(category="VIP Gaming", user_id=43)).slot

        assert free.channel_id not in self.platform.vip_channels
        assert vip.is_vip
        assert vip.channel_id in self.platform.vip_channels


class TestMentionTracking(BotTestCase):
    async def test_here_scenario_through_revocation(self):
        await self.bot.guild_configs.update(GUILD_ID, ConfigField.LOGS_CHANNEL, LOGS_CHANNEL_ID)
        slot = (await self.grant()).slot

        # Within the limit: counted, no warning
        assert await self.bot.process_message(post("@here restock"))
        assert "**1/1** @here" in self.platform.texts(CHANNEL_ID)[-1]
        assert await self.bot.penalty_service.get_warning_count(HOLDER_ID, GUILD_ID) == 0

        # First breach: warning 1
        await self.bot.process_message(post("@here again"))
        notices = self.platform.texts(CHANNEL_ID)
        assert "LIMIT EXCEEDED" in notices[-2]
        assert "Warning **1/2**" in notices[-1]
        assert await self.bot.slot_service.lookup_active(HOLDER_ID, GUILD_ID) is not None

        # Second breach: revoked with cleanup
        await self.bot.process_message(post("@here once more"))
        assert "slot has been revoked" in self.platform.texts(CHANNEL_ID)[-1]
        assert await self.bot.slot_service.lookup_active(HOLDER_ID, GUILD_ID) is None
        assert slot.channel_id in self.platform.deleted_channels
        assert (HOLDER_ID, slot.role_id) not in self.platform.member_roles
        assert any("revoked" in text for text in self.platform.texts(LOGS_CHANNEL_ID))

        actions = [e.action for e in await self.bot.activity_service.recent(GUILD_ID)]
        assert actions.count("WARNING_ISSUED") == 2
        assert "SLOT_REVOKED" in actions

        # No slot any more: mentions are ignored
        sent = len(self.platform.messages)
        assert not await self.bot.process_message(post("@here"))
        assert len(self.platform.messages) == sent

    async def test_mentions_without_slot_are_ignored(self):
        assert not await self.bot.process_message(post("@here hello"))
        assert self.platform.messages == []

    async def test_plain_message_is_ignored(self):
        await self.grant()
        sent = len(self.platform.messages)

        assert not await self.bot.process_message(post("nothing to see"))
        assert len(self.platform.messages) == sent

    async def test_bot_messages_are_ignored(self):
        await self.grant()
        message = post("@here")
        message.is_bot = True

        assert not await self.bot.process_message(message)
        assert await self.bot.usage_ledger.get_usage(HOLDER_ID, GUILD_ID, MentionKind.HERE) == 0

    async def test_free_slot_everyone_is_refused_and_not_counted(self):
        await self.grant()

        await self.bot.process_message(post("@everyone @here sale"))

        assert "cannot use @everyone" in self.platform.texts(CHANNEL_ID)[-1]
        assert await self.bot.usage_ledger.get_usage(HOLDER_ID, GUILD_ID, MentionKind.HERE) == 0
        assert await self.bot.usage_ledger.get_usage(HOLDER_ID, GUILD_ID, MentionKind.EVERYONE) == 0
        assert await self.bot.penalty_service.get_warning_count(HOLDER_ID, GUILD_ID) == 0

    async def test_vip_counts_everyone_then_here(self):
        await self.grant(category="VIP Gaming", vip=True)

        await self.bot.process_message(post("@here @everyone sale"))

        notices = self.platform.texts(CHANNEL_ID)
        assert "@everyone" in notices[-2]
        assert "@here" in notices[-1]
        assert await self.bot.usage_ledger.get_usage(HOLDER_ID, GUILD_ID, MentionKind.EVERYONE) == 1
        assert await self.bot.usage_ledger.get_usage(HOLDER_ID, GUILD_ID, MentionKind.HERE) == 1

    async def test_each_breached_kind_is_one_infraction(self):
        await self.grant(category="VIP Gaming", vip=True)
        await self.bot.process_message(post("@everyone"))
        await self.bot.process_message(post("@here"))
        await self.bot.process_message(post("@here"))

        # @everyone breach warns, the @here breach in the same message revokes
        await self.bot.process_message(post("@everyone @here"))

        assert await self.bot.penalty_service.get_warning_count(HOLDER_ID, GUILD_ID) == 2
        assert await self.bot.usage_ledger.get_usage(HOLDER_ID, GUILD_ID, MentionKind.HERE) == 3
        assert await self.bot.slot_service.lookup_active(HOLDER_ID, GUILD_ID) is None

    async def test_new_day_restores_quota(self):
        await self.grant()
        await self.bot.process_message(post("@here"))

        self.clock.set(self.clock.next_day_boundary())
        await self.bot.process_message(post("@here"))

        assert await self.bot.penalty_service.get_warning_count(HOLDER_ID, GUILD_ID) == 0

    async def test_storage_failure_is_isolated(self, monkeypatch):
        async def broken_lookup(*args, **kwargs):
            raise StorageError("timed out")

        monkeypatch.setattr(self.bot.slot_service, "lookup_active", broken_lookup)

        assert not await self.bot.process_message(post("@here"))

    async def test_notify_failure_does_not_stop_tracking(self):
        await self.grant()
        self.platform.fail_on.add("notify")

        await self.bot.process_message(post("@here"))
        await self.bot.process_message(post("@here"))

        assert await self.bot.penalty_service.get_warning_count(HOLDER_ID, GUILD_ID) == 1


class TestRevocationCleanup(BotTestCase):
    async def test_cleanup_failure_still_removes_slot(self):
        slot = (await self.grant()).slot
        self.platform.fail_on.update({"delete_channel", "remove_role"})

        report = await self.bot.revoke_slot(slot, "test")

        assert not report.channel_deleted
        assert not report.role_removed
        assert await self.bot.slot_service.lookup_active(HOLDER_ID, GUILD_ID) is None

    async def test_warnings_survive_revocation_by_default(self):
        slot = (await self.grant()).slot
        outcome = await self.bot.handle_infraction(slot, CHANNEL_ID, "spam")
        assert outcome.action is PenaltyAction.WARNED

        await self.bot.remove_slot(GUILD_ID, HOLDER_ID, "admin")
        slot = (await self.grant()).slot
        outcome = await self.bot.handle_infraction(slot, CHANNEL_ID, "spam")

        assert outcome.action is PenaltyAction.REVOKED

    async def test_remove_slot_without_slot(self):
        assert await self.bot.remove_slot(GUILD_ID, HOLDER_ID, "admin") is None


class TestResetWarningsOnRevoke(BotTestCase):
    config_settings = {"reset_warnings_on_revoke": True}

    async def test_revocation_clears_warnings(self):
        slot = (await self.grant()).slot
        await self.bot.handle_infraction(slot, CHANNEL_ID, "spam")

        await self.bot.remove_slot(GUILD_ID, HOLDER_ID, "admin")

        assert await self.bot.penalty_service.get_warning_count(HOLDER_ID, GUILD_ID) == 0


class TestRedeemSlot(BotTestCase):
    async def credit(self, points: int):
        for _ in range(points):
            await self.bot.invite_ledger.credit(HOLDER_ID, GUILD_ID)

    async def redeem(self, days: int, category: str = "Gaming"):
        return await self.bot.redeem_slot(GUILD_ID, HOLDER_ID, "holder", days, category, "shop")

    async def test_insufficient_points(self):
        await self.credit(3)

        result = await self.redeem(5)

        assert not result.ok
        assert result.insufficient_funds
        assert result.debit.shortfall == 2
        assert (await self.bot.invite_ledger.balance(HOLDER_ID, GUILD_ID)).points == 3
        assert self.platform.channels == {}

    async def test_successful_redemption(self):
        await self.credit(3)

        result = await self.redeem(3)

        assert result.ok
        assert result.debit.balance == 0
        slot = await self.bot.slot_service.lookup_active(HOLDER_ID, GUILD_ID)
        assert slot.duration == 3
        assert slot.role_id is not None
        actions = [e.action for e in await self.bot.activity_service.recent(GUILD_ID)]
        assert actions == ["SLOT_REDEEMED"]

    async def test_provisioning_failure_refunds_points(self):
        await self.credit(3)
        self.platform.fail_on.add("create_channel")

        with pytest.raises(ProvisioningFailure):
            await self.redeem(3)

        assert (await self.bot.invite_ledger.balance(HOLDER_ID, GUILD_ID)).points == 3
        assert await self.bot.slot_service.lookup_active(HOLDER_ID, GUILD_ID) is None

    async def test_active_slot_is_rejected_before_debit(self):
        await self.credit(3)
        await self.grant()

        result = await self.redeem(2)

        assert result.already_active
        assert result.debit is None
        assert (await self.bot.invite_ledger.balance(HOLDER_ID, GUILD_ID)).points == 3

    @pytest.mark.parametrize("category", ["VIP", "vip gaming", "💎 Deals"])
    async def test_vip_category_is_refused(self, category):
        await self.credit(2)

        with pytest.raises(CommandUsageError):
            await self.redeem(2, category)

        assert (await self.bot.invite_ledger.balance(HOLDER_ID, GUILD_ID)).points == 2
        assert await self.bot.slot_service.lookup_active(HOLDER_ID, GUILD_ID) is None
        assert self.platform.channels == {}

    async def test_redeemed_slot_cannot_use_everyone(self):
        await self.credit(2)
        await self.redeem(2)

        await self.bot.process_message(post("@everyone buy now"))

        assert await self.bot.usage_ledger.get_usage(HOLDER_ID, GUILD_ID, MentionKind.EVERYONE) == 0
        assert any("@everyone" in text and "free" in text.lower() for text in self.platform.texts())


class TestMemberJoin(BotTestCase):
    async def test_inviter_is_credited(self):
        await self.bot.guild_configs.update(GUILD_ID, ConfigField.LOGS_CHANNEL, LOGS_CHANNEL_ID)

        credited = await self.bot.process_member_join(
            MemberJoin(GUILD_ID, user_id=50, user_tag="newbie", inviter_id=HOLDER_ID)
        )

        assert credited
        balance = await self.bot.invite_ledger.balance(HOLDER_ID, GUILD_ID)
        assert (balance.points, balance.total_invites) == (1, 1)
        assert "newbie" in self.platform.texts(LOGS_CHANNEL_ID)[-1]
        entries = await self.bot.activity_service.recent(GUILD_ID)
        assert entries[0].action == "INVITE_CREDITED"

    @pytest.mark.parametrize(
        "join",
        [
            MemberJoin(GUILD_ID, user_id=50, user_tag="bot", is_bot=True, inviter_id=HOLDER_ID),
            MemberJoin(GUILD_ID, user_id=HOLDER_ID, user_tag="self", inviter_id=HOLDER_ID),
            MemberJoin(GUILD_ID, user_id=50, user_tag="unknown", inviter_id=None),
        ],
    )
    async def test_uncreditable_joins(self, join):
        assert not await self.bot.process_member_join(join)
        assert (await self.bot.invite_ledger.balance(HOLDER_ID, GUILD_ID)).points == 0


class TestCommandDispatch(BotTestCase):
    async def test_public_command(self):
        assert await self.bot.process_message(post("!inviteinfo"))
        assert "Invitation Rewards" in self.platform.texts(CHANNEL_ID)[-1]

    async def test_admin_command_requires_admin(self):
        await self.bot.process_message(post("!freeslot <@50> 7 Gaming shop"))

        assert "permission" in self.platform.texts(CHANNEL_ID)[-1]
        assert await self.bot.slot_service.lookup_active(50, GUILD_ID) is None

    async def test_admin_command(self):
        await self.bot.process_message(post("!freeslot <@50> 7 Gaming shop", author_id=ADMIN_ID))

        assert "Slot created" in self.platform.texts(CHANNEL_ID)[-1]
        assert await self.bot.slot_service.lookup_active(50, GUILD_ID) is not None
