"""Tests for CommandRouter."""

from slotbot.command_router import (
    ADMIN_COMMANDS,
    CommandRouter,
    CommandType,
    parse_channel_id,
    parse_user_id,
)


class TestCommandRouter:
    """Test command router functionality."""

    def setup_method(self):
        """Set up test fixtures."""
        self.router = CommandRouter()
        self.bot_id = 999

    def test_parse_freeslot_command(self):
        """Test parsing !freeslot with all arguments."""
        text = '!freeslot <@42> 7 "Gaming Accounts" my shop'
        cmd = self.router.parse_command(text, self.bot_id)

        assert cmd is not None
        assert cmd.command_type == CommandType.FREESLOT
        assert cmd.arguments == '<@42> 7 "Gaming Accounts" my shop'
        assert cmd.args == ["<@42>", "7", "Gaming Accounts", "my", "shop"]
        assert cmd.raw_text == text

    def test_parse_command_after_bot_mention(self):
        """Test parsing a command addressed to the bot."""
        text = "<@999> !slotinfo <@42>"
        cmd = self.router.parse_command(text, self.bot_id)

        assert cmd is not None
        assert cmd.command_type == CommandType.SLOTINFO
        assert cmd.args == ["<@42>"]

    def test_parse_command_after_nickname_mention(self):
        cmd = self.router.parse_command("<@!999> !inviteinfo", self.bot_id)

        assert cmd is not None
        assert cmd.command_type == CommandType.INVITEINFO

    def test_parse_command_without_arguments(self):
        """Test parsing command without arguments."""
        cmd = self.router.parse_command("!slothelp", self.bot_id)

        assert cmd is not None
        assert cmd.command_type == CommandType.SLOTHELP
        assert cmd.arguments == ""
        assert cmd.args == []

    def test_parse_command_case_insensitive(self):
        """Test that command parsing is case insensitive."""
        cmd = self.router.parse_command("!HEREUSED <@42>", self.bot_id)

        assert cmd is not None
        assert cmd.command_type == CommandType.HEREUSED
        assert cmd.args == ["<@42>"]

    def test_parse_invalid_command(self):
        """Test parsing invalid command returns None."""
        assert self.router.parse_command("!invalidcommand do something", self.bot_id) is None

    def test_command_name_must_end_at_word_boundary(self):
        assert self.router.parse_command("!warnings <@42>", self.bot_id) is None

    def test_parse_non_command_text(self):
        """Test parsing non-command text returns None."""
        assert self.router.parse_command("@here new stock today!", self.bot_id) is None

    def test_command_must_start_the_message(self):
        assert self.router.parse_command("please run !slothelp", self.bot_id) is None

    def test_parse_command_with_extra_spaces(self):
        """Test parsing command with extra whitespace."""
        cmd = self.router.parse_command("!warn   <@42>   spam", self.bot_id)

        assert cmd is not None
        assert cmd.arguments == "<@42>   spam"  # Preserves internal spaces
        assert cmd.args == ["<@42>", "spam"]

    def test_unbalanced_quotes_fall_back_to_whitespace_split(self):
        cmd = self.router.parse_command('!redeemslot 3 "Shop my-shop', self.bot_id)

        assert cmd is not None
        assert cmd.args == ["3", '"Shop', "my-shop"]

    def test_custom_prefix(self):
        router = CommandRouter(prefix="?")

        assert router.parse_command("?slotstats points").args == ["points"]
        assert router.parse_command("!slotstats points") is None

    def test_is_command_returns_true(self):
        """Test is_command helper method returns True for valid commands."""
        assert self.router.is_command("!invitepoints", self.bot_id) is True

    def test_is_command_returns_false(self):
        """Test is_command helper method returns False for non-commands."""
        assert self.router.is_command("hello there", self.bot_id) is False

    def test_parse_empty_text(self):
        """Test parsing empty text returns None."""
        assert self.router.parse_command("", self.bot_id) is None

    def test_parse_none_text(self):
        """Test parsing None text returns None."""
        assert self.router.parse_command(None, self.bot_id) is None


class TestCommandTypes:
    def test_admin_commands(self):
        assert CommandType.FREESLOT.admin_only
        assert CommandType.SLOTCONFIG.admin_only
        assert not CommandType.REDEEMSLOT.admin_only
        assert not CommandType.INVITEPOINTS.admin_only
        assert len(ADMIN_COMMANDS) == 9

    def test_every_command_is_routable(self):
        router = CommandRouter()
        for command_type in CommandType:
            cmd = router.parse_command(f"!{command_type.value}")
            assert cmd is not None
            assert cmd.command_type == command_type


class TestIdParsing:
    def test_parse_user_id(self):
        assert parse_user_id("<@42>") == 42
        assert parse_user_id("<@!42>") == 42
        assert parse_user_id("42") == 42
        assert parse_user_id("<#42>") is None
        assert parse_user_id("someone") is None

    def test_parse_channel_id(self):
        assert parse_channel_id("<#77>") == 77
        assert parse_channel_id("77") == 77
        assert parse_channel_id("<@77>") is None
