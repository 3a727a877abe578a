"""Command router for parsing and routing prefixed text commands."""

import re
import shlex
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class CommandType(Enum):
    """Available command types."""

    FREESLOT = "freeslot"
    VIPSLOT = "vipslot"
    SLOTINFO = "slotinfo"
    REMOVESLOT = "removeslot"
    ADDHERE = "addhere"
    ADDEVERYONE = "addeveryone"
    WARN = "warn"
    HEREUSED = "hereused"
    SLOTCONFIG = "slotconfig"
    SLOTSTATS = "slotstats"
    GIVEPOINTS = "givepoints"
    SLOTHELP = "slothelp"
    INVITEPOINTS = "invitepoints"
    REDEEMSLOT = "redeemslot"
    INVITELEADERBOARD = "inviteleaderboard"
    INVITEINFO = "inviteinfo"

    @property
    def admin_only(self) -> bool:
        return self in ADMIN_COMMANDS


ADMIN_COMMANDS = frozenset(
    {
        CommandType.FREESLOT,
        CommandType.VIPSLOT,
        CommandType.REMOVESLOT,
        CommandType.ADDHERE,
        CommandType.ADDEVERYONE,
        CommandType.WARN,
        CommandType.HEREUSED,
        CommandType.SLOTCONFIG,
        CommandType.GIVEPOINTS,
    }
)

USER_MENTION_PATTERN = re.compile(r"^<@!?(\d+)>$")
CHANNEL_MENTION_PATTERN = re.compile(r"^<#(\d+)>$")


@dataclass
class ParsedCommand:
    """Parsed command with its arguments."""

    command_type: CommandType
    arguments: str
    raw_text: str
    args: list[str] = field(default_factory=list)


def parse_user_id(token: str) -> Optional[int]:
    """Extract a user id from ``<@123>``, ``<@!123>`` or a bare id."""
    match = USER_MENTION_PATTERN.match(token)
    if match:
        return int(match.group(1))
    if token.isdigit():
        return int(token)
    return None


def parse_channel_id(token: str) -> Optional[int]:
    """Extract a channel id from ``<#123>`` or a bare id."""
    match = CHANNEL_MENTION_PATTERN.match(token)
    if match:
        return int(match.group(1))
    if token.isdigit():
        return int(token)
    return None


class CommandRouter:
    """Parse and route prefixed commands from guild messages."""

    def __init__(self, prefix: str = "!"):
        """Initialize the command router."""
        self.prefix = prefix
        # Build regex pattern from available commands
        command_names = "|".join(cmd.value for cmd in CommandType)
        # Match: !command followed by optional whitespace and arguments
        self.command_pattern = re.compile(
            rf"{re.escape(prefix)}({command_names})(?:\s+(.*))?$",
            re.IGNORECASE | re.DOTALL,
        )

    def parse_command(self, text: str, bot_id: Optional[int] = None) -> Optional[ParsedCommand]:
        """
        Extract a command from message text.

        Args:
            text: The full text of the message.
            bot_id: The bot's user id (to strip a leading @mention).

        Returns:
            ParsedCommand if valid command found, else None.

        Examples:
            >>> router = CommandRouter()
            >>> cmd = router.parse_command("!warn <@42>")
            >>> cmd.command_type == CommandType.WARN
            True
            >>> cmd.args
            ['<@42>']
        """
        if not text:
            return None

        cleaned_text = self._strip_bot_mention(text, bot_id)

        # Try to match command pattern
        match = self.command_pattern.match(cleaned_text.strip())
        if not match:
            return None

        command_name = match.group(1).lower()
        arguments = match.group(2) or ""
        arguments = arguments.strip()

        try:
            command_type = CommandType(command_name)
        except ValueError:
            return None

        return ParsedCommand(
            command_type=command_type,
            arguments=arguments,
            raw_text=text,
            args=self._split_arguments(arguments),
        )

    def is_command(self, text: str, bot_id: Optional[int] = None) -> bool:
        """
        Quick check if text contains a command.

        Args:
            text: The text to check.
            bot_id: The bot's user id.

        Returns:
            True if text contains a valid command, else False.
        """
        return self.parse_command(text, bot_id) is not None

    @staticmethod
    def _split_arguments(arguments: str) -> list[str]:
        """Split on whitespace, keeping quoted phrases together."""
        try:
            return shlex.split(arguments)
        except ValueError:
            # Unbalanced quotes
            return arguments.split()

    @staticmethod
    def _strip_bot_mention(text: str, bot_id: Optional[int]) -> str:
        """
        Remove a leading bot mention (``<@id>`` or ``<@!id>``) from text.

        Args:
            text: The text containing potential @mention.
            bot_id: The bot's user id.

        Returns:
            Text with bot mention removed.
        """
        if bot_id is None:
            return text
        return re.sub(rf"^\s*<@!?{bot_id}>\s*", "", text)
