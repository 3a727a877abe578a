"""Exceptions raised by the slot services."""


class SlotBotError(Exception):
    """Base exception for slotbot."""

    pass


class StorageError(SlotBotError):
    """A persistence call failed or timed out."""

    pass


class ProvisioningFailure(SlotBotError):
    """A channel or role operation on the chat platform failed."""

    pass


class CommandUsageError(SlotBotError):
    """A command was invoked with missing or invalid arguments."""

    pass
