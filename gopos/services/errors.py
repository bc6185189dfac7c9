from typing import Optional


class BotError(Exception):
    """Base class for failures raised by the bot core and its adapters."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        self.message = message
        self.cause = cause
        super().__init__(message)


class StoreError(BotError):
    """A note or history repository could not read or write."""


class RemoteServiceError(BotError):
    """The completion service failed or returned no content."""


class DeliveryError(BotError):
    """The WhatsApp gateway refused or failed to deliver a message."""


class ConfigurationError(BotError):
    """Unknown provider/backend name or missing required setting."""
