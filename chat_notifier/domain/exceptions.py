"""Error taxonomy shared by the delivery engine."""

from __future__ import annotations


class NotificationError(Exception):
    """Base class for every error raised by the delivery engine."""


class ValidationError(NotificationError, ValueError):
    """Malformed input rejected before anything is enqueued."""


class NotFoundError(NotificationError, LookupError):
    """A notification, recipient or workspace id is unknown."""


class InvalidTransitionError(NotificationError):
    """A terminal notification record was asked to change state."""


class ChannelError(NotificationError):
    """Classified failure of an outbound channel call.

    ``terminal`` errors must not be retried for the same record; the others
    go through the record's retry schedule.
    """

    terminal = False
    code = "channel_error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.code)


class RateLimitedError(ChannelError):
    """The platform (or our own tracker) asked us to slow down."""

    code = "rate_limited"

    def __init__(self, message: str | None = None, retry_after_ms: int = 0) -> None:
        super().__init__(message)
        self.retry_after_ms = max(int(retry_after_ms), 0)


class AuthenticationError(ChannelError):
    """Credentials for the workspace were revoked or are invalid."""

    terminal = True
    code = "authentication_failed"


class ChannelNotFoundError(ChannelError):
    terminal = True
    code = "channel_not_found"


class RecipientNotFoundError(ChannelError):
    terminal = True
    code = "recipient_not_found"


class TransientChannelError(ChannelError):
    """Service unavailable, timeout or internal platform error."""

    code = "transient"


__all__ = [
    "AuthenticationError",
    "ChannelError",
    "ChannelNotFoundError",
    "InvalidTransitionError",
    "NotFoundError",
    "NotificationError",
    "RateLimitedError",
    "RecipientNotFoundError",
    "TransientChannelError",
    "ValidationError",
]
