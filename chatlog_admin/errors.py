"""
Error taxonomy for chat log operations.
Network errors are retried by the database layer; the rest fail fast.
"""


class ChatLogsError(Exception):
    """Base exception for chat log console errors."""


class NotAuthenticatedError(ChatLogsError):
    """Raised when no valid bearer credential is available. Never retried."""


class NetworkError(ChatLogsError):
    """Raised when a backing store call fails after all retries."""


class NetworkTimeoutError(NetworkError):
    """Raised when a backing store call exceeds the profile timeout."""


class ValidationLimitExceededError(ChatLogsError):
    """Raised when a bulk or export request is over the tier cap."""

    def __init__(self, operation: str, limit: int, requested: int):
        self.operation = operation
        self.limit = limit
        self.requested = requested
        super().__init__(
            f"{operation} limited to {limit} items, {requested} requested"
        )


class ExportError(ChatLogsError):
    """Raised when an export has nothing to write."""
