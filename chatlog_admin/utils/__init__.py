"""
Utility package exports for logging and user-facing wording.
"""

from chatlog_admin.utils.logger import (
    get_logger,
    configure_logging,
    set_correlation_id,
    get_correlation_id,
)
from chatlog_admin.utils.messages import load_messages, Notifier

__all__ = [
    "get_logger",
    "configure_logging",
    "set_correlation_id",
    "get_correlation_id",
    "load_messages",
    "Notifier",
]
