"""
Services package exports for the chat logs console.
"""

from chatlog_admin.services.device_profile import (
    DEVICE_PROFILES,
    classify_tier,
    resolve_device_profile,
)
from chatlog_admin.services.session_aggregator import (
    aggregate,
    aggregate_to_messages,
    extract_user_name,
    format_duration,
    parse_timestamp,
)
from chatlog_admin.services.appointment_linker import AppointmentLinker, merge_appointments
from chatlog_admin.services.pagination import ViewStateManager, paginate
from chatlog_admin.services.refresh_scheduler import InteractionTracker, RefreshScheduler
from chatlog_admin.services.deletion_service import ConfirmationGate, DeletionReconciler
from chatlog_admin.services.chat_logs_service import ChatLogsService

__all__ = [
    "DEVICE_PROFILES",
    "classify_tier",
    "resolve_device_profile",
    "aggregate",
    "aggregate_to_messages",
    "extract_user_name",
    "format_duration",
    "parse_timestamp",
    "AppointmentLinker",
    "merge_appointments",
    "ViewStateManager",
    "paginate",
    "InteractionTracker",
    "RefreshScheduler",
    "ConfirmationGate",
    "DeletionReconciler",
    "ChatLogsService",
]
