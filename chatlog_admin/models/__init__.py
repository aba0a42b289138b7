"""
Models package exports for domain records and operation results.
"""

from chatlog_admin.models.domain import (
    Message,
    UserInfo,
    AppointmentRef,
    SessionAggregate,
    DeviceProfile,
    DateRange,
    ViewState,
    Tier,
    ViewMode,
    Category,
    SortKey,
    SortOrder,
    TIERS,
    VIEW_MODES,
    ANONYMOUS_USER,
    SESSION_STARTED,
)
from chatlog_admin.models.schemas import (
    Page,
    DeleteOutcome,
    BulkDeleteResult,
    ExportResult,
    ExportFormat,
    ExportValidation,
    ConversationAnalysis,
    ConversationStats,
    FilterStats,
    Notification,
)

__all__ = [
    "Message",
    "UserInfo",
    "AppointmentRef",
    "SessionAggregate",
    "DeviceProfile",
    "DateRange",
    "ViewState",
    "Tier",
    "ViewMode",
    "Category",
    "SortKey",
    "SortOrder",
    "TIERS",
    "VIEW_MODES",
    "ANONYMOUS_USER",
    "SESSION_STARTED",
    "Page",
    "DeleteOutcome",
    "BulkDeleteResult",
    "ExportResult",
    "ExportFormat",
    "ExportValidation",
    "ConversationAnalysis",
    "ConversationStats",
    "FilterStats",
    "Notification",
]
