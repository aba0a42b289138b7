"""
Result schemas returned by console operations.
"""

from typing import Literal

from pydantic import BaseModel, Field, ConfigDict

from chatlog_admin.models.domain import SessionAggregate

DeleteState = Literal["idle", "confirming", "requesting", "committed", "failed"]
BulkDeleteState = Literal["committed", "partial", "failed"]
ExportFormat = Literal["csv", "json"]


class Page(BaseModel):
    """One page of the filtered, sorted aggregate collection."""

    items: list[SessionAggregate]
    page: int = Field(description="Page actually served, after clamping")
    page_size: int
    total_pages: int
    total_items: int


class DeleteOutcome(BaseModel):
    """Result of deleting a single session."""

    session_id: str
    state: DeleteState
    error: str | None = None

    @property
    def committed(self) -> bool:
        return self.state == "committed"


class BulkDeleteResult(BaseModel):
    """
    Per-item accounting of a bulk delete.
    A partial failure is reported here rather than raised.
    """

    succeeded_ids: list[str] = Field(default_factory=list)
    failed_ids: list[str] = Field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return len(self.succeeded_ids)

    @property
    def failed(self) -> int:
        return len(self.failed_ids)

    @property
    def state(self) -> BulkDeleteState:
        if not self.failed_ids:
            return "committed"
        if self.succeeded_ids:
            return "partial"
        return "failed"


class ExportResult(BaseModel):
    """Serialized export ready to be written or downloaded."""

    filename: str
    content: str
    mime_type: str
    session_count: int
    message_count: int


class ExportValidation(BaseModel):
    """Pre-export check of a set of conversations."""

    is_valid: bool
    errors: list[str] = Field(default_factory=list)


class ConversationAnalysis(BaseModel):
    """Aggregate statistics over the loaded sessions."""

    total_sessions: int = 0
    average_session_length: float = 0.0
    appointment_conversion_rate: float = Field(
        default=0.0, description="Sessions with an appointment / total sessions"
    )
    peak_activity_hours: list[int] = Field(default_factory=list)
    top_terms: list[str] = Field(default_factory=list)


class ConversationStats(BaseModel):
    total_conversations: int
    conversations_with_appointments: int
    total_messages: int
    average_messages_per_conversation: float
    recent_conversations: int


class FilterStats(BaseModel):
    total: int
    filtered: int
    has_appointment: int
    today: int
    recent: int
    display_text: str


class Notification(BaseModel):
    """User-visible notice; duration None means it stays until dismissed."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["success", "error"]
    message: str
    duration_ms: int | None = None
