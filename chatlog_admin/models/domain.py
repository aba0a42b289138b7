"""
Domain models for the chat logs console.
Message records come from the backing store; everything else is derived from them.
"""

from datetime import date, datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

Tier = Literal["compact", "medium", "full"]
ViewMode = Literal["grid", "list", "table"]
Category = Literal[
    "all", "has_appointment", "no_appointment", "recent", "today", "custom"
]
SortKey = Literal["last_activity", "message_count", "user_name", "duration"]
SortOrder = Literal["asc", "desc"]

TIERS: tuple[Tier, ...] = ("compact", "medium", "full")
VIEW_MODES: tuple[ViewMode, ...] = ("grid", "list", "table")

ANONYMOUS_USER = "Anonymous User"
SESSION_STARTED = "Session started"


class _Record(BaseModel):
    """Immutable record accepting both camelCase and snake_case keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="ignore",
    )


class UserInfo(_Record):
    """Visitor details the chatbot captured during a session."""

    user_name: str | None = None
    first_name: str | None = None
    last_name: str | None = None


class Message(_Record):
    """
    A single chat message as stored by the chatbot.

    Attributes:
        session_id: Stable identifier of the chat session
        timestamp: ISO-8601 timestamp as received; may be malformed
        message_type: Who sent the message
        content: Message text
        user_info: Optional visitor details
        user_email: Optional visitor e-mail
    """

    session_id: str = Field(min_length=1)
    timestamp: str
    message_type: Literal["user", "assistant"]
    content: str = ""
    user_info: UserInfo | None = None
    user_email: str | None = None

    @field_validator("timestamp", mode="before")
    @classmethod
    def _timestamp_to_text(cls, value):
        if isinstance(value, datetime):
            return value.isoformat()
        return "" if value is None else str(value)

    @field_validator("content", mode="before")
    @classmethod
    def _content_to_text(cls, value):
        return "" if value is None else value


class AppointmentRef(_Record):
    """Appointment booked from a chat session."""

    appointment_id: int
    name: str | None = None
    date: str | None = None
    time: str | None = None


class SessionAggregate(_Record):
    """
    Session-level summary ("conversation box") rebuilt from raw messages.

    message_count always equals len(messages) and last_activity is the
    latest parsable timestamp. Appointment fields are only ever set by the
    appointment linker.
    """

    session_id: str
    user_name: str
    user_email: str | None = None
    message_count: int
    first_message: str
    last_activity: datetime | None = None
    duration: str
    duration_minutes: int = 0
    has_appointment: bool = False
    appointment_id: int | None = None
    messages: tuple[Message, ...] = ()


class DeviceProfile(_Record):
    """Operational limits for one client tier. Selected once, never mutated."""

    tier: Tier
    max_retries: int = Field(ge=1)
    timeout_ms: int = Field(gt=0)
    fetch_limit: int = Field(gt=0)
    session_fetch_limit: int = Field(gt=0)
    retry_delay_ms: int = Field(ge=0)
    day_limit: int | None = None
    max_sessions: int | None = None
    max_bulk_ops: int = Field(gt=0)
    max_export: int = Field(gt=0)
    refresh_interval_minutes: int = Field(gt=0)
    success_notice_ms: int
    error_notice_ms: int
    search_term_max_length: int = Field(gt=0)
    default_page_sizes: tuple[tuple[ViewMode, int], ...]
    page_size_options: tuple[int, ...]

    @field_validator("default_page_sizes", mode="before")
    @classmethod
    def _freeze_page_sizes(cls, value):
        if isinstance(value, dict):
            return tuple(value.items())
        return value

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000

    @property
    def retry_delay_seconds(self) -> float:
        return self.retry_delay_ms / 1000

    def default_page_size(self, view_mode: ViewMode) -> int:
        return dict(self.default_page_sizes).get(view_mode, 5)


class DateRange(_Record):
    """Inclusive range of whole calendar days."""

    start: date
    end: date

    @model_validator(mode="after")
    def _start_before_end(self) -> "DateRange":
        if self.start > self.end:
            raise ValueError("Start date must be before end date")
        return self


class ViewState(_Record):
    """What the operator is currently looking at."""

    view_mode: ViewMode = "grid"
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=5, ge=1)
    search_term: str = ""
    category: Category = "all"
    date_range: DateRange | None = None
    sort_key: SortKey = "last_activity"
    sort_order: SortOrder = "desc"
