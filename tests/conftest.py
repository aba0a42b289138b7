"""
Shared test fixtures and configuration.
"""

from datetime import datetime, timezone

import pytest
from unittest.mock import Mock

from chatlog_admin.models.domain import DeviceProfile, Message, UserInfo
from chatlog_admin.services.device_profile import DEVICE_PROFILES
from chatlog_admin.services.session_aggregator import aggregate
from chatlog_admin.utils.messages import Notifier

NOW = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)


def no_delay(profile: DeviceProfile) -> DeviceProfile:
    """Same profile without the pause between retries."""
    return profile.model_copy(update={"retry_delay_ms": 0})


@pytest.fixture
def now() -> datetime:
    """Fixed reference time: 2024-06-15 12:00 UTC."""
    return NOW


@pytest.fixture
def compact_profile() -> DeviceProfile:
    return no_delay(DEVICE_PROFILES["compact"])


@pytest.fixture
def medium_profile() -> DeviceProfile:
    return no_delay(DEVICE_PROFILES["medium"])


@pytest.fixture
def full_profile() -> DeviceProfile:
    return no_delay(DEVICE_PROFILES["full"])


@pytest.fixture
def mock_supabase():
    """Mock Supabase client with a chainable query builder."""
    client = Mock()
    client.postgrest = Mock()

    table_mock = Mock()
    for method in ("select", "eq", "gte", "order", "limit", "delete", "in_"):
        setattr(table_mock, method, Mock(return_value=table_mock))
    table_mock.execute = Mock(return_value=Mock(data=[]))

    client.table = Mock(return_value=table_mock)

    return client


@pytest.fixture
def make_message():
    """Factory for message records."""

    def _make(
        session_id: str,
        timestamp: str,
        content: str = "",
        message_type: str = "user",
        user_name: str | None = None,
        user_email: str | None = None,
    ) -> Message:
        return Message(
            session_id=session_id,
            timestamp=timestamp,
            message_type=message_type,
            content=content,
            user_info=UserInfo(user_name=user_name) if user_name else None,
            user_email=user_email,
        )

    return _make


@pytest.fixture
def sample_messages(make_message) -> list[Message]:
    """
    Four sessions:
    s-alice: three messages today, 30 minutes, named through user info
    s-bob: two messages yesterday, named through a "First Last" message
    s-anon: a single assistant greeting two weeks ago
    s-bad: one message with an unparsable timestamp
    """
    return [
        make_message(
            "s-alice",
            "2024-06-15T10:00:00Z",
            "Hi there",
            user_name="Alice Smith",
            user_email="alice@example.com",
        ),
        make_message(
            "s-alice", "2024-06-15T10:01:00Z", "Hello! How can I help?", "assistant"
        ),
        make_message(
            "s-alice", "2024-06-15T10:30:00Z", "I need a consultation about pricing"
        ),
        make_message("s-bob", "2024-06-14T09:00:00Z", "Bob Jones"),
        make_message(
            "s-bob", "2024-06-14T09:05:00Z", "Nice to meet you Bob", "assistant"
        ),
        make_message("s-anon", "2024-06-01T08:00:00Z", "Welcome!", "assistant"),
        make_message("s-bad", "not-a-date", "hello"),
    ]


@pytest.fixture
def sample_rows(sample_messages) -> list[dict]:
    """Sample messages as the chat_logs table returns them."""
    return [m.model_dump() for m in sample_messages]


@pytest.fixture
def sample_aggregates(sample_messages, full_profile):
    return aggregate(sample_messages, full_profile)


@pytest.fixture
def notifier(full_profile) -> Notifier:
    return Notifier(full_profile)
