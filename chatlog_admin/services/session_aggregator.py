"""
Session aggregation.
Rebuilds session-level conversation records from a flat stream of chat messages.
"""

import math
import re
from collections import defaultdict
from datetime import datetime, timezone
from typing import Iterable

from chatlog_admin.models.domain import (
    ANONYMOUS_USER,
    SESSION_STARTED,
    DeviceProfile,
    Message,
    SessionAggregate,
    Tier,
)
from chatlog_admin.utils.logger import get_logger

logger = get_logger(__name__)

NAME_PATTERN = re.compile(r"^[A-Z][a-z]+ [A-Z][a-z]+$")
_FRACTION = re.compile(r"\.(\d+)")
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def parse_timestamp(value: str | None) -> datetime | None:
    """
    Parses an ISO-8601 timestamp into an aware datetime.

    Accepts a trailing "Z" and any number of fractional-second digits.
    Naive values are taken as UTC.

    Args:
        value: Raw timestamp text

    Returns:
        Parsed datetime, or None when the value is missing or malformed
    """
    if not value:
        return None

    text = value.strip()
    if text[-1:] in ("Z", "z"):
        text = text[:-1] + "+00:00"
    # fromisoformat on 3.10 only takes 3 or 6 fractional digits
    text = _FRACTION.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1)

    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def extract_user_name(message: Message) -> str:
    """
    Resolves a display name from one message.

    Priority: display name, first + last name, first name, a "First Last"
    shaped message body, then the anonymous sentinel.
    """
    info = message.user_info
    if info is not None:
        if info.user_name:
            return info.user_name
        if info.first_name and info.last_name:
            return f"{info.first_name} {info.last_name}"
        if info.first_name:
            return info.first_name

    if NAME_PATTERN.match(message.content):
        return message.content

    return ANONYMOUS_USER


def _plural(count: int, word: str) -> str:
    return f"{count} {word}" if count == 1 else f"{count} {word}s"


def format_duration(minutes: int, tier: Tier) -> str:
    """
    Formats a minute delta for display.
    The compact tier drops minutes once a session passes one hour.

    Args:
        minutes: Whole minutes between first and last message
        tier: Device tier controlling granularity

    Returns:
        Duration text such as "5m", "1h 30m" or "1 hour 30 minutes"
    """
    hours, remainder = divmod(max(minutes, 0), 60)

    if tier == "full":
        if hours == 0:
            return _plural(remainder, "minute")
        if remainder:
            return f"{_plural(hours, 'hour')} {_plural(remainder, 'minute')}"
        return _plural(hours, "hour")

    if hours == 0:
        return f"{remainder}m"
    if tier == "compact" or remainder == 0:
        return f"{hours}h"
    return f"{hours}h {remainder}m"


def duration_minutes(timestamps: list[datetime | None]) -> int:
    """Rounded minutes between the earliest and latest parsable timestamps."""
    timed = [ts for ts in timestamps if ts is not None]
    if len(timed) < 2:
        return 0
    seconds = (max(timed) - min(timed)).total_seconds()
    return math.floor(seconds / 60 + 0.5)


def _resolve_user_name(messages: list[Message]) -> str:
    for message in messages:
        info = message.user_info
        if info is not None and (info.user_name or info.first_name):
            return extract_user_name(message)

    for message in messages:
        if message.message_type == "user" and NAME_PATTERN.match(message.content):
            return message.content

    return ANONYMOUS_USER


def _resolve_user_email(messages: list[Message]) -> str | None:
    for message in messages:
        if message.user_email and message.user_email.strip():
            return message.user_email.strip()
    return None


def _build_aggregate(session_id: str, group: list[Message], tier: Tier) -> SessionAggregate:
    # Unparsable timestamps keep their relative order after the timed ones
    timed = [(parse_timestamp(m.timestamp), m) for m in group]
    timed.sort(key=lambda pair: (pair[0] is None, pair[0] or _EPOCH))

    ordered = [message for _, message in timed]
    timestamps = [ts for ts, _ in timed]
    parsed = [ts for ts in timestamps if ts is not None]

    first_user = next((m for m in ordered if m.message_type == "user"), None)
    minutes = duration_minutes(timestamps)

    return SessionAggregate(
        session_id=session_id,
        user_name=_resolve_user_name(ordered),
        user_email=_resolve_user_email(ordered),
        message_count=len(ordered),
        first_message=(first_user.content if first_user else "") or SESSION_STARTED,
        last_activity=max(parsed) if parsed else None,
        duration=format_duration(minutes, tier),
        duration_minutes=minutes,
        messages=tuple(ordered),
    )


def aggregate(
    messages: Iterable[Message], profile: DeviceProfile | None = None
) -> list[SessionAggregate]:
    """
    Groups messages into one aggregate per distinct session id.

    Aggregates are rebuilt from scratch on every call; appointment fields are
    left unset for the appointment linker to merge in.

    Args:
        messages: Message records in any order
        profile: Device profile selecting duration granularity (full if None)

    Returns:
        Aggregates ordered by most recent activity; sessions with no
        parsable timestamp come last
    """
    tier: Tier = profile.tier if profile else "full"

    groups: dict[str, list[Message]] = defaultdict(list)
    for message in messages:
        groups[message.session_id].append(message)

    aggregates = [
        _build_aggregate(session_id, group, tier) for session_id, group in groups.items()
    ]

    dated = [a for a in aggregates if a.last_activity is not None]
    undated = [a for a in aggregates if a.last_activity is None]
    dated.sort(key=lambda a: a.last_activity, reverse=True)

    logger.debug(
        "sessions_aggregated",
        sessions=len(aggregates),
        undated_sessions=len(undated),
    )
    return dated + undated


def aggregate_to_messages(aggregates: Iterable[SessionAggregate]) -> list[Message]:
    """Flattens aggregates back into their underlying messages."""
    return [message for item in aggregates for message in item.messages]
