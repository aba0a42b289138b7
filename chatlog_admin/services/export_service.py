"""
Export and analysis over loaded conversations.
Read-only: inputs are never mutated.
"""

import csv
import io
import json
from collections import Counter
from datetime import datetime, timedelta, tzinfo
from typing import Any, Iterable

from chatlog_admin.errors import ExportError, ValidationLimitExceededError
from chatlog_admin.models.domain import DeviceProfile, Message, SessionAggregate, Tier
from chatlog_admin.models.schemas import (
    ConversationAnalysis,
    ConversationStats,
    ExportFormat,
    ExportResult,
    ExportValidation,
)
from chatlog_admin.services.filter_engine import as_aware, resolve_now
from chatlog_admin.services.session_aggregator import parse_timestamp
from chatlog_admin.utils.logger import get_logger

logger = get_logger(__name__)

MIME_TYPES = {"csv": "text/csv", "json": "application/json"}
EXPORTED_BY = "Chat Logs Admin Console"

TOP_TERMS_LIMIT = 5
PEAK_HOUR_RATIO = 0.7
STATS_RECENT_DAYS = 7

MODERATE_STOPWORDS = frozenset(
    ["what", "when", "where", "which", "this", "that", "with", "from"]
)
COMMON_WORDS = MODERATE_STOPWORDS | frozenset(
    [
        "they", "them", "there", "their", "have", "been", "were", "said",
        "each", "other", "more", "very", "like", "just", "into", "over",
    ]
)

_MESSAGE_COLUMNS: dict[Tier, list[str]] = {
    "compact": ["Session ID", "Time", "Type", "Message", "User"],
    "medium": [
        "Session ID", "Timestamp", "Message Type", "Content",
        "User Name", "First Name", "Last Name",
    ],
    "full": [
        "Session ID", "Timestamp", "Message Type", "Content",
        "User Name", "First Name", "Last Name", "User Email",
    ],
}

_SUMMARY_COLUMNS: dict[Tier, list[str]] = {
    "compact": ["Session ID", "User", "Messages", "Last Activity"],
    "medium": [
        "Session ID", "User Name", "Messages", "First Message",
        "Last Activity", "Duration", "Has Appointment",
    ],
    "full": [
        "Session ID", "User Name", "User Email", "Messages", "First Message",
        "Last Activity", "Duration", "Has Appointment", "Appointment ID",
    ],
}


def export_filename(tier: Tier, fmt: ExportFormat, now: datetime) -> str:
    return f"chat-conversations-{tier}-{now.strftime('%Y-%m-%d')}.{fmt}"


def _check_format(fmt: str) -> None:
    if fmt not in MIME_TYPES:
        raise ValueError(f"Unsupported export format: {fmt}")


def _to_csv(headers: list[str], rows: Iterable[list[Any]]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(headers)
    writer.writerows(rows)
    return buffer.getvalue()


def _to_json(data: Any, tier: Tier) -> str:
    if tier == "compact":
        return json.dumps(data, ensure_ascii=False, separators=(",", ":"))
    return json.dumps(data, ensure_ascii=False, indent=2)


def _display_name(message: Message) -> str:
    if message.user_info and message.user_info.user_name:
        return message.user_info.user_name
    return "Anonymous"


def _short_time(timestamp: str) -> str:
    parsed = parse_timestamp(timestamp)
    return parsed.strftime("%Y-%m-%d %H:%M") if parsed else timestamp


def _message_row(message: Message, tier: Tier) -> list[Any]:
    if tier == "compact":
        return [
            message.session_id,
            _short_time(message.timestamp),
            message.message_type,
            message.content,
            _display_name(message),
        ]

    info = message.user_info
    row = [
        message.session_id,
        message.timestamp,
        message.message_type,
        message.content,
        _display_name(message),
        (info.first_name if info else None) or "",
        (info.last_name if info else None) or "",
    ]
    if tier == "full":
        row.append(message.user_email or "")
    return row


def _message_record(message: Message, tier: Tier) -> dict[str, Any]:
    if tier == "compact":
        return {
            "sessionId": message.session_id,
            "timestamp": message.timestamp,
            "type": message.message_type,
            "message": message.content,
            "user": _display_name(message),
        }

    record = {
        "sessionId": message.session_id,
        "timestamp": message.timestamp,
        "messageType": message.message_type,
        "content": message.content,
    }
    if tier == "medium":
        info = message.user_info
        record["userInfo"] = {
            "userName": info.user_name if info else None,
            "firstName": info.first_name if info else None,
            "lastName": info.last_name if info else None,
        }
    else:
        record["userInfo"] = (
            message.user_info.model_dump(by_alias=True) if message.user_info else {}
        )
        record["userEmail"] = message.user_email
    return record


def _summary_row(item: SessionAggregate, tier: Tier) -> list[Any]:
    last_activity = item.last_activity.isoformat() if item.last_activity else ""
    if tier == "compact":
        return [item.session_id, item.user_name, item.message_count, last_activity]

    row = [item.session_id, item.user_name]
    if tier == "full":
        row.append(item.user_email or "")
    row += [
        item.message_count,
        item.first_message,
        last_activity,
        item.duration,
        "yes" if item.has_appointment else "no",
    ]
    if tier == "full":
        row.append(item.appointment_id if item.appointment_id is not None else "")
    return row


def _summary_record(item: SessionAggregate, tier: Tier) -> dict[str, Any]:
    exclude = {"messages"}
    if tier == "compact":
        exclude |= {"first_message", "duration", "duration_minutes", "user_email", "appointment_id"}
    elif tier == "medium":
        exclude |= {"user_email", "appointment_id"}
    return item.model_dump(mode="json", by_alias=True, exclude=exclude)


def _envelope(
    records: list[dict], tier: Tier, now: datetime, session_count: int
) -> Any:
    if tier == "compact":
        return records
    if tier == "medium":
        return {
            "exportDate": now.isoformat(),
            "tier": tier,
            "totalSessions": session_count,
            "totalRecords": len(records),
            "conversations": records,
        }
    return {
        "exportMetadata": {
            "exportDate": now.isoformat(),
            "tier": tier,
            "totalSessions": session_count,
            "totalRecords": len(records),
            "exportedBy": EXPORTED_BY,
        },
        "conversations": records,
    }


def export_selection(
    messages: Iterable[Message],
    session_ids: Iterable[str],
    fmt: ExportFormat,
    profile: DeviceProfile,
    now: datetime | None = None,
) -> ExportResult:
    """
    Serializes the messages of the selected sessions.

    Column set and JSON layout scale with the tier: compact keeps the
    essentials, medium adds visitor names, full adds e-mail and metadata.

    Args:
        messages: Loaded message set
        session_ids: Sessions to export
        fmt: "csv" or "json"
        profile: Device profile (export cap, detail level)
        now: Export time used in the filename and metadata

    Returns:
        ExportResult with filename, content and counts

    Raises:
        ValidationLimitExceededError: If more sessions than max_export
        ExportError: If no messages belong to the selected sessions
        ValueError: If the format is not supported
    """
    _check_format(fmt)
    ids = list(dict.fromkeys(session_ids))
    if len(ids) > profile.max_export:
        raise ValidationLimitExceededError("export", profile.max_export, len(ids))

    wanted = set(ids)
    selected = [m for m in messages if m.session_id in wanted]
    if not selected:
        raise ExportError("No conversation data to export")

    now = resolve_now(now)
    session_count = len({m.session_id for m in selected})
    tier = profile.tier
    if fmt == "csv":
        content = _to_csv(
            _MESSAGE_COLUMNS[tier], (_message_row(m, tier) for m in selected)
        )
    else:
        records = [_message_record(m, tier) for m in selected]
        content = _to_json(_envelope(records, tier, now, session_count), tier)

    logger.info(
        "conversations_exported",
        format=fmt,
        sessions=session_count,
        messages=len(selected),
    )
    return ExportResult(
        filename=export_filename(tier, fmt, now),
        content=content,
        mime_type=MIME_TYPES[fmt],
        session_count=session_count,
        message_count=len(selected),
    )


def export_summaries(
    aggregates: list[SessionAggregate],
    fmt: ExportFormat,
    profile: DeviceProfile,
    now: datetime | None = None,
) -> ExportResult:
    """
    Serializes one summary row per session, e.g. the current filtered view.

    Raises:
        ValidationLimitExceededError: If more sessions than max_export
        ExportError: If there are no sessions
    """
    _check_format(fmt)
    if not aggregates:
        raise ExportError("No conversation data to export")
    if len(aggregates) > profile.max_export:
        raise ValidationLimitExceededError("export", profile.max_export, len(aggregates))

    now = resolve_now(now)
    tier = profile.tier
    if fmt == "csv":
        content = _to_csv(
            _SUMMARY_COLUMNS[tier], (_summary_row(a, tier) for a in aggregates)
        )
    else:
        records = [_summary_record(a, tier) for a in aggregates]
        content = _to_json(_envelope(records, tier, now, len(aggregates)), tier)

    logger.info("summaries_exported", format=fmt, sessions=len(aggregates))
    return ExportResult(
        filename=export_filename(tier, fmt, now),
        content=content,
        mime_type=MIME_TYPES[fmt],
        session_count=len(aggregates),
        message_count=sum(a.message_count for a in aggregates),
    )


def export_single_conversation(
    item: SessionAggregate, fmt: ExportFormat, now: datetime | None = None
) -> ExportResult:
    """
    Serializes one conversation with every message, independent of tier.

    CSV has one row per message; JSON nests the full conversation under
    "conversation" next to the export date.

    Raises:
        ExportError: If the conversation has no messages
        ValueError: If the format is not supported
    """
    _check_format(fmt)
    if not item.messages:
        raise ExportError("No conversation data to export")

    now = resolve_now(now)
    if fmt == "csv":
        content = _to_csv(
            ["Session ID", "User Name", "Timestamp", "Message Type", "Content"],
            (
                [item.session_id, item.user_name, m.timestamp, m.message_type, m.content]
                for m in item.messages
            ),
        )
    else:
        content = json.dumps(
            {
                "conversation": item.model_dump(mode="json", by_alias=True),
                "exportDate": now.isoformat(),
            },
            ensure_ascii=False,
            indent=2,
        )

    logger.info(
        "conversation_exported",
        format=fmt,
        session_id=item.session_id,
        messages=len(item.messages),
    )
    return ExportResult(
        filename=f"conversation-{item.session_id}-{now.strftime('%Y-%m-%d')}.{fmt}",
        content=content,
        mime_type=MIME_TYPES[fmt],
        session_count=1,
        message_count=len(item.messages),
    )


def export_appointment_conversations(
    aggregates: Iterable[SessionAggregate],
    fmt: ExportFormat,
    profile: DeviceProfile,
    now: datetime | None = None,
) -> ExportResult:
    """Summary export restricted to sessions that led to an appointment."""
    booked = [a for a in aggregates if a.has_appointment]
    return export_summaries(booked, fmt, profile, now)


def export_conversations_by_date_range(
    aggregates: Iterable[SessionAggregate],
    start: datetime,
    end: datetime,
    fmt: ExportFormat,
    profile: DeviceProfile,
    now: datetime | None = None,
) -> ExportResult:
    """
    Summary export of sessions whose last activity falls in [start, end].
    Sessions without a parsable timestamp are never included.
    """
    start, end = as_aware(start), as_aware(end)
    in_range = [
        a
        for a in aggregates
        if a.last_activity is not None and start <= a.last_activity <= end
    ]
    return export_summaries(in_range, fmt, profile, now)


def validate_export(aggregates: list[SessionAggregate]) -> ExportValidation:
    """Checks that there is something to export and that no record is incomplete."""
    errors = []
    if not aggregates:
        errors.append("No conversations to export")

    incomplete = sum(
        1
        for a in aggregates
        if not a.session_id or not a.user_name or a.message_count == 0
    )
    if incomplete:
        errors.append(f"{incomplete} conversations have missing required data")

    return ExportValidation(is_valid=not errors, errors=errors)


def export_preview(
    aggregates: list[SessionAggregate], profile: DeviceProfile, count: int = 5
) -> list[dict[str, Any]]:
    """Summary records of the first conversations an export would contain."""
    return [_summary_record(a, profile.tier) for a in aggregates[:count]]


def stem_word(word: str) -> str:
    word = word.lower()
    if word.endswith("ing"):
        return word[:-3]
    if word.endswith("ed") or word.endswith("es"):
        return word[:-2]
    if word.endswith("s") and len(word) > 3:
        return word[:-1]
    return word


def _terms(content: str, tier: Tier) -> list[str]:
    words = content.lower().split()
    if tier == "compact":
        return [w for w in words if len(w) > 4]
    if tier == "medium":
        return [w for w in words if len(w) > 3 and w not in MODERATE_STOPWORDS]
    return [stem_word(w) for w in words if len(w) > 3 and w not in COMMON_WORDS]


def top_terms(messages: Iterable[Message], tier: Tier, limit: int = TOP_TERMS_LIMIT) -> list[str]:
    """
    Most frequent terms in visitor messages.
    Analysis depth grows with the tier; ties keep first-seen order.
    """
    counts: Counter[str] = Counter()
    for message in messages:
        if message.message_type == "user":
            counts.update(_terms(message.content, tier))
    return [term for term, _ in counts.most_common(limit)]


def peak_activity_hours(messages: Iterable[Message], tz: tzinfo | None = None) -> list[int]:
    """Hours of day whose message count exceeds 70% of the busiest hour."""
    hours = [0] * 24
    for message in messages:
        parsed = parse_timestamp(message.timestamp)
        if parsed is None:
            continue
        hours[(parsed.astimezone(tz) if tz else parsed).hour] += 1

    busiest = max(hours)
    if busiest == 0:
        return []
    return [hour for hour, count in enumerate(hours) if count > busiest * PEAK_HOUR_RATIO]


def analyze_conversations(
    aggregates: list[SessionAggregate],
    profile: DeviceProfile,
    tz: tzinfo | None = None,
) -> ConversationAnalysis:
    """
    Computes conversion rate, peak hours and top terms.

    Args:
        aggregates: Linked session aggregates
        profile: Device profile selecting top-term depth
        tz: Timezone for peak hours (each timestamp's own offset if None)

    Returns:
        ConversationAnalysis; all zero/empty for no sessions
    """
    if not aggregates:
        return ConversationAnalysis()

    messages = [m for item in aggregates for m in item.messages]
    total_messages = sum(item.message_count for item in aggregates)
    with_appointment = sum(1 for item in aggregates if item.has_appointment)

    return ConversationAnalysis(
        total_sessions=len(aggregates),
        average_session_length=round(total_messages / len(aggregates), 1),
        appointment_conversion_rate=with_appointment / len(aggregates),
        peak_activity_hours=peak_activity_hours(messages, tz),
        top_terms=top_terms(messages, profile.tier),
    )


def conversation_stats(
    aggregates: list[SessionAggregate], now: datetime | None = None
) -> ConversationStats:
    """Headline counts; recent means active within the last seven days."""
    cutoff = resolve_now(now) - timedelta(days=STATS_RECENT_DAYS)
    total_messages = sum(item.message_count for item in aggregates)

    return ConversationStats(
        total_conversations=len(aggregates),
        conversations_with_appointments=sum(1 for a in aggregates if a.has_appointment),
        total_messages=total_messages,
        average_messages_per_conversation=(
            round(total_messages / len(aggregates), 1) if aggregates else 0.0
        ),
        recent_conversations=sum(
            1
            for a in aggregates
            if a.last_activity is not None and a.last_activity >= cutoff
        ),
    )
