"""
Filtering, sorting and search over session aggregates.
All functions are pure: inputs are never mutated and results are new lists.
"""

from datetime import date, datetime, timedelta
from typing import Any, Callable, Iterable

from chatlog_admin.models.domain import (
    DateRange,
    DeviceProfile,
    SessionAggregate,
    SortKey,
    SortOrder,
    ViewState,
)
from chatlog_admin.models.schemas import FilterStats
from chatlog_admin.utils.logger import get_logger
from chatlog_admin.utils.messages import render_message

logger = get_logger(__name__)

RECENT_WINDOW = timedelta(hours=24)

SUGGESTION_LIMITS = {"compact": 3, "medium": 5, "full": 8}
MIN_SUGGESTION_TERM = 2

_SORT_VALUES: dict[SortKey, Callable[[SessionAggregate], Any]] = {
    "last_activity": lambda s: s.last_activity,
    "message_count": lambda s: s.message_count,
    "user_name": lambda s: s.user_name.casefold() if s.user_name else None,
    "duration": lambda s: s.duration_minutes,
}


def as_aware(value: datetime) -> datetime:
    """Naive values are read as local time."""
    return value if value.tzinfo is not None else value.astimezone()


def resolve_now(now: datetime | None) -> datetime:
    """Reference time for date filters: aware, defaulting to the local clock."""
    return as_aware(now) if now is not None else datetime.now().astimezone()


def _local_date(value: datetime, now: datetime) -> date:
    return value.astimezone(now.tzinfo).date()


def normalize_search_term(term: str | None, profile: DeviceProfile) -> str:
    """Strips a search term and truncates it to the tier's maximum length."""
    if not term:
        return ""
    return term.strip()[: profile.search_term_max_length]


def matches_search(item: SessionAggregate, term: str, profile: DeviceProfile) -> bool:
    """
    Case-insensitive substring match over the tier's searchable fields.

    compact: user name and first message
    medium: adds the session id
    full: adds the content of every message
    """
    needle = term.casefold()
    fields = [item.user_name, item.first_message]
    if profile.tier in ("medium", "full"):
        fields.append(item.session_id)

    if any(needle in (value or "").casefold() for value in fields):
        return True

    if profile.tier == "full":
        return any(needle in message.content.casefold() for message in item.messages)
    return False


def in_date_range(item: SessionAggregate, date_range: DateRange, now: datetime) -> bool:
    if item.last_activity is None:
        return False
    day = _local_date(item.last_activity, now)
    return date_range.start <= day <= date_range.end


def matches_category(
    item: SessionAggregate, view_state: ViewState, now: datetime
) -> bool:
    category = view_state.category

    if category == "has_appointment":
        return item.has_appointment
    if category == "no_appointment":
        return not item.has_appointment
    if category == "recent":
        return item.last_activity is not None and now - item.last_activity <= RECENT_WINDOW
    if category == "today":
        return (
            item.last_activity is not None
            and _local_date(item.last_activity, now) == now.date()
        )
    # "custom" is carried entirely by the date range
    return True


def sort_sessions(
    aggregates: Iterable[SessionAggregate],
    sort_key: SortKey = "last_activity",
    sort_order: SortOrder = "desc",
) -> list[SessionAggregate]:
    """
    Stable sort by one key; sessions without a value for the key go last
    in either order.
    """
    value_of = _SORT_VALUES[sort_key]
    present, missing = [], []
    for item in aggregates:
        (missing if value_of(item) is None else present).append(item)

    present.sort(key=value_of, reverse=sort_order == "desc")
    return present + missing


def apply(
    aggregates: Iterable[SessionAggregate],
    view_state: ViewState,
    profile: DeviceProfile,
    now: datetime | None = None,
) -> list[SessionAggregate]:
    """
    Produces the visible collection for a view state.

    Search, category and date range are ANDed; the result is then sorted.

    Args:
        aggregates: Linked session aggregates
        view_state: Current search, filter and sort selection
        profile: Device profile selecting the searchable fields
        now: Reference time for recent/today filters (local time if None)

    Returns:
        New list of matching aggregates in display order
    """
    now = resolve_now(now)
    term = normalize_search_term(view_state.search_term, profile)

    result = []
    for item in aggregates:
        if term and not matches_search(item, term, profile):
            continue
        if not matches_category(item, view_state, now):
            continue
        if view_state.date_range is not None and not in_date_range(
            item, view_state.date_range, now
        ):
            continue
        result.append(item)

    return sort_sessions(result, view_state.sort_key, view_state.sort_order)


def find_sessions_by_criteria(
    aggregates: Iterable[SessionAggregate],
    has_appointment: bool | None = None,
    min_messages: int | None = None,
    max_messages: int | None = None,
    user_name: str | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
) -> list[SessionAggregate]:
    """
    Advanced search; every criterion given must hold.
    Sessions without a last activity fail any date criterion.
    """
    result = []
    for item in aggregates:
        if has_appointment is not None and item.has_appointment != has_appointment:
            continue
        if min_messages is not None and item.message_count < min_messages:
            continue
        if max_messages is not None and item.message_count > max_messages:
            continue
        if user_name and user_name.casefold() not in item.user_name.casefold():
            continue
        if date_from is not None or date_to is not None:
            if item.last_activity is None:
                continue
            if date_from is not None and item.last_activity < as_aware(date_from):
                continue
            if date_to is not None and item.last_activity > as_aware(date_to):
                continue
        result.append(item)
    return result


def filter_sessions_by_days(
    aggregates: Iterable[SessionAggregate],
    days: int,
    profile: DeviceProfile,
    now: datetime | None = None,
) -> list[SessionAggregate]:
    """Sessions active in the last ``days`` days, capped at the tier's max_sessions."""
    cutoff = resolve_now(now) - timedelta(days=days)
    result = [
        item
        for item in aggregates
        if item.last_activity is not None and item.last_activity >= cutoff
    ]
    if profile.max_sessions is not None:
        result = result[: profile.max_sessions]
    return result


def filter_stats(
    aggregates: list[SessionAggregate],
    filtered: list[SessionAggregate],
    profile: DeviceProfile,
    now: datetime | None = None,
) -> FilterStats:
    """
    Counts for the filter summary line, with tier-worded display text.
    has_appointment, today and recent are counted over the full collection.
    """
    now = resolve_now(now)
    counts = {
        "total": len(aggregates),
        "filtered": len(filtered),
        "has_appointment": sum(1 for a in aggregates if a.has_appointment),
        "today": sum(
            1
            for a in aggregates
            if matches_category(a, ViewState(category="today"), now)
        ),
        "recent": sum(
            1
            for a in aggregates
            if matches_category(a, ViewState(category="recent"), now)
        ),
    }
    return FilterStats(
        **counts,
        display_text=render_message("filter_stats", profile.tier, **counts),
    )


def search_suggestions(
    aggregates: Iterable[SessionAggregate], term: str, profile: DeviceProfile
) -> list[str]:
    """
    Suggests completions for a partial search term.

    Candidates are user names, words longer than three letters from the
    first message, and session ids that contain the term. The first
    tier-limited candidates are returned in alphabetical order.
    """
    term = normalize_search_term(term, profile)
    if len(term) < MIN_SUGGESTION_TERM:
        return []

    needle = term.casefold()
    suggestions: dict[str, None] = {}
    for item in aggregates:
        if needle in item.user_name.casefold():
            suggestions.setdefault(item.user_name)
        for word in item.first_message.casefold().split():
            if len(word) > 3 and needle in word:
                suggestions.setdefault(word)
        if needle in item.session_id.casefold():
            suggestions.setdefault(item.session_id)

    limited = list(suggestions)[: SUGGESTION_LIMITS[profile.tier]]
    return sorted(limited, key=str.casefold)
