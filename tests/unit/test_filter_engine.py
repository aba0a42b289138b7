"""
Unit tests for the filter, sort and search engine.
"""

from datetime import date, datetime, timezone

import pytest

from chatlog_admin.database.preferences import InMemoryPreferenceStore
from chatlog_admin.models.domain import AppointmentRef, DateRange, ViewState
from chatlog_admin.services import filter_engine
from chatlog_admin.services.appointment_linker import merge_appointments
from chatlog_admin.services.pagination import ViewStateManager


def ids(aggregates):
    return [a.session_id for a in aggregates]


@pytest.fixture
def linked(sample_aggregates):
    """Sample aggregates with s-bob holding an appointment."""
    return merge_appointments(sample_aggregates, {"s-bob": AppointmentRef(appointment_id=9)})


class TestSearch:
    """Tests for tier-scoped search."""

    def test_blank_term_is_noop(self, linked, full_profile, now):
        result = filter_engine.apply(linked, ViewState(search_term="   "), full_profile, now)

        assert ids(result) == ids(linked)

    def test_case_insensitive_user_name(self, linked, compact_profile, now):
        result = filter_engine.apply(linked, ViewState(search_term="ALICE"), compact_profile, now)

        assert ids(result) == ["s-alice"]

    def test_message_content_only_searched_on_full(
        self, linked, compact_profile, full_profile, now
    ):
        """A term appearing only in a later message needs the full tier."""
        state = ViewState(search_term="pricing")

        assert filter_engine.apply(linked, state, compact_profile, now) == []
        assert ids(filter_engine.apply(linked, state, full_profile, now)) == ["s-alice"]

    def test_session_id_searched_from_medium(
        self, linked, compact_profile, medium_profile, now
    ):
        state = ViewState(search_term="s-bo")

        assert filter_engine.apply(linked, state, compact_profile, now) == []
        assert ids(filter_engine.apply(linked, state, medium_profile, now)) == ["s-bob"]

    def test_term_truncated_to_tier_limit(self, compact_profile):
        term = filter_engine.normalize_search_term("x" * 80, compact_profile)

        assert len(term) == compact_profile.search_term_max_length


class TestCategories:
    """Tests for category and date filters."""

    @pytest.mark.parametrize(
        "category,expected",
        [
            ("all", ["s-alice", "s-bob", "s-anon", "s-bad"]),
            ("has_appointment", ["s-bob"]),
            ("no_appointment", ["s-alice", "s-anon", "s-bad"]),
            ("recent", ["s-alice"]),
            ("today", ["s-alice"]),
            ("custom", ["s-alice", "s-bob", "s-anon", "s-bad"]),
        ],
    )
    def test_category(self, linked, full_profile, now, category, expected):
        result = filter_engine.apply(linked, ViewState(category=category), full_profile, now)

        assert ids(result) == expected

    def test_date_range_is_inclusive_whole_days(self, linked, full_profile, now):
        state = ViewState(date_range=DateRange(start=date(2024, 6, 14), end=date(2024, 6, 14)))

        result = filter_engine.apply(linked, state, full_profile, now)

        assert ids(result) == ["s-bob"]

    def test_date_range_and_category_combine(self, linked, full_profile, now):
        state = ViewState(
            category="no_appointment",
            date_range=DateRange(start=date(2024, 6, 1), end=date(2024, 6, 15)),
        )

        result = filter_engine.apply(linked, state, full_profile, now)

        assert ids(result) == ["s-alice", "s-anon"]

    def test_missing_dates_excluded_from_date_filters(self, linked, full_profile, now):
        """Sessions without a parsable timestamp never match a date filter."""
        state = ViewState(date_range=DateRange(start=date(2000, 1, 1), end=date(2100, 1, 1)))

        result = filter_engine.apply(linked, state, full_profile, now)

        assert "s-bad" not in ids(result)

    def test_cleared_filters_show_every_session(self, linked, full_profile, now):
        """After clearing, the filtered count equals the total count."""
        # Arrange
        manager = ViewStateManager(full_profile, InMemoryPreferenceStore())
        manager.set_search_term("alice")
        manager.set_filter("today")
        manager.set_date_range(date(2024, 6, 15))
        narrowed = filter_engine.apply(linked, manager.state, full_profile, now)

        # Act
        manager.clear_filters()
        result = filter_engine.apply(linked, manager.state, full_profile, now)

        # Assert
        assert len(narrowed) < len(linked)
        assert len(result) == len(linked)

    def test_invalid_date_range_rejected(self):
        with pytest.raises(ValueError):
            DateRange(start=date(2024, 6, 15), end=date(2024, 6, 1))


class TestSort:
    """Tests for stable sorting."""

    def test_default_is_most_recent_first(self, linked, full_profile, now):
        result = filter_engine.apply(linked, ViewState(), full_profile, now)

        assert ids(result) == ["s-alice", "s-bob", "s-anon", "s-bad"]

    def test_missing_values_last_ascending(self, linked):
        result = filter_engine.sort_sessions(linked, "last_activity", "asc")

        assert ids(result) == ["s-anon", "s-bob", "s-alice", "s-bad"]

    def test_message_count_is_stable(self, linked):
        """Equal counts keep their input order in both directions."""
        assert ids(filter_engine.sort_sessions(linked, "message_count", "asc")) == [
            "s-anon", "s-bad", "s-bob", "s-alice",
        ]
        assert ids(filter_engine.sort_sessions(linked, "message_count", "desc")) == [
            "s-alice", "s-bob", "s-anon", "s-bad",
        ]

    def test_user_name_is_case_insensitive(self, linked):
        result = filter_engine.sort_sessions(linked, "user_name", "asc")

        assert ids(result) == ["s-alice", "s-anon", "s-bad", "s-bob"]

    def test_duration(self, linked):
        result = filter_engine.sort_sessions(linked, "duration", "desc")

        assert ids(result)[:2] == ["s-alice", "s-bob"]

    def test_does_not_mutate_input(self, linked):
        before = ids(linked)

        filter_engine.sort_sessions(linked, "user_name", "asc")

        assert ids(linked) == before


class TestAdvancedSearch:
    """Tests for criteria search and day windows."""

    def test_find_by_message_range(self, linked):
        result = filter_engine.find_sessions_by_criteria(linked, min_messages=2, max_messages=3)

        assert ids(result) == ["s-alice", "s-bob"]

    def test_find_by_appointment_and_name(self, linked):
        assert ids(filter_engine.find_sessions_by_criteria(linked, has_appointment=True)) == ["s-bob"]
        assert ids(filter_engine.find_sessions_by_criteria(linked, user_name="smith")) == ["s-alice"]

    def test_find_by_dates_skips_undated(self, linked):
        result = filter_engine.find_sessions_by_criteria(
            linked, date_from=datetime(2024, 6, 10, tzinfo=timezone.utc)
        )

        assert ids(result) == ["s-alice", "s-bob"]

    def test_filter_by_days(self, linked, compact_profile, now):
        result = filter_engine.filter_sessions_by_days(linked, 7, compact_profile, now)

        assert ids(result) == ["s-alice", "s-bob"]

    def test_filter_by_days_honours_session_cap(self, linked, compact_profile, now):
        capped = compact_profile.model_copy(update={"max_sessions": 1})

        result = filter_engine.filter_sessions_by_days(linked, 30, capped, now)

        assert ids(result) == ["s-alice"]


class TestFilterStats:
    """Tests for the filter summary line."""

    def test_full_tier_text(self, linked, full_profile, now):
        stats = filter_engine.filter_stats(linked, linked[:2], full_profile, now)

        assert (stats.total, stats.filtered) == (4, 2)
        assert (stats.has_appointment, stats.today, stats.recent) == (1, 1, 1)
        assert stats.display_text == (
            "Displaying 2 of 4 conversations (1 with appointments, 1 today, 1 recent)"
        )

    def test_compact_tier_text(self, linked, compact_profile, now):
        stats = filter_engine.filter_stats(linked, linked[:2], compact_profile, now)

        assert stats.display_text == "2/4"


class TestSearchSuggestions:
    """Tests for search suggestions."""

    def test_short_term_yields_nothing(self, linked, full_profile):
        assert filter_engine.search_suggestions(linked, "s", full_profile) == []

    def test_limited_by_tier_and_sorted(self, linked, compact_profile, full_profile):
        assert filter_engine.search_suggestions(linked, "s-", full_profile) == [
            "s-alice", "s-anon", "s-bad", "s-bob",
        ]
        assert filter_engine.search_suggestions(linked, "s-", compact_profile) == [
            "s-alice", "s-anon", "s-bob",
        ]

    def test_includes_names_and_words(self, linked, full_profile):
        assert filter_engine.search_suggestions(linked, "bob", full_profile) == [
            "Bob Jones", "s-bob",
        ]
