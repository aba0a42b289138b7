"""
Pagination and view-state management.
View mode and per-context page sizes survive restarts through a preference store.
"""

import math
from datetime import date
from typing import Sequence

from chatlog_admin.database.preferences import (
    VIEW_MODE_KEY,
    PreferenceStore,
    page_size_key,
)
from chatlog_admin.models.domain import (
    VIEW_MODES,
    DateRange,
    DeviceProfile,
    SessionAggregate,
    Category,
    SortKey,
    SortOrder,
    ViewMode,
    ViewState,
)
from chatlog_admin.models.schemas import Page
from chatlog_admin.utils.logger import get_logger

logger = get_logger(__name__)


def paginate(items: Sequence[SessionAggregate], page: int, page_size: int) -> Page:
    """
    Slices one page out of an ordered collection.

    The requested page is clamped to [1, total_pages]; an empty collection
    has zero pages and always serves page 1.

    Args:
        items: Filtered, sorted aggregates
        page: Requested 1-based page
        page_size: Items per page

    Returns:
        Page with the served items and paging counters

    Raises:
        ValueError: If page_size is less than 1
    """
    if page_size < 1:
        raise ValueError(f"page_size must be at least 1, got {page_size}")

    total_items = len(items)
    total_pages = math.ceil(total_items / page_size)
    served = min(max(page, 1), max(total_pages, 1))
    start = (served - 1) * page_size

    return Page(
        items=list(items[start : start + page_size]),
        page=served,
        page_size=page_size,
        total_pages=total_pages,
        total_items=total_items,
    )


class ViewStateManager:
    """
    Owns the operator's view state for one device profile.

    Every filter, sort or page-size change sends the operator back to page 1.
    """

    def __init__(self, profile: DeviceProfile, preference_store: PreferenceStore):
        """
        Args:
            profile: Active device profile (tier and page size defaults)
            preference_store: Scoped key-value store for view mode and page sizes
        """
        self.profile = profile
        self.preferences = preference_store

        view_mode = self._restore_view_mode()
        self.state = ViewState(
            view_mode=view_mode,
            page_size=self._restore_page_size(view_mode),
        )
        logger.debug(
            "view_state_restored",
            view_mode=self.state.view_mode,
            page_size=self.state.page_size,
        )

    def _restore_view_mode(self) -> ViewMode:
        stored = self.preferences.get(VIEW_MODE_KEY)
        return stored if stored in VIEW_MODES else "grid"

    def _restore_page_size(self, view_mode: ViewMode) -> int:
        default = self.profile.default_page_size(view_mode)
        stored = self.preferences.get(page_size_key(self.profile.tier, view_mode))
        try:
            size = int(stored) if stored is not None else default
        except ValueError:
            return default
        return size if size >= 1 else default

    def _update(self, **changes) -> ViewState:
        self.state = ViewState.model_validate({**self.state.model_dump(), **changes})
        return self.state

    def set_view_mode(self, view_mode: ViewMode) -> ViewState:
        """Switches view mode, restoring that mode's page size."""
        if view_mode not in VIEW_MODES:
            raise ValueError(f"Unknown view mode: {view_mode}")
        self.preferences.set(VIEW_MODE_KEY, view_mode)
        return self._update(
            view_mode=view_mode,
            page_size=self._restore_page_size(view_mode),
            page=1,
        )

    def change_page_size(self, page_size: int) -> ViewState:
        """Sets and persists the page size for the current (tier, view mode)."""
        if page_size < 1:
            raise ValueError(f"page_size must be at least 1, got {page_size}")
        self.preferences.set(
            page_size_key(self.profile.tier, self.state.view_mode), str(page_size)
        )
        return self._update(page_size=page_size, page=1)

    def go_to_page(self, page: int) -> ViewState:
        # Clamped against the filtered collection at paginate time
        return self._update(page=max(page, 1))

    def set_search_term(self, term: str) -> ViewState:
        normalized = term.strip()[: self.profile.search_term_max_length] if term else ""
        return self._update(search_term=normalized, page=1)

    def set_filter(self, category: Category) -> ViewState:
        return self._update(category=category, page=1)

    def set_date_range(self, start: date | None, end: date | None = None) -> ViewState:
        """Sets an inclusive date range; passing no start clears it."""
        if start is None:
            return self._update(date_range=None, page=1)
        return self._update(
            date_range=DateRange(start=start, end=end or start), page=1
        )

    def set_sort(self, sort_key: SortKey, sort_order: SortOrder | None = None) -> ViewState:
        """
        Sets the sort key. Without an explicit order, re-selecting the
        current key flips the order and a new key starts descending.
        """
        if sort_order is None:
            if sort_key == self.state.sort_key:
                sort_order = "asc" if self.state.sort_order == "desc" else "desc"
            else:
                sort_order = "desc"
        return self._update(sort_key=sort_key, sort_order=sort_order, page=1)

    def clear_filters(self) -> ViewState:
        """Resets search, category, date range and sort; keeps view mode and page size."""
        return self._update(
            search_term="",
            category="all",
            date_range=None,
            sort_key="last_activity",
            sort_order="desc",
            page=1,
        )
