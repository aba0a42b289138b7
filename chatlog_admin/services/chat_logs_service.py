"""
Chat logs console facade.
Owns the loaded messages, their aggregates, selection and view state, and
exposes every operator action to the presentation layer.
"""

import time
from datetime import date, datetime, tzinfo
from typing import Callable, Iterable

from chatlog_admin.database.preferences import PreferenceStore
from chatlog_admin.errors import (
    ChatLogsError,
    ExportError,
    NotAuthenticatedError,
    ValidationLimitExceededError,
)
from chatlog_admin.models.domain import (
    Category,
    DeviceProfile,
    Message,
    SessionAggregate,
    SortKey,
    SortOrder,
    ViewMode,
    ViewState,
)
from chatlog_admin.models.schemas import (
    BulkDeleteResult,
    ConversationAnalysis,
    ConversationStats,
    DeleteOutcome,
    ExportFormat,
    ExportResult,
    ExportValidation,
    FilterStats,
    Page,
)
from chatlog_admin.services import export_service, filter_engine
from chatlog_admin.services.appointment_linker import (
    AppointmentLinker,
    AppointmentStore,
    merge_appointments,
)
from chatlog_admin.services.deletion_service import (
    ConfirmationGate,
    DeletionReconciler,
    MessageSource,
)
from chatlog_admin.services.pagination import ViewStateManager, paginate
from chatlog_admin.services.refresh_scheduler import InteractionTracker
from chatlog_admin.services.session_aggregator import aggregate
from chatlog_admin.utils.logger import action_context, get_logger
from chatlog_admin.utils.messages import Notifier

logger = get_logger(__name__)


class ChatLogsService:
    """
    Stateful console over the chat log store.

    Loads are last-write-wins: each load takes a generation number and a
    result older than the last applied one is discarded. Local removals
    also invalidate loads already in flight.
    """

    def __init__(
        self,
        profile: DeviceProfile,
        message_source: MessageSource,
        appointment_store: AppointmentStore,
        preference_store: PreferenceStore,
        notifier: Notifier | None = None,
        interactions: InteractionTracker | None = None,
        confirmation_debounce_ms: int = 100,
        reload_delay_ms: int = 0,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            profile: Active device profile
            message_source: Store of chat messages
            appointment_store: Store answering appointment lookups
            preference_store: Persistence for view mode and page sizes
            notifier: Notification publisher (created for the profile if None)
            interactions: Tracker of open modals shared with the refresh scheduler
            confirmation_debounce_ms: Window in which auto-close is ignored
            reload_delay_ms: Pause before the post-delete verification reload
            clock: Monotonic clock for the confirmation debounce
        """
        self.profile = profile
        self.message_source = message_source
        self.notifier = notifier or Notifier(profile)
        self.interactions = interactions or InteractionTracker()

        self.linker = AppointmentLinker(appointment_store, profile)
        self.view = ViewStateManager(profile, preference_store)
        self.gate = ConfirmationGate(confirmation_debounce_ms, clock, self.interactions)
        self.deletions = DeletionReconciler(
            message_source,
            self.notifier,
            profile,
            remove_local=self._remove_local,
            reload=self._reload_session_ids,
            reload_delay_ms=reload_delay_ms,
        )

        self.messages: list[Message] = []
        self.aggregates: list[SessionAggregate] = []
        self.selected_session_id: str | None = None

        self._next_generation = 0
        self._applied_generation = 0
        self._foreground_loads = 0

    @property
    def is_loading(self) -> bool:
        return self._foreground_loads > 0

    @property
    def view_state(self) -> ViewState:
        return self.view.state

    @property
    def selected(self) -> SessionAggregate | None:
        return self._find(self.selected_session_id)

    def _find(self, session_id: str | None) -> SessionAggregate | None:
        if session_id is None:
            return None
        return next((a for a in self.aggregates if a.session_id == session_id), None)

    # Loading

    async def load(
        self,
        session_id: str | None = None,
        background: bool = False,
        now: datetime | None = None,
    ) -> list[SessionAggregate] | None:
        """
        Fetches messages, rebuilds aggregates and links appointments.

        A foreground load toggles is_loading, drops memoized appointment
        links, and on failure publishes a notification and re-raises. A
        background load never touches is_loading and only logs failures.
        Loading one session replaces that session's messages in place.

        Args:
            session_id: Reload only this session when given
            background: True for refreshes the operator did not ask for
            now: Reference time for the fetch day limit

        Returns:
            The applied aggregates, or None if the load failed in the
            background or was superseded by a newer one

        Raises:
            NotAuthenticatedError: Foreground load without a credential
            NetworkError: Foreground load that failed after retries
        """
        self._next_generation += 1
        generation = self._next_generation

        with action_context("refresh" if background else "load"):
            if not background:
                self._foreground_loads += 1
                self.linker.invalidate()
            try:
                fetched = await self.message_source.fetch(
                    self.profile, session_id=session_id, now=now
                )
                if session_id:
                    fetched = [
                        m for m in self.messages if m.session_id != session_id
                    ] + fetched
                aggregates = aggregate(fetched, self.profile)
                link_map = await self.linker.link_appointments(
                    a.session_id for a in aggregates
                )
                linked = merge_appointments(aggregates, link_map)
            except ChatLogsError as e:
                if background:
                    logger.warning("background_load_failed", error=str(e))
                    return None
                logger.error("load_failed", error=str(e), session_id=session_id)
                if isinstance(e, NotAuthenticatedError):
                    self.notifier.error("not_authenticated")
                else:
                    self.notifier.error("load_failed", error=str(e))
                raise
            finally:
                if not background:
                    self._foreground_loads -= 1

            if generation <= self._applied_generation:
                logger.info(
                    "stale_load_discarded",
                    generation=generation,
                    applied_generation=self._applied_generation,
                )
                return None

            self._applied_generation = generation
            self.messages = fetched
            self.aggregates = linked
            if self._find(self.selected_session_id) is None:
                self.selected_session_id = None

            logger.info(
                "load_applied",
                generation=generation,
                sessions=len(linked),
                messages=len(fetched),
                background=background,
            )
            return linked

    async def load_all(self) -> list[SessionAggregate] | None:
        return await self.load()

    async def refresh(self) -> list[SessionAggregate] | None:
        """Background reload used by the refresh scheduler."""
        return await self.load(background=True)

    async def _reload_session_ids(self) -> list[str] | None:
        result = await self.load(background=True)
        if result is None:
            return None
        return [a.session_id for a in result]

    def _remove_local(self, session_ids: set[str]) -> None:
        self.messages = [m for m in self.messages if m.session_id not in session_ids]
        self.aggregates = [a for a in self.aggregates if a.session_id not in session_ids]
        if self.selected_session_id in session_ids:
            self.selected_session_id = None
        # loads started before the removal must not bring the sessions back
        self._applied_generation = self._next_generation
        logger.info("sessions_removed_locally", count=len(session_ids))

    # Selection and deletion

    def select(self, session_id: str | None) -> SessionAggregate | None:
        """
        Selects a loaded session, or clears the selection with None.

        Raises:
            KeyError: If the session is not loaded
        """
        if session_id is None:
            self.selected_session_id = None
            return None
        found = self._find(session_id)
        if found is None:
            raise KeyError(session_id)
        self.selected_session_id = session_id
        return found

    def request_delete(self, session_id: str) -> None:
        """Opens the delete confirmation for a session."""
        self.gate.open(session_id)

    def dismiss_delete(self, auto: bool = False) -> bool:
        """
        Closes the delete confirmation.

        Args:
            auto: True when the close was not explicitly requested; ignored
                inside the debounce window

        Returns:
            True if the confirmation closed
        """
        if auto:
            return self.gate.request_auto_close()
        self.gate.cancel()
        return True

    async def confirm_delete(self) -> DeleteOutcome:
        session_id = self.gate.confirm()
        try:
            return await self.delete(session_id)
        finally:
            self.gate.complete()

    async def delete(self, session_id: str) -> DeleteOutcome:
        with action_context("delete"):
            return await self.deletions.delete(session_id)

    async def bulk_delete(self, session_ids: Iterable[str]) -> BulkDeleteResult:
        """
        Raises:
            ValidationLimitExceededError: If over the tier's bulk cap
            NotAuthenticatedError: If no credential is available
        """
        with action_context("bulk_delete"):
            return await self.deletions.bulk_delete(session_ids)

    def interaction(self, name: str):
        """Context manager marking a modal (detail, edit) as open."""
        return self.interactions.active(name)

    # View state

    def set_search_term(self, term: str) -> ViewState:
        return self.view.set_search_term(term)

    def set_filter(self, category: Category) -> ViewState:
        return self.view.set_filter(category)

    def set_date_range(self, start: date | None, end: date | None = None) -> ViewState:
        return self.view.set_date_range(start, end)

    def set_sort(self, sort_key: SortKey, sort_order: SortOrder | None = None) -> ViewState:
        return self.view.set_sort(sort_key, sort_order)

    def clear_filters(self) -> ViewState:
        return self.view.clear_filters()

    def set_view_mode(self, view_mode: ViewMode) -> ViewState:
        return self.view.set_view_mode(view_mode)

    def go_to_page(self, page: int) -> ViewState:
        return self.view.go_to_page(page)

    def change_page_size(self, page_size: int) -> ViewState:
        return self.view.change_page_size(page_size)

    def filtered(self, now: datetime | None = None) -> list[SessionAggregate]:
        return filter_engine.apply(self.aggregates, self.view.state, self.profile, now)

    def current_page(self, now: datetime | None = None) -> Page:
        state = self.view.state
        return paginate(self.filtered(now), state.page, state.page_size)

    def filter_stats(self, now: datetime | None = None) -> FilterStats:
        return filter_engine.filter_stats(
            self.aggregates, self.filtered(now), self.profile, now
        )

    def search_suggestions(self, term: str) -> list[str]:
        return filter_engine.search_suggestions(self.aggregates, term, self.profile)

    def find_sessions(self, **criteria) -> list[SessionAggregate]:
        return filter_engine.find_sessions_by_criteria(self.aggregates, **criteria)

    def recent_sessions(self, days: int, now: datetime | None = None) -> list[SessionAggregate]:
        return filter_engine.filter_sessions_by_days(self.aggregates, days, self.profile, now)

    # Export and analysis

    def export_selection(
        self, session_ids: Iterable[str], fmt: ExportFormat, now: datetime | None = None
    ) -> ExportResult:
        """
        Exports the messages of the selected sessions.

        Raises:
            ValidationLimitExceededError: If over the tier's export cap
            ExportError: If the selection has no messages
        """
        with action_context("export"):
            return self._export(
                lambda: export_service.export_selection(
                    self.messages, session_ids, fmt, self.profile, now
                ),
                fmt,
            )

    def export_filtered(self, fmt: ExportFormat, now: datetime | None = None) -> ExportResult:
        """Exports one summary row per session in the current filtered view."""
        with action_context("export"):
            return self._export(
                lambda: export_service.export_summaries(
                    self.filtered(now), fmt, self.profile, now
                ),
                fmt,
            )

    def export_conversation(
        self, session_id: str, fmt: ExportFormat, now: datetime | None = None
    ) -> ExportResult:
        """
        Exports one loaded conversation with all its messages.

        Raises:
            KeyError: If the session is not loaded
        """
        item = self._find(session_id)
        if item is None:
            raise KeyError(session_id)
        with action_context("export"):
            return self._export(
                lambda: export_service.export_single_conversation(item, fmt, now), fmt
            )

    def export_appointments(self, fmt: ExportFormat, now: datetime | None = None) -> ExportResult:
        with action_context("export"):
            return self._export(
                lambda: export_service.export_appointment_conversations(
                    self.aggregates, fmt, self.profile, now
                ),
                fmt,
            )

    def export_date_range(
        self,
        start: datetime,
        end: datetime,
        fmt: ExportFormat,
        now: datetime | None = None,
    ) -> ExportResult:
        with action_context("export"):
            return self._export(
                lambda: export_service.export_conversations_by_date_range(
                    self.aggregates, start, end, fmt, self.profile, now
                ),
                fmt,
            )

    def export_preview(self, count: int = 5, now: datetime | None = None) -> list[dict]:
        """Summary records of the first sessions in the current filtered view."""
        return export_service.export_preview(self.filtered(now), self.profile, count)

    def validate_export(self, now: datetime | None = None) -> ExportValidation:
        return export_service.validate_export(self.filtered(now))

    def _export(self, run: Callable[[], ExportResult], fmt: ExportFormat) -> ExportResult:
        try:
            result = run()
        except ValidationLimitExceededError as e:
            self.notifier.error("export_limit", limit=e.limit)
            raise
        except ExportError:
            self.notifier.error("export_empty")
            raise
        except ValueError as e:
            logger.error("export_failed", format=fmt, error=str(e))
            self.notifier.error("export_failed", error=str(e))
            raise
        self.notifier.success(
            "export_succeeded", count=result.session_count, format=fmt.upper()
        )
        return result

    def analyze(self, tz: tzinfo | None = None) -> ConversationAnalysis:
        return export_service.analyze_conversations(self.aggregates, self.profile, tz)

    def stats(self, now: datetime | None = None) -> ConversationStats:
        return export_service.conversation_stats(self.aggregates, now)
