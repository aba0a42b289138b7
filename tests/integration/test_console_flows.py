"""
Integration tests for chat logs console workflows.
Tests complete operator flows from the builder down to a fake Supabase table.
"""

import csv
import io

import pytest
from unittest.mock import Mock, patch

from chatlog_admin import config
from chatlog_admin.builder import build_chat_logs_service
from chatlog_admin.database.auth import StaticCredentialProvider
from chatlog_admin.database.preferences import InMemoryPreferenceStore
from chatlog_admin.errors import NotAuthenticatedError
from chatlog_admin.services.refresh_scheduler import RefreshScheduler


class FakeQuery:
    """Minimal PostgREST query builder over a list of rows."""

    def __init__(self, table: "FakeTable"):
        self.table = table
        self.filters: list[tuple[str, object]] = []
        self.members: tuple[str, set] | None = None
        self.deleting = False

    def select(self, *columns):
        return self

    def order(self, *args, **kwargs):
        return self

    def limit(self, count):
        return self

    def gte(self, column, value):
        return self

    def eq(self, column, value):
        self.filters.append((column, value))
        return self

    def in_(self, column, values):
        self.members = (column, set(values))
        return self

    def delete(self):
        self.deleting = True
        return self

    def _matches(self, row: dict) -> bool:
        if any(row.get(column) != value for column, value in self.filters):
            return False
        if self.members is not None:
            column, values = self.members
            return row.get(column) in values
        return True

    def execute(self):
        if self.deleting and any(value in self.table.failing for _, value in self.filters):
            raise ConnectionError("connection reset")
        matched = [row for row in self.table.rows if self._matches(row)]
        if self.deleting:
            self.table.rows = [row for row in self.table.rows if row not in matched]
        return Mock(data=matched)


class FakeTable:
    def __init__(self, rows: list[dict]):
        self.rows = rows
        self.failing: set[str] = set()

    def query(self) -> FakeQuery:
        return FakeQuery(self)


@pytest.fixture
def settings_env(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("SUPABASE_URL", "https://example.supabase.co")
    monkeypatch.setenv("SUPABASE_SERVICE_KEY", "service-key")
    monkeypatch.setenv("ADMIN_ACCESS_TOKEN", "admin-token")
    config.reset_settings()
    yield
    config.reset_settings()


@pytest.fixture
def tables(sample_rows):
    return {
        "chat_logs": FakeTable(sample_rows),
        "appointments": FakeTable(
            [
                {
                    "id": 9,
                    "chat_session_id": "s-bob",
                    "name": "Bob Jones",
                    "date": "2024-06-20",
                    "time": "10:00",
                }
            ]
        ),
    }


@pytest.fixture
def console(settings_env, tables, full_profile):
    client = Mock()
    client.postgrest = Mock()
    client.table.side_effect = lambda name: tables[name].query()

    with patch("chatlog_admin.builder.create_client", return_value=client), patch(
        "chatlog_admin.builder.resolve_device_profile",
        return_value=full_profile,
    ):
        yield build_chat_logs_service(
            "desktop", preference_store=InMemoryPreferenceStore()
        ), client


@pytest.mark.integration
class TestBrowseFlow:
    """Tests for loading, linking, filtering and paging."""

    @pytest.mark.asyncio
    async def test_load_link_filter_paginate(self, console, now):
        # Arrange
        service, client = console

        # Act
        await service.load(now=now)
        service.set_filter("has_appointment")
        page = service.current_page(now)

        # Assert
        client.postgrest.auth.assert_called_with("admin-token")
        assert [a.session_id for a in service.aggregates] == [
            "s-alice", "s-bob", "s-anon", "s-bad",
        ]
        assert [a.session_id for a in page.items] == ["s-bob"]
        assert page.items[0].appointment_id == 9
        assert service.filter_stats(now).filtered == 1

    @pytest.mark.asyncio
    async def test_search_and_view_mode(self, console, now):
        service, _ = console
        await service.load(now=now)

        service.set_view_mode("table")
        service.set_search_term("alice")

        assert [a.session_id for a in service.filtered(now)] == ["s-alice"]
        assert service.view_state.page_size == 5
        assert service.view.preferences.get("chatLogs.viewMode") == "table"

    @pytest.mark.asyncio
    async def test_missing_token_blocks_load(self, settings_env, tables):
        client = Mock()
        client.table.side_effect = lambda name: tables[name].query()

        with patch("chatlog_admin.builder.create_client", return_value=client):
            service = build_chat_logs_service(
                "desktop",
                credential_provider=StaticCredentialProvider(None),
                preference_store=InMemoryPreferenceStore(),
            )

        with pytest.raises(NotAuthenticatedError):
            await service.load()

        assert service.notifier.current.kind == "error"
        assert not service.is_loading
        assert await service.refresh() is None


@pytest.mark.integration
class TestDeleteFlow:
    """Tests for confirmed and bulk deletes against the store."""

    @pytest.mark.asyncio
    async def test_confirmed_delete(self, console, tables, now):
        # Arrange
        service, _ = console
        await service.load(now=now)
        service.select("s-alice")

        # Act
        service.request_delete("s-alice")
        closed = service.dismiss_delete(auto=True)
        outcome = await service.confirm_delete()

        # Assert
        assert closed is False
        assert outcome.committed
        assert all(row["session_id"] != "s-alice" for row in tables["chat_logs"].rows)
        assert "s-alice" not in [a.session_id for a in service.aggregates]
        assert service.selected is None
        assert service.notifier.current.message == "Conversation deleted successfully"
        assert service.notifier.current.duration_ms is None

    @pytest.mark.asyncio
    async def test_bulk_delete_partial(self, console, tables, now):
        """One failing session is kept while the others are removed."""
        # Arrange
        service, _ = console
        await service.load(now=now)
        tables["chat_logs"].failing = {"s-bob"}

        # Act
        result = await service.bulk_delete(["s-alice", "s-bob", "s-bad"])

        # Assert
        assert result.state == "partial"
        assert result.failed_ids == ["s-bob"]
        assert [a.session_id for a in service.aggregates] == ["s-bob", "s-anon"]
        assert service.notifier.current.message == (
            "Deleted 2 conversations. 1 failed to delete."
        )

    @pytest.mark.asyncio
    async def test_refresh_held_while_confirming(self, console, now):
        service, _ = console
        await service.load(now=now)
        scheduler = RefreshScheduler(service.refresh, service.interactions, service.profile)

        service.request_delete("s-anon")
        held = await scheduler.run_once()
        service.dismiss_delete()
        ran = await scheduler.run_once()

        assert (held, ran) == (False, True)


@pytest.mark.integration
class TestExportFlow:
    @pytest.mark.asyncio
    async def test_export_selection_csv(self, console, now):
        service, _ = console
        await service.load(now=now)

        result = service.export_selection(["s-alice", "s-bob"], "csv", now)

        rows = list(csv.reader(io.StringIO(result.content)))
        assert len(rows) == 1 + 5
        assert {row[0] for row in rows[1:]} == {"s-alice", "s-bob"}
        assert service.notifier.current.message == (
            "Successfully exported 2 conversations as CSV"
        )

    @pytest.mark.asyncio
    async def test_export_filtered_summaries(self, console, now):
        service, _ = console
        await service.load(now=now)
        service.set_filter("has_appointment")

        result = service.export_filtered("json", now)

        assert result.session_count == 1
        assert '"sessionId": "s-bob"' in result.content
