"""
Unit tests for deletion reconciliation and the confirmation gate.
"""

import pytest
from unittest.mock import AsyncMock, Mock

from chatlog_admin.errors import (
    NetworkError,
    NotAuthenticatedError,
    ValidationLimitExceededError,
)
from chatlog_admin.services.deletion_service import ConfirmationGate, DeletionReconciler
from chatlog_admin.services.refresh_scheduler import InteractionTracker
from chatlog_admin.utils.messages import Notifier


class FakeClock:
    def __init__(self):
        self.now = 100.0

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms / 1000


@pytest.fixture
def message_source():
    source = Mock()
    source.ensure_authenticated = Mock(return_value="token")
    source.delete = AsyncMock(return_value=1)
    return source


@pytest.fixture
def remove_local():
    return Mock()


@pytest.fixture
def reload():
    return AsyncMock(return_value=["S9"])


@pytest.fixture
def reconciler(message_source, full_profile, remove_local, reload):
    return DeletionReconciler(
        message_source, Notifier(full_profile), full_profile, remove_local, reload
    )


class TestConfirmationGate:
    """Tests for the debounced confirmation dialog."""

    def test_auto_close_ignored_inside_debounce(self):
        """A close fired right after opening should not dismiss the dialog."""
        # Arrange
        clock = FakeClock()
        gate = ConfirmationGate(debounce_ms=100, clock=clock)
        gate.open("S1")

        # Act
        clock.advance(50)
        closed = gate.request_auto_close()

        # Assert
        assert closed is False
        assert gate.is_open
        assert gate.session_id == "S1"

    def test_auto_close_after_debounce(self):
        clock = FakeClock()
        gate = ConfirmationGate(debounce_ms=100, clock=clock)
        gate.open("S1")

        clock.advance(150)

        assert gate.request_auto_close() is True
        assert gate.state == "idle"

    def test_explicit_cancel_always_closes(self):
        clock = FakeClock()
        gate = ConfirmationGate(debounce_ms=100, clock=clock)
        gate.open("S1")

        gate.cancel()

        assert gate.state == "idle"
        assert gate.session_id is None

    def test_confirm_moves_to_requesting(self):
        gate = ConfirmationGate(clock=FakeClock())
        gate.open("S1")

        assert gate.confirm() == "S1"
        assert gate.state == "requesting"

        gate.complete()
        assert gate.state == "idle"

    def test_confirm_without_dialog_fails(self):
        with pytest.raises(RuntimeError):
            ConfirmationGate(clock=FakeClock()).confirm()

    def test_registers_as_interaction(self):
        """An open dialog should hold off background refreshes."""
        interactions = InteractionTracker()
        gate = ConfirmationGate(clock=FakeClock(), interactions=interactions)

        gate.open("S1")
        assert interactions.in_progress

        gate.confirm()
        assert not interactions.in_progress


class TestDelete:
    """Tests for single deletes."""

    @pytest.mark.asyncio
    async def test_commit_removes_locally_and_verifies(
        self, reconciler, message_source, remove_local, reload, full_profile
    ):
        # Act
        outcome = await reconciler.delete("S1")

        # Assert
        assert outcome.state == "committed"
        message_source.delete.assert_awaited_once_with("S1", full_profile)
        remove_local.assert_called_once_with({"S1"})
        reload.assert_awaited_once()
        notification = reconciler.notifier.current
        assert notification.kind == "success"
        assert notification.duration_ms is None

    @pytest.mark.asyncio
    async def test_failure_leaves_local_state(self, reconciler, message_source, remove_local, reload):
        """Failed deletes must not touch local state."""
        # Arrange
        message_source.delete.side_effect = NetworkError("boom")

        # Act
        outcome = await reconciler.delete("S1")

        # Assert
        assert outcome.state == "failed"
        assert outcome.error == "boom"
        remove_local.assert_not_called()
        reload.assert_not_awaited()
        assert reconciler.notifier.current.kind == "error"
        assert reconciler.notifier.current.message == "Failed to delete conversation: boom"

    @pytest.mark.asyncio
    async def test_not_authenticated(self, reconciler, message_source, remove_local):
        message_source.delete.side_effect = NotAuthenticatedError("no token")

        outcome = await reconciler.delete("S1")

        assert outcome.state == "failed"
        remove_local.assert_not_called()

    @pytest.mark.asyncio
    async def test_reappearing_session_logged(self, reconciler, reload):
        reload.return_value = ["S1"]

        outcome = await reconciler.delete("S1")

        assert outcome.state == "committed"


class TestBulkDelete:
    """Tests for sequential bulk deletes."""

    @pytest.mark.asyncio
    async def test_scenario_partial_failure(self, reconciler, message_source, remove_local):
        """One failing item out of four is reported per item."""
        # Arrange
        async def delete(session_id, profile):
            if session_id == "C":
                raise NetworkError("timeout")
            return 1

        message_source.delete.side_effect = delete

        # Act
        result = await reconciler.bulk_delete(["A", "B", "C", "D"])

        # Assert
        assert result.succeeded == 3
        assert result.failed == 1
        assert result.state == "partial"
        assert result.failed_ids == ["C"]
        remove_local.assert_called_once_with({"A", "B", "D"})
        assert reconciler.notifier.current.message == "Deleted 3 conversations. 1 failed to delete."

    @pytest.mark.asyncio
    async def test_over_cap_rejected_before_any_request(
        self, message_source, compact_profile, remove_local, reload
    ):
        reconciler = DeletionReconciler(
            message_source, Notifier(compact_profile), compact_profile, remove_local, reload
        )

        with pytest.raises(ValidationLimitExceededError) as exc_info:
            await reconciler.bulk_delete(["A", "B", "C", "D"])

        assert exc_info.value.limit == 3
        assert exc_info.value.requested == 4
        message_source.delete.assert_not_awaited()
        assert reconciler.notifier.current.message == "Max 3 at once"

    @pytest.mark.asyncio
    async def test_not_authenticated_before_any_request(self, reconciler, message_source):
        message_source.ensure_authenticated.side_effect = NotAuthenticatedError("no token")

        with pytest.raises(NotAuthenticatedError):
            await reconciler.bulk_delete(["A", "B"])

        message_source.delete.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_all_succeed(self, reconciler, message_source):
        result = await reconciler.bulk_delete(["A", "B", "A"])

        assert result.state == "committed"
        assert result.succeeded_ids == ["A", "B"]
        assert message_source.delete.await_count == 2

    @pytest.mark.asyncio
    async def test_all_fail_removes_nothing(self, reconciler, message_source, remove_local, reload):
        message_source.delete.side_effect = NetworkError("down")

        result = await reconciler.bulk_delete(["A", "B"])

        assert result.state == "failed"
        remove_local.assert_not_called()
        reload.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_empty_request(self, reconciler, message_source):
        result = await reconciler.bulk_delete([])

        assert result.succeeded == result.failed == 0
        message_source.ensure_authenticated.assert_not_called()
