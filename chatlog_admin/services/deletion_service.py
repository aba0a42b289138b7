"""
Deletion reconciliation.
Local state follows the backing store: nothing is removed locally until the
store has confirmed the delete.
"""

import asyncio
import time
from typing import Awaitable, Callable, Iterable, Literal, Protocol

from chatlog_admin.errors import (
    ChatLogsError,
    NotAuthenticatedError,
    ValidationLimitExceededError,
)
from chatlog_admin.models.domain import DeviceProfile
from chatlog_admin.models.schemas import BulkDeleteResult, DeleteOutcome
from chatlog_admin.services.refresh_scheduler import InteractionTracker
from chatlog_admin.utils.logger import get_logger
from chatlog_admin.utils.messages import Notifier

logger = get_logger(__name__)

GateState = Literal["idle", "confirming", "requesting"]

CONFIRMATION_INTERACTION = "delete_confirmation"


class MessageSource(Protocol):
    def ensure_authenticated(self) -> str: ...

    async def delete(self, session_id: str, profile: DeviceProfile) -> int: ...


class ConfirmationGate:
    """
    Delete confirmation dialog state.

    An automatic close (focus loss, re-render) arriving within the debounce
    window after opening is ignored; an explicit cancel always closes.
    """

    def __init__(
        self,
        debounce_ms: int = 100,
        clock: Callable[[], float] = time.monotonic,
        interactions: InteractionTracker | None = None,
    ):
        self.debounce_ms = debounce_ms
        self.clock = clock
        self.interactions = interactions
        self.state: GateState = "idle"
        self.session_id: str | None = None
        self._opened_at = 0.0

    @property
    def is_open(self) -> bool:
        return self.state == "confirming"

    def open(self, session_id: str) -> None:
        if self.state == "requesting":
            raise RuntimeError("A delete is already in progress")
        if self.state == "idle" and self.interactions is not None:
            self.interactions.begin(CONFIRMATION_INTERACTION)
        self.state = "confirming"
        self.session_id = session_id
        self._opened_at = self.clock()
        logger.debug("delete_confirmation_opened", session_id=session_id)

    def request_auto_close(self) -> bool:
        """
        Handles a close that the operator did not explicitly ask for.

        Returns:
            True if the dialog closed, False if the request was ignored
        """
        if not self.is_open:
            return False
        elapsed_ms = (self.clock() - self._opened_at) * 1000
        if elapsed_ms < self.debounce_ms:
            logger.debug(
                "delete_confirmation_auto_close_ignored",
                session_id=self.session_id,
                elapsed_ms=round(elapsed_ms, 1),
            )
            return False
        self._close()
        return True

    def cancel(self) -> None:
        if self.is_open:
            self._close()

    def confirm(self) -> str:
        """
        Accepts the pending delete.

        Returns:
            The session id to delete

        Raises:
            RuntimeError: If no confirmation is pending
        """
        if not self.is_open or self.session_id is None:
            raise RuntimeError("No delete is awaiting confirmation")
        self.state = "requesting"
        self._end_interaction()
        return self.session_id

    def complete(self) -> None:
        """Returns the gate to idle once the delete request has settled."""
        self.state = "idle"
        self.session_id = None

    def _close(self) -> None:
        logger.debug("delete_confirmation_closed", session_id=self.session_id)
        self._end_interaction()
        self.state = "idle"
        self.session_id = None

    def _end_interaction(self) -> None:
        if self.interactions is not None:
            self.interactions.end(CONFIRMATION_INTERACTION)


class DeletionReconciler:
    """
    Deletes sessions from the backing store and reconciles local state.

    After a committed delete the local copy is reloaded in the background
    and checked for sessions that came back.
    """

    def __init__(
        self,
        message_source: MessageSource,
        notifier: Notifier,
        profile: DeviceProfile,
        remove_local: Callable[[set[str]], None],
        reload: Callable[[], Awaitable[Iterable[str] | None]],
        reload_delay_ms: int = 0,
    ):
        """
        Args:
            message_source: Store that performs the deletes
            notifier: Publishes tier-worded outcomes
            profile: Device profile (bulk cap, retry policy)
            remove_local: Drops sessions from local state
            reload: Background reload returning the session ids now present,
                or None if the reload failed
            reload_delay_ms: Pause before the verification reload
        """
        self.message_source = message_source
        self.notifier = notifier
        self.profile = profile
        self.remove_local = remove_local
        self.reload = reload
        self.reload_delay_ms = reload_delay_ms

    async def delete(self, session_id: str) -> DeleteOutcome:
        """
        Deletes one session.

        A failed delete leaves local state untouched and publishes an error
        notification; a committed delete removes the session locally,
        publishes a success notification and then verifies with a reload.

        Returns:
            DeleteOutcome in state "committed" or "failed"
        """
        try:
            await self.message_source.delete(session_id, self.profile)
        except NotAuthenticatedError as e:
            self.notifier.error("not_authenticated")
            return DeleteOutcome(session_id=session_id, state="failed", error=str(e))
        except ChatLogsError as e:
            logger.error("delete_failed", session_id=session_id, error=str(e))
            self.notifier.error("delete_failed", error=str(e))
            return DeleteOutcome(session_id=session_id, state="failed", error=str(e))

        self.remove_local({session_id})
        self.notifier.success("delete_succeeded", sticky=True)
        await self._verify_removed({session_id})
        return DeleteOutcome(session_id=session_id, state="committed")

    async def bulk_delete(self, session_ids: Iterable[str]) -> BulkDeleteResult:
        """
        Deletes several sessions one after another.

        Args:
            session_ids: Sessions to delete; duplicates are ignored

        Returns:
            Per-item accounting; state is "partial" when some deletes failed

        Raises:
            ValidationLimitExceededError: If more ids than the tier allows
            NotAuthenticatedError: If no credential is available
        """
        ids = list(dict.fromkeys(session_ids))
        if not ids:
            return BulkDeleteResult()

        if len(ids) > self.profile.max_bulk_ops:
            self.notifier.error("bulk_delete_limit", limit=self.profile.max_bulk_ops)
            raise ValidationLimitExceededError(
                "bulk_delete", self.profile.max_bulk_ops, len(ids)
            )

        try:
            self.message_source.ensure_authenticated()
        except NotAuthenticatedError:
            self.notifier.error("not_authenticated")
            raise

        result = BulkDeleteResult()
        for session_id in ids:
            try:
                await self.message_source.delete(session_id, self.profile)
            except ChatLogsError as e:
                logger.warning("bulk_delete_item_failed", session_id=session_id, error=str(e))
                result.failed_ids.append(session_id)
            else:
                result.succeeded_ids.append(session_id)

        logger.info(
            "bulk_delete_finished",
            requested=len(ids),
            succeeded=result.succeeded,
            failed=result.failed,
            state=result.state,
        )

        counts = {
            "succeeded": result.succeeded,
            "failed": result.failed,
            "requested": len(ids),
        }
        if result.state == "committed":
            self.notifier.success("bulk_delete_succeeded", sticky=True, **counts)
        elif result.state == "partial":
            self.notifier.error("bulk_delete_partial", **counts)
        else:
            self.notifier.error("bulk_delete_failed", **counts)

        if result.succeeded_ids:
            removed = set(result.succeeded_ids)
            self.remove_local(removed)
            await self._verify_removed(removed)

        return result

    async def _verify_removed(self, session_ids: set[str]) -> None:
        if self.reload_delay_ms > 0:
            await asyncio.sleep(self.reload_delay_ms / 1000)

        present = await self.reload()
        if present is None:
            return

        reappeared = session_ids.intersection(present)
        if reappeared:
            logger.warning("deleted_sessions_reappeared", session_ids=sorted(reappeared))
