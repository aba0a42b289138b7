"""
Appointment linking.
Joins sessions to appointments by session id through one batched lookup.
"""

from typing import Iterable, Protocol

from chatlog_admin.errors import ChatLogsError
from chatlog_admin.models.domain import AppointmentRef, DeviceProfile, SessionAggregate
from chatlog_admin.utils.logger import get_logger

logger = get_logger(__name__)


class AppointmentStore(Protocol):
    async def batch_lookup(
        self, session_ids: list[str], profile: DeviceProfile
    ) -> dict[str, AppointmentRef]: ...


class AppointmentLinker:
    """
    Resolves appointment links for a set of sessions.

    Only the result for the most recent id set is memoized; a failed lookup
    yields an empty map and is not cached, so the next call retries.
    """

    def __init__(self, appointment_store: AppointmentStore, profile: DeviceProfile):
        """
        Args:
            appointment_store: Store answering batch lookups
            profile: Device profile providing the retry policy
        """
        self.appointment_store = appointment_store
        self.profile = profile
        self._memo: tuple[frozenset[str], dict[str, AppointmentRef]] | None = None

    async def link_appointments(
        self, session_ids: Iterable[str]
    ) -> dict[str, AppointmentRef]:
        """
        Looks up appointments for the given sessions.

        Args:
            session_ids: Session identifiers; duplicates are ignored

        Returns:
            Map of session id to appointment, empty when none match or the
            store is unavailable
        """
        key = frozenset(session_ids)
        if not key:
            return {}

        if self._memo is not None and self._memo[0] == key:
            logger.debug("appointment_links_cached", sessions=len(key))
            return self._memo[1]

        try:
            link_map = await self.appointment_store.batch_lookup(sorted(key), self.profile)
        except ChatLogsError as e:
            logger.warning("appointment_lookup_failed", sessions=len(key), error=str(e))
            return {}

        self._memo = (key, link_map)
        return link_map

    def invalidate(self) -> None:
        """Drops the memoized lookup so new bookings become visible."""
        self._memo = None


def merge_appointments(
    aggregates: Iterable[SessionAggregate], link_map: dict[str, AppointmentRef]
) -> list[SessionAggregate]:
    """
    Applies appointment links to aggregates without mutating them.
    has_appointment is true exactly when the session id is in the map.
    """
    merged = []
    for item in aggregates:
        ref = link_map.get(item.session_id)
        merged.append(
            item.model_copy(
                update={
                    "has_appointment": ref is not None,
                    "appointment_id": ref.appointment_id if ref else None,
                }
            )
        )
    return merged
