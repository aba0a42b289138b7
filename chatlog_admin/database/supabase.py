"""
Supabase gateways for chat messages and appointments.
Every call runs with the device profile's timeout and fixed-delay retry policy.
"""

import asyncio
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from pydantic import ValidationError
from supabase import Client
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from chatlog_admin.database.auth import CredentialProvider
from chatlog_admin.errors import NetworkError, NetworkTimeoutError, NotAuthenticatedError
from chatlog_admin.models.domain import AppointmentRef, DeviceProfile, Message
from chatlog_admin.utils.logger import get_logger

logger = get_logger(__name__)


class SupabaseGateway:
    """
    Base class running blocking Supabase queries off the event loop.
    Retries timeouts and transport failures with a fixed delay, not backoff.
    """

    def __init__(self, client: Client, table: str):
        """
        Args:
            client: Supabase client instance
            table: Table this gateway reads and writes
        """
        self.client = client
        self.table = table

    async def _execute(
        self,
        operation: str,
        build_query: Callable[[], Any],
        profile: DeviceProfile,
    ) -> Any:
        """
        Executes a query with timeout and bounded retry.

        Args:
            operation: Operation name for logs
            build_query: Returns a fresh, executable query builder per attempt
            profile: Device profile providing timeout and retry limits

        Returns:
            Supabase API response

        Raises:
            NetworkTimeoutError: If the final attempt timed out
            NetworkError: If the final attempt failed
        """
        start_time = time.time()

        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(profile.max_retries),
            wait=wait_fixed(profile.retry_delay_seconds),
            retry=retry_if_exception_type(NetworkError),
            reraise=True,
        ):
            with attempt:
                attempt_number = attempt.retry_state.attempt_number
                try:
                    logger.info(
                        "store_call_started",
                        operation=operation,
                        table=self.table,
                        attempt=attempt_number,
                        timeout_ms=profile.timeout_ms,
                    )
                    return await asyncio.wait_for(
                        asyncio.to_thread(lambda: build_query().execute()),
                        timeout=profile.timeout_seconds,
                    )

                except asyncio.TimeoutError as e:
                    logger.warning(
                        "store_call_timeout",
                        operation=operation,
                        attempt=attempt_number,
                        elapsed=time.time() - start_time,
                    )
                    raise NetworkTimeoutError(
                        f"{operation} exceeded timeout of {profile.timeout_ms}ms"
                    ) from e
                except Exception as e:
                    logger.warning(
                        "store_call_failed",
                        operation=operation,
                        attempt=attempt_number,
                        error=str(e),
                    )
                    raise NetworkError(f"{operation} failed: {e}") from e


class SupabaseMessageSource(SupabaseGateway):
    """
    Reads and deletes chat messages.
    Requires a bearer credential; without one no request is sent.
    """

    def __init__(
        self,
        client: Client,
        credentials: CredentialProvider,
        table: str = "chat_logs",
    ):
        super().__init__(client, table)
        self.credentials = credentials

    def ensure_authenticated(self) -> str:
        """
        Applies the operator's bearer token to the client.

        Returns:
            The bearer token

        Raises:
            NotAuthenticatedError: If no token is available
        """
        token = self.credentials.get_token()
        if not token:
            logger.warning("not_authenticated", table=self.table)
            raise NotAuthenticatedError("No valid admin credential")
        self.client.postgrest.auth(token)
        return token

    async def fetch(
        self,
        profile: DeviceProfile,
        session_id: str | None = None,
        now: datetime | None = None,
    ) -> list[Message]:
        """
        Fetches messages, newest first, bounded by the profile's limits.

        Args:
            profile: Device profile (fetch limit, day limit, retry policy)
            session_id: Restrict to one session when given
            now: Reference time for the day-limit cut-off

        Returns:
            Parsed messages; rows that fail validation are skipped

        Raises:
            NotAuthenticatedError: If no credential is available
            NetworkError: If the store cannot be reached after retries
        """
        self.ensure_authenticated()

        limit = profile.session_fetch_limit if session_id else profile.fetch_limit
        cutoff = None
        if profile.day_limit is not None:
            now = now or datetime.now(timezone.utc)
            cutoff = (now - timedelta(days=profile.day_limit)).isoformat()

        def build_query():
            query = self.client.table(self.table).select("*")
            if session_id:
                query = query.eq("session_id", session_id)
            if cutoff:
                query = query.gte("timestamp", cutoff)
            return query.order("timestamp", desc=True).limit(limit)

        response = await self._execute("fetch_messages", build_query, profile)
        messages = self._parse_rows(response.data or [])

        logger.info(
            "messages_fetched",
            count=len(messages),
            session_id=session_id,
            limit=limit,
        )
        return messages

    async def delete(self, session_id: str, profile: DeviceProfile) -> int:
        """
        Deletes every message of a session.

        Returns:
            Number of rows the store reported as removed

        Raises:
            NotAuthenticatedError: If no credential is available
            NetworkError: If the store rejects or cannot be reached
        """
        self.ensure_authenticated()

        response = await self._execute(
            "delete_session",
            lambda: self.client.table(self.table).delete().eq("session_id", session_id),
            profile,
        )
        removed = len(response.data or [])
        logger.info("session_deleted", session_id=session_id, rows_removed=removed)
        return removed

    @staticmethod
    def _parse_rows(rows: list[dict]) -> list[Message]:
        messages = []
        for row in rows:
            try:
                messages.append(Message.model_validate(row))
            except ValidationError as e:
                logger.warning(
                    "message_row_skipped",
                    session_id=row.get("session_id") or row.get("sessionId"),
                    error=str(e),
                )
        return messages


class SupabaseAppointmentStore(SupabaseGateway):
    """Looks up appointments booked from chat sessions."""

    def __init__(self, client: Client, table: str = "appointments"):
        super().__init__(client, table)

    async def batch_lookup(
        self, session_ids: list[str], profile: DeviceProfile
    ) -> dict[str, AppointmentRef]:
        """
        Resolves appointments for many sessions in a single request.

        Args:
            session_ids: Session identifiers to look up
            profile: Device profile providing the retry policy

        Returns:
            Map of session id to appointment; sessions without one are absent

        Raises:
            NetworkError: If the store cannot be reached after retries
        """
        if not session_ids:
            return {}

        response = await self._execute(
            "lookup_appointments",
            lambda: self.client.table(self.table)
            .select("id, chat_session_id, name, date, time")
            .in_("chat_session_id", list(session_ids)),
            profile,
        )

        link_map: dict[str, AppointmentRef] = {}
        for row in response.data or []:
            session_id = row.get("chat_session_id")
            if not session_id or session_id in link_map:
                continue
            try:
                link_map[session_id] = AppointmentRef(
                    appointment_id=row["id"],
                    name=row.get("name"),
                    date=row.get("date"),
                    time=row.get("time"),
                )
            except (KeyError, ValidationError) as e:
                logger.warning(
                    "appointment_row_skipped",
                    session_id=session_id,
                    error=str(e),
                )

        logger.info(
            "appointments_matched",
            sessions=len(session_ids),
            matches=len(link_map),
        )
        return link_map
