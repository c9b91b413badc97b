"""NotificationDispatcher for exactly-once-effective delivery of signal notifications.

This module provides the NotificationDispatcher class which handles:
- Parallel fan-out of one notification to all of its contact points
- Exponential backoff retry for failed deliveries
- Per-contact-point status tracking (DELIVERED rows are never re-sent)
- An overall per-notification timeout
- Resumption of notifications left unfinished by a crashed or timed-out worker

The dispatch lease is the notification's current_processed_at/lease_owner
pair. lease_owner holds a token unique to one claim, so a worker that resumes
its own stalled notification still takes it from the stalled dispatch. The
lease is re-checked before every send; a dispatch that lost its lease stops
sending and leaves the notification to the new holder. Settlement clears the
lease and sets last_processed_at.

Usage:
    from signal_engine.notifications.dispatcher import NotificationDispatcher

    dispatcher = NotificationDispatcher(
        session_factory=async_session,
        channels={"email": email_channel, "webhook": webhook_channel},
    )
    token = dispatcher.new_lease_token()
    ...  # create the notification leased to token
    report = await dispatcher.dispatch(notification_id, token)

    # Periodically pick up unfinished notifications
    await dispatcher.resume_stale()
"""

import asyncio
import logging
import os
import socket
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from uuid import uuid4

from signal_engine.db.repositories.notification_repo import NotificationRepository
from signal_engine.models.notification import ContactPointNotification
from signal_engine.notifications.channels import NotificationChannel
from signal_engine.notifications.payload import NotificationPayload, build_payload
from signal_engine.notifications.routing import resolve_destination
from signal_engine.signals.errors import DeliveryError, LeaseConflictError
from signal_engine.signals.models import DeliveryStatus

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def default_worker_id() -> str:
    return f"{socket.gethostname()}:{os.getpid()}:{uuid4().hex[:8]}"


@dataclass(frozen=True)
class ContactPointResult:
    """Outcome for one contact point of one dispatch call.

    Attributes:
        contact_point_id: The contact point
        status: Final status after this call
        attempts: Total delivery attempts recorded for the contact point
        skipped: True if the contact point was already DELIVERED or
            permanently FAILED and was not attempted
        error_message: Last error, if any
        lease_lost: True if delivery stopped because the lease moved on
    """

    contact_point_id: str
    status: DeliveryStatus
    attempts: int
    skipped: bool = False
    error_message: str | None = None
    lease_lost: bool = False


@dataclass(frozen=True)
class DispatchReport:
    """Result of one dispatch call.

    Attributes:
        notification_id: The dispatched notification
        results: One entry per contact point
        settled: True if the notification reached its final state in this call
    """

    notification_id: str
    results: list[ContactPointResult]
    settled: bool

    @property
    def delivered(self) -> int:
        return sum(1 for r in self.results if r.status == DeliveryStatus.DELIVERED)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if r.status == DeliveryStatus.FAILED)


class NotificationDispatcher:
    """Dispatches signal notifications to their contact points."""

    def __init__(
        self,
        session_factory: Callable,
        channels: dict[str, NotificationChannel],
        max_retries: int = 5,
        retry_base_delay: float = 1.0,
        retry_multiplier: float = 2.0,
        dispatch_timeout: float = 120.0,
        lease_ttl: float = 300.0,
        worker_id: str | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        """Initialize the NotificationDispatcher.

        Args:
            session_factory: Callable that creates AsyncSession instances
            channels: Dictionary mapping channel type to NotificationChannel instance
            max_retries: Maximum delivery attempts per contact point per dispatch (default: 5)
            retry_base_delay: Initial retry delay in seconds (default: 1.0)
            retry_multiplier: Multiplier for exponential backoff (default: 2.0)
            dispatch_timeout: Overall seconds allowed for one dispatch call (default: 120.0)
            lease_ttl: Seconds after which an unreleased lease may be taken over (default: 300.0)
            worker_id: Worker identity, the prefix of its lease tokens (generated if not provided)
            clock: Returns the current UTC time
        """
        self.session_factory = session_factory
        self.channels = channels
        self.max_retries = max_retries
        self.retry_base_delay = retry_base_delay
        self.retry_multiplier = retry_multiplier
        self.dispatch_timeout = dispatch_timeout
        self.lease_ttl = timedelta(seconds=lease_ttl)
        self.worker_id = worker_id or default_worker_id()
        self.clock = clock

    def new_lease_token(self) -> str:
        """Token identifying one claim of a dispatch lease."""
        return f"{self.worker_id}:{uuid4().hex[:12]}"

    async def dispatch(self, notification_id: str, lease_owner: str) -> DispatchReport:
        """Deliver a notification to every contact point that still needs it.

        Contact points already DELIVERED, or FAILED with retries exhausted,
        are skipped. Deliveries run in parallel; the notification is settled
        once all of them resolve. If the overall timeout expires first, the
        unfinished contact points are marked FAILED (retryable) and the
        notification is left unsettled for a later resume. The same happens
        when the lease is lost or a delivery could not be recorded.

        Args:
            notification_id: The notification to dispatch
            lease_owner: Lease token of the caller's claim; must match the stored lease

        Returns:
            DispatchReport with one ContactPointResult per contact point

        Raises:
            LeaseConflictError: If the lease is held by someone else
        """
        async with self.session_factory() as session:
            notification = await NotificationRepository(session).get(notification_id)

        if notification is None:
            logger.warning("Notification %s not found, nothing to dispatch", notification_id)
            return DispatchReport(notification_id=notification_id, results=[], settled=False)

        if notification.is_settled:
            logger.debug("Notification %s already settled, skipping", notification_id)
            return DispatchReport(
                notification_id=notification_id,
                results=[self._skipped(row) for row in notification.contact_points],
                settled=True,
            )

        if notification.lease_owner != lease_owner:
            raise LeaseConflictError(notification_id)

        payload = build_payload(notification)
        results: list[ContactPointResult] = []
        tasks: dict[asyncio.Task[ContactPointResult], ContactPointNotification] = {}

        for row in notification.contact_points:
            if not row.needs_delivery:
                results.append(self._skipped(row))
                continue
            task = asyncio.create_task(
                self._deliver_with_retry(row, payload, lease_owner),
                name=f"deliver_{notification_id}_{row.contact_point_id}",
            )
            tasks[task] = row

        if tasks:
            done, not_done = await asyncio.wait(tasks.keys(), timeout=self.dispatch_timeout)
        else:
            done, not_done = set(), set()

        interrupted = False
        for task in done:
            error = task.exception()
            if error is None:
                result = task.result()
                interrupted = interrupted or result.lease_lost
                results.append(result)
                continue

            row = tasks[task]
            logger.error(
                "Delivery of notification %s to contact point %s aborted, left for resume: %s",
                notification_id,
                row.contact_point_id,
                error,
            )
            interrupted = True
            results.append(
                ContactPointResult(
                    contact_point_id=row.contact_point_id,
                    status=DeliveryStatus(row.status),
                    attempts=row.attempts,
                    error_message=str(error) or type(error).__name__,
                )
            )

        if not_done:
            for task in not_done:
                task.cancel()
            await asyncio.gather(*not_done, return_exceptions=True)

            now = self.clock()
            for task in not_done:
                row = tasks[task]
                async with self.session_factory() as session:
                    repo = NotificationRepository(session)
                    delivery = await repo.get_delivery(row.id)
                    if delivery is not None and delivery.status == DeliveryStatus.DELIVERED.value:
                        # Cancelled after the delivery was recorded
                        results.append(self._skipped(delivery))
                        continue
                    attempts = delivery.attempts if delivery is not None else row.attempts
                    await repo.mark_failed(
                        row.id,
                        attempts=attempts,
                        retryable=True,
                        error_message="Dispatch timed out",
                        now=now,
                    )
                results.append(
                    ContactPointResult(
                        contact_point_id=row.contact_point_id,
                        status=DeliveryStatus.FAILED,
                        attempts=attempts,
                        error_message="Dispatch timed out",
                    )
                )

            logger.warning(
                "Notification %s dispatch timed out after %.1fs with %d contact point(s) "
                "unresolved; leaving unsettled for resume",
                notification_id,
                self.dispatch_timeout,
                len(not_done),
            )
            return DispatchReport(notification_id=notification_id, results=results, settled=False)

        if interrupted:
            return DispatchReport(notification_id=notification_id, results=results, settled=False)

        async with self.session_factory() as session:
            settled = await NotificationRepository(session).settle(
                notification_id, lease_owner, self.clock()
            )

        if settled:
            logger.info(
                "Notification %s settled (%d delivered, %d failed)",
                notification_id,
                sum(1 for r in results if r.status == DeliveryStatus.DELIVERED),
                sum(1 for r in results if r.status == DeliveryStatus.FAILED),
            )
        else:
            logger.warning(
                "Notification %s could not be settled: lease %s no longer held",
                notification_id,
                lease_owner,
            )

        return DispatchReport(notification_id=notification_id, results=results, settled=settled)

    async def resume(self, notification_id: str) -> DispatchReport:
        """Take over an unfinished notification and dispatch it.

        Raises:
            LeaseConflictError: If another claim holds a live lease
        """
        token = self.new_lease_token()
        async with self.session_factory() as session:
            claimed = await NotificationRepository(session).claim_lease(
                notification_id, token, self.clock(), self.lease_ttl
            )

        if not claimed:
            raise LeaseConflictError(notification_id)

        logger.info("Resuming dispatch of notification %s", notification_id)
        return await self.dispatch(notification_id, token)

    async def resume_stale(self, limit: int = 50) -> int:
        """Resume every unfinished notification whose lease has expired.

        Returns:
            Number of notifications resumed by this worker
        """
        async with self.session_factory() as session:
            candidates = await NotificationRepository(session).find_resumable(
                self.clock(), self.lease_ttl, limit=limit
            )

        resumed = 0
        for notification_id in candidates:
            try:
                await self.resume(notification_id)
                resumed += 1
            except LeaseConflictError as e:
                logger.info("%s, skipping", e)
            except Exception as e:
                logger.exception("Resumed dispatch of notification %s failed: %s", notification_id, e)

        return resumed

    async def _deliver_with_retry(
        self, row: ContactPointNotification, payload: NotificationPayload, lease_owner: str
    ) -> ContactPointResult:
        """Deliver to a single contact point with exponential backoff retry.

        Retry delays follow exponential backoff: base_delay * (multiplier ^ (attempt - 1))
        For defaults (base=1.0, multiplier=2.0): 1s, 2s, 4s, 8s

        Only the send itself is retried. A send that succeeded is never
        repeated, even if recording it fails.

        Returns:
            ContactPointResult with DELIVERED, FAILED once retries are exhausted,
            or lease_lost set if the lease moved on before a send

        Raises:
            Exception: If the delivery status cannot be persisted
        """
        channel = self.channels.get(row.channel)
        if channel is None:
            return await self._fail_permanently(
                row, row.attempts, f"Unknown channel type '{row.channel}'"
            )

        destination = resolve_destination(row.destination)
        if destination is None:
            return await self._fail_permanently(
                row, row.attempts, f"Destination '{row.destination}' could not be resolved"
            )

        attempts = row.attempts
        last_error: str | None = None
        response_code: int | None = None

        for attempt in range(1, self.max_retries + 1):
            if not await self._holds_lease(row.notification_id, lease_owner):
                logger.warning(
                    "Lease %s on notification %s lost, not sending to contact point %s",
                    lease_owner,
                    row.notification_id,
                    row.contact_point_id,
                )
                return ContactPointResult(
                    contact_point_id=row.contact_point_id,
                    status=DeliveryStatus(row.status),
                    attempts=attempts,
                    error_message=last_error,
                    lease_lost=True,
                )

            attempts += 1
            try:
                result = await channel.send(payload, destination)
                if not result.success:
                    response_code = result.response_code
                    raise DeliveryError(result.error_message or "Unknown error")
            except DeliveryError as e:
                last_error = str(e)
            except Exception as e:
                last_error = str(e) or type(e).__name__
                response_code = None
            else:
                await self._record_delivered(row, attempts, result.response_code)
                logger.debug(
                    "Notification %s delivered via %s to contact point %s (attempt %d)",
                    payload.notification_id,
                    row.channel,
                    row.contact_point_id,
                    attempt,
                )
                return ContactPointResult(
                    contact_point_id=row.contact_point_id,
                    status=DeliveryStatus.DELIVERED,
                    attempts=attempts,
                )

            logger.warning(
                "Notification %s delivery failed via %s to contact point %s (attempt %d/%d): %s",
                payload.notification_id,
                row.channel,
                row.contact_point_id,
                attempt,
                self.max_retries,
                last_error,
            )
            async with self.session_factory() as session:
                await NotificationRepository(session).update_delivery(
                    row.id,
                    attempts=attempts,
                    response_code=response_code,
                    error_message=last_error,
                    updated_at=self.clock(),
                )

            # Wait before retry (except on last attempt)
            if attempt < self.max_retries:
                await asyncio.sleep(self._backoff(attempt))

        return await self._fail_permanently(
            row, attempts, last_error or "Unknown error", response_code=response_code
        )

    async def _record_delivered(
        self, row: ContactPointNotification, attempts: int, response_code: int | None
    ) -> None:
        """Persist a successful send, retrying only the database write."""
        for attempt in range(1, self.max_retries + 1):
            try:
                async with self.session_factory() as session:
                    await NotificationRepository(session).mark_delivered(
                        row.id,
                        attempts=attempts,
                        response_code=response_code,
                        now=self.clock(),
                    )
                return
            except Exception as e:
                if attempt == self.max_retries:
                    raise
                logger.warning(
                    "Recording delivery %s failed (attempt %d/%d): %s",
                    row.id,
                    attempt,
                    self.max_retries,
                    e,
                )
                await asyncio.sleep(self._backoff(attempt))

    async def _holds_lease(self, notification_id: str, lease_owner: str) -> bool:
        async with self.session_factory() as session:
            return await NotificationRepository(session).holds_lease(
                notification_id, lease_owner, self.clock(), self.lease_ttl
            )

    def _backoff(self, attempt: int) -> float:
        return self.retry_base_delay * (self.retry_multiplier ** (attempt - 1))

    async def _fail_permanently(
        self,
        row: ContactPointNotification,
        attempts: int,
        error: str,
        response_code: int | None = None,
    ) -> ContactPointResult:
        async with self.session_factory() as session:
            await NotificationRepository(session).mark_failed(
                row.id,
                attempts=attempts,
                retryable=False,
                error_message=error,
                response_code=response_code,
                now=self.clock(),
            )
        logger.error(
            "Notification %s delivery to contact point %s failed permanently via %s: %s",
            row.notification_id,
            row.contact_point_id,
            row.channel,
            error,
        )
        return ContactPointResult(
            contact_point_id=row.contact_point_id,
            status=DeliveryStatus.FAILED,
            attempts=attempts,
            error_message=error,
        )

    @staticmethod
    def _skipped(row: ContactPointNotification) -> ContactPointResult:
        return ContactPointResult(
            contact_point_id=row.contact_point_id,
            status=DeliveryStatus(row.status),
            attempts=row.attempts,
            skipped=True,
            error_message=row.error_message,
        )
