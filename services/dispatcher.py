"""
Notification dispatcher: fans a blood request out to selected donors.

Per donor, in this order:
  1. insert the in-app Notification keyed by (request_id, donor_id); a
     duplicate key means the donor was already notified and nothing is sent,
  2. list the donor on the request as a pending match,
  3. send on every enabled channel concurrently (SMS, realtime), each call
     bounded by its own timeout and retried with exponential backoff on
     transient failures,
  4. record each channel outcome as a DeliveryAttempt.

Donors are processed by independent tasks behind one semaphore shared by
every dispatch, so concurrent requests together stay within the pool size. dispatch()
returns once every task has finished or the dispatch timeout has elapsed;
tasks still running are reported ``in_flight``, stay referenced here, and
record their outcomes whenever they complete. drain() waits for them.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Optional

from pymongo.errors import PyMongoError

from config import DispatchSettings
from errors import PermanentExternalError, TransientExternalError
from infrastructure.realtime.protocol import RealtimeChannel, user_room
from infrastructure.sms.protocol import SmsProvider, SmsResult
from repositories.blood_request_repository import BloodRequestRepository
from repositories.notification_repository import (
    DeliveryAttemptRepository,
    NotificationRepository,
)
from schemas.dto.responses.dispatch import (
    ChannelOutcome,
    DispatchSummary,
    DonorDispatchResult,
    DonorDispatchStatus,
)
from schemas.models.base import utc_now
from schemas.models.blood_request import BloodRequestDoc, MatchedDonor
from schemas.models.notification import (
    Channel,
    DeliveryAttemptDoc,
    DeliveryStatus,
    NotificationDoc,
    dispatch_key,
)
from services.donor_selector import DonorCandidate, SelectionResult
from services.notification_content import (
    NotificationContent,
    blood_request_content,
    blood_request_sms_body,
)
from shared.logging import get_logger

log = get_logger(__name__)

NOTIFICATION_EVENT = "notification"


def realtime_payload(notification: NotificationDoc) -> dict[str, Any]:
    return {
        "id": str(notification.id),
        "type": notification.type,
        "title": notification.title,
        "message": notification.message,
        "data": notification.data.model_dump(mode="json"),
        "urgent": notification.urgent,
        "created_at": notification.created_at.isoformat()
        if notification.created_at
        else None,
    }


class NotificationDispatcher:
    def __init__(
        self,
        notifications: NotificationRepository,
        deliveries: DeliveryAttemptRepository,
        requests: BloodRequestRepository,
        sms_provider: SmsProvider,
        realtime: RealtimeChannel,
        settings: DispatchSettings,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._notifications = notifications
        self._deliveries = deliveries
        self._requests = requests
        self._sms = sms_provider
        self._realtime = realtime
        self._settings = settings
        self._sleep = sleep
        self._semaphore = asyncio.Semaphore(settings.dispatch_max_concurrency)
        self._inflight: set[asyncio.Task] = set()
        self._abandoned: set[asyncio.Task] = set()

    @property
    def inflight(self) -> int:
        return len(self._inflight)

    @property
    def sms_delivery_mode(self) -> str:
        return getattr(self._sms, "delivery_mode", "live")

    # ── Blood request fan-out ────────────────────────────────────────────────

    async def dispatch(
        self, request: BloodRequestDoc, selection: SelectionResult
    ) -> DispatchSummary:
        tasks: dict[asyncio.Task, DonorCandidate] = {}
        for candidate in selection.candidates:
            task = asyncio.create_task(self._notify_donor(request, candidate))
            self._track(task)
            tasks[task] = candidate

        done: set[asyncio.Task] = set()
        if tasks:
            done, _ = await asyncio.wait(
                tasks.keys(), timeout=self._settings.dispatch_timeout_seconds
            )

        results: list[DonorDispatchResult] = []
        for task, candidate in tasks.items():
            if task in done:
                results.append(self._task_result(task, candidate))
            else:
                self._abandoned.add(task)
                results.append(
                    DonorDispatchResult(
                        donor_id=candidate.donor_id,
                        status=DonorDispatchStatus.IN_FLIGHT,
                        distance_km=round(candidate.distance_km, 2),
                    )
                )

        summary = DispatchSummary(
            request_id=str(request.id),
            radius_km=selection.radius_km,
            tier=selection.tier,
            total_candidates=len(selection.candidates),
            notified=_count(results, DonorDispatchStatus.NOTIFIED),
            duplicates=_count(results, DonorDispatchStatus.DUPLICATE),
            in_flight=_count(results, DonorDispatchStatus.IN_FLIGHT),
            failed=_count(results, DonorDispatchStatus.FAILED),
            timed_out=len(done) < len(tasks),
            sms_delivery_mode=self.sms_delivery_mode,
            results=results,
        )
        log.info(
            "dispatch_completed",
            request_id=summary.request_id,
            candidates=summary.total_candidates,
            notified=summary.notified,
            duplicates=summary.duplicates,
            in_flight=summary.in_flight,
            failed=summary.failed,
            timed_out=summary.timed_out,
            sms_delivery_mode=summary.sms_delivery_mode,
        )
        return summary

    def _task_result(
        self, task: asyncio.Task, candidate: DonorCandidate
    ) -> DonorDispatchResult:
        if task.cancelled():
            return DonorDispatchResult(
                donor_id=candidate.donor_id,
                status=DonorDispatchStatus.FAILED,
                error="cancelled",
            )
        exc = task.exception()
        if exc is not None:
            return DonorDispatchResult(
                donor_id=candidate.donor_id,
                status=DonorDispatchStatus.FAILED,
                error=f"{type(exc).__name__}: {exc}",
            )
        return task.result()

    async def _notify_donor(
        self,
        request: BloodRequestDoc,
        candidate: DonorCandidate,
    ) -> DonorDispatchResult:
        donor = candidate.donor
        distance = round(candidate.distance_km, 2)
        async with self._semaphore:
            content = blood_request_content(request, candidate.distance_km)
            try:
                stored = await self._notifications.insert_once(
                    _notification_doc(
                        donor.id, content, dispatch_key(request.id, donor.id)
                    )
                )
            except PyMongoError as e:
                log.error(
                    "notification_record_failed",
                    request_id=str(request.id),
                    donor_id=candidate.donor_id,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                return DonorDispatchResult(
                    donor_id=candidate.donor_id,
                    status=DonorDispatchStatus.FAILED,
                    distance_km=distance,
                    error="notification record could not be stored",
                )

            if stored is None:
                log.info(
                    "donor_already_notified",
                    request_id=str(request.id),
                    donor_id=candidate.donor_id,
                )
                return DonorDispatchResult(
                    donor_id=candidate.donor_id,
                    status=DonorDispatchStatus.DUPLICATE,
                    distance_km=distance,
                )

            await self._requests.add_matched_donor(
                request.id,
                MatchedDonor(
                    donor_id=donor.id,
                    donor_name=donor.name,
                    donor_blood_type=donor.blood_type,
                ),
            )

            sends = []
            for channel in candidate.channels:
                if channel == Channel.SMS:
                    body = blood_request_sms_body(request)
                    call = _bind(self._sms.send, donor.phone_number, body)
                else:
                    call = _bind(
                        self._realtime.emit,
                        user_room(donor.id),
                        NOTIFICATION_EVENT,
                        realtime_payload(stored),
                    )
                sends.append(self._deliver(stored, channel, call, request.id))
            outcomes = list(await asyncio.gather(*sends))

        reached = any(o.status != DeliveryStatus.FAILED.value for o in outcomes)
        return DonorDispatchResult(
            donor_id=candidate.donor_id,
            status=DonorDispatchStatus.NOTIFIED if reached else DonorDispatchStatus.FAILED,
            notification_id=str(stored.id),
            distance_km=distance,
            channels=outcomes,
        )

    # ── Single-user notifications ────────────────────────────────────────────

    async def notify_user(
        self, user_id: Any, content: NotificationContent
    ) -> NotificationDoc:
        """Store an in-app notification and push it on the user's realtime room."""
        stored = await self._notifications.insert(
            _notification_doc(user_id, content, None)
        )
        call = _bind(
            self._realtime.emit,
            user_room(user_id),
            NOTIFICATION_EVENT,
            realtime_payload(stored),
        )
        await self._deliver(stored, Channel.REALTIME, call, None)
        return stored

    # ── Channel delivery ─────────────────────────────────────────────────────

    async def _deliver(
        self,
        notification: NotificationDoc,
        channel: Channel,
        call: Callable[[], Awaitable[Any]],
        request_id: Any,
    ) -> ChannelOutcome:
        outcome = await self._send_with_retry(channel, call)
        try:
            await self._deliveries.record(
                DeliveryAttemptDoc(
                    notification_id=notification.id,
                    user_id=notification.user_id,
                    request_id=request_id,
                    channel=channel,
                    status=outcome.status,
                    provider_id=outcome.provider_id,
                    attempts=outcome.attempts,
                    error=outcome.error,
                    recorded_at=utc_now(),
                )
            )
        except PyMongoError as e:
            log.error(
                "delivery_record_failed",
                notification_id=str(notification.id),
                channel=Channel(channel).value,
                error=str(e),
            )
        return outcome

    async def _send_with_retry(
        self, channel: Channel, call: Callable[[], Awaitable[Any]]
    ) -> ChannelOutcome:
        max_attempts = self._settings.retry_max_attempts
        attempts = 0
        while True:
            attempts += 1
            try:
                result = await asyncio.wait_for(
                    call(), timeout=self._settings.channel_call_timeout_seconds
                )
            except PermanentExternalError as e:
                log.warning(
                    "channel_send_failed_permanently",
                    channel=Channel(channel).value,
                    attempts=attempts,
                    error=e.message,
                )
                return ChannelOutcome(
                    channel=channel,
                    status=DeliveryStatus.FAILED,
                    attempts=attempts,
                    error=e.message,
                )
            except (TransientExternalError, asyncio.TimeoutError) as e:
                error = (
                    e.message
                    if isinstance(e, TransientExternalError)
                    else "channel call timed out"
                )
                if attempts >= max_attempts:
                    log.warning(
                        "channel_send_retries_exhausted",
                        channel=Channel(channel).value,
                        attempts=attempts,
                        error=error,
                    )
                    return ChannelOutcome(
                        channel=channel,
                        status=DeliveryStatus.FAILED,
                        attempts=attempts,
                        error=error,
                        transient=True,
                    )
                delay = self._settings.retry_backoff_base_seconds * 2 ** (attempts - 1)
                log.debug(
                    "channel_send_retrying",
                    channel=Channel(channel).value,
                    attempt=attempts,
                    delay=delay,
                    error=error,
                )
                await self._sleep(delay)
                continue
            except Exception as e:
                log.error(
                    "channel_send_crashed",
                    channel=Channel(channel).value,
                    attempts=attempts,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                return ChannelOutcome(
                    channel=channel,
                    status=DeliveryStatus.FAILED,
                    attempts=attempts,
                    error=f"{type(e).__name__}: {e}",
                )

            if result is False:
                # event dropped unsent, e.g. no realtime transport configured
                return ChannelOutcome(
                    channel=channel,
                    status=DeliveryStatus.FAILED,
                    attempts=attempts,
                    error="realtime channel not configured",
                )
            if isinstance(result, SmsResult):
                return ChannelOutcome(
                    channel=channel,
                    status=DeliveryStatus.SIMULATED
                    if result.simulated
                    else DeliveryStatus.DELIVERED,
                    provider_id=result.id,
                    attempts=attempts,
                )
            return ChannelOutcome(
                channel=channel, status=DeliveryStatus.DELIVERED, attempts=attempts
            )

    # ── Task lifetime ────────────────────────────────────────────────────────

    def _track(self, task: asyncio.Task) -> None:
        self._inflight.add(task)
        task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._inflight.discard(task)
        late = task in self._abandoned
        self._abandoned.discard(task)
        if task.cancelled():
            log.warning("dispatch_task_cancelled", late=late)
            return
        exc = task.exception()
        if exc is not None:
            log.error(
                "dispatch_task_failed",
                late=late,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return
        if late:
            result: DonorDispatchResult = task.result()
            log.info(
                "dispatch_task_completed_late",
                donor_id=result.donor_id,
                status=result.status,
            )

    async def drain(self, timeout: Optional[float] = None) -> int:
        """Wait for in-flight deliveries; returns how many were still running."""
        if not self._inflight:
            return 0
        _, pending = await asyncio.wait(set(self._inflight), timeout=timeout)
        return len(pending)

    async def aclose(self, timeout: Optional[float] = None) -> None:
        remaining = await self.drain(timeout)
        if remaining:
            log.warning("dispatcher_closed_with_inflight", inflight=remaining)
        await self._realtime.aclose()


def _notification_doc(
    user_id: Any, content: NotificationContent, key: Optional[str]
) -> NotificationDoc:
    return NotificationDoc(
        user_id=user_id,
        type=content.type,
        title=content.title,
        message=content.message,
        data=content.data,
        urgent=content.urgent,
        read=False,
        created_at=utc_now(),
        dispatch_key=key,
    )


def _bind(fn: Callable[..., Awaitable[Any]], *args: Any) -> Callable[[], Awaitable[Any]]:
    def call() -> Awaitable[Any]:
        return fn(*args)

    return call


def _count(results: list[DonorDispatchResult], status: DonorDispatchStatus) -> int:
    return sum(1 for r in results if r.status == status.value)
