"""Request Scheduler: throttled access to the upstream API.

Wraps an `HttpTransport` with two guarantees:

1. No more than `pool.size` requests are in flight at any time.
2. When the server reports that its rate-limit window is running out, the
   slot that served the call stays held until the window resets, so the pool
   shrinks on its own until the server has capacity again.

Every call gets an id from a per-scheduler counter for log correlation.
The scheduler never retries; retry policy belongs to the caller.
"""

import logging
import time
from typing import Any, Mapping, Optional, Union

from slotgate.domain.events.call_events import CallFinished, CallScheduled, CallStarted, DomainEvent, ReleaseScheduled
from slotgate.domain.interfaces.timer import ReleaseTimer
from slotgate.domain.interfaces.transport import HttpTransport
from slotgate.domain.models.common import CallId, CallState, DelayMs, Verb
from slotgate.domain.models.http import RequestDescriptor
from slotgate.infrastructure.resilience.concurrency_pool import ConcurrencyPool, SlotHandle
from slotgate.infrastructure.resilience.rate_limit_estimator import RateLimitEstimator
from slotgate.infrastructure.resilience.release_timer import AsyncioReleaseTimer

logger = logging.getLogger(__name__)


class RequestScheduler:
    """Exposes get/put/post/delete over a shared concurrency pool."""

    def __init__(
        self,
        transport: HttpTransport,
        pool: ConcurrencyPool,
        estimator: Optional[RateLimitEstimator] = None,
        timer: Optional[ReleaseTimer] = None,
    ):
        """Initializes the scheduler.

        Args:
            transport: Sends the actual HTTP requests.
            pool: Request-level concurrency pool; its size is the concurrency ceiling.
            estimator: Computes the post-call cooldown. Defaults to one bound to `pool.size`.
            timer: Runs the delayed slot releases. Defaults to the asyncio timer.
        """
        self.transport = transport
        self.pool = pool
        self.estimator = estimator or RateLimitEstimator(pool.size)
        self.timer = timer or AsyncioReleaseTimer()
        self._next_call_id = 0
        logger.info(f"RequestScheduler initialized: request concurrency limit={pool.size}")

    @property
    def next_call_id(self) -> CallId:
        return CallId(self._next_call_id)

    async def get(self, path: str, *, query: Optional[Mapping[str, Any]] = None,
                  headers: Optional[Mapping[str, str]] = None) -> Any:
        """Throttled GET; returns the parsed JSON body."""
        return await self.request(Verb.GET, RequestDescriptor(path, query=query, headers=headers))

    async def put(self, path: str, *, query: Optional[Mapping[str, Any]] = None, body: Any = None,
                  headers: Optional[Mapping[str, str]] = None) -> Any:
        """Throttled PUT; returns the parsed JSON body."""
        return await self.request(Verb.PUT, RequestDescriptor(path, query=query, body=body, headers=headers))

    async def post(self, path: str, *, query: Optional[Mapping[str, Any]] = None, body: Any = None,
                   headers: Optional[Mapping[str, str]] = None) -> Any:
        """Throttled POST; returns the parsed JSON body."""
        return await self.request(Verb.POST, RequestDescriptor(path, query=query, body=body, headers=headers))

    async def delete(self, path: str, *, query: Optional[Mapping[str, Any]] = None, body: Any = None,
                     headers: Optional[Mapping[str, str]] = None) -> Any:
        """Throttled DELETE; returns the parsed JSON body (usually None)."""
        return await self.request(Verb.DELETE, RequestDescriptor(path, query=query, body=body, headers=headers))

    async def request(self, verb: Union[Verb, str], request: RequestDescriptor) -> Any:
        """Runs one call through the pool.

        Waits for a slot, sends the request, arms the slot's delayed release
        and returns the body without waiting for that release. Errors from
        the transport are re-raised unchanged once the release is armed.
        """
        verb = Verb(verb)
        call_id = CallId(self._next_call_id)
        self._next_call_id += 1
        logger.debug(f"Request id={call_id} state={CallState.CREATED.value} {verb.value} {request.describe()}")
        self._dispatch(CallScheduled(call_id=call_id, verb=verb.value, target=request.describe()))

        queued_at = time.perf_counter()
        handle = await self.pool.acquire()
        started_at = time.perf_counter()
        self._dispatch(CallStarted(call_id=call_id, wait_ms=(started_at - queued_at) * 1000))

        try:
            outcome = await self.transport.send(verb, request)
        except BaseException as e:
            self._dispatch(CallFinished(
                call_id=call_id,
                state=CallState.FAILED,
                latency_ms=(time.perf_counter() - started_at) * 1000,
                status=getattr(e, "status", None),
                error_type=type(e).__name__,
            ))
            self._schedule_release(call_id, handle, e)
            raise

        self._dispatch(CallFinished(
            call_id=call_id,
            state=CallState.SUCCEEDED,
            latency_ms=(time.perf_counter() - started_at) * 1000,
            status=outcome.status,
        ))
        self._schedule_release(call_id, handle, outcome)
        return outcome.body

    async def aclose(self, flush_releases: bool = True) -> None:
        """Closes the transport, optionally releasing cooling-down slots first."""
        if flush_releases:
            self.timer.flush()
        await self.transport.aclose()

    def _schedule_release(self, call_id: CallId, handle: SlotHandle, outcome: Any) -> None:
        try:
            delay = DelayMs(max(0, int(self.estimator.delay_ms(outcome))))
        except Exception as e:
            logger.error(f"Rate-limit estimation failed for request id={call_id}: {e}; releasing immediately", exc_info=True)
            delay = DelayMs(0)

        def release() -> None:
            handle.release()
            logger.debug(f"Request id={call_id} state={CallState.RELEASED.value}")

        try:
            self.timer.schedule(release, delay)
        except Exception as e:
            logger.error(f"Could not arm release timer for request id={call_id}: {e}; releasing now", exc_info=True)
            release()
            return
        self._dispatch(ReleaseScheduled(call_id=call_id, delay_ms=delay))

    def _dispatch(self, event: DomainEvent) -> None:
        logger.debug(f"EVENT: {event}")
