"""Implementation of a bounded concurrency pool.

A counting semaphore over a fixed number of slots with FIFO admission and
detectable misuse, plus `each`, a helper that maps an async operation over a
collection without exceeding the pool size.
"""

import asyncio
import inspect
import itertools
import logging
from collections import deque
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable, Deque, Iterable, List, Optional, Tuple

from slotgate.domain.errors import EachError, PoolMisuseError, SlotAcquireTimeout

logger = logging.getLogger(__name__)


class SlotHandle:
    """A held slot. Call `release()` exactly once to give it back."""

    def __init__(self, pool: "ConcurrencyPool", handle_id: int):
        self._pool = pool
        self.handle_id = handle_id
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    def release(self) -> None:
        """Returns the slot to its pool and wakes the next waiter, if any."""
        self._pool._release(self)

    async def __aenter__(self) -> "SlotHandle":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        if not self._released:
            self.release()
        return False

    def __repr__(self) -> str:
        state = "released" if self._released else "held"
        return f"<SlotHandle {self._pool.name}#{self.handle_id} {state}>"


class ConcurrencyPool:
    """Counting semaphore with FIFO wake-up.

    All state is touched from the event loop thread only, so no lock is
    needed: a released slot is handed straight to the oldest live waiter,
    which keeps `held <= size` and prevents newcomers from overtaking the
    queue.
    """

    def __init__(self, size: int, *, strict: bool = True, name: str = "pool"):
        """Initializes the pool.

        Args:
            size: Number of slots. Must be a positive integer.
            strict: Raise `PoolMisuseError` on double or foreign release.
                When False the misuse is logged and ignored.
            name: Label used in log lines.
        """
        if not isinstance(size, int) or isinstance(size, bool) or size <= 0:
            raise ValueError(f"Pool size must be a positive integer, got {size!r}")
        self._size = size
        self.strict = strict
        self.name = name
        self._held = 0
        self._waiters: Deque[asyncio.Future] = deque()
        self._ids = itertools.count(1)
        logger.debug(f"ConcurrencyPool '{name}' initialized: size={size}, strict={strict}")

    @property
    def size(self) -> int:
        return self._size

    @property
    def held(self) -> int:
        return self._held

    @property
    def available(self) -> int:
        return self._size - self._held

    @property
    def waiting(self) -> int:
        return sum(1 for w in self._waiters if not w.done())

    async def acquire(self, timeout: Optional[float] = None) -> SlotHandle:
        """Waits for a free slot and marks it held.

        Args:
            timeout: Maximum seconds to wait. None waits forever.

        Returns:
            A handle whose `release()` returns the slot.

        Raises:
            SlotAcquireTimeout: If no slot became free within `timeout`.
        """
        if self._held < self._size and not self.waiting:
            self._held += 1
            return self._new_handle()

        waiter = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        logger.debug(f"Pool '{self.name}' saturated ({self._held}/{self._size}), queued waiter #{len(self._waiters)}")
        try:
            if timeout is None:
                await waiter
            else:
                await asyncio.wait_for(waiter, timeout)
        except asyncio.TimeoutError:
            self._abandon(waiter)
            raise SlotAcquireTimeout(timeout) from None
        except asyncio.CancelledError:
            self._abandon(waiter)
            raise
        # The releasing side transferred its slot to us; `held` is unchanged.
        return self._new_handle()

    @asynccontextmanager
    async def slot(self, timeout: Optional[float] = None) -> AsyncIterator[SlotHandle]:
        """Async context manager form of `acquire`."""
        handle = await self.acquire(timeout)
        try:
            yield handle
        finally:
            if not handle.released:
                handle.release()

    async def each(self, items: Iterable[Any], operation: Callable[[Any], Awaitable[Any]]) -> List[Any]:
        """Runs `operation` over every item with at most `size` in flight.

        Every item is attempted exactly once. A failing invocation does not
        stop the others; once all items have been attempted, the failures
        are raised together as one `EachError`.

        Args:
            items: The items to process.
            operation: Async callable invoked once per item.

        Returns:
            The results in input order.

        Raises:
            EachError: If one or more invocations raised.
        """
        items = list(items)

        async def run(item: Any) -> Any:
            handle = await self.acquire()
            try:
                result = operation(item)
                if inspect.isawaitable(result):
                    result = await result
                return result
            finally:
                handle.release()

        outcomes = await asyncio.gather(*(run(item) for item in items), return_exceptions=True)

        failures: List[Tuple[int, Any, BaseException]] = []
        results: List[Any] = []
        for index, (item, outcome) in enumerate(zip(items, outcomes)):
            if isinstance(outcome, BaseException):
                failures.append((index, item, outcome))
                results.append(None)
            else:
                results.append(outcome)

        if failures:
            logger.debug(f"Pool '{self.name}' each(): {len(failures)}/{len(items)} operations failed")
            raise EachError(failures, results)
        return results

    def _new_handle(self) -> SlotHandle:
        return SlotHandle(self, next(self._ids))

    def _release(self, handle: SlotHandle) -> None:
        if handle._pool is not self:
            self._misuse(f"{handle!r} does not belong to pool '{self.name}'")
            return
        if handle._released:
            self._misuse(f"{handle!r} released twice")
            return
        handle._released = True
        self._hand_over()

    def _hand_over(self) -> None:
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.set_result(None)
                return
        self._held -= 1

    def _abandon(self, waiter: asyncio.Future) -> None:
        if waiter.done() and not waiter.cancelled():
            # Woken just as we gave up: pass the slot on.
            self._hand_over()
            return
        waiter.cancel()
        try:
            self._waiters.remove(waiter)
        except ValueError:
            pass

    def _misuse(self, message: str) -> None:
        if self.strict:
            raise PoolMisuseError(message)
        logger.error(f"Pool misuse ignored: {message}")

    def __repr__(self) -> str:
        return f"<ConcurrencyPool {self.name} held={self._held}/{self._size} waiting={self.waiting}>"
