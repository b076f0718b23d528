"""asyncio implementation of the `ReleaseTimer` port.

Each scheduled callback is a `loop.call_later` handle. Pending handles are
tracked so shutdown can fire them early (`flush`) and no slot stays held
past the life of the loop.
"""

import asyncio
import logging
from typing import Callable, Optional, Set

from slotgate.domain.interfaces.timer import ReleaseTimer

logger = logging.getLogger(__name__)


class AsyncioReleaseTimer(ReleaseTimer):
    """Runs release callbacks on the event loop after a delay."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop
        self._pending: Set[asyncio.TimerHandle] = set()
        self._callbacks = {}

    @property
    def pending(self) -> int:
        return len(self._pending)

    def schedule(self, callback: Callable[[], None], delay_ms: int) -> None:
        delay_ms = max(0, int(delay_ms))
        loop = self._loop or asyncio.get_running_loop()
        handle: Optional[asyncio.TimerHandle] = None

        def fire() -> None:
            self._pending.discard(handle)
            self._callbacks.pop(handle, None)
            callback()

        handle = loop.call_later(delay_ms / 1000.0, fire)
        self._pending.add(handle)
        self._callbacks[handle] = fire
        if delay_ms:
            logger.debug(f"Release scheduled in {delay_ms}ms ({len(self._pending)} pending)")

    def flush(self) -> int:
        """Cancels every pending timer and runs its callback now.

        Returns:
            The number of callbacks fired.
        """
        fired = 0
        for handle in list(self._pending):
            handle.cancel()
            fire = self._callbacks.get(handle)
            if fire is not None:
                fire()
                fired += 1
        if fired:
            logger.info(f"Flushed {fired} pending slot releases")
        return fired
