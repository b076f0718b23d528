"""Interface for deferred callbacks.

The scheduler releases slots through this port instead of touching the
event loop directly, which keeps cooldowns observable in tests.
"""

import abc
from typing import Callable


class ReleaseTimer(abc.ABC):
    """Abstract Base Class for "run this callback after a delay"."""

    @abc.abstractmethod
    def schedule(self, callback: Callable[[], None], delay_ms: int) -> None:
        """Runs `callback` once, `delay_ms` milliseconds from now.

        Negative delays must be treated as zero.
        """
        pass

    def flush(self) -> int:
        """Runs every pending callback now; returns how many ran."""
        return 0
