"""Exceptions raised by the gateway and its callers.

Transport failures (connection resets, timeouts) are not wrapped: they reach
the caller as the HTTP library raised them. Everything defined here derives
from `SlotgateError`.
"""

from typing import Any, List, Optional, Sequence, Tuple

from slotgate.domain.models.http import HttpOutcome


class SlotgateError(Exception):
    """Base class for all slotgate errors."""


class ConfigurationError(SlotgateError):
    """Raised when required configuration (base URL, token) is missing."""


class UpstreamHTTPError(SlotgateError):
    """Raised by a transport when the upstream service answers with a non-2xx status.

    Carries the full outcome so the rate-limit estimator can read the
    throttling headers of failed calls too.
    """

    def __init__(self, verb: str, path: str, outcome: HttpOutcome):
        self.verb = verb
        self.path = path
        self.outcome = outcome
        super().__init__(f"{verb} {path} failed with status {outcome.status}")

    @property
    def status(self) -> int:
        return self.outcome.status

    @property
    def headers(self):
        return self.outcome.headers

    @property
    def body(self) -> Any:
        return self.outcome.body


class RateLimitHeaderError(SlotgateError):
    """Raised when an outcome's throttling headers are missing or malformed."""

    def __init__(self, header: str, value: Optional[str] = None):
        self.header = header
        self.value = value
        if value is None:
            message = f"Missing rate-limit header '{header}'"
        else:
            message = f"Malformed rate-limit header '{header}': {value!r}"
        super().__init__(message)


class PoolMisuseError(SlotgateError):
    """Raised when a slot handle is released twice or returned to the wrong pool."""


class SlotAcquireTimeout(SlotgateError, TimeoutError):
    """Raised when `ConcurrencyPool.acquire` waits longer than its timeout."""

    def __init__(self, timeout: float):
        self.timeout = timeout
        super().__init__(f"No slot became free within {timeout:.3f}s")


class EachError(SlotgateError):
    """Raised by `ConcurrencyPool.each` after every item was attempted and at least one failed."""

    def __init__(self, failures: Sequence[Tuple[int, Any, BaseException]], results: List[Any]):
        self.failures = list(failures)
        self.results = results
        first_index, _, first_exc = self.failures[0]
        super().__init__(
            f"{len(self.failures)} of {len(results)} operations failed "
            f"(first at index {first_index}: {type(first_exc).__name__}: {first_exc})"
        )

    @property
    def exceptions(self) -> List[BaseException]:
        return [exc for _, _, exc in self.failures]


class ApiError(SlotgateError):
    """Wraps a failed upstream call with a human-readable context message.

    The upstream status and error summary (if any) are folded into the
    message so one log line tells the whole story.
    """

    def __init__(self, message: str, cause: BaseException):
        self.cause = cause
        self.status: Optional[int] = None
        self.detail: Optional[str] = None
        if isinstance(cause, UpstreamHTTPError):
            self.status = cause.status
            body = cause.body
            if isinstance(body, dict):
                self.detail = body.get("errorSummary") or body.get("error_description") or body.get("message")
                causes = body.get("errorCauses") or []
                summaries = [c.get("errorSummary") for c in causes if isinstance(c, dict) and c.get("errorSummary")]
                if summaries:
                    self.detail = f"{self.detail} ({'; '.join(summaries)})" if self.detail else "; ".join(summaries)
            elif body:
                self.detail = str(body)
        else:
            self.detail = f"{type(cause).__name__}: {cause}"
        parts = [message]
        if self.status is not None:
            parts.append(f"status={self.status}")
        if self.detail:
            parts.append(self.detail)
        super().__init__(" | ".join(parts))
