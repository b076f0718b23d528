"""Estimates how long a slot must stay held after its call completes.

The upstream service reports its rate-limit window in every response:
how many requests remain and when the window resets, both on the server's
clock. While plenty of requests remain the slot is reusable immediately;
once the remaining count drops into the pool's range, the slot is held until
the window resets. Reset time and current time are both taken from the
server's headers so local clock skew never enters the computation.
"""

import logging
import math
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Optional

import httpx

from slotgate.domain.errors import RateLimitHeaderError
from slotgate.domain.models.common import DelayMs, EpochMillis, EpochSeconds
from slotgate.domain.models.http import HttpOutcome, RateLimitReading

logger = logging.getLogger(__name__)

DATE_HEADER = "date"
REMAINING_HEADER = "x-rate-limit-remaining"
RESET_HEADER = "x-rate-limit-reset"

# Slots may still be draining when a response arrives, so the pool size
# alone is not enough headroom.
DEFAULT_HEADROOM_MARGIN = 10
DEFAULT_BUFFER_MS = 1000
DEFAULT_WARN_REMAINING = 11


def normalize_outcome(outcome: Any) -> Optional[HttpOutcome]:
    """Extracts a canonical {status, headers, body} from a call's result or error.

    Accepts an `HttpOutcome`, an `httpx.Response`, or an exception carrying
    either one as `.outcome` or `.response`. Returns None when there is no
    response to inspect (e.g. the connection was reset).
    """
    if outcome is None:
        return None
    if isinstance(outcome, HttpOutcome):
        return outcome
    if isinstance(outcome, httpx.Response):
        return outcome_from_response(outcome)

    embedded = getattr(outcome, "outcome", None)
    if isinstance(embedded, HttpOutcome):
        return embedded
    if isinstance(outcome, httpx.HTTPStatusError):
        return outcome_from_response(outcome.response)
    if isinstance(outcome, httpx.RequestError):
        # Accessing `.response` here would raise; a request error has none.
        return None
    try:
        embedded = getattr(outcome, "response", None)
    except RuntimeError:
        embedded = None
    if embedded is not None and embedded is not outcome:
        return normalize_outcome(embedded)
    return None


def outcome_from_response(response: httpx.Response) -> HttpOutcome:
    """Builds an `HttpOutcome` from an httpx response, decoding a JSON body when present."""
    body: Any = None
    if response.content:
        try:
            body = response.json()
        except ValueError:
            body = response.text
    return HttpOutcome(status=response.status_code, headers=dict(response.headers.items()), body=body)


def parse_server_date(value: str) -> EpochMillis:
    """Parses an HTTP-date (RFC 7231) or ISO-8601 timestamp to epoch milliseconds.

    Raises:
        RateLimitHeaderError: If the value is neither.
    """
    text = value.strip()
    parsed: Optional[datetime] = None
    try:
        parsed = parsedate_to_datetime(text)
    except (TypeError, ValueError, IndexError):
        parsed = None
    if parsed is None:
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            raise RateLimitHeaderError(DATE_HEADER, value) from None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return EpochMillis(int(round(parsed.timestamp() * 1000)))


def _parse_int(header: str, value: Optional[str]) -> int:
    if value is None:
        raise RateLimitHeaderError(header)
    text = str(value).strip()
    if text.lstrip("+-").isdecimal():
        return int(text)
    # Numeric forms such as "1704067202.0" are accepted and truncated.
    try:
        number = float(text)
    except ValueError:
        raise RateLimitHeaderError(header, value) from None
    if not math.isfinite(number):
        raise RateLimitHeaderError(header, value)
    return int(number)


def read_rate_limit(outcome: HttpOutcome) -> RateLimitReading:
    """Reads the throttling headers of one outcome.

    Raises:
        RateLimitHeaderError: If any of the three headers is missing or malformed.
    """
    remaining = _parse_int(REMAINING_HEADER, outcome.header(REMAINING_HEADER))
    reset = _parse_int(RESET_HEADER, outcome.header(RESET_HEADER))
    date = outcome.header(DATE_HEADER)
    if date is None:
        raise RateLimitHeaderError(DATE_HEADER)
    return RateLimitReading(
        server_date_ms=parse_server_date(date),
        remaining=remaining,
        reset_epoch_seconds=EpochSeconds(reset),
    )


def delay_ms(
    outcome: Any,
    pool_size: int,
    *,
    headroom_margin: int = DEFAULT_HEADROOM_MARGIN,
    buffer_ms: int = DEFAULT_BUFFER_MS,
    warn_remaining: Optional[int] = DEFAULT_WARN_REMAINING,
) -> DelayMs:
    """Milliseconds the slot that served `outcome` must stay held.

    Never raises on bad input and never returns a negative value: an outcome
    without a response, or with missing or malformed headers, yields 0 and a
    warning, since reusing the slot early is safer than deadlocking the pool.

    Args:
        outcome: The call's response, or the exception it raised.
        pool_size: Size of the pool the slot belongs to.
        headroom_margin: Extra remaining requests tolerated above `pool_size`.
        buffer_ms: Added to the computed wait to absorb sub-second skew and rounding.
        warn_remaining: Remaining count that is logged at WARNING instead of DEBUG.

    Returns:
        0 while `remaining > pool_size + headroom_margin`, otherwise
        `reset*1000 - date + buffer_ms`, clamped at 0.
    """
    normalized = normalize_outcome(outcome)
    if normalized is None:
        logger.warning(
            f"No response to read rate-limit headers from ({type(outcome).__name__}: {outcome}); assuming no delay"
        )
        return DelayMs(0)

    try:
        remaining = _parse_int(REMAINING_HEADER, normalized.header(REMAINING_HEADER))
    except RateLimitHeaderError as e:
        logger.warning(f"{e} on status {normalized.status} response; assuming no delay")
        return DelayMs(0)

    if remaining > pool_size + headroom_margin:
        logger.debug(f"{REMAINING_HEADER} {remaining}")
        return DelayMs(0)

    try:
        reading = read_rate_limit(normalized)
    except RateLimitHeaderError as e:
        logger.warning(f"{e} with {remaining} requests remaining; assuming no delay")
        return DelayMs(0)

    delay = reading.reset_epoch_seconds * 1000 - reading.server_date_ms + buffer_ms
    if delay < 0:
        logger.warning(f"Computed negative delay {delay}ms (reset already passed); clamping to 0")
        delay = 0

    msg = f"Rate limit reached, scheduling next request in {delay}ms (remaining={remaining})"
    if warn_remaining is not None and remaining == warn_remaining:
        logger.warning(msg)
    else:
        logger.debug(msg)
    return DelayMs(int(delay))


class RateLimitEstimator:
    """Binds the estimator's tunables to one pool."""

    def __init__(
        self,
        pool_size: int,
        headroom_margin: int = DEFAULT_HEADROOM_MARGIN,
        buffer_ms: int = DEFAULT_BUFFER_MS,
        warn_remaining: Optional[int] = DEFAULT_WARN_REMAINING,
    ):
        self.pool_size = pool_size
        self.headroom_margin = headroom_margin
        self.buffer_ms = buffer_ms
        self.warn_remaining = warn_remaining

    def delay_ms(self, outcome: Any) -> DelayMs:
        return delay_ms(
            outcome,
            self.pool_size,
            headroom_margin=self.headroom_margin,
            buffer_ms=self.buffer_ms,
            warn_remaining=self.warn_remaining,
        )
