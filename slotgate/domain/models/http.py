"""Value Objects describing a request to, and a response from, the upstream API.

`RequestDescriptor` is what callers hand to a verb operation; `HttpOutcome`
is the canonical {status, headers, body} view of a completed call, whether it
succeeded or failed; `RateLimitReading` is the throttling state read from an
outcome's headers.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

from slotgate.domain.models.common import EpochMillis, EpochSeconds


@dataclass(frozen=True)
class RequestDescriptor:
    """A single request, passed through to the transport unchanged."""
    path: str
    query: Optional[Mapping[str, Any]] = None
    body: Any = None
    headers: Optional[Mapping[str, str]] = None

    def describe(self) -> str:
        """Short form used in log lines."""
        parts = [self.path]
        if self.query:
            parts.append(f"query={dict(self.query)}")
        if self.body is not None:
            parts.append("body=<json>")
        return " ".join(parts)


@dataclass(frozen=True)
class HttpOutcome:
    """Canonical response of a completed call.

    Header names are stored lower-cased so lookups are case-insensitive.
    """
    status: int
    headers: Mapping[str, str] = field(default_factory=dict)
    body: Any = None

    def __post_init__(self) -> None:
        normalized: Dict[str, str] = {str(k).lower(): v for k, v in dict(self.headers).items()}
        object.__setattr__(self, "headers", normalized)

    def header(self, name: str, default: Optional[str] = None) -> Optional[str]:
        return self.headers.get(name.lower(), default)

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


@dataclass(frozen=True)
class RateLimitReading:
    """Throttling state reported by the upstream server for one call."""
    server_date_ms: EpochMillis
    remaining: int
    reset_epoch_seconds: EpochSeconds
