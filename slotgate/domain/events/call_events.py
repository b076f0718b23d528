"""Domain Events describing a call's trip through the request scheduler.

The scheduler dispatches these to its logger; they carry the call id so a
call can be followed across interleaved log lines.
"""

from dataclasses import dataclass, field
import time
from typing import Optional

from slotgate.domain.models.common import CallId, CallState


@dataclass
class DomainEvent:
    """Base class for domain events."""
    pass


@dataclass
class CallScheduled(DomainEvent):
    """Event triggered when a verb operation is invoked and waits for a slot."""
    call_id: CallId
    verb: str
    target: str
    state: CallState = CallState.WAITING_FOR_SLOT
    timestamp: float = field(default_factory=time.time)


@dataclass
class CallStarted(DomainEvent):
    """Event triggered once a slot is held and the transport is invoked."""
    call_id: CallId
    wait_ms: float
    state: CallState = CallState.EXECUTING
    timestamp: float = field(default_factory=time.time)


@dataclass
class CallFinished(DomainEvent):
    """Event triggered when the transport returns or raises."""
    call_id: CallId
    state: CallState
    latency_ms: float
    status: Optional[int] = None
    error_type: Optional[str] = None
    timestamp: float = field(default_factory=time.time)


@dataclass
class ReleaseScheduled(DomainEvent):
    """Event triggered when the slot's delayed release is armed."""
    call_id: CallId
    delay_ms: int
    state: CallState = CallState.RELEASE_SCHEDULED
    timestamp: float = field(default_factory=time.time)
