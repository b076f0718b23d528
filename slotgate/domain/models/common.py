"""Defines common Value Objects used across different domain contexts.

These objects represent simple values or concepts like call ids, HTTP verbs
and millisecond durations, ensuring consistency and type safety.
"""

import enum
from typing import NewType

# === Call Correlation ===
CallId = NewType("CallId", int)              # Per-scheduler, strictly increasing
DelayMs = NewType("DelayMs", int)            # Cooldown a slot stays held after its call
EpochSeconds = NewType("EpochSeconds", int)  # Unix time as reported by the upstream server
EpochMillis = NewType("EpochMillis", int)


class Verb(str, enum.Enum):
    """HTTP verbs the gateway forwards."""
    GET = "GET"
    PUT = "PUT"
    POST = "POST"
    DELETE = "DELETE"


class CallState(str, enum.Enum):
    """Lifecycle of a single call through the scheduler."""
    CREATED = "CREATED"
    WAITING_FOR_SLOT = "WAITING_FOR_SLOT"
    EXECUTING = "EXECUTING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    RELEASE_SCHEDULED = "RELEASE_SCHEDULED"
    RELEASED = "RELEASED"
