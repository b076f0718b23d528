"""slotgate: a throttling gateway for a single upstream JSON API.

Couples a bounded concurrency pool with a server-driven rate-limit cooldown
so a batch of callers never exceeds either limit.
"""

__version__ = "1.0.0"
