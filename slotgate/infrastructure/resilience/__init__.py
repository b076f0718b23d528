"""API Resilience Implementations.

Contains the concurrency pool, the rate-limit estimator and the release
timer that together throttle outgoing calls to the upstream service.
"""
