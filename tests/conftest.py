import asyncio
from typing import Any, Callable, Dict, List, Tuple

import pytest
from typer.testing import CliRunner

from slotgate.domain.errors import UpstreamHTTPError
from slotgate.domain.interfaces.timer import ReleaseTimer
from slotgate.domain.interfaces.transport import HttpTransport
from slotgate.domain.models.common import Verb
from slotgate.domain.models.http import HttpOutcome, RequestDescriptor
from slotgate.infrastructure.config.settings import clear_test_config, set_config_for_testing


class FakeTransport(HttpTransport):
    """In-memory transport. Routes map (verb, path) to an outcome, an exception, or a callable."""

    def __init__(self, latency: float = 0.0):
        self.latency = latency
        self.routes: Dict[Tuple[str, str], Any] = {}
        self.calls: List[Tuple[str, RequestDescriptor]] = []
        self.in_flight = 0
        self.peak_in_flight = 0
        self.closed = False

    def route(self, verb: str, path: str, result: Any) -> None:
        self.routes[(verb, path)] = result

    async def send(self, verb: Verb, request: RequestDescriptor) -> HttpOutcome:
        self.calls.append((Verb(verb).value, request))
        self.in_flight += 1
        self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
        try:
            if self.latency:
                await asyncio.sleep(self.latency)
            result = self.routes.get((Verb(verb).value, request.path), HttpOutcome(200, {}, None))
            if callable(result):
                result = result(request)
            if isinstance(result, BaseException):
                raise result
            if not result.ok:
                raise UpstreamHTTPError(Verb(verb).value, request.path, result)
            return result
        finally:
            self.in_flight -= 1

    async def aclose(self) -> None:
        self.closed = True


class ManualTimer(ReleaseTimer):
    """Records scheduled releases; tests fire them explicitly."""

    def __init__(self):
        self.scheduled: List[Tuple[Callable[[], None], int]] = []

    def schedule(self, callback: Callable[[], None], delay_ms: int) -> None:
        self.scheduled.append((callback, delay_ms))

    @property
    def delays(self) -> List[int]:
        return [delay for _, delay in self.scheduled]

    def fire_all(self) -> int:
        pending, self.scheduled = self.scheduled, []
        for callback, _ in pending:
            callback()
        return len(pending)

    def flush(self) -> int:
        return self.fire_all()


@pytest.fixture
def fake_transport():
    return FakeTransport()


@pytest.fixture
def manual_timer():
    return ManualTimer()


@pytest.fixture(scope="session")
def runner():
    """Provides a Typer CliRunner instance."""
    return CliRunner()


@pytest.fixture
def test_config():
    """Applies configuration overrides for the duration of one test."""
    set_config_for_testing({
        "upstream.base_url": "https://tenant.example.com",
        "upstream.api_token": "DUMMY_TEST_TOKEN",
    })
    yield set_config_for_testing
    clear_test_config()
