"""
Shared fixtures: a scripted fake backend, a controllable clock, and a sleep
that records delays instead of waiting.
"""
import asyncio
import json
from collections import defaultdict, deque
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Deque, Dict, List, Optional

import httpx
import pytest

from config.settings import Settings

BACKEND_URL = "https://backend.test/macros/exec"


class FakeBackend:
    """
    Scripted stand-in for the remote endpoint.

    Each action has a queue of outcomes; the last one repeats once the queue
    is down to it. An outcome is a dict (200 JSON body), an int (bare HTTP
    status), a ready httpx.Response, or an exception class/instance raised by
    the transport. Requests to other hosts are answered from ``hosts``.
    """

    def __init__(self, default: Any = None):
        self.default = default if default is not None else {"success": True, "data": []}
        self.outcomes: Dict[str, Deque[Any]] = defaultdict(deque)
        self.hosts: Dict[str, Any] = {}
        self.requests: List[httpx.Request] = []
        self.on_request: Optional[Callable[[httpx.Request], None]] = None

    def script(self, action: str, *outcomes: Any) -> "FakeBackend":
        self.outcomes[action].extend(outcomes)
        return self

    def calls(self, action: Optional[str] = None) -> int:
        if action is None:
            return len(self.requests)
        return sum(1 for r in self.requests if r.url.params.get("action") == action)

    def read_timeouts(self, action: str) -> List[float]:
        return [
            r.extensions["timeout"]["read"]
            for r in self.requests
            if r.url.params.get("action") == action
        ]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.on_request is not None:
            self.on_request(request)

        action = request.url.params.get("action")
        queue = self.outcomes.get(action)
        if request.url.host in self.hosts:
            outcome = self.hosts[request.url.host]
        elif queue:
            outcome = queue.popleft() if len(queue) > 1 else queue[0]
        else:
            outcome = self.default

        if isinstance(outcome, type) and issubclass(outcome, Exception):
            raise outcome("scripted failure", request=request)
        if isinstance(outcome, Exception):
            raise outcome
        if isinstance(outcome, httpx.Response):
            return outcome
        if isinstance(outcome, int):
            return httpx.Response(outcome, request=request)
        return httpx.Response(200, content=json.dumps(outcome), request=request)


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeWallClock:
    """datetime clock for cache ages."""

    def __init__(self):
        self.now = datetime(2024, 3, 4, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class RecordingSleep:
    """Async sleep replacement that records each delay and returns at once."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)
        await asyncio.sleep(0)


@pytest.fixture
def settings():
    """Settings pointing at the fake backend with default policy values."""
    return Settings(backend_url=BACKEND_URL)


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def http_client(backend):
    return httpx.AsyncClient(transport=httpx.MockTransport(backend))


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def wall_clock():
    return FakeWallClock()


@pytest.fixture
def recording_sleep():
    return RecordingSleep()
