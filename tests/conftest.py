from __future__ import annotations

import pytest

from formguard.engine import RateLimitEngine

START_MS = 1_700_000_000_000


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, start: int = START_MS) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def engine(clock):
    limiter = RateLimitEngine(clock=clock, autostart=False)
    try:
        yield limiter
    finally:
        limiter.stop()
