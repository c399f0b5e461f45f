"""Shared pytest fixtures."""

import pytest


class FakeClock:
    """Millisecond clock that only moves when told to (or when slept on)."""

    def __init__(self, start_ms: float = 1_000_000.0):
        self.now = start_ms
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds * 1000


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
