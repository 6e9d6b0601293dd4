"""
Shared test fixtures for resource-cache.

Provides:
- A controllable clock
- A fetch operation whose calls stay pending until a test resolves them
"""

import asyncio

import pytest


class FakeClock:
    """Controllable clock for deterministic time-based tests."""

    def __init__(self, start: float = 1000.0):
        self.start = start
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    def travel_to(self, offset: float) -> None:
        """Jump to start + offset."""
        self.now = self.start + offset


async def settle(rounds: int = 5) -> None:
    """Let scheduled callbacks and fetch tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


class ControlledFetch:
    """
    Fetch operation that records each call and blocks until resolved.

    Tests resolve calls in the order they were made with resolve_next().
    """

    def __init__(self):
        self.calls: list[dict] = []
        self._futures: list[asyncio.Future] = []

    async def __call__(self, context):
        self.calls.append(dict(context))
        future = asyncio.get_running_loop().create_future()
        self._futures.append(future)
        return await future

    @property
    def pending_count(self) -> int:
        return sum(1 for f in self._futures if not f.done())

    async def resolve_next(self, value=None, error=None) -> None:
        await settle()
        future = next(f for f in self._futures if not f.done())
        if error is not None:
            future.set_exception(error)
        else:
            future.set_result(value)
        await settle()


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def fetch():
    return ControlledFetch()
