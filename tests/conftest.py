import asyncio

import pytest

from maestro_portal.adapters.registry.mock_registry import MockRegistry
from maestro_portal.services.status_store import StatusStore


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class GatedFetcher:
    """Fetcher whose calls block until released, in call order or any order."""

    def __init__(self):
        self.calls = 0
        self._gates: list[asyncio.Future] = []

    async def __call__(self):
        self.calls += 1
        gate = asyncio.get_running_loop().create_future()
        self._gates.append(gate)
        return await gate

    def release(self, index: int, value):
        self._gates[index].set_result(value)

    def fail(self, index: int, exc: Exception):
        self._gates[index].set_exception(exc)


async def settle(rounds: int = 5):
    """Let scheduled tasks run to their next suspension point."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture()
def status() -> StatusStore:
    return StatusStore()


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def registry(status) -> MockRegistry:
    return MockRegistry(status)
