import asyncio

import pytest

from unclaimed.geocode.rate_limit import RateLimiter


class FakeClock:
    def __init__(self, start: float = 100.0) -> None:
        self.now = start
        self.sleeps = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def test_first_call_is_not_delayed():
    clock = FakeClock()
    limiter = RateLimiter(1.0, clock=clock, sleep=clock.sleep)

    waited = asyncio.run(limiter.acquire())

    assert waited == 0.0
    assert clock.sleeps == []
    assert limiter.last_request == 100.0


def test_back_to_back_calls_are_spaced():
    clock = FakeClock()
    limiter = RateLimiter(1.0, clock=clock, sleep=clock.sleep)

    async def _run():
        await limiter.acquire()
        clock.now += 0.25
        return await limiter.acquire()

    waited = asyncio.run(_run())
    assert waited == pytest.approx(0.75)
    assert limiter.last_request == pytest.approx(101.0)


def test_no_wait_once_interval_has_elapsed():
    clock = FakeClock()
    limiter = RateLimiter(1.0, clock=clock, sleep=clock.sleep)

    async def _run():
        await limiter.acquire()
        clock.now += 5
        return await limiter.acquire()

    assert asyncio.run(_run()) == 0.0
    assert clock.sleeps == []


def test_concurrent_callers_are_serialised():
    clock = FakeClock()
    limiter = RateLimiter(1.0, clock=clock, sleep=clock.sleep)
    released = []

    async def _call():
        await limiter.acquire()
        released.append(clock.now)

    async def _run():
        await asyncio.gather(*(_call() for _ in range(3)))

    asyncio.run(_run())
    assert released == [100.0, 101.0, 102.0]


def test_negative_interval_rejected():
    with pytest.raises(ValueError):
        RateLimiter(-1)
