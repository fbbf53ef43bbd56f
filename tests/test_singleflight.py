from __future__ import annotations

import asyncio

import pytest

from codexlink._singleflight import SingleFlight

pytestmark = pytest.mark.unit


@pytest.mark.asyncio
async def test_concurrent_callers_share_one_execution() -> None:
    flight: SingleFlight[str, int] = SingleFlight()
    calls = 0

    async def work() -> int:
        nonlocal calls
        calls += 1
        await asyncio.sleep(0.02)
        return 42

    results = await asyncio.gather(*(flight.do("k", work) for _ in range(10)))

    assert results == [42] * 10
    assert calls == 1
    assert not flight.in_flight("k")


@pytest.mark.asyncio
async def test_failure_is_shared_and_slot_is_cleared() -> None:
    flight: SingleFlight[str, int] = SingleFlight()
    calls = 0

    async def failing() -> int:
        nonlocal calls
        calls += 1
        await asyncio.sleep(0.01)
        raise RuntimeError("exchange failed")

    results = await asyncio.gather(
        flight.do("k", failing), flight.do("k", failing), return_exceptions=True
    )

    assert calls == 1
    assert all(isinstance(r, RuntimeError) for r in results)
    assert not flight.in_flight("k")

    async def ok() -> int:
        return 7

    assert await flight.do("k", ok) == 7


@pytest.mark.asyncio
async def test_distinct_keys_run_independently() -> None:
    flight: SingleFlight[str, str] = SingleFlight()

    async def make(value: str):
        await asyncio.sleep(0.01)
        return value

    a, b = await asyncio.gather(
        flight.do("a", lambda: make("A")), flight.do("b", lambda: make("B"))
    )

    assert (a, b) == ("A", "B")


@pytest.mark.asyncio
async def test_cancelled_creator_releases_the_slot() -> None:
    flight: SingleFlight[str, int] = SingleFlight()
    started = asyncio.Event()

    async def slow() -> int:
        started.set()
        await asyncio.sleep(10)
        return 1

    task = asyncio.create_task(flight.do("k", slow))
    await started.wait()
    assert flight.in_flight("k")

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert not flight.in_flight("k")
