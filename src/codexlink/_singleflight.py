"""Async single-flight helper.

Used to coordinate concurrent requests for the same key so only one coroutine
performs the work, while others await the same Future.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any, Generic, TypeVar

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

K = TypeVar("K")
T = TypeVar("T")


def consume_future_exception(fut: asyncio.Future[Any]) -> None:
    """Avoid 'Future exception was never retrieved' for coordination futures."""
    try:
        _ = fut.exception()
    except asyncio.CancelledError:
        return


class SingleFlight(Generic[K, T]):
    """Collapse concurrent calls for the same key onto one execution.

    The first caller for a key installs a shared Future and runs *work*; late
    joiners await that Future. The slot is cleared once the work settles,
    whether it succeeded or failed, so the next caller starts a fresh run.
    """

    def __init__(self) -> None:
        self._inflight: dict[K, asyncio.Future[T]] = {}

    def in_flight(self, key: K) -> bool:
        """Return True while work for *key* is running."""
        return key in self._inflight

    async def do(self, key: K, work: Callable[[], Awaitable[T]]) -> T:
        """Run *work* once for *key*, sharing its outcome with concurrent callers."""
        fut = self._inflight.get(key)
        if fut is not None:
            return await asyncio.shield(fut)

        fut = asyncio.get_running_loop().create_future()
        fut.add_done_callback(consume_future_exception)
        self._inflight[key] = fut

        try:
            value = await work()
        except asyncio.CancelledError:
            fut.cancel()
            raise
        except Exception as e:
            fut.set_exception(e)
            raise
        else:
            fut.set_result(value)
            return value
        finally:
            self._inflight.pop(key, None)
