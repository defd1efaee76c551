"""
Cooperative cancellation for in-flight sync sessions.
"""
from __future__ import annotations

import asyncio
import inspect
from typing import Awaitable, Callable, TypeVar

from packages.shared.errors import SyncCancelled

T = TypeVar("T")


class CancellationToken:
    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason = "Sync cancelled"

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "Sync cancelled") -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise SyncCancelled(self.reason)

    async def guard(self, awaitable: Awaitable[T]) -> T:
        """
        Await *awaitable* unless the token trips first. A tripped token
        cancels the pending work and raises ``SyncCancelled``.
        """
        if self.cancelled:
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            raise SyncCancelled(self.reason)
        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            waiter.cancel()
            if not task.done():
                task.cancel()
        if task in done:
            return task.result()
        raise SyncCancelled(self.reason)

    async def sleep(self, delay: float, sleep: Callable[[float], Awaitable[None]] = asyncio.sleep) -> None:
        await self.guard(sleep(delay))
