"""
Unit tests for cooperative sync cancellation.
"""
import asyncio

import pytest

from packages.shared.errors import SyncCancelled
from apps.worker.sync.cancellation import CancellationToken


def test_raise_if_cancelled():
    async def scenario():
        token = CancellationToken()
        token.raise_if_cancelled()
        token.cancel("Sync superseded")
        with pytest.raises(SyncCancelled) as exc:
            token.raise_if_cancelled()
        assert exc.value.reason == "Sync superseded"

    asyncio.run(scenario())


def test_first_reason_wins():
    async def scenario():
        token = CancellationToken()
        token.cancel("Sync superseded")
        token.cancel("Sync cancelled")
        assert token.reason == "Sync superseded"

    asyncio.run(scenario())


def test_guard_returns_result():
    async def scenario():
        token = CancellationToken()

        async def work():
            return 42

        assert await token.guard(work()) == 42

    asyncio.run(scenario())


def test_guard_interrupts_pending_work():
    async def scenario():
        token = CancellationToken()
        started = asyncio.Event()
        finished = []

        async def slow():
            started.set()
            await asyncio.sleep(10)
            finished.append(True)

        async def trip():
            await started.wait()
            token.cancel()

        with pytest.raises(SyncCancelled):
            await asyncio.gather(token.guard(slow()), trip())
        assert finished == []

    asyncio.run(scenario())


def test_guard_on_tripped_token_never_starts_work():
    async def scenario():
        token = CancellationToken()
        token.cancel()
        ran = []

        async def work():
            ran.append(True)

        with pytest.raises(SyncCancelled):
            await token.guard(work())
        assert ran == []

    asyncio.run(scenario())


def test_sleep_is_interruptible():
    async def scenario():
        token = CancellationToken()
        loop = asyncio.get_running_loop()
        loop.call_later(0.01, token.cancel)
        with pytest.raises(SyncCancelled):
            await token.sleep(10)

    asyncio.run(scenario())
