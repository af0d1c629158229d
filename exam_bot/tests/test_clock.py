"""Tests for the attempt countdown clock."""
import asyncio
from unittest.mock import AsyncMock

from attempt.clock import SessionClock


async def _wait_expired(clock: SessionClock, timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not clock.expired and loop.time() < deadline:
        await asyncio.sleep(0.005)


class TestSessionClock:
    """Tests of SessionClock."""

    async def test_one_second_expires_once(self):
        """A one-second clock calls the handler exactly once and stops."""
        on_expire = AsyncMock()
        clock = SessionClock(1, on_expire, tick=0.001)

        clock.start()
        await _wait_expired(clock)
        await asyncio.sleep(0.01)

        assert clock.expired is True
        assert clock.remaining == 0
        assert clock.running is False
        on_expire.assert_awaited_once()

    async def test_countdown(self):
        on_expire = AsyncMock()
        clock = SessionClock(100, on_expire, tick=0.001)

        clock.start()
        await asyncio.sleep(0.05)
        clock.stop()

        assert 0 < clock.remaining < 100
        on_expire.assert_not_awaited()

    async def test_stop_prevents_expiry(self):
        on_expire = AsyncMock()
        clock = SessionClock(5, on_expire, tick=0.01)

        clock.start()
        clock.stop()
        await asyncio.sleep(0.1)

        assert clock.remaining == 5
        assert clock.expired is False
        on_expire.assert_not_awaited()

    async def test_start_twice_runs_one_countdown(self):
        on_expire = AsyncMock()
        clock = SessionClock(1, on_expire, tick=0.001)

        clock.start()
        clock.start()
        await _wait_expired(clock)
        await asyncio.sleep(0.01)

        on_expire.assert_awaited_once()

    async def test_zero_seconds_expires_immediately(self):
        on_expire = AsyncMock()
        clock = SessionClock(0, on_expire)

        clock.start()
        await _wait_expired(clock)

        on_expire.assert_awaited_once()

    async def test_handler_error_is_logged(self):
        """A failing handler does not break the clock task."""
        on_expire = AsyncMock(side_effect=RuntimeError("boom"))
        clock = SessionClock(1, on_expire, tick=0.001)

        clock.start()
        await _wait_expired(clock)
        await asyncio.sleep(0.01)

        assert clock.expired is True
        assert clock.running is False
