"""Countdown clock of an attempt."""
import asyncio
import logging
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class SessionClock:
    """
    Remaining-seconds countdown driven by an asyncio task.

    One second is taken off every `tick` seconds of wall time. When the
    remaining time reaches zero `on_expire` is awaited exactly once and the
    clock stops.
    """

    def __init__(
        self,
        seconds: int,
        on_expire: Callable[[], Awaitable[None]],
        tick: float = 1.0,
    ):
        self.remaining = max(0, int(seconds))
        self.tick = tick
        self._on_expire = on_expire
        self._task: Optional[asyncio.Task] = None
        self._expired = False

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def expired(self) -> bool:
        return self._expired

    def start(self) -> None:
        if self.running or self._expired:
            return
        self._task = asyncio.create_task(self._run())

    def stop(self) -> None:
        """Stop counting. Safe to call from the expiry callback itself."""
        if self._task is not None and self._task is not asyncio.current_task():
            self._task.cancel()
        self._task = None

    async def _run(self) -> None:
        while self.remaining > 0:
            await asyncio.sleep(self.tick)
            self.remaining -= 1
        await self._expire()

    async def _expire(self) -> None:
        if self._expired:
            return
        self._expired = True
        logger.info("Attempt time is over")
        try:
            await self._on_expire()
        except Exception:
            logger.exception("Timeout handler failed")
