"""Periodic resolution — one startup tick after a short delay, then every interval.

``sleep`` is injectable so the loop can run on a virtual clock under test.
"""

import asyncio
import logging
from typing import Awaitable, Callable

from .errors import CorruptLedgerError

logger = logging.getLogger(__name__)


class ResolutionScheduler:
    def __init__(
        self,
        job: Callable[[], Awaitable[object]],
        interval: float = 3600.0,
        startup_delay: float = 10.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        max_consecutive_failures: int = 5,
    ):
        self._job = job
        self.interval = interval
        self.startup_delay = startup_delay
        self._sleep = sleep
        self.max_consecutive_failures = max_consecutive_failures

        self._task: asyncio.Task | None = None
        self._running = False
        self._in_tick = False
        self.runs = 0
        self.consecutive_failures = 0

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> asyncio.Task:
        """Launch the loop on the running event loop (idempotent)."""
        if self._task is not None and not self._task.done():
            return self._task
        self._running = True
        self._task = asyncio.create_task(self._loop())
        logger.info(
            "Resolution scheduler started (startup_delay=%ss, interval=%ss)",
            self.startup_delay, self.interval,
        )
        return self._task

    async def stop(self) -> None:
        """Stop scheduling further ticks; a tick already running completes."""
        self._running = False
        task = self._task
        if task is None:
            return
        if not self._in_tick:
            task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Resolution scheduler stopped after %d runs", self.runs)

    async def wait(self) -> None:
        """Block until the loop exits on its own (too many failures) or is stopped."""
        if self._task is not None:
            try:
                await self._task
            except asyncio.CancelledError:
                pass

    async def run_once(self) -> bool:
        """Execute one tick; returns whether the job succeeded."""
        self._in_tick = True
        try:
            await self._job()
        except CorruptLedgerError as exc:
            logger.critical("Ledger is corrupt, halting resolution until repaired: %s", exc)
            self._running = False
            return False
        except Exception as exc:
            self.consecutive_failures += 1
            logger.exception(
                "Resolution run failed (%d in a row): %s", self.consecutive_failures, exc,
            )
            if self.consecutive_failures >= self.max_consecutive_failures:
                logger.critical("Too many consecutive failures, stopping scheduler")
                self._running = False
            return False
        finally:
            self._in_tick = False
        self.consecutive_failures = 0
        self.runs += 1
        return True

    async def _loop(self) -> None:
        delay = self.startup_delay
        while self._running:
            await self._sleep(delay)
            if not self._running:
                break
            await self.run_once()
            delay = self.interval
