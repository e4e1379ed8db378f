"""Periodic driver for the scheduled sweeps of the delivery engine."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime

from chat_notifier.domain.entities import DigestPeriod
from chat_notifier.utils import floor_to_hour, utc_now

logger = logging.getLogger(__name__)


class SweepTicker:
    """Call the batch and retry sweeps on an interval, digests once per hour.

    ``tick`` performs one pass and is what tests drive directly; ``start``
    runs it in a background task until ``stop`` is awaited.
    """

    def __init__(
        self,
        *,
        batch_sweep: Callable[[], Awaitable[int]],
        retry_sweep: Callable[[], Awaitable[int]],
        digest_run: Callable[[DigestPeriod, datetime], Awaitable[int]],
        interval_seconds: float = 60,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._batch_sweep = batch_sweep
        self._retry_sweep = retry_sweep
        self._digest_run = digest_run
        self._interval = interval_seconds
        self._clock = clock
        self._last_hour: datetime | None = None
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def tick(self, now: datetime | None = None) -> None:
        now = now or self._clock()
        await self._guarded("batch sweep", self._batch_sweep())
        await self._guarded("retry sweep", self._retry_sweep())

        hour = floor_to_hour(now)
        if self._last_hour is not None and hour <= self._last_hour:
            return
        self._last_hour = hour
        for period in DigestPeriod:
            await self._guarded(f"{period.value} digest", self._digest_run(period, hour))

    async def _guarded(self, name: str, call: Awaitable[int]) -> None:
        try:
            count = await call
        except Exception:
            logger.exception("Scheduled %s failed", name)
            return
        if count:
            logger.info("Scheduled %s enqueued %s job(s)", name, count)

    async def _run(self) -> None:
        while True:
            await self.tick()
            await asyncio.sleep(self._interval)

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None


__all__ = ["SweepTicker"]
