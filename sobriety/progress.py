from __future__ import annotations

import asyncio
import inspect
import logging
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, NamedTuple

from sobriety.codec import as_aware, utc_now

logger = logging.getLogger(__name__)

MS_PER_MINUTE = 60_000
MS_PER_HOUR = 3_600_000
MS_PER_DAY = 86_400_000


class Elapsed(NamedTuple):
    days: int
    hours: int
    minutes: int


def elapsed(start: datetime, now: datetime) -> Elapsed:
    """Whole days, hours and minutes between two instants. A future start counts as zero."""
    diff_ms = (as_aware(now) - as_aware(start)) // timedelta(milliseconds=1)
    diff_ms = max(0, diff_ms)
    return Elapsed(
        days=diff_ms // MS_PER_DAY,
        hours=(diff_ms % MS_PER_DAY) // MS_PER_HOUR,
        minutes=(diff_ms % MS_PER_HOUR) // MS_PER_MINUTE,
    )


class GrowthStage(str, Enum):
    SEED = "seed"
    SPROUT = "sprout"
    YOUNG = "young"
    GROWING = "growing"
    FLOWERING = "flowering"
    TREE = "tree"


# (last day inclusive, stage)
STAGE_BREAKPOINTS = (
    (1, GrowthStage.SEED),
    (6, GrowthStage.SPROUT),
    (13, GrowthStage.YOUNG),
    (29, GrowthStage.GROWING),
    (89, GrowthStage.FLOWERING),
)


def growth_stage(days: int) -> GrowthStage:
    for last_day, stage in STAGE_BREAKPOINTS:
        if days <= last_day:
            return stage
    return GrowthStage.TREE


class JourneyTicker:
    """Recompute elapsed time on a fixed cadence while a view is open.

    ``on_tick`` receives an ``Elapsed`` and may be a plain function or a
    coroutine function. The first tick happens immediately on ``start()``.
    """

    def __init__(
        self,
        start: datetime,
        on_tick: Callable[[Elapsed], Any],
        interval: float = 1.0,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.start_instant = start
        self.on_tick = on_tick
        self.interval = interval
        self.clock = clock
        self._task: asyncio.Task | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def tick(self) -> Elapsed:
        current = elapsed(self.start_instant, self.clock())
        result = self.on_tick(current)
        if inspect.isawaitable(result):
            await result
        return current

    async def _run(self) -> None:
        while True:
            await self.tick()
            await asyncio.sleep(self.interval)

    def start(self) -> None:
        if self.is_running:
            logger.warning("Journey ticker already running")
            return
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        if self._task is None:
            return
        task, self._task = self._task, None
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def __aenter__(self) -> "JourneyTicker":
        self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.stop()
