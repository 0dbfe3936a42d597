from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

from linkfeed.jobs.ingest import TRIGGER_MANUAL, TRIGGER_SCHEDULED


logger = logging.getLogger(__name__)


DEFAULT_INTERVAL_SECONDS = 30 * 60

RunFn = Callable[[str], Awaitable[Any]]


class IngestScheduler:
    def __init__(self, run: RunFn, interval_seconds: float = DEFAULT_INTERVAL_SECONDS) -> None:
        self._run = run
        self._interval = float(interval_seconds)
        self._task: asyncio.Task | None = None

    @property
    def interval_seconds(self) -> float:
        return self._interval

    @property
    def scheduled(self) -> bool:
        return self._task is not None and not self._task.done()

    def schedule_recurring(self, interval_seconds: float | None = None, run_immediately: bool = True) -> None:
        if interval_seconds is not None:
            if interval_seconds <= 0:
                raise ValueError(f"interval must be positive: {interval_seconds}")
            self._interval = float(interval_seconds)

        if self.scheduled:
            logger.info("replacing existing ingest schedule")
            self._task.cancel()

        self._task = asyncio.create_task(self._loop(run_immediately), name="ingest_job")
        logger.info("ingest scheduled every %ss", self._interval)

    async def cancel_schedule(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        logger.info("ingest schedule cancelled")

    async def run_now(self) -> Any:
        return await self._run(TRIGGER_MANUAL)

    async def _loop(self, run_immediately: bool) -> None:
        if not run_immediately:
            await asyncio.sleep(self._interval)
        while True:
            try:
                await self._run(TRIGGER_SCHEDULED)
            except Exception:
                logger.exception("scheduled ingest failed")
            await asyncio.sleep(self._interval)
