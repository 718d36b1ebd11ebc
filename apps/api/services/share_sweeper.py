"""Periodic background sweep of expired shares."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from services.share_lifecycle import SweepReport

logger = logging.getLogger(__name__)


class ShareSweeper:
    """Runs a sweep immediately on start and then every ``interval_seconds``.

    Holds nothing but the sweep callable and the interval. A failing tick is
    logged and the loop keeps going.
    """

    def __init__(self, sweep: Callable[[], Awaitable[SweepReport]], interval_seconds: float):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self._sweep = sweep
        self._interval_seconds = float(interval_seconds)
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self) -> Optional[SweepReport]:
        try:
            return await self._sweep()
        except Exception as exc:
            logger.warning("Share sweep tick failed: %s", exc)
            return None

    async def _run_forever(self) -> None:
        while True:
            await self.run_once()
            await asyncio.sleep(self._interval_seconds)

    def start(self) -> asyncio.Task:
        if self.running:
            return self._task
        self._task = asyncio.create_task(self._run_forever(), name="share-sweeper")
        return self._task

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
