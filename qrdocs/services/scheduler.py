"""Background task that purges expired documents on a fixed interval."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable

logger = logging.getLogger(__name__)


class PurgeScheduler:
    """Run ``purge`` once at start and then every ``interval_seconds``.

    Each run executes in a worker thread bounded by ``timeout_seconds``; a run
    that overruns is abandoned with a warning so the loop keeps its cadence.
    """

    def __init__(
        self,
        purge: Callable[[], int],
        *,
        interval_seconds: float,
        timeout_seconds: float,
        run_on_start: bool = True,
    ) -> None:
        self._purge = purge
        self.interval_seconds = max(interval_seconds, 0.01)
        self.timeout_seconds = timeout_seconds
        self.run_on_start = run_on_start
        self.runs = 0
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self) -> int | None:
        """Execute one purge; return the count or ``None`` if it failed."""

        self.runs += 1
        try:
            removed = await asyncio.wait_for(
                asyncio.to_thread(self._purge), timeout=self.timeout_seconds
            )
        except asyncio.TimeoutError:
            logger.warning(
                "Scheduled purge exceeded %.0fs and was abandoned", self.timeout_seconds
            )
            return None
        except Exception:
            logger.exception("Scheduled purge failed")
            return None
        logger.info("Scheduled purge removed %d expired documents", removed)
        return removed

    async def _loop(self) -> None:
        if self.run_on_start:
            await self.run_once()
        while True:
            await asyncio.sleep(self.interval_seconds)
            await self.run_once()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(
            self._loop(), name="qrdocs-purge"
        )

    async def stop(self) -> None:
        """Cancel the background task and wait for it to unwind."""

        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass


__all__ = ["PurgeScheduler"]
