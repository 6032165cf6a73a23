"""Periodic driver for the monitor tick with an in-flight guard."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, Union

from ..metrics import MetricRegistry

logger = logging.getLogger(__name__)

Interval = Union[float, Callable[[], float]]


class PeriodicTicker:
    """Invoke ``callback`` every ``interval`` seconds on the running loop.

    A firing that arrives while the previous invocation is still running is
    skipped and counted. ``stop`` cancels only the scheduling task; an
    invocation already in flight runs to completion.
    """

    def __init__(
        self,
        callback: Callable[[], Awaitable[Any]],
        interval: Interval,
        *,
        name: str = "risk-monitor",
        metrics: Optional[MetricRegistry] = None,
    ) -> None:
        self._callback = callback
        self._interval = interval
        self.name = name
        self._metrics = metrics or MetricRegistry()
        self._task: Optional[asyncio.Task] = None
        self._inflight: Optional[asyncio.Task] = None
        self.fired = 0
        self.skipped = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def in_flight(self) -> bool:
        return self._inflight is not None and not self._inflight.done()

    def _current_interval(self) -> float:
        interval = self._interval() if callable(self._interval) else self._interval
        return max(float(interval), 0.0)

    def start(self) -> bool:
        """Schedule the loop; returns ``False`` when already running.

        Must be called with an event loop running in the current thread.
        """

        if self.running:
            return False
        loop = asyncio.get_running_loop()
        self._task = loop.create_task(self._run(), name=f"{self.name}-scheduler")
        logger.info("Scheduler started", extra={"scheduler": self.name, "interval": self._current_interval()})
        return True

    def stop(self) -> bool:
        if not self.running:
            return False
        assert self._task is not None
        self._task.cancel()
        self._task = None
        logger.info("Scheduler stopped", extra={"scheduler": self.name, "in_flight": self.in_flight})
        return True

    async def wait_idle(self) -> None:
        """Wait until the in-flight invocation, if any, has finished."""

        task = self._inflight
        if task is not None and not task.done():
            await asyncio.wait({task})

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._current_interval())
            self.fired += 1
            if self.in_flight:
                self.skipped += 1
                self._metrics.inc("risk_ticks_skipped_total")
                logger.warning(
                    "Previous tick still running; skipping this one",
                    extra={"scheduler": self.name, "skipped": self.skipped},
                )
                continue
            self._inflight = asyncio.create_task(self._invoke(), name=f"{self.name}-tick")

    async def _invoke(self) -> None:
        try:
            await self._callback()
        except Exception:
            logger.exception("Scheduled tick failed", extra={"scheduler": self.name})


__all__ = ["PeriodicTicker"]
