# Copyright 2024-2025 Amiable Development
# SPDX-License-Identifier: Apache-2.0

"""Sweep scheduling.

Runs the orchestrator on a fixed interval. Sweeps never overlap: a tick that
arrives while a sweep is still running is skipped. A failed sweep is logged
and retried on the next tick; it never stops the loop.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from onboarding_janitor.sweep.orchestrator import SweepResult

logger = logging.getLogger(__name__)


class SweepScheduler:
    """Scheduler for onboarding sweeps.

    Attributes:
        orchestrator: Object with an async run_sweep() method.
        interval_seconds: Seconds between sweeps.
        last_run: When the last sweep started, if any.

    Example:
        >>> scheduler = SweepScheduler(orchestrator, interval_seconds=60)
        >>> await scheduler.run_forever(stop_event)
    """

    def __init__(self, orchestrator, interval_seconds: float = 60):
        """Initialize the scheduler.

        Args:
            orchestrator: Sweep orchestrator to drive.
            interval_seconds: Seconds between sweeps (default 60).
        """
        self.orchestrator = orchestrator
        self.interval_seconds = interval_seconds
        self.last_run: Optional[datetime] = None
        self.last_result: Optional[SweepResult] = None
        self._lock = asyncio.Lock()

    @property
    def running(self) -> bool:
        return self._lock.locked()

    def should_run(self, last_run: Optional[datetime] = None) -> bool:
        """Determine if a sweep is due.

        Args:
            last_run: When the last sweep started.

        Returns:
            True if a sweep should run now.
        """
        if last_run is None:
            return True

        now = datetime.now(timezone.utc)

        if last_run.tzinfo is None:
            last_run = last_run.replace(tzinfo=timezone.utc)

        return now - last_run >= timedelta(seconds=self.interval_seconds)

    def get_next_run(self, last_run: Optional[datetime] = None) -> datetime:
        """Calculate the next scheduled sweep time.

        Args:
            last_run: When the last sweep started.

        Returns:
            Datetime of the next sweep; now if it is overdue.
        """
        now = datetime.now(timezone.utc)

        if last_run is None:
            return now

        if last_run.tzinfo is None:
            last_run = last_run.replace(tzinfo=timezone.utc)

        next_run = last_run + timedelta(seconds=self.interval_seconds)

        if next_run < now:
            return now

        return next_run

    async def run_once(self) -> Optional[SweepResult]:
        """Run a single sweep unless one is already in progress.

        Returns:
            The sweep result, or None if the tick was skipped or the sweep
            itself raised.
        """
        if self._lock.locked():
            logger.warning("Previous sweep still running, skipping this tick")
            return None

        async with self._lock:
            self.last_run = datetime.now(timezone.utc)
            try:
                result = await self.orchestrator.run_sweep()
            except Exception as e:
                logger.error(f"Sweep failed, will retry next tick: {e}")
                return None

        self.last_result = result
        return result

    async def run_forever(self, stop_event: Optional[asyncio.Event] = None) -> None:
        """Run sweeps on the interval until stop_event is set.

        Args:
            stop_event: Event that ends the loop when set.
        """
        stop_event = stop_event or asyncio.Event()
        logger.info(f"Sweeping welcome channels every {self.interval_seconds}s")

        while not stop_event.is_set():
            if self.should_run(self.last_run):
                await self.run_once()

            delay = (self.get_next_run(self.last_run) - datetime.now(timezone.utc)).total_seconds()
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=max(delay, 0.0))
            except asyncio.TimeoutError:
                pass

        logger.info("Sweep scheduler stopped")
