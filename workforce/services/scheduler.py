import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, time
from typing import Awaitable, Callable, Collection, List, Optional

from workforce.config import WEEKDAYS
from workforce.core.clock import Clock
from workforce.services.geofence import weekday_name

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DailyTrigger:
    """Fires when the local wall clock reaches ``at`` on one of ``days``."""

    at: time
    days: Collection[str] = WEEKDAYS
    window_minutes: int = 1

    def is_due(self, local_now: datetime) -> bool:
        if weekday_name(local_now.date()) not in self.days:
            return False
        now_minutes = local_now.hour * 60 + local_now.minute
        at_minutes = self.at.hour * 60 + self.at.minute
        return 0 <= now_minutes - at_minutes <= self.window_minutes


@dataclass(frozen=True)
class ScheduledJob:
    name: str
    run: Callable[[datetime], Awaitable[object]]
    # None means the job decides for itself on every tick
    trigger: Optional[DailyTrigger] = None


class JobScheduler:
    def __init__(self, clock: Clock, jobs: List[ScheduledJob], tick_seconds: float = 30.0):
        self._clock = clock
        self._jobs = list(jobs)
        self._tick_seconds = tick_seconds
        self._task: Optional[asyncio.Task] = None
        # local date on which each triggered job last fired
        self._last_fired = {}

    @property
    def jobs(self) -> List[ScheduledJob]:
        return list(self._jobs)

    def _due(self, job: ScheduledJob, local_now: datetime) -> bool:
        if job.trigger is None:
            return True
        if not job.trigger.is_due(local_now):
            return False
        return self._last_fired.get(job.name) != local_now.date()

    async def tick(self, now: Optional[datetime] = None) -> List[str]:
        """Start every due job and wait for all of them; returns the names that ran."""
        local_now = (now or self._clock.now()).astimezone(self._clock.tz)
        due = [job for job in self._jobs if self._due(job, local_now)]

        outcomes = await asyncio.gather(*(job.run(local_now) for job in due), return_exceptions=True)
        for job, outcome in zip(due, outcomes):
            if isinstance(outcome, asyncio.CancelledError):
                raise outcome
            if isinstance(outcome, Exception):
                # left unmarked so the next tick inside the window retries
                logger.error("Scheduled job %s failed: %s", job.name, outcome)
            elif job.trigger is not None:
                self._last_fired[job.name] = local_now.date()
        return [job.name for job in due]

    async def run_forever(self) -> None:
        logger.info("Job scheduler started with %s jobs", len(self._jobs))
        while True:
            await self.tick()
            await asyncio.sleep(self._tick_seconds)

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run_forever())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Job scheduler stopped")
