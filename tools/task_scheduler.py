"""
Task Scheduler
Single asyncio timer loop that runs (celery crontab, task) pairs
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, List, Optional, Set

from celery.schedules import crontab


logger = logging.getLogger(__name__)


# Tasks receive the minute they were scheduled for
JobTask = Callable[[datetime], Awaitable[Any]]

# Missed ticks older than this are dropped instead of replayed
MAX_CATCH_UP_MINUTES = 5


def crontab_matches(schedule: crontab, moment: datetime) -> bool:
    """Whether ``schedule`` fires during the local wall-clock minute of ``moment``"""
    # celery counts weekdays from Sunday=0
    weekday = (moment.weekday() + 1) % 7
    return (
        moment.minute in schedule.minute
        and moment.hour in schedule.hour
        and moment.day in schedule.day_of_month
        and moment.month in schedule.month_of_year
        and weekday in schedule.day_of_week
    )


@dataclass
class ScheduledJob:
    """A named task bound to a crontab"""
    name: str
    schedule: crontab
    task: JobTask


class TaskScheduler:
    """
    Runs registered jobs whenever their crontab matches the current
    minute. Each run is an independent asyncio task; a failing run is logged
    and the next matching minute runs it again.
    """

    def __init__(self, clock: Callable[[], datetime] = datetime.now):
        self.clock = clock
        self.jobs: List[ScheduledJob] = []
        self._runner: Optional[asyncio.Task] = None
        self._in_flight: Set[asyncio.Task] = set()
        self._last_minute: Optional[datetime] = None

    def add_job(self, name: str, schedule: crontab, task: JobTask) -> ScheduledJob:
        """Register a task under a crontab"""
        job = ScheduledJob(name=name, schedule=schedule, task=task)
        self.jobs.append(job)
        logger.info(f"Scheduled job '{name}' at {schedule!r}")
        return job

    def due_jobs(self, moment: datetime) -> List[ScheduledJob]:
        return [job for job in self.jobs if crontab_matches(job.schedule, moment)]

    def tick(self, moment: datetime) -> List[asyncio.Task]:
        """Launch every job due at ``moment``"""
        return [self._launch(job.name, job.task, moment) for job in self.due_jobs(moment)]

    def run_once_after(self, delay_seconds: float, name: str, task: JobTask) -> asyncio.Task:
        """Run a task once after a delay, outside the cron schedule"""
        async def _delayed():
            await asyncio.sleep(delay_seconds)
            await self._run(name, task, self.clock())

        return self._track(asyncio.create_task(_delayed(), name=name))

    def _launch(self, name: str, task: JobTask, moment: datetime) -> asyncio.Task:
        return self._track(asyncio.create_task(self._run(name, task, moment), name=name))

    def _track(self, task: asyncio.Task) -> asyncio.Task:
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)
        return task

    async def _run(self, name: str, task: JobTask, moment: datetime) -> None:
        try:
            await task(moment)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception(f"Scheduled job '{name}' failed at {moment:%Y-%m-%d %H:%M}")

    def _minutes_to_run(self, now: datetime) -> List[datetime]:
        current = now.replace(second=0, microsecond=0)
        if self._last_minute is None:
            return [current]
        if current <= self._last_minute:
            return []

        minutes = []
        moment = max(self._last_minute + timedelta(minutes=1),
                     current - timedelta(minutes=MAX_CATCH_UP_MINUTES))
        while moment <= current:
            minutes.append(moment)
            moment += timedelta(minutes=1)
        return minutes

    async def _loop(self) -> None:
        logger.info(f"Task scheduler started with {len(self.jobs)} job(s)")
        while True:
            now = self.clock()
            for minute in self._minutes_to_run(now):
                self.tick(minute)
                self._last_minute = minute

            # Sleep until just past the next minute boundary
            now = self.clock()
            await asyncio.sleep(60 - now.second - now.microsecond / 1_000_000 + 0.05)

    def start(self) -> None:
        if self._runner is None or self._runner.done():
            self._runner = asyncio.create_task(self._loop(), name="task-scheduler")

    async def stop(self) -> None:
        """Stop the timer loop and cancel runs still in progress"""
        tasks = [t for t in (self._runner, *self._in_flight) if t is not None]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._runner = None
        logger.info("Task scheduler stopped")

    @property
    def running(self) -> bool:
        return self._runner is not None and not self._runner.done()
