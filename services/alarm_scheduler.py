"""
Periodic alarm scheduling on top of APScheduler.

Alarms are registered by name. Registering the same name again with the same
interval is a no-op, and a different interval replaces the job, so startup
code can re-register unconditionally.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_EXECUTED, EVENT_JOB_MISSED
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

logger = logging.getLogger(__name__)

AlarmCallback = Callable[[], Awaitable[Any]]


@dataclass
class Alarm:
    name: str
    interval_minutes: float
    callback: AlarmCallback


class AlarmScheduler:
    """
    Named interval alarms with one running instance per alarm.
    """

    def __init__(self, misfire_grace_time: int = 60):
        """
        Initialize alarm scheduler.

        Args:
            misfire_grace_time: Seconds a late fire is still run
        """
        self.misfire_grace_time = misfire_grace_time
        self.alarms: Dict[str, Alarm] = {}
        self.scheduler: Optional[AsyncIOScheduler] = None

    @property
    def running(self) -> bool:
        return self.scheduler is not None and self.scheduler.running

    def _job_listener(self, event: Any) -> None:
        """Log job results."""
        if event.code == EVENT_JOB_MISSED:
            logger.warning(f"Alarm {event.job_id} missed its run time")
        elif event.exception:
            logger.error(f"Alarm {event.job_id} failed: {event.exception}")
        else:
            logger.debug(f"Alarm {event.job_id} fired")

    def _add_job(self, alarm: Alarm) -> None:
        self.scheduler.add_job(
            alarm.callback,
            IntervalTrigger(minutes=alarm.interval_minutes),
            id=alarm.name,
            name=alarm.name,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            misfire_grace_time=self.misfire_grace_time,
        )

    def schedule(self, name: str, interval_minutes: float, callback: AlarmCallback) -> bool:
        """
        Register a periodic alarm.

        Args:
            name: Alarm name (job ID)
            interval_minutes: Period in minutes
            callback: Coroutine function to run

        Returns:
            True if the alarm was added or changed, False if it already existed
        """
        if interval_minutes <= 0:
            raise ValueError(f"interval_minutes must be positive, got {interval_minutes}")

        existing = self.alarms.get(name)
        if existing is not None and existing.interval_minutes == interval_minutes:
            logger.debug(f"Alarm {name} already scheduled every {interval_minutes} min")
            return False

        alarm = Alarm(name=name, interval_minutes=interval_minutes, callback=callback)
        self.alarms[name] = alarm
        if self.running:
            self._add_job(alarm)
        logger.info(f"Scheduled alarm {name} every {interval_minutes} min")
        return True

    def cancel(self, name: str) -> bool:
        """Remove an alarm; returns False if it was not registered."""
        alarm = self.alarms.pop(name, None)
        if alarm is None:
            return False
        if self.running and self.scheduler.get_job(name) is not None:
            self.scheduler.remove_job(name)
        logger.info(f"Cancelled alarm {name}")
        return True

    def get_jobs(self) -> List[str]:
        return list(self.alarms)

    async def fire(self, name: str) -> Any:
        """Run an alarm callback immediately, outside its schedule."""
        alarm = self.alarms.get(name)
        if alarm is None:
            raise KeyError(name)
        return await alarm.callback()

    def start(self) -> None:
        """Start the scheduler on the running event loop."""
        if self.running:
            return

        self.scheduler = AsyncIOScheduler(event_loop=asyncio.get_running_loop())
        self.scheduler.add_listener(
            self._job_listener, EVENT_JOB_EXECUTED | EVENT_JOB_ERROR | EVENT_JOB_MISSED
        )
        for alarm in self.alarms.values():
            self._add_job(alarm)
        self.scheduler.start()
        logger.info(f"Alarm scheduler started with {len(self.alarms)} alarm(s)")

    def shutdown(self, wait: bool = False) -> None:
        if not self.running:
            return
        self.scheduler.shutdown(wait=wait)
        self.scheduler = None
        logger.info("Alarm scheduler stopped")
