"""Schedule registry - one recurring check timer per resource.

Each resource gets a single APScheduler interval job keyed
``check-resource-<id>``. Registering an id that already has a job replaces
it, so a resource never has two live timers. The callback only ever sees the
arguments captured at registration time; changing a resource's interval or
definition means registering it again.

Jobs fire independently on the event loop. A slow check may still be running
when the same resource fires again; up to ``MAX_OVERLAPPING_RUNS`` runs of
one job may overlap before APScheduler skips a fire.
"""
import logging
import threading
from typing import Any, Callable, Dict, List, Optional

from apscheduler.job import Job
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

logger = logging.getLogger(__name__)

JOB_PREFIX = "check-resource-"

MAX_OVERLAPPING_RUNS = 3

# A fire delayed by a busy loop still runs if it is at most this late
MISFIRE_GRACE_SECONDS = 30


def job_key(resource_id: int) -> str:
    return f"{JOB_PREFIX}{resource_id}"


class ScheduleRegistry:
    """Owns the mapping from resource id to its recurring check job."""

    def __init__(self, scheduler: Optional[AsyncIOScheduler] = None):
        self.scheduler = scheduler or AsyncIOScheduler()
        self._jobs: Dict[int, Job] = {}
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self.scheduler.running

    def start(self):
        """Start firing registered jobs. Must be called with a running event loop."""
        if self.scheduler.running:
            return
        self.scheduler.start()
        logger.info(f"Schedule registry started with {len(self._jobs)} job(s)")

    def shutdown(self):
        """Stop the scheduler; in-flight checks are not awaited."""
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Schedule registry stopped")

    def register(
        self,
        resource_id: int,
        interval_minutes: int,
        callback: Callable[..., Any],
        *args: Any,
    ) -> Job:
        """Schedule ``callback(*args)`` every ``interval_minutes`` minutes.

        Any existing job for the resource is cancelled first.
        """
        if interval_minutes < 1:
            raise ValueError(f"Interval must be at least 1 minute, got {interval_minutes}")

        key = job_key(resource_id)
        with self._lock:
            self._remove_locked(resource_id)
            job = self.scheduler.add_job(
                callback,
                trigger=IntervalTrigger(minutes=interval_minutes),
                args=args,
                id=key,
                name=key,
                replace_existing=True,
                max_instances=MAX_OVERLAPPING_RUNS,
                coalesce=True,
                misfire_grace_time=MISFIRE_GRACE_SECONDS,
            )
            self._jobs[resource_id] = job

        logger.info(f"Scheduled {key} every {interval_minutes} minute(s)")
        return job

    def unregister(self, resource_id: int) -> bool:
        """Cancel the resource's job. Returns False if there was none."""
        with self._lock:
            removed = self._remove_locked(resource_id)
        if removed:
            logger.info(f"Removed {job_key(resource_id)}")
        return removed

    def exists(self, resource_id: int) -> bool:
        with self._lock:
            return resource_id in self._jobs

    def get_job(self, resource_id: int) -> Optional[Job]:
        with self._lock:
            return self._jobs.get(resource_id)

    def job_ids(self) -> List[str]:
        with self._lock:
            return [job_key(resource_id) for resource_id in sorted(self._jobs)]

    def _remove_locked(self, resource_id: int) -> bool:
        job = self._jobs.pop(resource_id, None)
        if job is None:
            return False
        # The job may already be gone from the scheduler (e.g. after shutdown)
        if self.scheduler.get_job(job.id) is not None:
            self.scheduler.remove_job(job.id)
        return True


# Global instance
schedule_registry = ScheduleRegistry()
