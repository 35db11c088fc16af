# backend/pestalert/healthcheck.py
import threading
from datetime import datetime, timezone
from typing import Dict, Optional

from fastapi import APIRouter, Request

from .logging_setup import logger

router = APIRouter()

# a job is stale once it misses this many of its own intervals
FRESHNESS_INTERVALS = 2.0


def _iso(dt: Optional[datetime]) -> Optional[str]:
    return dt.isoformat() if dt else None


class HealthState:
    """
    Scheduler liveness and last-run timestamp per job. Updated by the job
    runner and the dispatcher, read by GET /health.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self.scheduler_alive = False
        self.started_at: Optional[datetime] = None
        self.intervals: Dict[str, float] = {}
        self.last_run: Dict[str, datetime] = {}

    def register_job(self, job: str, interval_s: float) -> None:
        with self._lock:
            self.intervals[job] = interval_s

    def update_health(self, event: str, at: Optional[datetime] = None) -> None:
        """Events: "scheduler_start", "scheduler_stop"."""
        at = at or datetime.now(timezone.utc)
        with self._lock:
            if event == "scheduler_start":
                self.scheduler_alive = True
                self.started_at = at
            elif event == "scheduler_stop":
                self.scheduler_alive = False
            else:
                raise ValueError(f"unknown health event: {event}")
        logger.info(f"[healthcheck] update: {event} -> {at.isoformat()}")

    def record_run(self, job: str, at: Optional[datetime] = None) -> None:
        at = at or datetime.now(timezone.utc)
        with self._lock:
            self.last_run[job] = at
        logger.info(f"[healthcheck] {job} ran at {at.isoformat()}")

    def _job_ages(self, now: datetime) -> Dict[str, Optional[float]]:
        ages = {}
        for job in set(self.intervals) | set(self.last_run):
            last = self.last_run.get(job)
            ages[job] = (now - last).total_seconds() if last else None
        return ages

    def _is_fresh(self, job: str, age: Optional[float], now: datetime) -> bool:
        interval = self.intervals.get(job)
        if interval is None:
            return age is not None
        window = interval * FRESHNESS_INTERVALS
        if age is not None:
            return age <= window
        # never ran yet: fine while the first run is not overdue
        return self.started_at is not None and (now - self.started_at).total_seconds() <= window

    def status(self, now: Optional[datetime] = None):
        """
        Compute friendly status string and details.
        Returns tuple (status_str, details_dict).
        """
        now = now or datetime.now(timezone.utc)
        with self._lock:
            alive = self.scheduler_alive
            ages = self._job_ages(now)
            fresh = {job: self._is_fresh(job, age, now) for job, age in ages.items()}
            details = {
                "scheduler_alive": alive,
                "started_at": _iso(self.started_at),
                "jobs": {
                    job: {
                        "last_run": _iso(self.last_run.get(job)),
                        "age_sec": ages[job],
                        "fresh": fresh[job],
                    }
                    for job in sorted(ages)
                },
            }

        if alive and all(fresh.values()):
            return "Healthy", details
        if alive and any(fresh.values()):
            return "Degraded", details
        return "Inactive", details


@router.get("/health")
def health_check(request: Request):
    """
    Returns live scheduler status for monitoring.
    """
    state: HealthState = request.app.state.services.health
    status_str, details = state.status()
    return {"status": status_str, **details}
