# backend/pestalert/scheduler.py
"""
asyncio job runner for the recurring dispatcher jobs.

Each registered job gets its own loop task: sleep, run the job body on the
runner's thread pool, repeat. stop() flips a shared threading.Event that the
sweeps poll between subscribers, then cancels the loop tasks, so a sweep that
is mid-way finishes its current subscriber and no further run is scheduled.
shutdown() additionally waits until every in-flight job body has returned.
"""

import asyncio
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Set

from .clock import SYSTEM_CLOCK, Clock
from .config import SchedulerConfig
from .dispatcher import CRITICAL_SWEEP, DAILY_DIGEST, GENERAL_SWEEP, AlertDispatcher
from .healthcheck import HealthState
from .logging_setup import logger

log = logger.getChild("scheduler")

JobFn = Callable[[threading.Event], Any]


def seconds_until_hour(now: datetime, hour_utc: int) -> float:
    """Seconds from `now` to the next HH:00 UTC (today if still ahead, else tomorrow)."""
    target = now.replace(hour=hour_utc, minute=0, second=0, microsecond=0)
    if target <= now:
        target += timedelta(days=1)
    return (target - now).total_seconds()


@dataclass
class _Job:
    name: str
    interval_s: float
    fn: JobFn
    first_delay_fn: Optional[Callable[[datetime], float]] = None

    def first_delay(self, now: datetime) -> float:
        if self.first_delay_fn is None:
            return self.interval_s
        return max(0.0, float(self.first_delay_fn(now)))


class JobRunner:
    def __init__(self, clock: Clock = SYSTEM_CLOCK, health: Optional[HealthState] = None,
                 run_on_start: bool = False):
        self.clock = clock
        self.health = health
        self.run_on_start = run_on_start
        self._jobs: Dict[str, _Job] = {}
        self._tasks: List[asyncio.Task] = []
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._stop_event = threading.Event()
        self._lock = threading.Lock()
        self._running = False
        self._executor: Optional[ThreadPoolExecutor] = None
        self._inflight: Set[Future] = set()

    @property
    def job_names(self) -> List[str]:
        return list(self._jobs)

    def register(self, name: str, interval_s: float, fn: JobFn,
                 first_delay_fn: Optional[Callable[[datetime], float]] = None) -> None:
        if interval_s <= 0:
            raise ValueError(f"interval for {name} must be positive, got {interval_s}")
        with self._lock:
            if self._running:
                raise RuntimeError("cannot register jobs while the runner is running")
            self._jobs[name] = _Job(name, interval_s, fn, first_delay_fn)
        if self.health is not None:
            self.health.register_job(name, interval_s)

    def is_running(self) -> bool:
        with self._lock:
            return self._running

    def start(self) -> None:
        """Must be called from inside a running event loop."""
        loop = asyncio.get_running_loop()
        with self._lock:
            if self._running:
                return
            self._running = True
            self._stop_event = threading.Event()
            self._loop = loop
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=max(1, len(self._jobs)), thread_name_prefix="pestalert-job"
                )
            self._tasks = [
                loop.create_task(self._job_loop(job, self._stop_event), name=f"pestalert:{job.name}")
                for job in self._jobs.values()
            ]
        if self.health is not None:
            self.health.update_health("scheduler_start", self.clock.now())
        log.info(f"[scheduler] started {len(self._tasks)} job(s): {', '.join(self._jobs)}")

    def stop(self) -> None:
        """Idempotent; safe to call from any thread."""
        with self._lock:
            if not self._running:
                return
            self._running = False
            self._stop_event.set()
            tasks, loop = self._tasks, self._loop
            self._tasks = []
        if loop is not None and not loop.is_closed():
            for task in tasks:
                loop.call_soon_threadsafe(task.cancel)
        if self.health is not None:
            self.health.update_health("scheduler_stop", self.clock.now())
        log.info("[scheduler] stopped")

    async def shutdown(self) -> None:
        """
        stop(), wait for the loop tasks to unwind, then wait for any job body
        still running on the pool. Returns only once no job is touching the
        shared services, so callers may close them afterwards.
        """
        with self._lock:
            tasks = list(self._tasks)
        self.stop()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        with self._lock:
            inflight = list(self._inflight)
            executor, self._executor = self._executor, None
        if inflight:
            log.info(f"[scheduler] waiting for {len(inflight)} running job(s) to finish")
            await asyncio.gather(*(asyncio.wrap_future(f) for f in inflight), return_exceptions=True)
        if executor is not None:
            executor.shutdown(wait=True)

    def inflight_count(self) -> int:
        with self._lock:
            return len(self._inflight)

    def run_now(self, name: str) -> Any:
        """Run one job synchronously in the calling thread, outside the schedule."""
        job = self._jobs[name]
        log.info(f"[scheduler] manual run: {name}")
        return job.fn(threading.Event())

    async def _job_loop(self, job: _Job, stop_event: threading.Event) -> None:
        delay = 0.0 if self.run_on_start else job.first_delay(self.clock.now())
        while not stop_event.is_set():
            if delay > 0:
                log.info(f"[scheduler] {job.name} sleeping for {delay / 60:.1f} minute(s)...")
                await self.clock.sleep(delay)
            if stop_event.is_set():
                break
            await self._run_once(job, stop_event)
            delay = job.interval_s

    async def _run_once(self, job: _Job, stop_event: threading.Event) -> None:
        log.info(f"[scheduler] {job.name} wakeup")
        with self._lock:
            executor = self._executor
            if executor is None:
                return
            future = executor.submit(job.fn, stop_event)
            self._inflight.add(future)
        future.add_done_callback(self._forget)
        try:
            # cancelling this await leaves the pool thread running; shutdown() joins it
            await asyncio.wrap_future(future)
        except Exception as e:
            # a job failure never takes the runner down
            log.error(f"[scheduler] {job.name} failed: {e}", exc_info=True)

    def _forget(self, future: Future) -> None:
        with self._lock:
            self._inflight.discard(future)


def register_dispatcher_jobs(runner: JobRunner, dispatcher: AlertDispatcher, config: SchedulerConfig) -> None:
    runner.register(GENERAL_SWEEP, config.general_interval_hours * 3600, dispatcher.run_general_sweep)
    runner.register(CRITICAL_SWEEP, config.critical_interval_hours * 3600, dispatcher.run_critical_sweep)
    runner.register(
        DAILY_DIGEST,
        24 * 3600,
        dispatcher.run_daily_digest,
        first_delay_fn=lambda now: seconds_until_hour(now, config.digest_hour_utc),
    )
