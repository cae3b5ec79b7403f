"""
Per-account recurring crawl scheduler.

One job per account, fired on minute boundaries (``*/N * * * *`` style,
aligned to midnight for intervals that do not divide an hour). A tick that
finds its account still in flight is skipped, not queued. Runs for
different accounts share a bounded worker pool.

All public methods must be called from the event loop thread.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field, fields
from datetime import datetime, timedelta, timezone
from typing import Callable

from band.errors import ConfigError, CrawlError, SchedulingConflict

from . import events as ev
from .config import SchedulerConfig, validate_interval
from .crawler import SUCCEEDED, CrawlRunResult
from .events import EventBus
from .interfaces import AccountRegistry
from .state import StateStore

log = logging.getLogger(__name__)

IDLE = "idle"
RUNNING = "running"
STOPPED = "stopped"
FAILED = "failed"

JOB_PREFIX = "band-crawl-"
REFRESH_JOB_ID = "auto-crawl-refresh"
MINUTES_PER_DAY = 24 * 60


def job_id_for(account_id: str) -> str:
    return f"{JOB_PREFIX}{account_id}"


def cron_expression(interval_minutes: int) -> str:
    if interval_minutes < 60:
        return f"*/{interval_minutes} * * * *"
    if interval_minutes % 60 == 0 and interval_minutes < MINUTES_PER_DAY:
        return f"0 */{interval_minutes // 60} * * *"
    if interval_minutes == MINUTES_PER_DAY:
        return "0 0 * * *"
    return f"@every {interval_minutes}m"


def next_fire_time(after: datetime, interval_minutes: int) -> datetime:
    """First minute boundary strictly after ``after`` whose minute-of-day is a multiple of the interval."""
    start = after.replace(second=0, microsecond=0) + timedelta(minutes=1)
    day_start = start.replace(hour=0, minute=0)
    minute_of_day = int((start - day_start).total_seconds() // 60)
    slot = -(-minute_of_day // interval_minutes) * interval_minutes
    if slot >= MINUTES_PER_DAY:
        return day_start + timedelta(days=1)
    return day_start + timedelta(minutes=slot)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ScheduledJob:
    job_id: str
    account_id: str
    interval_minutes: int
    cron_expression: str
    description: str = ""
    status: str = IDLE
    last_run: str | None = None
    next_run: str | None = None
    in_flight: bool = False
    last_error: str | None = None
    last_run_id: str | None = None
    run_count: int = 0
    skipped_ticks: int = 0
    timer: asyncio.Task | None = field(default=None, repr=False, compare=False)

    def as_dict(self) -> dict:
        return {f.name: getattr(self, f.name) for f in fields(self) if f.name != "timer"}


class CrawlScheduler:
    def __init__(
        self,
        crawler,
        registry: AccountRegistry,
        config: SchedulerConfig | None = None,
        events: EventBus | None = None,
        now_fn: Callable[[], datetime] = _utcnow,
    ):
        self.crawler = crawler
        self.registry = registry
        self.config = config or SchedulerConfig()
        self.events = events or getattr(crawler, "events", None) or EventBus()
        self.now_fn = now_fn

        self.jobs: dict[str, ScheduledJob] = {}
        self.runs = StateStore(ttl_seconds=self.config.state_ttl_seconds)
        self.account_status = StateStore(ttl_seconds=self.config.state_ttl_seconds)

        self._in_flight: set[str] = set()
        self._semaphore = asyncio.Semaphore(max(1, self.config.max_workers))
        self._tasks: set[asyncio.Task] = set()
        self._refresh_task: asyncio.Task | None = None
        self._started = False

    # ------------------------------------------------------------------
    # Registry
    # ------------------------------------------------------------------

    def register_job(self, account_id: str, interval_minutes: int) -> ScheduledJob:
        """Create the job for ``account_id``, replacing any existing one."""
        interval = validate_interval(interval_minutes)
        existing = self.get_job_for_account(account_id)
        if existing is not None:
            self._disarm(existing)
            del self.jobs[existing.job_id]

        job = ScheduledJob(
            job_id=job_id_for(account_id),
            account_id=account_id,
            interval_minutes=interval,
            cron_expression=cron_expression(interval),
            description=f"crawl account {account_id} every {interval} min",
            in_flight=account_id in self._in_flight,
        )
        if existing is not None:
            job.last_run = existing.last_run
            job.last_run_id = existing.last_run_id
            job.run_count = existing.run_count
            if job.in_flight:
                job.status = RUNNING

        self.jobs[job.job_id] = job
        if self._started:
            self._arm(job)
        self.events.emit(ev.JOB_REGISTERED, account_id, message=job.description,
                         job_id=job.job_id, cron=job.cron_expression, replaced=existing is not None)
        return job

    def get_job(self, job_id: str) -> ScheduledJob | None:
        return self.jobs.get(job_id)

    def get_job_for_account(self, account_id: str) -> ScheduledJob | None:
        for job in self.jobs.values():
            if job.account_id == account_id:
                return job
        return None

    def list_jobs(self) -> list[dict]:
        return [job.as_dict() for job in self.jobs.values()]

    def _require(self, job_id: str) -> ScheduledJob:
        job = self.jobs.get(job_id)
        if job is None:
            raise KeyError(f"no such job: {job_id}")
        return job

    def stop(self, job_id: str) -> ScheduledJob:
        """Stop firing; the job and its configuration stay registered."""
        job = self._require(job_id)
        self._disarm(job)
        job.status = STOPPED
        job.next_run = None
        log.info("stopped %s", job_id)
        return job

    def restart(self, job_id: str) -> ScheduledJob:
        job = self._require(job_id)
        job.status = RUNNING if job.in_flight else IDLE
        job.last_error = None
        if self._started:
            self._arm(job)
        log.info("restarted %s", job_id)
        return job

    def delete(self, job_id: str) -> bool:
        job = self.jobs.pop(job_id, None)
        if job is None:
            return False
        self._disarm(job)
        self.events.emit(ev.JOB_REMOVED, job.account_id, message=job_id, job_id=job_id)
        return True

    def refresh(self) -> dict:
        """
        Reconcile jobs with the account registry: add jobs for newly enabled
        accounts, replace jobs whose interval changed, delete jobs for
        accounts no longer enabled.
        """
        desired = {a.account_id: a.crawl_interval for a in self.registry.list_accounts() if a.auto_crawl}
        summary = {"added": [], "replaced": [], "removed": []}

        for job in list(self.jobs.values()):
            if job.account_id not in desired:
                self.delete(job.job_id)
                summary["removed"].append(job.account_id)

        for account_id, interval in desired.items():
            job = self.get_job_for_account(account_id)
            if job is None:
                self.register_job(account_id, interval)
                summary["added"].append(account_id)
            elif job.interval_minutes != interval:
                self.register_job(account_id, interval)
                summary["replaced"].append(account_id)

        log.info("refresh: %d added, %d replaced, %d removed",
                 len(summary["added"]), len(summary["replaced"]), len(summary["removed"]))
        return summary

    def set_automation(self, account_id: str, enabled: bool, interval_minutes: int | None = None) -> ScheduledJob | None:
        """Toggle automatic crawling for an account; returns the live job, if any."""
        if interval_minutes is not None:
            interval_minutes = validate_interval(interval_minutes)
        account = self.registry.set_automation(account_id, enabled, interval_minutes)
        if enabled:
            return self.register_job(account_id, account.crawl_interval)
        job = self.get_job_for_account(account_id)
        if job is not None:
            self.delete(job.job_id)
        return None

    # ------------------------------------------------------------------
    # Timers
    # ------------------------------------------------------------------

    def _arm(self, job: ScheduledJob) -> None:
        self._disarm(job)
        if job.status == STOPPED:
            return
        job.timer = asyncio.get_running_loop().create_task(self._job_loop(job.job_id))

    def _disarm(self, job: ScheduledJob) -> None:
        if job.timer is not None and not job.timer.done():
            job.timer.cancel()
        job.timer = None

    async def _job_loop(self, job_id: str) -> None:
        while True:
            job = self.jobs.get(job_id)
            if job is None or job.status == STOPPED:
                return
            now = self.now_fn()
            fire_at = next_fire_time(now, job.interval_minutes)
            job.next_run = fire_at.isoformat()
            await asyncio.sleep(max(0.0, (fire_at - now).total_seconds()))
            self._spawn(self.fire(job_id))

    async def _refresh_loop(self) -> None:
        period = self.config.refresh_interval_minutes * 60
        while True:
            await asyncio.sleep(period)
            try:
                self.refresh()
            except (CrawlError, OSError, ValueError) as e:
                log.error("%s failed: %s", REFRESH_JOB_ID, e)

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    # ------------------------------------------------------------------
    # Runs
    # ------------------------------------------------------------------

    def _try_begin(self, account_id: str) -> bool:
        # Check-and-set with no await in between
        if account_id in self._in_flight:
            return False
        self._in_flight.add(account_id)
        job = self.get_job_for_account(account_id)
        if job is not None:
            job.in_flight = True
            job.status = RUNNING
        return True

    def _finish(self, account_id: str) -> ScheduledJob | None:
        self._in_flight.discard(account_id)
        job = self.get_job_for_account(account_id)
        if job is not None:
            job.in_flight = False
        return job

    async def fire(self, job_id: str) -> CrawlRunResult | None:
        """Tick handler. Returns None when the tick was skipped."""
        job = self.jobs.get(job_id)
        if job is None or job.status == STOPPED:
            return None
        if not self._try_begin(job.account_id):
            job.skipped_ticks += 1
            conflict = SchedulingConflict(f"{job_id} still running; tick skipped")
            log.info("%s", conflict)
            self.events.emit(ev.TICK_SKIPPED, job.account_id, message=str(conflict), job_id=job_id)
            return None
        return await self._execute(job.account_id, None, uuid.uuid4().hex)

    def trigger_crawl(self, account_id: str, target_count: int | None = None) -> str:
        """
        Start a one-shot crawl and return its correlation id immediately.
        Results arrive through the result sink; status via ``get_run``.
        """
        if self.registry.get_account(account_id) is None:
            raise ConfigError(f"unknown account {account_id}")
        if not self._try_begin(account_id):
            raise SchedulingConflict(f"a crawl for {account_id} is already running")
        run_id = uuid.uuid4().hex
        self.runs.put(run_id, {"run_id": run_id, "account_id": account_id, "status": "queued"})
        self._spawn(self._execute(account_id, target_count, run_id))
        return run_id

    def get_run(self, run_id: str):
        return self.runs.get(run_id)

    async def _execute(self, account_id: str, target_count: int | None, run_id: str) -> CrawlRunResult | None:
        """Runs with the account already marked in flight; always clears the flag."""
        started = self.now_fn().isoformat()
        result = None
        error = None
        try:
            account = self.registry.get_account(account_id)
            if account is None:
                raise ConfigError(f"account {account_id} is no longer registered")
            target = target_count or account.target_posts or self.config.default_target_posts
            async with self._semaphore:
                result = await self.crawler.run(account, target, run_id=run_id,
                                                timeout_seconds=self.config.run_timeout_seconds)
            self.runs.put(run_id, result)
            if result.authentication_failed:
                self._disable_after_auth_failure(account_id, result)
        except CrawlError as e:
            error = str(e)
            log.error("run %s for %s failed: %s", run_id, account_id, e)
            self.runs.put(run_id, {"run_id": run_id, "account_id": account_id, "status": FAILED, "error": error})
        finally:
            job = self._finish(account_id)
            status = result.status if result is not None else FAILED
            self.account_status.put(account_id, {"status": status, "run_id": run_id, "at": started})
            if job is not None:
                job.last_run = started
                job.last_run_id = run_id
                job.run_count += 1
                if result is not None:
                    job.last_error = result.error
                else:
                    job.last_error = error
                if job.status != STOPPED:
                    job.status = IDLE if status == SUCCEEDED else FAILED
        return result

    def _disable_after_auth_failure(self, account_id: str, result: CrawlRunResult) -> None:
        try:
            self.registry.set_automation(account_id, False)
        except ConfigError as e:
            log.warning("could not disable automation for %s: %s", account_id, e)
        job = self.get_job_for_account(account_id)
        if job is not None:
            self._disarm(job)
            job.status = STOPPED
            job.next_run = None
        self.events.emit(ev.OPERATOR_ALERT, account_id, result.run_id,
                         f"login rejected; automation disabled: {result.error}",
                         reason="authentication_failure")

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Load jobs from the registry and start all timers."""
        if self._started:
            return
        self._started = True
        self.refresh()
        for job in self.jobs.values():
            self._arm(job)
        self._refresh_task = asyncio.get_running_loop().create_task(self._refresh_loop())
        log.info("scheduler started with %d jobs", len(self.jobs))

    async def shutdown(self, cancel_running: bool = True) -> None:
        self._started = False
        if self._refresh_task is not None:
            self._refresh_task.cancel()
            self._refresh_task = None
        for job in self.jobs.values():
            self._disarm(job)
        pending = list(self._tasks)
        if cancel_running:
            for task in pending:
                task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        log.info("scheduler stopped")
