"""
Steam Storage — Background Job Scheduler

One scheduler, two trigger kinds:
- daily: fire once a day at a fixed UTC clock time
  (currency refresh, group valuation rollup)
- interval: run, wait N hours, run again (skin catalog crawl, which can
  itself take hours)

Per-job state machine: IDLE -> RUNNING -> IDLE on success, or
RUNNING -> BACKOFF -> RUNNING on failure. A failed job is retried after
JOB_RETRY_COOLDOWN_MINUTES until it succeeds or the process shuts down.
AlreadyDone counts as success. A daily fire that finds its job not IDLE is
dropped, not queued.

No job starts before the ready event is set (see main.py). Nothing about
"already ran today" is remembered in memory; the services check the
database on every call.
"""

from __future__ import annotations

import asyncio
import enum
import signal
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from steam_storage.config import settings
from steam_storage.errors import AlreadyDone
from steam_storage.models.base import utcnow
from steam_storage.pipeline.currency_refresh import refresh_currency_rates
from steam_storage.pipeline.skin_sync import SkinCatalogSyncer
from steam_storage.pipeline.steam_market import SteamMarketClient
from steam_storage.pipeline.valuation import refresh_group_valuations

logger = structlog.get_logger(__name__)

JobFunc = Callable[[], Awaitable[Any]]


class JobState(str, enum.Enum):
    IDLE = "idle"
    RUNNING = "running"
    BACKOFF = "backoff"


@dataclass
class Job:
    name: str
    func: JobFunc
    state: JobState = JobState.IDLE
    runs: int = 0
    failures: int = 0
    last_success: datetime | None = None


def next_daily_fire(now: datetime, hour: int, minute: int) -> datetime:
    """
    Next occurrence of hour:minute strictly after `now`, in now's timezone.

    Examples:
        now=10:00, 23:00 -> today 23:00
        now=23:00, 23:00 -> tomorrow 23:00
    """
    candidate = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if candidate <= now:
        candidate += timedelta(days=1)
    return candidate


class Scheduler:
    """
    Async scheduler for the sync pipeline jobs.

    Usage:
        scheduler = Scheduler(engine, session_factory, ready=ready_event)
        scheduler.add_daily("currency_refresh", func, hour=1, minute=0)
        scheduler.add_interval("skin_sync", func, interval_seconds=3600)
        await scheduler.run()
    """

    def __init__(
        self,
        db_engine: Any,
        session_factory: async_sessionmaker[AsyncSession],
        ready: asyncio.Event | None = None,
        retry_cooldown_seconds: float | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db_engine = db_engine
        self.session_factory = session_factory
        self._ready = ready or asyncio.Event()
        self._shutdown_event = asyncio.Event()
        self._retry_cooldown = (
            settings.JOB_RETRY_COOLDOWN_MINUTES * 60
            if retry_cooldown_seconds is None
            else retry_cooldown_seconds
        )
        self._clock = clock

        self.jobs: dict[str, Job] = {}
        self._loops: list[Callable[[], Awaitable[None]]] = []
        self._tasks: set[asyncio.Task[Any]] = set()

    # -----------------------------------------------------------------------
    # Registration
    # -----------------------------------------------------------------------

    def _register(self, name: str, func: JobFunc) -> Job:
        if name in self.jobs:
            raise ValueError(f"Job {name!r} is already registered")
        job = Job(name=name, func=func)
        self.jobs[name] = job
        return job

    def add_daily(self, name: str, func: JobFunc, hour: int, minute: int = 0) -> Job:
        """Fire `func` every day at hour:minute UTC."""
        job = self._register(name, func)
        self._loops.append(lambda: self._daily_loop(job, hour, minute))
        return job

    def add_interval(self, name: str, func: JobFunc, interval_seconds: float) -> Job:
        """Run `func`, wait `interval_seconds` after it finishes, repeat."""
        job = self._register(name, func)
        self._loops.append(lambda: self._interval_loop(job, interval_seconds))
        return job

    # -----------------------------------------------------------------------
    # Control
    # -----------------------------------------------------------------------

    async def shutdown(self) -> None:
        """Signal graceful shutdown to every loop and job."""
        logger.info("scheduler_shutdown_requested")
        self._shutdown_event.set()

    async def _sleep(self, seconds: float) -> bool:
        """Sleep up to `seconds`. Returns True if shutdown was requested."""
        try:
            await asyncio.wait_for(self._shutdown_event.wait(), timeout=max(seconds, 0))
            return True
        except asyncio.TimeoutError:
            return False

    async def _wait_until_ready(self) -> bool:
        ready = asyncio.ensure_future(self._ready.wait())
        stop = asyncio.ensure_future(self._shutdown_event.wait())
        try:
            await asyncio.wait({ready, stop}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            ready.cancel()
            stop.cancel()
        return not self._shutdown_event.is_set()

    def fire(self, name: str) -> bool:
        """
        Start a job in the background unless it is already active.

        Returns:
            True if the job was started, False if the fire was dropped.
        """
        job = self.jobs[name]
        if job.state is not JobState.IDLE:
            logger.warning("scheduler_fire_dropped", job=name, state=job.state.value)
            return False

        job.state = JobState.RUNNING
        task = asyncio.create_task(self.run_job(job), name=f"job:{name}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return True

    async def run_job(self, job: Job) -> bool:
        """
        Run a job until it succeeds, retrying after the cooldown on failure.

        Returns:
            True on success, False if shutdown interrupted the retries.
        """
        job.state = JobState.RUNNING
        try:
            while not self._shutdown_event.is_set():
                job.runs += 1
                started = self._clock()
                logger.info("scheduler_job_start", job=job.name, attempt=job.runs)

                try:
                    await job.func()
                except AlreadyDone as e:
                    logger.info("scheduler_job_already_done", job=job.name, reason=str(e))
                except Exception as e:
                    job.failures += 1
                    job.state = JobState.BACKOFF
                    logger.error(
                        "scheduler_job_failed",
                        job=job.name,
                        error=str(e),
                        error_type=type(e).__name__,
                        elapsed_seconds=round((self._clock() - started).total_seconds(), 1),
                        retry_in_seconds=self._retry_cooldown,
                    )
                    if await self._sleep(self._retry_cooldown):
                        return False
                    job.state = JobState.RUNNING
                    continue

                job.last_success = self._clock()
                logger.info(
                    "scheduler_job_complete",
                    job=job.name,
                    elapsed_seconds=round((job.last_success - started).total_seconds(), 1),
                )
                return True
            return False
        finally:
            job.state = JobState.IDLE

    async def _daily_loop(self, job: Job, hour: int, minute: int) -> None:
        if not await self._wait_until_ready():
            return
        last_fire: datetime | None = None
        while not self._shutdown_event.is_set():
            now = self._clock()
            # A wake-up slightly before the fire time must not fire the same day twice
            fire_at = next_daily_fire(now if last_fire is None else max(now, last_fire), hour, minute)
            logger.info("scheduler_next_fire", job=job.name, fire_at=fire_at.isoformat())
            if await self._sleep((fire_at - now).total_seconds()):
                return
            self.fire(job.name)
            last_fire = fire_at

    async def _interval_loop(self, job: Job, interval_seconds: float) -> None:
        if not await self._wait_until_ready():
            return
        while not self._shutdown_event.is_set():
            await self.run_job(job)
            if await self._sleep(interval_seconds):
                return

    async def run(self) -> None:
        """
        Main scheduler loop. Runs until shutdown is signaled.

        Every trigger loop waits for the ready event before its first
        iteration. On shutdown, in-flight jobs are cancelled.
        """
        logger.info("scheduler_started", jobs=list(self.jobs))

        loops = [asyncio.create_task(loop()) for loop in self._loops]
        try:
            await self._shutdown_event.wait()
        except asyncio.CancelledError:
            logger.info("scheduler_cancelled")
            raise
        finally:
            pending = loops + list(self._tasks)
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
            logger.info("scheduler_stopped")

    # -----------------------------------------------------------------------
    # Pipeline jobs
    # -----------------------------------------------------------------------

    async def refresh_currencies(self) -> int:
        async with self.session_factory() as session:
            async with SteamMarketClient() as client:
                return await refresh_currency_rates(session, client)

    async def sync_skins(self) -> None:
        async with self.session_factory() as session:
            async with SteamMarketClient() as client:
                await SkinCatalogSyncer(session, client).sync_all()

    async def refresh_valuations(self) -> int:
        async with self.session_factory() as session:
            return await refresh_group_valuations(session)

    def add_pipeline_jobs(self) -> None:
        """Register the three standard pipeline jobs with their configured schedules."""
        self.add_daily(
            "currency_refresh",
            self.refresh_currencies,
            hour=settings.CURRENCY_REFRESH_HOUR,
            minute=settings.CURRENCY_REFRESH_MINUTE,
        )
        self.add_interval(
            "skin_sync",
            self.sync_skins,
            interval_seconds=settings.SKIN_SYNC_INTERVAL_HOURS * 3600,
        )
        self.add_daily(
            "group_valuation",
            self.refresh_valuations,
            hour=settings.GROUP_VALUATION_HOUR,
            minute=settings.GROUP_VALUATION_MINUTE,
        )


async def run_scheduler(
    db_engine: Any,
    session_factory: async_sessionmaker[AsyncSession],
    ready: asyncio.Event | None = None,
) -> None:
    """
    Initialize and run the scheduler with graceful shutdown handling.

    Registers SIGTERM/SIGINT handlers to trigger shutdown.

    Args:
        db_engine: SQLAlchemy async engine.
        session_factory: SQLAlchemy async session factory.
        ready: Event set once the application is ready; jobs wait for it.
    """
    scheduler = Scheduler(db_engine, session_factory, ready=ready)
    scheduler.add_pipeline_jobs()

    def handle_signal(_signum: int, _frame: Any) -> None:
        """Called by SIGTERM/SIGINT."""
        logger.info("scheduler_signal_received")
        asyncio.create_task(scheduler.shutdown())

    loop = asyncio.get_running_loop()

    try:
        loop.add_signal_handler(signal.SIGTERM, handle_signal, signal.SIGTERM, None)
        loop.add_signal_handler(signal.SIGINT, handle_signal, signal.SIGINT, None)
    except NotImplementedError:
        # Windows doesn't support add_signal_handler for all signals
        logger.warning("signal_handlers_not_supported_on_platform")

    try:
        await scheduler.run()
    except Exception as e:
        logger.error("scheduler_fatal_error", error=str(e), error_type=type(e).__name__)
        raise
