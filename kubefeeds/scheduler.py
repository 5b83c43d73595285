import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, List, Optional

from kubefeeds.db import Database
from kubefeeds.ingest import FeedIngestor
from kubefeeds.models import Source

logger = logging.getLogger(__name__)

FULL_CYCLE = "full-cycle"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class IngestionScheduler:
    """
    Drives ingestion cycles over all active sources.

    Every trigger (warm-up, recurring timer, manual refresh, new source) becomes
    a job on one queue, and a single worker task runs the jobs in order, so two
    cycles never interleave. A refresh requested while a full cycle is already
    waiting in the queue is folded into that one.
    """

    def __init__(
        self,
        db: Database,
        ingestor: FeedIngestor,
        *,
        warmup: float = 5.0,
        interval: timedelta = timedelta(hours=4),
        pacing: float = 2.0,
        clock: Callable[[], datetime] = utcnow,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.db = db
        self.ingestor = ingestor
        self.warmup = warmup
        self.interval = interval
        self.pacing = pacing
        self.clock = clock
        self.sleep = sleep
        self._queue: asyncio.Queue = asyncio.Queue()
        self._cycle_queued = False
        self._tasks: List[asyncio.Task] = []

    # Triggers

    def request_refresh(self) -> bool:
        """Queue a full cycle without waiting for it. False if one is already queued."""
        if self._cycle_queued:
            logger.info("Full cycle already queued, skipping duplicate refresh")
            return False
        self._cycle_queued = True
        self._queue.put_nowait(FULL_CYCLE)
        return True

    def request_source_fetch(self, source: Source):
        """Queue a one-off fetch of a single source."""
        self._queue.put_nowait(source)

    @property
    def pending_jobs(self) -> int:
        return self._queue.qsize()

    # Work

    async def run_cycle(self) -> int:
        """Fetch every active source in turn, pausing between sources."""
        logger.info("Starting feed fetch cycle...")
        try:
            sources = await asyncio.to_thread(self.db.active_sources)
        except Exception as e:
            logger.error(f"Error getting feeds: {e}")
            return 0

        total = 0
        for idx, source in enumerate(sources):
            if idx > 0:
                await self.sleep(self.pacing)
            total += await self.ingestor.ingest(source)

        logger.info(f"Feed fetch cycle completed: {total} new articles from {len(sources)} feeds")
        return total

    async def _run_job(self, job):
        try:
            if job == FULL_CYCLE:
                self._cycle_queued = False
                await self.run_cycle()
            else:
                await self.ingestor.ingest(job)
        except Exception:
            logger.exception(f"Ingestion job {job!r} failed")

    async def run_pending(self) -> int:
        """Run every queued job in the current task. Returns how many ran."""
        ran = 0
        while not self._queue.empty():
            job = self._queue.get_nowait()
            try:
                await self._run_job(job)
            finally:
                self._queue.task_done()
            ran += 1
        return ran

    async def _worker(self):
        while True:
            job = await self._queue.get()
            try:
                await self._run_job(job)
            finally:
                self._queue.task_done()

    # Timers

    def next_run_after(self, now: datetime) -> datetime:
        """Next slot aligned to multiples of the interval since midnight UTC."""
        now = now.astimezone(timezone.utc)
        midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
        slots = (now - midnight) // self.interval + 1
        return midnight + slots * self.interval

    async def _timer(self):
        await self.sleep(self.warmup)
        self.request_refresh()
        target = self.next_run_after(self.clock())
        while True:
            delay = max((target - self.clock()).total_seconds(), 0.0)
            await self.sleep(delay)
            logger.info(f"Scheduled feed fetch triggered for {target.isoformat()}")
            self.request_refresh()
            # Advance past the slot just served even if the wake-up came early.
            # Slots missed while the process was stalled are skipped.
            target = self.next_run_after(max(target, self.clock()))

    def start(self):
        if self._tasks:
            return
        self._tasks = [
            asyncio.create_task(self._worker(), name="kubefeeds-ingest-worker"),
            asyncio.create_task(self._timer(), name="kubefeeds-ingest-timer"),
        ]
        logger.info(f"Scheduler started: first cycle in {self.warmup}s, then every {self.interval}")

    async def stop(self):
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        logger.info("Scheduler stopped")

    async def wait_idle(self, timeout: Optional[float] = None):
        """Block until every queued job has been processed by the worker."""
        await asyncio.wait_for(self._queue.join(), timeout)
