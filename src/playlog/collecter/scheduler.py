import asyncio
import logging
LOGGER = logging.getLogger(__name__)

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from playlog.collecter.listens import run_ingestion, IngestionResult

INGEST_JOB_ID = "ingest-recent-plays"
RUN_NOW_JOB_ID = "ingest-recent-plays-now"


class IngestionScheduler:
    """Fires run_ingestion at the top of every hour once armed."""

    def __init__(self, tokens, scheduler: AsyncIOScheduler = None):
        self.tokens = tokens
        self._scheduler = scheduler or AsyncIOScheduler(timezone="UTC")

    @property
    def armed(self) -> bool:
        return self._scheduler.get_job(INGEST_JOB_ID) is not None

    def arm(self) -> None:
        """Safe to call repeatedly, re-authorizing just replaces the job."""
        LOGGER.info("Scheduling API calls.")
        self._scheduler.add_job(
            run_ingestion,
            CronTrigger(minute=0, timezone="UTC"),
            args=(self.tokens,),
            id=INGEST_JOB_ID,
            replace_existing=True,
            coalesce=True,            # Missed runs are not caught up.
            max_instances=1,
            misfire_grace_time=60,
        )
        if not self._scheduler.running:
            self._scheduler.start()

    def run_soon(self) -> None:
        """One extra run as soon as the loop gets to it, on top of the hourly job."""
        LOGGER.info("Queueing an immediate ingestion run.")
        self._scheduler.add_job(run_ingestion,
                                args=(self.tokens,),
                                id=RUN_NOW_JOB_ID,
                                replace_existing=True)
        if not self._scheduler.running:
            self._scheduler.start()

    async def run_now(self) -> IngestionResult | None:
        return await run_ingestion(self.tokens)

    async def shutdown(self) -> None:
        if self._scheduler.running:
            LOGGER.info("Shutting down ingestion scheduler.")
            self._scheduler.shutdown(wait=False)
            # The stop is queued on the loop, let it run before returning.
            await asyncio.sleep(0)
