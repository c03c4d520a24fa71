"""Google Tasks sync scheduled job.

Runs a reconciliation pass every poll interval. Ticks that arrive while a
pass is still running are skipped.
"""

import time
from typing import Callable, Optional

from logger import logger
from domains.google_tasks.config import AUTH_PROMPT_INTERVAL
from domains.google_tasks.engine import SyncEngine
from domains.google_tasks.errors import SyncError
from domains.google_tasks.types import SyncResult


class GoogleTasksSyncJob:
    """Periodic driver around SyncEngine.run_sync."""

    def __init__(self, engine: SyncEngine, clock: Callable[[], float] = time.monotonic):
        self.engine = engine
        self._clock = clock
        self._running = False
        self._last_auth_prompt: Optional[float] = None

    @property
    def running(self) -> bool:
        return self._running

    async def run(self) -> Optional[SyncResult]:
        """One scheduled tick. Never raises into the scheduler."""
        if self._running:
            logger.info("Google Tasks sync still in progress, skipping this tick")
            return None

        settings = self.engine.settings
        if settings.enabled and not self.engine.tokens.is_authenticated():
            self._prompt_reauthorization()

        self._running = True
        try:
            return await self.engine.run_sync()
        except SyncError as e:
            logger.error(f"Scheduled Google Tasks sync failed: {e}")
            return None
        finally:
            self._running = False

    def _prompt_reauthorization(self) -> None:
        now = self._clock()
        if self._last_auth_prompt is not None and now - self._last_auth_prompt < AUTH_PROMPT_INTERVAL:
            return
        self._last_auth_prompt = now
        logger.warning("Google Tasks is not authenticated. Run `gtasks-sync authorize` to connect your account.")


def register_google_tasks_sync(scheduler, job: GoogleTasksSyncJob, interval: int):
    """Register the Google Tasks sync job with the scheduler.

    Args:
        scheduler: APScheduler instance
        job: the sync driver to run
        interval: seconds between passes
    """
    scheduler.add_job(
        job.run,
        'interval',
        seconds=interval,
        id="google_tasks_sync",
        max_instances=1,  # Prevent overlapping runs
        coalesce=True,    # Combine missed runs
    )
    logger.info(f"Registered Google Tasks sync job (every {interval}s)")
