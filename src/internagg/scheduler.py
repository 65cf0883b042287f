"""Background daily sync of external listings."""

import asyncio
import logging
from datetime import datetime, time, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from .collectors.aggregator import JobAggregator
from .models.sync import SyncResult

logger = logging.getLogger(__name__)


def parse_run_at(value: str) -> time:
    """Parse an HH:MM wall-clock time."""
    hours, minutes = value.split(":")
    return time(hour=int(hours), minute=int(minutes))


class SyncScheduler:
    """Background task that seeds the store on startup, then syncs daily."""

    def __init__(
        self,
        aggregator: JobAggregator,
        run_at: str = "02:00",
        timezone: str = "Asia/Kolkata",
        initial_delay: float = 10.0,
        enabled: bool = True,
    ):
        self.aggregator = aggregator
        self.run_at = parse_run_at(run_at)
        self.tz = ZoneInfo(timezone)
        self.initial_delay = initial_delay
        self.enabled = enabled
        self._task: asyncio.Task | None = None
        self._next_run_at: Optional[datetime] = None

    @classmethod
    def from_settings(cls, aggregator: JobAggregator, settings=None) -> "SyncScheduler":
        if settings is None:
            from .config import config as settings
        return cls(
            aggregator,
            run_at=settings.sync_time,
            timezone=settings.sync_timezone,
            initial_delay=settings.initial_sync_delay,
            enabled=settings.scheduler_enabled,
        )

    @property
    def is_started(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self):
        """Launch the background sync loop."""
        if not self.enabled:
            logger.info("Scheduled sync disabled via INTERNAGG_SCHEDULER_ENABLED")
            return
        if self.is_started:
            return
        self._task = asyncio.create_task(self._loop())
        logger.info(
            f"Sync scheduler started (daily at {self.run_at.strftime('%H:%M')} {self.tz.key}, "
            f"initial delay {self.initial_delay:.0f}s)"
        )

    async def stop(self):
        """Cancel the background task."""
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            logger.info("Sync scheduler stopped")
        self._task = None

    async def trigger(self) -> SyncResult:
        """Run a sync now, through the aggregator's single-run guard."""
        return await self.aggregator.sync_all_platforms()

    async def _run_cycle(self):
        try:
            result = await self.aggregator.sync_all_platforms()
            if result.already_running:
                logger.info("Scheduled sync skipped: a sync is already in progress")
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Scheduled sync failed unexpectedly")

    async def _loop(self):
        """Main loop: seed sync, then sleep until the next daily run."""
        await asyncio.sleep(self.initial_delay)
        while True:
            await self._run_cycle()

            now = datetime.now(timezone.utc)
            self._next_run_at = self.next_run_after(now)
            wait = (self._next_run_at - now).total_seconds()
            logger.info(f"Next scheduled sync at {self._next_run_at.isoformat()} ({wait / 3600:.1f}h)")
            await asyncio.sleep(wait)

    def next_run_after(self, now: datetime) -> datetime:
        """Next occurrence of the daily run time strictly after now.

        Args:
            now: Aware datetime (naive values are taken as UTC)

        Returns:
            Aware datetime in the scheduler's timezone
        """
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        local_now = now.astimezone(self.tz)
        candidate = datetime.combine(local_now.date(), self.run_at, tzinfo=self.tz)
        if candidate <= local_now:
            candidate = datetime.combine(
                local_now.date() + timedelta(days=1), self.run_at, tzinfo=self.tz
            )
        return candidate

    def get_status(self) -> dict:
        """Aggregator status plus scheduler state."""
        return {
            **self.aggregator.get_status(),
            "enabled": self.enabled,
            "next_run_at": self._next_run_at,
        }
